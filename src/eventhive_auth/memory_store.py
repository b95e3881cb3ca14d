"""In-process principal store.

Backs the demo application and the test-suite. Production deployments plug
their own document-database repository in through the ``PrincipalStore``
protocol.
"""

from __future__ import annotations

import threading

from .errors import DuplicateEmail
from .principals import Principal, PrincipalKind


class InMemoryPrincipalStore:
    """Principals kept in dicts, one namespace per kind.

    Email uniqueness is enforced per kind and compared case-insensitively.

    Attributes:
        _by_kind: kind -> (id -> principal).
        _lock: Guards every read and write.
    """

    def __init__(self) -> None:
        self._by_kind: dict[PrincipalKind, dict[str, Principal]] = {k: {} for k in PrincipalKind}
        self._lock = threading.Lock()

    def get(self, kind: PrincipalKind, principal_id: str) -> Principal | None:
        with self._lock:
            return self._by_kind[kind].get(principal_id)

    def find_by_email(self, kind: PrincipalKind, email: str) -> Principal | None:
        wanted = email.strip().lower()
        with self._lock:
            for principal in self._by_kind[kind].values():
                if principal.email.lower() == wanted:
                    return principal
        return None

    def find_by_verification_hash(self, kind: PrincipalKind, token_hash: str) -> Principal | None:
        with self._lock:
            for principal in self._by_kind[kind].values():
                if principal.email_verification_token_hash == token_hash:
                    return principal
        return None

    def find_by_reset_hash(self, kind: PrincipalKind, token_hash: str) -> Principal | None:
        with self._lock:
            for principal in self._by_kind[kind].values():
                if principal.password_reset_token_hash == token_hash:
                    return principal
        return None

    def save(self, principal: Principal) -> None:
        """Insert or replace ``principal``.

        Raises:
            DuplicateEmail: Another principal of the same kind owns the email.
        """
        wanted = principal.email.lower()
        with self._lock:
            bucket = self._by_kind[principal.kind]
            for other in bucket.values():
                if other.id != principal.id and other.email.lower() == wanted:
                    raise DuplicateEmail(f"{principal.kind} with email {principal.email} exists")
            bucket[principal.id] = principal

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_kind.values())
