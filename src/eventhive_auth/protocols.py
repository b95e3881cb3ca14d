"""Protocol definitions for the authentication core.

This module defines structural interfaces using Protocol (PEP 544) for:
- Token verification
- Token extraction
- Attempt counting (rate limiting)
- One-time secret storage
- Principal lookup
- Secret delivery (mail)

Any class that implements the required methods satisfies the protocol, so
tests can pass small fakes without inheriting from anything.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from .principals import Principal, PrincipalKind

# ============================================================================
# Type Aliases
# ============================================================================

Claims: TypeAlias = Mapping[str, Any]
"""Represents the decoded JWT payload as an immutable mapping."""

ViewFunc: TypeAlias = Callable[..., Any]
"""Type alias for Flask view functions."""


# ============================================================================
# Core Protocols
# ============================================================================


class TokenVerifier(Protocol):
    """Anything that turns a raw access token into verified claims."""

    def verify_access_token(self, token: str) -> Claims:
        """Verify signature, expiry, issuer and audience.

        Raises:
            InvalidToken: on any verification failure.
        """
        ...


class Extractor(Protocol):
    """Pulls a raw token out of the current Flask request."""

    def extract(self) -> str | None:
        """Return the raw token, or None when absent or malformed.

        Callers decide whether absence is fatal (mandatory auth) or
        tolerated (optional auth).
        """
        ...


class AttemptStore(Protocol):
    """Counts attempts per key inside a fixed window.

    Implementations must make ``hit`` atomic per key: under concurrent
    requests two hits on the same key must never both observe the same count.
    """

    def hit(self, key: str, *, limit: int, window_ms: int) -> tuple[bool, float]:
        """Record an attempt for ``key``.

        Returns:
            ``(allowed, retry_after_seconds)``. ``retry_after_seconds`` is 0
            when allowed, else the time until the window for ``key`` resets.
        """
        ...


class SecretStore(Protocol):
    """Holds hashed one-time secrets keyed by an opaque string.

    Only the hash of a secret is ever handed to a store.
    """

    def put(
        self,
        key: str,
        secret_hash: str,
        expires_at: datetime,
        purpose: str | None = None,
    ) -> None:
        """Store (or replace) the pending secret for ``key``."""
        ...

    def consume(self, key: str, candidate_hash: str, purpose: str | None = None) -> bool:
        """Return True exactly once for a matching, unexpired secret.

        A match deletes the entry. A proven-expired entry is deleted and
        False is returned. A mismatch leaves the entry in place.
        """
        ...


class PrincipalStore(Protocol):
    """Lookup and persistence for principals, one namespace per kind."""

    def get(self, kind: PrincipalKind, principal_id: str) -> Principal | None: ...

    def find_by_email(self, kind: PrincipalKind, email: str) -> Principal | None: ...

    def find_by_verification_hash(
        self, kind: PrincipalKind, token_hash: str
    ) -> Principal | None: ...

    def find_by_reset_hash(self, kind: PrincipalKind, token_hash: str) -> Principal | None: ...

    def save(self, principal: Principal) -> None:
        """Insert or replace ``principal``. Raises ``DuplicateEmail`` on an email clash."""
        ...


class Mailer(Protocol):
    """Delivers a one-time secret to its owner. Delivery mechanics live elsewhere."""

    def send(self, to: str, subject: str, body: str) -> None: ...
