"""The authorization context attached to a request after authentication."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from flask import g

from .errors import InvalidPayload
from .principals import AccountStatus, PrincipalKind
from .tokens import has_payload_shape

if TYPE_CHECKING:
    from .protocols import Claims

_G_KEY = "auth"


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Decoded, validated view of the caller.

    Attributes:
        id: Principal identifier.
        email: Email (official email for organizations).
        kind: Principal kind.
        verified: Whether the email address has been verified.
        status: Account status as recorded in the token (or reloaded live).
        claims: Every verified claim, read-only, for kind-specific fields.
    """

    id: str
    email: str
    kind: PrincipalKind
    verified: bool
    status: AccountStatus
    claims: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_claims(cls, claims: Claims) -> AuthContext:
        """Build a context from verified claims.

        Any known ``accountStatus`` is accepted, SUSPENDED included. Which
        statuses may pass is decided by the gate, which answers the rest with
        ``InactiveAccount`` naming the status.

        Raises:
            InvalidPayload: If a required field is missing or the kind or
                status is not recognised.
        """
        if not has_payload_shape(claims):
            raise InvalidPayload()
        try:
            kind = PrincipalKind(claims["userType"])
            status = AccountStatus(claims["accountStatus"])
        except (ValueError, TypeError) as e:
            raise InvalidPayload() from e

        return cls(
            id=str(claims["id"]),
            email=str(claims["email"]),
            kind=kind,
            verified=claims.get("isEmailVerified") is True,
            status=status,
            claims=MappingProxyType(dict(claims)),
        )

    def with_status(self, status: AccountStatus) -> AuthContext:
        return AuthContext(self.id, self.email, self.kind, self.verified, status, self.claims)

    @property
    def is_admin(self) -> bool:
        return self.kind is PrincipalKind.ADMIN

    @property
    def permissions(self) -> Mapping[str, Any]:
        raw = self.claims.get("permissions")
        # Fail closed on anything but a mapping
        return raw if isinstance(raw, Mapping) else {}

    @property
    def approval_status(self) -> str | None:
        value = self.claims.get("approvalStatus")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "userType": self.kind.value,
            "isEmailVerified": self.verified,
            "accountStatus": self.status.value,
        }


def current_context() -> AuthContext | None:
    """Return the context attached to the current request, if any."""
    return g.get(_G_KEY)


def set_context(ctx: AuthContext | None) -> None:
    setattr(g, _G_KEY, ctx)
