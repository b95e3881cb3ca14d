"""Signed access/refresh token issuance and verification using PyJWT.

Access and refresh tokens are HS256 JWTs signed with distinct secrets. Both
carry ``iss``, ``aud``, ``iat`` and ``exp``; verification checks all four and
maps every PyJWT failure onto ``InvalidToken`` with a ``TokenFailure`` reason.

The access payload is derived from a principal once, at issuance, and is not
updated when the principal changes afterwards. The refresh payload carries
only ``id`` and ``userType`` so that renewal re-derives the full claim set
from the live principal.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Final

import jwt

from .errors import InvalidToken, SigningMisconfigured, TokenFailure
from .principals import (
    AccountStatus,
    Administrator,
    Member,
    Organization,
    Principal,
    PrincipalKind,
)

if TYPE_CHECKING:
    from .config import AuthSettings
    from .protocols import Claims

logger = logging.getLogger(__name__)

TOKEN_TYPE: Final[str] = "Bearer"

REQUIRED_PAYLOAD_FIELDS: Final[tuple[str, ...]] = ("id", "email", "userType", "accountStatus")
"""Fields every access payload must carry to be accepted by the gate."""

_TOKEN_STATUSES: Final[frozenset[str]] = frozenset(
    {AccountStatus.ACTIVE.value, AccountStatus.PENDING_VERIFICATION.value}
)

_LIFETIME_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_UNIT_SECONDS: Final[dict[str, int]] = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def parse_lifetime(value: str | int) -> timedelta:
    """Parse ``"15m"``, ``"7d"``, ``"3600"`` or an int (seconds) into a timedelta.

    Raises:
        ValueError: If the value is not a positive duration.
    """
    if isinstance(value, int):
        seconds = value
    else:
        match = _LIFETIME_RE.match(value)
        if not match:
            raise ValueError(f"Unrecognised token lifetime: {value!r}")
        amount, unit = match.groups()
        seconds = int(amount) * _UNIT_SECONDS[unit.lower()]
    if seconds <= 0:
        raise ValueError(f"Token lifetime must be positive, got {value!r}")
    return timedelta(seconds=seconds)


@dataclass(frozen=True, slots=True)
class TokenOptions:
    """Signing and validation rules for one kind of token.

    Attributes:
        secret: HMAC secret used both to sign and to verify.
        lifetime: Lifetime string as configured (``"7d"``), echoed to clients.
        issuer: Expected and written ``iss`` claim.
        audience: Expected and written ``aud`` claim.
        algorithm: Signing algorithm. Verification accepts only this one.
        leeway: Clock skew tolerance in seconds for ``exp``/``iat``.
    """

    secret: str
    lifetime: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    leeway: int = 0

    @property
    def ttl(self) -> timedelta:
        return parse_lifetime(self.lifetime)


@dataclass(frozen=True, slots=True)
class TokenPair:
    """Result of a login or refresh."""

    access_token: str
    refresh_token: str
    expires_in: str
    token_type: str = TOKEN_TYPE

    def to_dict(self) -> dict[str, str]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
            "tokenType": self.token_type,
        }


def derive_payload(principal: Principal, kind: PrincipalKind | str | None = None) -> dict[str, Any]:
    """Map a principal onto its canonical access-token payload.

    Pure and deterministic. ``kind`` is optional; when given it must agree
    with the principal's own kind.

    Raises:
        ValueError: If ``kind`` does not match the principal.
    """
    if kind is not None and PrincipalKind.parse(str(kind)) is not principal.kind:
        raise ValueError(f"Principal of kind {principal.kind} cannot be issued as {kind}")

    payload: dict[str, Any] = {
        "id": principal.id,
        "email": principal.email,
        "userType": principal.kind.value,
        "isEmailVerified": principal.is_email_verified,
        "accountStatus": principal.account_status.value,
    }

    match principal:
        case Member():
            payload.update(
                firstName=principal.first_name,
                lastName=principal.last_name,
                studentId=principal.student_id,
                stream=principal.stream,
                year=principal.year,
            )
        case Administrator():
            payload.update(
                firstName=principal.first_name,
                lastName=principal.last_name,
                employeeId=principal.employee_id,
                role=principal.role.value,
                permissions=dict(principal.permissions),
            )
        case Organization():
            payload.update(
                name=principal.name,
                type=principal.type,
                category=principal.category,
                approvalStatus=principal.approval_status.value,
            )

    return payload


def has_payload_shape(claims: Claims) -> bool:
    """Return True if ``claims`` carries every required field and a known ``userType``."""
    if not all(name in claims for name in REQUIRED_PAYLOAD_FIELDS):
        return False
    kind = claims["userType"]
    return isinstance(kind, str) and kind in PrincipalKind.__members__


def validate_token_payload(claims: Claims) -> bool:
    """Return True if ``claims`` is a payload this codec would issue.

    On top of ``has_payload_shape``, requires an ``accountStatus`` that
    tokens may carry (ACTIVE or PENDING_VERIFICATION).
    """
    if not has_payload_shape(claims):
        return False
    status = claims["accountStatus"]
    return isinstance(status, str) and status in _TOKEN_STATUSES


def is_token_expiring_soon(
    claims: Claims, buffer_minutes: int = 15, *, now: float | None = None
) -> bool:
    """Return True if ``exp`` falls within ``buffer_minutes`` of ``now``."""
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    current = time.time() if now is None else now
    return exp - current <= buffer_minutes * 60


class TokenCodec:
    """Issues and verifies access and refresh tokens.

    Thread Safety:
        Stateless apart from immutable options; safe to share across threads.

    Example:
        ```python
        codec = TokenCodec.from_settings(AuthSettings.from_env())
        pair = codec.issue_token_pair(member)
        claims = codec.verify_access_token(pair.access_token)
        ```
    """

    def __init__(self, access: TokenOptions, refresh: TokenOptions) -> None:
        if access.secret == refresh.secret:
            raise SigningMisconfigured("access and refresh tokens must use distinct secrets")
        self._access = access
        self._refresh = refresh

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> TokenCodec:
        return cls(
            access=TokenOptions(
                secret=settings.access_secret,
                lifetime=settings.access_lifetime,
                issuer=settings.issuer,
                audience=settings.audience,
            ),
            refresh=TokenOptions(
                secret=settings.refresh_secret,
                lifetime=settings.refresh_lifetime,
                issuer=settings.issuer,
                audience=settings.audience,
            ),
        )

    @property
    def access_lifetime(self) -> str:
        return self._access.lifetime

    def issue_access_token(self, payload: Claims) -> str:
        return self._sign(payload, self._access)

    def issue_refresh_token(self, payload: Claims) -> str:
        """Sign a refresh token. Only ``id`` and ``userType`` are kept."""
        minimal = {"id": payload["id"], "userType": payload["userType"]}
        return self._sign(minimal, self._refresh)

    def verify_access_token(self, token: str) -> Claims:
        return self._verify(token, self._access, "access")

    def verify_refresh_token(self, token: str) -> Claims:
        return self._verify(token, self._refresh, "refresh")

    def issue_token_pair(
        self, principal: Principal, kind: PrincipalKind | str | None = None
    ) -> TokenPair:
        payload = derive_payload(principal, kind)
        return TokenPair(
            access_token=self.issue_access_token(payload),
            refresh_token=self.issue_refresh_token(payload),
            expires_in=self._access.lifetime,
        )

    def _sign(self, payload: Claims, opt: TokenOptions) -> str:
        now = int(time.time())
        claims = dict(payload)
        claims.update(
            iss=opt.issuer,
            aud=opt.audience,
            iat=now,
            exp=now + int(opt.ttl.total_seconds()),
        )
        try:
            return jwt.encode(claims, opt.secret, algorithm=opt.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError, NotImplementedError) as e:
            logger.error("Token signing failed: %s", e)
            raise SigningMisconfigured(f"Token signing failed: {e}") from e

    def _verify(self, token: str, opt: TokenOptions, label: str) -> Claims:
        try:
            return jwt.decode(
                token,
                opt.secret,
                algorithms=[opt.algorithm],
                audience=opt.audience,
                issuer=opt.issuer,
                leeway=opt.leeway,
                options={"require": ["exp", "iat", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError as e:
            failure = TokenFailure.EXPIRED
            error: Exception = e
        except jwt.InvalidSignatureError as e:
            failure = TokenFailure.BAD_SIGNATURE
            error = e
        except (
            jwt.InvalidIssuerError,
            jwt.InvalidAudienceError,
            jwt.MissingRequiredClaimError,
            jwt.ImmatureSignatureError,
            jwt.InvalidIssuedAtError,
        ) as e:
            failure = TokenFailure.CLAIMS_MISMATCH
            error = e
        except jwt.InvalidTokenError as e:
            failure = TokenFailure.MALFORMED
            error = e

        logger.warning("Rejected %s token (%s): %s", label, failure, error)
        raise InvalidToken(failure=failure) from error
