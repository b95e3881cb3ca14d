"""Authentication, authorization and account-flow errors.

Every failure the gate or a policy can produce is an ``AuthError`` carrying
the HTTP status to answer with, a client-facing message, a stable reason
``code`` and any extra body fields. The Flask extension renders them as::

    {"success": false, "message": "...", "code": "...", ...extra}

Security Note:
    Client messages are intentionally generic. Token failures keep the precise
    reason on ``InvalidToken.failure`` for server-side logging only.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class AuthError(Exception):
    """Base exception for all authentication and authorization failures.

    Attributes:
        status_code: HTTP status the request boundary should answer with.
        message: Human readable reason returned to the client.
        code: Stable machine-readable reason code.
        extra: Additional JSON body fields (e.g. required vs. actual kind).
    """

    status_code: int = 401
    code: str = "AUTHENTICATION_FAILED"
    default_message: str = "Authentication failed"

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra: dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body for this rejection."""
        body: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        body.update(self.extra)
        return body


class TokenFailure(StrEnum):
    """Why a token failed verification. Logged, never sent to clients."""

    EXPIRED = "expired"
    BAD_SIGNATURE = "bad_signature"
    MALFORMED = "malformed"
    CLAIMS_MISMATCH = "claims_mismatch"


# ============================================================================
# 401 - authentication
# ============================================================================


class MissingToken(AuthError):  # noqa: N818
    """Raised when no ``Authorization: Bearer <token>`` header is present."""

    code = "TOKEN_REQUIRED"
    default_message = "Access token is required"


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but cannot be verified.

    Signature, expiry, issuer, audience and structural failures all surface to
    the client as the same message. The specific reason is kept on
    ``failure`` so operators can tell them apart in logs.
    """

    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"

    def __init__(
        self,
        message: str | None = None,
        *,
        failure: TokenFailure = TokenFailure.MALFORMED,
        **extra: Any,
    ) -> None:
        self.failure = failure
        super().__init__(message, **extra)


class InvalidPayload(AuthError):  # noqa: N818
    """Raised when a verified token lacks required fields or has an unknown kind."""

    code = "INVALID_PAYLOAD"
    default_message = "Invalid token payload"


class InactiveAccount(AuthError):  # noqa: N818
    """Raised when the principal's status is not ACTIVE.

    The actual status is disclosed in the body (``accountStatus``).
    """

    code = "ACCOUNT_INACTIVE"
    default_message = "Account is not active"


class AuthenticationRequired(AuthError):  # noqa: N818
    """Raised by a policy when no authorization context is attached."""

    code = "AUTHENTICATION_REQUIRED"
    default_message = "Authentication required"


class InvalidApiKey(AuthError):  # noqa: N818
    """Raised when the ``X-API-Key`` header is missing or wrong."""

    code = "INVALID_API_KEY"
    default_message = "Invalid API key"


# ============================================================================
# 403 - authorization
# ============================================================================


class Forbidden(AuthError):  # noqa: N818
    """Base for failures where authentication succeeded but access is denied."""

    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class InsufficientRole(Forbidden):
    code = "INSUFFICIENT_ROLE"
    default_message = "Insufficient permissions"


class InsufficientPermission(Forbidden):
    code = "INSUFFICIENT_PERMISSION"
    default_message = "Admin access required"


class EmailNotVerified(Forbidden):
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Email verification required"


class OrganizationNotApproved(Forbidden):
    code = "ORGANIZATION_NOT_APPROVED"
    default_message = "Organization approval required"


class OwnershipViolation(Forbidden):
    code = "OWNERSHIP_VIOLATION"
    default_message = "Access denied. You can only access your own resources."


class AccountStatusNotAllowed(Forbidden):
    code = "ACCOUNT_STATUS_NOT_ALLOWED"
    default_message = "Account status does not allow this action"


# ============================================================================
# 429 - throttling
# ============================================================================


class RateLimitExceeded(AuthError):  # noqa: N818
    """Raised when a (client address, email) pair exhausts its attempt budget."""

    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many authentication attempts"


# ============================================================================
# Account flows
# ============================================================================


class AccountError(AuthError):
    """Base for failures raised by the login/reset/verification flows."""

    status_code = 400
    code = "ACCOUNT_ERROR"
    default_message = "Request could not be completed"


class InvalidCredentials(AccountError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class AccountSuspended(AccountError):
    status_code = 403
    code = "ACCOUNT_SUSPENDED"
    default_message = "Account has been suspended"


class InvalidSecret(AccountError):
    """Raised when a one-time secret is unknown, already used or expired."""

    code = "INVALID_OR_EXPIRED"
    default_message = "Invalid or expired token"


class PrincipalNotFound(AccountError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "User not found"


class WeakPassword(AccountError):
    code = "WEAK_PASSWORD"
    default_message = "Password does not meet complexity requirements"


# ============================================================================
# Store
# ============================================================================


class DuplicateEmail(ValueError):  # noqa: N818
    """Raised by a ``PrincipalStore`` asked to save a second principal of one
    kind under an email that kind already holds.
    """


# ============================================================================
# Fatal
# ============================================================================


class CorruptedCredential(Exception):  # noqa: N818
    """Raised when a stored password hash cannot be parsed.

    This is not an ``AuthError``: it means the principal store holds data that
    violates its own invariants. It is logged at CRITICAL and propagates to
    the request boundary as a 500.
    """


class SigningMisconfigured(RuntimeError):
    """Raised when a token cannot be signed (bad secret or algorithm).

    Fatal and not retryable: it indicates deployment misconfiguration.
    """
