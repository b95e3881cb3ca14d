"""Account flows: login, refresh, email verification, password reset and OTPs.

``AccountService`` sits between the HTTP layer and a ``PrincipalStore``.
It owns no persistence itself: one-time tokens live (hashed) on the
principal, OTPs live (hashed) in a ``SecretStore``, and delivery is handed to
a ``Mailer``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from .errors import (
    AccountError,
    AccountStatusNotAllowed,
    AccountSuspended,
    DuplicateEmail,
    InvalidCredentials,
    InvalidPayload,
    InvalidSecret,
    PrincipalNotFound,
    WeakPassword,
)
from .one_time import (
    IssuedOtp,
    OtpPurpose,
    SecretKind,
    hash_secret,
    issue_one_time_secret,
    issue_otp,
)
from .passwords import (
    DEFAULT_ROUNDS,
    hash_password,
    set_password,
    validate_password_strength,
    verify_password,
)
from .principals import AccountStatus, Principal, PrincipalKind

if TYPE_CHECKING:
    from .context import AuthContext
    from .protocols import Mailer, PrincipalStore, SecretStore
    from .tokens import TokenCodec, TokenPair

logger = logging.getLogger(__name__)

_RESET_SEARCH_ORDER: Final[tuple[PrincipalKind, ...]] = (
    PrincipalKind.USER,
    PrincipalKind.ORGANIZATION,
    PrincipalKind.ADMIN,
)


def _now() -> datetime:
    return datetime.now(UTC)


def _parse_kind(value: PrincipalKind | str) -> PrincipalKind:
    try:
        return PrincipalKind.parse(str(value))
    except ValueError as e:
        raise AccountError("Invalid user type") from e


class LoggingMailer:
    """Mailer that records the delivery in the log instead of sending it.

    The body carries the plaintext secret and is never logged.
    """

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Mail to %s: %s", to, subject)


@dataclass(frozen=True, slots=True)
class LoginResult:
    principal: Principal
    tokens: TokenPair


class AccountService:
    """Credential and one-time-secret flows over a principal store.

    Example:
        ```python
        service = AccountService(store, codec, InMemorySecretStore())
        result = service.login("ada@example.edu", "S3cretPass", "USER")
        ```
    """

    def __init__(
        self,
        store: PrincipalStore,
        codec: TokenCodec,
        secrets: SecretStore,
        mailer: Mailer | None = None,
        *,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        client_url: str = "http://localhost:5173",
    ) -> None:
        self._store = store
        self._codec = codec
        self._secrets = secrets
        self._mailer: Mailer = mailer or LoggingMailer()
        self._rounds = bcrypt_rounds
        self._client_url = client_url.rstrip("/")
        # Compared against on unknown emails so both failure paths cost one bcrypt check
        self._dummy_hash = hash_password("dummy-password", bcrypt_rounds)

    # ------------------------------------------------------------------
    # Registration and credentials
    # ------------------------------------------------------------------

    def register(self, principal: Principal, password: str) -> str:
        """Persist a new principal with ``password`` and start email verification.

        Returns:
            The plaintext email-verification token (also mailed).

        Raises:
            WeakPassword: Password fails the strength rules.
            AccountError: The email is already registered for this kind.
        """
        ok, reason = validate_password_strength(password)
        if not ok:
            raise WeakPassword(reason)
        if self._store.find_by_email(principal.kind, principal.email) is not None:
            raise _already_registered(principal)

        set_password(principal, password, self._rounds)
        try:
            self._store.save(principal)
        except DuplicateEmail as e:
            # Registered concurrently between the lookup and the save
            raise _already_registered(principal) from e
        logger.info("Registered %s %s", principal.kind, principal.id)
        return self.start_email_verification(principal)

    def login(self, email: str, password: str, kind: PrincipalKind | str) -> LoginResult:
        """Check credentials and issue a token pair.

        Unknown email and wrong password fail identically.

        Raises:
            InvalidCredentials: 401.
            AccountSuspended: 403 for SUSPENDED accounts.
        """
        principal = self._store.find_by_email(_parse_kind(kind), email)
        if principal is None:
            verify_password(password, self._dummy_hash)
            raise InvalidCredentials()

        if not verify_password(password, principal.password_hash):
            raise InvalidCredentials()

        if principal.account_status is AccountStatus.SUSPENDED:
            raise AccountSuspended()

        principal.last_login_at = _now()
        principal.login_count += 1
        self._store.save(principal)

        logger.info("Login %s %s", principal.kind, principal.id)
        return LoginResult(principal=principal, tokens=self._codec.issue_token_pair(principal))

    def refresh(self, refresh_token: str) -> TokenPair:
        """Issue a fresh pair from a refresh token, re-deriving claims from the store.

        Raises:
            InvalidToken: Refresh token failed verification.
            InvalidPayload: Token carries no usable ``id``/``userType``.
            PrincipalNotFound: The principal no longer exists.
            AccountStatusNotAllowed: The principal is not ACTIVE.
        """
        claims = self._codec.verify_refresh_token(refresh_token)
        try:
            kind = PrincipalKind(claims["userType"])
            principal_id = str(claims["id"])
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidPayload("Invalid user type in token") from e

        principal = self._store.get(kind, principal_id)
        if principal is None:
            raise PrincipalNotFound()
        if principal.account_status is not AccountStatus.ACTIVE:
            raise AccountStatusNotAllowed(
                "Account is not active", accountStatus=principal.account_status.value
            )

        logger.info("Refreshed tokens for %s %s", kind, principal_id)
        return self._codec.issue_token_pair(principal)

    def profile(self, ctx: AuthContext) -> Principal:
        principal = self._store.get(ctx.kind, ctx.id)
        if principal is None:
            raise PrincipalNotFound()
        return principal

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def start_email_verification(self, principal: Principal) -> str:
        issued = issue_one_time_secret(SecretKind.EMAIL_VERIFICATION)
        principal.email_verification_token_hash = issued.hashed
        principal.email_verification_expires = issued.expires_at
        self._store.save(principal)

        link = (
            f"{self._client_url}/verify-email?token={issued.plaintext}"
            f"&type={principal.kind.value.lower()}"
        )
        self._mailer.send(
            principal.email,
            "Verify your email address",
            f"Hello {principal.display_name}, confirm your email: {link}",
        )
        return issued.plaintext

    def verify_email(self, token: str, kind: PrincipalKind | str = PrincipalKind.USER) -> Principal:
        """Mark the owner of ``token`` verified and activate a pending account.

        Raises:
            InvalidSecret: Unknown, used or expired token.
        """
        principal = self._store.find_by_verification_hash(_parse_kind(kind), hash_secret(token))
        if principal is None:
            raise InvalidSecret("Invalid or expired verification token")

        expires = principal.email_verification_expires
        principal.email_verification_token_hash = None
        principal.email_verification_expires = None
        if expires is None or expires <= _now():
            self._store.save(principal)
            raise InvalidSecret("Invalid or expired verification token")

        principal.is_email_verified = True
        if principal.account_status is AccountStatus.PENDING_VERIFICATION:
            principal.account_status = AccountStatus.ACTIVE
        self._store.save(principal)

        logger.info("Verified email for %s %s", principal.kind, principal.id)
        return principal

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(
        self, email: str, kind: PrincipalKind | str | None = None
    ) -> str | None:
        """Issue a reset token for ``email``.

        With no ``kind`` every kind is searched. An unknown email is not an
        error, so callers cannot learn which addresses are registered.

        Returns:
            The plaintext token (also mailed), or None if no account matched.
        """
        kinds = _RESET_SEARCH_ORDER if kind is None else (_parse_kind(kind),)
        principal = None
        for candidate in kinds:
            principal = self._store.find_by_email(candidate, email)
            if principal is not None:
                break

        if principal is None:
            logger.info("Password reset requested for unknown email")
            return None

        issued = issue_one_time_secret(SecretKind.PASSWORD_RESET)
        principal.password_reset_token_hash = issued.hashed
        principal.password_reset_expires = issued.expires_at
        self._store.save(principal)

        link = f"{self._client_url}/reset-password?token={issued.plaintext}"
        self._mailer.send(
            principal.email,
            "Reset your password",
            f"Hello {principal.display_name}, reset your password: {link}",
        )
        logger.info("Password reset issued for %s %s", principal.kind, principal.id)
        return issued.plaintext

    def reset_password(
        self, token: str, new_password: str, kind: PrincipalKind | str = PrincipalKind.USER
    ) -> Principal:
        """Set a new password using a reset token. The token works once.

        Raises:
            WeakPassword: New password fails the strength rules.
            InvalidSecret: Unknown, used or expired token.
        """
        ok, reason = validate_password_strength(new_password)
        if not ok:
            raise WeakPassword(reason)

        principal = self._store.find_by_reset_hash(_parse_kind(kind), hash_secret(token))
        if principal is None:
            raise InvalidSecret("Invalid or expired reset token")

        expires = principal.password_reset_expires
        principal.password_reset_token_hash = None
        principal.password_reset_expires = None
        if expires is None or expires <= _now():
            self._store.save(principal)
            raise InvalidSecret("Invalid or expired reset token")

        set_password(principal, new_password, self._rounds)
        self._store.save(principal)

        logger.info("Password reset for %s %s", principal.kind, principal.id)
        return principal

    # ------------------------------------------------------------------
    # OTP
    # ------------------------------------------------------------------

    def send_otp(
        self, email: str, purpose: OtpPurpose | str = OtpPurpose.VERIFICATION
    ) -> IssuedOtp:
        """Issue an OTP for ``email``, replacing any pending one."""
        purpose = OtpPurpose(purpose)
        issued = issue_otp()

        self._secrets.put(_otp_key(email), issued.hashed, issued.expires_at, purpose.value)
        self._mailer.send(email, "Your verification code", f"Your code is {issued.otp}")
        return issued

    def verify_otp(self, email: str, otp: str, purpose: OtpPurpose | str | None = None) -> None:
        """Consume the pending OTP for ``email``.

        Raises:
            InvalidSecret: No pending OTP, wrong code, or expired.
        """
        tag = OtpPurpose(purpose).value if purpose is not None else None
        if not self._secrets.consume(_otp_key(email), hash_secret(otp), tag):
            raise InvalidSecret("Invalid or expired OTP")


def _already_registered(principal: Principal) -> AccountError:
    return AccountError(f"{principal.kind.value.title()} with this email already exists")


def _otp_key(email: str) -> str:
    return email.strip().lower()
