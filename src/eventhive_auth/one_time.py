"""One-time secrets: OTPs, email-verification tokens and password-reset tokens.

The plaintext is returned to the caller exactly once, for delivery to the
user. Only ``hash_secret(plaintext)`` may be persisted; a later candidate is
proven by hashing it and comparing against the stored hash.
"""

from __future__ import annotations

import hashlib
import secrets
import string
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Final, Literal, overload


class SecretKind(StrEnum):
    OTP = "OTP"
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"


class OtpPurpose(StrEnum):
    VERIFICATION = "verification"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


DEFAULT_EXPIRY_MINUTES: Final[dict[SecretKind, int]] = {
    SecretKind.OTP: 10,
    SecretKind.EMAIL_VERIFICATION: 24 * 60,
    SecretKind.PASSWORD_RESET: 10,
}


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """An email-verification or password-reset token.

    ``plaintext`` goes to the user; ``hashed`` goes to storage.
    """

    plaintext: str
    hashed: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class IssuedOtp:
    otp: str
    expires_at: datetime

    @property
    def hashed(self) -> str:
        return hash_secret(self.otp)


def generate_otp(length: int = 6) -> str:
    """Return ``length`` uniformly random decimal digits."""
    if length < 1:
        raise ValueError("OTP length must be at least 1")
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_secure_token(byte_length: int = 32) -> str:
    """Return ``byte_length`` cryptographically strong random bytes, hex-encoded."""
    return secrets.token_hex(byte_length)


def hash_secret(value: str) -> str:
    """SHA-256 hex digest of ``value``. Deterministic and unsalted, for lookup."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def secrets_match(candidate: str, stored_hash: str) -> bool:
    """Constant-time comparison of ``hash_secret(candidate)`` with a stored hash."""
    return secrets.compare_digest(hash_secret(candidate), stored_hash)


def _expiry(kind: SecretKind, expiry_minutes: int | None, now: datetime | None) -> datetime:
    minutes = DEFAULT_EXPIRY_MINUTES[kind] if expiry_minutes is None else expiry_minutes
    if minutes <= 0:
        raise ValueError("expiry_minutes must be positive")
    return (now or datetime.now(UTC)) + timedelta(minutes=minutes)


def issue_otp(expiry_minutes: int | None = None, *, now: datetime | None = None) -> IssuedOtp:
    """Create an OTP expiring ``expiry_minutes`` from now (default 10)."""
    return IssuedOtp(otp=generate_otp(), expires_at=_expiry(SecretKind.OTP, expiry_minutes, now))


@overload
def issue_one_time_secret(
    kind: Literal[SecretKind.OTP], expiry_minutes: int | None = ..., *, now: datetime | None = ...
) -> IssuedOtp: ...


@overload
def issue_one_time_secret(
    kind: Literal[SecretKind.EMAIL_VERIFICATION, SecretKind.PASSWORD_RESET],
    expiry_minutes: int | None = ...,
    *,
    now: datetime | None = ...,
) -> IssuedToken: ...


@overload
def issue_one_time_secret(
    kind: SecretKind | str, expiry_minutes: int | None = ..., *, now: datetime | None = ...
) -> IssuedToken | IssuedOtp: ...


def issue_one_time_secret(
    kind: SecretKind | str,
    expiry_minutes: int | None = None,
    *,
    now: datetime | None = None,
) -> IssuedToken | IssuedOtp:
    """Create a one-time secret of ``kind`` expiring ``expiry_minutes`` from now.

    Returns an ``IssuedOtp`` for ``OTP`` and an ``IssuedToken`` for
    ``EMAIL_VERIFICATION`` and ``PASSWORD_RESET``.
    """
    kind = SecretKind(kind)
    if kind is SecretKind.OTP:
        return issue_otp(expiry_minutes, now=now)

    token = generate_secure_token()
    return IssuedToken(
        plaintext=token,
        hashed=hash_secret(token),
        expires_at=_expiry(kind, expiry_minutes, now),
    )
