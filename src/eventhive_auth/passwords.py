"""Password hashing, verification and strength validation.

Handles:
- Password hashing (bcrypt, cost factor 12 by default)
- Password verification
- Rehashing a principal's stored secret only when it changed
- Password strength validation
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Final

import bcrypt

from .errors import CorruptedCredential

if TYPE_CHECKING:
    from .principals import Principal

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS: Final[int] = 12
PASSWORD_MIN_LENGTH: Final[int] = 8

_BCRYPT_MAX_BYTES: Final[int] = 72


def _encode(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes; newer releases reject longer input
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        Bcrypt hash of the password
    """
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash.

    Never raises on a mismatch, only when ``password_hash`` is not a bcrypt
    hash at all, which means the stored credential is corrupt.

    Args:
        password: Plain text password
        password_hash: Bcrypt hash to check against

    Returns:
        True if password matches, False otherwise

    Raises:
        CorruptedCredential: If the stored hash is malformed.
    """
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        logger.critical("Stored password hash is malformed; principal store is corrupted")
        raise CorruptedCredential("Stored password hash is malformed") from e


def set_password(principal: Principal, password: str, rounds: int = DEFAULT_ROUNDS) -> bool:
    """Store ``password`` on ``principal`` as a bcrypt hash.

    The stored hash is only replaced when the password actually changed.

    Returns:
        True if the stored hash was replaced.
    """
    if principal.password_hash and verify_password(password, principal.password_hash):
        return False
    principal.password_hash = hash_password(password, rounds)
    return True


def validate_password_strength(password: str) -> tuple[bool, str]:
    """Validate password meets complexity requirements.

    At least eight characters with an uppercase letter, a lowercase letter
    and a digit.

    Returns:
        (is_valid, error_message) tuple
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"

    if not re.search(r"[a-z]", password):
        return False, "Password must contain at least one lowercase letter"

    if not re.search(r"[A-Z]", password):
        return False, "Password must contain at least one uppercase letter"

    if not re.search(r"\d", password):
        return False, "Password must contain at least one number"

    return True, ""
