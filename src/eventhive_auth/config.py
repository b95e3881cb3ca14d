"""Environment-driven settings for the authentication core.

Values are read from the process environment after loading a ``.env`` file
(if present). Secrets have development placeholders so the app boots locally,
but using them logs a warning.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEV_ACCESS_SECRET: Final[str] = "your-super-secret-jwt-key-change-in-production"
DEV_REFRESH_SECRET: Final[str] = "your-refresh-secret-key"

_MIN_BCRYPT_ROUNDS: Final[int] = 4


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    val = env.get(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    val = env.get(name)
    if val is None or not val.strip():
        return default
    try:
        return int(val)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {val!r}") from e


@dataclass(frozen=True, slots=True)
class AuthSettings:
    """Configuration for token signing, rate limiting and hashing.

    Attributes:
        access_secret: HMAC secret for access tokens.
        access_lifetime: Access token lifetime, e.g. ``"7d"`` or ``"15m"``.
        refresh_secret: HMAC secret for refresh tokens. Must differ from
            ``access_secret`` so one can never be replayed as the other.
        refresh_lifetime: Refresh token lifetime.
        issuer: ``iss`` claim written and required on every token.
        audience: ``aud`` claim written and required on every token.
        rate_limit_max: Default attempts allowed per window.
        rate_limit_window_ms: Default window length in milliseconds.
        bcrypt_rounds: bcrypt cost factor. Production uses 12.
        revalidate_status: When True, ``authenticate`` reloads the principal
            and checks its live status instead of the token snapshot.
        api_key: Shared key for service-to-service calls. None disables it.
        redis_url: Backing store for attempts/OTPs. None keeps them in memory.
        cors_origins: Allowed CORS origins.
        client_url: Front-end base URL used in emailed links.
    """

    access_secret: str = DEV_ACCESS_SECRET
    access_lifetime: str = "7d"
    refresh_secret: str = DEV_REFRESH_SECRET
    refresh_lifetime: str = "30d"
    issuer: str = "eventhive"
    audience: str = "eventhive-users"
    rate_limit_max: int = 5
    rate_limit_window_ms: int = 15 * 60 * 1000
    bcrypt_rounds: int = 12
    revalidate_status: bool = False
    api_key: str | None = None
    redis_url: str | None = None
    cors_origins: tuple[str, ...] = field(default=("http://localhost:5173",))
    client_url: str = "http://localhost:5173"

    def __post_init__(self) -> None:
        if self.access_secret == self.refresh_secret:
            raise ValueError("access and refresh signing secrets must differ")
        if self.bcrypt_rounds < _MIN_BCRYPT_ROUNDS:
            raise ValueError(f"bcrypt_rounds must be at least {_MIN_BCRYPT_ROUNDS}")
        if self.rate_limit_max < 1:
            raise ValueError("rate_limit_max must be at least 1")
        if self.rate_limit_window_ms <= 0:
            raise ValueError("rate_limit_window_ms must be positive")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> AuthSettings:
        """Build settings from ``env`` (defaults to ``os.environ`` after ``.env``)."""
        if env is None:
            load_dotenv()
            env = os.environ

        origins = env.get("CORS_ORIGINS", "")
        settings = cls(
            access_secret=env.get("JWT_SECRET") or DEV_ACCESS_SECRET,
            access_lifetime=env.get("JWT_EXPIRE") or "7d",
            refresh_secret=env.get("JWT_REFRESH_SECRET") or DEV_REFRESH_SECRET,
            refresh_lifetime=env.get("JWT_REFRESH_EXPIRE") or "30d",
            issuer=env.get("JWT_ISSUER") or "eventhive",
            audience=env.get("JWT_AUDIENCE") or "eventhive-users",
            rate_limit_max=_env_int(env, "AUTH_RATE_LIMIT_MAX", 5),
            rate_limit_window_ms=_env_int(env, "AUTH_RATE_LIMIT_WINDOW_MS", 15 * 60 * 1000),
            bcrypt_rounds=_env_int(env, "BCRYPT_ROUNDS", 12),
            revalidate_status=_env_bool(env, "AUTH_REVALIDATE_STATUS"),
            api_key=env.get("API_KEY") or None,
            redis_url=env.get("REDIS_URL") or None,
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip())
            or ("http://localhost:5173",),
            client_url=env.get("CLIENT_URL") or "http://localhost:5173",
        )
        settings.warn_if_insecure()
        return settings

    def warn_if_insecure(self) -> None:
        """Log a warning for every development placeholder still in use."""
        if self.access_secret == DEV_ACCESS_SECRET:
            logger.warning("JWT_SECRET not set; using the development placeholder")
        if self.refresh_secret == DEV_REFRESH_SECRET:
            logger.warning("JWT_REFRESH_SECRET not set; using the development placeholder")
        if self.bcrypt_rounds < 12:
            logger.warning("bcrypt cost factor %d is below 12", self.bcrypt_rounds)
