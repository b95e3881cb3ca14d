"""Brute-force protection for login-style endpoints.

Attempts are counted per ``(scope, client address, submitted email)`` inside
a window that starts at the first attempt. The scope keeps each protected
endpoint on its own counter. Once ``max_attempts`` have been counted, further
attempts are rejected until the window has elapsed, after which the count
starts over. Every attempt counts, whether or not the credentials it carried
were correct, so attach the limiter only where that is the desired behaviour
(login, OTP send, password-reset request).

Stores:
- InMemoryAttemptStore: dict guarded by a lock (single process)
- RedisAttemptStore: atomic INCR + PEXPIRE per key (shared across processes)
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from .errors import RateLimitExceeded

if TYPE_CHECKING:
    from .protocols import AttemptStore

logger = logging.getLogger(__name__)

_DEFAULT_MAX_ATTEMPTS: Final[int] = 5
"""Default attempts allowed per window."""

_DEFAULT_WINDOW_MS: Final[int] = 15 * 60 * 1000
"""Default window length (15 minutes)."""

_KEY_PREFIX: Final[str] = "auth-attempts:"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(slots=True)
class _Attempts:
    count: int
    first_attempt_ms: float
    window_ms: int


class InMemoryAttemptStore:
    """Thread-safe in-process attempt counter.

    Expired entries are purged lazily on every ``hit``, each against the
    window it was recorded with. Purge and increment happen under the same
    lock, so concurrent requests cannot undercount.

    Attributes:
        _entries: key -> attempts recorded in the current window.
        _lock: Thread synchronization lock.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Attempts] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, *, limit: int, window_ms: int) -> tuple[bool, float]:
        now = _now_ms()

        with self._lock:
            expired = [
                k for k, v in self._entries.items() if now - v.first_attempt_ms > v.window_ms
            ]
            for k in expired:
                del self._entries[k]

            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = _Attempts(count=1, first_attempt_ms=now, window_ms=window_ms)
                return True, 0.0

            if entry.count >= limit:
                remaining_ms = entry.window_ms - (now - entry.first_attempt_ms)
                return False, max(remaining_ms, 0.0) / 1000

            entry.count += 1
            return True, 0.0

    def __len__(self) -> int:
        return len(self._entries)


class RedisAttemptStore:
    """Redis-backed attempt counter shared by every worker process.

    ``INCR`` is atomic, and the first increment of a window sets the key's
    expiry to the window length, so the key disappears when the window ends.

    Attributes:
        _client: Redis client instance. Must support incr(), pexpire() and pttl().
    """

    def __init__(self, redis_client: Any) -> None:
        self._client = redis_client

    def hit(self, key: str, *, limit: int, window_ms: int) -> tuple[bool, float]:
        redis_key = _KEY_PREFIX + key
        count = int(self._client.incr(redis_key))
        if count == 1:
            self._client.pexpire(redis_key, window_ms)

        if count <= limit:
            return True, 0.0

        ttl_ms = int(self._client.pttl(redis_key))
        if ttl_ms < 0:
            # Key lost its expiry (crash between INCR and PEXPIRE)
            self._client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        return False, ttl_ms / 1000


class AuthRateLimiter:
    """Applies a max-attempts-per-window policy on top of an AttemptStore.

    Example:
        ```python
        limiter = AuthRateLimiter(InMemoryAttemptStore(), max_attempts=5, scope="auth.login")
        limiter.check("203.0.113.7", "ada@example.edu")  # raises RateLimitExceeded on the 6th
        ```
    """

    def __init__(
        self,
        store: AttemptStore,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        window_ms: int = _DEFAULT_WINDOW_MS,
        *,
        scope: str = "default",
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")

        self._store = store
        self._max_attempts = max_attempts
        self._window_ms = window_ms
        self._scope = scope

    def key_for(self, address: str | None, email: str | None) -> str:
        return f"{self._scope}|{address or 'unknown'}|{(email or '').strip().lower()}"

    def check(self, address: str | None, email: str | None) -> None:
        """Count one attempt for ``(address, email)``.

        Raises:
            RateLimitExceeded: If the attempt budget for the window is spent.
                ``retryAfter`` in the body is the wait in whole minutes.
        """
        allowed, retry_after = self._store.hit(
            self.key_for(address, email),
            limit=self._max_attempts,
            window_ms=self._window_ms,
        )
        if allowed:
            return

        minutes = max(math.ceil(retry_after / 60), 1)
        logger.warning(
            "Rate limit hit on %s for address=%s (%d attempts / %d ms)",
            self._scope,
            address,
            self._max_attempts,
            self._window_ms,
        )
        raise RateLimitExceeded(
            f"Too many authentication attempts. Try again in {minutes} minutes.",
            retryAfter=minutes,
        )
