from collections.abc import Callable
from typing import Any

import pytest

import eventhive_auth as m
from eventhive_auth import rate_limit

WINDOW_MS = 15 * 60 * 1000


@pytest.fixture()
def clock(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    now = [1_000_000.0]
    monkeypatch.setattr(rate_limit.time, "time", lambda: now[0])
    return now


def test_allows_max_attempts_then_rejects(clock: list[float]):
    limiter = m.AuthRateLimiter(m.InMemoryAttemptStore(), max_attempts=5, window_ms=WINDOW_MS)

    for _ in range(5):
        limiter.check("203.0.113.7", "ada@example.edu")

    with pytest.raises(m.RateLimitExceeded) as exc:
        limiter.check("203.0.113.7", "ada@example.edu")

    assert exc.value.status_code == 429
    assert exc.value.extra["retryAfter"] == 15
    assert "15 minutes" in exc.value.message


def test_window_resets(clock: list[float]):
    limiter = m.AuthRateLimiter(m.InMemoryAttemptStore(), max_attempts=5, window_ms=WINDOW_MS)

    for _ in range(5):
        limiter.check("203.0.113.7", "ada@example.edu")

    clock[0] += 10 * 60
    with pytest.raises(m.RateLimitExceeded) as exc:
        limiter.check("203.0.113.7", "ada@example.edu")
    assert exc.value.extra["retryAfter"] == 5

    clock[0] += 5 * 60 + 0.001
    limiter.check("203.0.113.7", "ada@example.edu")


def test_keys_are_per_address_and_email(clock: list[float]):
    limiter = m.AuthRateLimiter(m.InMemoryAttemptStore(), max_attempts=1, window_ms=WINDOW_MS)

    limiter.check("203.0.113.7", "ada@example.edu")
    limiter.check("203.0.113.8", "ada@example.edu")
    limiter.check("203.0.113.7", "grace@example.edu")

    with pytest.raises(m.RateLimitExceeded):
        limiter.check("203.0.113.7", "ADA@example.edu ")


def test_expired_entries_are_purged(clock: list[float]):
    store = m.InMemoryAttemptStore()
    store.hit("a", limit=5, window_ms=1000)
    store.hit("b", limit=5, window_ms=1000)
    assert len(store) == 2

    clock[0] += 2
    store.hit("c", limit=5, window_ms=1000)
    assert len(store) == 1


def test_retry_after_rounds_up_to_a_minute(clock: list[float]):
    limiter = m.AuthRateLimiter(m.InMemoryAttemptStore(), max_attempts=1, window_ms=30_000)

    limiter.check("203.0.113.7", None)
    with pytest.raises(m.RateLimitExceeded) as exc:
        limiter.check("203.0.113.7", None)
    assert exc.value.extra["retryAfter"] == 1


def test_invalid_configuration():
    with pytest.raises(ValueError):
        m.AuthRateLimiter(m.InMemoryAttemptStore(), max_attempts=0)
    with pytest.raises(ValueError):
        m.AuthRateLimiter(m.InMemoryAttemptStore(), window_ms=0)


def test_redis_store_counts_atomically(clock: list[float], fake_redis: Callable[..., Any]):
    limiter = m.AuthRateLimiter(
        m.RedisAttemptStore(fake_redis),  # type: ignore
        max_attempts=3,
        window_ms=WINDOW_MS,
    )

    for _ in range(3):
        limiter.check("203.0.113.7", "ada@example.edu")

    with pytest.raises(m.RateLimitExceeded) as exc:
        limiter.check("203.0.113.7", "ada@example.edu")
    assert exc.value.extra["retryAfter"] == 15

    clock[0] += WINDOW_MS / 1000 + 1
    limiter.check("203.0.113.7", "ada@example.edu")


def test_redis_store_repairs_missing_expiry(clock: list[float], fake_redis: Callable[..., Any]):
    store = m.RedisAttemptStore(fake_redis)  # type: ignore
    fake_redis.incr("auth-attempts:k")  # type: ignore
    fake_redis.incr("auth-attempts:k")  # type: ignore

    allowed, retry_after = store.hit("k", limit=2, window_ms=WINDOW_MS)

    assert allowed is False
    assert retry_after == WINDOW_MS / 1000
    assert fake_redis.pttl("auth-attempts:k") > 0  # type: ignore


def test_entries_expire_by_their_own_window(clock: list[float]):
    store = m.InMemoryAttemptStore()
    store.hit("login", limit=1, window_ms=WINDOW_MS)
    store.hit("login", limit=1, window_ms=WINDOW_MS)

    clock[0] += 6 * 60
    store.hit("otp", limit=3, window_ms=5 * 60 * 1000)

    allowed, retry_after = store.hit("login", limit=1, window_ms=WINDOW_MS)
    assert allowed is False
    assert retry_after == 9 * 60


def test_scope_is_part_of_the_key(clock: list[float]):
    store = m.InMemoryAttemptStore()
    login = m.AuthRateLimiter(store, max_attempts=1, scope="auth.login")
    otp = m.AuthRateLimiter(store, max_attempts=1, scope="auth.send_otp")

    login.check("203.0.113.7", "ada@example.edu")
    otp.check("203.0.113.7", "ada@example.edu")

    key = login.key_for("203.0.113.7", "Ada@example.edu")
    assert key == "auth.login|203.0.113.7|ada@example.edu"
    with pytest.raises(m.RateLimitExceeded):
        login.check("203.0.113.7", "ada@example.edu")
