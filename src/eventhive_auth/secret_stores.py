"""Storage for hashed one-time secrets (OTPs).

This module provides implementations of the SecretStore protocol:
- InMemorySecretStore: in-process dict guarded by a lock (dev/single-instance)
- RedisSecretStore: Redis-backed (multi-instance production)

Both store only the SHA-256 of a secret, honour an absolute expiry and
delete an entry the first time a matching candidate is presented.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

logger = logging.getLogger(__name__)

_KEY_PREFIX: Final[str] = "otp:"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class _SecretItem:
    """Internal entry.

    Attributes:
        secret_hash: SHA-256 hex digest of the secret.
        expires_at: Absolute, timezone-aware expiry.
        purpose: Optional tag; a consume with a different purpose never matches.
    """

    secret_hash: str
    expires_at: datetime
    purpose: str | None


class InMemorySecretStore:
    """In-process store for hashed one-time secrets.

    Thread Safety:
        ``put`` and ``consume`` run under one lock, so a secret can be
        consumed at most once even under concurrent requests.
    """

    def __init__(self) -> None:
        self._store: dict[str, _SecretItem] = {}
        self._lock = threading.Lock()

    def put(
        self,
        key: str,
        secret_hash: str,
        expires_at: datetime,
        purpose: str | None = None,
    ) -> None:
        with self._lock:
            self._store[key] = _SecretItem(secret_hash, expires_at, purpose)

    def consume(self, key: str, candidate_hash: str, purpose: str | None = None) -> bool:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return False

            if _now() >= item.expires_at:
                # Proven expired: drop it
                self._store.pop(key, None)
                return False

            if purpose is not None and item.purpose != purpose:
                return False

            if not secrets.compare_digest(item.secret_hash, candidate_hash):
                return False

            del self._store[key]
            return True

    def __len__(self) -> int:
        return len(self._store)


class RedisSecretStore:
    """Redis-backed store for hashed one-time secrets.

    Storage Format:
        ``otp:<key>`` -> ``{"hash": ..., "purpose": ...}`` with a Redis TTL
        equal to the remaining lifetime, so expired entries vanish on their own.

    A successful consume deletes the key and only the caller whose ``DELETE``
    removed it wins, which keeps consumption single-use across processes.

    Attributes:
        _client: Redis client instance (from redis package).
    """

    def __init__(self, redis_client: Any) -> None:
        """Initialize Redis store.

        Args:
            redis_client: Redis client instance. Must support get(), setex()
                and delete(). Typed Any so redis-compatible fakes work in tests.
        """
        self._client = redis_client

    def put(
        self,
        key: str,
        secret_hash: str,
        expires_at: datetime,
        purpose: str | None = None,
    ) -> None:
        ttl_seconds = int((expires_at - _now()).total_seconds())
        if ttl_seconds <= 0:
            return

        try:
            self._client.setex(
                _KEY_PREFIX + key,
                ttl_seconds,
                json.dumps({"hash": secret_hash, "purpose": purpose}),
            )
        except Exception as e:
            raise RuntimeError("Failed to store one-time secret in Redis") from e

    def consume(self, key: str, candidate_hash: str, purpose: str | None = None) -> bool:
        """Return True once for a matching secret.

        Raises:
            RuntimeError: If the stored entry cannot be deserialized.
        """
        data = self._client.get(_KEY_PREFIX + key)
        if data is None:
            return False

        try:
            obj = json.loads(data)
            stored_hash = obj["hash"]
            stored_purpose = obj.get("purpose")
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise RuntimeError("Failed to deserialize stored one-time secret") from e

        if purpose is not None and stored_purpose != purpose:
            return False

        if not secrets.compare_digest(stored_hash, candidate_hash):
            return False

        # Another process may have consumed it between GET and DELETE
        return bool(self._client.delete(_KEY_PREFIX + key))
