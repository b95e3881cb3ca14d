import time

import pytest
from flask import Flask

import eventhive_auth as m

PASSWORD = "Str0ngPassw0rd"


@pytest.fixture()
def password() -> str:
    return PASSWORD


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def settings() -> m.AuthSettings:
    return m.AuthSettings(
        access_secret="test-access-secret-with-enough-entropy",
        refresh_secret="test-refresh-secret-with-enough-entropy",
        access_lifetime="15m",
        refresh_lifetime="7d",
        bcrypt_rounds=4,
    )


@pytest.fixture()
def codec(settings: m.AuthSettings) -> m.TokenCodec:
    return m.TokenCodec.from_settings(settings)


@pytest.fixture()
def member() -> m.Member:
    return m.Member(
        email="ada@example.edu",
        first_name="Ada",
        last_name="Lovelace",
        student_id="S-1815",
        stream="Computing",
        year=2,
        account_status=m.AccountStatus.ACTIVE,
        is_email_verified=True,
    )


@pytest.fixture()
def organization() -> m.Organization:
    return m.Organization(
        email="club@example.edu",
        name="Robotics Club",
        type="CLUB",
        category="Technology",
        account_status=m.AccountStatus.ACTIVE,
        is_email_verified=True,
        approval_status=m.ApprovalStatus.APPROVED,
    )


@pytest.fixture()
def admin() -> m.Administrator:
    return m.Administrator(
        email="root@example.edu",
        first_name="Grace",
        last_name="Hopper",
        employee_id="E-1",
        role=m.AdminRole.SUPER_ADMIN,
        is_email_verified=True,
    )


@pytest.fixture()
def store() -> m.InMemoryPrincipalStore:
    return m.InMemoryPrincipalStore()


class RecordingMailer:
    """Mailer stub that keeps every message instead of sending it."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))

    @property
    def last_body(self) -> str:
        return self.sent[-1][2]


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def accounts(
    store: m.InMemoryPrincipalStore, codec: m.TokenCodec, mailer: RecordingMailer
) -> m.AccountService:
    return m.AccountService(
        store,
        codec,
        m.InMemorySecretStore(),
        mailer,
        bcrypt_rounds=4,
        client_url="https://app.example.edu",
    )


class FakeRedis:
    """
    Minimal redis stub for the Redis-backed stores.
    Supports get/setex/delete for secrets and incr/pexpire/pttl for attempts.
    Expiry is tracked in milliseconds against time.time().
    """

    def __init__(self):
        self._store: dict[str, tuple[bytes, float | None]] = {}

    def _now_ms(self) -> float:
        return time.time() * 1000

    def _live(self, key: str):
        item = self._store.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and self._now_ms() >= expires_at:
            self._store.pop(key, None)
            return None
        return item

    def get(self, key: str):
        item = self._live(key)
        return None if item is None else item[0]

    def setex(self, key: str, ttl_seconds: int, value: str | bytes):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._store[key] = (value, self._now_ms() + int(ttl_seconds) * 1000)

    def delete(self, key: str) -> int:
        return 0 if self._store.pop(key, None) is None else 1

    def incr(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            count, expires_at = 1, None
        else:
            count, expires_at = int(item[0]) + 1, item[1]
        self._store[key] = (str(count).encode(), expires_at)
        return count

    def pexpire(self, key: str, ms: int) -> bool:
        item = self._live(key)
        if item is None:
            return False
        self._store[key] = (item[0], self._now_ms() + ms)
        return True

    def pttl(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            return -2
        if item[1] is None:
            return -1
        return int(item[1] - self._now_ms())


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
