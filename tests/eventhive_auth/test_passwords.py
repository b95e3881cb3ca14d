import logging

import pytest

import eventhive_auth as m


def test_hash_and_verify(password: str):
    hashed = m.hash_password(password, rounds=4)

    assert hashed != password
    assert hashed.startswith("$2")
    assert m.verify_password(password, hashed) is True
    assert m.verify_password("wrong-password", hashed) is False


def test_hashes_are_salted(password: str):
    assert m.hash_password(password, rounds=4) != m.hash_password(password, rounds=4)


def test_corrupted_hash_raises_and_logs_critical(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.CRITICAL, logger="eventhive_auth.passwords"):
        with pytest.raises(m.CorruptedCredential):
            m.verify_password("anything", "not-a-bcrypt-hash")

    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_set_password_only_rehashes_on_change(member: m.Member, password: str):
    assert m.set_password(member, password, rounds=4) is True
    first = member.password_hash

    assert m.set_password(member, password, rounds=4) is False
    assert member.password_hash == first

    assert m.set_password(member, "An0therPassword", rounds=4) is True
    assert member.password_hash != first
    assert m.verify_password("An0therPassword", member.password_hash)


@pytest.mark.parametrize(
    ("candidate", "reason"),
    [
        ("Sh0rt", "at least 8 characters"),
        ("ALLUPPER123", "lowercase"),
        ("alllower123", "uppercase"),
        ("NoDigitsHere", "number"),
    ],
)
def test_weak_passwords(candidate: str, reason: str):
    ok, message = m.validate_password_strength(candidate)
    assert ok is False
    assert reason in message


def test_strong_password(password: str):
    assert m.validate_password_strength(password) == (True, "")
