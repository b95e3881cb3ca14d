from datetime import UTC, datetime, timedelta

import pytest

import eventhive_auth as m
from eventhive_auth import one_time


def test_generate_otp_is_six_digits():
    otp = m.generate_otp()
    assert len(otp) == 6
    assert otp.isdigit()


def test_generate_otp_custom_length():
    assert len(m.generate_otp(8)) == 8
    with pytest.raises(ValueError):
        m.generate_otp(0)


def test_generate_secure_token_is_hex():
    token = m.generate_secure_token()
    assert len(token) == 64
    int(token, 16)


def test_hash_secret_is_sha256_hex():
    # echo -n "abc" | sha256sum
    assert m.hash_secret("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_secrets_match():
    stored = m.hash_secret("123456")
    assert one_time.secrets_match("123456", stored) is True
    assert one_time.secrets_match("654321", stored) is False


def test_issue_password_reset_defaults_to_ten_minutes():
    now = datetime(2026, 1, 1, tzinfo=UTC)
    issued = m.issue_one_time_secret(m.SecretKind.PASSWORD_RESET, now=now)

    assert isinstance(issued, m.IssuedToken)
    assert issued.expires_at == now + timedelta(minutes=10)
    assert issued.hashed == m.hash_secret(issued.plaintext)
    assert issued.plaintext != issued.hashed


def test_issue_email_verification_defaults_to_a_day():
    now = datetime(2026, 1, 1, tzinfo=UTC)
    issued = m.issue_one_time_secret("EMAIL_VERIFICATION", now=now)
    assert issued.expires_at == now + timedelta(hours=24)


def test_issue_otp():
    now = datetime(2026, 1, 1, tzinfo=UTC)
    issued = m.issue_one_time_secret(m.SecretKind.OTP, 5, now=now)

    assert isinstance(issued, m.IssuedOtp)
    assert issued.otp.isdigit()
    assert issued.hashed == m.hash_secret(issued.otp)
    assert issued.expires_at == now + timedelta(minutes=5)


def test_issue_otp_defaults_to_ten_minutes():
    now = datetime(2026, 1, 1, tzinfo=UTC)
    issued = m.issue_otp(now=now)

    assert len(issued.otp) == 6
    assert issued.expires_at == now + timedelta(minutes=10)


def test_issue_rejects_non_positive_expiry():
    with pytest.raises(ValueError):
        m.issue_one_time_secret(m.SecretKind.OTP, 0)


def test_issued_tokens_are_unique():
    tokens = {m.issue_one_time_secret(m.SecretKind.PASSWORD_RESET).plaintext for _ in range(50)}
    assert len(tokens) == 50
