"""
Tests for the account flows: registration, login, refresh, email
verification, password reset and OTPs.
"""

import re
from datetime import UTC, datetime, timedelta

import pytest

import eventhive_auth as m
from eventhive_auth import accounts as accounts_module


def _token_from(body: str) -> str:
    match = re.search(r"token=([0-9a-f]+)", body)
    assert match is not None
    return match.group(1)


@pytest.fixture()
def registered(accounts: m.AccountService, member: m.Member, password: str) -> m.Member:
    accounts.register(member, password)
    return member


class TestRegister:
    def test_hashes_password_and_mails_verification(
        self, accounts: m.AccountService, member: m.Member, password: str, mailer, store
    ):
        token = accounts.register(member, password)

        assert store.get(m.PrincipalKind.USER, member.id) is member
        assert member.password_hash != password
        assert member.email_verification_token_hash == m.hash_secret(token)
        assert token not in (member.email_verification_token_hash or "")

        to, subject, body = mailer.sent[-1]
        assert to == "ada@example.edu"
        assert "verify" in subject.lower()
        assert f"https://app.example.edu/verify-email?token={token}&type=user" in body

    def test_weak_password(self, accounts: m.AccountService, member: m.Member):
        with pytest.raises(m.WeakPassword):
            accounts.register(member, "weak")

    def test_duplicate_email(self, accounts: m.AccountService, registered: m.Member, password: str):
        twin = m.Member(email="ADA@example.edu", first_name="Ada", last_name="Twin")
        with pytest.raises(m.AccountError) as exc:
            accounts.register(twin, password)
        assert "already exists" in exc.value.message

    def test_duplicate_saved_concurrently(
        self,
        accounts: m.AccountService,
        registered: m.Member,
        password: str,
        store: m.InMemoryPrincipalStore,
        monkeypatch: pytest.MonkeyPatch,
    ):
        # The lookup misses a twin registered after it ran
        monkeypatch.setattr(store, "find_by_email", lambda kind, email: None)
        twin = m.Member(email="ada@example.edu", first_name="Ada", last_name="Twin")

        with pytest.raises(m.AccountError) as exc:
            accounts.register(twin, password)

        assert exc.value.status_code == 400
        assert isinstance(exc.value.__cause__, m.DuplicateEmail)

    def test_same_email_allowed_across_kinds(
        self, accounts: m.AccountService, registered: m.Member, password: str
    ):
        org = m.Organization(email="ada@example.edu", name="Ada's Club")
        accounts.register(org, password)


class TestLogin:
    def test_success_issues_tokens_and_counts(
        self, accounts: m.AccountService, registered: m.Member, password: str, codec: m.TokenCodec
    ):
        result = accounts.login("ada@example.edu", password, "USER")

        assert result.principal is registered
        assert registered.login_count == 1
        assert registered.last_login_at is not None
        claims = codec.verify_access_token(result.tokens.access_token)
        assert claims["id"] == registered.id
        assert claims["userType"] == "USER"

    def test_email_is_case_insensitive(
        self, accounts: m.AccountService, registered: m.Member, password: str
    ):
        assert accounts.login("Ada@Example.edu", password, "user").principal is registered

    def test_unknown_email_and_wrong_password_look_the_same(
        self, accounts: m.AccountService, registered: m.Member, password: str
    ):
        with pytest.raises(m.InvalidCredentials) as unknown:
            accounts.login("nobody@example.edu", password, "USER")
        with pytest.raises(m.InvalidCredentials) as wrong:
            accounts.login("ada@example.edu", "Wr0ngPassword", "USER")

        assert unknown.value.to_dict() == wrong.value.to_dict()
        assert unknown.value.status_code == 401

    def test_wrong_kind(self, accounts: m.AccountService, registered: m.Member, password: str):
        with pytest.raises(m.InvalidCredentials):
            accounts.login("ada@example.edu", password, "ORGANIZATION")

    def test_unknown_kind(self, accounts: m.AccountService, password: str):
        with pytest.raises(m.AccountError) as exc:
            accounts.login("ada@example.edu", password, "ROBOT")
        assert exc.value.message == "Invalid user type"

    def test_suspended(self, accounts: m.AccountService, registered: m.Member, password: str):
        registered.account_status = m.AccountStatus.SUSPENDED

        with pytest.raises(m.AccountSuspended) as exc:
            accounts.login("ada@example.edu", password, "USER")
        assert exc.value.status_code == 403

    def test_corrupted_hash_propagates(
        self, accounts: m.AccountService, registered: m.Member, password: str
    ):
        registered.password_hash = "garbage"
        with pytest.raises(m.CorruptedCredential):
            accounts.login("ada@example.edu", password, "USER")


class TestRefresh:
    def test_rederives_claims_from_live_principal(
        self, accounts: m.AccountService, registered: m.Member, password: str, codec: m.TokenCodec
    ):
        pair = accounts.login("ada@example.edu", password, "USER").tokens
        registered.first_name = "Augusta"

        fresh = accounts.refresh(pair.refresh_token)

        assert codec.verify_access_token(fresh.access_token)["firstName"] == "Augusta"

    def test_access_token_is_not_a_refresh_token(
        self, accounts: m.AccountService, registered: m.Member, password: str
    ):
        pair = accounts.login("ada@example.edu", password, "USER").tokens
        with pytest.raises(m.InvalidToken):
            accounts.refresh(pair.access_token)

    def test_requires_active(
        self, accounts: m.AccountService, registered: m.Member, password: str
    ):
        pair = accounts.login("ada@example.edu", password, "USER").tokens
        registered.account_status = m.AccountStatus.SUSPENDED

        with pytest.raises(m.AccountStatusNotAllowed) as exc:
            accounts.refresh(pair.refresh_token)
        assert exc.value.extra == {"accountStatus": "SUSPENDED"}

    def test_deleted_principal(self, accounts: m.AccountService, codec: m.TokenCodec, member: m.Member):
        token = codec.issue_token_pair(member).refresh_token
        with pytest.raises(m.PrincipalNotFound):
            accounts.refresh(token)

    def test_bad_user_type(self, accounts: m.AccountService, codec: m.TokenCodec):
        token = codec.issue_refresh_token({"id": "x", "userType": "ROBOT"})
        with pytest.raises(m.InvalidPayload):
            accounts.refresh(token)


class TestEmailVerification:
    def test_verifies_and_activates(self, accounts: m.AccountService, store, password: str):
        member = m.Member(email="new@example.edu", first_name="New", last_name="Student")
        token = accounts.register(member, password)
        assert member.account_status is m.AccountStatus.PENDING_VERIFICATION

        verified = accounts.verify_email(token, "user")

        assert verified is member
        assert member.is_email_verified is True
        assert member.account_status is m.AccountStatus.ACTIVE
        assert member.email_verification_token_hash is None

    def test_single_use(self, accounts: m.AccountService, password: str):
        member = m.Member(email="new@example.edu", first_name="New", last_name="Student")
        token = accounts.register(member, password)
        accounts.verify_email(token)

        with pytest.raises(m.InvalidSecret):
            accounts.verify_email(token)

    def test_does_not_reactivate_suspended(self, accounts: m.AccountService, password: str):
        member = m.Member(email="new@example.edu", first_name="New", last_name="Student")
        token = accounts.register(member, password)
        member.account_status = m.AccountStatus.SUSPENDED

        accounts.verify_email(token)
        assert member.account_status is m.AccountStatus.SUSPENDED

    def test_expired_token_is_cleared(self, accounts: m.AccountService, password: str):
        member = m.Member(email="new@example.edu", first_name="New", last_name="Student")
        token = accounts.register(member, password)
        member.email_verification_expires = datetime.now(UTC) - timedelta(seconds=1)

        with pytest.raises(m.InvalidSecret):
            accounts.verify_email(token)
        assert member.email_verification_token_hash is None
        assert member.is_email_verified is False


class TestPasswordReset:
    def test_reset_is_single_use(
        self, accounts: m.AccountService, registered: m.Member, mailer, password: str
    ):
        returned = accounts.request_password_reset("ada@example.edu")
        token = _token_from(mailer.last_body)
        assert token == returned
        assert "https://app.example.edu/reset-password?token=" in mailer.last_body
        assert registered.password_reset_token_hash == m.hash_secret(token)

        accounts.reset_password(token, "N3wPassword!", "USER")
        assert accounts.login("ada@example.edu", "N3wPassword!", "USER")

        with pytest.raises(m.InvalidSecret) as exc:
            accounts.reset_password(token, "An0therPass", "USER")
        assert exc.value.message == "Invalid or expired reset token"

        with pytest.raises(m.InvalidCredentials):
            accounts.login("ada@example.edu", password, "USER")

    def test_unknown_email_is_silent(self, accounts: m.AccountService, mailer):
        assert accounts.request_password_reset("nobody@example.edu") is None
        assert mailer.sent == []

    def test_searches_every_kind(self, accounts: m.AccountService, organization, password: str):
        accounts.register(organization, password)
        token = accounts.request_password_reset("club@example.edu")

        assert token is not None
        assert organization.password_reset_token_hash == m.hash_secret(token)

    def test_expires_after_ten_minutes(
        self,
        accounts: m.AccountService,
        registered: m.Member,
        monkeypatch: pytest.MonkeyPatch,
    ):
        token = accounts.request_password_reset("ada@example.edu", "USER")
        assert registered.password_reset_expires is not None

        later = registered.password_reset_expires + timedelta(seconds=1)
        monkeypatch.setattr(accounts_module, "_now", lambda: later)

        with pytest.raises(m.InvalidSecret):
            accounts.reset_password(token, "N3wPassword!", "USER")
        assert registered.password_reset_token_hash is None

    def test_weak_new_password_keeps_token(
        self, accounts: m.AccountService, registered: m.Member
    ):
        token = accounts.request_password_reset("ada@example.edu")

        with pytest.raises(m.WeakPassword):
            accounts.reset_password(token, "weak", "USER")
        accounts.reset_password(token, "N3wPassword!", "USER")


class TestOtp:
    def test_send_and_verify_once(self, accounts: m.AccountService, mailer):
        issued = accounts.send_otp("ada@example.edu", "login")

        assert issued.otp in mailer.last_body
        accounts.verify_otp("ada@example.edu", issued.otp, "login")

        with pytest.raises(m.InvalidSecret):
            accounts.verify_otp("ada@example.edu", issued.otp, "login")

    def test_wrong_code(self, accounts: m.AccountService):
        issued = accounts.send_otp("ada@example.edu")
        wrong = "000000" if issued.otp != "000000" else "111111"

        with pytest.raises(m.InvalidSecret) as exc:
            accounts.verify_otp("ada@example.edu", wrong)
        assert exc.value.message == "Invalid or expired OTP"

        accounts.verify_otp("ADA@example.edu", issued.otp)

    def test_purpose_mismatch(self, accounts: m.AccountService):
        issued = accounts.send_otp("ada@example.edu", m.OtpPurpose.PASSWORD_RESET)

        with pytest.raises(m.InvalidSecret):
            accounts.verify_otp("ada@example.edu", issued.otp, m.OtpPurpose.LOGIN)

    def test_unknown_purpose(self, accounts: m.AccountService):
        with pytest.raises(ValueError):
            accounts.send_otp("ada@example.edu", "telepathy")


def test_profile_loads_live_principal(accounts: m.AccountService, registered: m.Member):
    ctx = m.AuthContext.from_claims(m.derive_payload(registered))
    registered.first_name = "Augusta"

    assert accounts.profile(ctx).public_profile()["firstName"] == "Augusta"


def test_logging_mailer_does_not_log_the_body(caplog: pytest.LogCaptureFixture):
    with caplog.at_level("INFO", logger="eventhive_auth.accounts"):
        m.LoggingMailer().send("ada@example.edu", "Your verification code", "Your code is 424242")

    assert "Your verification code" in caplog.text
    assert "424242" not in caplog.text
