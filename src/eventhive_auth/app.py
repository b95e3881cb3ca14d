"""Flask application exposing the ``/api/auth`` endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import redis
from flask import Blueprint, Flask, jsonify, request
from flask_cors import CORS

from . import logging_config
from .accounts import AccountService
from .config import AuthSettings
from .context import current_context
from .errors import AccountError
from .gate import AuthGate
from .memory_store import InMemoryPrincipalStore
from .one_time import OtpPurpose
from .principals import PrincipalKind
from .rate_limit import InMemoryAttemptStore, RedisAttemptStore
from .secret_stores import InMemorySecretStore, RedisSecretStore
from .tokens import TokenCodec

if TYPE_CHECKING:
    from .protocols import AttemptStore, Mailer, PrincipalStore, SecretStore

logger = logging.getLogger(__name__)

_MINUTE_MS = 60 * 1000

RESET_REQUESTED_MESSAGE = (
    "If an account exists with this email, a password reset link has been sent"
)


def _body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require(body: dict[str, Any], *names: str) -> list[str]:
    values = [body.get(name) for name in names]
    if not all(isinstance(v, str) and v for v in values):
        raise AccountError(f"{', '.join(names)} required")
    return values  # type: ignore[return-value]


def _ok(message: str, status: int = 200, **data: Any) -> tuple[Any, int]:
    body: dict[str, Any] = {"success": True, "message": message}
    if data:
        body["data"] = data
    return jsonify(body), status


def auth_blueprint(gate: AuthGate, accounts: AccountService) -> Blueprint:
    """Build the ``/api/auth`` routes bound to ``gate`` and ``accounts``."""
    bp = Blueprint("auth", __name__, url_prefix="/api/auth")

    @bp.post("/login")
    @gate.rate_limit(5, 15 * _MINUTE_MS)
    def login():
        body = _body()
        email, password = _require(body, "email", "password")
        result = accounts.login(email, password, body.get("userType") or PrincipalKind.USER)
        return _ok(
            "Login successful",
            user=result.principal.public_profile(),
            tokens=result.tokens.to_dict(),
        )

    @bp.post("/refresh")
    def refresh():
        (token,) = _require(_body(), "refreshToken")
        pair = accounts.refresh(token)
        return _ok("Token refreshed", tokens=pair.to_dict())

    @bp.post("/send-otp")
    @gate.rate_limit(3, 5 * _MINUTE_MS)
    def send_otp():
        body = _body()
        (email,) = _require(body, "email")
        try:
            purpose = OtpPurpose(body.get("purpose") or OtpPurpose.VERIFICATION)
        except ValueError as e:
            raise AccountError("Invalid OTP purpose") from e
        issued = accounts.send_otp(email, purpose)
        return _ok("OTP sent", expiresAt=issued.expires_at.isoformat())

    @bp.post("/verify-otp")
    @gate.rate_limit(5, 15 * _MINUTE_MS)
    def verify_otp():
        body = _body()
        email, otp = _require(body, "email", "otp")
        try:
            accounts.verify_otp(email, otp, body.get("purpose"))
        except ValueError as e:
            raise AccountError("Invalid OTP purpose") from e
        return _ok("OTP verified")

    @bp.get("/verify-email")
    def verify_email():
        token = request.args.get("token")
        if not token:
            raise AccountError("Verification token is required")
        principal = accounts.verify_email(token, request.args.get("type") or PrincipalKind.USER)
        return _ok("Email verified successfully", user=principal.public_profile())

    @gate.rate_limit(3, 15 * _MINUTE_MS)
    def request_password_reset():
        body = _body()
        (email,) = _require(body, "email")
        accounts.request_password_reset(email, body.get("userType"))
        return _ok(RESET_REQUESTED_MESSAGE)

    bp.add_url_rule(
        "/request-password-reset",
        "request_password_reset",
        request_password_reset,
        methods=["POST"],
    )
    bp.add_url_rule("/forgot-password", "forgot_password", request_password_reset, methods=["POST"])

    @bp.post("/reset-password")
    @gate.rate_limit(5, 15 * _MINUTE_MS)
    def reset_password():
        body = _body()
        token, password = _require(body, "token", "password")
        accounts.reset_password(token, password, body.get("userType") or PrincipalKind.USER)
        return _ok("Password reset successful")

    @bp.post("/logout")
    @gate.authenticate
    def logout():
        # Tokens are stateless; the client discards them
        ctx = current_context()
        logger.info("Logout %s %s", ctx.kind, ctx.id)
        return _ok("Logged out successfully")

    @bp.get("/profile")
    @gate.authenticate
    def profile():
        principal = accounts.profile(current_context())
        return _ok("Profile retrieved", user=principal.public_profile())

    return bp


def create_app(
    settings: AuthSettings | None = None,
    *,
    store: PrincipalStore | None = None,
    attempt_store: AttemptStore | None = None,
    secret_store: SecretStore | None = None,
    mailer: Mailer | None = None,
) -> Flask:
    """
    Create and configure the Flask application.

    Stores not passed in are Redis backed when ``settings.redis_url`` is set
    and in-memory otherwise.

    Returns:
        Flask: Configured Flask application instance
    """
    settings = settings or AuthSettings.from_env()
    if store is None:
        store = InMemoryPrincipalStore()

    if settings.redis_url:
        client = redis.Redis.from_url(settings.redis_url)
        if attempt_store is None:
            attempt_store = RedisAttemptStore(client)
        if secret_store is None:
            secret_store = RedisSecretStore(client)
    else:
        if attempt_store is None:
            attempt_store = InMemoryAttemptStore()
        if secret_store is None:
            secret_store = InMemorySecretStore()

    codec = TokenCodec.from_settings(settings)
    accounts = AccountService(
        store,
        codec,
        secret_store,
        mailer,
        bcrypt_rounds=settings.bcrypt_rounds,
        client_url=settings.client_url,
    )
    gate = AuthGate(
        default_max_attempts=settings.rate_limit_max,
        default_window_ms=settings.rate_limit_window_ms,
    )

    app = Flask(__name__)
    gate.init_app(
        app,
        verifier=codec,
        attempt_store=attempt_store,
        principal_store=store,
        revalidate_status=settings.revalidate_status,
        api_key=settings.api_key,
    )
    app.extensions["eventhive_accounts"] = accounts
    logging_config.init_app(app)

    CORS(
        app,
        origins=list(settings.cors_origins),
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Request-ID"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    app.register_blueprint(auth_blueprint(gate, accounts))

    @app.get("/health")
    def health():
        return jsonify({"success": True, "status": "ok"}), 200

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "message": "Resource not found."}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.exception("Unhandled error")
        return jsonify(
            {
                "success": False,
                "message": "An unexpected error occurred. Please try again later.",
            }
        ), 500

    return app


if __name__ == "__main__":
    logging_config.configure_logging("INFO")
    create_app().run(port=5000)
