"""
Authentication and authorization core for the EventHive platform.

High-level flow (per request)
-----------------------------
1. `AuthGate.authenticate` decorator runs.
2. `BearerExtractor` pulls the raw token from `Authorization: Bearer <token>`.
3. `TokenCodec.verify_access_token(token)`:
   - Checks the HS256 signature against the access secret
   - Requires `exp`, `iat`, `iss` and `aud`, and checks issuer and audience
4. `AuthContext.from_claims` validates the payload shape.
5. The account status is checked (token snapshot, or live when configured).
6. On success: the context is stored in `flask.g.auth` for views and policies.
7. Optional `require_*` policies enforce kind, permission, verification,
   organization approval, ownership or status.

Security notes
--------------
- Access and refresh tokens are signed with distinct secrets.
- One-time secrets are stored only as SHA-256 hashes and consumed once.
- Every ambiguous input denies access.
- Client error messages never reveal why a token failed verification.

Example usage
-------------

.. code-block:: python

    from eventhive_auth import AuthGate, AuthSettings, TokenCodec, require_role

    settings = AuthSettings.from_env()
    codec = TokenCodec.from_settings(settings)

    gate = AuthGate()
    gate.init_app(app, verifier=codec)

    @app.get("/admin/reports")
    @gate.authenticate
    @require_role("ADMIN")
    def reports():
        return {"ok": True}

    @app.post("/api/auth/login")
    @gate.rate_limit(5, 15 * 60 * 1000)
    def login(): ...
"""

# Account flows
from .accounts import AccountService, LoggingMailer, LoginResult

# Application
from .app import create_app

# Configuration
from .config import AuthSettings

# Context
from .context import AuthContext, current_context

# Errors
from .errors import (
    AccountError,
    AccountStatusNotAllowed,
    AccountSuspended,
    AuthenticationRequired,
    AuthError,
    CorruptedCredential,
    DuplicateEmail,
    EmailNotVerified,
    Forbidden,
    InactiveAccount,
    InsufficientPermission,
    InsufficientRole,
    InvalidApiKey,
    InvalidCredentials,
    InvalidPayload,
    InvalidSecret,
    InvalidToken,
    MissingToken,
    OrganizationNotApproved,
    OwnershipViolation,
    PrincipalNotFound,
    RateLimitExceeded,
    SigningMisconfigured,
    TokenFailure,
    WeakPassword,
)

# Extractors
from .extractors import ApiKeyExtractor, BearerExtractor, extract_token

# Flask extension
from .gate import AuthGate, GateState

# Principal store
from .memory_store import InMemoryPrincipalStore

# One-time secrets
from .one_time import (
    IssuedOtp,
    IssuedToken,
    OtpPurpose,
    SecretKind,
    generate_otp,
    generate_secure_token,
    hash_secret,
    issue_one_time_secret,
    issue_otp,
)

# Passwords
from .passwords import hash_password, set_password, validate_password_strength, verify_password

# Policies
from .policies import (
    require_account_status,
    require_approved_organization,
    require_email_verified,
    require_ownership,
    require_permission,
    require_role,
)

# Principals
from .principals import (
    AccountStatus,
    Administrator,
    AdminRole,
    ApprovalStatus,
    Member,
    Organization,
    Principal,
    PrincipalKind,
    permissions_for_role,
)

# Protocols
from .protocols import (
    AttemptStore,
    Claims,
    Extractor,
    Mailer,
    PrincipalStore,
    SecretStore,
    TokenVerifier,
    ViewFunc,
)

# Rate limiting
from .rate_limit import AuthRateLimiter, InMemoryAttemptStore, RedisAttemptStore

# Secret stores
from .secret_stores import InMemorySecretStore, RedisSecretStore

# Tokens
from .tokens import (
    TokenCodec,
    TokenOptions,
    TokenPair,
    derive_payload,
    has_payload_shape,
    is_token_expiring_soon,
    parse_lifetime,
    validate_token_payload,
)

__all__ = [
    # Errors
    "AccountError",
    "AccountStatusNotAllowed",
    "AccountSuspended",
    "AuthError",
    "AuthenticationRequired",
    "CorruptedCredential",
    "EmailNotVerified",
    "Forbidden",
    "InactiveAccount",
    "InsufficientPermission",
    "InsufficientRole",
    "InvalidApiKey",
    "InvalidCredentials",
    "InvalidPayload",
    "InvalidSecret",
    "InvalidToken",
    "MissingToken",
    "OrganizationNotApproved",
    "OwnershipViolation",
    "PrincipalNotFound",
    "RateLimitExceeded",
    "SigningMisconfigured",
    "TokenFailure",
    "WeakPassword",
    # Protocols
    "AttemptStore",
    "Claims",
    "Extractor",
    "Mailer",
    "PrincipalStore",
    "SecretStore",
    "TokenVerifier",
    "ViewFunc",
    # Principals
    "AccountStatus",
    "AdminRole",
    "Administrator",
    "ApprovalStatus",
    "Member",
    "Organization",
    "Principal",
    "PrincipalKind",
    "permissions_for_role",
    # Tokens
    "TokenCodec",
    "TokenOptions",
    "TokenPair",
    "derive_payload",
    "has_payload_shape",
    "is_token_expiring_soon",
    "parse_lifetime",
    "validate_token_payload",
    # One-time secrets
    "IssuedOtp",
    "IssuedToken",
    "OtpPurpose",
    "SecretKind",
    "generate_otp",
    "generate_secure_token",
    "hash_secret",
    "issue_one_time_secret",
    "issue_otp",
    # Secret stores
    "InMemorySecretStore",
    "RedisSecretStore",
    # Passwords
    "hash_password",
    "set_password",
    "validate_password_strength",
    "verify_password",
    # Extractors
    "ApiKeyExtractor",
    "BearerExtractor",
    "extract_token",
    # Rate limiting
    "AuthRateLimiter",
    "InMemoryAttemptStore",
    "RedisAttemptStore",
    # Context
    "AuthContext",
    "current_context",
    # Flask extension
    "AuthGate",
    "GateState",
    # Policies
    "require_account_status",
    "require_approved_organization",
    "require_email_verified",
    "require_ownership",
    "require_permission",
    "require_role",
    # Account flows
    "AccountService",
    "LoggingMailer",
    "LoginResult",
    # Principal store
    "DuplicateEmail",
    "InMemoryPrincipalStore",
    # Configuration
    "AuthSettings",
    # Application
    "create_app",
]
