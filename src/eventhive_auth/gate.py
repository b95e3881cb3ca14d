"""Flask extension that authenticates requests.

This module is the integration point between the token codec and Flask
views. It implements a decorator-based approach:

1. Extract the token from ``Authorization: Bearer <token>``
2. Verify signature, expiry, issuer and audience
3. Validate the payload shape
4. Check account status (token snapshot, or live when configured)
5. Store an ``AuthContext`` on ``flask.g`` for the view and policies
6. Convert any ``AuthError`` into a JSON 401/403/429 response

It also provides the brute-force limiter and API-key decorators.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable
from enum import StrEnum
from functools import wraps
from typing import TYPE_CHECKING, Any, Final, NoReturn

from flask import Flask, Response, abort, jsonify, make_response, request

from .context import AuthContext, set_context
from .errors import AuthError, InactiveAccount, InvalidApiKey, InvalidPayload, MissingToken
from .extractors import ApiKeyExtractor, BearerExtractor
from .principals import AccountStatus
from .rate_limit import AuthRateLimiter, InMemoryAttemptStore

if TYPE_CHECKING:
    from .protocols import AttemptStore, Extractor, PrincipalStore, TokenVerifier, ViewFunc

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "eventhive_auth"
"""Flask extensions registry key for AuthGate."""

_ACTIVE_ONLY: Final[frozenset[AccountStatus]] = frozenset({AccountStatus.ACTIVE})


class GateState(StrEnum):
    """Progress of a single request through authentication."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    TOKEN_EXTRACTED = "TOKEN_EXTRACTED"
    TOKEN_VERIFIED = "TOKEN_VERIFIED"
    PAYLOAD_VALIDATED = "PAYLOAD_VALIDATED"
    STATUS_CHECKED = "STATUS_CHECKED"
    AUTHENTICATED = "AUTHENTICATED"


def error_response(error: AuthError) -> Response:
    """Render an ``AuthError`` as ``{"success": false, ...}`` with its status."""
    response = make_response(jsonify(error.to_dict()), error.status_code)
    retry_after = error.extra.get("retryAfter")
    if isinstance(retry_after, int):
        response.headers["Retry-After"] = str(retry_after * 60)
    return response


def reject(error: AuthError) -> NoReturn:
    """Terminate the current request with the JSON rendering of ``error``."""
    abort(error_response(error))


class AuthGate:
    """
    Flask decorator glue for token authentication.

    Responsibilities:
    - Extract token from request
    - Verify token (TokenVerifier)
    - Store the authorization context in ``flask.g.auth``
    - Throttle login-style endpoints
    - Convert domain errors to HTTP responses

    Pattern:
        gate = AuthGate()
        gate.init_app(app, verifier=codec)

    Usage:
        @app.get("/me")
        @gate.authenticate
        def me(): ...

        @app.post("/verification")
        @gate.authenticate(statuses=("ACTIVE", "PENDING_VERIFICATION"))
        def submit(): ...
    """

    def __init__(
        self,
        verifier: TokenVerifier | None = None,
        *,
        extractor: Extractor | None = None,
        attempt_store: AttemptStore | None = None,
        principal_store: PrincipalStore | None = None,
        revalidate_status: bool = False,
        api_key: str | None = None,
        default_max_attempts: int = 5,
        default_window_ms: int = 15 * 60 * 1000,
    ) -> None:
        self._verifier = verifier
        self._extractor: Extractor = extractor or BearerExtractor()
        self._attempts: AttemptStore = (
            attempt_store if attempt_store is not None else InMemoryAttemptStore()
        )
        self._principals = principal_store
        self._revalidate = revalidate_status
        self._api_key = api_key
        self._api_key_extractor = ApiKeyExtractor()
        self._default_max_attempts = default_max_attempts
        self._default_window_ms = default_window_ms

    def init_app(
        self,
        app: Flask,
        *,
        verifier: TokenVerifier | None = None,
        attempt_store: AttemptStore | None = None,
        principal_store: PrincipalStore | None = None,
        revalidate_status: bool | None = None,
        api_key: str | None = None,
    ) -> None:
        """Register the gate on ``app`` and install the ``AuthError`` handler."""
        if verifier is not None:
            self._verifier = verifier
        if attempt_store is not None:
            self._attempts = attempt_store
        if principal_store is not None:
            self._principals = principal_store
        if revalidate_status is not None:
            self._revalidate = revalidate_status
        if api_key is not None:
            self._api_key = api_key

        app.extensions[_EXT_KEY] = self
        app.register_error_handler(AuthError, error_response)

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def resolve(
        self,
        token: str | None,
        statuses: frozenset[AccountStatus] = _ACTIVE_ONLY,
    ) -> AuthContext:
        """Run a token through every authentication step.

        Returns:
            The authorization context.

        Raises:
            MissingToken: ``token`` is None.
            InvalidToken: signature, expiry, issuer or audience check failed.
            InvalidPayload: required fields missing or kind unknown.
            InactiveAccount: status not in ``statuses`` (status disclosed).
        """
        if self._verifier is None:
            raise RuntimeError("AuthGate has no token verifier; call init_app first")

        state = GateState.UNAUTHENTICATED
        try:
            if token is None:
                raise MissingToken()
            state = GateState.TOKEN_EXTRACTED

            claims = self._verifier.verify_access_token(token)
            state = GateState.TOKEN_VERIFIED

            ctx = AuthContext.from_claims(claims)
            state = GateState.PAYLOAD_VALIDATED

            if self._revalidate and self._principals is not None:
                principal = self._principals.get(ctx.kind, ctx.id)
                if principal is None:
                    raise InvalidPayload("Account no longer exists")
                ctx = ctx.with_status(principal.account_status)

            if ctx.status not in statuses:
                raise InactiveAccount(accountStatus=ctx.status.value)
            state = GateState.STATUS_CHECKED

        except AuthError as e:
            logger.info("Authentication rejected after %s: %s", state, e.code)
            raise

        logger.debug("%s: %s %s", GateState.AUTHENTICATED, ctx.kind, ctx.id)
        return ctx

    # ------------------------------------------------------------------
    # Decorators
    # ------------------------------------------------------------------

    def authenticate(
        self,
        view: ViewFunc | None = None,
        *,
        statuses: Iterable[AccountStatus | str] = (AccountStatus.ACTIVE,),
    ) -> Any:
        """Require a valid token. Usable bare or with ``statuses=...``.

        Error mapping:
        - no token              -> 401 "Access token is required"
        - verification failure  -> 401 "Invalid or expired token"
        - bad payload           -> 401 "Invalid token payload"
        - status not allowed    -> 401 "Account is not active" + accountStatus
        """
        allowed = frozenset(AccountStatus(s) for s in statuses)

        def decorator(fn: ViewFunc) -> ViewFunc:
            @wraps(fn)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    ctx = self.resolve(self._extractor.extract(), allowed)
                except AuthError as e:
                    set_context(None)
                    reject(e)

                set_context(ctx)
                return fn(*args, **kwargs)

            return wrapper

        if view is not None:
            return decorator(view)
        return decorator

    def optional_authenticate(self, view: ViewFunc) -> ViewFunc:
        """Attach a context when a valid token is present; never reject."""

        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            token = self._extractor.extract()
            ctx: AuthContext | None = None
            if token is not None:
                try:
                    ctx = self.resolve(token)
                except AuthError as e:
                    logger.debug("Optional authentication ignored: %s", e.code)
            set_context(ctx)
            return view(*args, **kwargs)

        return wrapper

    def rate_limit(
        self,
        max_attempts: int | None = None,
        window_ms: int | None = None,
        *,
        scope: str | None = None,
    ) -> Callable[[ViewFunc], ViewFunc]:
        """Throttle a view per (client address, submitted email).

        The email is read from the JSON or form body (``email`` or
        ``officialEmail``). Exceeding the budget answers 429 with
        ``retryAfter`` in minutes. Each view counts on its own, keyed by
        ``scope`` (defaults to the request endpoint); views given the same
        ``scope`` share one budget.

        Raises:
            ValueError: ``max_attempts`` below 1 or ``window_ms`` not positive.
        """
        limit = self._default_max_attempts if max_attempts is None else max_attempts
        window = self._default_window_ms if window_ms is None else window_ms
        # Rejects a bad limit or window when the view is decorated
        AuthRateLimiter(self._attempts, max_attempts=limit, window_ms=window)

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    # Store resolved per request: init_app may replace it after decoration
                    limiter = AuthRateLimiter(
                        self._attempts,
                        max_attempts=limit,
                        window_ms=window,
                        scope=scope or request.endpoint or view.__name__,
                    )
                    limiter.check(request.remote_addr, _submitted_email())
                except AuthError as e:
                    reject(e)
                return view(*args, **kwargs)

            return wrapper

        return decorator

    def require_api_key(self, view: ViewFunc) -> ViewFunc:
        """Require ``X-API-Key`` to equal the configured key."""

        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            presented = self._api_key_extractor.extract()
            if presented is None:
                reject(InvalidApiKey("API key required"))
            if not self._api_key or not secrets.compare_digest(
                presented.encode("utf-8"), self._api_key.encode("utf-8")
            ):
                reject(InvalidApiKey())
            return view(*args, **kwargs)

        return wrapper


def _submitted_email() -> str | None:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = request.form
    email = body.get("email") or body.get("officialEmail")
    return email if isinstance(email, str) else None
