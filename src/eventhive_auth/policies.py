"""Role, permission, verification and ownership checks.

Each policy exists twice:
- a pure ``check_*`` function over an ``AuthContext`` that raises a
  ``Forbidden`` subclass, usable anywhere
- a ``require_*`` decorator that reads the context attached by
  ``AuthGate.authenticate`` and answers 401/403 JSON on failure

Security Notes
--------------
All checks are fail-closed: a missing context, a missing or malformed
permission map or a missing resource owner id all deny access.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import request

from .context import AuthContext, current_context
from .errors import (
    AccountStatusNotAllowed,
    AuthenticationRequired,
    AuthError,
    EmailNotVerified,
    InsufficientPermission,
    InsufficientRole,
    OrganizationNotApproved,
    OwnershipViolation,
)
from .gate import reject
from .principals import AccountStatus, ApprovalStatus, PrincipalKind

if TYPE_CHECKING:
    from .protocols import ViewFunc


# ============================================================================
# Pure checks
# ============================================================================


def check_role(ctx: AuthContext, allowed: frozenset[PrincipalKind]) -> None:
    if ctx.kind not in allowed:
        raise InsufficientRole(
            required=sorted(k.value for k in allowed),
            current=ctx.kind.value,
        )


def check_permission(ctx: AuthContext, name: str) -> None:
    """Administrators only, and only when ``permissions[name]`` is exactly True."""
    if not ctx.is_admin:
        raise InsufficientPermission()
    if ctx.permissions.get(name) is not True:
        raise InsufficientPermission(f"Permission '{name}' required", required=name)


def check_email_verified(ctx: AuthContext) -> None:
    if not ctx.verified:
        raise EmailNotVerified()


def check_approved_organization(ctx: AuthContext) -> None:
    if ctx.kind is not PrincipalKind.ORGANIZATION:
        raise OrganizationNotApproved("Organization access required")
    if ctx.approval_status != ApprovalStatus.APPROVED.value:
        raise OrganizationNotApproved(approvalStatus=ctx.approval_status)


def check_ownership(ctx: AuthContext, owner_id: Any) -> None:
    """Administrators bypass; everyone else must be the owner."""
    if ctx.is_admin:
        return
    if owner_id is None or ctx.id != str(owner_id):
        raise OwnershipViolation()


def check_account_status(ctx: AuthContext, allowed: frozenset[AccountStatus]) -> None:
    if ctx.status not in allowed:
        raise AccountStatusNotAllowed(
            accountStatus=ctx.status.value,
            allowedStatuses=sorted(s.value for s in allowed),
        )


# ============================================================================
# Decorators
# ============================================================================


def _policy(check: Callable[[AuthContext], None]) -> Callable[[ViewFunc], ViewFunc]:
    def decorator(view: ViewFunc) -> ViewFunc:
        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            ctx = current_context()
            try:
                if ctx is None:
                    raise AuthenticationRequired()
                check(ctx)
            except AuthError as e:
                reject(e)
            return view(*args, **kwargs)

        return wrapper

    return decorator


def require_role(*allowed: PrincipalKind | str) -> Callable[[ViewFunc], ViewFunc]:
    """Allow only contexts whose kind is one of ``allowed``."""
    kinds = frozenset(PrincipalKind.parse(str(k)) for k in allowed)
    return _policy(lambda ctx: check_role(ctx, kinds))


def require_permission(name: str) -> Callable[[ViewFunc], ViewFunc]:
    return _policy(lambda ctx: check_permission(ctx, name))


def require_email_verified(view: ViewFunc) -> ViewFunc:
    return _policy(check_email_verified)(view)


def require_approved_organization(view: ViewFunc) -> ViewFunc:
    return _policy(check_approved_organization)(view)


def require_ownership(field: str = "user") -> Callable[[ViewFunc], ViewFunc]:
    """Allow administrators, or the principal whose id owns the resource.

    The owner id is read from the route (``<field>`` or ``<id>``) and then
    from the JSON body's ``field``.
    """

    def check(ctx: AuthContext) -> None:
        check_ownership(ctx, _resource_owner(field))

    return _policy(check)


def require_account_status(*allowed: AccountStatus | str) -> Callable[[ViewFunc], ViewFunc]:
    """Allow only contexts whose status is one of ``allowed``.

    Pair with ``gate.authenticate(statuses=...)`` when ``allowed`` includes
    anything other than ACTIVE, since the gate rejects non-active tokens first.
    """
    statuses = frozenset(AccountStatus(s) for s in allowed)
    return _policy(lambda ctx: check_account_status(ctx, statuses))


def _resource_owner(field: str) -> Any:
    view_args = request.view_args or {}
    if view_args.get(field) is not None:
        return view_args[field]
    if view_args.get("id") is not None:
        return view_args["id"]
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body.get(field)
    return None
