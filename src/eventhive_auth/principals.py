"""Principal variants: members (students), organizations and administrators.

A principal is one of three dataclasses sharing a common base. Code that needs
kind-specific behaviour dispatches on the concrete type once (see
``tokens.derive_payload``) instead of switching on a kind string.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Final
from uuid import uuid4


class PrincipalKind(StrEnum):
    """Wire value of ``userType`` in token payloads."""

    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: str) -> PrincipalKind:
        """Parse a kind case-insensitively. Raises ValueError if unknown."""
        return cls(value.strip().upper())


class AccountStatus(StrEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"


class ApprovalStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    UNDER_REVIEW = "UNDER_REVIEW"


class AdminRole(StrEnum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"


ADMIN_PERMISSIONS: Final[tuple[str, ...]] = (
    "canManageUsers",
    "canSuspendUsers",
    "canDeleteUsers",
    "canManageOrganizations",
    "canApproveOrganizations",
    "canSuspendOrganizations",
    "canManageEvents",
    "canApproveEvents",
    "canCancelEvents",
    "canManageAdmins",
    "canViewAnalytics",
    "canManageSettings",
    "canExportData",
)
"""Every permission flag an administrator can hold."""

_DEFAULT_PERMISSIONS: Final[frozenset[str]] = frozenset(
    {
        "canManageUsers",
        "canManageOrganizations",
        "canManageEvents",
        "canViewAnalytics",
        "canExportData",
    }
)

_ADMIN_GRANTS: Final[frozenset[str]] = frozenset(
    {
        "canManageUsers",
        "canManageOrganizations",
        "canApproveOrganizations",
        "canManageEvents",
        "canApproveEvents",
        "canViewAnalytics",
        "canExportData",
    }
)

_MODERATOR_GRANTS: Final[frozenset[str]] = frozenset(
    {"canManageUsers", "canManageOrganizations", "canManageEvents", "canViewAnalytics"}
)


def permissions_for_role(role: AdminRole) -> dict[str, bool]:
    """Return the full permission map an administrator of ``role`` starts with.

    SUPER_ADMIN holds everything. ADMIN holds the management and approval
    flags but not user deletion, admin management or settings. MODERATOR
    holds only the four management/analytics flags.
    """
    if role is AdminRole.SUPER_ADMIN:
        granted = frozenset(ADMIN_PERMISSIONS)
    elif role is AdminRole.ADMIN:
        granted = _ADMIN_GRANTS
    elif role is AdminRole.MODERATOR:
        granted = _MODERATOR_GRANTS
    else:
        granted = _DEFAULT_PERMISSIONS
    return {name: name in granted for name in ADMIN_PERMISSIONS}


def _new_id() -> str:
    return uuid4().hex


@dataclass(slots=True, kw_only=True)
class Principal(ABC):
    """Fields shared by every principal kind. Only the variants are instantiable.

    ``password_hash`` is the bcrypt hash, never the plaintext. The two
    ``*_token_hash`` fields hold the SHA-256 of the one-time tokens handed to
    the user; the plaintext is never stored.
    """

    id: str = field(default_factory=_new_id)
    email: str
    password_hash: str = ""
    account_status: AccountStatus = AccountStatus.PENDING_VERIFICATION
    is_email_verified: bool = False

    email_verification_token_hash: str | None = None
    email_verification_expires: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires: datetime | None = None

    last_login_at: datetime | None = None
    login_count: int = 0

    @property
    @abstractmethod
    def kind(self) -> PrincipalKind: ...

    @property
    def display_name(self) -> str:
        return self.email

    def public_profile(self) -> dict[str, object]:
        """Profile fields safe to return to the principal itself."""
        return {
            "id": self.id,
            "email": self.email,
            "userType": self.kind.value,
            "isEmailVerified": self.is_email_verified,
            "accountStatus": self.account_status.value,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
            "loginCount": self.login_count,
        }


@dataclass(slots=True, kw_only=True)
class Member(Principal):
    """A student account."""

    first_name: str
    last_name: str
    student_id: str | None = None
    stream: str | None = None
    year: int | None = None
    department: str | None = None

    @property
    def kind(self) -> PrincipalKind:
        return PrincipalKind.USER

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def public_profile(self) -> dict[str, object]:
        profile = Principal.public_profile(self)
        profile.update(
            firstName=self.first_name,
            lastName=self.last_name,
            studentId=self.student_id,
            stream=self.stream,
            year=self.year,
            department=self.department,
        )
        return profile


@dataclass(slots=True, kw_only=True)
class Organization(Principal):
    """A club, department or external organization publishing events.

    ``email`` holds the official email address.
    """

    name: str
    type: str | None = None
    category: str | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING

    @property
    def kind(self) -> PrincipalKind:
        return PrincipalKind.ORGANIZATION

    @property
    def display_name(self) -> str:
        return self.name

    def public_profile(self) -> dict[str, object]:
        profile = Principal.public_profile(self)
        profile.update(
            name=self.name,
            officialEmail=self.email,
            type=self.type,
            category=self.category,
            approvalStatus=self.approval_status.value,
        )
        return profile


@dataclass(slots=True, kw_only=True)
class Administrator(Principal):
    """A platform administrator.

    When ``permissions`` is not given it is derived from ``role``.
    """

    first_name: str
    last_name: str
    employee_id: str | None = None
    role: AdminRole = AdminRole.ADMIN
    permissions: dict[str, bool] = field(default_factory=dict)
    account_status: AccountStatus = AccountStatus.ACTIVE

    def __post_init__(self) -> None:
        if not self.permissions:
            self.permissions = permissions_for_role(self.role)

    @property
    def kind(self) -> PrincipalKind:
        return PrincipalKind.ADMIN

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def has_permission(self, name: str) -> bool:
        return self.permissions.get(name) is True

    def public_profile(self) -> dict[str, object]:
        profile = Principal.public_profile(self)
        profile.update(
            firstName=self.first_name,
            lastName=self.last_name,
            employeeId=self.employee_id,
            role=self.role.value,
            permissions=dict(self.permissions),
        )
        return profile
