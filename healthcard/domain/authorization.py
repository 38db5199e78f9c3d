# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role and scope checks.

This module contains the single capability check every mutation goes through.
A denial is either a role mismatch (``unauthorized``) or the right role acting
outside its scope or ownership (``forbidden``); callers need to tell the two
apart, so the result carries which one applies.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Literal, Optional, Union

from ..models.entities import ALL_CATEGORIES, User
from ..models.enums import UserRole

ManagedCategories = Optional[Union[Literal["all"], List[str]]]

DENIAL_UNAUTHORIZED = "unauthorized"
DENIAL_FORBIDDEN = "forbidden"


class Action(str, Enum):
    """Operation classes guarded by the gate."""
    MANAGE_OWN_APPLICATION = "application:manage_own"
    VIEW_APPLICATION = "application:view"
    REVIEW_DOCUMENT = "document:review"
    REVIEW_PAYMENT = "payment:review"
    CHANGE_APPLICATION_STATUS = "application:change_status"
    ORIENTATION_ATTENDANCE = "orientation:attendance"
    MANAGE_ROLES = "user:manage_roles"


ALLOWED_ROLES = {
    Action.MANAGE_OWN_APPLICATION: frozenset({UserRole.APPLICANT.value}),
    Action.VIEW_APPLICATION: frozenset({
        UserRole.APPLICANT.value, UserRole.INSPECTOR.value,
        UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value,
    }),
    Action.REVIEW_DOCUMENT: frozenset({
        UserRole.INSPECTOR.value, UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value,
    }),
    Action.REVIEW_PAYMENT: frozenset({UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value}),
    Action.CHANGE_APPLICATION_STATUS: frozenset({UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value}),
    Action.ORIENTATION_ATTENDANCE: frozenset({UserRole.INSPECTOR.value}),
    Action.MANAGE_ROLES: frozenset({UserRole.SYSTEM_ADMIN.value}),
}

REVIEWER_ROLES: FrozenSet[str] = frozenset({
    UserRole.INSPECTOR.value, UserRole.ADMIN.value, UserRole.SYSTEM_ADMIN.value,
})


@dataclass(frozen=True)
class Principal:
    """Calling user as resolved from the user record."""
    user_id: str
    role: str
    managed_categories: ManagedCategories = None

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        categories = user.managed_categories
        if isinstance(categories, list):
            categories = list(categories)
        return cls(user_id=user.id, role=user.role, managed_categories=categories)

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


@dataclass(frozen=True)
class ResourceContext:
    """What the principal is acting on."""
    owner_id: Optional[str] = None
    job_category_id: Optional[str] = None
    assigned_inspector_id: Optional[str] = None


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    denial: Optional[str] = None
    details: dict = field(default_factory=dict)


def is_in_scope(principal: Principal, job_category_id: Optional[str]) -> bool:
    """
    Check whether a reviewer may act on a job category.

    System admins and admins holding the ``all`` sentinel are unscoped.
    Everyone else needs the category in their managed set; a missing or empty
    set grants nothing.
    """
    if principal.role == UserRole.SYSTEM_ADMIN:
        return True
    categories = principal.managed_categories
    if categories == ALL_CATEGORIES:
        return True
    if not categories or job_category_id is None:
        return False
    return job_category_id in categories


def check_capability(
    principal: Principal,
    action: Action,
    resource: Optional[ResourceContext] = None
) -> AuthorizationResult:
    """
    Decide whether a principal may perform an action on a resource.

    Args:
        principal: Resolved calling user
        action: Operation class being attempted
        resource: Ownership, category and assignment of the target

    Returns:
        AuthorizationResult with the denial kind when not allowed
    """
    resource = resource or ResourceContext()
    allowed_roles = ALLOWED_ROLES[action]

    if principal.role not in allowed_roles:
        return AuthorizationResult(
            allowed=False,
            reason=f"Role '{principal.role}' may not perform {action.value}",
            denial=DENIAL_UNAUTHORIZED,
            details={"required_roles": sorted(allowed_roles)}
        )

    if action == Action.MANAGE_OWN_APPLICATION:
        if resource.owner_id is not None and resource.owner_id != principal.user_id:
            return AuthorizationResult(
                allowed=False,
                reason="Application belongs to another applicant",
                denial=DENIAL_FORBIDDEN
            )
        return AuthorizationResult(allowed=True)

    if action == Action.VIEW_APPLICATION:
        if principal.role == UserRole.APPLICANT:
            if resource.owner_id != principal.user_id:
                return AuthorizationResult(
                    allowed=False,
                    reason="Application belongs to another applicant",
                    denial=DENIAL_FORBIDDEN
                )
            return AuthorizationResult(allowed=True)
        return _check_scope(principal, resource)

    if action in (Action.REVIEW_DOCUMENT, Action.REVIEW_PAYMENT, Action.CHANGE_APPLICATION_STATUS):
        return _check_scope(principal, resource)

    if action == Action.ORIENTATION_ATTENDANCE:
        assigned = resource.assigned_inspector_id
        if assigned and assigned != principal.user_id:
            return AuthorizationResult(
                allowed=False,
                reason="Orientation is assigned to another inspector",
                denial=DENIAL_FORBIDDEN
            )
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(allowed=True)


def _check_scope(principal: Principal, resource: ResourceContext) -> AuthorizationResult:
    if is_in_scope(principal, resource.job_category_id):
        return AuthorizationResult(allowed=True)
    return AuthorizationResult(
        allowed=False,
        reason="Job category is outside your managed categories",
        denial=DENIAL_FORBIDDEN,
        details={"job_category_id": resource.job_category_id}
    )


def has_role_for(principal: Principal, action: Action) -> bool:
    """Role-only half of the capability check, for scoped list queries."""
    return principal.role in ALLOWED_ROLES[action]
