"""Role rules for tenant-scoped actions.

These functions never touch the database; callers load the membership and
pass it in. A missing membership is always reported before a role mismatch.
"""

import enum

from app.db.models import TenantRole, TenantUser
from app.exceptions import (
    CannotModifyOwnerError,
    CannotSetOwnerRoleError,
    InsufficientTenantPermissionsError,
    TenantAccessDeniedError,
)

ANY_ROLE = frozenset(TenantRole)
ADMIN_ROLES = frozenset({TenantRole.OWNER, TenantRole.ADMIN})
OWNER_ROLES = frozenset({TenantRole.OWNER})


class TenantAction(str, enum.Enum):
    """Tenant-scoped operations subject to a role check."""

    VIEW_TENANT = "view_tenant"
    LIST_MEMBERS = "list_members"
    UPDATE_TENANT = "update_tenant"
    DELETE_TENANT = "delete_tenant"
    ADD_MEMBER = "add_member"
    UPDATE_MEMBER_ROLE = "update_member_role"
    REMOVE_MEMBER = "remove_member"
    MANAGE_INVITATIONS = "manage_invitations"


REQUIRED_ROLES: dict[TenantAction, frozenset[TenantRole]] = {
    TenantAction.VIEW_TENANT: ANY_ROLE,
    TenantAction.LIST_MEMBERS: ANY_ROLE,
    TenantAction.UPDATE_TENANT: ADMIN_ROLES,
    TenantAction.DELETE_TENANT: OWNER_ROLES,
    TenantAction.ADD_MEMBER: ADMIN_ROLES,
    TenantAction.UPDATE_MEMBER_ROLE: ADMIN_ROLES,
    TenantAction.REMOVE_MEMBER: ADMIN_ROLES,
    TenantAction.MANAGE_INVITATIONS: ADMIN_ROLES,
}


def describe_roles(roles: frozenset[TenantRole]) -> str:
    """Render a role set the way error messages name it.

    Args:
        roles: Allowed roles.

    Returns:
        str: e.g. "OWNER or ADMIN".
    """
    ordered = [role.value for role in TenantRole if role in roles]
    return " or ".join(ordered)


def can_perform(role: TenantRole, action: TenantAction) -> bool:
    """Check whether a role may perform an action."""
    return role in REQUIRED_ROLES[action]


def authorize(membership: TenantUser | None, action: TenantAction) -> TenantUser:
    """Check that the caller's membership allows an action.

    Args:
        membership: Caller's membership in the target tenant, or None.
        action: Action being attempted.

    Returns:
        TenantUser: The membership, for chaining.

    Raises:
        TenantAccessDeniedError: If the caller is not a member.
        InsufficientTenantPermissionsError: If the caller's role is not allowed.
    """
    if membership is None:
        raise TenantAccessDeniedError()

    required = REQUIRED_ROLES[action]
    if membership.role not in required:
        raise InsufficientTenantPermissionsError(describe_roles(required))

    return membership


def ensure_not_owner(membership: TenantUser) -> None:
    """Reject any change to an OWNER membership.

    Raises:
        CannotModifyOwnerError: If the membership is the OWNER's.
    """
    if membership.role == TenantRole.OWNER:
        raise CannotModifyOwnerError()


def ensure_assignable_role(role: TenantRole) -> None:
    """Reject assigning OWNER outside tenant creation.

    Raises:
        CannotSetOwnerRoleError: If role is OWNER.
    """
    if role == TenantRole.OWNER:
        raise CannotSetOwnerRoleError()
