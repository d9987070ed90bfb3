"""Tenant service layer for tenant and membership administration."""

import logging

from sqlalchemy.orm import Session

from app.db.models import Tenant, TenantRole, TenantUser
from app.exceptions import TenantNotFoundError, UserNotFoundError
from app.tenants.permissions import TenantAction, authorize, ensure_assignable_role
from app.tenants.repository import TenantRepository, TenantWithRole
from app.users.repository import UserRepository

logger = logging.getLogger(__name__)


class TenantService:
    """Service class for tenant administration operations.

    Every tenant-scoped call authorizes the caller against the tenant
    directory before touching any state.
    """

    def __init__(self, db: Session):
        """Initialize tenant service.

        Args:
            db: Database session.
        """
        self.db = db
        self.tenants = TenantRepository(db)
        self.users = UserRepository(db)

    def _authorize(self, caller_id: str, tenant_id: str, action: TenantAction) -> TenantUser:
        return authorize(self.tenants.get_membership(caller_id, tenant_id), action)

    def _get_tenant_or_raise(self, tenant_id: str) -> Tenant:
        tenant = self.tenants.find_by_id(tenant_id)
        if not tenant:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def create_tenant(self, name: str, slug: str, creator_id: str) -> Tenant:
        """Create a tenant owned by the caller.

        Raises:
            TenantSlugAlreadyExistsError: If the slug is taken.
        """
        return self.tenants.create_tenant(name=name, slug=slug, creator_user_id=creator_id)

    def list_tenants(self, user_id: str) -> list[TenantWithRole]:
        """List the caller's tenants with role and member count."""
        return self.tenants.list_tenants_for_user(user_id)

    def get_tenant(self, tenant_id: str, caller_id: str) -> TenantWithRole:
        """Get a tenant as seen by one of its members.

        Args:
            tenant_id: Tenant UUID.
            caller_id: Requesting user.

        Returns:
            TenantWithRole: Tenant, caller role and member count.

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
        """
        membership = self._authorize(caller_id, tenant_id, TenantAction.VIEW_TENANT)
        tenant = self._get_tenant_or_raise(tenant_id)
        return TenantWithRole(tenant, membership.role, len(tenant.tenant_users))

    def update_tenant(
        self,
        tenant_id: str,
        caller_id: str,
        name: str | None = None,
        slug: str | None = None,
    ) -> Tenant:
        """Update tenant name and/or slug (OWNER or ADMIN).

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is a MEMBER.
            TenantSlugAlreadyExistsError: If the new slug is taken.
        """
        self._authorize(caller_id, tenant_id, TenantAction.UPDATE_TENANT)
        tenant = self._get_tenant_or_raise(tenant_id)
        return self.tenants.update_tenant(tenant, name=name, slug=slug)

    def delete_tenant(self, tenant_id: str, caller_id: str) -> None:
        """Delete a tenant (OWNER only)."""
        self._authorize(caller_id, tenant_id, TenantAction.DELETE_TENANT)
        self.tenants.delete_tenant(tenant_id)
        logger.info(f"Tenant {tenant_id} deleted by {caller_id}")

    def list_members(self, tenant_id: str, caller_id: str) -> list[TenantUser]:
        """List memberships of a tenant, oldest first."""
        self._authorize(caller_id, tenant_id, TenantAction.LIST_MEMBERS)
        return self.tenants.list_members_for_tenant(tenant_id)

    def add_member(
        self, tenant_id: str, caller_id: str, user_id: str, role: TenantRole
    ) -> TenantUser:
        """Add an existing user to a tenant directly.

        OWNER is never granted here; it is only assigned at tenant creation.

        Args:
            tenant_id: Tenant UUID.
            caller_id: Requesting OWNER/ADMIN.
            user_id: User to add.
            role: Role to grant.

        Returns:
            TenantUser: Created membership.

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is a MEMBER.
            CannotSetOwnerRoleError: If role is OWNER.
            UserNotFoundError: If the user does not exist.
            UserAlreadyInTenantError: If the user is already a member.
        """
        self._authorize(caller_id, tenant_id, TenantAction.ADD_MEMBER)
        ensure_assignable_role(role)

        if not self.users.find_by_id(user_id):
            raise UserNotFoundError(user_id)

        return self.tenants.add_member(user_id=user_id, tenant_id=tenant_id, role=role)

    def update_member_role(
        self, tenant_id: str, caller_id: str, user_id: str, role: TenantRole
    ) -> TenantUser:
        """Change a member's role (OWNER or ADMIN).

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is a MEMBER.
            UserNotInTenantError: If the target is not a member.
            CannotModifyOwnerError: If the target is the OWNER.
            CannotSetOwnerRoleError: If role is OWNER.
        """
        self._authorize(caller_id, tenant_id, TenantAction.UPDATE_MEMBER_ROLE)
        return self.tenants.update_member_role(user_id=user_id, tenant_id=tenant_id, new_role=role)

    def remove_member(self, tenant_id: str, caller_id: str, user_id: str) -> None:
        """Remove a member from a tenant (OWNER or ADMIN).

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is a MEMBER.
            UserNotInTenantError: If the target is not a member.
            CannotModifyOwnerError: If the target is the OWNER.
        """
        self._authorize(caller_id, tenant_id, TenantAction.REMOVE_MEMBER)
        self.tenants.remove_member(user_id=user_id, tenant_id=tenant_id)
