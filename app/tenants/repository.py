"""Tenant directory: tenants and their memberships."""

import logging
from typing import NamedTuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.db.models import Tenant, TenantRole, TenantUser
from app.exceptions import (
    TenantNotFoundError,
    TenantSlugAlreadyExistsError,
    UserAlreadyInTenantError,
    UserNotInTenantError,
)
from app.tenants.permissions import ensure_assignable_role, ensure_not_owner

logger = logging.getLogger(__name__)


class TenantWithRole(NamedTuple):
    """Tenant as seen by one of its members."""

    tenant: Tenant
    my_role: TenantRole
    member_count: int


class TenantRepository:
    """Single source of truth for who belongs to which tenant with what role."""

    def __init__(self, db: Session):
        """Initialize tenant repository.

        Args:
            db: Database session.
        """
        self.db = db

    # --- Tenants ---

    def find_by_id(self, tenant_id: str) -> Tenant | None:
        """Get a tenant by ID."""
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def find_by_slug(self, slug: str) -> Tenant | None:
        """Get a tenant by slug."""
        return self.db.query(Tenant).filter(Tenant.slug == slug).first()

    def create_tenant(self, name: str, slug: str, creator_user_id: str) -> Tenant:
        """Create a tenant together with its OWNER membership.

        Both rows are committed in one transaction. The slug pre-check gives a
        precise error; the unique constraint still decides concurrent creates.

        Args:
            name: Display name.
            slug: Unique slug.
            creator_user_id: User who becomes OWNER.

        Returns:
            Tenant: Created tenant.

        Raises:
            TenantSlugAlreadyExistsError: If the slug is taken.
        """
        if self.find_by_slug(slug):
            raise TenantSlugAlreadyExistsError(slug)

        tenant = Tenant(name=name, slug=slug)
        tenant.tenant_users.append(TenantUser(user_id=creator_user_id, role=TenantRole.OWNER))
        self.db.add(tenant)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if self.find_by_slug(slug):
                raise TenantSlugAlreadyExistsError(slug) from e
            raise

        self.db.refresh(tenant)
        logger.info(f"Tenant {tenant.id} ({slug}) created by {creator_user_id}")
        return tenant

    def update_tenant(
        self, tenant: Tenant, name: str | None = None, slug: str | None = None
    ) -> Tenant:
        """Update tenant name and/or slug.

        Raises:
            TenantSlugAlreadyExistsError: If the new slug is taken.
        """
        if slug and slug != tenant.slug:
            if self.find_by_slug(slug):
                raise TenantSlugAlreadyExistsError(slug)
            tenant.slug = slug
        if name:
            tenant.name = name

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise TenantSlugAlreadyExistsError(slug or tenant.slug) from e

        self.db.refresh(tenant)
        return tenant

    def delete_tenant(self, tenant_id: str) -> None:
        """Delete a tenant, cascading memberships and invitations.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
        """
        tenant = self.find_by_id(tenant_id)
        if not tenant:
            raise TenantNotFoundError(tenant_id)

        self.db.delete(tenant)
        self.db.commit()
        logger.info(f"Tenant {tenant_id} deleted")

    def list_tenants_for_user(self, user_id: str) -> list[TenantWithRole]:
        """List tenants a user belongs to, newest first.

        Args:
            user_id: User UUID.

        Returns:
            list[TenantWithRole]: Tenants with the user's role and member count.
        """
        member_counts = (
            self.db.query(
                TenantUser.tenant_id.label("tenant_id"),
                func.count(TenantUser.id).label("member_count"),
            )
            .group_by(TenantUser.tenant_id)
            .subquery()
        )

        rows = (
            self.db.query(Tenant, TenantUser.role, member_counts.c.member_count)
            .join(TenantUser, TenantUser.tenant_id == Tenant.id)
            .join(member_counts, member_counts.c.tenant_id == Tenant.id)
            .filter(TenantUser.user_id == user_id)
            .order_by(Tenant.created_at.desc())
            .all()
        )

        return [TenantWithRole(tenant, role, int(count)) for tenant, role, count in rows]

    # --- Memberships ---

    def get_membership(self, user_id: str, tenant_id: str) -> TenantUser | None:
        """Get the membership of a user in a tenant.

        Args:
            user_id: User UUID.
            tenant_id: Tenant UUID.

        Returns:
            TenantUser | None: Membership if the user belongs to the tenant.
        """
        return (
            self.db.query(TenantUser)
            .filter(TenantUser.user_id == user_id, TenantUser.tenant_id == tenant_id)
            .first()
        )

    def list_memberships_for_user(self, user_id: str) -> list[TenantUser]:
        """List a user's memberships, earliest first."""
        return (
            self.db.query(TenantUser)
            .filter(TenantUser.user_id == user_id)
            .order_by(TenantUser.created_at.asc())
            .all()
        )

    def list_members_for_tenant(self, tenant_id: str) -> list[TenantUser]:
        """List memberships of a tenant, oldest first."""
        return (
            self.db.query(TenantUser)
            .options(joinedload(TenantUser.user))
            .filter(TenantUser.tenant_id == tenant_id)
            .order_by(TenantUser.created_at.asc())
            .all()
        )

    def add_member(self, user_id: str, tenant_id: str, role: TenantRole) -> TenantUser:
        """Add a user to a tenant.

        Raises:
            UserAlreadyInTenantError: If a membership already exists.
        """
        if self.get_membership(user_id, tenant_id):
            raise UserAlreadyInTenantError()

        membership = TenantUser(user_id=user_id, tenant_id=tenant_id, role=role)
        self.db.add(membership)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise UserAlreadyInTenantError() from e

        self.db.refresh(membership)
        logger.info(f"User {user_id} added to tenant {tenant_id} as {role.value}")
        return membership

    def update_member_role(self, user_id: str, tenant_id: str, new_role: TenantRole) -> TenantUser:
        """Change the role of an existing member.

        Raises:
            UserNotInTenantError: If the user is not a member.
            CannotModifyOwnerError: If the member is the OWNER.
            CannotSetOwnerRoleError: If new_role is OWNER.
        """
        membership = self.get_membership(user_id, tenant_id)
        if not membership:
            raise UserNotInTenantError()

        ensure_not_owner(membership)
        ensure_assignable_role(new_role)

        membership.role = new_role
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"User {user_id} role in tenant {tenant_id} set to {new_role.value}")
        return membership

    def remove_member(self, user_id: str, tenant_id: str) -> None:
        """Remove a user from a tenant.

        Raises:
            UserNotInTenantError: If the user is not a member.
            CannotModifyOwnerError: If the member is the OWNER.
        """
        membership = self.get_membership(user_id, tenant_id)
        if not membership:
            raise UserNotInTenantError()

        ensure_not_owner(membership)

        self.db.delete(membership)
        self.db.commit()
        logger.info(f"User {user_id} removed from tenant {tenant_id}")

    def upsert_membership(self, user_id: str, tenant_id: str, role: TenantRole) -> TenantUser:
        """Set a user's role in a tenant, creating the membership if needed.

        Only flushes; the caller owns the transaction.

        Raises:
            CannotModifyOwnerError: If the existing membership is the OWNER's.
            CannotSetOwnerRoleError: If role is OWNER.
        """
        ensure_assignable_role(role)

        membership = (
            self.db.query(TenantUser)
            .filter(TenantUser.user_id == user_id, TenantUser.tenant_id == tenant_id)
            .with_for_update()
            .first()
        )
        if membership:
            ensure_not_owner(membership)
            membership.role = role
        else:
            membership = TenantUser(user_id=user_id, tenant_id=tenant_id, role=role)
            self.db.add(membership)

        self.db.flush()
        return membership
