"""User profile service layer."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import User
from app.exceptions import UserEmailAlreadyExistsError, UserNoTenantAccessError, UserNotFoundError
from app.tenants.repository import TenantRepository, TenantWithRole
from app.users.repository import UserRepository, normalize_email
from app.users.schemas import UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    """Service class for the authenticated user's own profile."""

    def __init__(self, db: Session):
        """Initialize user service.

        Args:
            db: Database session.
        """
        self.db = db
        self.users = UserRepository(db)
        self.tenants = TenantRepository(db)

    def get_user(self, user_id: str) -> User:
        """Get a user by ID.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        user = self.users.find_by_id(user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    def update_profile(self, user_id: str, data: UserUpdate) -> User:
        """Update names and/or email.

        Args:
            user_id: User ID.
            data: Fields to change; unset fields are left alone.

        Returns:
            User: Updated user.

        Raises:
            UserNotFoundError: If the user does not exist.
            UserEmailAlreadyExistsError: If the email belongs to someone else.
        """
        user = self.get_user(user_id)
        changes = data.model_dump(exclude_unset=True)

        email = changes.get("email")
        if email is not None:
            email = normalize_email(email)
            existing = self.users.find_by_email(email)
            if existing and existing.id != user.id:
                raise UserEmailAlreadyExistsError(email)

        try:
            return self.users.update(user, **changes)
        except IntegrityError as e:
            self.db.rollback()
            if email is None:
                raise
            raise UserEmailAlreadyExistsError(email) from e

    def list_tenants(self, user_id: str) -> list[TenantWithRole]:
        """List the user's tenants, newest first."""
        return self.tenants.list_tenants_for_user(user_id)

    def switch_tenant(self, user_id: str, tenant_id: str) -> TenantWithRole:
        """Check that a tenant can become the user's active tenant.

        Raises:
            UserNoTenantAccessError: If the user is not a member.
        """
        for item in self.tenants.list_tenants_for_user(user_id):
            if item.tenant.id == tenant_id:
                logger.info(f"User {user_id} switched to tenant {tenant_id}")
                return item
        raise UserNoTenantAccessError(tenant_id)
