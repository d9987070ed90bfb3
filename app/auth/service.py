"""Authentication service layer: Keycloak user sync and password reset."""

import logging
import re
import secrets
import string
from typing import NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.keycloak import KeycloakAdminClient
from app.db.models import TenantRole, User
from app.exceptions import (
    IdentityProviderError,
    TenantSlugAlreadyExistsError,
    UserEmailAlreadyExistsError,
)
from app.tenants.repository import TenantRepository
from app.users.repository import UserRepository, normalize_email

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = (
    "If a user with this email exists, a password reset email has been sent."
)

SLUG_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SLUG_SUFFIX_LENGTH = 6
SLUG_ATTEMPTS = 3


class SyncedUser(NamedTuple):
    """Local user resolved from a token, with the tenant to act in."""

    user: User
    tenant_id: str


def generate_workspace_name(
    first_name: str | None, last_name: str | None, email: str | None
) -> str:
    """Name for a tenant created automatically on first login.

    Args:
        first_name: Given name from the token.
        last_name: Family name from the token.
        email: Email from the token.

    Returns:
        str: Workspace name.
    """
    if first_name and last_name:
        return f"{first_name} {last_name}'s Workspace"
    if first_name:
        return f"{first_name}'s Workspace"
    if email:
        return f"{email.split('@')[0]}'s Workspace"
    return "My Workspace"


def generate_workspace_slug(email: str) -> str:
    """Create a URL-friendly slug from the email local part plus a random suffix.

    Args:
        email: Email address.

    Returns:
        str: Slug such as ``jane-doe-x7k2p9``.
    """
    slug = email.split("@")[0].lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = slug.strip("-") or "workspace"
    suffix = "".join(secrets.choice(SLUG_SUFFIX_ALPHABET) for _ in range(SLUG_SUFFIX_LENGTH))
    # Keep within the 50 character slug limit
    return f"{slug[:50 - SLUG_SUFFIX_LENGTH - 1].rstrip('-')}-{suffix}"


class KeycloakSyncService:
    """Keep local user records in step with Keycloak identities."""

    def __init__(self, db: Session):
        """Initialize sync service.

        Args:
            db: Database session.
        """
        self.db = db
        self.users = UserRepository(db)
        self.tenants = TenantRepository(db)

    def sync_user(
        self,
        keycloak_id: str,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Find, link or create the local user for a Keycloak identity.

        Email is always taken from Keycloak; names only fill empty local
        values.

        Args:
            keycloak_id: Keycloak user ID (sub claim).
            email: User email.
            first_name: Optional first name from Keycloak.
            last_name: Optional last name from Keycloak.

        Returns:
            User: Local user.

        Raises:
            UserEmailAlreadyExistsError: If the email belongs to another local user.
        """
        user = self.users.find_by_keycloak_id(keycloak_id)
        if user:
            changes = {}
            if user.email != normalize_email(email):
                holder = self.users.find_by_email(email)
                if holder and holder.id != user.id:
                    logger.warning(
                        f"Keycloak email {email} for user {user.id} belongs to user {holder.id}"
                    )
                    raise UserEmailAlreadyExistsError(normalize_email(email))
                changes["email"] = email
            if not user.first_name and first_name:
                changes["first_name"] = first_name
            if not user.last_name and last_name:
                changes["last_name"] = last_name
            if changes:
                logger.info(f"Updating user from Keycloak: {email}")
                user = self._update(user, email, **changes)
            return user

        # Existing local user without a Keycloak link, e.g. created by an invitation
        user = self.users.find_by_email(email)
        if user:
            logger.info(f"Linking existing user to Keycloak: {email}")
            return self._update(user, email, keycloak_id=keycloak_id)

        logger.info(f"Creating new user from Keycloak: {email}")
        try:
            return self.users.create(
                email=email,
                first_name=first_name or None,
                last_name=last_name or None,
                keycloak_id=keycloak_id,
            )
        except IntegrityError as e:
            self.db.rollback()
            # A concurrent first login for the same identity got there first
            user = self.users.find_by_keycloak_id(keycloak_id)
            if user:
                logger.info(f"User for {email} was created concurrently, reusing it")
                return user
            raise UserEmailAlreadyExistsError(normalize_email(email)) from e

    def _update(self, user: User, email: str, /, **changes) -> User:
        try:
            return self.users.update(user, **changes)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Keycloak sync for {email} hit a unique constraint: {e.orig}")
            raise UserEmailAlreadyExistsError(normalize_email(email)) from e

    def sync_user_with_auto_tenant(
        self,
        keycloak_id: str,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> SyncedUser:
        """Sync a user and make sure they belong to at least one tenant.

        Prefers a tenant the user owns, then their earliest membership. A user
        without any membership gets a new workspace they own.

        Returns:
            SyncedUser: User and the tenant to use.
        """
        user = self.sync_user(keycloak_id, email, first_name, last_name)

        memberships = self.tenants.list_memberships_for_user(user.id)
        if memberships:
            owned = next((m for m in memberships if m.role == TenantRole.OWNER), None)
            tenant_id = (owned or memberships[0]).tenant_id
            logger.debug(f"User {email} has existing tenants, using tenant {tenant_id}")
            return SyncedUser(user, tenant_id)

        logger.info(f"Creating automatic tenant for new Keycloak user: {email}")
        name = generate_workspace_name(first_name, last_name, email)

        for attempt in range(1, SLUG_ATTEMPTS + 1):
            try:
                tenant = self.tenants.create_tenant(
                    name=name, slug=generate_workspace_slug(email), creator_user_id=user.id
                )
                break
            except TenantSlugAlreadyExistsError:
                if attempt == SLUG_ATTEMPTS:
                    raise
                logger.warning(f"Workspace slug collision for {email}, retrying")

        logger.info(f"Tenant {tenant.id} ({tenant.name}) created for user {email}")
        return SyncedUser(user, tenant.id)


class AuthService:
    """Service class for authentication operations not handled by Keycloak itself."""

    def __init__(self, db: Session, keycloak_admin: KeycloakAdminClient):
        """Initialize auth service.

        Args:
            db: Database session.
            keycloak_admin: Keycloak admin API client.
        """
        self.db = db
        self.users = UserRepository(db)
        self.keycloak_admin = keycloak_admin

    def request_password_reset(self, email: str) -> str:
        """Trigger a Keycloak password reset email.

        The returned message is identical whether or not the account exists.

        Args:
            email: Email address entered by the user.

        Returns:
            str: Message to show the user.
        """
        user = self.users.find_by_email(email)
        if not user or not user.keycloak_id:
            return PASSWORD_RESET_MESSAGE

        if not self.keycloak_admin.is_configured():
            logger.warning("Password reset requested but Keycloak admin is not configured")
            return PASSWORD_RESET_MESSAGE

        try:
            self.keycloak_admin.send_reset_password(user.keycloak_id)
        except IdentityProviderError as e:
            logger.error(f"Failed to send reset password email for user {user.id}: {e}")

        return PASSWORD_RESET_MESSAGE
