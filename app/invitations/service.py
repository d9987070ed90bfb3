"""Invitation lifecycle: create, list, cancel, inspect and accept.

An invitation is pending until accepted (terminal). Expiry is computed from
``expires_at`` whenever it is read, and cancellation deletes the row. No
invitation is kept unless its email was delivered.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import Invitation, Tenant, TenantRole, User
from app.exceptions import (
    AppError,
    CannotCancelAcceptedInvitationError,
    ConflictError,
    InvitationAlreadyAcceptedError,
    InvitationExpiredError,
    InvitationNotBelongToTenantError,
    InvitationNotFoundError,
    InvitationSendFailedError,
    PendingInvitationExistsError,
    TenantNotFoundError,
    UserAlreadyMemberError,
)
from app.invitations.repository import DEFAULT_EXPIRE_HOURS, InvitationRepository
from app.tenants.permissions import TenantAction, authorize, ensure_assignable_role
from app.tenants.repository import TenantRepository
from app.users.repository import UserRepository, normalize_email

logger = logging.getLogger(__name__)


class InvitationMailer(Protocol):
    """Anything able to deliver an invitation email."""

    def send_invitation_email(
        self,
        to_email: str,
        tenant_name: str,
        inviter_name: str,
        invitation_link: str,
        expires_hours: int | None = None,
    ) -> bool: ...


@dataclass
class AcceptedInvitation:
    """Outcome of accepting an invitation."""

    user: User
    tenant: Tenant
    role: TenantRole


def build_invitation_link(base_url: str, token: str) -> str:
    """Embed a token in the acceptance page URL.

    Args:
        base_url: Acceptance page URL, possibly with a query string.
        token: Invitation token.

    Returns:
        str: Link sent to the invitee.
    """
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}token={token}"


def ensure_acceptable(invitation: Invitation | None) -> Invitation:
    """Check that an invitation exists, is not accepted and has not expired.

    Raises:
        InvitationNotFoundError: If the invitation does not exist.
        InvitationAlreadyAcceptedError: If it was already accepted.
        InvitationExpiredError: If it has expired.
    """
    if invitation is None:
        raise InvitationNotFoundError()
    if invitation.accepted:
        raise InvitationAlreadyAcceptedError()
    if invitation.is_expired():
        raise InvitationExpiredError()
    return invitation


class InvitationService:
    """Service class for the invitation lifecycle."""

    def __init__(
        self,
        db: Session,
        mailer: InvitationMailer,
        invitation_base_url: str,
        expire_hours: int = DEFAULT_EXPIRE_HOURS,
    ):
        """Initialize invitation service.

        Args:
            db: Database session.
            mailer: Collaborator delivering invitation emails.
            invitation_base_url: Acceptance page URL used in links.
            expire_hours: Lifetime of new invitations.
        """
        self.db = db
        self.mailer = mailer
        self.invitation_base_url = invitation_base_url
        self.expire_hours = expire_hours
        self.tenants = TenantRepository(db)
        self.invitations = InvitationRepository(db, expire_hours=expire_hours)
        self.users = UserRepository(db)

    def create_invitation(
        self,
        tenant_id: str,
        email: str,
        role: TenantRole,
        invited_by: str,
    ) -> Invitation:
        """Create an invitation and email it to the invitee.

        Args:
            tenant_id: Inviting tenant.
            email: Invitee email.
            role: Role granted on acceptance.
            invited_by: ID of the OWNER/ADMIN sending the invitation.

        Returns:
            Invitation: Created invitation.

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is not OWNER/ADMIN.
            TenantNotFoundError: If the tenant does not exist.
            CannotSetOwnerRoleError: If role is OWNER.
            UserAlreadyMemberError: If the email already belongs to a member.
            PendingInvitationExistsError: If an active invitation exists.
            InvitationSendFailedError: If the email could not be delivered.
        """
        authorize(self.tenants.get_membership(invited_by, tenant_id), TenantAction.MANAGE_INVITATIONS)

        tenant = self.tenants.find_by_id(tenant_id)
        if not tenant:
            raise TenantNotFoundError(tenant_id)

        ensure_assignable_role(role)
        email = normalize_email(email)

        existing_user = self.users.find_by_email(email)
        if existing_user and self.tenants.get_membership(existing_user.id, tenant_id):
            raise UserAlreadyMemberError()

        if self.invitations.find_pending_for_email_and_tenant(email, tenant_id):
            raise PendingInvitationExistsError()

        invitation = self.invitations.create_invitation(
            email=email, role=role, tenant_id=tenant_id, invited_by=invited_by
        )

        try:
            sent = self.mailer.send_invitation_email(
                to_email=invitation.email,
                tenant_name=tenant.name,
                inviter_name=invitation.inviter_display_name(),
                invitation_link=build_invitation_link(self.invitation_base_url, invitation.token),
                expires_hours=self.expire_hours,
            )
        except Exception as e:
            self._discard(invitation, str(e))
            raise InvitationSendFailedError() from e

        if not sent:
            self._discard(invitation, "mail sender reported failure")
            raise InvitationSendFailedError()

        return invitation

    def _discard(self, invitation: Invitation, reason: str) -> None:
        """Compensate a failed delivery by deleting the invitation."""
        logger.error(
            f"Invitation email to {invitation.email} failed ({reason}); "
            f"deleting invitation {invitation.id}"
        )
        self.invitations.delete(invitation.id)

    def list_invitations(self, tenant_id: str, caller_id: str) -> list[Invitation]:
        """List pending invitations of a tenant.

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is not OWNER/ADMIN.
        """
        authorize(self.tenants.get_membership(caller_id, tenant_id), TenantAction.MANAGE_INVITATIONS)
        return self.invitations.list_pending_for_tenant(tenant_id)

    def cancel_invitation(self, tenant_id: str, invitation_id: str, caller_id: str) -> None:
        """Cancel (delete) a pending invitation.

        The invitation is re-read under a row lock so a concurrent acceptance
        either wins or observes the deletion.

        Raises:
            TenantAccessDeniedError: If the caller is not a member.
            InsufficientTenantPermissionsError: If the caller is not OWNER/ADMIN.
            InvitationNotFoundError: If the invitation does not exist.
            InvitationNotBelongToTenantError: If it belongs to another tenant.
            CannotCancelAcceptedInvitationError: If it was already accepted.
        """
        authorize(self.tenants.get_membership(caller_id, tenant_id), TenantAction.MANAGE_INVITATIONS)

        try:
            invitation = self.invitations.find_by_id(invitation_id, for_update=True)
            if not invitation:
                raise InvitationNotFoundError()
            if invitation.tenant_id != tenant_id:
                raise InvitationNotBelongToTenantError()
            if invitation.accepted:
                raise CannotCancelAcceptedInvitationError()
        except AppError:
            self.db.rollback()
            raise

        self.invitations.delete(invitation.id)
        logger.info(f"Invitation {invitation_id} cancelled by {caller_id}")

    def get_invitation_by_token(self, token: str) -> Invitation:
        """Get a still-acceptable invitation for display before acceptance.

        Raises:
            InvitationNotFoundError: If the token is unknown.
            InvitationAlreadyAcceptedError: If it was already accepted.
            InvitationExpiredError: If it has expired.
        """
        return ensure_acceptable(self.invitations.find_by_token(token))

    def accept_invitation(self, token: str) -> AcceptedInvitation:
        """Accept an invitation, granting its role to the invitee.

        Resolving or creating the user, upserting the membership and marking
        the invitation accepted all commit together.

        Args:
            token: Invitation token.

        Returns:
            AcceptedInvitation: Resulting user, tenant and role.

        Raises:
            InvitationNotFoundError: If the token is unknown.
            InvitationAlreadyAcceptedError: If it was already accepted.
            InvitationExpiredError: If it has expired.
            CannotModifyOwnerError: If the invitee is the tenant OWNER.
            ConflictError: If a concurrent change prevented acceptance.
        """
        try:
            invitation = ensure_acceptable(self.invitations.find_by_token(token, for_update=True))

            user = self.users.find_by_email(invitation.email)
            if user is None:
                user = self.users.create(invitation.email, commit=False)
                logger.info(f"Created user {user.id} for invited email {invitation.email}")

            membership = self.tenants.upsert_membership(
                user.id, invitation.tenant_id, invitation.role
            )
            self.invitations.mark_accepted(invitation.id, commit=False)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Report the state the competing request left behind
            ensure_acceptable(self.invitations.find_by_token(token))
            raise ConflictError(
                "Invitation could not be accepted because of a concurrent change"
            ) from e
        except AppError:
            self.db.rollback()
            raise

        logger.info(
            f"Invitation {invitation.id} accepted: user {user.id} is "
            f"{membership.role.value} in tenant {invitation.tenant_id}"
        )

        tenant = self.tenants.find_by_id(invitation.tenant_id)
        return AcceptedInvitation(user=user, tenant=tenant, role=membership.role)
