"""Persistence and lookup of invitation records."""

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session, joinedload

from app.db.models import Invitation, TenantRole, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRE_HOURS = 24


def generate_invitation_token() -> str:
    """Generate a secure invitation token.

    Returns:
        str: 64-character hex token.
    """
    return secrets.token_hex(32)


class InvitationRepository:
    """Invitation store. Holds no authorization logic."""

    def __init__(self, db: Session, expire_hours: int = DEFAULT_EXPIRE_HOURS):
        """Initialize invitation repository.

        Args:
            db: Database session.
            expire_hours: Lifetime of newly created invitations.
        """
        self.db = db
        self.expire_hours = expire_hours

    def _query(self):
        return self.db.query(Invitation).options(
            joinedload(Invitation.tenant), joinedload(Invitation.inviter)
        )

    def create_invitation(
        self, email: str, role: TenantRole, tenant_id: str, invited_by: str
    ) -> Invitation:
        """Create a pending invitation with a fresh token.

        Args:
            email: Invitee email.
            role: Role granted on acceptance.
            tenant_id: Inviting tenant.
            invited_by: Inviting user.

        Returns:
            Invitation: Created invitation with tenant and inviter loaded.
        """
        invitation = Invitation(
            email=email,
            token=generate_invitation_token(),
            role=role,
            expires_at=utcnow() + timedelta(hours=self.expire_hours),
            accepted=False,
            tenant_id=tenant_id,
            invited_by=invited_by,
        )
        self.db.add(invitation)
        self.db.commit()

        logger.info(f"Invitation {invitation.id} created for {email} in tenant {tenant_id}")
        return self.find_by_id(invitation.id)

    def find_by_token(self, token: str, for_update: bool = False) -> Invitation | None:
        """Find an invitation by token.

        Args:
            token: Invitation token.
            for_update: Lock the row and reload it from the database.

        Returns:
            Invitation | None: Invitation if found.
        """
        if for_update:
            return (
                self.db.query(Invitation)
                .filter(Invitation.token == token)
                .populate_existing()
                .with_for_update()
                .first()
            )
        return self._query().filter(Invitation.token == token).first()

    def find_by_id(self, invitation_id: str, for_update: bool = False) -> Invitation | None:
        """Find an invitation by ID.

        Args:
            invitation_id: Invitation UUID.
            for_update: Lock the row and reload it from the database.

        Returns:
            Invitation | None: Invitation if found.
        """
        if for_update:
            return (
                self.db.query(Invitation)
                .filter(Invitation.id == invitation_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
        return self._query().filter(Invitation.id == invitation_id).first()

    def list_pending_for_tenant(self, tenant_id: str) -> list[Invitation]:
        """List not-yet-accepted invitations of a tenant, newest first."""
        return (
            self.db.query(Invitation)
            .options(joinedload(Invitation.inviter))
            .filter(Invitation.tenant_id == tenant_id, Invitation.accepted.is_(False))
            .order_by(Invitation.created_at.desc())
            .all()
        )

    def find_pending_for_email_and_tenant(self, email: str, tenant_id: str) -> Invitation | None:
        """Find the active (not accepted, not expired) invitation for an email.

        Args:
            email: Invitee email.
            tenant_id: Tenant UUID.

        Returns:
            Invitation | None: Active invitation if one exists.
        """
        return (
            self.db.query(Invitation)
            .filter(
                Invitation.email == email,
                Invitation.tenant_id == tenant_id,
                Invitation.accepted.is_(False),
                Invitation.expires_at > utcnow(),
            )
            .first()
        )

    def mark_accepted(self, invitation_id: str, commit: bool = True) -> None:
        """Set accepted=True. Callers must have validated the state already."""
        self.db.query(Invitation).filter(Invitation.id == invitation_id).update(
            {Invitation.accepted: True, Invitation.updated_at: utcnow()},
            synchronize_session="fetch",
        )
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def delete(self, invitation_id: str, commit: bool = True) -> None:
        """Hard delete an invitation."""
        self.db.query(Invitation).filter(Invitation.id == invitation_id).delete(
            synchronize_session="fetch"
        )
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def purge_expired(self, older_than: datetime) -> int:
        """Delete unaccepted invitations that expired before a cutoff.

        Args:
            older_than: Cutoff; aware datetimes are converted to naive UTC.

        Returns:
            int: Number of deleted invitations.
        """
        if older_than.tzinfo is not None:
            older_than = older_than.astimezone(UTC).replace(tzinfo=None)

        deleted = (
            self.db.query(Invitation)
            .filter(Invitation.accepted.is_(False), Invitation.expires_at < older_than)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
