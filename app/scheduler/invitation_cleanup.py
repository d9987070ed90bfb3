"""Expired invitation cleanup.

Expiry is always checked when an invitation is read, so this job only keeps
the table small; skipping it never lets an expired invitation be accepted.
"""

import logging
from datetime import timedelta
from typing import Any

from app.db.database import SessionLocal
from app.db.models import utcnow
from app.invitations.repository import InvitationRepository

logger = logging.getLogger(__name__)

DEFAULT_GRACE_HOURS = 24 * 7


def purge_expired_invitations(grace_hours: int = DEFAULT_GRACE_HOURS) -> dict[str, Any]:
    """Delete unaccepted invitations that expired more than grace_hours ago.

    This function is called by the cron endpoint.

    Args:
        grace_hours: How long expired invitations are kept before deletion.

    Returns:
        dict: Number of deleted invitations and the cutoff used.
    """
    cutoff = utcnow() - timedelta(hours=grace_hours)
    db = SessionLocal()
    try:
        deleted = InvitationRepository(db).purge_expired(older_than=cutoff)
    finally:
        db.close()

    logger.info(f"Purged {deleted} invitations expired before {cutoff.isoformat()}")
    return {"deleted": deleted, "cutoff": cutoff.isoformat()}
