"""Cron-triggered maintenance routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from app.config import Settings, get_settings
from app.scheduler.invitation_cleanup import DEFAULT_GRACE_HOURS, purge_expired_invitations

router = APIRouter()


@router.post("/purge-invitations")
async def purge_invitations(
    settings: Annotated[Settings, Depends(get_settings)],
    grace_hours: Annotated[int, Query(ge=0)] = DEFAULT_GRACE_HOURS,
    x_cron_secret: Annotated[str | None, Header()] = None,
):
    """Delete long-expired invitations (for cron jobs).

    Args:
        settings: Application settings.
        grace_hours: Keep invitations that expired less than this long ago.
        x_cron_secret: Secret key for authentication.

    Returns:
        dict: Number of deleted invitations.

    Raises:
        HTTPException: If secret key is invalid.
    """
    # Check for cron secret if configured
    if settings.cron_secret_key and x_cron_secret != settings.cron_secret_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )

    return purge_expired_invitations(grace_hours=grace_hours)
