"""Cron-triggered maintenance routes."""

from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from opshub.config import get_settings

router = APIRouter()


def verify_cron_secret(x_cron_secret: str | None) -> None:
    """Reject the call unless it carries the configured cron secret.

    Args:
        x_cron_secret: Value of the ``X-Cron-Secret`` header.

    Raises:
        HTTPException: If a secret is configured and does not match.
    """
    expected_secret = get_settings().cron_secret_key
    if expected_secret and x_cron_secret != expected_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )


@router.post("/expire-invitations")
async def expire_invitations(
    x_cron_secret: Annotated[str | None, Header()] = None,
):
    """Expire stale pending invitations (for cron jobs).

    Args:
        x_cron_secret: Secret key for authentication.

    Returns:
        dict: Number of invitations expired.
    """
    verify_cron_secret(x_cron_secret)

    # Import here to avoid circular imports
    from opshub.scheduler.invitation_expiry import expire_all_stale_invitations

    return {"success": True, **expire_all_stale_invitations()}
