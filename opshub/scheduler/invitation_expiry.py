"""Invitation expiry sweep."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from opshub.db.database import SessionLocal
from opshub.errors import InternalError
from opshub.invitations.service import expire_stale_invitations

logger = logging.getLogger(__name__)


def expire_all_stale_invitations() -> dict[str, Any]:
    """Mark every pending invitation past its deadline as expired.

    This function is called by the cron endpoint so that stale rows stop
    holding their (email, organization) slot even if nobody reads them.

    Returns:
        dict: Number of invitations expired.

    Raises:
        InternalError: If the store update fails.
    """
    db = SessionLocal()
    try:
        expired = expire_stale_invitations(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Invitation expiry sweep failed: {e}")
        raise InternalError("Failed to expire invitations") from e
    finally:
        db.close()

    if expired:
        logger.info(f"Expired {expired} stale invitation(s)")
    return {"expired": expired}
