"""Audit trail for invitation and provisioning events."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from opshub.db.models import AuditLog, AuditSeverity

logger = logging.getLogger(__name__)


def record_audit_event(
    db: Session,
    action: str,
    resource: str,
    resource_id: str | None,
    user_id: str | None = None,
    organization_id: str | None = None,
    details: dict[str, Any] | None = None,
    severity: AuditSeverity = AuditSeverity.INFO,
    client: dict[str, str | None] | None = None,
) -> AuditLog | None:
    """Persist an audit log entry.

    Must be called after the audited change has been committed: a failure here
    rolls back the session and is logged, never raised.

    Args:
        db: Database session.
        action: Action name, e.g. "Invitation Created".
        resource: Resource type.
        resource_id: Affected resource ID.
        user_id: Acting user ID.
        organization_id: Organization the action happened in.
        details: Extra JSON-serializable details.
        severity: Severity level.
        client: Caller ip/user agent.

    Returns:
        AuditLog | None: The stored entry, or None if it could not be written.
    """
    payload = dict(details or {})
    if client:
        payload.update(client)
    payload["timestamp"] = datetime.now(UTC).isoformat()

    entry = AuditLog(
        action=action,
        user_id=user_id,
        resource=resource,
        resource_id=resource_id,
        organization_id=organization_id,
        severity=severity,
        details=payload,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to write audit log '{action}' for {resource} {resource_id}: {e}")
        return None

    logger.info(f"Audit: {action} - {resource} {resource_id} - {severity.value}")
    return entry


def list_audit_events(
    db: Session, resource: str, resource_id: str
) -> list[AuditLog]:
    """List audit entries for one resource, oldest first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.resource == resource, AuditLog.resource_id == resource_id)
        .order_by(AuditLog.created_at.asc())
        .all()
    )
