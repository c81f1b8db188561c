from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def _insert_event(db: Session, **fields) -> models.AuditEvent:
    event = models.AuditEvent(**fields)
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    org_id: str,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Record one audit event inside a savepoint.

    Exports pass ``critical=True`` and fail with the audit write. Reminder
    stamps and settings updates continue without their event; only the
    savepoint is rolled back, the caller's pending work is kept.
    """
    try:
        with db.begin_nested():
            return _insert_event(
                db,
                org_id=org_id,
                actor_user_id=actor_user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                before=before,
                after=after,
                correlation_id=correlation_id,
                metadata_json=metadata,
            )
    except Exception:
        logger.warning(
            "Failed to log audit event",
            extra={"org_id": org_id, "entity": f"{entity_type}:{entity_id}", "action": action, "critical": critical},
        )
        if critical:
            raise
        return None


def list_audit_events(
    db: Session,
    *,
    org_id: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Sequence[models.AuditEvent]:
    query = db.query(models.AuditEvent).filter(models.AuditEvent.org_id == org_id)
    if entity_type:
        query = query.filter(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditEvent.entity_id == entity_id)
    if start:
        query = query.filter(models.AuditEvent.occurred_at >= start)
    if end:
        query = query.filter(models.AuditEvent.occurred_at <= end)
    return query.order_by(models.AuditEvent.occurred_at.desc()).all()
