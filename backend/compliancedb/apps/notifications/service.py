from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from compliancedb.apps.compliance.errors import NotifierError

from . import models, providers


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def send_notification(
    db: Session,
    *,
    org_id: str,
    user_id: str,
    recipient: Optional[str],
    template_key: str,
    data: dict,
    correlation_id: Optional[str],
    notifier: Optional[providers.Notifier] = None,
) -> models.NotificationLog:
    """
    Hand one message to the notifier and record the attempt.

    Raises NotifierError (after logging the attempt) when nothing was
    delivered, either because the provider failed or because no provider is
    configured. The log row is flushed but not committed.
    """
    log = models.NotificationLog(
        org_id=org_id,
        user_id=user_id,
        recipient=recipient,
        template_key=template_key,
        status=models.NotificationStatus.QUEUED,
        context_json=data or {},
        correlation_id=correlation_id,
    )
    db.add(log)
    db.flush()

    if notifier is None:
        notifier, configured = providers.get_notifier()
        if not configured:
            log.status = models.NotificationStatus.SKIPPED_NO_PROVIDER
            log.error = "No provider configured"
            db.flush()
            raise NotifierError("No notifier provider configured", user_id=user_id)

    try:
        notifier.send(
            user_id=user_id,
            recipient=recipient,
            template_key=template_key,
            data=data or {},
            correlation_id=correlation_id,
        )
    except Exception as exc:
        log.status = models.NotificationStatus.FAILED
        log.error = str(exc)
        db.flush()
        raise NotifierError(str(exc), user_id=user_id) from exc

    log.status = models.NotificationStatus.SENT
    log.sent_at = _utcnow()
    db.flush()
    return log
