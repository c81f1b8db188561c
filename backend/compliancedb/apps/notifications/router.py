from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from compliancedb.database import get_read_db

from . import models, schemas


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/{org_id}/logs", response_model=List[schemas.NotificationLogRead])
def list_notification_logs(
    org_id: str,
    status: Optional[models.NotificationStatus] = None,
    template_key: Optional[str] = None,
    user_id: Optional[str] = None,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_read_db),
):
    qs = db.query(models.NotificationLog).filter(models.NotificationLog.org_id == org_id)
    if status:
        qs = qs.filter(models.NotificationLog.status == status)
    if template_key:
        qs = qs.filter(models.NotificationLog.template_key == template_key)
    if user_id:
        qs = qs.filter(models.NotificationLog.user_id == user_id)
    if start:
        qs = qs.filter(models.NotificationLog.created_at >= start)
    if end:
        qs = qs.filter(models.NotificationLog.created_at <= end)
    return qs.order_by(models.NotificationLog.created_at.desc()).all()
