from __future__ import annotations

import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from compliancedb.database import get_db

from . import services

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Reject the call unless it carries ``Bearer <CRON_SECRET>`` (when a secret is set)."""
    secret = os.getenv("CRON_SECRET")
    if not secret:
        return None
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return None


@router.post("/send-reminders", summary="Run one overdue reminder pass")
def send_reminders(
    org_id: Optional[str] = Query(None),
    debounce_days: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    _: None = Depends(require_cron_secret),
):
    window = timedelta(days=debounce_days) if debounce_days is not None else None
    summary = services.run_reminder_pass(
        db,
        now=datetime.now(timezone.utc),
        debounce_window=window,
        org_id=org_id,
    )
    return summary.as_dict()
