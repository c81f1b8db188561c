from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .models import NotificationStatus


class NotificationLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    created_at: datetime
    sent_at: Optional[datetime] = None
    user_id: str
    recipient: Optional[str] = None
    template_key: str
    status: NotificationStatus
    error: Optional[str] = None
    context_json: Optional[dict] = None
    correlation_id: Optional[str] = None
