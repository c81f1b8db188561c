from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, Index, JSON, String, Text

from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED_NO_PROVIDER = "SKIPPED_NO_PROVIDER"


class NotificationLog(Base):
    """One row per attempt to hand a templated message to the notifier."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        Index("ix_notification_logs_org_created", "org_id", "created_at"),
        Index("ix_notification_logs_org_status", "org_id", "status"),
        Index("ix_notification_logs_org_template", "org_id", "template_key"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    org_id = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    user_id = Column(String(36), nullable=False, index=True)
    recipient = Column(String(255), nullable=True)
    template_key = Column(String(128), nullable=False)
    status = Column(
        SAEnum(NotificationStatus, name="notification_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    error = Column(Text, nullable=True)
    context_json = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<NotificationLog id={self.id} user={self.user_id} status={self.status}>"
