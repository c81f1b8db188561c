from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComplianceSettings(Base):
    """Per-organization overrides of the compliance status policy."""

    __tablename__ = "compliance_settings"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    org_id = Column(String(36), nullable=False, unique=True, index=True)
    ready_min_rate = Column(Integer, nullable=False, default=80)
    at_risk_max_overdue = Column(Integer, nullable=False, default=5)
    at_risk_min_rate = Column(Integer, nullable=False, default=50)
    reminder_debounce_days = Column(Integer, nullable=False, default=3)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
