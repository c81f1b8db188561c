"""
Compliance status policy.

Defaults come from the environment; an organization can override them with a
``compliance_settings`` row.

    Ready           overdue == 0 and rate >= ready_min_rate
    AtRisk          overdue > at_risk_max_overdue or rate < at_risk_min_rate
    NeedsAttention  otherwise
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import ComplianceSettings
from .types import ComplianceStatus

DEFAULT_READY_MIN_RATE = int(os.getenv("COMPLIANCE_READY_MIN_RATE", "80"))
DEFAULT_AT_RISK_MAX_OVERDUE = int(os.getenv("COMPLIANCE_AT_RISK_MAX_OVERDUE", "5"))
DEFAULT_AT_RISK_MIN_RATE = int(os.getenv("COMPLIANCE_AT_RISK_MIN_RATE", "50"))
DEFAULT_REMINDER_DEBOUNCE_DAYS = int(os.getenv("REMINDER_DEBOUNCE_DAYS", "3"))


@dataclass(frozen=True)
class CompliancePolicy:
    ready_min_rate: int = DEFAULT_READY_MIN_RATE
    at_risk_max_overdue: int = DEFAULT_AT_RISK_MAX_OVERDUE
    at_risk_min_rate: int = DEFAULT_AT_RISK_MIN_RATE
    reminder_debounce_days: int = DEFAULT_REMINDER_DEBOUNCE_DAYS

    def __post_init__(self) -> None:
        for name in ("ready_min_rate", "at_risk_min_rate"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValidationError(f"{name} must be between 0 and 100", field=name)
        if self.at_risk_max_overdue < 0:
            raise ValidationError("at_risk_max_overdue must not be negative", field="at_risk_max_overdue")
        if self.reminder_debounce_days < 0:
            raise ValidationError("reminder_debounce_days must not be negative", field="reminder_debounce_days")

    @property
    def debounce_window(self) -> timedelta:
        return timedelta(days=self.reminder_debounce_days)

    def status_for(self, completion_rate: int, overdue_count: int) -> ComplianceStatus:
        if overdue_count == 0 and completion_rate >= self.ready_min_rate:
            return ComplianceStatus.READY
        if overdue_count > self.at_risk_max_overdue or completion_rate < self.at_risk_min_rate:
            return ComplianceStatus.AT_RISK
        return ComplianceStatus.NEEDS_ATTENTION

    def as_dict(self) -> dict:
        return asdict(self)


def _from_row(row: Optional[ComplianceSettings]) -> CompliancePolicy:
    base = CompliancePolicy()
    if row is None:
        return base
    return replace(
        base,
        ready_min_rate=row.ready_min_rate,
        at_risk_max_overdue=row.at_risk_max_overdue,
        at_risk_min_rate=row.at_risk_min_rate,
        reminder_debounce_days=row.reminder_debounce_days,
    )


def load_policy(db: Session, org_id: str) -> CompliancePolicy:
    row = db.query(ComplianceSettings).filter(ComplianceSettings.org_id == org_id).first()
    return _from_row(row)


def save_policy(db: Session, org_id: str, policy: CompliancePolicy) -> ComplianceSettings:
    row = db.query(ComplianceSettings).filter(ComplianceSettings.org_id == org_id).first()
    if row is None:
        row = ComplianceSettings(org_id=org_id)
        db.add(row)
    for key, value in policy.as_dict().items():
        setattr(row, key, value)
    db.flush()
    return row
