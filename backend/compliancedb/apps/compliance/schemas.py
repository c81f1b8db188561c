from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .types import ComplianceStatus, ObligationState


class TrainingMatrixRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    assigned: int
    completed: int
    overdue: int
    pending: int
    completion_rate: int
    orphaned: int = 0


class CourseComplianceRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    course_version_ref: str
    title: Optional[str] = None
    category: Optional[str] = None
    assigned: int
    completed: int
    overdue: int
    rate: int


class OrgComplianceSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    completion_rate: int
    overdue_count: int
    compliance_status: ComplianceStatus
    assigned: int
    completed: int
    pending: int
    orphaned: int
    active_learners: int


class ComplianceReportRead(BaseModel):
    org_id: str
    generated_at: datetime
    matrix: list[TrainingMatrixRowRead]
    courses: list[CourseComplianceRowRead]
    org: OrgComplianceSummaryRead
    warnings: list[dict] = Field(default_factory=list)


class ObligationStateRead(BaseModel):
    id: str
    scope_user_id: str
    course_version_ref: Optional[str] = None
    due_at: Optional[datetime] = None
    mandatory: bool
    state: ObligationState
    orphaned: bool = False
    days_overdue: int = 0
    completed_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None


class TrendPointRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    count: int


class CompletionTrendRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    points: list[TrendPointRead]
    total: int
    average_per_day: float
    direction: str
    change_percent: int


class SettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ready_min_rate: int
    at_risk_max_overdue: int
    at_risk_min_rate: int
    reminder_debounce_days: int


class SettingsUpdate(BaseModel):
    ready_min_rate: int = Field(ge=0, le=100)
    at_risk_max_overdue: int = Field(ge=0)
    at_risk_min_rate: int = Field(ge=0, le=100)
    reminder_debounce_days: int = Field(ge=0)
