from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String

from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Obligation(Base):
    """
    A training duty: one course version assigned to one user.

    Group and role assignments are fanned out to individual rows before they
    reach this table. ``reminder_sent_at`` is written only by the reminder
    pass, through a conditional update.
    """

    __tablename__ = "obligations"
    __table_args__ = (
        Index("ix_obligations_org_user_course", "org_id", "scope_user_id", "course_version_ref"),
        Index("ix_obligations_org_due", "org_id", "due_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    org_id = Column(String(36), nullable=False, index=True)
    scope_user_id = Column(String(36), nullable=False, index=True)
    course_version_ref = Column(String(64), nullable=True, index=True)
    due_at = Column(DateTime(timezone=True), nullable=True)
    mandatory = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Obligation id={self.id} user={self.scope_user_id} course={self.course_version_ref}>"


class CompletionRecord(Base):
    """
    Append-only evidence that a user took a course version's assessment.

    Rows are written by the course/quiz workflow; the engine only reads them.
    """

    __tablename__ = "completion_records"
    __table_args__ = (
        Index("ix_completion_records_user_course", "user_id", "course_version_ref"),
        Index("ix_completion_records_org_completed", "org_id", "completed_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    org_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    course_version_ref = Column(String(64), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    score = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<CompletionRecord id={self.id} user={self.user_id} passed={self.passed}>"
