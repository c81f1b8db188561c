"""
Shared data model for classification, aggregation and reminders.

Everything here is an immutable snapshot. ORM rows are converted once at the
store boundary so the pure parts of the engine never touch a session.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union


class ObligationState(str, enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    OVERDUE = "Overdue"

    @classmethod
    def _missing_(cls, value):
        # Query strings arrive as "overdue", "completed", ...
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class ComplianceStatus(str, enum.Enum):
    READY = "Ready"
    NEEDS_ATTENTION = "NeedsAttention"
    AT_RISK = "AtRisk"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ObligationSnapshot:
    id: str
    org_id: str
    scope_user_id: str
    course_version_ref: Optional[str]
    due_at: Optional[datetime] = None
    mandatory: bool = True
    created_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str, Optional[str]]:
        return (self.org_id, self.scope_user_id, self.course_version_ref)

    @classmethod
    def from_model(cls, row: Any) -> "ObligationSnapshot":
        return cls(
            id=str(row.id),
            org_id=str(row.org_id),
            scope_user_id=str(row.scope_user_id),
            course_version_ref=row.course_version_ref,
            due_at=ensure_utc(row.due_at),
            mandatory=bool(row.mandatory),
            created_at=ensure_utc(row.created_at),
            reminder_sent_at=ensure_utc(row.reminder_sent_at),
        )


@dataclass(frozen=True)
class CompletionSnapshot:
    id: str
    org_id: str
    user_id: str
    course_version_ref: str
    completed_at: datetime
    passed: bool
    score: Optional[int] = None

    @classmethod
    def from_model(cls, row: Any) -> "CompletionSnapshot":
        return cls(
            id=str(row.id),
            org_id=str(row.org_id),
            user_id=str(row.user_id),
            course_version_ref=row.course_version_ref,
            completed_at=ensure_utc(row.completed_at),
            passed=bool(row.passed),
            score=row.score,
        )


@dataclass(frozen=True)
class CourseInfo:
    ref: str
    title: str
    category: Optional[str] = None
    version: Optional[int] = None


@dataclass(frozen=True)
class Resolved:
    course: CourseInfo


@dataclass(frozen=True)
class Orphaned:
    ref: Optional[str]


CourseResolution = Union[Resolved, Orphaned]


class CompletionIndex:
    """
    Lookup of passed completions keyed by ``(user_id, course_version_ref)``.

    Failed attempts are ignored and repeated passes collapse onto one key, so
    membership is the only thing classification ever asks about. The
    earliest passed ``completed_at`` is kept for date-range filtering.
    """

    def __init__(self, completions: Iterable[CompletionSnapshot] = ()) -> None:
        self._first_pass: dict[tuple[str, str], datetime] = {}
        for completion in completions:
            self.add(completion)

    def add(self, completion: CompletionSnapshot) -> None:
        if not completion.passed or not completion.course_version_ref:
            return
        key = (completion.user_id, completion.course_version_ref)
        completed_at = ensure_utc(completion.completed_at)
        current = self._first_pass.get(key)
        if current is None or (completed_at is not None and completed_at < current):
            self._first_pass[key] = completed_at

    def has_completion(self, user_id: str, course_version_ref: Optional[str]) -> bool:
        if not course_version_ref:
            return False
        return (user_id, course_version_ref) in self._first_pass

    def completed_at(self, user_id: str, course_version_ref: Optional[str]) -> Optional[datetime]:
        if not course_version_ref:
            return None
        return self._first_pass.get((user_id, course_version_ref))

    def __len__(self) -> int:
        return len(self._first_pass)
