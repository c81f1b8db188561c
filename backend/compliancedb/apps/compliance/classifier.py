from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .types import CourseResolution, ObligationSnapshot, ObligationState, Orphaned, ensure_utc

ONE_DAY = timedelta(days=1)


def is_malformed_ref(ref: Optional[str]) -> bool:
    return ref is None or not str(ref).strip()


def classify(obligation: ObligationSnapshot, has_completion: bool, now: datetime) -> ObligationState:
    """
    Lifecycle state of one obligation at ``now``.

    Completion wins over any due date, so a late completion is Completed and
    never reverts to Overdue. An obligation with no usable course reference
    is Pending whatever its due date.
    """
    if has_completion:
        return ObligationState.COMPLETED
    if is_malformed_ref(obligation.course_version_ref):
        return ObligationState.PENDING
    due_at = ensure_utc(obligation.due_at)
    if due_at is not None and due_at < ensure_utc(now):
        return ObligationState.OVERDUE
    return ObligationState.PENDING


def classify_resolved(
    obligation: ObligationSnapshot,
    has_completion: bool,
    now: datetime,
    resolution: Optional[CourseResolution],
) -> ObligationState:
    """Like ``classify`` but an orphaned course reference always reads as Pending."""
    if isinstance(resolution, Orphaned):
        return ObligationState.PENDING
    return classify(obligation, has_completion, now)


def days_overdue(due_at: Optional[datetime], now: datetime) -> int:
    """Whole days past ``due_at``, floored; 0 when there is no due date."""
    due_at = ensure_utc(due_at)
    if due_at is None:
        return 0
    return max(0, (ensure_utc(now) - due_at) // ONE_DAY)
