from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from compliancedb.apps.compliance import classifier
from compliancedb.apps.compliance.types import (
    CourseInfo,
    ObligationSnapshot,
    ObligationState,
    Orphaned,
    Resolved,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _obligation(due_at=None, ref="cv-1") -> ObligationSnapshot:
    return ObligationSnapshot(
        id="ob-1",
        org_id="org-1",
        scope_user_id="user-1",
        course_version_ref=ref,
        due_at=due_at,
    )


@pytest.mark.parametrize(
    "due_at",
    [None, NOW - timedelta(days=3650), NOW - timedelta(seconds=1), NOW, NOW + timedelta(days=30)],
)
def test_completion_always_wins(due_at):
    assert classifier.classify(_obligation(due_at), True, NOW) is ObligationState.COMPLETED


def test_past_due_without_completion_is_overdue():
    state = classifier.classify(_obligation(NOW - timedelta(minutes=1)), False, NOW)
    assert state is ObligationState.OVERDUE


@pytest.mark.parametrize("due_at", [None, NOW, NOW + timedelta(days=1)])
def test_not_yet_due_is_pending(due_at):
    assert classifier.classify(_obligation(due_at), False, NOW) is ObligationState.PENDING


def test_naive_due_date_is_treated_as_utc():
    naive = datetime(2024, 6, 14, 12, 0)
    assert classifier.classify(_obligation(naive), False, NOW) is ObligationState.OVERDUE


@pytest.mark.parametrize("ref", [None, "", "   "])
def test_malformed_ref_is_pending_even_when_past_due(ref):
    obligation = _obligation(NOW - timedelta(days=10), ref=ref)
    assert classifier.classify(obligation, False, NOW) is ObligationState.PENDING


def test_orphaned_resolution_reads_as_pending():
    obligation = _obligation(NOW - timedelta(days=10), ref="cv-gone")
    state = classifier.classify_resolved(obligation, False, NOW, Orphaned("cv-gone"))
    assert state is ObligationState.PENDING


def test_resolved_course_keeps_plain_classification():
    obligation = _obligation(NOW - timedelta(days=10))
    resolution = Resolved(CourseInfo(ref="cv-1", title="Fire Safety"))
    assert classifier.classify_resolved(obligation, False, NOW, resolution) is ObligationState.OVERDUE


def test_scenario_overdue_then_completed_does_not_revert():
    obligation = _obligation(NOW - timedelta(days=1))
    assert classifier.classify(obligation, False, NOW) is ObligationState.OVERDUE

    later = NOW + timedelta(days=5)
    assert classifier.classify(obligation, True, NOW) is ObligationState.COMPLETED
    assert classifier.classify(obligation, True, later) is ObligationState.COMPLETED


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(hours=1), 0),
        (timedelta(hours=23, minutes=59), 0),
        (timedelta(days=1), 1),
        (timedelta(days=4, hours=20), 4),
    ],
)
def test_days_overdue_is_floored(delta, expected):
    assert classifier.days_overdue(NOW - delta, NOW) == expected


def test_days_overdue_without_due_date_is_zero():
    assert classifier.days_overdue(None, NOW) == 0


@pytest.mark.parametrize("raw", ["overdue", "OVERDUE", " Overdue "])
def test_state_accepts_lowercase_query_values(raw):
    assert ObligationState(raw) is ObligationState.OVERDUE
