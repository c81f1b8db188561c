from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from compliancedb.apps.compliance import aggregator
from compliancedb.apps.compliance.errors import ValidationError
from compliancedb.apps.compliance.policy import CompliancePolicy
from compliancedb.apps.compliance.types import (
    ComplianceStatus,
    CompletionIndex,
    CompletionSnapshot,
    CourseInfo,
    ObligationSnapshot,
    ObligationState,
    Orphaned,
    Resolved,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
NEXT_WEEK = NOW + timedelta(days=7)


def _obligation(ob_id, user="user-1", ref="cv-1", due_at=NEXT_WEEK, created_at=None, org="org-1"):
    return ObligationSnapshot(
        id=ob_id,
        org_id=org,
        scope_user_id=user,
        course_version_ref=ref,
        due_at=due_at,
        created_at=created_at or NOW - timedelta(days=30),
    )


def _completion(comp_id, user="user-1", ref="cv-1", passed=True, completed_at=None):
    return CompletionSnapshot(
        id=comp_id,
        org_id="org-1",
        user_id=user,
        course_version_ref=ref,
        completed_at=completed_at or NOW - timedelta(days=2),
        passed=passed,
        score=90 if passed else 40,
    )


def _org_with(completed: int, overdue: int, pending: int = 0):
    obligations = []
    completions = []
    n = 0
    for _ in range(completed):
        n += 1
        obligations.append(_obligation(f"ob-{n:02d}", user=f"user-{n:02d}", due_at=YESTERDAY))
        completions.append(_completion(f"c-{n:02d}", user=f"user-{n:02d}"))
    for _ in range(overdue):
        n += 1
        obligations.append(_obligation(f"ob-{n:02d}", user=f"user-{n:02d}", due_at=YESTERDAY))
    for _ in range(pending):
        n += 1
        obligations.append(_obligation(f"ob-{n:02d}", user=f"user-{n:02d}", due_at=NEXT_WEEK))
    return obligations, CompletionIndex(completions)


@pytest.mark.parametrize(
    "completed,assigned,expected",
    [(0, 0, 0), (0, 5, 0), (5, 5, 100), (1, 2, 50), (1, 3, 33), (2, 3, 67), (8, 10, 80), (1, 8, 13)],
)
def test_completion_rate_rounds_half_up(completed, assigned, expected):
    assert aggregator.completion_rate(completed, assigned) == expected


def test_completion_rate_is_bounded_integer():
    for assigned in range(0, 40):
        for completed in range(0, assigned + 1):
            rate = aggregator.completion_rate(completed, assigned)
            assert isinstance(rate, int)
            assert 0 <= rate <= 100


def test_scenario_eighty_percent_with_overdue_needs_attention():
    obligations, index = _org_with(completed=8, overdue=2)
    result = aggregator.aggregate(obligations, index, NOW)

    assert result.org.completion_rate == 80
    assert result.org.overdue_count == 2
    assert result.org.compliance_status is ComplianceStatus.NEEDS_ATTENTION


def test_scenario_eighty_percent_without_overdue_is_ready():
    obligations, index = _org_with(completed=8, overdue=0, pending=2)
    result = aggregator.aggregate(obligations, index, NOW)

    assert result.org.completion_rate == 80
    assert result.org.compliance_status is ComplianceStatus.READY


def test_many_overdue_is_at_risk():
    obligations, index = _org_with(completed=20, overdue=6)
    result = aggregator.aggregate(obligations, index, NOW)

    assert result.org.completion_rate == 77
    assert result.org.compliance_status is ComplianceStatus.AT_RISK


def test_low_rate_is_at_risk():
    obligations, index = _org_with(completed=4, overdue=0, pending=6)
    result = aggregator.aggregate(obligations, index, NOW)
    assert result.org.compliance_status is ComplianceStatus.AT_RISK


def test_custom_policy_thresholds():
    obligations, index = _org_with(completed=8, overdue=2)
    policy = CompliancePolicy(ready_min_rate=80, at_risk_max_overdue=1, at_risk_min_rate=50)
    result = aggregator.aggregate(obligations, index, NOW, policy=policy)
    assert result.org.compliance_status is ComplianceStatus.AT_RISK


def test_empty_org_has_zero_rate():
    result = aggregator.aggregate([], CompletionIndex(), NOW)
    assert result.matrix == []
    assert result.courses == []
    assert result.org.completion_rate == 0
    assert result.org.overdue_count == 0


def test_duplicate_passed_completions_count_once():
    obligations = [_obligation("ob-1", due_at=YESTERDAY)]
    index = CompletionIndex(
        [
            _completion("c-1", completed_at=NOW - timedelta(days=3)),
            _completion("c-2", completed_at=NOW - timedelta(days=1)),
        ]
    )
    result = aggregator.aggregate(obligations, index, NOW)

    assert [item.state for item in result.items] == [ObligationState.COMPLETED]
    assert result.matrix[0].assigned == 1
    assert result.matrix[0].completed == 1
    assert result.items[0].completed_at == NOW - timedelta(days=3)


def test_failed_attempt_does_not_complete():
    obligations = [_obligation("ob-1", due_at=YESTERDAY)]
    index = CompletionIndex([_completion("c-1", passed=False)])
    result = aggregator.aggregate(obligations, index, NOW)
    assert result.items[0].state is ObligationState.OVERDUE
    assert result.items[0].days_overdue == 1


def test_result_is_independent_of_input_order():
    obligations = []
    completions = []
    for i in range(40):
        user = f"user-{i % 7}"
        ref = f"cv-{i % 5}"
        due = YESTERDAY if i % 3 else NEXT_WEEK
        obligations.append(_obligation(f"ob-{i:02d}", user=user, ref=ref, due_at=due, created_at=NOW - timedelta(days=i)))
        if i % 4 == 0:
            completions.append(_completion(f"c-{i:02d}", user=user, ref=ref))
    obligations.append(_obligation("ob-orphan", ref=None, due_at=YESTERDAY))

    index = CompletionIndex(completions)
    baseline = aggregator.aggregate(obligations, index, NOW)

    rng = random.Random(7)
    for _ in range(5):
        shuffled = list(obligations)
        rng.shuffle(shuffled)
        assert aggregator.aggregate(shuffled, index, NOW) == baseline


def test_parallel_fold_matches_sequential():
    obligations, index = _org_with(completed=13, overdue=5, pending=9)
    sequential = aggregator.aggregate(obligations, index, NOW)
    parallel = aggregator.aggregate(obligations, index, NOW, workers=4)
    assert parallel.matrix == sequential.matrix
    assert parallel.courses == sequential.courses
    assert parallel.org == sequential.org


def test_partial_folds_merge_to_whole():
    obligations, index = _org_with(completed=3, overdue=2, pending=2)
    items = aggregator.classify_all(obligations, index, NOW)
    whole = aggregator.fold(items)
    merged = aggregator.fold(items[:3]).merge(aggregator.fold(items[3:]))
    assert dict(merged.users) == dict(whole.users)
    assert dict(merged.courses) == dict(whole.courses)
    assert merged.total == whole.total


def test_orphaned_obligations_are_excluded_from_denominators():
    catalog = {"cv-1": CourseInfo(ref="cv-1", title="Fire Safety", category="Safety")}

    def resolve(ref):
        course = catalog.get(ref)
        return Resolved(course) if course else Orphaned(ref)

    obligations = [
        _obligation("ob-1", ref="cv-1", due_at=YESTERDAY),
        _obligation("ob-2", ref="cv-deleted", due_at=YESTERDAY),
        _obligation("ob-3", ref="", due_at=YESTERDAY),
    ]
    index = CompletionIndex([_completion("c-1", ref="cv-1")])
    result = aggregator.aggregate(obligations, index, NOW, resolve=resolve)

    row = result.matrix[0]
    assert (row.assigned, row.completed, row.overdue, row.orphaned) == (1, 1, 0, 2)
    assert row.completion_rate == 100
    assert [course.course_version_ref for course in result.courses] == ["cv-1"]
    assert result.courses[0].title == "Fire Safety"
    assert result.courses[0].category == "Safety"
    assert result.org.orphaned == 2
    assert result.org.overdue_count == 0
    codes = [w["code"] for w in result.warnings]
    assert codes.count("orphaned_reference") == 2
    states = {item.obligation.id: item.state for item in result.items}
    assert states["ob-2"] is ObligationState.PENDING
    assert states["ob-3"] is ObligationState.PENDING


def test_duplicate_obligations_keep_latest_created():
    older = _obligation("ob-old", due_at=YESTERDAY, created_at=NOW - timedelta(days=20))
    newer = _obligation("ob-new", due_at=NEXT_WEEK, created_at=NOW - timedelta(days=2))
    result = aggregator.aggregate([older, newer], CompletionIndex(), NOW)

    assert [item.obligation.id for item in result.items] == ["ob-new"]
    assert result.items[0].state is ObligationState.PENDING
    assert result.warnings == [
        {"code": "duplicate_obligation", "obligation_id": "ob-old", "kept_obligation_id": "ob-new"}
    ]


def test_status_filter_recomputes_and_drops_empty_rows():
    obligations = [
        _obligation("ob-1", user="user-a", ref="cv-1", due_at=YESTERDAY),
        _obligation("ob-2", user="user-b", ref="cv-2", due_at=NEXT_WEEK),
        _obligation("ob-3", user="user-c", ref="cv-1", due_at=YESTERDAY),
    ]
    index = CompletionIndex([_completion("c-1", user="user-c", ref="cv-1")])
    report_filter = aggregator.ReportFilter(status=ObligationState.OVERDUE)
    result = aggregator.aggregate(obligations, index, NOW, report_filter=report_filter)

    assert [row.user_id for row in result.matrix] == ["user-a"]
    assert [row.course_version_ref for row in result.courses] == ["cv-1"]
    assert result.org.overdue_count == 1
    assert result.org.assigned == 1


def test_date_range_filter_keeps_only_completions_in_range():
    obligations = [
        _obligation("ob-1", user="user-a", due_at=YESTERDAY),
        _obligation("ob-2", user="user-b", due_at=YESTERDAY),
        _obligation("ob-3", user="user-c", due_at=NEXT_WEEK),
    ]
    index = CompletionIndex(
        [
            _completion("c-1", user="user-a", completed_at=NOW - timedelta(days=2)),
            _completion("c-2", user="user-b", completed_at=NOW - timedelta(days=20)),
        ]
    )
    report_filter = aggregator.ReportFilter(start=NOW - timedelta(days=7), end=NOW)
    result = aggregator.aggregate(obligations, index, NOW, report_filter=report_filter)

    assert [row.user_id for row in result.matrix] == ["user-a"]
    assert result.org.completion_rate == 100


def test_policy_rejects_out_of_range_threshold():
    with pytest.raises(ValidationError) as excinfo:
        CompliancePolicy(ready_min_rate=120)
    assert excinfo.value.field == "ready_min_rate"
