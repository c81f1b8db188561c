"""
Compliance aggregation.

Every obligation is classified exactly once against a prebuilt completion
index, then folded into per-user, per-course and org-wide counters. Folds
are plain sums, so partial folds over any partition of the input merge to
the same result; output rows are sorted by key so the result does not depend
on input order.

Orphaned obligations (no usable course reference, or a reference the course
catalog can no longer resolve) read as Pending, are counted in the user's
``orphaned`` column only, and are left out of every rate denominator.
"""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from functools import reduce
from typing import Callable, Iterable, Optional, Sequence

from .classifier import classify_resolved, days_overdue, is_malformed_ref
from .errors import ValidationError
from .policy import CompliancePolicy
from .types import (
    ComplianceStatus,
    CompletionIndex,
    CourseResolution,
    ObligationSnapshot,
    ObligationState,
    Orphaned,
    Resolved,
    ensure_utc,
)

Resolver = Callable[[Optional[str]], CourseResolution]


def completion_rate(completed: int, assigned: int) -> int:
    """Whole percent, half rounded up; 0 when nothing is assigned."""
    if assigned <= 0:
        return 0
    completed = max(0, min(completed, assigned))
    return (200 * completed + assigned) // (2 * assigned)


@dataclass(frozen=True)
class ClassifiedObligation:
    obligation: ObligationSnapshot
    state: ObligationState
    resolution: Optional[CourseResolution] = None
    completed_at: Optional[datetime] = None
    days_overdue: int = 0

    @property
    def orphaned(self) -> bool:
        return isinstance(self.resolution, Orphaned)


@dataclass
class Counts:
    assigned: int = 0
    completed: int = 0
    overdue: int = 0
    pending: int = 0
    orphaned: int = 0

    def add(self, item: ClassifiedObligation) -> None:
        if item.orphaned:
            self.orphaned += 1
            return
        self.assigned += 1
        if item.state is ObligationState.COMPLETED:
            self.completed += 1
        elif item.state is ObligationState.OVERDUE:
            self.overdue += 1
        else:
            self.pending += 1

    def merge(self, other: "Counts") -> "Counts":
        return Counts(
            assigned=self.assigned + other.assigned,
            completed=self.completed + other.completed,
            overdue=self.overdue + other.overdue,
            pending=self.pending + other.pending,
            orphaned=self.orphaned + other.orphaned,
        )

    @property
    def rate(self) -> int:
        return completion_rate(self.completed, self.assigned)


@dataclass
class PartialFold:
    users: dict[str, Counts] = field(default_factory=lambda: defaultdict(Counts))
    courses: dict[str, Counts] = field(default_factory=lambda: defaultdict(Counts))
    course_info: dict[str, Resolved] = field(default_factory=dict)
    total: Counts = field(default_factory=Counts)

    def add(self, item: ClassifiedObligation) -> None:
        obligation = item.obligation
        self.users[obligation.scope_user_id].add(item)
        self.total.add(item)
        if item.orphaned:
            return
        ref = obligation.course_version_ref
        self.courses[ref].add(item)
        if isinstance(item.resolution, Resolved):
            self.course_info[ref] = item.resolution

    def merge(self, other: "PartialFold") -> "PartialFold":
        merged = PartialFold()
        for source in (self, other):
            for user_id, counts in source.users.items():
                merged.users[user_id] = merged.users[user_id].merge(counts)
            for ref, counts in source.courses.items():
                merged.courses[ref] = merged.courses[ref].merge(counts)
            merged.course_info.update(source.course_info)
        merged.total = self.total.merge(other.total)
        return merged


@dataclass(frozen=True)
class TrainingMatrixRow:
    user_id: str
    assigned: int
    completed: int
    overdue: int
    pending: int
    completion_rate: int
    orphaned: int = 0


@dataclass(frozen=True)
class CourseComplianceRow:
    course_version_ref: str
    assigned: int
    completed: int
    overdue: int
    rate: int
    title: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class OrgComplianceSummary:
    completion_rate: int
    overdue_count: int
    compliance_status: ComplianceStatus
    assigned: int = 0
    completed: int = 0
    pending: int = 0
    orphaned: int = 0
    active_learners: int = 0


@dataclass(frozen=True)
class ReportFilter:
    """Status and completion-date filters for a report.

    When a date range is set, only obligations completed inside it remain.
    """

    status: Optional[ObligationState] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and ensure_utc(self.start) > ensure_utc(self.end):
            raise ValidationError("start must not be after end", field="start")

    @property
    def has_date_range(self) -> bool:
        return self.start is not None or self.end is not None

    def matches(self, item: ClassifiedObligation) -> bool:
        if self.status is not None and item.state is not self.status:
            return False
        if self.has_date_range:
            if item.completed_at is None or item.state is not ObligationState.COMPLETED:
                return False
            if self.start is not None and item.completed_at < ensure_utc(self.start):
                return False
            if self.end is not None and item.completed_at > ensure_utc(self.end):
                return False
        return True


@dataclass(frozen=True)
class AggregateResult:
    matrix: list[TrainingMatrixRow]
    courses: list[CourseComplianceRow]
    org: OrgComplianceSummary
    items: list[ClassifiedObligation]
    warnings: list[dict]

    @property
    def overdue(self) -> list[ClassifiedObligation]:
        return [item for item in self.items if item.state is ObligationState.OVERDUE]


def _created_sort_key(obligation: ObligationSnapshot) -> tuple:
    created = ensure_utc(obligation.created_at)
    return (created is not None, created or datetime.min, obligation.id)


def dedupe_obligations(obligations: Iterable[ObligationSnapshot]) -> tuple[list[ObligationSnapshot], list[dict]]:
    """Keep the latest-created obligation per (org, user, course version)."""
    kept: dict[tuple, ObligationSnapshot] = {}
    dropped: list[ObligationSnapshot] = []
    for obligation in obligations:
        current = kept.get(obligation.key)
        if current is None:
            kept[obligation.key] = obligation
        elif _created_sort_key(obligation) > _created_sort_key(current):
            dropped.append(current)
            kept[obligation.key] = obligation
        else:
            dropped.append(obligation)
    warnings = [
        {
            "code": "duplicate_obligation",
            "obligation_id": obligation.id,
            "kept_obligation_id": kept[obligation.key].id,
        }
        for obligation in sorted(dropped, key=lambda o: o.id)
    ]
    return sorted(kept.values(), key=lambda o: o.id), warnings


def _resolve(obligation: ObligationSnapshot, resolve: Optional[Resolver]) -> Optional[CourseResolution]:
    if is_malformed_ref(obligation.course_version_ref):
        return Orphaned(obligation.course_version_ref)
    if resolve is None:
        return None
    return resolve(obligation.course_version_ref)


def classify_all(
    obligations: Iterable[ObligationSnapshot],
    completion_index: CompletionIndex,
    now: datetime,
    *,
    resolve: Optional[Resolver] = None,
) -> list[ClassifiedObligation]:
    items = []
    for obligation in obligations:
        resolution = _resolve(obligation, resolve)
        has_completion = completion_index.has_completion(obligation.scope_user_id, obligation.course_version_ref)
        state = classify_resolved(obligation, has_completion, now, resolution)
        items.append(
            ClassifiedObligation(
                obligation=obligation,
                state=state,
                resolution=resolution,
                completed_at=completion_index.completed_at(obligation.scope_user_id, obligation.course_version_ref)
                if state is ObligationState.COMPLETED
                else None,
                days_overdue=days_overdue(obligation.due_at, now) if state is ObligationState.OVERDUE else 0,
            )
        )
    return items


def fold(items: Iterable[ClassifiedObligation]) -> PartialFold:
    partial = PartialFold()
    for item in items:
        partial.add(item)
    return partial


def _partition(items: Sequence[ClassifiedObligation], parts: int) -> list[Sequence[ClassifiedObligation]]:
    size = max(1, -(-len(items) // parts))
    return [items[i:i + size] for i in range(0, len(items), size)] or [items]


def summarize(partial: PartialFold, policy: CompliancePolicy) -> tuple[list, list, OrgComplianceSummary]:
    matrix = [
        TrainingMatrixRow(
            user_id=user_id,
            assigned=counts.assigned,
            completed=counts.completed,
            overdue=counts.overdue,
            pending=counts.pending,
            completion_rate=counts.rate,
            orphaned=counts.orphaned,
        )
        for user_id, counts in sorted(partial.users.items())
    ]
    courses = []
    for ref, counts in sorted(partial.courses.items()):
        info = partial.course_info.get(ref)
        courses.append(
            CourseComplianceRow(
                course_version_ref=ref,
                assigned=counts.assigned,
                completed=counts.completed,
                overdue=counts.overdue,
                rate=counts.rate,
                title=info.course.title if info else None,
                category=info.course.category if info else None,
            )
        )
    total = partial.total
    org = OrgComplianceSummary(
        completion_rate=total.rate,
        overdue_count=total.overdue,
        compliance_status=policy.status_for(total.rate, total.overdue),
        assigned=total.assigned,
        completed=total.completed,
        pending=total.pending,
        orphaned=total.orphaned,
        active_learners=sum(1 for counts in partial.users.values() if counts.assigned),
    )
    return matrix, courses, org


def aggregate(
    obligations: Iterable[ObligationSnapshot],
    completion_index: CompletionIndex,
    now: datetime,
    *,
    policy: Optional[CompliancePolicy] = None,
    resolve: Optional[Resolver] = None,
    report_filter: Optional[ReportFilter] = None,
    workers: int = 1,
) -> AggregateResult:
    policy = policy or CompliancePolicy()
    unique, warnings = dedupe_obligations(obligations)
    items = classify_all(unique, completion_index, now, resolve=resolve)

    for item in items:
        if item.orphaned:
            warnings.append(
                {
                    "code": "orphaned_reference",
                    "obligation_id": item.obligation.id,
                    "course_version_ref": item.obligation.course_version_ref,
                }
            )

    if report_filter is not None:
        items = [item for item in items if report_filter.matches(item)]

    if workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            partials = list(pool.map(fold, _partition(items, workers)))
        partial = reduce(PartialFold.merge, partials, PartialFold())
    else:
        partial = fold(items)

    matrix, courses, org = summarize(partial, policy)
    if report_filter is not None:
        matrix = [row for row in matrix if row.assigned or row.orphaned]
        courses = [row for row in courses if row.assigned]
    return AggregateResult(matrix=matrix, courses=courses, org=org, items=items, warnings=warnings)
