from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from .errors import ValidationError
from .types import CompletionSnapshot, ensure_utc


@dataclass(frozen=True)
class TrendPoint:
    day: date
    count: int


@dataclass(frozen=True)
class CompletionTrend:
    points: list[TrendPoint]
    total: int
    average_per_day: float
    direction: str
    change_percent: int


def completion_trend(completions: Iterable[CompletionSnapshot], now: datetime, *, days: int = 30) -> CompletionTrend:
    """
    Passed completions per UTC day for the ``days`` days ending at ``now``.

    Direction compares the mean of the first half of the window with the mean
    of the second half.
    """
    if days < 2:
        raise ValidationError("days must be at least 2", field="days")

    today = ensure_utc(now).date()
    first_day = today - timedelta(days=days - 1)
    counts = {first_day + timedelta(days=offset): 0 for offset in range(days)}
    for completion in completions:
        if not completion.passed:
            continue
        day = ensure_utc(completion.completed_at).date()
        if day in counts:
            counts[day] += 1

    points = [TrendPoint(day=day, count=count) for day, count in sorted(counts.items())]
    total = sum(point.count for point in points)

    half = days // 2
    first_avg = sum(point.count for point in points[:half]) / half
    second_avg = sum(point.count for point in points[half:]) / (days - half)
    if second_avg > first_avg:
        direction = "up"
    elif second_avg < first_avg:
        direction = "down"
    else:
        direction = "flat"
    if first_avg > 0:
        change_percent = round((second_avg - first_avg) / first_avg * 100)
    else:
        change_percent = 100 if second_avg > 0 else 0

    return CompletionTrend(
        points=points,
        total=total,
        average_per_day=round(total / days, 1),
        direction=direction,
        change_percent=change_percent,
    )
