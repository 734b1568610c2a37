from __future__ import annotations

import logging
import math
import statistics
from typing import List, Sequence

from core.config import AnalysisPreferences, AnalysisWindow
from core.models import Conflict, ConflictSeverity, Event, HealthScore, IssueSeverity, LogisticsIssue
from core.time_utils import get_timezone, slot_duration, total_minutes
from services.timeline import (
    busy_intervals,
    is_weekend,
    localize,
    outside_work_minutes,
    resolve_window,
    split_by_day,
    timed_events,
)

logger = logging.getLogger(__name__)

SEVERITY_PENALTIES: dict[ConflictSeverity, int] = {
    ConflictSeverity.LOW: 5,
    ConflictSeverity.MEDIUM: 10,
    ConflictSeverity.HIGH: 20,
    ConflictSeverity.CRITICAL: 35,
}

OVERSCHEDULE_PENALTY_PER_HOUR = 10
SHORT_GAP_PENALTY = 10
HIGH_LOGISTICS_PENALTY = 10


def clamp_score(value: float) -> float:
    return min(100.0, max(0.0, value))


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def time_utilization_score(
    events: Sequence[Event], preferences: AnalysisPreferences, window: AnalysisWindow | None
) -> float:
    tz = get_timezone(preferences.timezone)
    window = resolve_window(window, events, tz)
    days = window.dates() if window else []
    working_days = max(1, sum(1 for day in days if not is_weekend(day)))
    work_day_minutes = preferences.work_hours.minutes
    available = work_day_minutes * working_days

    scheduled = total_minutes(busy_intervals(events, tz))
    ratio = scheduled / available
    low = preferences.ideal_hours.min_hours * 60 / work_day_minutes
    high = preferences.ideal_hours.max_hours * 60 / work_day_minutes

    if ratio < low:
        return clamp_score(100 * ratio / low)
    if ratio > high:
        overshoot_hours = (ratio - high) * work_day_minutes / 60
        return clamp_score(100 - OVERSCHEDULE_PENALTY_PER_HOUR * overshoot_hours)
    return 100.0


def conflict_management_score(conflicts: Sequence[Conflict]) -> float:
    penalty = sum(SEVERITY_PENALTIES[conflict.severity] for conflict in conflicts)
    return clamp_score(100 - penalty)


def balance_score(events: Sequence[Event], preferences: AnalysisPreferences) -> float:
    tz = get_timezone(preferences.timezone)
    by_day = split_by_day(busy_intervals(events, tz), tz)
    scheduled = sum(total_minutes(intervals) for intervals in by_day.values())
    if not scheduled:
        return 100.0
    outside = sum(
        outside_work_minutes(day, intervals, preferences, tz) for day, intervals in by_day.items()
    )
    return clamp_score(100 * (1 - outside / scheduled))


def gaps_between_events(events: Sequence[Event], preferences: AnalysisPreferences) -> List[int]:
    """Minutes between each timed event and the busy block before it on the same day."""
    tz = get_timezone(preferences.timezone)
    ordered = sorted((localize(event, tz) for event in timed_events(events)))
    gaps: list[int] = []
    latest_end = None
    for start, end in ordered:
        if latest_end is not None and latest_end.date() == start.date():
            gaps.append(max(0, slot_duration(latest_end, start)))
            latest_end = max(latest_end, end)
        else:
            latest_end = end
    return gaps


def buffer_score(
    events: Sequence[Event], issues: Sequence[LogisticsIssue], preferences: AnalysisPreferences
) -> float:
    minimum = preferences.buffer_minutes
    gaps = gaps_between_events(events, preferences)
    high_issues = sum(1 for issue in issues if issue.severity == IssueSeverity.HIGH)
    base = 100.0
    if gaps and minimum > 0:
        base = min(100.0, 100 * statistics.median(gaps) / minimum)
        base -= sum(SHORT_GAP_PENALTY * (minimum - gap) / minimum for gap in gaps if gap < minimum)
    return clamp_score(base - HIGH_LOGISTICS_PENALTY * high_issues)


def score_health(
    conflicts: Sequence[Conflict],
    issues: Sequence[LogisticsIssue],
    events: Sequence[Event],
    preferences: AnalysisPreferences,
    *,
    window: AnalysisWindow | None = None,
) -> HealthScore:
    """Combine the four sub-scores into the overall schedule health."""
    usable = [event for event in events if not event.is_malformed]
    components = {
        "time_utilization": time_utilization_score(usable, preferences, window),
        "conflict_management": conflict_management_score(conflicts),
        "balance": balance_score(usable, preferences),
        "buffer": buffer_score(usable, issues, preferences),
    }
    overall = round_half_up(statistics.fmean(components.values()))
    logger.debug("Health components %s -> %d", components, overall)
    return HealthScore(overall=min(100, max(0, overall)), **components)
