"""Recurring schedule shapes over a multi-day history window.

Each rule looks at the window one local day at a time, yields a per-day
series (0 best, 1 worst) and decides on its own whether it fires. Rules run
in ``PATTERN_RULES`` order and each contributes at most one pattern.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from core.config import AnalysisPreferences, AnalysisWindow
from core.models import Event, Pattern, PatternCategory
from core.time_utils import at_local_time, clip_interval, get_timezone, slot_duration, subtract_intervals
from services.timeline import (
    Interval,
    busy_intervals,
    group_by_day,
    localize,
    outside_work_minutes,
    resolve_window,
    split_by_day,
    timed_events,
    work_interval,
)

logger = logging.getLogger(__name__)

BACK_TO_BACK_MAX_GAP_MINUTES = 30
BACK_TO_BACK_MIN_STREAK = 4
NO_LUNCH_MIN_DAYS = 3
OVERLOAD_EVENTS_PER_DAY = 5
OVERLOAD_SCALE = 10
AFTER_HOURS_MIN_DAYS = 2


@dataclass(frozen=True)
class PatternContext:
    days: List[date]
    events_by_day: Dict[date, List[Event]]
    busy_by_day: Dict[date, List[Interval]]
    preferences: AnalysisPreferences
    tz: ZoneInfo


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def _longest_run(flags: Sequence[bool]) -> int:
    longest = current = 0
    for flag in flags:
        current = current + 1 if flag else 0
        longest = max(longest, current)
    return longest


def _work_transitions(day: date, events: Sequence[Event], ctx: PatternContext) -> List[int]:
    """Gap in minutes before each work-hour event that follows another one."""
    work = work_interval(day, ctx.preferences, ctx.tz)
    clipped = []
    for event in timed_events(events):
        piece = clip_interval(localize(event, ctx.tz), work)
        if piece:
            clipped.append(piece)
    clipped.sort()

    gaps: list[int] = []
    latest_end = None
    for start, end in clipped:
        if latest_end is not None:
            gaps.append(max(0, slot_duration(latest_end, start)))
            latest_end = max(latest_end, end)
        else:
            latest_end = end
    return gaps


def back_to_back_rule(ctx: PatternContext) -> Optional[Pattern]:
    series: list[float] = []
    qualifying: list[bool] = []
    for day in ctx.days:
        gaps = _work_transitions(day, ctx.events_by_day.get(day, []), ctx)
        tight = sum(1 for gap in gaps if gap <= BACK_TO_BACK_MAX_GAP_MINUTES)
        series.append(clamp_unit(tight / len(gaps)) if gaps else 0.0)
        qualifying.append(bool(gaps) and tight == len(gaps))

    streak = _longest_run(qualifying)
    if streak < BACK_TO_BACK_MIN_STREAK:
        return None
    hours = ctx.preferences.work_hours
    return Pattern(
        category=PatternCategory.BACK_TO_BACK,
        title="Back-to-back days",
        description=(
            f"{streak} consecutive days without a break longer than "
            f"{BACK_TO_BACK_MAX_GAP_MINUTES} minutes between "
            f"{hours.start:%H:%M} and {hours.end:%H:%M}"
        ),
        data_points=series,
    )


def no_lunch_rule(ctx: PatternContext) -> Optional[Pattern]:
    lunch = ctx.preferences.lunch
    series: list[float] = []
    missed = 0
    for day in ctx.days:
        busy = ctx.busy_by_day.get(day, [])
        if not busy:
            series.append(0.0)
            continue
        window = (at_local_time(day, lunch.start, ctx.tz), at_local_time(day, lunch.end, ctx.tz))
        free = subtract_intervals(window, busy)
        longest = max((slot_duration(start, end) for start, end in free), default=0)
        series.append(clamp_unit(1 - longest / lunch.min_minutes))
        if longest < lunch.min_minutes:
            missed += 1

    if missed < NO_LUNCH_MIN_DAYS:
        return None
    return Pattern(
        category=PatternCategory.NO_LUNCH,
        title="Skipped lunch breaks",
        description=(
            f"{missed} days without a free {lunch.min_minutes}-minute block "
            f"between {lunch.start:%H:%M} and {lunch.end:%H:%M}"
        ),
        data_points=series,
    )


def meeting_overload_rule(ctx: PatternContext) -> Optional[Pattern]:
    counts = [len(ctx.events_by_day.get(day, [])) for day in ctx.days]
    average = sum(counts) / len(ctx.days)
    if average <= OVERLOAD_EVENTS_PER_DAY:
        return None
    return Pattern(
        category=PatternCategory.MEETING_OVERLOAD,
        title="High meeting volume",
        description=f"Averaging {average:.1f} events per day",
        data_points=[clamp_unit(count / OVERLOAD_SCALE) for count in counts],
    )


def after_hours_rule(ctx: PatternContext) -> Optional[Pattern]:
    series: list[float] = []
    affected = 0
    for day in ctx.days:
        busy = ctx.busy_by_day.get(day, [])
        scheduled = sum(slot_duration(start, end) for start, end in busy)
        if not scheduled:
            series.append(0.0)
            continue
        outside = outside_work_minutes(day, busy, ctx.preferences, ctx.tz)
        series.append(clamp_unit(outside / scheduled))
        if outside > 0:
            affected += 1

    if affected < AFTER_HOURS_MIN_DAYS:
        return None
    return Pattern(
        category=PatternCategory.AFTER_HOURS,
        title="Working outside hours",
        description=f"{affected} days with events outside work hours or on weekends",
        data_points=series,
    )


PATTERN_RULES: tuple[Callable[[PatternContext], Optional[Pattern]], ...] = (
    back_to_back_rule,
    no_lunch_rule,
    meeting_overload_rule,
    after_hours_rule,
)


def detect_patterns(
    history: Sequence[Event],
    preferences: AnalysisPreferences,
    *,
    window: AnalysisWindow | None = None,
) -> List[Pattern]:
    """Evaluate every pattern rule over ``history``."""
    tz = get_timezone(preferences.timezone)
    usable = [event for event in history if not event.is_malformed]
    resolved = resolve_window(window, usable, tz)
    if resolved is None:
        return []

    ctx = PatternContext(
        days=resolved.dates(),
        events_by_day=group_by_day(usable, tz),
        busy_by_day=split_by_day(busy_intervals(usable, tz), tz),
        preferences=preferences,
        tz=tz,
    )
    patterns = [pattern for pattern in (rule(ctx) for rule in PATTERN_RULES) if pattern is not None]
    logger.debug("Detected %d patterns over %d days", len(patterns), len(ctx.days))
    return patterns
