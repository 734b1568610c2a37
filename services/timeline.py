"""Per-day views of an event list in the user's timezone."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Sequence
from zoneinfo import ZoneInfo

from core.config import AnalysisPreferences, AnalysisWindow
from core.models import Event
from core.time_utils import (
    at_local_time,
    clip_interval,
    day_bounds,
    ensure_timezone,
    merge_intervals,
    total_minutes,
)

Interval = tuple[datetime, datetime]


def localize(event: Event, tz: ZoneInfo) -> Interval:
    return ensure_timezone(event.start, tz), ensure_timezone(event.end, tz)


def with_timezone(event: Event, tz: ZoneInfo) -> Event:
    """Return ``event`` with timezone-aware start and end, reading naive times as ``tz``."""
    if event.start.tzinfo is not None and event.end.tzinfo is not None:
        return event
    start, end = localize(event, tz)
    return event.model_copy(update={"start": start, "end": end})


def timed_events(events: Iterable[Event]) -> List[Event]:
    """Events that occupy real clock time (not all-day, positive duration)."""
    return [event for event in events if not event.all_day and event.end > event.start]


def group_by_day(events: Iterable[Event], tz: ZoneInfo) -> Dict[date, List[Event]]:
    """Bucket events by the local date they start on, each day sorted by start."""
    days: dict[date, list[Event]] = defaultdict(list)
    for event in events:
        days[ensure_timezone(event.start, tz).date()].append(event)
    for day_events in days.values():
        day_events.sort(key=lambda event: (event.start, event.id))
    return dict(days)


def resolve_window(
    window: AnalysisWindow | None, events: Sequence[Event], tz: ZoneInfo
) -> AnalysisWindow | None:
    """Use the given window, or span the local dates the events start on."""
    if window is not None:
        return window
    if not events:
        return None
    starts = [ensure_timezone(event.start, tz).date() for event in events]
    first, last = min(starts), max(starts)
    return AnalysisWindow(start=first, days=(last - first).days + 1)


def work_interval(day: date, preferences: AnalysisPreferences, tz: ZoneInfo) -> Interval:
    return (
        at_local_time(day, preferences.work_hours.start, tz),
        at_local_time(day, preferences.work_hours.end, tz),
    )


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def busy_intervals(events: Iterable[Event], tz: ZoneInfo) -> List[Interval]:
    """Merged busy time of the timed events."""
    return merge_intervals([localize(event, tz) for event in timed_events(events)])


def split_by_day(intervals: Iterable[Interval], tz: ZoneInfo) -> Dict[date, List[Interval]]:
    """Cut intervals at local midnight so each piece belongs to one day."""
    pieces: dict[date, list[Interval]] = defaultdict(list)
    for start, end in intervals:
        day = start.date()
        while True:
            bounds = day_bounds(day, tz)
            piece = clip_interval((start, end), bounds)
            if piece:
                pieces[day].append(piece)
            if end <= bounds[1]:
                break
            day = bounds[1].date()
    return dict(pieces)


def outside_work_minutes(
    day: date, intervals: Sequence[Interval], preferences: AnalysisPreferences, tz: ZoneInfo
) -> int:
    """Minutes of ``intervals`` (all on ``day``) falling outside work hours."""
    scheduled = total_minutes(intervals)
    if is_weekend(day):
        return scheduled
    work = work_interval(day, preferences, tz)
    inside = total_minutes(piece for piece in (clip_interval(iv, work) for iv in intervals) if piece)
    return scheduled - inside
