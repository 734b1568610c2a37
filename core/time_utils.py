from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Sequence
from zoneinfo import ZoneInfo


def get_timezone(tz_name: str) -> ZoneInfo:
    """Return a ZoneInfo instance, raising a clear error when invalid."""
    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # pragma: no cover - ZoneInfo raises various subclassed errors
        raise ValueError(f"Invalid timezone '{tz_name}': {exc}") from exc


def ensure_timezone(dt: datetime, tz: ZoneInfo) -> datetime:
    """Ensure a datetime is timezone-aware and localized to the target zone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Return True if two intervals overlap."""
    return max(start, other_start) < min(end, other_end)


def merge_intervals(intervals: Sequence[tuple[datetime, datetime]]) -> List[tuple[datetime, datetime]]:
    """Merge overlapping intervals and return a normalized list."""
    if not intervals:
        return []
    sorted_intervals = sorted(intervals, key=lambda iv: iv[0])
    merged: list[tuple[datetime, datetime]] = [sorted_intervals[0]]
    for current_start, current_end in sorted_intervals[1:]:
        last_start, last_end = merged[-1]
        if current_start <= last_end:
            merged[-1] = (last_start, max(last_end, current_end))
        else:
            merged.append((current_start, current_end))
    return merged


def subtract_intervals(
    window: tuple[datetime, datetime], blocks: Iterable[tuple[datetime, datetime]]
) -> List[tuple[datetime, datetime]]:
    """Return free intervals within a window after removing busy blocks."""
    free: list[tuple[datetime, datetime]] = [window]
    for busy_start, busy_end in merge_intervals(list(blocks)):
        next_free: list[tuple[datetime, datetime]] = []
        for free_start, free_end in free:
            if busy_end <= free_start or busy_start >= free_end:
                next_free.append((free_start, free_end))
            else:
                if busy_start > free_start:
                    next_free.append((free_start, busy_start))
                if busy_end < free_end:
                    next_free.append((busy_end, free_end))
        free = next_free
        if not free:
            break
    return free


def clip_interval(
    interval: tuple[datetime, datetime], window: tuple[datetime, datetime]
) -> tuple[datetime, datetime] | None:
    """Return the part of ``interval`` inside ``window``, or None."""
    start = max(interval[0], window[0])
    end = min(interval[1], window[1])
    if start >= end:
        return None
    return start, end


def at_local_time(day: date, t: time, tz: ZoneInfo) -> datetime:
    """Combine a calendar day and wall-clock time in the given timezone."""
    return datetime.combine(day, t).replace(tzinfo=tz)


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    start = at_local_time(day, time(), tz)
    return start, at_local_time(day + timedelta(days=1), time(), tz)


def slot_duration(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def total_minutes(intervals: Iterable[tuple[datetime, datetime]]) -> int:
    return sum(slot_duration(start, end) for start, end in intervals)
