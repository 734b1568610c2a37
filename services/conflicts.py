from __future__ import annotations

import heapq
import logging
from datetime import datetime
from typing import Iterable, List, Sequence

from core.models import Conflict, Event
from services.severity import classify

logger = logging.getLogger(__name__)


def sort_events(events: Iterable[Event]) -> List[Event]:
    """Order events by start time, breaking ties on the event id."""
    return sorted(events, key=lambda event: (event.start, event.id))


def cluster_overlapping(events: Sequence[Event]) -> List[List[Event]]:
    """Group events into maximal chains of pairwise overlaps.

    Zero-duration and malformed events are ignored. Intervals are half-open,
    so an event starting exactly when another ends does not join it.
    """
    candidates = sort_events(event for event in events if event.end > event.start)
    clusters: list[list[Event]] = []
    current: list[Event] = []
    current_end: datetime | None = None

    for event in candidates:
        if current_end is not None and event.start < current_end:
            current.append(event)
            current_end = max(current_end, event.end)
            continue
        if current:
            clusters.append(current)
        current = [event]
        current_end = event.end

    if current:
        clusters.append(current)
    return clusters


def peak_overlap_window(cluster: Sequence[Event]) -> tuple[datetime, datetime]:
    """Return the tightest intersection of the events active at peak overlap.

    ``cluster`` must be sorted by start. The peak is the earliest start at
    which the number of simultaneously active events is highest; at that
    instant the window runs from the latest active start to the earliest
    active end.
    """
    active_ends: list[datetime] = []
    best_count = 0
    best_window: tuple[datetime, datetime] | None = None

    for event in cluster:
        while active_ends and active_ends[0] <= event.start:
            heapq.heappop(active_ends)
        heapq.heappush(active_ends, event.end)
        if len(active_ends) > best_count:
            best_count = len(active_ends)
            best_window = (event.start, active_ends[0])

    if best_window is None:
        raise ValueError("Cannot compute an overlap window for an empty cluster")
    return best_window


def detect_conflicts(events: Sequence[Event]) -> List[Conflict]:
    """Find every conflict cluster among ``events``."""
    conflicts: list[Conflict] = []
    for cluster in cluster_overlapping(events):
        if len(cluster) < 2:
            continue
        overlap_start, overlap_end = peak_overlap_window(cluster)
        conflicts.append(
            Conflict(
                events=cluster,
                overlap_start=overlap_start,
                overlap_end=overlap_end,
                severity=classify(cluster, overlap_end - overlap_start),
            )
        )

    logger.debug("Detected %d conflicts among %d events", len(conflicts), len(events))
    return conflicts
