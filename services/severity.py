"""Conflict severity heuristic.

The point tables below are part of the public contract: a conflict earns
points for its size, its overlap length and source diversity, loses one
point when an all-day event is involved, and the total is mapped onto
:class:`ConflictSeverity` through ``SEVERITY_THRESHOLDS``.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Sequence

from core.models import ConflictSeverity, Event

# (minimum events in cluster, points), checked in order
COUNT_POINTS: tuple[tuple[int, int], ...] = ((3, 2), (2, 1))

# (minimum overlap minutes, points), checked in order
OVERLAP_POINTS: tuple[tuple[int, int], ...] = ((60, 3), (30, 2), (15, 1))

ALL_DAY_POINTS = -1

MIN_DISTINCT_SOURCES = 2
SOURCE_DIVERSITY_POINTS = 1

# (minimum score, severity), checked in order; anything lower is LOW
SEVERITY_THRESHOLDS: tuple[tuple[int, ConflictSeverity], ...] = (
    (5, ConflictSeverity.CRITICAL),
    (3, ConflictSeverity.HIGH),
    (1, ConflictSeverity.MEDIUM),
)


def _tiered_points(value: int, table: Sequence[tuple[int, int]]) -> int:
    for minimum, points in table:
        if value >= minimum:
            return points
    return 0


def overlap_minutes(overlap_duration: timedelta) -> int:
    return int(overlap_duration.total_seconds() // 60)


def severity_score(events: Sequence[Event], overlap_duration: timedelta) -> int:
    score = _tiered_points(len(events), COUNT_POINTS)
    score += _tiered_points(overlap_minutes(overlap_duration), OVERLAP_POINTS)
    if any(event.all_day for event in events):
        score += ALL_DAY_POINTS
    if len({event.source for event in events}) >= MIN_DISTINCT_SOURCES:
        score += SOURCE_DIVERSITY_POINTS
    return score


def severity_for_score(score: int) -> ConflictSeverity:
    for minimum, severity in SEVERITY_THRESHOLDS:
        if score >= minimum:
            return severity
    return ConflictSeverity.LOW


def classify(events: Sequence[Event], overlap_duration: timedelta) -> ConflictSeverity:
    """Return the severity of a conflict between ``events``."""
    return severity_for_score(severity_score(events, overlap_duration))
