from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from core.config import AnalysisPreferences
from core.models import (
    Conflict,
    Event,
    HealthScore,
    IssueSeverity,
    LogisticsIssue,
    Recommendation,
    RecommendationKind,
    ResolutionAction,
)
from core.time_utils import overlaps, slot_duration

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.8
CONFIDENCE_STEP = 0.1
MIN_CONFIDENCE = 0.3
LOGISTICS_CONFIDENCE = 0.8

BREAKS_SCORE_THRESHOLD = 60
BREAKS_CONFIDENCE = 0.6
PERSONAL_TIME_SCORE_THRESHOLD = 60
PERSONAL_TIME_CONFIDENCE = 0.5


def conflict_confidence(event_count: int) -> float:
    """0.8 for a pair, 0.1 less per extra event, never below 0.3."""
    extra = max(0, event_count - 2)
    return round(max(MIN_CONFIDENCE, BASE_CONFIDENCE - CONFIDENCE_STEP * extra), 2)


def _reschedule(conflict: Conflict, confidence: float) -> Recommendation:
    target = max(conflict.events, key=lambda event: (event.start, event.id))
    new_start = max(event.end for event in conflict.events if event.id != target.id)
    others = ", ".join(f"'{event.title}'" for event in conflict.events if event.id != target.id)
    return Recommendation(
        kind=RecommendationKind.RESCHEDULE,
        title=f"Reschedule {target.title}",
        description=f"Move '{target.title}' so it no longer overlaps {others}",
        confidence=confidence,
        conflict_id=conflict.id,
        action=ResolutionAction(
            kind=RecommendationKind.RESCHEDULE,
            event_id=target.id,
            new_start=new_start,
            new_end=new_start + target.duration,
        ),
    )


def _decline(conflict: Conflict, confidence: float) -> Optional[Recommendation]:
    tentative = [event for event in conflict.events if event.tentative]
    if len(tentative) != 1:
        return None
    target = tentative[0]
    return Recommendation(
        kind=RecommendationKind.DECLINE,
        title=f"Decline {target.title}",
        description=f"'{target.title}' is optional and overlaps {len(conflict.events) - 1} other event(s)",
        confidence=confidence,
        conflict_id=conflict.id,
        action=ResolutionAction(kind=RecommendationKind.DECLINE, event_id=target.id),
    )


def _trimmed_interval(event: Event, conflict: Conflict) -> Optional[tuple[datetime, datetime]]:
    """The part of ``event`` left once the overlap window is cut away, if any."""
    if not overlaps(event.start, event.end, conflict.overlap_start, conflict.overlap_end):
        return None
    if event.start < conflict.overlap_start:
        return event.start, conflict.overlap_start
    if event.end > conflict.overlap_end:
        return conflict.overlap_end, event.end
    return None


def _shorten(conflict: Conflict, confidence: float, min_minutes: int) -> Optional[Recommendation]:
    candidates = sorted(
        (event for event in conflict.events if event.duration_minutes > min_minutes),
        key=lambda event: (event.duration, event.id),
        reverse=True,
    )
    for target in candidates:
        trimmed = _trimmed_interval(target, conflict)
        if trimmed is not None:
            break
    else:
        return None

    new_start, new_end = trimmed
    cut = target.duration_minutes - slot_duration(new_start, new_end)
    return Recommendation(
        kind=RecommendationKind.SHORTEN,
        title=f"Shorten {target.title}",
        description=f"Trim '{target.title}' by {cut} minutes to clear the overlap",
        confidence=confidence,
        conflict_id=conflict.id,
        action=ResolutionAction(
            kind=RecommendationKind.SHORTEN,
            event_id=target.id,
            new_start=new_start,
            new_end=new_end,
        ),
    )


def recommendations_for_conflict(conflict: Conflict, preferences: AnalysisPreferences) -> List[Recommendation]:
    confidence = conflict_confidence(len(conflict.events))
    candidates = (
        _reschedule(conflict, confidence),
        _decline(conflict, confidence),
        _shorten(conflict, confidence, preferences.shorten_min_minutes),
    )
    return [recommendation for recommendation in candidates if recommendation is not None]


def recommendation_for_issue(issue: LogisticsIssue) -> Recommendation:
    target = issue.to_event
    shift = timedelta(minutes=issue.shortfall_minutes)
    return Recommendation(
        kind=RecommendationKind.RESCHEDULE,
        title=f"Reschedule {target.title}",
        description=issue.suggestion,
        confidence=LOGISTICS_CONFIDENCE,
        issue_id=issue.id,
        action=ResolutionAction(
            kind=RecommendationKind.RESCHEDULE,
            event_id=target.id,
            new_start=target.start + shift,
            new_end=target.end + shift,
        ),
    )


def recommendations_for_health(health: HealthScore) -> List[Recommendation]:
    recommendations: list[Recommendation] = []
    if health.buffer < BREAKS_SCORE_THRESHOLD:
        recommendations.append(
            Recommendation(
                kind=RecommendationKind.ADD_BREAKS,
                title="Schedule break time",
                description="Gaps between events are shorter than your buffer. Consider adding breaks.",
                confidence=BREAKS_CONFIDENCE,
            )
        )
    if health.balance < PERSONAL_TIME_SCORE_THRESHOLD:
        recommendations.append(
            Recommendation(
                kind=RecommendationKind.PROTECT_PERSONAL_TIME,
                title="Protect personal time",
                description="A large share of your schedule falls outside work hours or on weekends.",
                confidence=PERSONAL_TIME_CONFIDENCE,
            )
        )
    return recommendations


def generate_recommendations(
    conflicts: Sequence[Conflict],
    issues: Sequence[LogisticsIssue],
    health: HealthScore,
    preferences: AnalysisPreferences | None = None,
) -> List[Recommendation]:
    """Turn analysis findings into suggested actions.

    Entries are not deduplicated: a conflict and a logistics issue touching
    the same event both produce recommendations.
    """
    preferences = preferences or AnalysisPreferences()
    recommendations: list[Recommendation] = []
    for conflict in conflicts:
        recommendations.extend(recommendations_for_conflict(conflict, preferences))
    for issue in issues:
        if issue.severity == IssueSeverity.HIGH:
            recommendations.append(recommendation_for_issue(issue))
    recommendations.extend(recommendations_for_health(health))
    logger.debug("Generated %d recommendations", len(recommendations))
    return recommendations
