from __future__ import annotations

import logging
from typing import List, Sequence

from core.models import Event, IssueSeverity, LogisticsIssue
from core.time_utils import slot_duration
from services.conflicts import sort_events
from services.travel import TravelTimeEstimator

logger = logging.getLogger(__name__)


def physical_events(events: Sequence[Event]) -> List[Event]:
    """Timed, in-person events ordered by start."""
    return sort_events(
        event for event in events if not event.all_day and not event.virtual and not event.is_malformed
    )


def travel_legs(events: Sequence[Event]) -> List[tuple[Event, Event]]:
    """Consecutive physical events that both carry a resolvable location."""
    ordered = physical_events(events)
    return [
        (previous, following)
        for previous, following in zip(ordered, ordered[1:])
        if previous.has_resolvable_location and following.has_resolvable_location
    ]


def _format_minutes(minutes: int) -> str:
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def analyze_logistics(
    events: Sequence[Event],
    buffer_minutes: int,
    travel_enabled: bool,
    estimator: TravelTimeEstimator,
    *,
    minimum_travel_minutes: int = 0,
) -> List[LogisticsIssue]:
    """Flag transitions between physical events that leave too little time to travel."""
    if not travel_enabled:
        return []

    issues: list[LogisticsIssue] = []
    for previous, following in travel_legs(events):
        required = estimator.estimate_travel_minutes(previous.location, following.location)
        if required is None:
            logger.debug("No travel estimate for %s -> %s", previous.id, following.id)
            continue
        if required < minimum_travel_minutes:
            continue

        available = slot_duration(previous.end, following.start)
        needed = required + buffer_minutes
        if needed <= available:
            continue

        shortfall = needed - available
        severity = IssueSeverity.HIGH if shortfall > buffer_minutes else IssueSeverity.MEDIUM
        issues.append(
            LogisticsIssue(
                from_event=previous,
                to_event=following,
                severity=severity,
                required_minutes=required,
                buffer_minutes=buffer_minutes,
                available_minutes=available,
                shortfall_minutes=shortfall,
                description=(
                    f"{_format_minutes(available)} between '{previous.title}' and "
                    f"'{following.title}' but {_format_minutes(needed)} are needed "
                    f"({_format_minutes(shortfall)} short)"
                ),
                suggestion=(
                    f"Move '{following.title}' {_format_minutes(shortfall)} later "
                    f"to allow for travel and a {_format_minutes(buffer_minutes)} buffer"
                ),
            )
        )
    return issues
