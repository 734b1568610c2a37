from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from core.config import AnalysisPreferences, AnalysisWindow, TravelConfig
from core.models import (
    AnalysisResult,
    Conflict,
    Event,
    LogisticsIssue,
    Pattern,
    ScheduleMetrics,
    SkippedEvent,
)
from core.time_utils import get_timezone, slot_duration, subtract_intervals, total_minutes
from services.conflicts import detect_conflicts
from services.duplicates import detect_duplicates
from services.health import score_health
from services.logistics import analyze_logistics, travel_legs
from services.patterns import detect_patterns
from services.recommendations import generate_recommendations
from services.timeline import (
    busy_intervals,
    is_weekend,
    resolve_window,
    split_by_day,
    with_timezone,
    work_interval,
)
from services.travel import TravelTimeEstimator, build_offline_estimator

logger = logging.getLogger(__name__)

FREE_BLOCK_MIN_MINUTES = 60


def parse_events(raw_events: Iterable[dict[str, Any]]) -> tuple[List[Event], List[SkippedEvent]]:
    """Validate raw event payloads, reporting the ones that cannot be parsed."""
    events: list[Event] = []
    skipped: list[SkippedEvent] = []
    for raw in raw_events:
        try:
            events.append(Event.model_validate(raw))
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
            skipped.append(
                SkippedEvent(
                    event_id=str(raw.get("id")) if isinstance(raw, dict) and raw.get("id") is not None else None,
                    title=raw.get("title") if isinstance(raw, dict) else None,
                    reason=f"Invalid event payload ({fields})",
                )
            )
    return events, skipped


def sanitize_events(
    events: Iterable[Event], tz: ZoneInfo | None = None
) -> tuple[List[Event], List[SkippedEvent]]:
    """Drop events that end before they start and repeated ids.

    With ``tz`` given, naive start and end times are read in that timezone.
    """
    valid: list[Event] = []
    skipped: list[SkippedEvent] = []
    seen: set[str] = set()
    for event in events:
        if tz is not None:
            event = with_timezone(event, tz)
        if event.is_malformed:
            skipped.append(SkippedEvent(event_id=event.id, title=event.title, reason="Event ends before it starts"))
            continue
        if event.id in seen:
            skipped.append(SkippedEvent(event_id=event.id, title=event.title, reason="Duplicate event id"))
            continue
        seen.add(event.id)
        valid.append(event)
    return valid, skipped


class ScheduleAnalyzer:
    """Runs every analysis stage over one event list."""

    def __init__(
        self,
        preferences: AnalysisPreferences | None = None,
        *,
        travel_estimator: TravelTimeEstimator | None = None,
        travel_config: TravelConfig | None = None,
    ) -> None:
        self.preferences = preferences or AnalysisPreferences()
        self.travel_estimator = travel_estimator or build_offline_estimator(travel_config or TravelConfig())

    def _detect_conflicts(self, events: Sequence[Event]) -> List[Conflict]:
        return detect_conflicts(events)

    def _analyze_logistics(self, events: Sequence[Event]) -> List[LogisticsIssue]:
        return analyze_logistics(
            events,
            self.preferences.buffer_minutes,
            self.preferences.travel_time_enabled,
            self.travel_estimator,
            minimum_travel_minutes=self.preferences.minimum_travel_minutes,
        )

    def _detect_patterns(self, history: Sequence[Event]) -> List[Pattern]:
        return detect_patterns(history, self.preferences)

    def compute_metrics(self, events: Sequence[Event], window: AnalysisWindow | None = None) -> ScheduleMetrics:
        tz = get_timezone(self.preferences.timezone)
        busy = busy_intervals(events, tz)

        travel = 0
        if self.preferences.travel_time_enabled:
            for previous, following in travel_legs(events):
                minutes = self.travel_estimator.estimate_travel_minutes(previous.location, following.location)
                if minutes is not None and minutes >= self.preferences.minimum_travel_minutes:
                    travel += minutes

        free_blocks = 0
        resolved = resolve_window(window, events, tz)
        busy_by_day = split_by_day(busy, tz)
        for day in resolved.dates() if resolved else []:
            if is_weekend(day):
                continue
            free = subtract_intervals(work_interval(day, self.preferences, tz), busy_by_day.get(day, []))
            free_blocks += sum(1 for start, end in free if slot_duration(start, end) >= FREE_BLOCK_MIN_MINUTES)

        return ScheduleMetrics(
            event_count=len(events),
            scheduled_hours=round(total_minutes(busy) / 60, 2),
            travel_minutes=travel,
            free_time_blocks=free_blocks,
        )

    def _finish(
        self,
        events: List[Event],
        skipped: List[SkippedEvent],
        conflicts: List[Conflict],
        issues: List[LogisticsIssue],
        patterns: List[Pattern],
        window: AnalysisWindow | None,
    ) -> AnalysisResult:
        health = score_health(conflicts, issues, events, self.preferences, window=window)
        recommendations = generate_recommendations(conflicts, issues, health, self.preferences)
        result = AnalysisResult(
            conflicts=conflicts,
            duplicates=detect_duplicates(events),
            logistics_issues=issues,
            patterns=patterns,
            health=health,
            metrics=self.compute_metrics(events, window),
            recommendations=recommendations,
            skipped_events=skipped,
            generated_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Analyzed %d events: %d conflicts, %d logistics issues, %d patterns, health %d",
            len(events),
            len(conflicts),
            len(issues),
            len(patterns),
            health.overall,
        )
        return result

    def _prepare(
        self,
        events: Iterable[Event],
        history: Optional[Iterable[Event]],
        already_skipped: Sequence[SkippedEvent],
    ) -> tuple[List[Event], List[Event], List[SkippedEvent]]:
        tz = get_timezone(self.preferences.timezone)
        valid, rejected = sanitize_events(events, tz)
        skipped = [*already_skipped, *rejected]
        for entry in skipped:
            logger.warning("Skipping event %s: %s", entry.event_id, entry.reason)
        if history is None:
            return valid, valid, skipped
        past, _ = sanitize_events(history, tz)
        return valid, past, skipped

    def analyze(
        self,
        events: Iterable[Event],
        *,
        history: Optional[Iterable[Event]] = None,
        window: AnalysisWindow | None = None,
        parallel: bool = True,
        skipped: Sequence[SkippedEvent] = (),
    ) -> AnalysisResult:
        valid, past, rejected = self._prepare(events, history, skipped)
        if parallel:
            with ThreadPoolExecutor(max_workers=3, thread_name_prefix="schedule-analysis") as pool:
                conflicts_future = pool.submit(self._detect_conflicts, valid)
                issues_future = pool.submit(self._analyze_logistics, valid)
                patterns_future = pool.submit(self._detect_patterns, past)
                conflicts = conflicts_future.result()
                issues = issues_future.result()
                patterns = patterns_future.result()
        else:
            conflicts = self._detect_conflicts(valid)
            issues = self._analyze_logistics(valid)
            patterns = self._detect_patterns(past)
        return self._finish(valid, rejected, conflicts, issues, patterns, window)

    async def analyze_async(
        self,
        events: Iterable[Event],
        *,
        history: Optional[Iterable[Event]] = None,
        window: AnalysisWindow | None = None,
        skipped: Sequence[SkippedEvent] = (),
    ) -> AnalysisResult:
        valid, past, rejected = self._prepare(events, history, skipped)
        conflicts, issues, patterns = await asyncio.gather(
            asyncio.to_thread(self._detect_conflicts, valid),
            asyncio.to_thread(self._analyze_logistics, valid),
            asyncio.to_thread(self._detect_patterns, past),
        )
        return await asyncio.to_thread(
            self._finish, valid, rejected, conflicts, issues, patterns, window
        )
