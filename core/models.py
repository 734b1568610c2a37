from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.meeting_links import detect_meeting_platform


def new_id() -> str:
    return uuid4().hex


class EventSource(str, Enum):
    DEVICE = "device"
    GOOGLE = "google"
    OUTLOOK = "outlook"


class _RankedEnum(str, Enum):
    """String enum whose comparisons follow declaration order."""

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other: Any) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: Any) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: Any) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: Any) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.rank >= other.rank


class ConflictSeverity(_RankedEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueSeverity(_RankedEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PatternCategory(str, Enum):
    BACK_TO_BACK = "back_to_back"
    NO_LUNCH = "no_lunch"
    MEETING_OVERLOAD = "meeting_overload"
    AFTER_HOURS = "after_hours"


class RecommendationKind(str, Enum):
    RESCHEDULE = "reschedule"
    DECLINE = "decline"
    SHORTEN = "shorten"
    ADD_BREAKS = "add_breaks"
    PROTECT_PERSONAL_TIME = "protect_personal_time"


class DuplicateMatch(str, Enum):
    EXACT = "exact"
    STRONG = "strong"
    MODERATE = "moderate"


class Place(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    @property
    def is_resolvable(self) -> bool:
        return bool(self.label.strip())

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def key(self) -> str:
        """Normalized label used for equality and lookup tables."""
        return " ".join(self.label.lower().split())


class Event(BaseModel):
    """Normalized, source-agnostic calendar event.

    ``end < start`` is accepted here on purpose; the analysis pipeline
    drops such events and reports them as skipped instead of failing.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    location: Place | None = None
    description: str | None = None
    source: EventSource = EventSource.DEVICE
    is_virtual: bool | None = None
    tentative: bool = False

    @field_validator("location", mode="before")
    @classmethod
    def _coerce_location(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Place(label=value) if value.strip() else None
        return value

    @property
    def duration(self) -> timedelta:
        return max(timedelta(0), self.end - self.start)

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    @property
    def is_zero_duration(self) -> bool:
        return self.start == self.end

    @property
    def is_malformed(self) -> bool:
        return self.end < self.start

    @property
    def virtual(self) -> bool:
        if self.is_virtual is not None:
            return self.is_virtual
        label = self.location.label if self.location else None
        return bool(detect_meeting_platform(label) or detect_meeting_platform(self.description))

    @property
    def has_resolvable_location(self) -> bool:
        return self.location is not None and self.location.is_resolvable


class Conflict(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    events: list[Event] = Field(min_length=2)
    overlap_start: datetime
    overlap_end: datetime
    severity: ConflictSeverity

    @property
    def overlap_duration(self) -> timedelta:
        return self.overlap_end - self.overlap_start

    @property
    def overlap_minutes(self) -> int:
        return int(self.overlap_duration.total_seconds() // 60)

    @property
    def sources(self) -> set[EventSource]:
        return {event.source for event in self.events}

    @property
    def event_ids(self) -> list[str]:
        return [event.id for event in self.events]


class LogisticsIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    from_event: Event
    to_event: Event
    severity: IssueSeverity
    required_minutes: int
    buffer_minutes: int
    available_minutes: int
    shortfall_minutes: int
    description: str
    suggestion: str


class Pattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    category: PatternCategory
    title: str
    description: str
    data_points: list[float] = Field(default_factory=list)

    @field_validator("data_points")
    @classmethod
    def _check_normalized(cls, values: list[float]) -> list[float]:
        for value in values:
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Pattern data point {value} outside [0, 1]")
        return values


class HealthScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall: int = Field(ge=0, le=100)
    time_utilization: float = Field(ge=0, le=100)
    conflict_management: float = Field(ge=0, le=100)
    balance: float = Field(ge=0, le=100)
    buffer: float = Field(ge=0, le=100)

    @property
    def components(self) -> dict[str, float]:
        return {
            "time_utilization": self.time_utilization,
            "conflict_management": self.conflict_management,
            "balance": self.balance,
            "buffer": self.buffer,
        }


class ResolutionAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RecommendationKind
    event_id: str
    new_start: datetime | None = None
    new_end: datetime | None = None


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    kind: RecommendationKind
    title: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    conflict_id: str | None = None
    issue_id: str | None = None
    action: ResolutionAction | None = None


class DuplicateGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    events: list[Event] = Field(min_length=2)
    match: DuplicateMatch
    confidence: float = Field(ge=0.0, le=1.0)

    @property
    def primary(self) -> Event:
        return self.events[0]

    @property
    def sources(self) -> set[EventSource]:
        return {event.source for event in self.events}


class ScheduleMetrics(BaseModel):
    event_count: int = 0
    scheduled_hours: float = 0.0
    travel_minutes: int = 0
    free_time_blocks: int = 0


class SkippedEvent(BaseModel):
    event_id: str | None = None
    title: str | None = None
    reason: str


class AnalysisResult(BaseModel):
    conflicts: list[Conflict] = Field(default_factory=list)
    duplicates: list[DuplicateGroup] = Field(default_factory=list)
    logistics_issues: list[LogisticsIssue] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    health: HealthScore
    metrics: ScheduleMetrics = Field(default_factory=ScheduleMetrics)
    recommendations: list[Recommendation] = Field(default_factory=list)
    skipped_events: list[SkippedEvent] = Field(default_factory=list)
    generated_at: datetime
