"""Detect the same event appearing in more than one calendar."""
from __future__ import annotations

import difflib
import re
from datetime import timedelta
from typing import List, Optional, Sequence

from core.models import DuplicateGroup, DuplicateMatch, Event
from core.time_utils import overlaps

EXACT_START_TOLERANCE = timedelta(minutes=1)
MODERATE_START_TOLERANCE = timedelta(minutes=30)
MODERATE_TITLE_SIMILARITY = 0.85

MATCH_CONFIDENCE: dict[DuplicateMatch, float] = {
    DuplicateMatch.EXACT: 1.0,
    DuplicateMatch.STRONG: 0.9,
    DuplicateMatch.MODERATE: 0.7,
}

_NON_ALNUM = re.compile(r"[^a-z0-9 ]")


def normalize_title(title: str) -> str:
    return _NON_ALNUM.sub("", title.lower().strip())


def title_similarity(first: str, second: str) -> float:
    left, right = normalize_title(first), normalize_title(second)
    if not left and not right:
        return 1.0
    return difflib.SequenceMatcher(None, left, right).ratio()


def _location_text(event: Event) -> str:
    return event.location.key if event.location else ""


def match_events(first: Event, second: Event) -> Optional[DuplicateMatch]:
    """Classify how strongly two events look like copies of each other."""
    if first.id == second.id and first.source == second.source:
        return None

    same_title = first.title.lower() == second.title.lower()
    start_delta = abs(first.start - second.start)

    if same_title and start_delta < EXACT_START_TOLERANCE and _location_text(first) == _location_text(second):
        return DuplicateMatch.EXACT
    if same_title and overlaps(first.start, first.end, second.start, second.end):
        return DuplicateMatch.STRONG
    if start_delta < MODERATE_START_TOLERANCE and title_similarity(first.title, second.title) > MODERATE_TITLE_SIMILARITY:
        return DuplicateMatch.MODERATE
    return None


def detect_duplicates(events: Sequence[Event], *, minimum_confidence: float = 0.7) -> List[DuplicateGroup]:
    """Group cross-calendar copies of the same event, strongest first."""
    groups: list[DuplicateGroup] = []
    processed: set[int] = set()

    for i, seed in enumerate(events):
        if i in processed:
            continue
        processed.add(i)
        members = [seed]
        group_match: DuplicateMatch | None = None

        for j in range(i + 1, len(events)):
            if j in processed:
                continue
            match = match_events(seed, events[j])
            if match is None:
                continue
            members.append(events[j])
            processed.add(j)
            if group_match is None:
                group_match = match

        if group_match is None:
            continue
        confidence = MATCH_CONFIDENCE[group_match]
        if confidence < minimum_confidence:
            continue
        if len({member.source for member in members}) < 2:
            continue
        groups.append(DuplicateGroup(events=members, match=group_match, confidence=confidence))

    return sorted(groups, key=lambda group: group.confidence, reverse=True)
