from __future__ import annotations

import re
from enum import Enum


class MeetingPlatform(str, Enum):
    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"
    WEBEX = "webex"
    MICROSOFT_TEAMS = "microsoft_teams"


MEETING_LINK_PATTERNS: dict[MeetingPlatform, tuple[re.Pattern[str], ...]] = {
    MeetingPlatform.ZOOM: (
        re.compile(r"https?://[\w.-]*zoom\.us/j/[0-9?=&\w-]+", re.IGNORECASE),
        re.compile(r"https?://[\w.-]*zoom\.us/wc/join/[0-9?=&\w-]+", re.IGNORECASE),
    ),
    MeetingPlatform.GOOGLE_MEET: (
        re.compile(r"https?://meet\.google\.com/[a-z0-9-]+", re.IGNORECASE),
    ),
    MeetingPlatform.WEBEX: (
        re.compile(r"https?://[\w.-]+\.webex\.com/[\w./\-?=&]+", re.IGNORECASE),
    ),
    MeetingPlatform.MICROSOFT_TEAMS: (
        re.compile(
            r"https?://teams\.microsoft\.com/l/meetup-join/[\w/%?=&\-._~:@!$'()*+,;]+",
            re.IGNORECASE,
        ),
    ),
}


def detect_meeting_platform(text: str | None) -> MeetingPlatform | None:
    """Return the video platform whose join link appears in ``text``."""
    if not text:
        return None
    for platform, patterns in MEETING_LINK_PATTERNS.items():
        if any(pattern.search(text) for pattern in patterns):
            return platform
    return None
