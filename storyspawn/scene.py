"""Scene details derived from narrative state: time of day and current location."""

from __future__ import annotations

import re
from typing import Literal

TimeOfDay = Literal["morning", "afternoon", "evening", "night", "unknown"]

_CLOCK_RE = re.compile(r"(\d{1,2})(?::\d{2})?\s*(am|pm)")
_LOCATION_RE = re.compile(r"\[LOCATION:([^\]]+)\]")

_KEYWORDS: list[tuple[TimeOfDay, tuple[str, ...]]] = [
    ("night", ("night", "midnight")),
    ("morning", ("morning", "dawn", "sunrise")),
    ("afternoon", ("afternoon", "noon", "midday")),
    ("evening", ("evening", "dusk", "sunset")),
]


def time_of_day(game_time: str) -> TimeOfDay:
    """Classify a free-form game time like "Day 2, 7:30 PM" or "Year 34, Evening"."""
    text = game_time.lower()
    match = _CLOCK_RE.search(text)
    if match:
        hour = int(match.group(1))
        if hour == 12:
            hour = 0 if match.group(2) == "am" else 12
        elif match.group(2) == "pm":
            hour += 12
        if 0 <= hour <= 4:
            return "night"
        if 5 <= hour <= 11:
            return "morning"
        if 12 <= hour <= 17:
            return "afternoon"
        if 18 <= hour <= 23:
            return "evening"
        return "unknown"

    for period, words in _KEYWORDS:
        if any(w in text for w in words):
            return period
    return "unknown"


def current_location(text: str) -> str | None:
    """The payload of the last [LOCATION: ...] marker in text."""
    matches = _LOCATION_RE.findall(text)
    return matches[-1].strip() if matches else None
