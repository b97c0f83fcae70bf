"""Narrative text tokenization into clickable segments.

Narrative text carries two kinds of interactive spans:

  Marker tags   [EVENT: ...] [DISCOVERY: ...] [COMBAT: ...] [LOCATION: ...]
  Entity names  any known character or inventory item, matched on word
                boundaries, case-insensitively

tokenize() is a pure function of its inputs. The story log reveals text a few
characters at a time and re-runs it on every growing prefix, so it keeps no
state between calls.

Segment shapes:
  {"type": "text",   "text": ...}
  {"type": "marker", "category": "LOCATION", "text": "Old Mill", "action": "open_location"}
  {"type": "entity", "entity": "character"|"item", "text": <as written>, "name": <known name>}
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel

MARKER_CATEGORIES = ("EVENT", "DISCOVERY", "COMBAT", "LOCATION")

# Click handler each marker category dispatches to.
MARKER_ACTIONS: dict[str, str] = {
    "LOCATION": "open_location",
    "DISCOVERY": "open_discovery",
    "COMBAT": "focus_combat",
    "EVENT": "suggest_action",
}

_DEPRECATED_TAG_RE = re.compile(r"\[(?:CHARACTER|ITEM|CLUE):([^\]]+)\]", re.IGNORECASE)


class RenderOptions(BaseModel):
    """Display settings that affect tokenization."""

    highlight_entities: bool = True
    markers: tuple[str, ...] = MARKER_CATEGORIES


class TextSegment(BaseModel):
    type: Literal["text"] = "text"
    text: str


class MarkerSegment(BaseModel):
    type: Literal["marker"] = "marker"
    category: str
    text: str
    action: str


class EntitySegment(BaseModel):
    type: Literal["entity"] = "entity"
    entity: Literal["character", "item"]
    text: str
    name: str


Segment = TextSegment | MarkerSegment | EntitySegment


def normalize_tags(text: str) -> str:
    """Replace deprecated [CHARACTER: x] / [ITEM: x] / [CLUE: x] tags with x."""
    return _DEPRECATED_TAG_RE.sub(lambda m: m.group(1).strip(), text)


def _build_pattern(keywords: list[str], markers: tuple[str, ...]) -> re.Pattern | None:
    parts: list[str] = []
    if markers:
        categories = "|".join(re.escape(c) for c in markers)
        parts.append(rf"(?P<marker>\[(?P<category>{categories}):(?P<payload>[^\]]+)\])")
    if keywords:
        # Longest first so "Kara Vance" wins over "Kara" at the same position.
        escaped = [re.escape(k) for k in sorted(keywords, key=len, reverse=True)]
        parts.append(rf"\b(?P<keyword>{'|'.join(escaped)})\b")
    if not parts:
        return None
    return re.compile("|".join(parts), re.IGNORECASE)


def tokenize(
    text: str,
    known_characters: Iterable[str],
    known_items: Iterable[str],
    options: RenderOptions | None = None,
) -> list[Segment]:
    """Split narrative text into text, marker and entity segments, in order.

    Markers are tried before keywords at each position. When a literal is
    both a character and an item name, character wins. No empty segment is
    ever emitted.
    """
    options = options or RenderOptions()
    text = normalize_tags(text)

    characters = {c.casefold(): c for c in known_characters if c}
    items = {i.casefold(): i for i in known_items if i}
    keywords: list[str] = []
    if options.highlight_entities:
        keywords = list({**items, **characters}.values())

    markers = tuple(c.upper() for c in options.markers)
    pattern = _build_pattern(keywords, markers)
    if pattern is None:
        return [TextSegment(text=text)] if text else []

    segments: list[Segment] = []
    last = 0
    for match in pattern.finditer(text):
        if match.start() > last:
            segments.append(TextSegment(text=text[last:match.start()]))

        groups = match.groupdict()
        if groups.get("marker"):
            category = groups["category"].upper()
            payload = groups["payload"].strip()
            if payload:
                segments.append(MarkerSegment(
                    category=category, text=payload, action=MARKER_ACTIONS.get(category, ""),
                ))
            else:
                segments.append(TextSegment(text=match.group(0)))
        else:
            literal = groups["keyword"]
            key = literal.casefold()
            if key in characters:
                segments.append(EntitySegment(entity="character", text=literal, name=characters[key]))
            else:
                segments.append(EntitySegment(entity="item", text=literal, name=items.get(key, literal)))
        last = match.end()

    if last < len(text):
        segments.append(TextSegment(text=text[last:]))
    return segments
