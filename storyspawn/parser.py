"""Turn payload extraction from raw narrative output.

The producer is asked for bare JSON but sometimes wraps it in code fences or
adds commentary before and after. Extraction is deliberately tolerant:

  1. Empty input            → ParseError("no_payload")
  2. Strip ``` fences (with or without a language tag) anywhere in the text.
  3. Slice from the first "{" to the last "}"; missing or inverted braces
                            → ParseError("malformed_structure")
  4. json.loads the slice   → ParseError("decode_failure") on error
  5. Read it as a StoryUpdate; a document that decodes but is not an object
     of the expected shape → ParseError("invalid_payload")

No further validation is done. Every StoryUpdate field is optional.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from storyspawn.errors import ParseError
from storyspawn.models import StoryUpdate

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json(text: str) -> str:
    """Return the outermost-brace JSON span of a raw response."""
    if not text:
        raise ParseError("no_payload")

    cleaned = _FENCE_RE.sub("", text).strip()
    if not cleaned:
        raise ParseError("no_payload")

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ParseError("malformed_structure", "missing braces")
    return cleaned[start:end + 1]


def parse_response(text: str) -> StoryUpdate:
    """Parse one accumulated response into a StoryUpdate."""
    span = extract_json(text)
    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning("Turn payload is not valid JSON: %s (raw=%r)", e, text[:200])
        raise ParseError("decode_failure", str(e)) from e

    try:
        return StoryUpdate.model_validate(data)
    except ValidationError as e:
        logger.warning("Turn payload has an unreadable shape: %s", e)
        raise ParseError("invalid_payload", str(e)) from e
