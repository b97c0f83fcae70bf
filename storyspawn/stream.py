"""Accumulate a streamed turn response into one document."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable

import httpx

from storyspawn.errors import TransportError
from storyspawn.llm import LLMError

logger = logging.getLogger(__name__)


async def accumulate(fragments: AsyncIterable[str | None]) -> str:
    """Concatenate every fragment and return the buffer once the source ends.

    Empty and None fragments are skipped. A transport failure mid-stream
    raises TransportError; the partial buffer is discarded.
    """
    parts: list[str] = []
    try:
        async for fragment in fragments:
            if fragment:
                parts.append(fragment)
    except (LLMError, httpx.TransportError) as e:
        logger.warning("Stream failed after %d fragments: %s", len(parts), e)
        raise TransportError(str(e)) from e

    buffer = "".join(parts)
    logger.debug("Stream complete: %d fragments, %d chars", len(parts), len(buffer))
    return buffer
