"""Character portraits: generation client and memoized resolver.

Each turn's roster passes through PortraitResolver.resolve() before it is
reconciled into the game state. A character keeps the portrait it already
has (matched by name); everyone else who is alive and described gets one
generation request. All requests for a turn run concurrently and the
resolver waits for the whole batch. A failed request falls back to a fixed
placeholder and is never surfaced.

The generator injected into the resolver matches the protocol:

    async def __call__(self, request: PortraitRequest) -> str: ...

returning an image reference (URL or data URL) or raising PortraitError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx
from pydantic import BaseModel

from storyspawn.errors import PortraitError
from storyspawn.models import Character

logger = logging.getLogger(__name__)

PLACEHOLDER_URL = "https://picsum.photos/512"


class PortraitRequest(BaseModel):
    description: str
    name: str
    pronouns: str = "unknown"
    age: str | None = None
    height: str | None = None

    def prompt(self) -> str:
        return (
            "A realistic, gritty, photorealistic portrait of a character for a story game. "
            "Grounded and realistic style, not anime or stylized. The background should be "
            "simple and dark, focusing entirely on the character.\n"
            f"- Character Name: {self.name}\n"
            f"- Pronouns: {self.pronouns}\n"
            f"- Age: {self.age or 'Not specified'}\n"
            f"- Height: {self.height or 'Not specified'}\n"
            f"- Detailed Appearance: {self.description}"
        )


class PortraitGenerator(Protocol):
    async def __call__(self, request: PortraitRequest) -> str: ...


# ---------------------------------------------------------------------------
# HttpPortraitGenerator: OpenAI-compatible image endpoint
# ---------------------------------------------------------------------------

class HttpPortraitGenerator:
    """POST {provider_url}/v1/images/generations, one square image per request.

    Response: {"data": [{"b64_json": "..."}]} or {"data": [{"url": "..."}]}.
    Base64 payloads are returned as data URLs.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        size: str = "512x512",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._size = size
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def __call__(self, request: PortraitRequest) -> str:
        url = f"{self._base_url}/v1/images/generations"
        body: dict = {
            "prompt": request.prompt(),
            "n": 1,
            "size": self._size,
            "response_format": "b64_json",
        }
        if self._model:
            body["model"] = self._model
        logger.debug("portrait request name=%s url=%s", request.name, url)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PortraitError(f"Image backend returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise PortraitError(f"Image backend unavailable: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise PortraitError("Image backend returned a non-JSON body") from e
        images = data.get("data") if isinstance(data, dict) else None
        if not images:
            raise PortraitError("No image was generated.")
        image = images[0] if isinstance(images, list) else None
        if not isinstance(image, dict):
            raise PortraitError("Unexpected response format from image backend")
        if image.get("b64_json"):
            return f"data:image/png;base64,{image['b64_json']}"
        if image.get("url"):
            return image["url"]
        raise PortraitError("Unexpected response format from image backend")


# ---------------------------------------------------------------------------
# PortraitResolver
# ---------------------------------------------------------------------------

class PortraitResolver:
    """Fills in missing character portraits, memoized by character name."""

    def __init__(
        self, generator: PortraitGenerator, placeholder_url: str = PLACEHOLDER_URL
    ) -> None:
        self._generator = generator
        self._placeholder = placeholder_url
        self._known: dict[str, str] = {}
        self._generation = 0

    def clear(self) -> None:
        """Forget every memoized portrait, including those of a batch still in flight."""
        self._known.clear()
        self._generation += 1

    async def _generate(self, character: Character) -> str:
        try:
            return await self._generator(PortraitRequest(
                description=character.description, name=character.name,
            ))
        except PortraitError as e:
            logger.warning("Portrait for %r failed, using placeholder: %s", character.name, e)
            return self._placeholder
        except Exception:
            logger.exception("Portrait generator crashed for %r, using placeholder", character.name)
            return self._placeholder

    async def resolve(
        self, new_roster: list[Character], current_roster: list[Character]
    ) -> list[Character]:
        """Return new_roster with every resolvable portrait filled in."""
        generation = self._generation
        existing = dict(self._known)
        existing.update({c.name: c.image_url for c in current_roster if c.image_url})

        pending: dict[str, Character] = {}
        for char in new_roster:
            if char.name in existing or char.name in pending:
                continue
            if char.status != "deceased" and char.description:
                pending[char.name] = char

        generated: dict[str, str] = {}
        if pending:
            logger.info("Generating %d portrait(s): %s", len(pending), ", ".join(pending))
            urls = await asyncio.gather(*(self._generate(c) for c in pending.values()))
            generated = dict(zip(pending, urls))

        if generation == self._generation:
            self._known.update(existing)
            self._known.update(generated)

        return [
            c.model_copy(update={
                "image_url": existing.get(c.name) or generated.get(c.name) or c.image_url,
            })
            for c in new_roster
        ]
