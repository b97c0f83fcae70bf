import asyncio
import json
from collections.abc import AsyncIterator

import pytest

from storyspawn.errors import PortraitError
from storyspawn.llm import ChatMessage, LLMError
from storyspawn.portraits import PortraitRequest, PortraitResolver
from storyspawn.storage import SessionStore


class StubLLM:
    """Scripted narrative service.

    Each queued reply is a str (streamed in small fragments), a dict (sent as
    JSON), or an exception (raised after the first fragment). When `gate` is
    set, every stream waits on it before yielding anything.
    """

    def __init__(self) -> None:
        self.replies: list = []
        self.completions: list = []
        self.sent: list[list[ChatMessage]] = []
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None

    def queue(self, *replies) -> "StubLLM":
        self.replies.extend(replies)
        return self

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        self.sent.append(list(messages))
        reply = self.replies.pop(0)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(reply, BaseException):
            yield "{"
            raise reply
        text = json.dumps(reply) if isinstance(reply, dict) else reply
        for i in range(0, len(text), 7):
            yield text[i:i + 7]

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        reply = self.completions.pop(0) if self.completions else LLMError("no completion queued")
        if isinstance(reply, BaseException):
            raise reply
        return reply


class StubPortraits:
    """Portrait generator returning a URL derived from the character name.

    When `gate` is set, every request waits on it after being recorded.
    """

    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.requests: list[PortraitRequest] = []
        self.fail_for = fail_for
        self.gate: asyncio.Event | None = None

    async def __call__(self, request: PortraitRequest) -> str:
        self.requests.append(request)
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if request.name in self.fail_for:
            raise PortraitError("generation failed")
        return f"https://img.test/{request.name.lower().replace(' ', '-')}.png"


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def generator() -> StubPortraits:
    return StubPortraits()


@pytest.fixture
def resolver(generator: StubPortraits) -> PortraitResolver:
    return PortraitResolver(generator, placeholder_url="https://img.test/placeholder.png")


@pytest.fixture
def store(tmp_path) -> SessionStore:
    return SessionStore(tmp_path / "data")
