"""Tests for storyspawn.stream.accumulate."""

import httpx
import pytest

from storyspawn.errors import TransportError
from storyspawn.llm import LLMError
from storyspawn.stream import accumulate


async def _fragments(*parts, error: Exception | None = None):
    for part in parts:
        yield part
    if error is not None:
        raise error


async def test_concatenates_in_order():
    assert await accumulate(_fragments('{"st', 'ory": ', '"hi"}')) == '{"story": "hi"}'


async def test_skips_empty_fragments():
    assert await accumulate(_fragments("a", "", None, "b")) == "ab"


async def test_empty_stream():
    assert await accumulate(_fragments()) == ""


async def test_llm_error_is_transport_error():
    with pytest.raises(TransportError) as exc:
        await accumulate(_fragments("{", error=LLMError("connection reset")))
    assert "connection reset" in str(exc.value)
    assert "narrator" in exc.value.user_message


async def test_httpx_error_is_transport_error():
    with pytest.raises(TransportError):
        await accumulate(_fragments("{", error=httpx.ReadError("boom")))
