"""Narrative service client: HTTP connection to a text-generation backend.

The session streams each turn through an LLM object matching the protocol:

    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]: ...
    async def __call__(self, stage: str, prompt: str) -> str: ...

`stream` yields the raw text fragments of one turn response; their
concatenation is the JSON document the parser reads. `__call__` is a one-shot
completion used by the companion helpers (suggestions, summaries). `stage`
names the caller and is used only for logging.

Messages use the OpenAI chat shape: {"role": ..., "content": ...} where
content is either a string or a list of parts ({"type": "text", "text": ...}
or {"type": "image_url", "image_url": {"url": "data:..."}}).

Production code constructs an HttpLLM from config. Tests use StubLLM
(defined in the test helpers) instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)

ChatMessage = dict[str, Any]


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]: ...

    async def __call__(self, stage: str, prompt: str) -> str: ...


def message_text(message: ChatMessage) -> str:
    """Return the text of a chat message, ignoring any image parts."""
    content = message.get("content", "")
    if isinstance(content, str):
        return content
    return " ".join(
        part.get("text", "") for part in content if part.get("type") == "text"
    )


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class HttpLLM:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "openai"     streaming: POST /v1/chat/completions {"messages": ..., "stream": true}
                     SSE lines: data: {"choices": [{"delta": {"content": "..."}}]}
                     one-shot:  POST /v1/completions {"model": ..., "prompt": ...}
      "koboldcpp"  streaming: POST /api/extra/generate/stream {"prompt": ...}
                     SSE lines: data: {"token": "..."}
                     one-shot:  POST /api/v1/generate {"prompt": ...}
                     Chat messages are flattened into one prompt; images are dropped.

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds, applied to connect and to
                         every read of the stream. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @contextmanager
    def _backend_errors(self, what: str) -> Iterator[None]:
        """Re-raise httpx failures inside the block as LLMError."""
        try:
            yield
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise LLMError(f"LLM {what}: {e}") from e

    # ── One-shot completion ──────────────────────────────────

    def _build_request(self, prompt: str) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/completions"
            body: dict = {"prompt": prompt}
            if self._model:
                body["model"] = self._model
            return url, body

        url = f"{self._base_url}/api/v1/generate"
        return url, {"prompt": prompt}

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "text" not in choices[0]:
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return choices[0]["text"]

        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def __call__(self, stage: str, prompt: str) -> str:
        url, body = self._build_request(prompt)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        with self._backend_errors("request failed"):
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise LLMError("Unexpected response format from LLM backend")
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text

    # ── Streaming ────────────────────────────────────────────

    def _build_stream_request(self, messages: list[ChatMessage]) -> tuple[str, dict]:
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {"messages": messages, "stream": True}
            if self._model:
                body["model"] = self._model
            return url, body

        url = f"{self._base_url}/api/extra/generate/stream"
        return url, {"prompt": _flatten(messages)}

    def _parse_event(self, data: Any) -> str | None:
        """Extract one text fragment from a decoded SSE event."""
        if not isinstance(data, dict):
            raise LLMError(f"Unexpected stream event: {str(data)[:80]!r}")
        if self._format == "openai":
            choices = data.get("choices") or [{}]
            choice = choices[0] if isinstance(choices, list) else None
            delta = choice.get("delta") if isinstance(choice, dict) else None
            fragment = delta.get("content") if isinstance(delta, dict) else None
        else:
            fragment = data.get("token")
        return fragment if isinstance(fragment, str) else None

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        url, body = self._build_stream_request(messages)
        logger.debug("llm stream url=%s messages=%d", url, len(messages))

        with self._backend_errors("stream interrupted"):
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream(
                    "POST", url, json=body, headers=self._headers()
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        payload = line[len("data:"):].strip()
                        if payload == "[DONE]":
                            break
                        try:
                            event = json.loads(payload)
                        except json.JSONDecodeError as e:
                            raise LLMError(f"Malformed stream event: {payload[:80]!r}") from e
                        fragment = self._parse_event(event)
                        if fragment:
                            yield fragment


def _flatten(messages: list[ChatMessage]) -> str:
    """Render chat messages as one completion prompt for text-only backends."""
    labels = {"system": "System", "user": "Player", "assistant": "Narrator"}
    lines = [
        f"{labels.get(m.get('role', ''), 'Player')}: {message_text(m)}"
        for m in messages
    ]
    lines.append("Narrator:")
    return "\n\n".join(lines)


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
