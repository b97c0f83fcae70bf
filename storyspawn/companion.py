"""Side calls to the narrative service that never block or fail a turn.

Each helper makes one completion request through the LLM `__call__` protocol
and falls back to a fixed value if the backend errors or answers in the
wrong shape.
"""

from __future__ import annotations

import json
import logging

from storyspawn.llm import LLM, LLMError
from storyspawn.models import StoryMessage

logger = logging.getLogger(__name__)

ENVIRONMENT_TYPES = ("castle", "enchanted_forest", "tavern", "sci-fi_bridge", "dungeon", "default")

_FENCE_PREFIX = "```"


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith(_FENCE_PREFIX):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith(_FENCE_PREFIX)]
        cleaned = "\n".join(lines)
    return cleaned


async def suggest_actions(llm: LLM, story: str) -> list[str]:
    """Three short actions the player could take next."""
    prompt = (
        "Based on the following story text, suggest three distinct, short, one-sentence "
        "actions the player could take next. Respond with only a JSON array of strings. "
        f'Story: "{story}"'
    )
    try:
        output = await llm("suggestions", prompt)
    except LLMError as e:
        logger.warning("Action suggestions failed: %s", e)
        return []
    try:
        data = json.loads(_strip_fences(output))
    except json.JSONDecodeError:
        logger.warning("Action suggestions are not valid JSON: %r", output[:200])
        return []
    if not isinstance(data, list):
        return []
    return [s for s in data if isinstance(s, str)][:3]


async def classify_environment(llm: LLM, story: str) -> str:
    prompt = (
        "Based on the following text, classify the primary environment. Choose one of the "
        f"following options: {', '.join(ENVIRONMENT_TYPES)}. Respond with only the chosen "
        f'option. Text: "{story}"'
    )
    try:
        answer = (await llm("environment", prompt)).strip().lower()
    except LLMError as e:
        logger.warning("Environment classification failed: %s", e)
        return "default"
    return answer if answer in ENVIRONMENT_TYPES else "default"


async def elaborate(llm: LLM, text: str, context: str) -> str:
    """A short paragraph adding depth to a discovery or event."""
    prompt = (
        "Within a text-based adventure game, the player discovered the following piece of "
        f'information: "{text}".\n'
        "Based on the recent story context provided below, briefly elaborate on this "
        "information. Provide a short, intriguing paragraph that adds more depth or mystery. "
        "Do not ask questions back to the player.\n\n"
        f'Recent Context: "{context}"'
    )
    try:
        return (await llm("elaborate", prompt)).strip()
    except LLMError as e:
        logger.warning("Elaboration failed: %s", e)
        return "Could not retrieve further details at this time."


async def summarize_message(llm: LLM, text: str) -> str:
    prompt = (
        "Based on the following game text, provide a concise bullet-point summary of the key "
        "events, discoveries, and character interactions. Focus only on what happened in this "
        f'specific text block. Use markdown for formatting. Text: "{text}"'
    )
    try:
        return (await llm("summarize_message", prompt)).strip()
    except LLMError as e:
        logger.warning("Message summary failed: %s", e)
        return "Could not generate a summary at this time."


def story_log(history: list[StoryMessage]) -> str:
    """Narration and NPC lines as plain text, without player actions or notices."""
    parts: list[str] = []
    for m in history:
        if m.author == "user" or m.is_thinking or m.is_error:
            continue
        if m.author == "character":
            parts.append(f'{m.character_name}: "{m.text}"')
        else:
            parts.append(m.text)
    return "\n\n".join(parts)


async def summarize_story(llm: LLM, history: list[StoryMessage]) -> str:
    """A journal-style markdown summary of the whole session."""
    log = story_log(history)
    if not log:
        return "There is no story to summarize yet."
    prompt = (
        "Based on the following game log, provide a concise journal-style summary of the key "
        "events, discoveries, and character interactions from the player's perspective. "
        "Format it with markdown for readability (headings, bold text, bullet points). "
        f'Story Log: "{log}"'
    )
    try:
        return (await llm("summarize_story", prompt)).strip()
    except LLMError as e:
        logger.warning("Story summary failed: %s", e)
        return "Could not generate a summary at this time."
