"""Handlebars prompt rendering for the narrative service.

The narrator is briefed once per conversation with SYSTEM_TEMPLATE (game
master rules, marker tag contract and the StoryUpdate JSON schema). Player
turns are plain actions prefixed with the appearance preamble; the first turn
of a game uses START_TEMPLATE or IMAGE_START_TEMPLATE.

Values are inserted with triple-stash ({{{x}}}) so prose is never HTML-escaped.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pybars

from storyspawn.llm import ChatMessage
from storyspawn.models import StoryUpdate

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


SYSTEM_TEMPLATE = """You are a text-based adventure game master.
- You drive a story forward based on the player's chosen scenario and setting.
- You must always respond with a single JSON object that follows the schema below. Do not invent properties that are not in the schema.
- Your very first response in a new game must be a welcoming message that sets the scene based on the starting scenario, before detailing the game state.
- The player's input is ALWAYS an action. NEVER interpret it as dialogue and NEVER create dialogue for the player character.
- When a character speaks, put the speech in the 'dialogue' array as {"characterName", "text"} objects. The 'story' text describes actions, events and the environment and MUST NOT contain direct speech in quotation marks.
- The world has a currency called 'Gold'. Award Gold for clever solutions, completed quests or valuable finds and update 'playerStatus.currency'.
- Health and resolve are numbers between 0 and 100. When health reaches 0, the game is over.
- Add and remove 'statusEffects' as events dictate ('positive' or 'negative'). Keep their descriptions brief.
- Add 'injuries' when the player takes physical damage. Always include every existing injury unless healing removed it.
- Quests have a 'description' and 'objectives'. Always include every existing active and completed quest.
- Occasionally add equippable items with "equippable": true and a 'slot' of head, accessory, weapon or torso.
- In the 'story' text, wrap significant moments in tags:
    [EVENT: ...] for truly significant plot points,
    [DISCOVERY: ...] for new and pivotal items, clues or information,
    [COMBAT: ...] for the start of a conflict or hostile action,
    [LOCATION: ...] for identifying a new key area.
  Do not wrap character names in tags like [CHARACTER: ...].
- When a new character is introduced, give a rich physical description suitable for a portrait. Set 'status' to 'deceased' when a character dies and track each character's last known 'location'.
- If the player finds an opportunity to change their appearance, include "allowCharacterCustomization": {"enabled": true, "reason": "..."}.
- If the player is somewhere they can gamble, set "casinoAvailable": true.
- Keep 'gameTime' specific and consistent, e.g. 'Day 1, 8:00 AM'.
- Always include every previously discovered worldInfo topic, map location and map connection. Each new area gets a unique simple 'id', 'isCurrent' true (all others false), x/y between 0 and 100 well apart from other locations, and a 'type' of settlement, dungeon, landmark, natural, interior or poi.

Response schema:
{{{schema}}}
"""

START_TEMPLATE = (
    "{{{preamble}}} {{{hidden_preamble}}} "
    "Start a new game with this scenario: {{{scenario}}}"
)

IMAGE_START_TEMPLATE = (
    "{{{preamble}}} (System Note: Start the story based on the provided image. "
    'My first action is: "{{{action}}}")'
)


def schema_descriptor() -> str:
    """The StoryUpdate field shape, as sent to the narrator."""
    return json.dumps(StoryUpdate.model_json_schema(by_alias=True), indent=2)


def system_message() -> ChatMessage:
    return {"role": "system", "content": render_prompt(SYSTEM_TEMPLATE, {"schema": schema_descriptor()})}


def user_message(text: str, image_url: str | None = None) -> ChatMessage:
    """A user chat turn, optionally carrying one inline image."""
    if not image_url:
        return {"role": "user", "content": text}
    return {
        "role": "user",
        "content": [
            {"type": "image_url", "image_url": {"url": image_url}},
            {"type": "text", "text": text},
        ],
    }


def start_message(scenario: str, preamble: str = "", hidden_preamble: str = "") -> str:
    return render_prompt(START_TEMPLATE, {
        "preamble": preamble,
        "hidden_preamble": hidden_preamble,
        "scenario": scenario,
    }).strip()


def image_start_message(action: str, preamble: str = "") -> str:
    return render_prompt(IMAGE_START_TEMPLATE, {"preamble": preamble, "action": action}).strip()
