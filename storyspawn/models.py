"""Core domain models.

Every stage of the turn pipeline and the session store operates on these
types. Attributes are snake_case in Python; the wire and storage form is the
camelCase shape the narrative service speaks (``playerStatus``,
``knownInformation``, ...). Either name is accepted on input.

Producer data is untrusted: enumerated fields are plain strings with the
expected values documented beside them, numbers may be int or float, and a
``null`` anywhere is read as "absent" so the field default applies.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Number = int | float

EQUIP_SLOTS = ("head", "accessory", "weapon", "torso")


class Payload(BaseModel):
    """Base for every model that crosses the producer or storage boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Player
# ---------------------------------------------------------------------------

class InventoryItem(Payload):
    name: str = ""
    description: str = ""
    equippable: bool | None = None
    slot: str | None = None  # head | accessory | weapon | torso


class StatusEffect(Payload):
    name: str = ""
    description: str = ""
    type: str = "positive"  # positive | negative


class Injury(Payload):
    location: str = ""  # head | torso | leftArm | rightArm | leftLeg | rightLeg
    description: str = ""
    severity: str = "minor"  # minor | moderate | critical


def _starting_inventory() -> list[InventoryItem]:
    return [InventoryItem(
        name="Old Journal",
        description="A leather-bound journal with faded, unreadable script on its pages.",
    )]


class PlayerStatus(Payload):
    health: Number = 100
    resolve: Number = 100
    currency: Number = 10
    inventory: list[InventoryItem] = Field(default_factory=list)
    status_effects: list[StatusEffect] = Field(default_factory=list)
    injuries: list[Injury] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# World
# ---------------------------------------------------------------------------

class Character(Payload):
    """An NPC. Keyed by ``name``; the portrait is filled in asynchronously."""

    name: str = ""
    description: str = ""
    status: str = "unknown"  # friendly | neutral | hostile | unknown | deceased
    known_information: list[str] = Field(default_factory=list)
    image_url: str | None = None
    location: str | None = None


class Objective(Payload):
    text: str = ""
    completed: bool = False


class Quest(Payload):
    title: str = ""
    status: str = "active"  # active | completed
    description: str = ""
    objectives: list[Objective] = Field(default_factory=list)


class WorldInfo(Payload):
    topic: str = ""
    details: str = ""


class MapLocation(Payload):
    id: str = ""
    name: str = ""
    description: str = ""
    is_current: bool = False
    x: Number = 0
    y: Number = 0
    type: str | None = None  # settlement | dungeon | landmark | natural | interior | poi


class MapConnection(Payload):
    """Unordered pair of location ids."""

    from_: str = Field(default="", alias="from")
    to: str = ""


class MapData(Payload):
    locations: list[MapLocation] = Field(default_factory=list)
    connections: list[MapConnection] = Field(default_factory=list)

    @property
    def current(self) -> MapLocation | None:
        return next((loc for loc in self.locations if loc.is_current), None)


class DialogueLine(Payload):
    character_name: str = ""
    text: str = ""


class CustomizationOffer(Payload):
    enabled: bool = False
    reason: str = ""


# ---------------------------------------------------------------------------
# Turn payload and authoritative state
# ---------------------------------------------------------------------------

class StoryUpdate(Payload):
    """The decoded, untrusted turn payload from the narrative service.

    Lives for one reconciliation call. Every field is optional;
    ``player_status`` stays None when the producer omits it.
    """

    player_status: PlayerStatus | None = None
    characters: list[Character] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    world_info: list[WorldInfo] = Field(default_factory=list)
    game_time: str = ""
    story: str = ""
    dialogue: list[DialogueLine] = Field(default_factory=list)
    allow_character_customization: CustomizationOffer = Field(default_factory=CustomizationOffer)
    casino_available: bool = False
    map_data: MapData = Field(default_factory=MapData)


class GameState(Payload):
    """Authoritative per-session state. Only the reconciler produces new ones."""

    player_status: PlayerStatus = Field(
        default_factory=lambda: PlayerStatus(inventory=_starting_inventory())
    )
    characters: list[Character] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    world_info: list[WorldInfo] = Field(default_factory=list)
    game_time: str = "Day 1, Morning"
    story: str = ""
    map_data: MapData = Field(default_factory=MapData)
    dialogue: list[DialogueLine] = Field(default_factory=list)
    allow_character_customization: CustomizationOffer = Field(default_factory=CustomizationOffer)
    casino_available: bool = False
    location_image_url: str | None = None  # sticky, never taken from a turn payload

    @property
    def is_game_over(self) -> bool:
        return self.player_status.health <= 0


# ---------------------------------------------------------------------------
# History and persistence
# ---------------------------------------------------------------------------

Author = Literal["user", "narrator", "character"]


class StoryMessage(Payload):
    """A single entry in the append-only story history."""

    author: Author
    text: str
    type: Literal["thinking", "error"] | None = None  # in-flight placeholder, failure notice
    character_name: str | None = None
    character_image_url: str | None = None
    game_time: str | None = None

    @property
    def is_thinking(self) -> bool:
        return self.type == "thinking"

    @property
    def is_error(self) -> bool:
        return self.type == "error"


def thinking_placeholder() -> StoryMessage:
    return StoryMessage(author="narrator", text="...", type="thinking")


class CustomCharacter(Payload):
    """The player's avatar, used for the appearance preamble and portraits."""

    id: str = ""
    name: str = ""
    pronouns: str = "unknown"
    age: str | None = None
    height: str | None = None
    appearance_summary: str = ""
    portrait_url: str | None = None
    equipped_items: dict[str, InventoryItem] = Field(default_factory=dict)


class GameSession(Payload):
    """One persisted session record."""

    id: str
    title: str = "Untitled Adventure"
    last_played: str = ""
    game_state: GameState = Field(default_factory=GameState)
    history: list[StoryMessage] = Field(default_factory=list)
    time_played: Number = 0  # seconds
    world_image_url: str | None = None
    world_title: str | None = None
    location_image_url: str | None = None
    avatar: CustomCharacter | None = None
