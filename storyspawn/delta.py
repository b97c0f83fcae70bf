"""What changed between two game states.

diff() runs once per completed turn on (state before, state after) and the
result travels with the turn result. It drives the "new" badges in the side
panel and the transient screen effects:

  shake:    the player gained an injury
  vignette: red, scaled by health lost; or a fixed-strength status tint when
             a negative effect appears (green for poison, red otherwise)
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from storyspawn.models import GameState, StatusEffect

DAMAGE_RGB = "239, 68, 68"
POISON_RGB = "74, 222, 128"
STATUS_INTENSITY = 0.25


class Vignette(BaseModel):
    color: Literal["red", "green"]
    intensity: float

    @property
    def css(self) -> str:
        rgb = POISON_RGB if self.color == "green" else DAMAGE_RGB
        return f"rgba({rgb}, {self.intensity})"


class DeltaSet(BaseModel):
    new_items: list[str] = Field(default_factory=list)
    new_status_effects: list[StatusEffect] = Field(default_factory=list)
    new_characters: list[str] = Field(default_factory=list)
    new_quests: list[str] = Field(default_factory=list)
    injury_increase: bool = False
    health_delta: float = 0
    damage_vignette: Vignette | None = None
    status_vignette: Vignette | None = None


def damage_intensity(health_delta: float) -> float:
    """Vignette strength for a health loss: 0.3 at no loss, capped at 0.8."""
    return min(0.8, 0.3 + health_delta / 50)


def _status_vignette(effects: list[StatusEffect]) -> Vignette | None:
    negative = next((e for e in effects if e.type == "negative"), None)
    if negative is None:
        return None
    color = "green" if "poison" in negative.name.lower() else "red"
    return Vignette(color=color, intensity=STATUS_INTENSITY)


def diff(previous: GameState, next_state: GameState) -> DeltaSet:
    prev_status = previous.player_status
    status = next_state.player_status

    prev_items = {i.name for i in prev_status.inventory}
    prev_effects = {e.name for e in prev_status.status_effects}
    prev_chars = {c.name for c in previous.characters}
    prev_quests = {q.title for q in previous.quests}

    new_effects = [e for e in status.status_effects if e.name not in prev_effects]
    health_delta = prev_status.health - status.health

    return DeltaSet(
        new_items=[i.name for i in status.inventory if i.name not in prev_items],
        new_status_effects=new_effects,
        new_characters=[c.name for c in next_state.characters if c.name not in prev_chars],
        new_quests=[
            q.title for q in next_state.quests
            if q.status == "active" and q.title not in prev_quests
        ],
        injury_increase=len(status.injuries) > len(prev_status.injuries),
        health_delta=health_delta,
        damage_vignette=(
            Vignette(color="red", intensity=damage_intensity(health_delta))
            if health_delta > 0 else None
        ),
        status_vignette=_status_vignette(new_effects),
    )
