"""Merge a turn payload into the authoritative game state.

Field rules:

  playerStatus              replaced wholesale (kept only when the payload omits it)
  characters                replaced by the portrait-resolved roster
  quests, worldInfo         replaced when the payload list is non-empty, else kept
  mapData                   replaced when payload locations are non-empty, else kept
  story, gameTime, dialogue,
  allowCharacterCustomization,
  casinoAvailable           replaced; absent means empty / false
  locationImageUrl          always kept from the previous state

quests, worldInfo and mapData are ledgers the producer resends in full each
turn. An empty list there means it forgot, not that it cleared them. Nothing
protects against it dropping one entry from a non-empty list.
"""

from __future__ import annotations

from storyspawn.models import Character, GameState, StoryUpdate


def reconcile(
    previous: GameState, update: StoryUpdate, resolved_characters: list[Character]
) -> GameState:
    return GameState(
        player_status=update.player_status or previous.player_status,
        characters=list(resolved_characters),
        quests=update.quests or previous.quests,
        world_info=update.world_info or previous.world_info,
        map_data=update.map_data if update.map_data.locations else previous.map_data,
        story=update.story,
        game_time=update.game_time,
        dialogue=update.dialogue,
        allow_character_customization=update.allow_character_customization,
        casino_available=update.casino_available,
        location_image_url=previous.location_image_url,
    )
