"""Tests for storyspawn.models: defaults, camelCase wire shape, null tolerance."""

from storyspawn.models import (
    Character,
    GameSession,
    GameState,
    MapData,
    PlayerStatus,
    StoryMessage,
    StoryUpdate,
    thinking_placeholder,
)


# ── Defaults ─────────────────────────────────────────────


def test_initial_game_state():
    state = GameState()
    assert state.player_status.health == 100
    assert state.player_status.resolve == 100
    assert state.player_status.currency == 10
    assert [i.name for i in state.player_status.inventory] == ["Old Journal"]
    assert state.game_time == "Day 1, Morning"
    assert state.characters == []
    assert not state.is_game_over


def test_starting_inventory_not_shared():
    a, b = GameState(), GameState()
    a.player_status.inventory.clear()
    assert len(b.player_status.inventory) == 1


def test_payload_status_without_inventory_is_empty():
    update = StoryUpdate.model_validate({"playerStatus": {"health": 90}})
    assert update.player_status.inventory == []


def test_game_over_at_zero_or_below():
    assert GameState(player_status=PlayerStatus(health=0)).is_game_over
    assert GameState(player_status=PlayerStatus(health=-5)).is_game_over
    assert not GameState(player_status=PlayerStatus(health=0.5)).is_game_over


# ── Wire shape ───────────────────────────────────────────


def test_reads_camel_case():
    update = StoryUpdate.model_validate({
        "playerStatus": {"health": 80, "statusEffects": [{"name": "Poisoned", "type": "negative"}]},
        "worldInfo": [{"topic": "The Mill", "details": "Abandoned"}],
        "gameTime": "Day 2, 7:00 PM",
        "casinoAvailable": True,
    })
    assert update.player_status.health == 80
    assert update.player_status.status_effects[0].type == "negative"
    assert update.world_info[0].topic == "The Mill"
    assert update.game_time == "Day 2, 7:00 PM"
    assert update.casino_available is True


def test_accepts_snake_case():
    char = Character(name="Kara", known_information=["Smuggler"])
    assert char.known_information == ["Smuggler"]


def test_to_wire_is_camel_case_without_nulls():
    wire = Character(name="Kara", description="Tall").to_wire()
    assert wire["knownInformation"] == []
    assert "imageUrl" not in wire
    assert "known_information" not in wire


def test_map_connection_from_alias():
    data = MapData.model_validate({
        "locations": [{"id": "mill", "name": "Old Mill", "isCurrent": True}],
        "connections": [{"from": "mill", "to": "town"}],
    })
    assert data.connections[0].from_ == "mill"
    assert data.to_wire()["connections"] == [{"from": "mill", "to": "town"}]
    assert data.current.name == "Old Mill"


def test_nulls_read_as_absent():
    update = StoryUpdate.model_validate({
        "playerStatus": None, "characters": None, "story": None, "dialogue": None,
    })
    assert update.player_status is None
    assert update.characters == []
    assert update.story == ""
    assert update.dialogue == []


def test_numbers_may_be_float():
    status = PlayerStatus.model_validate({"health": 72.5, "currency": 3})
    assert status.health == 72.5
    assert status.currency == 3


def test_unknown_enum_values_kept():
    char = Character.model_validate({"name": "Ghost", "status": "spectral"})
    assert char.status == "spectral"


# ── History ──────────────────────────────────────────────


def test_thinking_placeholder():
    msg = thinking_placeholder()
    assert msg.author == "narrator"
    assert msg.is_thinking
    assert not StoryMessage(author="user", text="Look around").is_thinking


def test_session_round_trips_through_wire():
    session = GameSession(
        id="abc",
        title="The Old Mill",
        history=[StoryMessage(author="character", text="Halt!", character_name="Guard")],
        world_title="Ashfall",
    )
    restored = GameSession.model_validate(session.to_wire())
    assert restored == session
