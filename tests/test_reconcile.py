"""Tests for storyspawn.reconcile: per-field merge rules."""

from storyspawn.delta import diff
from storyspawn.models import (
    Character,
    DialogueLine,
    GameState,
    InventoryItem,
    MapData,
    MapLocation,
    PlayerStatus,
    Quest,
    StoryUpdate,
    WorldInfo,
)
from storyspawn.reconcile import reconcile


def _previous() -> GameState:
    return GameState(
        player_status=PlayerStatus(health=70, currency=25),
        characters=[Character(name="Kara", image_url="https://img.test/kara.png")],
        quests=[Quest(title="Find the Miller")],
        world_info=[WorldInfo(topic="The Mill", details="Abandoned for years")],
        map_data=MapData(locations=[MapLocation(id="mill", name="Old Mill", is_current=True)]),
        story="Dust hangs in the air.",
        location_image_url="data:image/jpeg;base64,AAA",
    )


def test_empty_quests_retained():
    state = reconcile(_previous(), StoryUpdate(quests=[]), [])
    assert [q.title for q in state.quests] == ["Find the Miller"]


def test_empty_ledgers_retained():
    state = reconcile(_previous(), StoryUpdate(), [])
    assert state.world_info[0].topic == "The Mill"
    assert state.map_data.current.id == "mill"


def test_non_empty_ledgers_replace():
    update = StoryUpdate(
        quests=[Quest(title="Escape the Mill")],
        map_data=MapData(locations=[MapLocation(id="road", name="North Road", is_current=True)]),
    )
    state = reconcile(_previous(), update, [])
    assert [q.title for q in state.quests] == ["Escape the Mill"]
    assert [loc.id for loc in state.map_data.locations] == ["road"]


def test_player_status_replaced_wholesale():
    update = StoryUpdate(player_status=PlayerStatus(health=40, inventory=[]))
    state = reconcile(_previous(), update, [])
    assert state.player_status.health == 40
    assert state.player_status.currency == 10
    assert state.player_status.inventory == []


def test_status_without_inventory_finds_nothing_new():
    previous = GameState(player_status=PlayerStatus(inventory=[InventoryItem(name="Sword")]))
    update = StoryUpdate.model_validate({"playerStatus": {"health": 90}})
    state = reconcile(previous, update, [])
    assert state.player_status.inventory == []
    assert diff(previous, state).new_items == []


def test_missing_player_status_kept():
    state = reconcile(_previous(), StoryUpdate(story="Nothing happens."), [])
    assert state.player_status.health == 70
    assert state.player_status.currency == 25


def test_missing_dialogue_is_empty():
    previous = _previous().model_copy(update={"dialogue": [DialogueLine(character_name="Kara", text="Hi")]})
    state = reconcile(previous, StoryUpdate(story="Silence."), [])
    assert state.dialogue == []


def test_characters_come_from_resolved_roster():
    resolved = [Character(name="Brother Aldric", image_url="https://img.test/aldric.png")]
    state = reconcile(_previous(), StoryUpdate(characters=[Character(name="Brother Aldric")]), resolved)
    assert state.characters == resolved


def test_empty_roster_clears_characters():
    state = reconcile(_previous(), StoryUpdate(), [])
    assert state.characters == []


def test_story_and_time_replaced():
    update = StoryUpdate(story="Night falls.", game_time="Day 1, 9:00 PM")
    state = reconcile(_previous(), update, [])
    assert state.story == "Night falls."
    assert state.game_time == "Day 1, 9:00 PM"


def test_location_image_sticky():
    state = reconcile(_previous(), StoryUpdate(story="x"), [])
    assert state.location_image_url == "data:image/jpeg;base64,AAA"


def test_previous_state_untouched():
    previous = _previous()
    reconcile(previous, StoryUpdate(quests=[Quest(title="New")], story="Changed"), [])
    assert previous.story == "Dust hangs in the air."
    assert [q.title for q in previous.quests] == ["Find the Miller"]
