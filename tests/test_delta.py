"""Tests for storyspawn.delta: new-entry detection and screen effects."""

import pytest

from storyspawn.delta import damage_intensity, diff
from storyspawn.models import (
    Character,
    GameState,
    Injury,
    InventoryItem,
    PlayerStatus,
    Quest,
    StatusEffect,
)


def _state(**status) -> GameState:
    return GameState(player_status=PlayerStatus(**status))


# ── Damage intensity ─────────────────────────────────────


@pytest.mark.parametrize("delta, expected", [(0, 0.3), (10, 0.5), (25, 0.8), (100, 0.8)])
def test_damage_intensity(delta, expected):
    assert damage_intensity(delta) == pytest.approx(expected)


def test_health_loss_red_vignette():
    delta = diff(_state(health=100), _state(health=90))
    assert delta.health_delta == 10
    assert delta.damage_vignette.color == "red"
    assert delta.damage_vignette.intensity == pytest.approx(0.5)
    assert delta.damage_vignette.css == "rgba(239, 68, 68, 0.5)"


def test_healing_has_no_vignette():
    delta = diff(_state(health=50), _state(health=80))
    assert delta.health_delta == -30
    assert delta.damage_vignette is None


# ── New entries ──────────────────────────────────────────


def test_new_items_by_name():
    before = GameState()
    after = _state(inventory=[
        InventoryItem(name="Old Journal"),
        InventoryItem(name="Rusty Key"),
    ])
    assert diff(before, after).new_items == ["Rusty Key"]


def test_new_characters_and_active_quests_only():
    before = GameState(characters=[Character(name="Kara")])
    after = GameState(
        characters=[Character(name="Kara"), Character(name="Brother Aldric")],
        quests=[
            Quest(title="Find the Miller", status="active"),
            Quest(title="Old Business", status="completed"),
        ],
    )
    delta = diff(before, after)
    assert delta.new_characters == ["Brother Aldric"]
    assert delta.new_quests == ["Find the Miller"]


def test_injury_increase():
    before = _state()
    after = _state(injuries=[Injury(location="leftArm", description="Cut", severity="minor")])
    assert diff(before, after).injury_increase
    assert not diff(after, after).injury_increase


def test_nothing_changed():
    state = _state()
    delta = diff(state, state)
    assert delta.new_items == []
    assert delta.new_status_effects == []
    assert delta.damage_vignette is None
    assert delta.status_vignette is None


# ── Status vignette ──────────────────────────────────────


def test_poison_is_green():
    after = _state(status_effects=[StatusEffect(name="Poisoned", type="negative")])
    vignette = diff(_state(), after).status_vignette
    assert vignette.color == "green"
    assert vignette.intensity == 0.25


def test_other_negative_is_red():
    after = _state(status_effects=[StatusEffect(name="Exhausted", type="negative")])
    assert diff(_state(), after).status_vignette.color == "red"


def test_positive_effect_no_vignette():
    after = _state(status_effects=[StatusEffect(name="Blessed", type="positive")])
    delta = diff(_state(), after)
    assert [e.name for e in delta.new_status_effects] == ["Blessed"]
    assert delta.status_vignette is None


def test_existing_negative_effect_not_repeated():
    poisoned = _state(status_effects=[StatusEffect(name="Poisoned", type="negative")])
    assert diff(poisoned, poisoned).status_vignette is None
