"""Player avatar: equipment and the appearance preamble sent with each action."""

from __future__ import annotations

from storyspawn.models import EQUIP_SLOTS, CustomCharacter, InventoryItem
from storyspawn.prompts import render_prompt

PREAMBLE_TEMPLATE = (
    "(System Note: This is a note to you, the AI. Do not repeat it to the player. "
    "My character's current appearance is: {{{summary}}}."
    "{{#if equipped}} Equipped items: {{{equipped}}}.{{/if}}"
    " Ensure the story reflects this current state.)"
)


def equipped_list(avatar: CustomCharacter) -> str:
    """Equipped items as "slot: name" pairs, in slot order."""
    return ", ".join(
        f"{slot}: {avatar.equipped_items[slot].name}"
        for slot in EQUIP_SLOTS
        if slot in avatar.equipped_items
    )


def build_preamble(avatar: CustomCharacter | None) -> str:
    if avatar is None:
        return ""
    return render_prompt(PREAMBLE_TEMPLATE, {
        "summary": avatar.appearance_summary.rstrip("."),
        "equipped": equipped_list(avatar),
    })


def equip_item(avatar: CustomCharacter, item: InventoryItem) -> CustomCharacter:
    """Put item in its slot, replacing whatever was there.

    Equipment is keyed by slot, not by item name. Items without a known slot
    leave the avatar unchanged.
    """
    if item.slot not in EQUIP_SLOTS:
        return avatar

    equipped = {**avatar.equipped_items, item.slot: item}
    updated = avatar.model_copy(update={"equipped_items": equipped})
    base = avatar.appearance_summary.split(" wearing ")[0].rstrip(".")
    updated.appearance_summary = f"{base} wearing {equipped_list(updated)}."
    return updated
