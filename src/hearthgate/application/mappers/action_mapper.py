from __future__ import annotations

from typing import Optional

from hearthgate.application.dtos import (
    ActionView,
    CharacterStateView,
    CharacterSummaryView,
    InventoryLineView,
    LocationContextView,
)
from hearthgate.domain.models.action import Action
from hearthgate.domain.models.character import Character
from hearthgate.domain.models.progress import InventoryItem
from hearthgate.domain.models.reward import RewardOutcome
from hearthgate.domain.models.world import Item, Location, Town


def to_character_state_view(character: Character, town_id: Optional[int]) -> CharacterStateView:
    return CharacterStateView(
        character_id=int(character.id or 0),
        name=character.name,
        level=character.level,
        experience=character.experience,
        health=character.health,
        max_health=character.max_health,
        mana=character.mana,
        max_mana=character.max_mana,
        currency=character.currency,
        action_points=character.action_points,
        max_action_points=character.max_action_points,
        location_id=character.location_id,
        town_id=town_id,
        attributes=character.attributes(),
    )


def to_action_view(action: Action) -> ActionView:
    return ActionView(
        id=action.id,
        name=action.name,
        action_type=action.action_type.value,
        category=action.category.value,
        required_level=action.required_level,
        required_currency=action.required_currency,
        action_points_cost=action.action_points_cost,
        cooldown_seconds=action.cooldown_seconds,
        is_repeatable=action.is_repeatable,
        description=str(action.description or ""),
    )


def to_character_summary_view(character: Character) -> CharacterSummaryView:
    return CharacterSummaryView(
        id=int(character.id or 0),
        name=character.name,
        level=character.level,
        character_class=str(character.character_class or "adventurer"),
        location_id=character.location_id,
    )


def to_location_context_view(character: Character, location: Location, town: Town) -> LocationContextView:
    return LocationContextView(
        character_id=int(character.id or 0),
        location_id=location.id,
        location_name=location.name,
        location_type=location.location_type.value,
        town_id=town.id,
        town_name=town.name,
        region=town.region,
        is_safe_zone=town.is_safe_zone,
    )


def to_inventory_line_view(line: InventoryItem, item: Item | None) -> InventoryLineView:
    return InventoryLineView(
        item_id=line.item_id,
        name=item.name if item is not None else f"Item #{line.item_id}",
        quantity=line.quantity,
        equipped=line.equipped,
        slot=line.slot,
    )


def describe_outcome(outcome: RewardOutcome, item_names: dict[int, str]) -> list[str]:
    lines: list[str] = []
    if outcome.currency:
        lines.append(f"{'+' if outcome.currency > 0 else ''}{outcome.currency} gold")
    if outcome.experience:
        lines.append(f"+{outcome.experience} XP")
    for grant in outcome.items:
        lines.append(f"Received {grant.quantity}x {item_names.get(grant.item_id, f'item #{grant.item_id}')}")
    if outcome.stat_changes is not None:
        for name, delta in outcome.stat_changes.deltas().items():
            lines.append(f"{name.title()} {'+' if delta >= 0 else ''}{delta}")
    for unlock in outcome.unlocks:
        lines.append(f"Unlocked {unlock.kind.value} #{unlock.target_id}")
    if outcome.teleport_to is not None:
        lines.append(f"Travelled to location #{outcome.teleport_to}")
    return lines
