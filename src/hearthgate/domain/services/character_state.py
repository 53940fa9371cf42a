from __future__ import annotations

from typing import Dict

from hearthgate.domain.models.action import Action
from hearthgate.domain.models.character import ATTRIBUTE_NAMES, Character
from hearthgate.domain.models.reward import RewardOutcome, StatChanges


def deduct_action_costs(character: Character, action: Action) -> None:
    currency_after = character.currency - int(action.required_currency)
    points_after = character.action_points - int(action.action_points_cost)
    if currency_after < 0 or points_after < 0:
        raise ValueError(f"Action {action.id} costs exceed character {character.id} balances")
    character.currency = currency_after
    character.action_points = points_after


def apply_stat_changes(character: Character, changes: StatChanges | None) -> None:
    if changes is None:
        return
    deltas = changes.deltas()
    if "health" in deltas:
        character.health = max(0, min(character.max_health, character.health + deltas["health"]))
    if "mana" in deltas:
        character.mana = max(0, min(character.max_mana, character.mana + deltas["mana"]))
    for name in ATTRIBUTE_NAMES:
        if name in deltas:
            setattr(character, name, max(0, int(getattr(character, name)) + deltas[name]))


def apply_reward_balances(character: Character, outcome: RewardOutcome) -> None:
    if outcome.currency is not None:
        character.currency = max(0, character.currency + int(outcome.currency))
    if outcome.experience is not None:
        character.experience = max(0, character.experience + int(outcome.experience))
    apply_stat_changes(character, outcome.stat_changes)


def inventory_changes(
    held: Dict[int, int],
    action: Action,
    outcome: RewardOutcome,
) -> Dict[int, int]:
    """Return the new quantity for every inventory line the execution touches.

    The required item is consumed before rewards are granted, so an action
    that hands back the item it consumed nets out correctly.
    """
    after: Dict[int, int] = {}

    def _current(item_id: int) -> int:
        return after.get(item_id, int(held.get(item_id, 0)))

    if action.required_item_id is not None:
        item_id = int(action.required_item_id)
        after[item_id] = _current(item_id) - int(action.required_item_quantity)
    for grant in outcome.items:
        item_id = int(grant.item_id)
        after[item_id] = _current(item_id) + int(grant.quantity)
    return {item_id: max(0, quantity) for item_id, quantity in after.items()}
