from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import List, Optional

from hearthgate.application.dtos import ExecutionResult
from hearthgate.application.mappers.action_mapper import describe_outcome, to_character_state_view
from hearthgate.application.services.character_locks import CharacterLockRegistry
from hearthgate.application.services.event_bus import EventBus
from hearthgate.domain.errors import ConcurrencyConflictError, NotFoundError, StorageFailureError
from hearthgate.domain.events import ActionExecutedEvent, ActionRejectedEvent, CharacterRelocatedEvent
from hearthgate.domain.models.action import Action
from hearthgate.domain.models.character import Character
from hearthgate.domain.models.progress import CharacterSnapshot, ensure_utc, utc_now
from hearthgate.domain.models.reward import RewardOutcome
from hearthgate.domain.models.world import Location, Town
from hearthgate.domain.repositories import (
    CharacterRepository,
    CompletedActionRepository,
    CooldownRepository,
    InventoryRepository,
    StateOperation,
    WorldCatalogRepository,
)
from hearthgate.domain.services.character_state import (
    apply_reward_balances,
    deduct_action_costs,
    inventory_changes,
)
from hearthgate.domain.services.eligibility import EligibilityResult, cooldown_blocks, evaluate_eligibility
from hearthgate.domain.services.reward_resolver import RandomSource, resolve_rewards


StatePersistor = Callable[[Character, Sequence[StateOperation]], None]

logger = logging.getLogger(__name__)


class ActionResolutionEngine:
    """Runs location actions for characters.

    ``execute`` is the only mutating entry point. It holds the character's
    lock from the first read until the persistor commits, and hands every
    write (character row, inventory lines, cooldown, completion counter) to
    the persistor as one batch, so either all of it lands or none of it does.
    """

    def __init__(
        self,
        *,
        catalog: WorldCatalogRepository,
        character_repo: CharacterRepository,
        inventory_repo: InventoryRepository,
        cooldown_repo: CooldownRepository,
        completion_repo: CompletedActionRepository,
        state_persistor: StatePersistor,
        event_bus: EventBus | None = None,
        random_source: RandomSource | None = None,
        lock_registry: CharacterLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_conflict_retries: int = 3,
        lock_timeout: float | None = None,
    ) -> None:
        self.catalog = catalog
        self.character_repo = character_repo
        self.inventory_repo = inventory_repo
        self.cooldown_repo = cooldown_repo
        self.completion_repo = completion_repo
        self.state_persistor = state_persistor
        self.event_bus = event_bus
        self.random_source = random_source if random_source is not None else random.Random()
        self.locks = lock_registry if lock_registry is not None else CharacterLockRegistry()
        self._clock = clock
        self.max_conflict_retries = max(0, int(max_conflict_retries))
        self.lock_timeout = lock_timeout

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else ensure_utc(self._clock())

    def execute_action(self, character_id: int, action_id: int) -> ExecutionResult:
        return self.execute(character_id, action_id)

    def execute(self, character_id: int, action_id: int, now: datetime | None = None) -> ExecutionResult:
        when = self._now(now)
        attempts = self.max_conflict_retries + 1

        for attempt_index in range(attempts):
            try:
                with self.locks.hold(character_id, timeout=self.lock_timeout):
                    result, events = self._execute_once(int(character_id), int(action_id), when)
            except ConcurrencyConflictError:
                is_last_attempt = attempt_index >= attempts - 1
                logger.warning(
                    "Concurrent update detected while executing action",
                    extra={
                        "character_id": character_id,
                        "action_id": action_id,
                        "attempt": attempt_index + 1,
                        "will_retry": not is_last_attempt,
                    },
                )
                if is_last_attempt:
                    raise
                continue
            except StorageFailureError:
                logger.exception(
                    "Action could not be committed",
                    extra={"character_id": character_id, "action_id": action_id},
                )
                raise

            self._publish(events)
            return result

        raise ConcurrencyConflictError(f"Action {action_id} for character {character_id} could not be applied")

    def get_available_actions(
        self,
        location_id: int,
        character_id: int,
        character_level: int,
        now: datetime | None = None,
    ) -> List[Action]:
        when = self._now(now)
        location = self.catalog.get_location(location_id)
        if location is None:
            raise NotFoundError("location", location_id)
        if not location.is_active:
            return []

        cooldowns = {row.action_id: row.available_at for row in self.cooldown_repo.list_for_character(character_id)}
        return [
            action
            for action in self.catalog.list_actions_by_location(location_id)
            if action.is_active
            and action.required_level <= int(character_level)
            and not cooldown_blocks(cooldowns.get(action.id), when)
        ]

    def get_action_status(self, character_id: int, action_id: int, now: datetime | None = None) -> EligibilityResult:
        when = self._now(now)
        character = self._require_character(character_id)
        action, location, _ = self._require_action_ancestry(action_id)
        return evaluate_eligibility(self._load_snapshot(character), action, location, when)

    def _require_character(self, character_id: int) -> Character:
        character = self.character_repo.get(character_id)
        if character is None:
            raise NotFoundError("character", character_id)
        return character

    def _require_action_ancestry(self, action_id: int) -> tuple[Action, Location, Town]:
        action = self.catalog.get_action(action_id)
        if action is None or not action.is_active:
            raise NotFoundError("action", action_id)
        location = self.catalog.get_location(action.location_id)
        if location is None:
            raise NotFoundError("location", action.location_id)
        town = self.catalog.get_town(location.town_id)
        if town is None:
            raise NotFoundError("town", location.town_id)
        return action, location, town

    def _load_snapshot(self, character: Character) -> CharacterSnapshot:
        character_id = int(character.id or 0)
        inventory: dict[int, int] = {}
        for line in self.inventory_repo.list_for_character(character_id):
            if line.slot is None and not line.equipped:
                inventory[line.item_id] = inventory.get(line.item_id, 0) + int(line.quantity)
        return CharacterSnapshot(
            character=character,
            inventory=inventory,
            cooldowns={row.action_id: row.available_at for row in self.cooldown_repo.list_for_character(character_id)},
            completions={
                row.action_id: row.times_completed for row in self.completion_repo.list_for_character(character_id)
            },
        )

    def _execute_once(
        self,
        character_id: int,
        action_id: int,
        when: datetime,
    ) -> tuple[ExecutionResult, list[object]]:
        character = self._require_character(character_id)
        action, location, town = self._require_action_ancestry(action_id)
        snapshot = self._load_snapshot(character)

        verdict = evaluate_eligibility(snapshot, action, location, when)
        if not verdict.eligible:
            logger.info(
                "Action rejected",
                extra={
                    "character_id": character_id,
                    "action_id": action_id,
                    "reason": verdict.reason.value if verdict.reason else "",
                },
            )
            result = ExecutionResult(
                success=False,
                character_id=character_id,
                action_id=action_id,
                reason=verdict.reason,
                character=to_character_state_view(character, town.id),
                messages=[verdict.detail] if verdict.detail else [],
            )
            event = ActionRejectedEvent(
                character_id=character_id,
                action_id=action_id,
                reason=verdict.reason.value if verdict.reason else "",
                rejected_at=when,
            )
            return result, [event]

        starting_location_id = character.location_id
        deduct_action_costs(character, action)
        outcome = resolve_rewards(action.rewards, self.random_source)
        item_names = self._require_reward_items(outcome)
        apply_reward_balances(character, outcome)

        destination_town = town
        if outcome.teleport_to is not None:
            target = self.catalog.get_location(outcome.teleport_to)
            if target is None:
                raise NotFoundError("location", outcome.teleport_to)
            target_town = self.catalog.get_town(target.town_id)
            if target_town is None:
                raise NotFoundError("town", target.town_id)
            character.location_id = target.id
            destination_town = target_town
        character.validate()

        operations: list[StateOperation] = []
        for item_id, quantity in sorted(inventory_changes(snapshot.inventory, action, outcome).items()):
            operations.append(
                self.inventory_repo.build_set_quantity_operation(
                    character_id=character_id,
                    item_id=item_id,
                    quantity=quantity,
                )
            )

        cooldown_until: Optional[datetime] = None
        if action.cooldown_seconds > 0:
            cooldown_until = when + timedelta(seconds=int(action.cooldown_seconds))
            operations.append(
                self.cooldown_repo.build_set_cooldown_operation(
                    character_id=character_id,
                    action_id=action_id,
                    available_at=cooldown_until,
                )
            )
        operations.append(
            self.completion_repo.build_record_completion_operation(
                character_id=character_id,
                action_id=action_id,
                completed_at=when,
            )
        )

        self.state_persistor(character, operations)

        logger.info(
            "Action executed",
            extra={
                "character_id": character_id,
                "action_id": action_id,
                "currency_after": character.currency,
                "action_points_after": character.action_points,
                "items_granted": len(outcome.items),
                "location_id": character.location_id,
            },
        )

        messages = [f"{action.name} complete."] + describe_outcome(outcome, item_names)
        result = ExecutionResult(
            success=True,
            character_id=character_id,
            action_id=action_id,
            outcome=outcome,
            character=to_character_state_view(character, destination_town.id),
            cooldown_until=cooldown_until,
            messages=messages,
        )
        events: list[object] = [
            ActionExecutedEvent(
                character_id=character_id,
                action_id=action_id,
                location_id=location.id,
                outcome=outcome,
                executed_at=when,
            )
        ]
        if outcome.teleport_to is not None and starting_location_id != character.location_id:
            starting_location = self.catalog.get_location(starting_location_id) if starting_location_id else None
            events.append(
                CharacterRelocatedEvent(
                    character_id=character_id,
                    from_location_id=starting_location_id,
                    to_location_id=int(character.location_id or 0),
                    from_town_id=starting_location.town_id if starting_location is not None else None,
                    to_town_id=destination_town.id,
                )
            )
        return result, events

    def _require_reward_items(self, outcome: RewardOutcome) -> dict[int, str]:
        names: dict[int, str] = {}
        for grant in outcome.items:
            item = self.catalog.get_item(grant.item_id)
            if item is None:
                raise NotFoundError("item", grant.item_id)
            names[item.id] = item.name
        return names

    def _publish(self, events: Sequence[object]) -> None:
        if self.event_bus is None:
            return
        for event in events:
            self.event_bus.publish(event)
