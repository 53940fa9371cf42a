from __future__ import annotations

import logging
from typing import List, Optional

from hearthgate.application.dtos import CharacterSummaryView, InventoryLineView, LocationContextView
from hearthgate.application.mappers.action_mapper import (
    to_character_summary_view,
    to_inventory_line_view,
    to_location_context_view,
)
from hearthgate.application.services.action_service import StatePersistor
from hearthgate.application.services.character_locks import CharacterLockRegistry
from hearthgate.application.services.event_bus import EventBus
from hearthgate.domain.errors import NotFoundError
from hearthgate.domain.events import CharacterRelocatedEvent
from hearthgate.domain.models.character import Character, new_character
from hearthgate.domain.repositories import (
    CharacterRepository,
    InventoryRepository,
    PlayerRepository,
    WorldCatalogRepository,
)


logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 32


class CharacterService:
    def __init__(
        self,
        *,
        catalog: WorldCatalogRepository,
        character_repo: CharacterRepository,
        inventory_repo: InventoryRepository,
        state_persistor: StatePersistor,
        player_repo: PlayerRepository | None = None,
        lock_registry: CharacterLockRegistry | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.catalog = catalog
        self.character_repo = character_repo
        self.inventory_repo = inventory_repo
        self.state_persistor = state_persistor
        self.player_repo = player_repo
        self.locks = lock_registry if lock_registry is not None else CharacterLockRegistry()
        self.event_bus = event_bus

    @staticmethod
    def _normalize_name(raw_name: str) -> str:
        name = " ".join(str(raw_name or "").split())
        if len(name) < NAME_MIN_LENGTH or len(name) > NAME_MAX_LENGTH:
            raise ValueError(f"Character name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters long")
        return name

    def create_character(self, player_id: int, name: str, character_class: Optional[str] = None) -> Character:
        if self.player_repo is not None and self.player_repo.get(player_id) is None:
            raise NotFoundError("player", player_id)
        clean_name = self._normalize_name(name)
        if self.character_repo.is_name_taken(clean_name):
            raise ValueError(f"Character name '{clean_name}' is already taken")

        start = self.catalog.get_starting_location()
        if start is None:
            raise RuntimeError("World catalog has no starting location")

        character = self.character_repo.create(
            new_character(
                player_id=player_id,
                name=clean_name,
                location_id=start.id,
                character_class=character_class,
            )
        )
        logger.info(
            "Character created",
            extra={"character_id": character.id, "player_id": player_id, "location_id": start.id},
        )
        return character

    def list_characters(self, player_id: int) -> List[CharacterSummaryView]:
        return [to_character_summary_view(row) for row in self.character_repo.list_by_player(player_id)]

    def get_location_context(self, character_id: int) -> LocationContextView:
        character = self.character_repo.get(character_id)
        if character is None:
            raise NotFoundError("character", character_id)
        location = self.catalog.get_location(int(character.location_id or 0))
        if location is None:
            raise NotFoundError("location", character.location_id)
        town = self.catalog.get_town(location.town_id)
        if town is None:
            raise NotFoundError("town", location.town_id)
        return to_location_context_view(character, location, town)

    def get_inventory(self, character_id: int) -> List[InventoryLineView]:
        if self.character_repo.get(character_id) is None:
            raise NotFoundError("character", character_id)
        return [
            to_inventory_line_view(line, self.catalog.get_item(line.item_id))
            for line in self.inventory_repo.list_for_character(character_id)
        ]

    def move_to_location(self, character_id: int, location_id: int) -> LocationContextView:
        target = self.catalog.get_location(location_id)
        if target is None:
            raise NotFoundError("location", location_id)
        target_town = self.catalog.get_town(target.town_id)
        if target_town is None:
            raise NotFoundError("town", target.town_id)

        with self.locks.hold(character_id):
            character = self.character_repo.get(character_id)
            if character is None:
                raise NotFoundError("character", character_id)
            if not target.is_active:
                raise ValueError(f"{target.name} is closed")
            required_level = max(int(target.required_level), int(target_town.required_level))
            if character.level < required_level:
                raise ValueError(f"{target.name} requires level {required_level}")

            previous_location_id = character.location_id
            previous = self.catalog.get_location(previous_location_id) if previous_location_id else None
            character.location_id = target.id
            self.state_persistor(character, [])

        if self.event_bus is not None and previous_location_id != target.id:
            self.event_bus.publish(
                CharacterRelocatedEvent(
                    character_id=int(character_id),
                    from_location_id=previous_location_id,
                    to_location_id=target.id,
                    from_town_id=previous.town_id if previous is not None else None,
                    to_town_id=target_town.id,
                )
            )
        return to_location_context_view(character, target, target_town)
