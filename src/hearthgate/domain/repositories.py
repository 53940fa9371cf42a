from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import List, Optional

from hearthgate.domain.models.action import Action
from hearthgate.domain.models.character import Character
from hearthgate.domain.models.player import Player
from hearthgate.domain.models.progress import ActionCooldown, CompletedAction, InventoryItem
from hearthgate.domain.models.world import STARTING_REGION, Item, Location, Town

# An operation runs inside the persistor's transaction. It receives the
# storage session (an in-memory marker object when there is no database).
StateOperation = Callable[[object], None]


class WorldCatalogRepository(ABC):
    @abstractmethod
    def get_town(self, town_id: int) -> Optional[Town]:
        raise NotImplementedError

    @abstractmethod
    def list_towns(self) -> List[Town]:
        raise NotImplementedError

    @abstractmethod
    def get_location(self, location_id: int) -> Optional[Location]:
        raise NotImplementedError

    @abstractmethod
    def list_locations_by_town(self, town_id: int) -> List[Location]:
        raise NotImplementedError

    @abstractmethod
    def get_action(self, action_id: int) -> Optional[Action]:
        raise NotImplementedError

    @abstractmethod
    def list_actions_by_location(self, location_id: int) -> List[Action]:
        raise NotImplementedError

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[Item]:
        raise NotImplementedError

    def get_starting_town(self) -> Optional[Town]:
        towns = self.list_towns()
        starting = [town for town in towns if town.region == STARTING_REGION]
        candidates = starting or towns
        return candidates[0] if candidates else None

    def get_starting_location(self) -> Optional[Location]:
        town = self.get_starting_town()
        if town is None:
            return None
        locations = self.list_locations_by_town(town.id)
        return locations[0] if locations else None


class CharacterRepository(ABC):
    @abstractmethod
    def get(self, character_id: int) -> Optional[Character]:
        raise NotImplementedError

    @abstractmethod
    def list_by_player(self, player_id: int) -> List[Character]:
        raise NotImplementedError

    @abstractmethod
    def create(self, character: Character) -> Character:
        raise NotImplementedError

    @abstractmethod
    def save(self, character: Character) -> None:
        """Persist the character if its version still matches the stored row."""
        raise NotImplementedError

    @abstractmethod
    def is_name_taken(self, name: str) -> bool:
        raise NotImplementedError


class InventoryRepository(ABC):
    @abstractmethod
    def list_for_character(self, character_id: int) -> List[InventoryItem]:
        raise NotImplementedError

    @abstractmethod
    def get_quantity(self, character_id: int, item_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def build_set_quantity_operation(self, *, character_id: int, item_id: int, quantity: int) -> StateOperation:
        raise NotImplementedError


class CooldownRepository(ABC):
    @abstractmethod
    def get(self, character_id: int, action_id: int) -> Optional[ActionCooldown]:
        raise NotImplementedError

    @abstractmethod
    def list_for_character(self, character_id: int) -> List[ActionCooldown]:
        raise NotImplementedError

    @abstractmethod
    def build_set_cooldown_operation(
        self,
        *,
        character_id: int,
        action_id: int,
        available_at: datetime,
    ) -> StateOperation:
        raise NotImplementedError

    @abstractmethod
    def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError


class CompletedActionRepository(ABC):
    @abstractmethod
    def get(self, character_id: int, action_id: int) -> Optional[CompletedAction]:
        raise NotImplementedError

    @abstractmethod
    def list_for_character(self, character_id: int) -> List[CompletedAction]:
        raise NotImplementedError

    @abstractmethod
    def build_record_completion_operation(
        self,
        *,
        character_id: int,
        action_id: int,
        completed_at: datetime,
    ) -> StateOperation:
        raise NotImplementedError


class PlayerRepository(ABC):
    @abstractmethod
    def get(self, player_id: int) -> Optional[Player]:
        raise NotImplementedError

    @abstractmethod
    def get_by_wallet(self, wallet_address: str) -> Optional[Player]:
        raise NotImplementedError

    @abstractmethod
    def get_or_create_by_wallet(self, wallet_address: str, username: Optional[str] = None) -> Player:
        raise NotImplementedError
