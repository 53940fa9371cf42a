import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from hearthgate.domain.errors import ConcurrencyConflictError, NotFoundError
from hearthgate.domain.models.action import Action
from hearthgate.domain.models.character import Character
from hearthgate.domain.models.player import Player
from hearthgate.domain.models.progress import (
    ActionCooldown,
    CompletedAction,
    InventoryItem,
    ensure_utc,
    utc_now,
)
from hearthgate.domain.models.world import Item, Location, Town
from hearthgate.domain.repositories import (
    CharacterRepository,
    CompletedActionRepository,
    CooldownRepository,
    InventoryRepository,
    PlayerRepository,
    WorldCatalogRepository,
)


class InMemoryWorldCatalogRepository(WorldCatalogRepository):
    def __init__(
        self,
        *,
        towns: Iterable[Town] = (),
        locations: Iterable[Location] = (),
        actions: Iterable[Action] = (),
        items: Iterable[Item] = (),
    ) -> None:
        self._towns: Dict[int, Town] = {town.id: town for town in towns}
        self._locations: Dict[int, Location] = {location.id: location for location in locations}
        self._actions: Dict[int, Action] = {action.id: action for action in actions}
        self._items: Dict[int, Item] = {item.id: item for item in items}

    def get_town(self, town_id: int) -> Optional[Town]:
        return self._towns.get(town_id)

    def list_towns(self) -> List[Town]:
        return sorted(self._towns.values(), key=lambda town: (town.required_level, town.name))

    def get_location(self, location_id: int) -> Optional[Location]:
        return self._locations.get(location_id)

    def list_locations_by_town(self, town_id: int) -> List[Location]:
        rows = [row for row in self._locations.values() if row.town_id == town_id and row.is_active]
        return sorted(rows, key=lambda row: (row.sort_order, row.name))

    def get_action(self, action_id: int) -> Optional[Action]:
        return self._actions.get(action_id)

    def list_actions_by_location(self, location_id: int) -> List[Action]:
        rows = [row for row in self._actions.values() if row.location_id == location_id and row.is_active]
        return sorted(rows, key=lambda row: (row.sort_order, row.name))

    def get_item(self, item_id: int) -> Optional[Item]:
        return self._items.get(item_id)


class InMemoryCharacterRepository(CharacterRepository):
    """Characters keyed by id.

    Reads hand out copies so callers can mutate freely until they save;
    ``save`` only accepts a character whose version matches the stored one.
    """

    def __init__(self, initial: Optional[Dict[int, Character]] = None) -> None:
        self._rows: Dict[int, Character] = {key: replace(value) for key, value in (initial or {}).items()}
        self._lock = threading.RLock()

    def get(self, character_id: int) -> Optional[Character]:
        stored = self._rows.get(character_id)
        return replace(stored) if stored is not None else None

    def list_by_player(self, player_id: int) -> List[Character]:
        return [replace(row) for row in sorted(self._rows.values(), key=lambda c: int(c.id or 0)) if row.player_id == player_id]

    def create(self, character: Character) -> Character:
        with self._lock:
            if self._name_taken_locked(character.name):
                raise ValueError(f"Character name '{character.name}' is already taken")
            next_id = max(self._rows.keys(), default=0) + 1
            stored = replace(character, id=next_id, version=0)
            self._rows[next_id] = stored
            return replace(stored)

    def save(self, character: Character) -> None:
        character.validate()
        with self._lock:
            stored = self._rows.get(character.id)
            if stored is None:
                raise NotFoundError("character", character.id)
            if stored.version != character.version:
                raise ConcurrencyConflictError(
                    f"Character {character.id} changed (expected version {character.version}, found {stored.version})"
                )
            self._rows[character.id] = replace(character, version=stored.version + 1)

    def is_name_taken(self, name: str) -> bool:
        with self._lock:
            return self._name_taken_locked(name)

    def _name_taken_locked(self, name: str) -> bool:
        key = str(name or "").strip().lower()
        return any(row.name.strip().lower() == key for row in self._rows.values())


class InMemoryInventoryRepository(InventoryRepository):
    def __init__(self, lines: Iterable[InventoryItem] = ()) -> None:
        self._rows: Dict[Tuple[int, int, Optional[str]], InventoryItem] = {
            (line.character_id, line.item_id, line.slot): replace(line) for line in lines
        }
        self._lock = threading.RLock()

    def list_for_character(self, character_id: int) -> List[InventoryItem]:
        rows = [replace(row) for row in self._rows.values() if row.character_id == character_id]
        return sorted(rows, key=lambda row: (not row.equipped, row.slot or "", row.item_id))

    def get_quantity(self, character_id: int, item_id: int) -> int:
        line = self._rows.get((character_id, item_id, None))
        return int(line.quantity) if line is not None and not line.equipped else 0

    def set_quantity(self, *, character_id: int, item_id: int, quantity: int) -> None:
        key = (int(character_id), int(item_id), None)
        with self._lock:
            if int(quantity) <= 0:
                self._rows.pop(key, None)
                return
            existing = self._rows.get(key)
            if existing is not None:
                existing.quantity = int(quantity)
                return
            self._rows[key] = InventoryItem(character_id=key[0], item_id=key[1], quantity=int(quantity))

    def build_set_quantity_operation(self, *, character_id: int, item_id: int, quantity: int):
        def _operation(_session: object) -> None:
            self.set_quantity(character_id=character_id, item_id=item_id, quantity=quantity)

        return _operation


class InMemoryCooldownRepository(CooldownRepository):
    def __init__(self, cooldowns: Iterable[ActionCooldown] = ()) -> None:
        self._rows: Dict[Tuple[int, int], ActionCooldown] = {
            (row.character_id, row.action_id): row for row in cooldowns
        }
        self._lock = threading.RLock()

    def get(self, character_id: int, action_id: int) -> Optional[ActionCooldown]:
        return self._rows.get((character_id, action_id))

    def list_for_character(self, character_id: int) -> List[ActionCooldown]:
        return [row for key, row in sorted(self._rows.items()) if key[0] == character_id]

    def set_cooldown(self, *, character_id: int, action_id: int, available_at: datetime) -> None:
        with self._lock:
            self._rows[(int(character_id), int(action_id))] = ActionCooldown(
                character_id=int(character_id),
                action_id=int(action_id),
                available_at=ensure_utc(available_at),
            )

    def build_set_cooldown_operation(self, *, character_id: int, action_id: int, available_at: datetime):
        def _operation(_session: object) -> None:
            self.set_cooldown(character_id=character_id, action_id=action_id, available_at=available_at)

        return _operation

    def delete_expired(self, now: datetime) -> int:
        cutoff = ensure_utc(now)
        with self._lock:
            expired = [key for key, row in list(self._rows.items()) if ensure_utc(row.available_at) <= cutoff]
            for key in expired:
                self._rows.pop(key, None)
        return len(expired)


class InMemoryCompletedActionRepository(CompletedActionRepository):
    def __init__(self, rows: Iterable[CompletedAction] = ()) -> None:
        self._rows: Dict[Tuple[int, int], CompletedAction] = {
            (row.character_id, row.action_id): row for row in rows
        }
        self._lock = threading.RLock()

    def get(self, character_id: int, action_id: int) -> Optional[CompletedAction]:
        return self._rows.get((character_id, action_id))

    def list_for_character(self, character_id: int) -> List[CompletedAction]:
        return [row for key, row in sorted(self._rows.items()) if key[0] == character_id]

    def record_completion(self, *, character_id: int, action_id: int, completed_at: datetime) -> None:
        key = (int(character_id), int(action_id))
        with self._lock:
            existing = self._rows.get(key)
            times = (existing.times_completed if existing is not None else 0) + 1
            self._rows[key] = CompletedAction(
                character_id=key[0],
                action_id=key[1],
                times_completed=times,
                completed_at=ensure_utc(completed_at),
            )

    def build_record_completion_operation(self, *, character_id: int, action_id: int, completed_at: datetime):
        def _operation(_session: object) -> None:
            self.record_completion(character_id=character_id, action_id=action_id, completed_at=completed_at)

        return _operation


class InMemoryPlayerRepository(PlayerRepository):
    def __init__(self, players: Iterable[Player] = ()) -> None:
        self._rows: Dict[int, Player] = {int(player.id): replace(player) for player in players if player.id is not None}
        self._lock = threading.RLock()

    def get(self, player_id: int) -> Optional[Player]:
        stored = self._rows.get(player_id)
        return replace(stored) if stored is not None else None

    def get_by_wallet(self, wallet_address: str) -> Optional[Player]:
        for row in self._rows.values():
            if row.wallet_address == wallet_address:
                return replace(row)
        return None

    def get_or_create_by_wallet(self, wallet_address: str, username: Optional[str] = None) -> Player:
        with self._lock:
            now = utc_now()
            for row in self._rows.values():
                if row.wallet_address == wallet_address:
                    row.last_login = now
                    return replace(row)
            next_id = max(self._rows.keys(), default=0) + 1
            player = Player(id=next_id, wallet_address=wallet_address, username=username, last_login=now)
            self._rows[next_id] = player
            return replace(player)
