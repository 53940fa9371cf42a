import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hearthgate.domain.errors import ConcurrencyConflictError, NotFoundError, StorageFailureError
from hearthgate.domain.models.action import (
    Action,
    ActionCategory,
    ActionRequirements,
    ActionTiming,
    ActionType,
)
from hearthgate.domain.models.character import Character
from hearthgate.domain.models.player import Player
from hearthgate.domain.models.progress import (
    ActionCooldown,
    CompletedAction,
    InventoryItem,
    ensure_utc,
    utc_now,
)
from hearthgate.domain.models.reward import RewardSpec, reward_spec_from_payload
from hearthgate.domain.models.world import Item, Location, LocationType, Town
from hearthgate.domain.repositories import (
    CharacterRepository,
    CompletedActionRepository,
    CooldownRepository,
    InventoryRepository,
    PlayerRepository,
    StateOperation,
    WorldCatalogRepository,
)
from .connection import SessionLocal


logger = logging.getLogger(__name__)

# Timestamps are stored as fixed-width naive UTC text so that lexical order
# matches chronological order on every backend.
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

UNSLOTTED = ""

# New ids come from MAX(id) + 1, so a concurrent insert can take the same id.
ID_ALLOCATION_ATTEMPTS = 3

CHARACTER_COLUMNS = (
    "id, player_id, name, character_class, level, experience, health, max_health, mana, max_mana, "
    "strength, dexterity, intelligence, constitution, wisdom, charisma, gold, action_points, "
    "max_action_points, location_id, version"
)


@contextmanager
def storage_errors(operation: str):
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage operation failed", extra={"operation": operation, "error": str(exc)})
        raise StorageFailureError(f"{operation} failed: {exc}") from exc


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).replace(tzinfo=None).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(raw) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    return ensure_utc(datetime.fromisoformat(str(raw)))


def _next_id(session, table: str) -> int:
    return int(session.execute(text(f"SELECT COALESCE(MAX(id), 0) + 1 AS next_id FROM {table}")).scalar_one())


def _parse_rewards(raw_value, action_id: int) -> RewardSpec:
    if raw_value is None or raw_value == "":
        return RewardSpec()
    payload = raw_value
    if isinstance(raw_value, (bytes, str)):
        try:
            payload = json.loads(raw_value)
        except ValueError as exc:
            raise StorageFailureError(f"Action {action_id} has unreadable rewards_json") from exc
    try:
        return reward_spec_from_payload(payload)
    except ValueError as exc:
        raise StorageFailureError(f"Action {action_id} has malformed rewards: {exc}") from exc


def _row_to_town(row) -> Town:
    return Town(
        id=int(row.id),
        name=str(row.name),
        region=str(row.region),
        required_level=int(row.required_level),
        is_safe_zone=bool(row.is_safe_zone),
        description=row.description,
        map_image=row.map_image,
    )


def _row_to_location(row) -> Location:
    return Location(
        id=int(row.id),
        town_id=int(row.town_id),
        name=str(row.name),
        location_type=LocationType.normalize(row.location_type),
        map_position_x=float(row.map_position_x or 0.0),
        map_position_y=float(row.map_position_y or 0.0),
        required_level=int(row.required_level),
        required_quest_id=int(row.required_quest_id) if row.required_quest_id is not None else None,
        is_active=bool(row.is_active),
        sort_order=int(row.sort_order),
        description=row.description,
        icon=str(row.icon or ""),
    )


def _row_to_action(row) -> Action:
    action_id = int(row.id)
    try:
        action_type = ActionType(str(row.action_type).strip().lower())
        category = ActionCategory(str(row.category).strip().lower())
    except ValueError as exc:
        raise StorageFailureError(f"Action {action_id} has an unknown type or category") from exc
    return Action(
        id=action_id,
        location_id=int(row.location_id),
        name=str(row.name),
        action_type=action_type,
        category=category,
        requirements=ActionRequirements(
            required_level=int(row.required_level),
            required_currency=int(row.required_gold),
            required_item_id=int(row.required_item_id) if row.required_item_id is not None else None,
            required_item_quantity=int(row.required_item_quantity),
            action_points_cost=int(row.action_points_cost),
        ),
        timing=ActionTiming(
            cooldown_seconds=int(row.cooldown_seconds),
            duration_seconds=int(row.duration_seconds),
        ),
        rewards=_parse_rewards(row.rewards_json, action_id),
        is_repeatable=bool(row.is_repeatable),
        is_active=bool(row.is_active),
        sort_order=int(row.sort_order),
        description=row.description,
        icon=str(row.icon or ""),
    )


def _row_to_character(row) -> Character:
    return Character(
        id=int(row.id),
        player_id=int(row.player_id),
        name=str(row.name),
        level=int(row.level),
        experience=int(row.experience),
        health=int(row.health),
        max_health=int(row.max_health),
        mana=int(row.mana),
        max_mana=int(row.max_mana),
        strength=int(row.strength),
        dexterity=int(row.dexterity),
        intelligence=int(row.intelligence),
        constitution=int(row.constitution),
        wisdom=int(row.wisdom),
        charisma=int(row.charisma),
        currency=int(row.gold),
        action_points=int(row.action_points),
        max_action_points=int(row.max_action_points),
        character_class=row.character_class,
        location_id=int(row.location_id) if row.location_id is not None else None,
        version=int(row.version),
    )


def _character_params(character: Character) -> Dict[str, object]:
    return {
        "id": character.id,
        "player_id": character.player_id,
        "name": character.name,
        "name_key": character.name.strip().lower(),
        "character_class": character.character_class,
        "level": character.level,
        "experience": character.experience,
        "health": character.health,
        "max_health": character.max_health,
        "mana": character.mana,
        "max_mana": character.max_mana,
        "strength": character.strength,
        "dexterity": character.dexterity,
        "intelligence": character.intelligence,
        "constitution": character.constitution,
        "wisdom": character.wisdom,
        "charisma": character.charisma,
        "gold": character.currency,
        "action_points": character.action_points,
        "max_action_points": character.max_action_points,
        "location_id": character.location_id,
        "version": character.version,
    }


def update_character_row(session, character: Character) -> None:
    """Write the character back if nobody else has since the caller read it.

    The update only matches the row at the caller's ``version`` and bumps it,
    so a stale writer updates nothing and gets ConcurrencyConflictError.
    """
    character.validate()
    result = session.execute(
        text(
            """
            UPDATE characters
            SET name = :name,
                name_key = :name_key,
                character_class = :character_class,
                level = :level,
                experience = :experience,
                health = :health,
                max_health = :max_health,
                mana = :mana,
                max_mana = :max_mana,
                strength = :strength,
                dexterity = :dexterity,
                intelligence = :intelligence,
                constitution = :constitution,
                wisdom = :wisdom,
                charisma = :charisma,
                gold = :gold,
                action_points = :action_points,
                max_action_points = :max_action_points,
                location_id = :location_id,
                version = version + 1
            WHERE id = :id AND version = :version
            """
        ),
        _character_params(character),
    )
    if result.rowcount == 1:
        return

    exists = session.execute(
        text("SELECT version FROM characters WHERE id = :id"),
        {"id": character.id},
    ).first()
    if exists is None:
        raise NotFoundError("character", character.id)
    raise ConcurrencyConflictError(
        f"Character {character.id} changed (expected version {character.version}, found {exists.version})"
    )


class SqlWorldCatalogRepository(WorldCatalogRepository):
    def get_town(self, town_id: int) -> Optional[Town]:
        with storage_errors("get_town"), SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT id, name, region, required_level, is_safe_zone, description, map_image
                    FROM towns WHERE id = :id
                    """
                ),
                {"id": int(town_id)},
            ).first()
        return _row_to_town(row) if row else None

    def list_towns(self) -> List[Town]:
        with storage_errors("list_towns"), SessionLocal() as session:
            rows = session.execute(
                text(
                    """
                    SELECT id, name, region, required_level, is_safe_zone, description, map_image
                    FROM towns
                    ORDER BY required_level, name
                    """
                )
            ).all()
        return [_row_to_town(row) for row in rows]

    def get_location(self, location_id: int) -> Optional[Location]:
        with storage_errors("get_location"), SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT id, town_id, name, location_type, map_position_x, map_position_y,
                           required_level, required_quest_id, is_active, sort_order, description, icon
                    FROM locations WHERE id = :id
                    """
                ),
                {"id": int(location_id)},
            ).first()
        return _row_to_location(row) if row else None

    def list_locations_by_town(self, town_id: int) -> List[Location]:
        with storage_errors("list_locations_by_town"), SessionLocal() as session:
            rows = session.execute(
                text(
                    """
                    SELECT id, town_id, name, location_type, map_position_x, map_position_y,
                           required_level, required_quest_id, is_active, sort_order, description, icon
                    FROM locations
                    WHERE town_id = :town_id AND is_active = 1
                    ORDER BY sort_order, name
                    """
                ),
                {"town_id": int(town_id)},
            ).all()
        return [_row_to_location(row) for row in rows]

    _ACTION_SELECT = """
        SELECT id, location_id, name, action_type, category, required_level, required_gold,
               required_item_id, required_item_quantity, action_points_cost, cooldown_seconds,
               duration_seconds, rewards_json, is_repeatable, is_active, sort_order, description, icon
        FROM location_actions
    """

    def get_action(self, action_id: int) -> Optional[Action]:
        with storage_errors("get_action"), SessionLocal() as session:
            row = session.execute(
                text(self._ACTION_SELECT + " WHERE id = :id"),
                {"id": int(action_id)},
            ).first()
        return _row_to_action(row) if row else None

    def list_actions_by_location(self, location_id: int) -> List[Action]:
        with storage_errors("list_actions_by_location"), SessionLocal() as session:
            rows = session.execute(
                text(self._ACTION_SELECT + " WHERE location_id = :location_id AND is_active = 1 ORDER BY sort_order, name"),
                {"location_id": int(location_id)},
            ).all()
        return [_row_to_action(row) for row in rows]

    def get_item(self, item_id: int) -> Optional[Item]:
        with storage_errors("get_item"), SessionLocal() as session:
            row = session.execute(
                text("SELECT id, name, item_type, rarity, base_price FROM items WHERE id = :id"),
                {"id": int(item_id)},
            ).first()
        if row is None:
            return None
        return Item(
            id=int(row.id),
            name=str(row.name),
            item_type=str(row.item_type),
            rarity=str(row.rarity),
            base_price=int(row.base_price),
        )


class SqlCharacterRepository(CharacterRepository):
    def get(self, character_id: int) -> Optional[Character]:
        with storage_errors("get_character"), SessionLocal() as session:
            row = session.execute(
                text(f"SELECT {CHARACTER_COLUMNS} FROM characters WHERE id = :id"),
                {"id": int(character_id)},
            ).first()
        return _row_to_character(row) if row else None

    def list_by_player(self, player_id: int) -> List[Character]:
        with storage_errors("list_characters"), SessionLocal() as session:
            rows = session.execute(
                text(f"SELECT {CHARACTER_COLUMNS} FROM characters WHERE player_id = :player_id ORDER BY id"),
                {"player_id": int(player_id)},
            ).all()
        return [_row_to_character(row) for row in rows]

    def create(self, character: Character) -> Character:
        for attempt_index in range(ID_ALLOCATION_ATTEMPTS):
            try:
                character_id = self._insert(character)
            except StorageFailureError as exc:
                if not isinstance(exc.__cause__, IntegrityError):
                    raise
                if self.is_name_taken(character.name):
                    raise ValueError(f"Character name '{character.name}' is already taken") from exc
                logger.warning(
                    "Character id taken by a concurrent insert",
                    extra={"name": character.name, "attempt": attempt_index + 1},
                )
                continue
            created = self.get(character_id)
            if created is None:
                raise StorageFailureError(f"Character {character_id} vanished after insert")
            return created
        raise ConcurrencyConflictError(f"Could not allocate an id for character '{character.name}'")

    @staticmethod
    def _insert(character: Character) -> int:
        params = _character_params(character)
        with storage_errors("create_character"), SessionLocal.begin() as session:
            taken = session.execute(
                text("SELECT id FROM characters WHERE name_key = :name_key"),
                {"name_key": params["name_key"]},
            ).first()
            if taken is not None:
                raise ValueError(f"Character name '{character.name}' is already taken")
            params.update({"id": _next_id(session, "characters"), "version": 0})
            session.execute(
                text(
                    """
                    INSERT INTO characters (
                        id, player_id, name, name_key, character_class, level, experience,
                        health, max_health, mana, max_mana, strength, dexterity, intelligence,
                        constitution, wisdom, charisma, gold, action_points, max_action_points,
                        location_id, version
                    )
                    VALUES (
                        :id, :player_id, :name, :name_key, :character_class, :level, :experience,
                        :health, :max_health, :mana, :max_mana, :strength, :dexterity, :intelligence,
                        :constitution, :wisdom, :charisma, :gold, :action_points, :max_action_points,
                        :location_id, :version
                    )
                    """
                ),
                params,
            )
        return int(params["id"])

    def save(self, character: Character) -> None:
        with storage_errors("save_character"), SessionLocal.begin() as session:
            update_character_row(session, character)

    def is_name_taken(self, name: str) -> bool:
        with storage_errors("is_name_taken"), SessionLocal() as session:
            row = session.execute(
                text("SELECT id FROM characters WHERE name_key = :name_key"),
                {"name_key": str(name or "").strip().lower()},
            ).first()
        return row is not None


class SqlInventoryRepository(InventoryRepository):
    def list_for_character(self, character_id: int) -> List[InventoryItem]:
        with storage_errors("list_inventory"), SessionLocal() as session:
            rows = session.execute(
                text(
                    """
                    SELECT character_id, item_id, quantity, equipped, slot
                    FROM inventory
                    WHERE character_id = :character_id
                    ORDER BY equipped DESC, slot, item_id
                    """
                ),
                {"character_id": int(character_id)},
            ).all()
        return [
            InventoryItem(
                character_id=int(row.character_id),
                item_id=int(row.item_id),
                quantity=int(row.quantity),
                equipped=bool(row.equipped),
                slot=str(row.slot) if row.slot else None,
            )
            for row in rows
        ]

    def get_quantity(self, character_id: int, item_id: int) -> int:
        with storage_errors("get_inventory_quantity"), SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT quantity FROM inventory
                    WHERE character_id = :character_id AND item_id = :item_id
                      AND slot = :slot AND equipped = 0
                    """
                ),
                {"character_id": int(character_id), "item_id": int(item_id), "slot": UNSLOTTED},
            ).first()
        return int(row.quantity) if row else 0

    @staticmethod
    def _set_quantity(session, *, character_id: int, item_id: int, quantity: int) -> None:
        params = {
            "character_id": int(character_id),
            "item_id": int(item_id),
            "slot": UNSLOTTED,
            "quantity": int(quantity),
        }
        if int(quantity) <= 0:
            session.execute(
                text(
                    """
                    DELETE FROM inventory
                    WHERE character_id = :character_id AND item_id = :item_id AND slot = :slot
                    """
                ),
                params,
            )
            return
        updated = session.execute(
            text(
                """
                UPDATE inventory SET quantity = :quantity
                WHERE character_id = :character_id AND item_id = :item_id AND slot = :slot
                """
            ),
            params,
        )
        if updated.rowcount == 0:
            session.execute(
                text(
                    """
                    INSERT INTO inventory (character_id, item_id, quantity, equipped, slot)
                    VALUES (:character_id, :item_id, :quantity, 0, :slot)
                    """
                ),
                params,
            )

    def build_set_quantity_operation(self, *, character_id: int, item_id: int, quantity: int) -> StateOperation:
        def _operation(session) -> None:
            self._set_quantity(session, character_id=character_id, item_id=item_id, quantity=quantity)

        return _operation


class SqlCooldownRepository(CooldownRepository):
    def get(self, character_id: int, action_id: int) -> Optional[ActionCooldown]:
        with storage_errors("get_cooldown"), SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT character_id, action_id, available_at FROM action_cooldowns
                    WHERE character_id = :character_id AND action_id = :action_id
                    """
                ),
                {"character_id": int(character_id), "action_id": int(action_id)},
            ).first()
        if row is None:
            return None
        return ActionCooldown(
            character_id=int(row.character_id),
            action_id=int(row.action_id),
            available_at=parse_timestamp(row.available_at),
        )

    def list_for_character(self, character_id: int) -> List[ActionCooldown]:
        with storage_errors("list_cooldowns"), SessionLocal() as session:
            rows = session.execute(
                text(
                    """
                    SELECT character_id, action_id, available_at FROM action_cooldowns
                    WHERE character_id = :character_id
                    ORDER BY action_id
                    """
                ),
                {"character_id": int(character_id)},
            ).all()
        return [
            ActionCooldown(
                character_id=int(row.character_id),
                action_id=int(row.action_id),
                available_at=parse_timestamp(row.available_at),
            )
            for row in rows
        ]

    def build_set_cooldown_operation(
        self,
        *,
        character_id: int,
        action_id: int,
        available_at: datetime,
    ) -> StateOperation:
        def _operation(session) -> None:
            params = {
                "character_id": int(character_id),
                "action_id": int(action_id),
                "available_at": format_timestamp(available_at),
            }
            updated = session.execute(
                text(
                    """
                    UPDATE action_cooldowns SET available_at = :available_at
                    WHERE character_id = :character_id AND action_id = :action_id
                    """
                ),
                params,
            )
            if updated.rowcount == 0:
                session.execute(
                    text(
                        """
                        INSERT INTO action_cooldowns (character_id, action_id, available_at)
                        VALUES (:character_id, :action_id, :available_at)
                        """
                    ),
                    params,
                )

        return _operation

    def delete_expired(self, now: datetime) -> int:
        with storage_errors("delete_expired_cooldowns"), SessionLocal.begin() as session:
            result = session.execute(
                text("DELETE FROM action_cooldowns WHERE available_at <= :now"),
                {"now": format_timestamp(now)},
            )
            return int(result.rowcount or 0)


class SqlCompletedActionRepository(CompletedActionRepository):
    @staticmethod
    def _row_to_completion(row) -> CompletedAction:
        return CompletedAction(
            character_id=int(row.character_id),
            action_id=int(row.action_id),
            times_completed=int(row.times_completed),
            completed_at=parse_timestamp(row.completed_at),
        )

    def get(self, character_id: int, action_id: int) -> Optional[CompletedAction]:
        with storage_errors("get_completion"), SessionLocal() as session:
            row = session.execute(
                text(
                    """
                    SELECT character_id, action_id, times_completed, completed_at FROM completed_actions
                    WHERE character_id = :character_id AND action_id = :action_id
                    """
                ),
                {"character_id": int(character_id), "action_id": int(action_id)},
            ).first()
        return self._row_to_completion(row) if row else None

    def list_for_character(self, character_id: int) -> List[CompletedAction]:
        with storage_errors("list_completions"), SessionLocal() as session:
            rows = session.execute(
                text(
                    """
                    SELECT character_id, action_id, times_completed, completed_at FROM completed_actions
                    WHERE character_id = :character_id
                    ORDER BY action_id
                    """
                ),
                {"character_id": int(character_id)},
            ).all()
        return [self._row_to_completion(row) for row in rows]

    def build_record_completion_operation(
        self,
        *,
        character_id: int,
        action_id: int,
        completed_at: datetime,
    ) -> StateOperation:
        def _operation(session) -> None:
            params = {
                "character_id": int(character_id),
                "action_id": int(action_id),
                "completed_at": format_timestamp(completed_at),
            }
            updated = session.execute(
                text(
                    """
                    UPDATE completed_actions
                    SET times_completed = times_completed + 1, completed_at = :completed_at
                    WHERE character_id = :character_id AND action_id = :action_id
                    """
                ),
                params,
            )
            if updated.rowcount == 0:
                session.execute(
                    text(
                        """
                        INSERT INTO completed_actions (character_id, action_id, times_completed, completed_at)
                        VALUES (:character_id, :action_id, 1, :completed_at)
                        """
                    ),
                    params,
                )

        return _operation


class SqlPlayerRepository(PlayerRepository):
    @staticmethod
    def _row_to_player(row) -> Player:
        return Player(
            id=int(row.id),
            wallet_address=str(row.wallet_address),
            username=row.username,
            last_login=parse_timestamp(row.last_login),
        )

    def get(self, player_id: int) -> Optional[Player]:
        with storage_errors("get_player"), SessionLocal() as session:
            row = session.execute(
                text("SELECT id, wallet_address, username, last_login FROM players WHERE id = :id"),
                {"id": int(player_id)},
            ).first()
        return self._row_to_player(row) if row else None

    def get_by_wallet(self, wallet_address: str) -> Optional[Player]:
        with storage_errors("get_player_by_wallet"), SessionLocal() as session:
            row = session.execute(
                text("SELECT id, wallet_address, username, last_login FROM players WHERE wallet_address = :wallet"),
                {"wallet": wallet_address},
            ).first()
        return self._row_to_player(row) if row else None

    def get_or_create_by_wallet(self, wallet_address: str, username: Optional[str] = None) -> Player:
        for attempt_index in range(ID_ALLOCATION_ATTEMPTS):
            try:
                player_id = self._touch_or_insert(wallet_address, username)
            except StorageFailureError as exc:
                if not isinstance(exc.__cause__, IntegrityError):
                    raise
                # Either the id or the wallet was claimed concurrently; the next pass re-reads both.
                logger.warning(
                    "Player insert collided with a concurrent login",
                    extra={"wallet_address": wallet_address, "attempt": attempt_index + 1},
                )
                continue
            player = self.get(player_id)
            if player is None:
                raise StorageFailureError(f"Player {player_id} vanished after login")
            return player
        raise ConcurrencyConflictError(f"Could not create a player for wallet {wallet_address}")

    @staticmethod
    def _touch_or_insert(wallet_address: str, username: Optional[str]) -> int:
        now = format_timestamp(utc_now())
        with storage_errors("login_player"), SessionLocal.begin() as session:
            row = session.execute(
                text("SELECT id FROM players WHERE wallet_address = :wallet"),
                {"wallet": wallet_address},
            ).first()
            if row is not None:
                session.execute(
                    text("UPDATE players SET last_login = :now WHERE id = :id"),
                    {"now": now, "id": int(row.id)},
                )
                return int(row.id)

            player_id = _next_id(session, "players")
            session.execute(
                text(
                    """
                    INSERT INTO players (id, wallet_address, username, last_login)
                    VALUES (:id, :wallet, :username, :now)
                    """
                ),
                {"id": player_id, "wallet": wallet_address, "username": username, "now": now},
            )
        return player_id
