import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import unittest
from unittest import mock

from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from hearthgate.domain.errors import ConcurrencyConflictError, NotFoundError, StorageFailureError
from hearthgate.domain.models.action import ActionCategory, ActionType
from hearthgate.domain.models.character import new_character
from hearthgate.domain.models.reward import ItemReward, UnlockKind
from hearthgate.domain.models.world import LocationType
from hearthgate.infrastructure.db.sql import repos
from hearthgate.infrastructure.db.sql.migrate import build_linear_migration_plan
from hearthgate.infrastructure.db.sql.repos import (
    SqlCharacterRepository,
    SqlCompletedActionRepository,
    SqlCooldownRepository,
    SqlInventoryRepository,
    SqlPlayerRepository,
    SqlWorldCatalogRepository,
)


NOW = datetime(2026, 4, 20, 15, 45, 30, 123456, tzinfo=timezone.utc)


class SqlRepositoryIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)
        with self.engine.begin() as conn:
            for file_plan in build_linear_migration_plan():
                for statement in file_plan.statements:
                    conn.exec_driver_sql(statement)

        self.session_patcher = mock.patch.object(repos, "SessionLocal", self.SessionLocal)
        self.session_patcher.start()

        self.catalog = SqlWorldCatalogRepository()
        self.characters = SqlCharacterRepository()
        self.players = SqlPlayerRepository()
        self.player = self.players.get_or_create_by_wallet("0xseed", username="seed")

    def tearDown(self) -> None:
        self.session_patcher.stop()
        self.engine.dispose()

    def _run(self, operation) -> None:
        with self.SessionLocal.begin() as session:
            operation(session)

    def test_catalog_reads_seeded_world(self) -> None:
        towns = self.catalog.list_towns()
        self.assertEqual(["Millbrook", "Greyhaven"], [town.name for town in towns])
        self.assertEqual("Millbrook", self.catalog.get_starting_town().name)
        self.assertEqual(1, self.catalog.get_starting_location().id)

        hut = self.catalog.get_location(3)
        self.assertEqual("Herbalist's Hut", hut.name)
        self.assertEqual(LocationType.CRAFTING, hut.location_type)

        names = [action.name for action in self.catalog.list_actions_by_location(1)]
        self.assertEqual(["Rent a Room", "Listen for Rumours", "Deliver the Innkeeper's Letter"], names)

        hunt = self.catalog.get_action(7)
        self.assertEqual(ActionType.COMBAT, hunt.action_type)
        self.assertEqual(ActionCategory.COMBAT, hunt.category)
        self.assertEqual(2, hunt.required_level)
        self.assertEqual((ItemReward(item_id=2, quantity=1, chance=0.6),), hunt.rewards.items)
        self.assertEqual(-15, hunt.rewards.stat_changes.health)

        letter = self.catalog.get_action(3)
        self.assertFalse(letter.is_repeatable)
        self.assertEqual(UnlockKind.LOCATION, letter.rewards.unlocks[0].kind)
        self.assertEqual("Sealed Letter", self.catalog.get_item(4).name)
        self.assertIsNone(self.catalog.get_action(404))

    def test_inactive_rows_are_hidden_from_listings(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("UPDATE locations SET is_active = 0 WHERE id = 2"))
            conn.execute(text("UPDATE location_actions SET is_active = 0 WHERE id = 2"))

        self.assertNotIn(2, [row.id for row in self.catalog.list_locations_by_town(1)])
        self.assertNotIn(2, [row.id for row in self.catalog.list_actions_by_location(1)])
        self.assertFalse(self.catalog.get_location(2).is_active)

    def test_malformed_rewards_surface_as_storage_failure(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("UPDATE location_actions SET rewards_json = '{not json' WHERE id = 1"))

        with self.assertRaises(StorageFailureError):
            self.catalog.get_action(1)

    def test_character_create_and_versioned_save(self) -> None:
        created = self.characters.create(new_character(player_id=self.player.id, name="Wren", location_id=1))

        self.assertEqual(1, created.id)
        self.assertEqual(0, created.version)
        self.assertTrue(self.characters.is_name_taken("WREN"))

        created.currency = 40
        self.characters.save(created)
        stored = self.characters.get(created.id)
        self.assertEqual(40, stored.currency)
        self.assertEqual(1, stored.version)

        with self.assertRaises(ConcurrencyConflictError):
            self.characters.save(created)
        with self.assertRaises(ValueError):
            self.characters.create(new_character(player_id=self.player.id, name="wren", location_id=1))

        stored.id = 999
        with self.assertRaises(NotFoundError):
            self.characters.save(stored)

    def test_character_id_collision_is_retried_not_reported_as_taken_name(self) -> None:
        self.characters.create(new_character(player_id=self.player.id, name="Wren", location_id=1))

        with mock.patch.object(repos, "_next_id", side_effect=[1, 2]):
            created = self.characters.create(new_character(player_id=self.player.id, name="Bram", location_id=1))

        self.assertEqual((2, "Bram"), (created.id, created.name))

    def test_character_id_collisions_exhaust_into_conflict(self) -> None:
        self.characters.create(new_character(player_id=self.player.id, name="Wren", location_id=1))

        with mock.patch.object(repos, "_next_id", return_value=1):
            with self.assertRaises(ConcurrencyConflictError):
                self.characters.create(new_character(player_id=self.player.id, name="Bram", location_id=1))

        self.assertFalse(self.characters.is_name_taken("Bram"))

    def test_list_by_player_orders_by_id(self) -> None:
        for name in ("Wren", "Bram", "Cass"):
            self.characters.create(new_character(player_id=self.player.id, name=name, location_id=1))

        self.assertEqual(["Wren", "Bram", "Cass"], [row.name for row in self.characters.list_by_player(self.player.id)])
        self.assertEqual([], self.characters.list_by_player(404))

    def test_inventory_set_quantity_inserts_updates_and_deletes(self) -> None:
        inventory = SqlInventoryRepository()

        self._run(inventory.build_set_quantity_operation(character_id=1, item_id=1, quantity=3))
        self.assertEqual(3, inventory.get_quantity(1, 1))

        self._run(inventory.build_set_quantity_operation(character_id=1, item_id=1, quantity=5))
        self.assertEqual(5, inventory.get_quantity(1, 1))

        self._run(inventory.build_set_quantity_operation(character_id=1, item_id=1, quantity=0))
        self.assertEqual(0, inventory.get_quantity(1, 1))
        self.assertEqual([], inventory.list_for_character(1))

    def test_equipped_lines_are_listed_but_not_counted(self) -> None:
        inventory = SqlInventoryRepository()
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO inventory (character_id, item_id, quantity, equipped, slot) "
                    "VALUES (1, 2, 1, 1, 'back')"
                )
            )

        lines = inventory.list_for_character(1)

        self.assertEqual(1, len(lines))
        self.assertTrue(lines[0].equipped)
        self.assertEqual("back", lines[0].slot)
        self.assertEqual(0, inventory.get_quantity(1, 2))

    def test_loose_stack_writes_leave_the_equipped_stack_alone(self) -> None:
        inventory = SqlInventoryRepository()
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO inventory (character_id, item_id, quantity, equipped, slot) "
                    "VALUES (1, 1, 5, 1, 'main_hand')"
                )
            )

        self._run(inventory.build_set_quantity_operation(character_id=1, item_id=1, quantity=1))

        lines = inventory.list_for_character(1)
        self.assertEqual(6, sum(line.quantity for line in lines))
        self.assertEqual([("main_hand", 5)], [(line.slot, line.quantity) for line in lines if line.equipped])
        self.assertEqual(1, inventory.get_quantity(1, 1))

    def test_schema_rejects_equipped_line_without_slot(self) -> None:
        with self.assertRaises(IntegrityError):
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        "INSERT INTO inventory (character_id, item_id, quantity, equipped, slot) "
                        "VALUES (1, 1, 5, 1, '')"
                    )
                )

    def test_cooldowns_reset_and_sweep(self) -> None:
        cooldowns = SqlCooldownRepository()

        self._run(cooldowns.build_set_cooldown_operation(character_id=1, action_id=1, available_at=NOW))
        self._run(
            cooldowns.build_set_cooldown_operation(character_id=1, action_id=1, available_at=NOW + timedelta(minutes=5))
        )
        self._run(cooldowns.build_set_cooldown_operation(character_id=1, action_id=2, available_at=NOW))

        self.assertEqual(NOW + timedelta(minutes=5), cooldowns.get(1, 1).available_at)
        self.assertEqual([1, 2], [row.action_id for row in cooldowns.list_for_character(1)])

        self.assertEqual(1, cooldowns.delete_expired(NOW))
        self.assertIsNone(cooldowns.get(1, 2))
        self.assertEqual(1, cooldowns.delete_expired(NOW + timedelta(minutes=5)))
        self.assertEqual(0, cooldowns.delete_expired(NOW + timedelta(days=1)))

    def test_completion_counter_increments(self) -> None:
        completions = SqlCompletedActionRepository()

        self._run(completions.build_record_completion_operation(character_id=1, action_id=3, completed_at=NOW))
        self._run(
            completions.build_record_completion_operation(
                character_id=1, action_id=3, completed_at=NOW + timedelta(hours=1)
            )
        )

        row = completions.get(1, 3)
        self.assertEqual(2, row.times_completed)
        self.assertEqual(NOW + timedelta(hours=1), row.completed_at)
        self.assertEqual([row], completions.list_for_character(1))

    def test_player_login_is_idempotent_per_wallet(self) -> None:
        again = self.players.get_or_create_by_wallet("0xseed")
        other = self.players.get_or_create_by_wallet("0xother")

        self.assertEqual(self.player.id, again.id)
        self.assertEqual("seed", again.username)
        self.assertEqual(2, other.id)
        self.assertEqual(other, self.players.get_by_wallet("0xother"))
        self.assertIsNone(self.players.get_by_wallet("0xmissing"))

    def test_player_id_collision_is_retried(self) -> None:
        with mock.patch.object(repos, "_next_id", side_effect=[self.player.id, self.player.id + 1]):
            other = self.players.get_or_create_by_wallet("0xother")

        self.assertEqual(self.player.id + 1, other.id)
        self.assertEqual("0xseed", self.players.get(self.player.id).wallet_address)

        with mock.patch.object(repos, "_next_id", return_value=self.player.id):
            with self.assertRaises(ConcurrencyConflictError):
                self.players.get_or_create_by_wallet("0xthird")
        self.assertIsNone(self.players.get_by_wallet("0xthird"))

    def test_database_errors_are_wrapped(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("DROP TABLE towns"))

        with self.assertRaises(StorageFailureError) as ctx:
            self.catalog.list_towns()
        self.assertIsNotNone(ctx.exception.__cause__)


if __name__ == "__main__":
    unittest.main()
