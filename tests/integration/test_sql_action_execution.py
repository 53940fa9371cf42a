import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
import unittest
from unittest import mock

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from hearthgate.application.services.action_service import ActionResolutionEngine
from hearthgate.application.services.character_service import CharacterService
from hearthgate.application.services.character_locks import CharacterLockRegistry
from hearthgate.application.services.cooldown_sweeper import CooldownSweeper
from hearthgate.domain.services.eligibility import IneligibleReason
from hearthgate.infrastructure.db.sql import atomic_persistence, repos
from hearthgate.infrastructure.db.sql.atomic_persistence import save_character_state_atomic
from hearthgate.infrastructure.db.sql.migrate import build_linear_migration_plan
from hearthgate.infrastructure.db.sql.repos import (
    SqlCharacterRepository,
    SqlCompletedActionRepository,
    SqlCooldownRepository,
    SqlInventoryRepository,
    SqlPlayerRepository,
    SqlWorldCatalogRepository,
)
from hearthgate.infrastructure.inmemory.starter_world import HEALING_POTION_ID, HERB_ID


T0 = datetime(2026, 6, 21, 8, 0, tzinfo=timezone.utc)


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class SqlActionExecutionIntegrationTests(unittest.TestCase):
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

        self.patchers = [
            mock.patch.object(repos, "SessionLocal", self.SessionLocal),
            mock.patch.object(atomic_persistence, "SessionLocal", self.SessionLocal),
        ]
        for patcher in self.patchers:
            patcher.start()

        self.catalog = SqlWorldCatalogRepository()
        self.characters = SqlCharacterRepository()
        self.inventory = SqlInventoryRepository()
        self.cooldowns = SqlCooldownRepository()
        self.completions = SqlCompletedActionRepository()
        locks = CharacterLockRegistry()
        self.engine_service = ActionResolutionEngine(
            catalog=self.catalog,
            character_repo=self.characters,
            inventory_repo=self.inventory,
            cooldown_repo=self.cooldowns,
            completion_repo=self.completions,
            state_persistor=save_character_state_atomic,
            random_source=_FixedRandom(0.1),
            lock_registry=locks,
        )
        self.character_service = CharacterService(
            catalog=self.catalog,
            character_repo=self.characters,
            inventory_repo=self.inventory,
            state_persistor=save_character_state_atomic,
            player_repo=SqlPlayerRepository(),
            lock_registry=locks,
        )
        player = SqlPlayerRepository().get_or_create_by_wallet("0xrunner")
        self.character = self.character_service.create_character(player.id, "Wren")

    def tearDown(self) -> None:
        for patcher in reversed(self.patchers):
            patcher.stop()
        self.engine.dispose()

    def test_forage_then_brew_consumes_herbs(self) -> None:
        self.character_service.move_to_location(self.character.id, 3)

        forage = self.engine_service.execute(self.character.id, 5, now=T0)
        brew = self.engine_service.execute(self.character.id, 6, now=T0 + timedelta(seconds=1))

        self.assertTrue(forage.success)
        self.assertTrue(brew.success)
        self.assertEqual(0, self.inventory.get_quantity(self.character.id, HERB_ID))
        self.assertEqual(1, self.inventory.get_quantity(self.character.id, HEALING_POTION_ID))
        stored = self.characters.get(self.character.id)
        self.assertEqual(8, stored.action_points)
        self.assertEqual(10, stored.experience)
        self.assertEqual(3, stored.version)

    def test_cooldown_blocks_until_it_expires(self) -> None:
        first = self.engine_service.execute(self.character.id, 1, now=T0)
        blocked = self.engine_service.execute(self.character.id, 1, now=T0 + timedelta(seconds=299))
        again = self.engine_service.execute(self.character.id, 1, now=T0 + timedelta(seconds=300))

        self.assertTrue(first.success)
        self.assertEqual(IneligibleReason.ON_COOLDOWN, blocked.reason)
        self.assertTrue(again.success)
        self.assertEqual(80, self.characters.get(self.character.id).currency)
        self.assertEqual(2, self.completions.get(self.character.id, 1).times_completed)

    def test_sweeper_removes_only_expired_rows(self) -> None:
        self.engine_service.execute(self.character.id, 1, now=T0)
        self.engine_service.execute(self.character.id, 2, now=T0)

        removed = CooldownSweeper(self.cooldowns).sweep(now=T0 + timedelta(seconds=60))

        self.assertEqual(1, removed)
        self.assertEqual([1], [row.action_id for row in self.cooldowns.list_for_character(self.character.id)])

    def test_coach_needs_level_and_teleports_between_towns(self) -> None:
        self.character_service.move_to_location(self.character.id, 5)
        rejected = self.engine_service.execute(self.character.id, 8, now=T0)
        self.assertEqual(IneligibleReason.INSUFFICIENT_LEVEL, rejected.reason)

        with self.engine.begin() as conn:
            conn.execute(text("UPDATE characters SET level = 5 WHERE id = :id"), {"id": self.character.id})

        result = self.engine_service.execute(self.character.id, 8, now=T0)

        self.assertTrue(result.success)
        self.assertEqual((6, 2), (result.character.location_id, result.character.town_id))
        self.assertEqual(6, self.characters.get(self.character.id).location_id)
        self.assertEqual(75, self.characters.get(self.character.id).currency)

    def test_concurrent_requests_for_one_character_apply_once(self) -> None:
        start = threading.Barrier(2)
        results = []

        def _run() -> None:
            start.wait()
            results.append(self.engine_service.execute(self.character.id, 1, now=T0))

        threads = [threading.Thread(target=_run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual([False, True], sorted(result.success for result in results))
        self.assertEqual(90, self.characters.get(self.character.id).currency)
        self.assertEqual(1, self.completions.get(self.character.id, 1).times_completed)


if __name__ == "__main__":
    unittest.main()
