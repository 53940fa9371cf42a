import logging
import os
import random
import socket
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from hearthgate.application.services.action_service import ActionResolutionEngine
from hearthgate.application.services.character_locks import CharacterLockRegistry
from hearthgate.application.services.character_service import CharacterService
from hearthgate.application.services.cooldown_sweeper import CooldownSweeper
from hearthgate.application.services.event_bus import EventBus
from hearthgate.application.services.player_service import PlayerService
from hearthgate.application.services.progress_log import register_progress_log_handlers
from hearthgate.domain.repositories import WorldCatalogRepository
from hearthgate.infrastructure.db.inmemory.repos import (
    InMemoryCharacterRepository,
    InMemoryCompletedActionRepository,
    InMemoryCooldownRepository,
    InMemoryInventoryRepository,
    InMemoryPlayerRepository,
)
from hearthgate.infrastructure.inmemory.atomic_persistence import create_inmemory_atomic_persistor
from hearthgate.infrastructure.inmemory.starter_world import build_starter_catalog


logger = logging.getLogger(__name__)


@dataclass
class Services:
    storage_mode: str
    catalog: WorldCatalogRepository
    engine: ActionResolutionEngine
    characters: CharacterService
    players: PlayerService
    sweeper: CooldownSweeper
    event_bus: EventBus


def _looks_like_local_mysql_unreachable(database_url: str) -> bool:
    if not database_url:
        return False

    parsed = urlparse(database_url)
    if not parsed.scheme.startswith("mysql"):
        return False

    host = (parsed.hostname or "").strip().lower()
    if host not in {"localhost", "127.0.0.1", "::1"}:
        return False

    port = parsed.port or 3306
    timeout = float(os.getenv("HEARTHGATE_DB_CONNECT_PROBE_TIMEOUT_S", "0.35"))

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return False
    except OSError:
        return True


def _reward_random_source() -> random.Random:
    seed = os.getenv("HEARTHGATE_REWARD_SEED", "").strip()
    if not seed:
        return random.Random()
    try:
        return random.Random(int(seed))
    except ValueError as exc:
        raise ValueError(f"HEARTHGATE_REWARD_SEED must be an integer, got {seed!r}") from exc


def _conflict_retries() -> int:
    return max(0, int(os.getenv("HEARTHGATE_CONFLICT_RETRIES", "3")))


def _assemble(
    *,
    storage_mode: str,
    catalog,
    character_repo,
    inventory_repo,
    cooldown_repo,
    completion_repo,
    player_repo,
    state_persistor,
) -> Services:
    event_bus = EventBus()
    register_progress_log_handlers(event_bus)
    locks = CharacterLockRegistry()

    engine = ActionResolutionEngine(
        catalog=catalog,
        character_repo=character_repo,
        inventory_repo=inventory_repo,
        cooldown_repo=cooldown_repo,
        completion_repo=completion_repo,
        state_persistor=state_persistor,
        event_bus=event_bus,
        random_source=_reward_random_source(),
        lock_registry=locks,
        max_conflict_retries=_conflict_retries(),
    )
    characters = CharacterService(
        catalog=catalog,
        character_repo=character_repo,
        inventory_repo=inventory_repo,
        state_persistor=state_persistor,
        player_repo=player_repo,
        lock_registry=locks,
        event_bus=event_bus,
    )
    return Services(
        storage_mode=storage_mode,
        catalog=catalog,
        engine=engine,
        characters=characters,
        players=PlayerService(player_repo),
        sweeper=CooldownSweeper(cooldown_repo, event_bus=event_bus),
        event_bus=event_bus,
    )


def _build_inmemory_services() -> Services:
    character_repo = InMemoryCharacterRepository()
    inventory_repo = InMemoryInventoryRepository()
    cooldown_repo = InMemoryCooldownRepository()
    completion_repo = InMemoryCompletedActionRepository()
    persistor = create_inmemory_atomic_persistor(character_repo, inventory_repo, cooldown_repo, completion_repo)
    return _assemble(
        storage_mode="inmemory",
        catalog=build_starter_catalog(),
        character_repo=character_repo,
        inventory_repo=inventory_repo,
        cooldown_repo=cooldown_repo,
        completion_repo=completion_repo,
        player_repo=InMemoryPlayerRepository(),
        state_persistor=persistor,
    )


def _build_sql_services(database_url: str) -> Services:
    from hearthgate.infrastructure.db.sql.atomic_persistence import save_character_state_atomic
    from hearthgate.infrastructure.db.sql.connection import configure_database
    from hearthgate.infrastructure.db.sql.repos import (
        SqlCharacterRepository,
        SqlCompletedActionRepository,
        SqlCooldownRepository,
        SqlInventoryRepository,
        SqlPlayerRepository,
        SqlWorldCatalogRepository,
    )

    configure_database(database_url)
    catalog = SqlWorldCatalogRepository()
    # Touch the database now so a bad URL surfaces before any command runs.
    try:
        catalog.list_towns()
    except Exception as exc:
        raise RuntimeError(f"Database bootstrap probe failed: {exc}") from exc

    return _assemble(
        storage_mode="sql",
        catalog=catalog,
        character_repo=SqlCharacterRepository(),
        inventory_repo=SqlInventoryRepository(),
        cooldown_repo=SqlCooldownRepository(),
        completion_repo=SqlCompletedActionRepository(),
        player_repo=SqlPlayerRepository(),
        state_persistor=save_character_state_atomic,
    )


def create_services(database_url: Optional[str] = None) -> Services:
    url = database_url if database_url is not None else os.getenv("HEARTHGATE_DATABASE_URL")
    if not url:
        logger.info("No database configured, using the in-memory starter world")
        return _build_inmemory_services()

    if _looks_like_local_mysql_unreachable(url):
        logger.warning("MySQL appears unreachable, falling back to in-memory", extra={"database_url": url})
        return _build_inmemory_services()

    return _build_sql_services(url)
