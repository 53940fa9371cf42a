from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Sequence
from contextlib import ExitStack
from types import SimpleNamespace

from hearthgate.domain.models.character import Character


def _inmemory_session() -> object:
    return SimpleNamespace(bind=SimpleNamespace(dialect=SimpleNamespace(name="inmemory")))


def create_inmemory_atomic_persistor(character_repo, *state_repos) -> Callable[..., None]:
    """Build a persistor that saves a character and runs its operations atomically.

    The batch holds every repo's ``_lock`` from snapshot to commit, so writers
    outside the batch wait for it instead of being undone by its rollback.
    Every repo's ``_rows`` is snapshotted before the batch and restored if
    any step raises, so a failed batch leaves no trace.
    """
    commit_lock = threading.Lock()
    repos = (character_repo,) + tuple(state_repos)
    repo_locks = [repo._lock for repo in repos if hasattr(repo, "_lock")]

    def _persist(
        character: Character,
        operations: Sequence[Callable[[object], None]] | None = None,
    ) -> None:
        with commit_lock, ExitStack() as held:
            for lock in repo_locks:
                held.enter_context(lock)
            snapshot = [copy.deepcopy(getattr(repo, "_rows", None)) for repo in repos]
            session = _inmemory_session()
            try:
                character_repo.save(character)
                for operation in operations or ():
                    operation(session)
            except Exception:
                for repo, rows in zip(repos, snapshot):
                    if rows is not None and hasattr(repo, "_rows"):
                        repo._rows = rows
                raise

    return _persist
