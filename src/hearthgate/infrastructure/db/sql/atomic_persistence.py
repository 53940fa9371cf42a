from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from hearthgate.domain.models.character import Character
from .connection import SessionLocal
from .repos import storage_errors, update_character_row


logger = logging.getLogger(__name__)


def save_character_state_atomic(
    character: Character,
    operations: Sequence[Callable[[object], None]] | None = None,
) -> None:
    """Persist the character row and every state operation in one DB transaction.

    A version conflict, a missing character or any failing operation rolls
    the whole transaction back.
    """
    pending = list(operations or ())
    with storage_errors("save_character_state"), SessionLocal.begin() as session:
        update_character_row(session, character)
        for operation in pending:
            operation(session)
    logger.debug(
        "Character state committed",
        extra={"character_id": character.id, "operations": len(pending)},
    )
