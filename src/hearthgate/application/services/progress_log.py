import logging

from hearthgate.application.services.event_bus import EventBus
from hearthgate.domain.events import ActionExecutedEvent, CharacterRelocatedEvent


logger = logging.getLogger(__name__)


def register_progress_log_handlers(event_bus: EventBus) -> None:
    """Log unlock grants and town changes as they are committed.

    Unlocks are reported, not stored; this log is their only trace.
    """

    def _on_action_executed(event: ActionExecutedEvent) -> None:
        for unlock in event.outcome.unlocks:
            logger.info(
                "Unlock granted",
                extra={
                    "character_id": event.character_id,
                    "action_id": event.action_id,
                    "unlock_type": unlock.kind.value,
                    "target_id": unlock.target_id,
                },
            )

    def _on_character_relocated(event: CharacterRelocatedEvent) -> None:
        if event.from_town_id == event.to_town_id:
            return
        logger.info(
            "Character entered a new town",
            extra={
                "character_id": event.character_id,
                "from_town_id": event.from_town_id,
                "to_town_id": event.to_town_id,
            },
        )

    event_bus.subscribe(ActionExecutedEvent, _on_action_executed, priority=50)
    event_bus.subscribe(CharacterRelocatedEvent, _on_character_relocated, priority=50)
