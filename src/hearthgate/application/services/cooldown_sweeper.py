from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from hearthgate.application.services.event_bus import EventBus
from hearthgate.domain.events import CooldownsSweptEvent
from hearthgate.domain.models.progress import ensure_utc, utc_now
from hearthgate.domain.repositories import CooldownRepository


logger = logging.getLogger(__name__)


class CooldownSweeper:
    """Reclaims expired cooldown rows.

    Eligibility already treats an expired row as absent, so this is storage
    housekeeping only and may run on any schedule, including never.
    """

    def __init__(
        self,
        cooldown_repo: CooldownRepository,
        *,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cooldown_repo = cooldown_repo
        self.event_bus = event_bus
        self._clock = clock

    def sweep(self, now: datetime | None = None) -> int:
        when = ensure_utc(now) if now is not None else ensure_utc(self._clock())
        removed = int(self.cooldown_repo.delete_expired(when))
        logger.info("Expired cooldowns swept", extra={"removed": removed, "swept_at": when.isoformat()})
        if self.event_bus is not None:
            self.event_bus.publish(CooldownsSweptEvent(removed=removed, swept_at=when))
        return removed
