from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from hearthgate.domain.models.reward import RewardOutcome


@dataclass
class ActionExecutedEvent:
    character_id: int
    action_id: int
    location_id: int
    outcome: RewardOutcome
    executed_at: datetime


@dataclass
class ActionRejectedEvent:
    character_id: int
    action_id: int
    reason: str
    rejected_at: datetime


@dataclass
class CharacterRelocatedEvent:
    character_id: int
    from_location_id: Optional[int]
    to_location_id: int
    from_town_id: Optional[int]
    to_town_id: int


@dataclass
class CooldownsSweptEvent:
    removed: int
    swept_at: datetime
