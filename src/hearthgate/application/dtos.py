from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from hearthgate.domain.models.reward import RewardOutcome
from hearthgate.domain.services.eligibility import IneligibleReason


@dataclass
class CharacterStateView:
    character_id: int
    name: str
    level: int
    experience: int
    health: int
    max_health: int
    mana: int
    max_mana: int
    currency: int
    action_points: int
    max_action_points: int
    location_id: Optional[int]
    town_id: Optional[int]
    attributes: Dict[str, int] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    success: bool
    character_id: int
    action_id: int
    reason: Optional[IneligibleReason] = None
    outcome: Optional[RewardOutcome] = None
    character: Optional[CharacterStateView] = None
    cooldown_until: Optional[datetime] = None
    messages: List[str] = field(default_factory=list)


@dataclass
class ActionView:
    id: int
    name: str
    action_type: str
    category: str
    required_level: int
    required_currency: int
    action_points_cost: int
    cooldown_seconds: int
    is_repeatable: bool
    description: str = ""


@dataclass
class CharacterSummaryView:
    id: int
    name: str
    level: int
    character_class: str
    location_id: Optional[int]


@dataclass
class LocationContextView:
    character_id: int
    location_id: int
    location_name: str
    location_type: str
    town_id: int
    town_name: str
    region: str
    is_safe_zone: bool


@dataclass
class InventoryLineView:
    item_id: int
    name: str
    quantity: int
    equipped: bool
    slot: Optional[str] = None
