from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from hearthgate.domain.models.reward import RewardSpec


class ActionType(str, Enum):
    INSTANT = "instant"
    TIMED = "timed"
    DIALOG = "dialog"
    NAVIGATION = "navigation"
    COMBAT = "combat"
    SHOP = "shop"


class ActionCategory(str, Enum):
    COMBAT = "combat"
    MAGIC = "magic"
    MELEE = "melee"
    RANGED = "ranged"
    HEAL = "heal"
    REST = "rest"
    SHOP = "shop"
    CRAFT = "craft"
    SOCIAL = "social"
    MISSION = "mission"
    TRAVEL = "travel"
    KNOWLEDGE = "knowledge"


@dataclass(frozen=True)
class ActionRequirements:
    required_level: int = 1
    required_currency: int = 0
    required_item_id: Optional[int] = None
    required_item_quantity: int = 1
    action_points_cost: int = 0

    def __post_init__(self) -> None:
        if int(self.required_currency) < 0:
            raise ValueError("required_currency cannot be negative")
        if int(self.action_points_cost) < 0:
            raise ValueError("action_points_cost cannot be negative")
        if self.required_item_id is not None and int(self.required_item_quantity) < 1:
            raise ValueError("required_item_quantity must be at least 1 when an item is required")


@dataclass(frozen=True)
class ActionTiming:
    cooldown_seconds: int = 0
    duration_seconds: int = 0

    def __post_init__(self) -> None:
        if int(self.cooldown_seconds) < 0:
            raise ValueError("cooldown_seconds cannot be negative")
        if int(self.duration_seconds) < 0:
            raise ValueError("duration_seconds cannot be negative")


@dataclass(frozen=True)
class Action:
    id: int
    location_id: int
    name: str
    action_type: ActionType = ActionType.INSTANT
    category: ActionCategory = ActionCategory.KNOWLEDGE
    requirements: ActionRequirements = field(default_factory=ActionRequirements)
    timing: ActionTiming = field(default_factory=ActionTiming)
    rewards: RewardSpec = field(default_factory=RewardSpec)
    is_repeatable: bool = True
    is_active: bool = True
    sort_order: int = 0
    description: Optional[str] = None
    icon: str = ""

    @property
    def required_level(self) -> int:
        return self.requirements.required_level

    @property
    def required_currency(self) -> int:
        return self.requirements.required_currency

    @property
    def required_item_id(self) -> Optional[int]:
        return self.requirements.required_item_id

    @property
    def required_item_quantity(self) -> int:
        return self.requirements.required_item_quantity

    @property
    def action_points_cost(self) -> int:
        return self.requirements.action_points_cost

    @property
    def cooldown_seconds(self) -> int:
        return self.timing.cooldown_seconds
