from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


STARTING_REGION = "starting_zone"


class LocationType(str, Enum):
    SHOP = "shop"
    TRAINING = "training"
    SERVICE = "service"
    SOCIAL = "social"
    QUEST = "quest"
    CRAFTING = "crafting"
    COMBAT = "combat"
    TRAVEL = "travel"
    SPECIAL = "special"

    @classmethod
    def normalize(cls, value: str | LocationType | None) -> LocationType:
        raw = str(getattr(value, "value", value) or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            return cls.SPECIAL


@dataclass(frozen=True)
class Town:
    id: int
    name: str
    region: str = STARTING_REGION
    required_level: int = 1
    is_safe_zone: bool = True
    description: Optional[str] = None
    map_image: Optional[str] = None


@dataclass(frozen=True)
class Location:
    id: int
    town_id: int
    name: str
    location_type: LocationType = LocationType.SPECIAL
    map_position_x: float = 0.0
    map_position_y: float = 0.0
    required_level: int = 1
    required_quest_id: Optional[int] = None
    is_active: bool = True
    sort_order: int = 0
    description: Optional[str] = None
    icon: str = ""


@dataclass(frozen=True)
class Item:
    id: int
    name: str
    item_type: str = "misc"
    rarity: str = "common"
    base_price: int = 0
