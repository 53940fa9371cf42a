from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from hearthgate.domain.models.character import Character


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class InventoryItem:
    character_id: int
    item_id: int
    quantity: int
    equipped: bool = False
    slot: Optional[str] = None

    def __post_init__(self) -> None:
        # The unslotted line is the character's loose stack; equipping takes a slot.
        if self.equipped and not self.slot:
            raise ValueError(f"Equipped item {self.item_id} for character {self.character_id} needs a slot")


@dataclass(frozen=True)
class ActionCooldown:
    character_id: int
    action_id: int
    available_at: datetime

    def is_active(self, now: datetime) -> bool:
        return ensure_utc(self.available_at) > ensure_utc(now)


@dataclass(frozen=True)
class CompletedAction:
    character_id: int
    action_id: int
    times_completed: int
    completed_at: datetime


@dataclass
class CharacterSnapshot:
    """Everything eligibility needs to know about one character, read once."""

    character: Character
    inventory: Dict[int, int] = field(default_factory=dict)
    cooldowns: Dict[int, datetime] = field(default_factory=dict)
    completions: Dict[int, int] = field(default_factory=dict)

    def quantity_of(self, item_id: int) -> int:
        return int(self.inventory.get(int(item_id), 0))
