from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional, Tuple


class UnlockKind(str, Enum):
    LOCATION = "location"
    ACTION = "action"
    QUEST = "quest"
    SKILL = "skill"


@dataclass(frozen=True)
class ItemReward:
    item_id: int
    quantity: int = 1
    chance: float = 1.0

    def __post_init__(self) -> None:
        if int(self.quantity) < 1:
            raise ValueError("Item reward quantity must be at least 1")
        if not 0.0 <= float(self.chance) <= 1.0:
            raise ValueError(f"Item reward chance must be within [0, 1], got {self.chance}")


@dataclass(frozen=True)
class StatChanges:
    health: Optional[int] = None
    mana: Optional[int] = None
    strength: Optional[int] = None
    dexterity: Optional[int] = None
    intelligence: Optional[int] = None
    constitution: Optional[int] = None
    wisdom: Optional[int] = None
    charisma: Optional[int] = None

    def deltas(self) -> dict[str, int]:
        return {
            item.name: int(getattr(self, item.name))
            for item in fields(self)
            if getattr(self, item.name) is not None
        }

    def is_empty(self) -> bool:
        return not self.deltas()


@dataclass(frozen=True)
class UnlockReward:
    kind: UnlockKind
    target_id: int


@dataclass(frozen=True)
class RewardSpec:
    currency: Optional[int] = None
    experience: Optional[int] = None
    items: Tuple[ItemReward, ...] = ()
    stat_changes: Optional[StatChanges] = None
    unlocks: Tuple[UnlockReward, ...] = ()
    teleport_to: Optional[int] = None


@dataclass(frozen=True)
class ItemGrant:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class RewardOutcome:
    currency: Optional[int] = None
    experience: Optional[int] = None
    items: Tuple[ItemGrant, ...] = ()
    stat_changes: Optional[StatChanges] = None
    unlocks: Tuple[UnlockReward, ...] = ()
    teleport_to: Optional[int] = None


def _optional_int(payload: Mapping[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        raw = payload.get(key)
        if raw is None:
            continue
        if isinstance(raw, bool):
            raise ValueError(f"Reward field '{key}' must be an integer")
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Reward field '{key}' must be an integer, got {raw!r}") from exc
    return None


def _item_reward_from_payload(raw: Any) -> ItemReward:
    if not isinstance(raw, Mapping) or raw.get("item_id") is None:
        raise ValueError(f"Malformed item reward: {raw!r}")
    chance = raw.get("chance")
    return ItemReward(
        item_id=int(raw["item_id"]),
        quantity=int(raw.get("quantity", 1)),
        chance=1.0 if chance is None else float(chance),
    )


def _unlock_from_payload(raw: Any) -> UnlockReward:
    if not isinstance(raw, Mapping):
        raise ValueError(f"Malformed unlock reward: {raw!r}")
    kind = str(raw.get("unlock_type", raw.get("kind", "")) or "").strip().lower()
    if raw.get("target_id") is None:
        raise ValueError(f"Unlock reward is missing target_id: {raw!r}")
    try:
        return UnlockReward(kind=UnlockKind(kind), target_id=int(raw["target_id"]))
    except ValueError as exc:
        raise ValueError(f"Unsupported unlock type: {kind!r}") from exc


def reward_spec_from_payload(payload: Mapping[str, Any] | None) -> RewardSpec:
    """Build a RewardSpec from the stored JSON reward bag.

    Keys follow the persisted layout (``gold``, ``experience``, ``items``,
    ``stat_changes``, ``unlocks``, ``teleport_to``); ``currency`` is accepted
    for ``gold``. Unknown keys are ignored.
    """
    if not payload:
        return RewardSpec()
    if not isinstance(payload, Mapping):
        raise ValueError(f"Reward payload must be an object, got {type(payload).__name__}")

    items_raw = payload.get("items") or []
    if not isinstance(items_raw, list):
        raise ValueError("Reward 'items' must be a list")
    unlocks_raw = payload.get("unlocks") or []
    if not isinstance(unlocks_raw, list):
        raise ValueError("Reward 'unlocks' must be a list")

    stat_changes = None
    stats_raw = payload.get("stat_changes")
    if stats_raw is not None:
        if not isinstance(stats_raw, Mapping):
            raise ValueError("Reward 'stat_changes' must be an object")
        known = {item.name for item in fields(StatChanges)}
        stat_changes = StatChanges(
            **{name: _optional_int(stats_raw, name) for name in known if stats_raw.get(name) is not None}
        )

    return RewardSpec(
        currency=_optional_int(payload, "gold", "currency"),
        experience=_optional_int(payload, "experience"),
        items=tuple(_item_reward_from_payload(row) for row in items_raw),
        stat_changes=stat_changes,
        unlocks=tuple(_unlock_from_payload(row) for row in unlocks_raw),
        teleport_to=_optional_int(payload, "teleport_to"),
    )


def reward_spec_to_payload(spec: RewardSpec) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if spec.currency is not None:
        payload["gold"] = int(spec.currency)
    if spec.experience is not None:
        payload["experience"] = int(spec.experience)
    if spec.items:
        payload["items"] = [
            {"item_id": row.item_id, "quantity": row.quantity, "chance": row.chance} for row in spec.items
        ]
    if spec.stat_changes is not None and not spec.stat_changes.is_empty():
        payload["stat_changes"] = spec.stat_changes.deltas()
    if spec.unlocks:
        payload["unlocks"] = [{"unlock_type": row.kind.value, "target_id": row.target_id} for row in spec.unlocks]
    if spec.teleport_to is not None:
        payload["teleport_to"] = int(spec.teleport_to)
    return payload
