from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from hearthgate.domain.models.action import Action
from hearthgate.domain.models.progress import CharacterSnapshot, ensure_utc
from hearthgate.domain.models.world import Location


class IneligibleReason(str, Enum):
    LOCATION_INACTIVE = "location_inactive"
    INSUFFICIENT_LEVEL = "insufficient_level"
    INSUFFICIENT_CURRENCY = "insufficient_currency"
    INSUFFICIENT_ACTION_POINTS = "insufficient_action_points"
    MISSING_REQUIRED_ITEM = "missing_required_item"
    ON_COOLDOWN = "on_cooldown"
    ALREADY_COMPLETED = "already_completed"


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: Optional[IneligibleReason] = None
    detail: str = ""

    @classmethod
    def ok(cls) -> EligibilityResult:
        return cls(eligible=True)

    @classmethod
    def rejected(cls, reason: IneligibleReason, detail: str) -> EligibilityResult:
        return cls(eligible=False, reason=reason, detail=detail)


def cooldown_blocks(available_at: datetime | None, now: datetime) -> bool:
    if available_at is None:
        return False
    return ensure_utc(available_at) > ensure_utc(now)


def evaluate_eligibility(
    snapshot: CharacterSnapshot,
    action: Action,
    location: Location,
    now: datetime,
) -> EligibilityResult:
    """Decide whether the snapshot's character may run ``action`` at ``now``.

    Checks run in a fixed order and the first failure is reported, so the
    same inputs always produce the same reason.
    """
    character = snapshot.character

    if not action.is_active or not location.is_active:
        return EligibilityResult.rejected(
            IneligibleReason.LOCATION_INACTIVE,
            f"{action.name} is not available at {location.name} right now.",
        )

    if character.level < action.required_level:
        return EligibilityResult.rejected(
            IneligibleReason.INSUFFICIENT_LEVEL,
            f"Requires level {action.required_level} (current {character.level}).",
        )

    if character.currency < action.required_currency:
        return EligibilityResult.rejected(
            IneligibleReason.INSUFFICIENT_CURRENCY,
            f"Requires {action.required_currency} gold (have {character.currency}).",
        )

    if character.action_points < action.action_points_cost:
        return EligibilityResult.rejected(
            IneligibleReason.INSUFFICIENT_ACTION_POINTS,
            f"Requires {action.action_points_cost} action points (have {character.action_points}).",
        )

    if action.required_item_id is not None:
        held = snapshot.quantity_of(action.required_item_id)
        if held < action.required_item_quantity:
            return EligibilityResult.rejected(
                IneligibleReason.MISSING_REQUIRED_ITEM,
                f"Requires {action.required_item_quantity}x item {action.required_item_id} (have {held}).",
            )

    available_at = snapshot.cooldowns.get(int(action.id))
    if cooldown_blocks(available_at, now):
        return EligibilityResult.rejected(
            IneligibleReason.ON_COOLDOWN,
            f"Available again at {ensure_utc(available_at).isoformat()}.",
        )

    if not action.is_repeatable and int(snapshot.completions.get(int(action.id), 0)) > 0:
        return EligibilityResult.rejected(
            IneligibleReason.ALREADY_COMPLETED,
            f"{action.name} can only be completed once.",
        )

    return EligibilityResult.ok()
