from __future__ import annotations

from typing import Protocol

from hearthgate.domain.models.reward import ItemGrant, RewardOutcome, RewardSpec


class RandomSource(Protocol):
    def random(self) -> float: ...


def resolve_rewards(spec: RewardSpec, random_source: RandomSource) -> RewardOutcome:
    # One draw per item reward, in declaration order, so a seeded source
    # always replays the same drops.
    granted = []
    for reward in spec.items:
        sample = float(random_source.random())
        if sample < float(reward.chance):
            granted.append(ItemGrant(item_id=int(reward.item_id), quantity=int(reward.quantity)))

    return RewardOutcome(
        currency=spec.currency,
        experience=spec.experience,
        items=tuple(granted),
        stat_changes=spec.stat_changes,
        unlocks=tuple(spec.unlocks),
        teleport_to=spec.teleport_to,
    )
