import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from hearthgate.domain.models.reward import (
    ItemReward,
    RewardSpec,
    StatChanges,
    UnlockKind,
    UnlockReward,
    reward_spec_from_payload,
    reward_spec_to_payload,
)


class RewardSpecPayloadTests(unittest.TestCase):
    def test_stored_reward_bag_is_parsed_into_typed_spec(self) -> None:
        spec = reward_spec_from_payload(
            {
                "gold": 30,
                "experience": 25,
                "items": [{"item_id": 4, "quantity": 2, "chance": 0.25}, {"item_id": 5}],
                "stat_changes": {"health": -10, "strength": 1},
                "unlocks": [{"unlock_type": "location", "target_id": 4}],
                "teleport_to": 6,
                "flavour": "ignored",
            }
        )

        self.assertEqual(30, spec.currency)
        self.assertEqual(25, spec.experience)
        self.assertEqual(
            (ItemReward(item_id=4, quantity=2, chance=0.25), ItemReward(item_id=5, quantity=1, chance=1.0)),
            spec.items,
        )
        self.assertEqual(StatChanges(health=-10, strength=1), spec.stat_changes)
        self.assertEqual((UnlockReward(kind=UnlockKind.LOCATION, target_id=4),), spec.unlocks)
        self.assertEqual(6, spec.teleport_to)

    def test_currency_key_is_accepted_for_gold(self) -> None:
        self.assertEqual(12, reward_spec_from_payload({"currency": 12}).currency)

    def test_empty_payload_means_no_rewards(self) -> None:
        self.assertEqual(RewardSpec(), reward_spec_from_payload(None))
        self.assertEqual(RewardSpec(), reward_spec_from_payload({}))

    def test_malformed_payloads_raise_value_error(self) -> None:
        bad_payloads = [
            {"items": {"item_id": 1}},
            {"items": [{"quantity": 1}]},
            {"unlocks": [{"unlock_type": "guild", "target_id": 1}]},
            {"gold": "lots"},
            {"stat_changes": [1, 2]},
            ["not", "an", "object"],
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    reward_spec_from_payload(payload)

    def test_payload_written_back_uses_stored_keys(self) -> None:
        spec = RewardSpec(
            currency=5,
            items=(ItemReward(item_id=2, quantity=1, chance=0.6),),
            unlocks=(UnlockReward(kind=UnlockKind.SKILL, target_id=3),),
        )

        payload = reward_spec_to_payload(spec)

        self.assertEqual(
            {
                "gold": 5,
                "items": [{"item_id": 2, "quantity": 1, "chance": 0.6}],
                "unlocks": [{"unlock_type": "skill", "target_id": 3}],
            },
            payload,
        )
        self.assertEqual(spec, reward_spec_from_payload(payload))


if __name__ == "__main__":
    unittest.main()
