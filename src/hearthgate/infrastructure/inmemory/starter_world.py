"""Reference data for a fresh world: two towns, their locations and actions.

Ids match the SQL seed migration so both storage modes share one world.
"""

from hearthgate.domain.models.action import (
    Action,
    ActionCategory,
    ActionRequirements,
    ActionTiming,
    ActionType,
)
from hearthgate.domain.models.reward import ItemReward, RewardSpec, StatChanges, UnlockKind, UnlockReward
from hearthgate.domain.models.world import Item, Location, LocationType, Town
from hearthgate.infrastructure.db.inmemory.repos import InMemoryWorldCatalogRepository


HERB_ID = 1
WOLF_PELT_ID = 2
HEALING_POTION_ID = 3
SEALED_LETTER_ID = 4

STARTER_ITEMS = (
    Item(id=HERB_ID, name="Silverleaf Herb", item_type="material", rarity="common", base_price=3),
    Item(id=WOLF_PELT_ID, name="Wolf Pelt", item_type="material", rarity="common", base_price=8),
    Item(id=HEALING_POTION_ID, name="Healing Potion", item_type="consumable", rarity="common", base_price=25),
    Item(id=SEALED_LETTER_ID, name="Sealed Letter", item_type="quest", rarity="uncommon", base_price=0),
)

STARTER_TOWNS = (
    Town(
        id=1,
        name="Millbrook",
        region="starting_zone",
        required_level=1,
        is_safe_zone=True,
        description="A river village where most adventurers take their first steps.",
    ),
    Town(
        id=2,
        name="Greyhaven",
        region="northern_reach",
        required_level=5,
        is_safe_zone=False,
        description="A walled trade city on the edge of the northern wilds.",
    ),
)

STARTER_LOCATIONS = (
    Location(id=1, town_id=1, name="The Drowsy Otter", location_type=LocationType.SOCIAL,
             map_position_x=42.0, map_position_y=55.0, sort_order=1, icon="tavern"),
    Location(id=2, town_id=1, name="Training Yard", location_type=LocationType.TRAINING,
             map_position_x=61.0, map_position_y=38.0, sort_order=2, icon="sword"),
    Location(id=3, town_id=1, name="Herbalist's Hut", location_type=LocationType.CRAFTING,
             map_position_x=25.0, map_position_y=70.0, sort_order=3, icon="mortar"),
    Location(id=4, town_id=1, name="Whisperwood Trail", location_type=LocationType.COMBAT,
             map_position_x=12.0, map_position_y=20.0, required_level=2, sort_order=4, icon="forest"),
    Location(id=5, town_id=1, name="Coach Station", location_type=LocationType.TRAVEL,
             map_position_x=80.0, map_position_y=82.0, sort_order=5, icon="coach"),
    Location(id=6, town_id=2, name="Greyhaven Market", location_type=LocationType.SHOP,
             map_position_x=50.0, map_position_y=50.0, required_level=5, sort_order=1, icon="stall"),
)

STARTER_ACTIONS = (
    Action(
        id=1,
        location_id=1,
        name="Rent a Room",
        action_type=ActionType.TIMED,
        category=ActionCategory.REST,
        requirements=ActionRequirements(required_currency=10),
        timing=ActionTiming(cooldown_seconds=300, duration_seconds=30),
        rewards=RewardSpec(stat_changes=StatChanges(health=40, mana=25)),
        sort_order=1,
        description="Sleep off your wounds in a warm bed.",
    ),
    Action(
        id=2,
        location_id=1,
        name="Listen for Rumours",
        action_type=ActionType.DIALOG,
        category=ActionCategory.SOCIAL,
        requirements=ActionRequirements(action_points_cost=1),
        timing=ActionTiming(cooldown_seconds=60),
        rewards=RewardSpec(experience=5, items=(ItemReward(item_id=SEALED_LETTER_ID, quantity=1, chance=0.25),)),
        sort_order=2,
    ),
    Action(
        id=3,
        location_id=1,
        name="Deliver the Innkeeper's Letter",
        action_type=ActionType.DIALOG,
        category=ActionCategory.MISSION,
        requirements=ActionRequirements(required_item_id=SEALED_LETTER_ID, required_item_quantity=1),
        rewards=RewardSpec(
            currency=30,
            experience=25,
            unlocks=(UnlockReward(kind=UnlockKind.LOCATION, target_id=4),),
        ),
        is_repeatable=False,
        sort_order=3,
    ),
    Action(
        id=4,
        location_id=2,
        name="Spar with the Drillmaster",
        action_type=ActionType.TIMED,
        category=ActionCategory.MELEE,
        requirements=ActionRequirements(required_currency=5, action_points_cost=2),
        timing=ActionTiming(cooldown_seconds=600, duration_seconds=60),
        rewards=RewardSpec(experience=15, stat_changes=StatChanges(health=-10, strength=1)),
        sort_order=1,
    ),
    Action(
        id=5,
        location_id=3,
        name="Forage for Herbs",
        action_type=ActionType.TIMED,
        category=ActionCategory.CRAFT,
        requirements=ActionRequirements(action_points_cost=1),
        timing=ActionTiming(cooldown_seconds=120, duration_seconds=20),
        rewards=RewardSpec(items=(ItemReward(item_id=HERB_ID, quantity=2, chance=0.75),)),
        sort_order=1,
    ),
    Action(
        id=6,
        location_id=3,
        name="Brew a Healing Potion",
        action_type=ActionType.INSTANT,
        category=ActionCategory.CRAFT,
        requirements=ActionRequirements(required_item_id=HERB_ID, required_item_quantity=2, action_points_cost=1),
        rewards=RewardSpec(experience=10, items=(ItemReward(item_id=HEALING_POTION_ID, quantity=1),)),
        sort_order=2,
    ),
    Action(
        id=7,
        location_id=4,
        name="Hunt Wolves",
        action_type=ActionType.COMBAT,
        category=ActionCategory.COMBAT,
        requirements=ActionRequirements(required_level=2, action_points_cost=3),
        timing=ActionTiming(cooldown_seconds=900),
        rewards=RewardSpec(
            currency=12,
            experience=20,
            items=(ItemReward(item_id=WOLF_PELT_ID, quantity=1, chance=0.6),),
            stat_changes=StatChanges(health=-15),
        ),
        sort_order=1,
    ),
    Action(
        id=8,
        location_id=5,
        name="Take the Coach to Greyhaven",
        action_type=ActionType.NAVIGATION,
        category=ActionCategory.TRAVEL,
        requirements=ActionRequirements(required_level=5, required_currency=25, action_points_cost=2),
        rewards=RewardSpec(teleport_to=6),
        sort_order=1,
    ),
    Action(
        id=9,
        location_id=6,
        name="Take the Coach to Millbrook",
        action_type=ActionType.NAVIGATION,
        category=ActionCategory.TRAVEL,
        requirements=ActionRequirements(required_currency=25, action_points_cost=2),
        rewards=RewardSpec(teleport_to=5),
        sort_order=1,
    ),
)


def build_starter_catalog() -> InMemoryWorldCatalogRepository:
    return InMemoryWorldCatalogRepository(
        towns=STARTER_TOWNS,
        locations=STARTER_LOCATIONS,
        actions=STARTER_ACTIONS,
        items=STARTER_ITEMS,
    )
