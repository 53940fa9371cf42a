from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


STARTING_HEALTH = 100
STARTING_MANA = 50
STARTING_ATTRIBUTE = 10
STARTING_CURRENCY = 100
STARTING_ACTION_POINTS = 10

ATTRIBUTE_NAMES = ("strength", "dexterity", "intelligence", "constitution", "wisdom", "charisma")


class CharacterClass(str, Enum):
    ADVENTURER = "adventurer"
    WARRIOR = "warrior"
    MAGE = "mage"
    ROGUE = "rogue"
    CLERIC = "cleric"

    @classmethod
    def normalize(cls, value: str | None) -> Optional[str]:
        raw = str(value or "").strip().lower()
        if not raw:
            return None
        valid = {item.value for item in cls}
        if raw not in valid:
            raise ValueError(f"Unknown character class: {value}")
        return raw


@dataclass
class Character:
    id: Optional[int]
    player_id: int
    name: str
    level: int = 1
    experience: int = 0
    health: int = STARTING_HEALTH
    max_health: int = STARTING_HEALTH
    mana: int = STARTING_MANA
    max_mana: int = STARTING_MANA
    strength: int = STARTING_ATTRIBUTE
    dexterity: int = STARTING_ATTRIBUTE
    intelligence: int = STARTING_ATTRIBUTE
    constitution: int = STARTING_ATTRIBUTE
    wisdom: int = STARTING_ATTRIBUTE
    charisma: int = STARTING_ATTRIBUTE
    currency: int = STARTING_CURRENCY
    action_points: int = STARTING_ACTION_POINTS
    max_action_points: int = STARTING_ACTION_POINTS
    character_class: Optional[str] = None
    location_id: Optional[int] = None
    version: int = 0

    def attributes(self) -> Dict[str, int]:
        return {name: int(getattr(self, name)) for name in ATTRIBUTE_NAMES}

    def validate(self) -> None:
        if self.level < 1:
            raise ValueError(f"Character {self.id} level must be at least 1")
        if self.currency < 0:
            raise ValueError(f"Character {self.id} currency cannot be negative")
        if self.health > self.max_health:
            raise ValueError(f"Character {self.id} health exceeds max_health")
        if self.mana > self.max_mana:
            raise ValueError(f"Character {self.id} mana exceeds max_mana")
        if self.action_points > self.max_action_points:
            raise ValueError(f"Character {self.id} action points exceed max_action_points")


def new_character(
    *,
    player_id: int,
    name: str,
    location_id: Optional[int],
    character_class: Optional[str] = None,
) -> Character:
    return Character(
        id=None,
        player_id=player_id,
        name=name,
        character_class=CharacterClass.normalize(character_class),
        location_id=location_id,
    )
