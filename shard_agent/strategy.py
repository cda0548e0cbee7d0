"""
Strategy-parametrized thresholds and fixed world knowledge used by every behavior.
"""
from __future__ import annotations

from typing import List, Optional

from shard_agent.models import Strategy

# Levels above our own we'll engage.
ENGAGE_LEVEL_OFFSET = {
    Strategy.AGGRESSIVE: 5,
    Strategy.BALANCED: 2,
    Strategy.DEFENSIVE: 0,
}

# HP fraction at or below which we try to eat/drink.
REACT_HP_PCT = {
    Strategy.AGGRESSIVE: 0.15,
    Strategy.BALANCED: 0.25,
    Strategy.DEFENSIVE: 0.40,
}

# HP fraction below which we run for the rally point.
FLEE_HP_PCT = {
    Strategy.AGGRESSIVE: 0.05,
    Strategy.BALANCED: 0.15,
    Strategy.DEFENSIVE: 0.30,
}

SAFE_RALLY_POINT = (150.0, 150.0)

ENGAGE_RANGE = 80.0
GATHER_RANGE = 60.0
INTERACT_RANGE = 80.0

REPAIR_DURABILITY_PCT = 0.20
SHOPPING_GOLD_THRESHOLD = 10.0
COOKING_HP_PCT = 0.70
OVERLEVEL_MARGIN = 5
ADAPT_EVERY_TICKS = 30

FOOD_CATEGORIES = ("food",)
POTION_CATEGORIES = ("potion", "consumable")
ENCHANTMENT_CATEGORIES = ("enchantment",)

EQUIPMENT_SLOTS = ("weapon", "chest", "legs", "boots", "helm", "shoulders", "gloves", "belt")

# Zones in travel order with their entry level. The world is a mostly-linear chain,
# so index distance is a usable monotone heuristic for routing.
ZONE_LEVELS = {
    "village-square": 1,
    "wild-meadow": 5,
    "dark-forest": 10,
    "auroral-plains": 15,
    "emerald-woods": 20,
    "viridian-range": 25,
    "moondancer-glade": 30,
    "felsrock-citadel": 35,
    "lake-lumina": 40,
    "azurshard-chasm": 45,
}
ZONE_ORDER: List[str] = list(ZONE_LEVELS)


def engagement_cap(strategy: Strategy, level: int) -> int:
    return level + ENGAGE_LEVEL_OFFSET[strategy]


def zone_level(zone_id: str) -> int:
    return ZONE_LEVELS.get(zone_id, 1)


def zone_distance(a: str, b: str) -> Optional[int]:
    """Hop distance along the zone chain, or None when either zone is unknown."""
    if a not in ZONE_LEVELS or b not in ZONE_LEVELS:
        return None
    return abs(ZONE_ORDER.index(a) - ZONE_ORDER.index(b))


def best_zone_for_level(level: int) -> str:
    best = ZONE_ORDER[0]
    for zone_id in ZONE_ORDER:
        if ZONE_LEVELS[zone_id] <= level:
            best = zone_id
    return best


# Entity types the world uses for the NPCs and nodes we interact with.
MOB_TYPES = ("mob", "boss")
QUEST_GIVER_TYPES = ("quest-giver",)
TRAINER_TYPES = ("profession-trainer", "trainer")
MERCHANT_TYPES = ("merchant",)
REPAIR_NPC_TYPES = ("blacksmith",)
ALTAR_TYPES = ("enchanting-altar", "enchanter")
NODE_PROFESSION = {
    "ore-node": "mining",
    "flower-node": "herbalism",
}

# Crafting chains: profession -> station entity types.
FORGE_TYPES = ("forge", "crafting-station")
ALCHEMY_LAB_TYPES = ("alchemy-lab",)
CAMPFIRE_TYPES = ("campfire",)
CRAFT_STATIONS = {
    "blacksmithing": FORGE_TYPES,
    "alchemy": ALCHEMY_LAB_TYPES,
    "cooking": CAMPFIRE_TYPES,
}
