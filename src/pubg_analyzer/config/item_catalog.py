"""
Item catalog for PUBG telemetry data.

Static lookup tables for consumable items seen in LogHeal / LogItemUse events,
plus weapon id normalisation shared by kill, damage and fire-count events.

Usage:
    >>> from pubg_analyzer.config.item_catalog import get_item_use_duration, normalize_weapon_id
    >>> get_item_use_duration('Item_Heal_MedKit_C')
    8.0
    >>> normalize_weapon_id('Item_Weapon_M416_C')
    'M416_C'
    >>> normalize_weapon_id('')
    'Unknown'
"""

from types import MappingProxyType
from typing import Mapping, Optional

UNKNOWN_WEAPON = "Unknown"

# ============================================================================
# CONSUMABLES
# ============================================================================

BOOST_ITEMS = frozenset(
    {
        "Item_Boost_EnergyDrink_C",
        "Item_Boost_PainKiller_C",
        "Item_Boost_AdrenalineSyringe_C",
    }
)

# Seconds a player is locked into the use animation. Unknown items take 0s.
ITEM_USE_DURATIONS: Mapping[str, float] = MappingProxyType(
    {
        "Item_Heal_Bandage_C": 4.0,
        "Item_Heal_FirstAid_C": 6.0,
        "Item_Heal_MedKit_C": 8.0,
        "Item_Boost_EnergyDrink_C": 4.0,
        "Item_Boost_PainKiller_C": 6.0,
        "Item_Boost_AdrenalineSyringe_C": 8.0,
    }
)

# ============================================================================
# WEAPONS
# ============================================================================

# Kill events report the item class ("Item_Weapon_M416_C"), damage events the
# weapon actor ("WeapM416_C"). Both collapse to the same bucket.
_WEAPON_PREFIXES = ("Item_Weapon_", "Weap")


def get_item_use_duration(item_id: Optional[str]) -> float:
    """Return the use duration in seconds for an item (0 when unknown)."""
    if not item_id:
        return 0.0
    return ITEM_USE_DURATIONS.get(item_id, 0.0)


def is_boost_item(
    item_id: Optional[str],
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
) -> bool:
    """
    Check whether an item use counts as a boost.

    Args:
        item_id: Telemetry item id (e.g. 'Item_Boost_EnergyDrink_C')
        category: Item category from telemetry (e.g. 'Use')
        sub_category: Item sub category from telemetry (e.g. 'Boost')

    Returns:
        True for boost items
    """
    if sub_category and sub_category.lower() == "boost":
        return True
    if category and category.lower() == "boost":
        return True
    if not item_id:
        return False
    return item_id in BOOST_ITEMS or item_id.startswith("Item_Boost_")


def normalize_weapon_id(weapon_id: Optional[str]) -> str:
    """
    Normalise a weapon identifier to its bare class name.

    Args:
        weapon_id: Raw id ('Item_Weapon_M416_C', 'WeapM416_C', 'M416_C', None)

    Returns:
        Bare weapon id ('M416_C'), or 'Unknown' for empty ids
    """
    if not weapon_id or not weapon_id.strip():
        return UNKNOWN_WEAPON

    weapon_id = weapon_id.strip()
    for prefix in _WEAPON_PREFIXES:
        if weapon_id.startswith(prefix) and len(weapon_id) > len(prefix):
            return weapon_id[len(prefix):]

    return weapon_id
