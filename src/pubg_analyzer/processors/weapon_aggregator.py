"""
Per-weapon accumulators for one player's telemetry pass.
"""

from collections import defaultdict
from typing import Dict, Optional

from ..config.item_catalog import normalize_weapon_id
from ..models import WeaponStats


class WeaponAggregator:
    """
    Accumulates kills, damage, hits, headshots and shots fired per weapon.

    Weapon ids are normalised (see normalize_weapon_id), so empty or missing
    ids all land in a single 'Unknown' bucket.

    Example:
        >>> weapons = WeaponAggregator()
        >>> weapons.record_shots("WeapM416_C", 10)
        >>> weapons.record_hit("WeapM416_C", 44.0)
        >>> weapons.finalize()["M416_C"].accuracy
        0.1
    """

    def __init__(self):
        self._weapons: Dict[str, Dict[str, float]] = defaultdict(
            lambda: {"kills": 0, "damage": 0.0, "hits": 0, "headshots": 0, "shots_fired": 0}
        )

    def record_kill(self, weapon: Optional[str], is_headshot: bool = False) -> None:
        bucket = self._weapons[normalize_weapon_id(weapon)]
        bucket["kills"] += 1
        if is_headshot:
            bucket["headshots"] += 1

    def record_hit(self, weapon: Optional[str], damage: float) -> None:
        bucket = self._weapons[normalize_weapon_id(weapon)]
        bucket["hits"] += 1
        bucket["damage"] += damage or 0.0

    def record_shots(self, weapon: Optional[str], count: float) -> None:
        self._weapons[normalize_weapon_id(weapon)]["shots_fired"] += int(count or 0)

    def finalize(self) -> Dict[str, WeaponStats]:
        """
        Project the accumulators into public weapon stats.

        Returns:
            Dict[weapon_id, WeaponStats] with accuracy = hits / shots fired,
            clamped to [0, 1] and 0 when no shots were recorded
        """
        result = {}
        for weapon_id, bucket in self._weapons.items():
            shots = bucket["shots_fired"]
            accuracy = min(bucket["hits"] / shots, 1.0) if shots > 0 else 0.0
            result[weapon_id] = WeaponStats(
                kills=bucket["kills"],
                damage=bucket["damage"],
                hits=bucket["hits"],
                headshots=bucket["headshots"],
                accuracy=accuracy,
            )
        return result
