"""
Analysis result records.

Every record is a dataclass whose `to_dict()` produces the JSON shape consumed
by the front end: camelCase keys, plain lists and dicts, None fields omitted.
Map keys (weapon ids, item ids) are kept verbatim.
"""

import json
import re
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, List, Optional

_CAMEL_RE = re.compile(r"_([a-z0-9])")


def _camel(name: str) -> str:
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def to_json_value(value: Any) -> Any:
    """Recursively convert records into JSON-compatible values."""
    if is_dataclass(value) and not isinstance(value, type):
        result = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            result[f.metadata.get("json", _camel(f.name))] = to_json_value(item)
        return result
    if isinstance(value, dict):
        return {str(key): to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


class _Record:
    def to_dict(self) -> Dict[str, Any]:
        return to_json_value(self)


# ============================================================================
# PLAYER STATS
# ============================================================================


@dataclass
class WeaponStats(_Record):
    kills: int = 0
    damage: float = 0.0
    hits: int = 0
    headshots: int = 0
    accuracy: float = 0.0


@dataclass
class MovementStats(_Record):
    """Distances in meters, times in seconds, speed in meters per minute."""

    total_distance: float = 0.0
    vehicle_distance: float = 0.0
    swim_distance: float = 0.0
    foot_distance: float = 0.0
    avg_speed: float = 0.0
    time_in_vehicle: float = 0.0
    time_in_blue_zone: float = 0.0


@dataclass
class HealingItemUsage(_Record):
    used: int = 0
    time: float = 0.0


@dataclass
class HealingStats(_Record):
    health_used: float = 0.0
    boost_used: int = 0
    healing_items: Dict[str, HealingItemUsage] = field(default_factory=dict)


@dataclass
class CombatStats(_Record):
    shots_fired: int = 0
    shots_hit: int = 0
    headshot_percentage: float = 0.0
    longest_kill: float = 0.0
    avg_kill_distance: float = 0.0
    damage_per_kill: float = 0.0


@dataclass
class PlayerMatchStats(_Record):
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    damage_dealt: float = 0.0
    damage_taken: float = 0.0
    survival_time: float = 0.0
    placement: int = 1
    weapons: Dict[str, WeaponStats] = field(default_factory=dict)
    movement: MovementStats = field(default_factory=MovementStats)
    healing: HealingStats = field(default_factory=HealingStats)
    combat: CombatStats = field(default_factory=CombatStats)


@dataclass
class PlayerTimelineEntry(_Record):
    """One notable moment for a player. `time` is epoch milliseconds."""

    time: float
    event: str
    position: Optional[Dict[str, float]] = None
    details: Optional[Dict[str, Any]] = None


@dataclass
class PlayerInsights(_Record):
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    performance_rating: int = 1
    improvement_areas: List[str] = field(default_factory=list)


@dataclass
class PlayerAnalysis(_Record):
    name: str
    id: str
    stats: PlayerMatchStats
    insights: PlayerInsights
    timeline: List[PlayerTimelineEntry] = field(default_factory=list)


# ============================================================================
# MATCH SUMMARY
# ============================================================================


@dataclass
class ZoneState(_Record):
    radius: float = 0.0
    center: Dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})


@dataclass
class TimelinePoint(_Record):
    time: float
    players_alive: int
    zone: ZoneState


@dataclass
class MatchSummary(_Record):
    total_players: int = 0
    match_duration: float = 0.0
    map_name: str = field(default="", metadata={"json": "map"})
    game_mode: str = ""
    timeline: List[TimelinePoint] = field(default_factory=list)


# ============================================================================
# INSIGHTS
# ============================================================================


@dataclass
class KeyMoment(_Record):
    timestamp: float
    type: str
    description: str
    impact: int
    players: List[str] = field(default_factory=list)


@dataclass
class TeamPerformance(_Record):
    coordination: float = 0.0
    communication: float = 0.0
    strategy: float = 0.0
    overall_rating: float = 0.0


@dataclass
class AnalysisInsights(_Record):
    overall_match_quality: float = 0.0
    key_moments: List[KeyMoment] = field(default_factory=list)
    team_performance: TeamPerformance = field(default_factory=TeamPerformance)
    strategic_insights: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MatchAnalysis(_Record):
    """Root result of one analysis request."""

    match_id: str
    analysis_date: str
    players: List[PlayerAnalysis]
    match_summary: MatchSummary
    insights: AnalysisInsights


# ============================================================================
# PLAYER HISTORY
# ============================================================================


@dataclass
class RecentMatch(_Record):
    match_id: str
    map_name: str
    game_mode: str
    kills: int = 0
    placement: int = 0
    damage_dealt: float = 0.0
    survival_time: float = 0.0
    date: str = ""
    player_name: Optional[str] = None


@dataclass
class OverallStats(_Record):
    matches_played: int = 0
    wins: int = 0
    kills: int = 0
    deaths: int = 0
    kd_ratio: float = 0.0
    win_rate: float = 0.0
    avg_damage: float = 0.0
    avg_survival_time: float = 0.0


@dataclass
class PlayerStats(_Record):
    player_name: str
    player_id: str
    overall_stats: OverallStats
    recent_matches: List[RecentMatch] = field(default_factory=list)


# ============================================================================
# EXPORT
# ============================================================================


def _export(record: Any) -> str:
    payload = record.to_dict() if hasattr(record, "to_dict") else to_json_value(record)
    return json.dumps(payload, indent=2)


def export_match_analysis(analysis: MatchAnalysis) -> str:
    """Serialize a match analysis to pretty-printed JSON (2-space indent)."""
    return _export(analysis)


def export_player_stats(stats: Any) -> str:
    """Serialize a PlayerStats or PlayerMatchStats record to pretty-printed JSON."""
    return _export(stats)
