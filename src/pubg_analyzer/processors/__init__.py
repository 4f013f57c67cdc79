"""Telemetry processors: pure, synchronous reductions over decoded events."""

from .insights import generate_player_insights, generate_team_insights
from .match_summary import build_match_summary, find_match_bounds
from .player_reducer import PlayerReduction, PlayerTelemetryReducer, reduce_player
from .weapon_aggregator import WeaponAggregator

__all__ = [
    "PlayerReduction",
    "PlayerTelemetryReducer",
    "WeaponAggregator",
    "build_match_summary",
    "find_match_bounds",
    "generate_player_insights",
    "generate_team_insights",
    "reduce_player",
]
