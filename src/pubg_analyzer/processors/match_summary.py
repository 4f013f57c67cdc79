"""
Match Summary Builder

Builds the match-wide summary (players, duration, map, mode) and the
periodic zone / players-alive timeline from decoded telemetry.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.geometry import parse_timestamp, to_meters
from ..core.telemetry import (
    GameStatePeriodicEvent,
    MatchEndEvent,
    MatchStartEvent,
    TelemetryEvent,
)
from ..models import MatchSummary, TimelinePoint, ZoneState

logger = logging.getLogger(__name__)


def find_match_bounds(
    events: Sequence[TelemetryEvent],
) -> Tuple[Optional[float], Optional[float], Optional[int]]:
    """
    Locate match start and end.

    The first MatchStart and the first MatchEnd win when the stream
    carries duplicates.

    Args:
        events: Decoded telemetry events

    Returns:
        Tuple of (start_ms, end_ms, start_character_count); any may be None
    """
    start: Optional[MatchStartEvent] = None
    end: Optional[MatchEndEvent] = None

    for event in events:
        if start is None and isinstance(event, MatchStartEvent):
            start = event
        elif end is None and isinstance(event, MatchEndEvent):
            end = event
        if start is not None and end is not None:
            break

    start_ms = parse_timestamp(start.timestamp) if start else None
    end_ms = parse_timestamp(end.timestamp) if end else None
    character_count = start.character_count if start else None

    return start_ms, end_ms, character_count


def _timeline_point(
    event: GameStatePeriodicEvent,
    match_start_ms: Optional[float],
    fallback_alive: int,
) -> TimelinePoint:
    state = event.game_state

    ts = parse_timestamp(event.timestamp)
    if match_start_ms is not None and ts is not None:
        time_s = (ts - match_start_ms) / 1000
    else:
        time_s = state.elapsed_time or 0.0

    alive = state.num_alive_players if state.num_alive_players is not None else fallback_alive

    position = state.safety_zone_position
    center = {
        "x": to_meters(position.x) if position else 0.0,
        "y": to_meters(position.y) if position else 0.0,
    }

    return TimelinePoint(
        time=time_s,
        players_alive=alive,
        zone=ZoneState(radius=to_meters(state.safety_zone_radius), center=center),
    )


def build_match_summary(
    match_metadata: Optional[Dict[str, Any]], events: Sequence[TelemetryEvent]
) -> MatchSummary:
    """
    Build the match summary.

    Args:
        match_metadata: Output of PUBGClient.extract_match_metadata (map_name,
            game_mode, duration, participant_count); may be empty
        events: Decoded telemetry events

    Returns:
        MatchSummary with a timeline sorted by relative time (seconds)
    """
    metadata = match_metadata or {}
    start_ms, end_ms, start_count = find_match_bounds(events)

    timeline: List[TimelinePoint] = [
        _timeline_point(event, start_ms, start_count or 0)
        for event in events
        if isinstance(event, GameStatePeriodicEvent) and event.game_state is not None
    ]
    timeline.sort(key=lambda point: point.time)

    if start_count is not None:
        total_players = start_count
    else:
        total_players = metadata.get("participant_count") or 0

    if metadata.get("duration"):
        duration = float(metadata["duration"])
    elif start_ms is not None and end_ms is not None:
        duration = max(end_ms - start_ms, 0) / 1000
    elif timeline:
        duration = timeline[-1].time
    else:
        duration = 0.0

    logger.debug(
        f"Built match summary: {total_players} players, {duration:.0f}s, "
        f"{len(timeline)} zone points"
    )

    return MatchSummary(
        total_players=total_players,
        match_duration=duration,
        map_name=metadata.get("map_name") or "",
        game_mode=metadata.get("game_mode") or "",
        timeline=timeline,
    )
