"""
Insight Generator

Rule-based coaching insights: a per-player rating with strength, weakness and
recommendation tags, and team-level scores for the analyzed squad.
"""

import logging
import time
from typing import List, Optional, Sequence

from ..core.geometry import parse_timestamp
from ..core.telemetry import PlayerKillEvent, TelemetryEvent
from ..models import (
    AnalysisInsights,
    KeyMoment,
    PlayerAnalysis,
    PlayerInsights,
    PlayerMatchStats,
    TeamPerformance,
)

logger = logging.getLogger(__name__)

# (minimum K/D, rating), checked top-down
RATING_BREAKPOINTS = ((3.0, 5), (2.0, 4), (1.2, 3), (0.8, 2))

MAX_TEAM_SCORE = 5.0
MAX_KEY_MOMENTS = 10
KILL_MOMENT_IMPACT = 5

STRENGTH_HIGH_KILLS = "High kill count"
STRENGTH_HIGH_DAMAGE = "High damage output"
STRENGTH_HEADSHOTS = "Excellent headshot accuracy"
STRENGTH_ROTATION = "Strong map rotation"

WEAKNESS_NEGATIVE_KD = "More deaths than kills"
WEAKNESS_BLUE_ZONE = "Excessive time in the blue zone"
WEAKNESS_BOOSTS = "Underuses boost items"

RECOMMEND_SURVIVAL = "Focus on survival and positioning"
RECOMMEND_AIM = "Improve aim and accuracy"
RECOMMEND_ROTATION = "Increase map awareness and rotation"
RECOMMEND_BOOSTS = "Use boosts more consistently"

INSIGHT_EARLY_ELIMINATION = "Team eliminated early - focus on better landing strategy"
INSIGHT_LOW_DAMAGE = "Low damage output - take more favourable engagements"
INSIGHT_BLUE_ZONE = "Excessive blue-zone exposure - rotate earlier with the circle"


def kd_ratio(stats: PlayerMatchStats) -> float:
    """Kills per death; equals kills when the player never died."""
    return stats.kills / stats.deaths if stats.deaths > 0 else float(stats.kills)


def performance_rating(stats: PlayerMatchStats) -> int:
    kd = kd_ratio(stats)
    for minimum, rating in RATING_BREAKPOINTS:
        if kd >= minimum:
            return rating
    return 1


def _clamp(value: float, low: float = 0.0, high: float = MAX_TEAM_SCORE) -> float:
    return max(low, min(value, high))


def generate_player_insights(stats: PlayerMatchStats) -> PlayerInsights:
    """
    Tag a player's match with strengths, weaknesses and recommendations.

    Args:
        stats: Reduced match stats for the player

    Returns:
        PlayerInsights; improvement_areas mirrors recommendations
    """
    kd = kd_ratio(stats)
    headshots = stats.combat.headshot_percentage
    distance = stats.movement.total_distance

    strengths = []
    if stats.kills >= 5:
        strengths.append(STRENGTH_HIGH_KILLS)
    if stats.damage_dealt > 1200:
        strengths.append(STRENGTH_HIGH_DAMAGE)
    if headshots > 0.35:
        strengths.append(STRENGTH_HEADSHOTS)
    if distance > 6000:
        strengths.append(STRENGTH_ROTATION)

    weaknesses = []
    if stats.deaths > stats.kills:
        weaknesses.append(WEAKNESS_NEGATIVE_KD)
    if stats.movement.time_in_blue_zone > 90:
        weaknesses.append(WEAKNESS_BLUE_ZONE)
    if stats.healing.boost_used < 2:
        weaknesses.append(WEAKNESS_BOOSTS)

    recommendations = []
    if kd < 1:
        recommendations.append(RECOMMEND_SURVIVAL)
    if headshots < 0.2:
        recommendations.append(RECOMMEND_AIM)
    if distance < 4000:
        recommendations.append(RECOMMEND_ROTATION)
    if stats.healing.boost_used < 2:
        recommendations.append(RECOMMEND_BOOSTS)

    return PlayerInsights(
        strengths=strengths,
        weaknesses=weaknesses,
        recommendations=recommendations,
        performance_rating=performance_rating(stats),
        improvement_areas=list(recommendations),
    )


def extract_key_moments(
    events: Sequence[TelemetryEvent],
    limit: int = MAX_KEY_MOMENTS,
    now_ms: Optional[float] = None,
) -> List[KeyMoment]:
    """First `limit` kills of the match, in stream order.

    Untimed kills are stamped with `now_ms` (default: wall clock).
    """
    if now_ms is None:
        now_ms = time.time() * 1000

    moments = []
    for event in events:
        if len(moments) >= limit:
            break
        if not isinstance(event, PlayerKillEvent):
            continue

        killer = (event.killer.name if event.killer else None) or "Unknown"
        victim = (event.victim.name if event.victim else None) or "Unknown"
        ts = parse_timestamp(event.timestamp)
        moments.append(
            KeyMoment(
                timestamp=ts if ts is not None else now_ms,
                type="kill",
                description=f"{killer} eliminated {victim}",
                impact=KILL_MOMENT_IMPACT,
                players=[killer, victim],
            )
        )
    return moments


def generate_team_insights(
    players: Sequence[PlayerAnalysis],
    events: Sequence[TelemetryEvent],
    match_duration: float,
    now_ms: Optional[float] = None,
) -> AnalysisInsights:
    """
    Score the analyzed players as a team.

    Args:
        players: Per-player analyses (stats and ratings already computed)
        events: Decoded telemetry events, for key moments
        match_duration: Match duration in seconds
        now_ms: Timestamp for key moments whose kill event is untimed

    Returns:
        AnalysisInsights with quality, key moments, team scores and
        strategic hints
    """
    key_moments = extract_key_moments(events, now_ms=now_ms)

    count = len(players)
    if count == 0:
        return AnalysisInsights(key_moments=key_moments)

    quality = sum(p.insights.performance_rating for p in players) / count
    total_assists = sum(p.stats.assists for p in players)
    avg_survival = sum(p.stats.survival_time for p in players) / count
    avg_damage = sum(p.stats.damage_dealt for p in players) / count
    avg_blue_zone = sum(p.stats.movement.time_in_blue_zone for p in players) / count

    communication = (
        _clamp(avg_survival / match_duration * MAX_TEAM_SCORE) if match_duration > 0 else 0.0
    )

    team = TeamPerformance(
        coordination=_clamp(total_assists / count),
        communication=communication,
        strategy=_clamp(avg_damage / 300),
        overall_rating=quality,
    )

    strategic = []
    if avg_survival < 600:
        strategic.append(INSIGHT_EARLY_ELIMINATION)
    if avg_damage < 500:
        strategic.append(INSIGHT_LOW_DAMAGE)
    if avg_blue_zone > 120:
        strategic.append(INSIGHT_BLUE_ZONE)

    logger.debug(f"Team insights for {count} players: quality={quality:.2f}")

    return AnalysisInsights(
        overall_match_quality=quality,
        key_moments=key_moments,
        team_performance=team,
        strategic_insights=strategic,
    )
