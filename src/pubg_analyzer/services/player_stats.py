"""Player Stats Service - recent-match statistics and player comparison.

Uses the participant stats the PUBG API reports per match (no telemetry
download), so it is cheap enough to run for several players at once.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from ..core.pubg_client import PUBGAPIError, PUBGClient
from ..models import OverallStats, PlayerStats, RecentMatch
from .match_analysis import AnalysisError, validate_player_names

logger = logging.getLogger(__name__)

DEFAULT_MAX_MATCHES = 10


def summarize_matches(recent_matches: Sequence[RecentMatch]) -> OverallStats:
    """Aggregate recent matches into overall stats.

    A match counts as a win at placement 1 and as a death at any placement
    below that; unknown placements (0) count as neither. win_rate is a
    percentage.
    """
    played = len(recent_matches)
    if played == 0:
        return OverallStats()

    wins = sum(1 for m in recent_matches if m.placement == 1)
    deaths = sum(1 for m in recent_matches if m.placement > 1)
    kills = sum(m.kills for m in recent_matches)

    return OverallStats(
        matches_played=played,
        wins=wins,
        kills=kills,
        deaths=deaths,
        kd_ratio=kills / deaths if deaths else float(kills),
        win_rate=wins / played * 100,
        avg_damage=sum(m.damage_dealt for m in recent_matches) / played,
        avg_survival_time=sum(m.survival_time for m in recent_matches) / played,
    )


class PlayerStatsService:
    """Recent-form statistics for players.

    Example:
        >>> service = PlayerStatsService(pubg_client)
        >>> stats = service.get_player_stats("PlayerOne")
        >>> stats.overall_stats.kd_ratio
        1.8
    """

    def __init__(self, pubg_client: PUBGClient, logger: Optional[logging.Logger] = None):
        self.pubg_client = pubg_client
        self.logger = logger or logging.getLogger(__name__)

    def get_player_stats(
        self, player_name: str, max_matches: int = DEFAULT_MAX_MATCHES
    ) -> PlayerStats:
        """Aggregate a player's most recent matches.

        Args:
            player_name: In-game player name
            max_matches: Number of recent matches to read (default: 10)

        Returns:
            PlayerStats with overall stats and the recent matches

        Raises:
            AnalysisValidationError: If the name is blank
            AnalysisError: If the player lookup fails
        """
        validate_player_names([player_name])

        try:
            player = self.pubg_client.get_player_by_name(player_name)
        except (PUBGAPIError, ValueError) as e:
            raise AnalysisError(f"Failed to fetch player {player_name}: {e}") from e

        player_id = player.get("id") or ""
        name = player.get("attributes", {}).get("name") or player_name

        match_ids = self.pubg_client.get_recent_match_ids(player, limit=max_matches)
        self.logger.info(f"Reading {len(match_ids)} recent matches for '{name}'")

        try:
            matches = self.pubg_client.get_matches(match_ids)
        except PUBGAPIError as e:
            raise AnalysisError(f"Failed to fetch matches for {name}: {e}") from e

        recent = [self._recent_match(match, player_id, name) for match in matches]

        return PlayerStats(
            player_name=name,
            player_id=player_id,
            overall_stats=summarize_matches(recent),
            recent_matches=recent,
        )

    def get_player_history(
        self, player_name: str, max_matches: int = DEFAULT_MAX_MATCHES
    ) -> List[RecentMatch]:
        """Recent matches for a player, each tagged with the player's name."""
        stats = self.get_player_stats(player_name, max_matches=max_matches)
        for match in stats.recent_matches:
            match.player_name = stats.player_name
        return stats.recent_matches

    def compare_players(
        self, player_names: Sequence[str], max_workers: int = 4
    ) -> List[PlayerStats]:
        """Fetch stats for two or more players concurrently.

        Raises:
            AnalysisValidationError: Fewer than two names, or a blank name
            AnalysisError: If any player's stats cannot be fetched
        """
        names = validate_player_names(player_names, minimum=2)
        self.logger.info(f"Comparing {len(names)} players")

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(self.get_player_stats, names))

    def _recent_match(self, match: Dict[str, Any], player_id: str, name: str) -> RecentMatch:
        metadata = self.pubg_client.extract_match_metadata(match)
        stats = self.pubg_client.get_participant_stats(
            match, player_id=player_id, player_name=name
        ) or {}

        if not stats:
            self.logger.warning(f"No participant stats for '{name}' in match {metadata['match_id']}")

        created_at = metadata.get("match_datetime")
        return RecentMatch(
            match_id=metadata.get("match_id") or "",
            map_name=metadata.get("map_name") or "",
            game_mode=metadata.get("game_mode") or "",
            kills=int(stats.get("kills") or 0),
            placement=int(stats.get("winPlace") or 0),
            damage_dealt=float(stats.get("damageDealt") or 0.0),
            survival_time=float(stats.get("timeSurvived") or 0.0),
            date=created_at.isoformat() if created_at else "",
        )
