"""Unit tests for the player stats service."""

from datetime import datetime, timezone

import pytest
from unittest.mock import Mock

from pubg_analyzer.core.pubg_client import NotFoundError
from pubg_analyzer.models import RecentMatch
from pubg_analyzer.services.match_analysis import AnalysisError, AnalysisValidationError
from pubg_analyzer.services.player_stats import PlayerStatsService, summarize_matches

# match id -> (kills, winPlace, damageDealt, timeSurvived)
PARTICIPATION = {
    "m1": (3, 1, 400.0, 1800.0),
    "m2": (1, 12, 150.0, 600.0),
    "m3": (0, 30, 0.0, 120.0),
}


def make_match(match_id):
    return {"data": {"id": match_id}, "stats": PARTICIPATION[match_id]}


@pytest.fixture
def pubg_client():
    """Create a mock PUBG client for one player with three matches."""
    client = Mock()

    def get_player_by_name(name):
        if name == "Ghost":
            raise NotFoundError("Player not found: Ghost")
        return {
            "id": f"account.{name}",
            "attributes": {"name": name},
            "relationships": {"matches": {"data": [{"id": m} for m in PARTICIPATION]}},
        }

    client.get_player_by_name.side_effect = get_player_by_name
    client.get_recent_match_ids.side_effect = lambda player, limit=None: [
        m["id"] for m in player["relationships"]["matches"]["data"]
    ][:limit]
    client.get_matches.side_effect = lambda ids: [make_match(i) for i in ids]
    client.extract_match_metadata.side_effect = lambda match: {
        "match_id": match["data"]["id"],
        "map_name": "Miramar",
        "game_mode": "squad-fpp",
        "match_datetime": datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc),
    }

    def get_participant_stats(match, player_id=None, player_name=None):
        kills, place, damage, survived = match["stats"]
        return {"playerId": player_id, "kills": kills, "winPlace": place,
                "damageDealt": damage, "timeSurvived": survived}

    client.get_participant_stats.side_effect = get_participant_stats
    return client


@pytest.fixture
def service(pubg_client):
    return PlayerStatsService(pubg_client)


class TestSummarizeMatches:
    """Test cases for summarize_matches."""

    def test_no_matches(self):
        """Test an empty history yields zero stats."""
        overall = summarize_matches([])
        assert overall.matches_played == 0
        assert overall.kd_ratio == 0.0

    def test_unknown_placement_is_not_a_death(self):
        """Test placement 0 counts as neither win nor death."""
        overall = summarize_matches([RecentMatch("m", "Miramar", "solo", kills=2, placement=0)])
        assert overall.deaths == 0
        assert overall.wins == 0
        assert overall.kd_ratio == 2.0


class TestGetPlayerStats:
    """Test cases for get_player_stats."""

    def test_aggregates_recent_matches(self, service):
        """Test overall stats over the recent matches."""
        stats = service.get_player_stats("PlayerOne")

        assert stats.player_name == "PlayerOne"
        assert stats.player_id == "account.PlayerOne"
        assert [m.match_id for m in stats.recent_matches] == ["m1", "m2", "m3"]

        overall = stats.overall_stats
        assert overall.matches_played == 3
        assert overall.wins == 1
        assert overall.kills == 4
        assert overall.deaths == 2
        assert overall.kd_ratio == 2.0
        assert overall.win_rate == pytest.approx(100 / 3)
        assert overall.avg_damage == pytest.approx(550 / 3)
        assert overall.avg_survival_time == pytest.approx(840.0)

    def test_recent_match_fields(self, service):
        """Test recent matches carry map, mode, placement and date."""
        first = service.get_player_stats("PlayerOne").recent_matches[0]
        assert first.map_name == "Miramar"
        assert first.placement == 1
        assert first.damage_dealt == 400.0
        assert first.date == "2024-01-15T14:00:00+00:00"

    def test_max_matches(self, service):
        """Test only the requested number of matches is read."""
        stats = service.get_player_stats("PlayerOne", max_matches=1)
        assert stats.overall_stats.matches_played == 1

    def test_unknown_player(self, service):
        """Test a missing player is reported as an AnalysisError."""
        with pytest.raises(AnalysisError, match="Failed to fetch player Ghost"):
            service.get_player_stats("Ghost")

    def test_blank_name(self, service, pubg_client):
        """Test blank names are rejected before any fetch."""
        with pytest.raises(AnalysisValidationError):
            service.get_player_stats(" ")
        pubg_client.get_player_by_name.assert_not_called()

    def test_history_tagged_with_name(self, service):
        """Test history entries carry the player name."""
        history = service.get_player_history("PlayerOne")
        assert {m.player_name for m in history} == {"PlayerOne"}
        assert history[0].to_dict()["playerName"] == "PlayerOne"


class TestComparePlayers:
    """Test cases for compare_players."""

    def test_requires_two_players(self, service, pubg_client):
        """Test fewer than two names is a validation error with no fetch."""
        with pytest.raises(AnalysisValidationError, match="At least 2 player names"):
            service.compare_players(["PlayerOne"])
        pubg_client.get_player_by_name.assert_not_called()

    def test_compares_in_order(self, service):
        """Test results come back in the requested order."""
        results = service.compare_players(["PlayerOne", "PlayerTwo", "PlayerThree"])
        assert [r.player_name for r in results] == ["PlayerOne", "PlayerTwo", "PlayerThree"]

    def test_failure_propagates(self, service):
        """Test one missing player fails the comparison."""
        with pytest.raises(AnalysisError):
            service.compare_players(["PlayerOne", "Ghost"])
