"""Unit tests for the match analysis service."""

import json

import pytest
from unittest.mock import Mock, patch

from pubg_analyzer.core.pubg_client import NotFoundError, PUBGAPIError
from pubg_analyzer.core.telemetry import MalformedTelemetryError
from pubg_analyzer.models import MatchAnalysis, export_match_analysis, export_player_stats
from pubg_analyzer.processors.player_reducer import reduce_player
from pubg_analyzer.services.match_analysis import (
    AnalysisError,
    AnalysisValidationError,
    MalformedTelemetryDataError,
    MatchAnalysisService,
    TelemetryUnavailableError,
    validate_analysis_request,
)

MATCH_ID = "8d5c4f0e-1a2b-4c3d-8e4f-0a1b2c3d4e5f"
TELEMETRY_URL = "https://telemetry-cdn.pubg.com/match.json"

TELEMETRY = [
    {
        "_T": "LogMatchStart",
        "_D": "2024-01-15T14:00:00Z",
        "mapName": "Baltic_Main",
        "characters": [{"character": {"name": "PlayerOne"}}, {"character": {"name": "PlayerTwo"}}],
    },
    {
        "_T": "LogPlayerPosition",
        "_D": "2024-01-15T14:00:00Z",
        "character": {"name": "PlayerTwo", "accountId": "account.2", "location": {"x": 0, "y": 0, "z": 0}},
    },
    {
        "_T": "LogPlayerPosition",
        "_D": "2024-01-15T14:00:10Z",
        "character": {"name": "PlayerOne", "accountId": "account.1", "location": {"x": 0, "y": 0, "z": 0}},
    },
    {
        "_T": "LogPlayerPosition",
        "_D": "2024-01-15T14:01:10Z",
        "character": {"name": "PlayerOne", "accountId": "account.1", "location": {"x": 30000, "y": 40000, "z": 0}},
    },
    {
        "_T": "LogGameStatePeriodic",
        "_D": "2024-01-15T14:01:00Z",
        "gameState": {"elapsedTime": 60, "numAlivePlayers": 2, "safetyZoneRadius": 300000,
                      "safetyZonePosition": {"x": 100000, "y": 100000, "z": 0}},
    },
    {
        "_T": "LogPlayerKillV2",
        "_D": "2024-01-15T14:10:00Z",
        "killer": {"name": "PlayerOne", "accountId": "account.1"},
        "victim": {"name": "PlayerTwo", "accountId": "account.2"},
        "killerDamageInfo": {"damageCauserName": "WeapM416_C", "damageReason": "HeadShot", "distance": 5000},
        "victimGameResult": {"rank": 2},
    },
    {"_T": "LogMatchEnd", "_D": "2024-01-15T14:30:00Z", "characters": []},
]


@pytest.fixture
def pubg_client():
    """Create a mock PUBG client serving one match."""
    client = Mock()
    client.get_match.return_value = {"data": {"id": MATCH_ID}}
    client.extract_match_metadata.return_value = {
        "match_id": MATCH_ID,
        "map_name": "Erangel (Remastered)",
        "game_mode": "squad-fpp",
        "duration": 1800,
        "participant_count": 2,
        "telemetry_url": TELEMETRY_URL,
    }
    client.get_telemetry.return_value = list(TELEMETRY)
    client.get_participant_stats.return_value = None
    return client


@pytest.fixture
def service(pubg_client):
    return MatchAnalysisService(pubg_client)


class TestValidation:
    """Test cases for request validation."""

    def test_invalid_match_id_rejected_before_fetch(self, service, pubg_client):
        """Test a non-GUID match id is rejected with no fetch attempted."""
        with pytest.raises(AnalysisValidationError, match="Invalid match ID"):
            service.analyze_match("not-a-guid", ["PlayerOne"])

        pubg_client.get_match.assert_not_called()
        pubg_client.get_telemetry.assert_not_called()

    @pytest.mark.parametrize(
        "match_id",
        [
            "8d5c4f0e-1a2b-6c3d-8e4f-0a1b2c3d4e5f",  # version nibble 6
            "8d5c4f0e-1a2b-4c3d-7e4f-0a1b2c3d4e5f",  # variant nibble 7
            "8d5c4f0e1a2b4c3d8e4f0a1b2c3d4e5f",
            "",
            None,
        ],
    )
    def test_guid_pattern(self, match_id):
        """Test version and variant nibbles are enforced."""
        with pytest.raises(AnalysisValidationError):
            validate_analysis_request(match_id, ["PlayerOne"])

    def test_uppercase_guid_accepted(self):
        """Test the GUID check is case-insensitive."""
        assert validate_analysis_request(MATCH_ID.upper(), ["PlayerOne"]) == ["PlayerOne"]

    def test_empty_player_list(self, service, pubg_client):
        """Test an empty player list is rejected."""
        with pytest.raises(AnalysisValidationError, match="At least one player"):
            service.analyze_match(MATCH_ID, [])
        pubg_client.get_match.assert_not_called()

    def test_blank_player_name(self, service):
        """Test whitespace-only names are rejected."""
        with pytest.raises(AnalysisValidationError, match="empty or whitespace"):
            service.analyze_match(MATCH_ID, ["PlayerOne", "   "])

    def test_validation_error_is_value_error(self):
        """Test validation errors are also ValueErrors."""
        assert issubclass(AnalysisValidationError, ValueError)
        assert issubclass(AnalysisValidationError, AnalysisError)


class TestAnalyzeMatch:
    """Test cases for the full pipeline."""

    def test_successful_analysis(self, service, pubg_client):
        """Test stats, summary and insights for two players."""
        analysis = service.analyze_match(MATCH_ID, ["PlayerOne", "PlayerTwo"])

        assert isinstance(analysis, MatchAnalysis)
        assert analysis.match_id == MATCH_ID
        pubg_client.get_telemetry.assert_called_once_with(TELEMETRY_URL)

        one, two = analysis.players
        assert one.name == "PlayerOne"
        assert one.id == "account.1"
        assert one.stats.kills == 1
        assert one.stats.weapons["M416_C"].headshots == 1
        assert one.stats.movement.total_distance == pytest.approx(500.0)
        assert one.stats.placement == 1
        assert one.stats.survival_time == pytest.approx(1790.0)

        assert two.id == "account.2"
        assert two.stats.deaths == 1
        assert two.stats.placement == 2
        assert two.stats.survival_time == pytest.approx(600.0)

        summary = analysis.match_summary
        assert summary.total_players == 2
        assert summary.match_duration == 1800.0
        assert summary.map_name == "Erangel (Remastered)"
        assert summary.timeline[0].time == 60.0

        assert analysis.insights.key_moments[0].description == "PlayerOne eliminated PlayerTwo"

    def test_participant_id_fallback(self, service, pubg_client):
        """Test players absent from telemetry take their id from match participants."""
        pubg_client.get_participant_stats.return_value = {"playerId": "account.9"}

        analysis = service.analyze_match(MATCH_ID, ["Spectator"])

        assert analysis.players[0].id == "account.9"
        assert analysis.players[0].timeline == []

    def test_html_telemetry_is_malformed(self, service, pubg_client):
        """Test an HTML telemetry body is a malformed-telemetry error, not a fetch error."""
        pubg_client.get_telemetry.return_value = "<!doctype html><html><body>Oops</body></html>"

        with pytest.raises(MalformedTelemetryDataError, match="HTML") as exc_info:
            service.analyze_match(MATCH_ID, ["PlayerOne"])

        assert isinstance(exc_info.value.__cause__, MalformedTelemetryError)

    def test_client_malformed_error(self, service, pubg_client):
        """Test malformed telemetry raised by the client maps to the same error."""
        pubg_client.get_telemetry.side_effect = MalformedTelemetryError("Expected array")
        with pytest.raises(MalformedTelemetryDataError):
            service.analyze_match(MATCH_ID, ["PlayerOne"])

    def test_missing_discriminator(self, service, pubg_client):
        """Test events without _T are rejected before reduction."""
        pubg_client.get_telemetry.return_value = [{"_T": "LogMatchStart"}, {"foo": 1}]
        with pytest.raises(MalformedTelemetryDataError, match="index 1"):
            service.analyze_match(MATCH_ID, ["PlayerOne"])

    def test_match_fetch_failure(self, service, pubg_client):
        """Test a failed match fetch is wrapped with the cause preserved."""
        upstream = NotFoundError("Resource not found (matches)")
        pubg_client.get_match.side_effect = upstream

        with pytest.raises(AnalysisError, match="Failed to fetch match") as exc_info:
            service.analyze_match(MATCH_ID, ["PlayerOne"])

        assert not isinstance(exc_info.value, MalformedTelemetryDataError)
        assert exc_info.value.__cause__ is upstream
        pubg_client.get_telemetry.assert_not_called()

    def test_telemetry_fetch_failure(self, service, pubg_client):
        """Test a network failure on telemetry is a plain AnalysisError."""
        pubg_client.get_telemetry.side_effect = PUBGAPIError("Request failed after 3 retries")

        with pytest.raises(AnalysisError, match="Failed to fetch telemetry") as exc_info:
            service.analyze_match(MATCH_ID, ["PlayerOne"])

        assert type(exc_info.value) is AnalysisError

    def test_no_telemetry_url(self, service, pubg_client):
        """Test a match without telemetry raises TelemetryUnavailableError."""
        pubg_client.extract_match_metadata.return_value = {"match_id": MATCH_ID, "telemetry_url": None}

        with pytest.raises(TelemetryUnavailableError):
            service.analyze_match(MATCH_ID, ["PlayerOne"])

        pubg_client.get_telemetry.assert_not_called()

    def test_invalid_match_data(self, service, pubg_client):
        """Test metadata extraction failures abort the analysis."""
        pubg_client.extract_match_metadata.side_effect = ValueError("Invalid match data provided")
        with pytest.raises(AnalysisError, match="Invalid match data"):
            service.analyze_match(MATCH_ID, ["PlayerOne"])

    @patch("pubg_analyzer.services.match_analysis.reduce_player")
    def test_reducer_failure_is_wrapped(self, mock_reduce, service):
        """Test an unexpected processing error becomes an AnalysisError naming the stage."""
        upstream = RuntimeError("boom")
        mock_reduce.side_effect = upstream

        with pytest.raises(AnalysisError, match="stage 'reduce'") as exc_info:
            service.analyze_match(MATCH_ID, ["PlayerOne"])

        assert exc_info.value.__cause__ is upstream

    @patch("pubg_analyzer.services.match_analysis.generate_team_insights")
    def test_insights_failure_is_wrapped(self, mock_insights, service):
        """Test a failing insights stage is reported with its stage label."""
        mock_insights.side_effect = ZeroDivisionError("division by zero")
        with pytest.raises(AnalysisError, match="stage 'insights'"):
            service.analyze_match(MATCH_ID, ["PlayerOne"])

    def test_non_finite_telemetry_numbers(self, service, pubg_client):
        """Test NaN and infinity in telemetry still produce exportable JSON."""
        pubg_client.get_telemetry.return_value = list(TELEMETRY) + [
            {"_T": "LogWeaponFireCount", "_D": "2024-01-15T14:05:00Z",
             "character": {"name": "PlayerOne"}, "weaponId": "WeapM416_C", "fireCount": "inf"},
            {"_T": "LogPlayerTakeDamage", "_D": "2024-01-15T14:06:00Z",
             "attacker": {"name": "PlayerOne"}, "victim": {"name": "PlayerTwo"}, "damage": float("nan")},
        ]

        analysis = service.analyze_match(MATCH_ID, ["PlayerOne"])

        assert analysis.players[0].stats.combat.shots_fired == 0
        assert json.loads(export_match_analysis(analysis)) == analysis.to_dict()


class TestAnalyzeMatches:
    """Test cases for concurrent analyses."""

    def test_independent_results(self, service):
        """Test each request yields its own result or error, in order."""
        results = service.analyze_matches(
            [(MATCH_ID, ["PlayerOne"]), ("bad-id", ["PlayerOne"]), (MATCH_ID, ["PlayerTwo"])],
            max_workers=3,
        )

        assert isinstance(results[0], MatchAnalysis)
        assert isinstance(results[1], AnalysisValidationError)
        assert isinstance(results[2], MatchAnalysis)
        assert results[0].players[0].stats.kills == 1
        assert results[2].players[0].stats.deaths == 1

    @patch("pubg_analyzer.services.match_analysis.reduce_player")
    def test_unexpected_failure_stays_in_its_slot(self, mock_reduce, service):
        """Test one request's processing error does not lose the other results."""
        def reduce_or_fail(events, name, **kwargs):
            if name == "PlayerTwo":
                raise OverflowError("cannot convert float infinity to integer")
            return reduce_player(events, name, **kwargs)

        mock_reduce.side_effect = reduce_or_fail

        results = service.analyze_matches(
            [(MATCH_ID, ["PlayerOne"]), (MATCH_ID, ["PlayerTwo"]), ("bad", ["PlayerOne"])],
            max_workers=2,
        )

        assert isinstance(results[0], MatchAnalysis)
        assert results[0].players[0].stats.kills == 1
        assert isinstance(results[1], AnalysisError)
        assert isinstance(results[1].__cause__, OverflowError)
        assert isinstance(results[2], AnalysisValidationError)


class TestExport:
    """Test cases for JSON export."""

    def test_round_trip(self, service):
        """Test exported JSON parses back to the record's dict form."""
        analysis = service.analyze_match(MATCH_ID, ["PlayerOne", "PlayerTwo"])

        exported = export_match_analysis(analysis)

        assert json.loads(exported) == analysis.to_dict()
        assert exported.startswith('{\n  "matchId"')

    def test_camel_case_keys(self, service):
        """Test the JSON shape uses camelCase keys and keeps weapon ids verbatim."""
        data = service.analyze_match(MATCH_ID, ["PlayerOne"]).to_dict()

        player = data["players"][0]
        assert set(data) == {"matchId", "analysisDate", "players", "matchSummary", "insights"}
        assert player["stats"]["combat"]["longestKill"] == 50.0
        assert "M416_C" in player["stats"]["weapons"]
        assert data["matchSummary"]["map"] == "Erangel (Remastered)"
        assert data["insights"]["teamPerformance"]["overallRating"] >= 1

    def test_player_stats_export(self, service):
        """Test player stats export is indented JSON."""
        stats = service.analyze_match(MATCH_ID, ["PlayerOne"]).players[0].stats
        exported = export_player_stats(stats)
        assert json.loads(exported)["kills"] == 1
        assert "\n  " in exported
