"""Unit tests for the insight generator."""

import pytest

from pubg_analyzer.core.telemetry import decode_events
from pubg_analyzer.models import (
    CombatStats,
    HealingStats,
    MovementStats,
    PlayerAnalysis,
    PlayerMatchStats,
)
from pubg_analyzer.processors import insights
from pubg_analyzer.processors.insights import (
    generate_player_insights,
    generate_team_insights,
    performance_rating,
)


def make_stats(kills=0, deaths=0, assists=0, damage=0.0, survival=0.0, headshots=0.0,
               distance=0.0, blue_zone=0.0, boosts=0):
    return PlayerMatchStats(
        kills=kills,
        deaths=deaths,
        assists=assists,
        damage_dealt=damage,
        survival_time=survival,
        movement=MovementStats(total_distance=distance, time_in_blue_zone=blue_zone),
        healing=HealingStats(boost_used=boosts),
        combat=CombatStats(headshot_percentage=headshots),
    )


def make_player(name, stats):
    return PlayerAnalysis(name=name, id=f"account.{name}", stats=stats,
                          insights=generate_player_insights(stats))


class TestPerformanceRating:
    """Test cases for the K/D rating breakpoints."""

    @pytest.mark.parametrize(
        "kills,deaths,expected",
        [
            (3, 1, 5),
            (2, 1, 4),
            (6, 5, 3),
            (4, 5, 2),
            (1, 2, 1),
            (0, 0, 1),
            (2, 0, 4),
        ],
    )
    def test_breakpoints(self, kills, deaths, expected):
        """Test K/D maps to ratings, with K/D = kills when deaths is 0."""
        assert performance_rating(make_stats(kills=kills, deaths=deaths)) == expected


class TestPlayerInsights:
    """Test cases for generate_player_insights."""

    def test_strong_player(self):
        """Test a strong game earns every strength and no recommendations."""
        result = generate_player_insights(
            make_stats(kills=6, deaths=1, damage=1500, headshots=0.5, distance=7000, boosts=4)
        )

        assert result.strengths == [
            insights.STRENGTH_HIGH_KILLS,
            insights.STRENGTH_HIGH_DAMAGE,
            insights.STRENGTH_HEADSHOTS,
            insights.STRENGTH_ROTATION,
        ]
        assert result.weaknesses == []
        assert result.recommendations == []
        assert result.performance_rating == 5

    def test_weak_player(self):
        """Test a weak game collects weaknesses and recommendations."""
        result = generate_player_insights(
            make_stats(kills=0, deaths=1, blue_zone=120, distance=1000, boosts=0)
        )

        assert result.weaknesses == [
            insights.WEAKNESS_NEGATIVE_KD,
            insights.WEAKNESS_BLUE_ZONE,
            insights.WEAKNESS_BOOSTS,
        ]
        assert result.recommendations == [
            insights.RECOMMEND_SURVIVAL,
            insights.RECOMMEND_AIM,
            insights.RECOMMEND_ROTATION,
            insights.RECOMMEND_BOOSTS,
        ]
        assert result.improvement_areas == result.recommendations
        assert result.performance_rating == 1

    def test_thresholds_are_strict(self):
        """Test values exactly at strict thresholds do not trigger tags."""
        result = generate_player_insights(
            make_stats(kills=4, deaths=4, damage=1200, headshots=0.35, distance=6000, blue_zone=90, boosts=2)
        )
        assert result.strengths == []
        assert result.weaknesses == []


class TestTeamInsights:
    """Test cases for generate_team_insights."""

    @pytest.fixture
    def kill_events(self):
        raw = [
            {"_T": "LogPlayerKill", "_D": "2024-01-15T14:00:00Z", "killer": {"name": f"K{i}"}, "victim": {"name": f"V{i}"}}
            for i in range(12)
        ]
        raw.insert(0, {"_T": "LogPlayerKillV2", "victim": {"name": "Lost"}})
        return decode_events(raw)

    def test_empty_team(self, kill_events):
        """Test no players yields zero scores."""
        result = generate_team_insights([], kill_events, 1800)
        assert result.overall_match_quality == 0.0
        assert result.team_performance.coordination == 0.0
        assert result.strategic_insights == []

    def test_key_moments(self, kill_events):
        """Test only the first ten kills are kept, in stream order."""
        moments = generate_team_insights([], kill_events, 1800, now_ms=1_705_330_000_000.0).key_moments

        assert len(moments) == 10
        assert moments[0].description == "Unknown eliminated Lost"
        assert moments[0].players == ["Unknown", "Lost"]
        assert moments[0].timestamp == 1_705_330_000_000.0
        assert moments[1].description == "K0 eliminated V0"
        assert moments[1].impact == 5
        assert moments[1].type == "kill"

    def test_untimed_moment_uses_wall_clock(self, kill_events):
        """Test an untimed kill is stamped with the current time by default."""
        moments = insights.extract_key_moments(kill_events, limit=1)
        assert moments[0].timestamp > 1_700_000_000_000

    def test_team_scores(self):
        """Test team scores are clamped averages over the analyzed players."""
        players = [
            make_player("A", make_stats(kills=3, deaths=1, assists=4, damage=900, survival=1500, blue_zone=0)),
            make_player("B", make_stats(kills=1, deaths=1, assists=8, damage=300, survival=900, blue_zone=0)),
        ]

        result = generate_team_insights(players, [], 1800)
        team = result.team_performance

        assert result.overall_match_quality == pytest.approx((5 + 2) / 2)
        assert team.coordination == 5.0
        assert team.communication == pytest.approx(1200 / 1800 * 5)
        assert team.strategy == pytest.approx(2.0)
        assert team.overall_rating == result.overall_match_quality
        assert result.strategic_insights == []

    def test_strategic_insights(self):
        """Test early elimination, low damage and blue-zone hints."""
        players = [make_player("A", make_stats(damage=100, survival=300, blue_zone=200))]

        result = generate_team_insights(players, [], 0)

        assert result.team_performance.communication == 0.0
        assert result.strategic_insights == [
            insights.INSIGHT_EARLY_ELIMINATION,
            insights.INSIGHT_LOW_DAMAGE,
            insights.INSIGHT_BLUE_ZONE,
        ]
