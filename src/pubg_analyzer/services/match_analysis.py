"""Match Analysis Service - end-to-end analysis of one PUBG match.

Pipeline (linear, each stage may abort the analysis):
1. Validate the request (match id format, player names)
2. Fetch match metadata
3. Extract the telemetry URL
4. Fetch and validate telemetry
5. Reduce telemetry per requested player
6. Build the match summary
7. Generate player and team insights

No retries happen here; the PUBG client owns retry policy. A failed stage
raises an AnalysisError subclass and no partial result is returned.
"""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..core.pubg_client import PUBGAPIError, PUBGClient
from ..core.telemetry import MalformedTelemetryError, decode_events, validate_telemetry_payload
from ..metrics import (
    ANALYSIS_STAGE_FAILURES,
    MATCH_ANALYSES,
    MATCH_ANALYSIS_DURATION,
    PLAYERS_ANALYZED,
)
from ..models import MatchAnalysis, PlayerAnalysis
from ..processors.insights import generate_player_insights, generate_team_insights
from ..processors.match_summary import build_match_summary, find_match_bounds
from ..processors.player_reducer import reduce_player

logger = logging.getLogger(__name__)

MATCH_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class AnalysisError(Exception):
    """Base exception for a failed analysis."""

    pass


class AnalysisValidationError(AnalysisError, ValueError):
    """Raised when a request is rejected before any fetch."""

    pass


class TelemetryUnavailableError(AnalysisError):
    """Raised when a match has no telemetry asset."""

    pass


class MalformedTelemetryDataError(AnalysisError):
    """Raised when telemetry violates the upstream contract (not a network failure)."""

    pass


def validate_player_names(player_names: Sequence[str], minimum: int = 1) -> List[str]:
    """Reject missing, blank or too few player names.

    Returns:
        The names, unchanged

    Raises:
        AnalysisValidationError: Naming the violated constraint
    """
    if player_names is None or isinstance(player_names, str):
        raise AnalysisValidationError("Player names must be a list of names")

    names = list(player_names)
    if not names:
        raise AnalysisValidationError("At least one player name is required")
    if len(names) < minimum:
        raise AnalysisValidationError(f"At least {minimum} player names are required")

    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise AnalysisValidationError("Player names cannot be empty or whitespace")

    return names


def validate_analysis_request(match_id: str, player_names: Sequence[str]) -> List[str]:
    """Validate a match analysis request.

    Raises:
        AnalysisValidationError: If the match id is not a GUID or names are invalid
    """
    if not isinstance(match_id, str) or not MATCH_ID_PATTERN.match(match_id):
        raise AnalysisValidationError(f"Invalid match ID format: {match_id!r}")
    return validate_player_names(player_names)


class MatchAnalysisService:
    """Analyze PUBG matches for a set of players.

    Example:
        >>> service = MatchAnalysisService(pubg_client)
        >>> analysis = service.analyze_match(match_id, ["PlayerOne", "PlayerTwo"])
        >>> analysis.insights.overall_match_quality
        3.5
    """

    def __init__(self, pubg_client: PUBGClient, logger: Optional[logging.Logger] = None):
        """Initialize the service.

        Args:
            pubg_client: PUBG API client (match and telemetry fetches)
            logger: Optional logger (uses the module logger if None)
        """
        self.pubg_client = pubg_client
        self.logger = logger or logging.getLogger(__name__)

    def analyze_match(self, match_id: str, player_names: Sequence[str]) -> MatchAnalysis:
        """Run the full analysis pipeline for one match.

        Args:
            match_id: Match GUID
            player_names: Players to analyze (at least one)

        Returns:
            MatchAnalysis

        Raises:
            AnalysisValidationError: Bad input, raised before any fetch
            TelemetryUnavailableError: The match has no telemetry asset
            MalformedTelemetryDataError: Telemetry payload is not an event array
            AnalysisError: Any fetch or processing failure (the upstream error
                is the __cause__)
        """
        try:
            names = validate_analysis_request(match_id, player_names)
        except AnalysisValidationError:
            MATCH_ANALYSES.labels(status="rejected").inc()
            raise

        start_time = time.time()
        self.logger.info(f"Analyzing match {match_id} for {len(names)} player(s)")

        try:
            with MATCH_ANALYSIS_DURATION.time():
                analysis = self._run_pipeline(match_id, names)
        except AnalysisError as e:
            MATCH_ANALYSES.labels(status="failed").inc()
            self.logger.error(f"Analysis of match {match_id} failed: {e}", exc_info=True)
            raise

        MATCH_ANALYSES.labels(status="success").inc()
        self.logger.info(
            f"Analysis of match {match_id} complete in {time.time() - start_time:.2f}s"
        )
        return analysis

    def analyze_matches(
        self, requests: Sequence[Tuple[str, Sequence[str]]], max_workers: int = 4
    ) -> List[Union[MatchAnalysis, AnalysisError]]:
        """Analyze several matches concurrently.

        Each analysis is independent: one failing does not affect the others.

        Args:
            requests: (match_id, player_names) pairs
            max_workers: Thread pool size

        Returns:
            One entry per request, in request order: the MatchAnalysis, or the
            AnalysisError that aborted it
        """
        def run(request):
            match_id, names = request
            try:
                return self.analyze_match(match_id, names)
            except AnalysisError as e:
                return e

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(run, requests))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run_pipeline(self, match_id: str, names: List[str]) -> MatchAnalysis:
        match_data = self._fetch_match(match_id)
        metadata, telemetry_url = self._extract_telemetry_url(match_id, match_data)
        raw_events = self._fetch_telemetry(match_id, telemetry_url)

        stage = "decode"
        try:
            events = decode_events(raw_events)
            start_ms, end_ms, _ = find_match_bounds(events)
            now_ms = time.time() * 1000

            stage = "reduce"
            players = []
            for name in names:
                reduction = reduce_player(
                    events, name, match_start_ms=start_ms, match_end_ms=end_ms, now_ms=now_ms
                )
                PLAYERS_ANALYZED.inc()
                players.append(
                    PlayerAnalysis(
                        name=name,
                        id=reduction.account_id or self._participant_id(match_data, name),
                        stats=reduction.stats,
                        insights=generate_player_insights(reduction.stats),
                        timeline=reduction.timeline,
                    )
                )

            stage = "summarize"
            summary = build_match_summary(metadata, events)

            stage = "insights"
            insights = generate_team_insights(
                players, events, summary.match_duration, now_ms=now_ms
            )
        except Exception as e:
            ANALYSIS_STAGE_FAILURES.labels(stage=stage).inc()
            raise AnalysisError(
                f"Analysis stage '{stage}' failed for match {match_id}: {e}"
            ) from e

        return MatchAnalysis(
            match_id=match_id,
            analysis_date=datetime.now(timezone.utc).isoformat(),
            players=players,
            match_summary=summary,
            insights=insights,
        )

    def _fetch_match(self, match_id: str) -> Dict[str, Any]:
        try:
            return self.pubg_client.get_match(match_id)
        except (PUBGAPIError, ValueError) as e:
            ANALYSIS_STAGE_FAILURES.labels(stage="fetch_match").inc()
            raise AnalysisError(f"Failed to fetch match {match_id}: {e}") from e

    def _extract_telemetry_url(
        self, match_id: str, match_data: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], str]:
        try:
            metadata = self.pubg_client.extract_match_metadata(match_data)
        except ValueError as e:
            ANALYSIS_STAGE_FAILURES.labels(stage="extract_telemetry_url").inc()
            raise AnalysisError(f"Invalid match data for {match_id}: {e}") from e

        telemetry_url = metadata.get("telemetry_url")
        if not telemetry_url:
            ANALYSIS_STAGE_FAILURES.labels(stage="extract_telemetry_url").inc()
            raise TelemetryUnavailableError(f"No telemetry available for match {match_id}")

        return metadata, telemetry_url

    def _fetch_telemetry(self, match_id: str, telemetry_url: str) -> List[Dict[str, Any]]:
        try:
            payload = self.pubg_client.get_telemetry(telemetry_url)
            return validate_telemetry_payload(payload)
        except MalformedTelemetryError as e:
            ANALYSIS_STAGE_FAILURES.labels(stage="validate_telemetry").inc()
            raise MalformedTelemetryDataError(
                f"Malformed telemetry for match {match_id}: {e}"
            ) from e
        except (PUBGAPIError, ValueError) as e:
            ANALYSIS_STAGE_FAILURES.labels(stage="fetch_telemetry").inc()
            raise AnalysisError(f"Failed to fetch telemetry for match {match_id}: {e}") from e

    def _participant_id(self, match_data: Dict[str, Any], name: str) -> str:
        stats = self.pubg_client.get_participant_stats(match_data, player_name=name)
        return (stats or {}).get("playerId") or ""
