"""PUBG API Client - HTTP wrapper for the PUBG API with rate limiting and retries.

This module provides the two upstream fetches the analyzer depends on
(match metadata and the telemetry payload) plus player lookups, including:
- API key pacing via APIKeyManager
- Retry logic with exponential backoff
- Response caching (5-minute TTL)
- Normalised, user-readable error messages
- Match metadata and telemetry URL extraction
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import HTTPError, RequestException, Timeout

from ..metrics import API_REQUESTS, TELEMETRY_FETCH_DURATION
from .api_key_manager import APIKeyManager
from .telemetry import MalformedTelemetryError, validate_telemetry_payload

logger = logging.getLogger(__name__)


class PUBGAPIError(Exception):
    """Base exception for PUBG API errors."""

    pass


class RateLimitError(PUBGAPIError):
    """Raised when rate limit is exceeded."""

    pass


class NotFoundError(PUBGAPIError):
    """Raised when resource is not found (404)."""

    pass


class AuthenticationError(PUBGAPIError):
    """Raised when the API key is rejected (401)."""

    pass


class ForbiddenError(PUBGAPIError):
    """Raised when the key may not access the resource (403)."""

    pass


class PUBGClient:
    """Client for the PUBG API.

    Example:
        >>> key_manager = APIKeyManager.from_key_string("abc123", rpm=10)
        >>> client = PUBGClient(key_manager, platform="steam")
        >>> match = client.get_match("8d5c4f0e-...")
        >>> metadata = client.extract_match_metadata(match)
        >>> events = client.get_telemetry(metadata["telemetry_url"])
    """

    BASE_URL = "https://api.pubg.com/shards"
    CONTENT_TYPE = "application/vnd.api+json"
    CACHE_TTL_SECONDS = 300  # 5 minutes
    MAX_RECENT_MATCHES = 10

    MAP_TRANSLATIONS = {
        "Baltic_Main": "Erangel (Remastered)",
        "Chimera_Main": "Paramo",
        "Desert_Main": "Miramar",
        "DihorOtok_Main": "Vikendi",
        "Erangel_Main": "Erangel",
        "Heaven_Main": "Haven",
        "Kiki_Main": "Deston",
        "Range_Main": "Camp Jackal",
        "Savage_Main": "Sanhok",
        "Summerland_Main": "Karakin",
        "Tiger_Main": "Taego",
        "Neon_Main": "Rondo",
    }

    STATUS_MESSAGES = {
        401: "Invalid or missing PUBG API key",
        403: "Access to this PUBG API resource is forbidden",
        404: "Resource not found",
    }

    def __init__(
        self,
        api_key_manager: APIKeyManager,
        platform: str = "steam",
        max_retries: int = 3,
        timeout: int = 30,
    ):
        """Initialize PUBG API client.

        Args:
            api_key_manager: APIKeyManager instance for key selection
            platform: Platform shard (default: "steam")
            max_retries: Maximum number of retry attempts (default: 3)
            timeout: Request timeout in seconds (default: 30)
        """
        self.key_manager = api_key_manager
        self.platform = platform
        self.max_retries = max_retries
        self.timeout = timeout

        # Cache storage: {cache_key: {"data": response, "time": monotonic seconds}}
        self._cache: Dict[str, Dict[str, Any]] = {}

        logger.info(f"Initialized PUBGClient for platform '{platform}'")

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def get_player_by_name(self, player_name: str) -> Dict[str, Any]:
        """Look up a single player.

        Args:
            player_name: In-game player name (case sensitive)

        Returns:
            The player resource ({"id", "attributes", "relationships"})

        Raises:
            ValueError: If player_name is empty
            NotFoundError: If no such player exists on this shard
        """
        if not player_name or not player_name.strip():
            raise ValueError("player_name cannot be empty")

        cache_key = f"player_{player_name}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for player '{player_name}'")
            return cached

        response = self._make_request(
            "/players", params={"filter[playerNames]": player_name}, label="players"
        )
        players = response.get("data") or []
        if not players:
            raise NotFoundError(f"Player not found: {player_name}")

        player = players[0]
        self._set_cached(cache_key, player)
        return player

    def get_recent_match_ids(self, player: Dict[str, Any], limit: Optional[int] = None) -> List[str]:
        """Match ids from a player resource, newest first."""
        limit = limit or self.MAX_RECENT_MATCHES
        matches = player.get("relationships", {}).get("matches", {}).get("data", [])
        return [m["id"] for m in matches if m.get("id")][:limit]

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def get_match(self, match_id: str) -> Dict[str, Any]:
        """Get detailed match data for a specific match.

        Caches responses for 5 minutes.

        Args:
            match_id: Match UUID

        Returns:
            Parsed JSON response from PUBG API

        Raises:
            ValueError: If match_id is empty
            NotFoundError: If match not found
            PUBGAPIError: If API request fails
        """
        if not match_id:
            raise ValueError("match_id cannot be empty")

        cache_key = f"match_{match_id}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for match {match_id}")
            return cached

        logger.debug(f"Fetching match data for {match_id}")
        result = self._make_request(f"/matches/{match_id}", label="matches")

        self._set_cached(cache_key, result)
        return result

    def get_matches(self, match_ids: List[str]) -> List[Dict[str, Any]]:
        """Fetch several matches, skipping ones the API no longer has."""
        matches = []
        for match_id in match_ids:
            try:
                matches.append(self.get_match(match_id))
            except NotFoundError:
                logger.warning(f"Match {match_id} not found, skipping")
        return matches

    def extract_match_metadata(self, match_data: Dict[str, Any]) -> Dict[str, Any]:
        """Extract key metadata from a match response.

        Args:
            match_data: Raw match data from get_match()

        Returns:
            Dict with match_id, map_name, map_name_raw, match_datetime,
            game_mode, game_type, duration (seconds), participant_count and
            telemetry_url (None when the match has no telemetry asset)

        Raises:
            ValueError: If match_data is invalid
        """
        if not match_data or "data" not in match_data or not match_data["data"]:
            raise ValueError("Invalid match data provided")

        data = match_data["data"]
        attributes = data.get("attributes", {})
        included = match_data.get("included") or []

        raw_map = attributes.get("mapName", "")
        metadata = {
            "match_id": data.get("id"),
            "map_name": self.transform_map_name(raw_map),
            "map_name_raw": raw_map,
            "match_datetime": self._parse_datetime(attributes.get("createdAt")),
            "game_mode": attributes.get("gameMode"),
            "game_type": attributes.get("matchType", "unknown"),
            "duration": attributes.get("duration"),
            "participant_count": sum(1 for item in included if item.get("type") == "participant"),
            "telemetry_url": None,
        }

        assets = data.get("relationships", {}).get("assets", {}).get("data", [])
        if not assets:
            logger.warning(f"No assets found for match {metadata['match_id']}")
            return metadata

        asset_id = assets[0].get("id")
        for item in included:
            if item.get("type") == "asset" and item.get("id") == asset_id:
                metadata["telemetry_url"] = item.get("attributes", {}).get("URL")
                break
        else:
            logger.warning(
                f"Telemetry asset not found in included section for match {metadata['match_id']}"
            )

        return metadata

    def get_participant_stats(
        self, match_data: Dict[str, Any], player_id: Optional[str] = None, player_name: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Find one participant's stats block in a match response.

        Matches on playerId first, then on name.
        """
        for item in match_data.get("included") or []:
            if item.get("type") != "participant":
                continue
            stats = item.get("attributes", {}).get("stats", {})
            if player_id and stats.get("playerId") == player_id:
                return stats
            if player_name and stats.get("name") == player_name:
                return stats
        return None

    def transform_map_name(self, internal_name: str) -> str:
        """Transform internal PUBG map name to display name.

        Args:
            internal_name: Internal map name (e.g., "Baltic_Main")

        Returns:
            Display name (e.g., "Erangel (Remastered)") or original if not found
        """
        if not internal_name:
            return internal_name

        return self.MAP_TRANSLATIONS.get(internal_name, internal_name)

    def _parse_datetime(self, datetime_str: Optional[str]) -> Optional[datetime]:
        if not datetime_str:
            return None

        try:
            # PUBG API format: "2024-01-01T12:00:00Z"
            return datetime.fromisoformat(datetime_str.replace("Z", "+00:00"))
        except ValueError as e:
            logger.warning(f"Failed to parse datetime '{datetime_str}': {e}")
            return None

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def get_telemetry(self, telemetry_url: str) -> List[Dict[str, Any]]:
        """Download a match's telemetry payload.

        Telemetry is served from a CDN: no API key is spent on it.

        Args:
            telemetry_url: URL from extract_match_metadata()

        Returns:
            List of raw telemetry events

        Raises:
            ValueError: If telemetry_url is empty
            MalformedTelemetryError: If the body is HTML, not JSON, or not an
                event array
            PUBGAPIError: If the download fails
        """
        if not telemetry_url:
            raise ValueError("telemetry_url cannot be empty")

        with TELEMETRY_FETCH_DURATION.time():
            response = self._send(
                telemetry_url, headers={"Accept-Encoding": "gzip"}, label="telemetry"
            )

            content_type = response.headers.get("Content-Type", "")
            if "html" in content_type.lower() or response.text.lstrip()[:1] == "<":
                API_REQUESTS.labels(endpoint="telemetry", status="malformed").inc()
                raise MalformedTelemetryError(
                    "Received HTML error response instead of telemetry data"
                )

            try:
                payload = response.json()
            except ValueError as e:
                API_REQUESTS.labels(endpoint="telemetry", status="malformed").inc()
                raise MalformedTelemetryError(f"Telemetry is not valid JSON: {e}") from e

        events = validate_telemetry_payload(payload)
        logger.info(f"Downloaded telemetry with {len(events)} events")
        return events

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_cached(self, cache_key: str) -> Optional[Any]:
        cached_item = self._cache.get(cache_key)
        if cached_item is None:
            return None

        if time.monotonic() - cached_item["time"] < self.CACHE_TTL_SECONDS:
            return cached_item["data"]

        # Expired - remove from cache
        self._cache.pop(cache_key, None)
        return None

    def _set_cached(self, cache_key: str, data: Any) -> None:
        now = time.monotonic()
        expired = [
            key
            for key, item in list(self._cache.items())
            if now - item["time"] >= self.CACHE_TTL_SECONDS
        ]
        for key in expired:
            self._cache.pop(key, None)

        self._cache[cache_key] = {"data": data, "time": now}

    def clear_cache(self) -> None:
        """Clear all cached responses."""
        self._cache.clear()
        logger.debug("Cache cleared")

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _make_request(
        self, endpoint: str, params: Optional[Dict[str, str]] = None, label: str = "api"
    ) -> Dict[str, Any]:
        """Make an authenticated request to the PUBG API.

        Args:
            endpoint: API endpoint (e.g., "/players")
            params: Query parameters
            label: Endpoint label for metrics

        Returns:
            Parsed JSON response

        Raises:
            PUBGAPIError: If the request fails after all retries
        """
        url = f"{self.BASE_URL}/{self.platform}{endpoint}"
        response = self._send(url, params=params, label=label, authenticated=True)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON response from {endpoint}: {e}")
            raise PUBGAPIError(f"Invalid JSON response: {e}") from e

        if isinstance(data, dict) and "errors" in data:
            error_detail = data["errors"][0].get("detail", "Unknown error")
            raise PUBGAPIError(f"API error: {error_detail}")

        return data

    def _send(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        label: str = "api",
        authenticated: bool = False,
    ) -> requests.Response:
        """GET with retries and exponential backoff (2^attempt seconds).

        Timeouts, connection errors, 5xx and 429 are retried; other 4xx
        statuses map to PUBGAPIError subclasses immediately.
        """
        retry_count = 0
        while True:
            request_headers = dict(headers or {})
            if authenticated:
                api_key = self.key_manager.acquire()
                request_headers["Authorization"] = f"Bearer {api_key.key}"
                request_headers["Accept"] = self.CONTENT_TYPE

            try:
                logger.debug(f"Making request to {url}")
                response = requests.get(
                    url, headers=request_headers, params=params, timeout=self.timeout
                )

                if response.status_code == 429:
                    logger.warning(f"Rate limit hit (429) on {label}")
                    if retry_count >= self.max_retries:
                        API_REQUESTS.labels(endpoint=label, status="rate_limited").inc()
                        raise RateLimitError(
                            f"Rate limit exceeded after {self.max_retries} retries"
                        )
                    retry_count = self._backoff(label, retry_count)
                    continue

                self._raise_for_client_error(response, label)
                response.raise_for_status()

                API_REQUESTS.labels(endpoint=label, status="success").inc()
                return response

            except (Timeout, HTTPError, RequestException) as e:
                logger.error(f"Request error on {label}: {e}")
                if retry_count >= self.max_retries:
                    API_REQUESTS.labels(endpoint=label, status="failed").inc()
                    raise PUBGAPIError(
                        f"Request failed after {self.max_retries} retries: {e}"
                    ) from e
                retry_count = self._backoff(label, retry_count)

    def _raise_for_client_error(self, response: requests.Response, label: str) -> None:
        status = response.status_code
        error_class = {
            401: AuthenticationError,
            403: ForbiddenError,
            404: NotFoundError,
        }.get(status)

        if error_class is not None:
            API_REQUESTS.labels(
                endpoint=label, status="not_found" if status == 404 else "failed"
            ).inc()
            raise error_class(f"{self.STATUS_MESSAGES[status]} ({label})")

        if 400 <= status < 500:
            API_REQUESTS.labels(endpoint=label, status="failed").inc()
            raise PUBGAPIError(f"PUBG API rejected the request with status {status} ({label})")

    def _backoff(self, label: str, retry_count: int) -> int:
        wait_time = 2 ** retry_count
        logger.info(
            f"Retrying {label} in {wait_time}s (attempt {retry_count + 1}/{self.max_retries})"
        )
        time.sleep(wait_time)
        return retry_count + 1
