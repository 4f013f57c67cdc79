"""API Key Manager - per-key request pacing shared across analysis threads.

PUBG issues keys with a requests-per-minute allowance. The manager keeps a
sliding 60-second window of request times per key, hands out keys in
round-robin order, and blocks the caller when every key is saturated.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass
class APIKey:
    """A single API key and its recent request times (monotonic seconds)."""

    key: str
    rpm_limit: int
    request_times: Deque[float] = field(default_factory=deque)

    def __post_init__(self):
        if not self.key:
            raise ValueError("API key cannot be empty")
        if self.rpm_limit <= 0:
            raise ValueError(f"RPM limit must be positive, got {self.rpm_limit}")

    def prune(self, now: float) -> None:
        while self.request_times and now - self.request_times[0] >= WINDOW_SECONDS:
            self.request_times.popleft()

    def seconds_until_free(self, now: float) -> float:
        self.prune(now)
        if len(self.request_times) < self.rpm_limit:
            return 0.0
        return WINDOW_SECONDS - (now - self.request_times[0])


class APIKeyManager:
    """Round-robin key pool with sliding-window rate limiting.

    The pool is the only object shared between concurrent analyses, so all
    state changes happen under a lock. Sleeping happens outside it.

    Example:
        >>> manager = APIKeyManager.from_key_string("abc123,def456", rpm=10)
        >>> key = manager.acquire()
        >>> # Make API request with key.key
    """

    def __init__(self, keys: List[Dict[str, Any]], clock=time.monotonic, sleep=time.sleep):
        """Initialize the key pool.

        Args:
            keys: List of dicts with 'key' and 'rpm' fields
            clock: Monotonic clock (seconds), injectable for tests
            sleep: Sleep function, injectable for tests

        Raises:
            ValueError: If keys list is empty or malformed
        """
        if not keys:
            raise ValueError("At least one API key is required")

        self._keys: List[APIKey] = []
        for key_config in keys:
            if "key" not in key_config or "rpm" not in key_config:
                raise ValueError("Invalid key config: each entry needs 'key' and 'rpm' fields")
            self._keys.append(APIKey(key=key_config["key"], rpm_limit=int(key_config["rpm"])))

        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_index = 0

        logger.info(f"Initialized APIKeyManager with {len(self._keys)} keys")

    @classmethod
    def from_key_string(cls, value: Optional[str], rpm: int = 10, **kwargs) -> "APIKeyManager":
        """Build a pool from a comma separated key list (PUBG_API_KEYS)."""
        keys = [part.strip() for part in (value or "").split(",") if part.strip()]
        return cls([{"key": key, "rpm": rpm} for key in keys], **kwargs)

    def __len__(self) -> int:
        return len(self._keys)

    def acquire(self) -> APIKey:
        """Reserve one request slot, waiting for the soonest free key if needed.

        Returns:
            The key to use; its request has already been recorded
        """
        while True:
            with self._lock:
                now = self._clock()
                key = self._try_reserve(now)
                if key is not None:
                    return key
                wait = min(k.seconds_until_free(now) for k in self._keys)

            logger.info(f"All keys at limit. Waiting {wait:.2f}s for next slot")
            self._sleep(max(wait, 0.0))

    def _try_reserve(self, now: float) -> Optional[APIKey]:
        for offset in range(len(self._keys)):
            index = (self._next_index + offset) % len(self._keys)
            key = self._keys[index]
            if key.seconds_until_free(now) <= 0:
                key.request_times.append(now)
                self._next_index = (index + 1) % len(self._keys)
                logger.debug(
                    f"Reserved key #{index}: {len(key.request_times)}/{key.rpm_limit} RPM"
                )
                return key
        return None

    def get_stats(self) -> Dict[str, Any]:
        """Current per-key utilisation."""
        with self._lock:
            now = self._clock()
            stats = {"total_keys": len(self._keys), "keys": []}
            for index, key in enumerate(self._keys):
                key.prune(now)
                used = len(key.request_times)
                stats["keys"].append(
                    {
                        "index": index,
                        "rpm_limit": key.rpm_limit,
                        "current_requests": used,
                        "available_requests": key.rpm_limit - used,
                    }
                )
            return stats
