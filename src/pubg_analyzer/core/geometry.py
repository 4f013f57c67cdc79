"""
Geometry and unit helpers for telemetry data.

PUBG telemetry reports locations and distances in engine units (centimeters).
Everything exposed to callers is converted to meters at the output boundary.
"""

import math
import re
from datetime import datetime, timezone
from typing import Optional

CENTIMETERS_PER_METER = 100.0

# PUBG emits 7 fractional digits ("2024-01-15T14:30:45.1234567Z"), more than
# datetime.fromisoformat accepts on older interpreters.
_FRACTION_RE = re.compile(r"\.(\d+)")


def distance_meters(a, b) -> float:
    """
    Euclidean distance between two locations, in meters.

    Args:
        a: Location with x, y, z in centimeters
        b: Location with x, y, z in centimeters

    Returns:
        Distance in meters (NaN coordinates propagate)
    """
    distance_cm = math.sqrt((b.x - a.x) ** 2 + (b.y - a.y) ** 2 + (b.z - a.z) ** 2)
    return distance_cm / CENTIMETERS_PER_METER


def to_meters(raw_units: Optional[float]) -> float:
    """Convert engine units (centimeters) to meters, treating None as 0."""
    return (raw_units or 0) / CENTIMETERS_PER_METER


def parse_timestamp(iso: Optional[str]) -> Optional[float]:
    """
    Parse an ISO 8601 telemetry timestamp.

    Args:
        iso: ISO 8601 string (e.g. "2024-01-15T14:30:45.123Z")

    Returns:
        Epoch milliseconds, or None if absent or unparseable
    """
    if not iso or not isinstance(iso, str):
        return None

    try:
        value = iso.strip().replace("Z", "+00:00").replace("z", "+00:00")
        value = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.timestamp() * 1000
