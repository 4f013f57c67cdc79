"""
Telemetry decoding.

Raw PUBG telemetry is a JSON array of loosely typed event objects keyed by a
`_T` discriminator. This module validates the payload once, then decodes each
raw event into one of a closed set of frozen dataclasses so the processors
operate on typed data only. Unknown event kinds decode to IgnoredEvent.

Decoding is deliberately forgiving: missing sub-objects become None, missing
or non-numeric numbers become 0, and no single malformed event aborts a match.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple

from ..metrics import TELEMETRY_EVENTS_DECODED

logger = logging.getLogger(__name__)


class MalformedTelemetryError(ValueError):
    """Raised when a telemetry payload violates the upstream contract."""
    pass


# ============================================================================
# VALUE TYPES
# ============================================================================


@dataclass(frozen=True)
class Location:
    """3D point in engine units (centimeters)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_meters(self) -> Dict[str, float]:
        return {"x": self.x / 100, "y": self.y / 100, "z": self.z / 100}


@dataclass(frozen=True)
class Character:
    """A player reference embedded in an event."""

    name: Optional[str] = None
    account_id: Optional[str] = None
    team_id: Optional[int] = None
    location: Optional[Location] = None
    is_in_blue_zone: bool = False


@dataclass(frozen=True)
class GameState:
    """Populated `gameState` payload of a LogGameStatePeriodic event."""

    elapsed_time: Optional[float] = None
    num_alive_players: Optional[int] = None
    safety_zone_position: Optional[Location] = None
    safety_zone_radius: float = 0.0


# ============================================================================
# EVENT VARIANTS
# ============================================================================


@dataclass(frozen=True)
class TelemetryEvent:
    """Base class for all decoded events."""

    KIND: ClassVar[str] = ""

    timestamp: Optional[str] = None


@dataclass(frozen=True)
class PlayerPositionEvent(TelemetryEvent):
    KIND: ClassVar[str] = "PlayerPosition"

    character: Optional[Character] = None
    elapsed_time: float = 0.0
    num_alive_players: Optional[int] = None


@dataclass(frozen=True)
class PlayerKillEvent(TelemetryEvent):
    """LogPlayerKill and LogPlayerKillV2 (multiple assistants)."""

    KIND: ClassVar[str] = "PlayerKill"

    killer: Optional[Character] = None
    victim: Optional[Character] = None
    assistants: Tuple[Character, ...] = ()
    assistant_account_ids: Tuple[str, ...] = ()
    damage_causer_name: Optional[str] = None
    damage_reason: Optional[str] = None
    distance: float = 0.0
    victim_rank: Optional[int] = None
    victim_win_place: Optional[int] = None


@dataclass(frozen=True)
class PlayerTakeDamageEvent(TelemetryEvent):
    KIND: ClassVar[str] = "PlayerTakeDamage"

    attacker: Optional[Character] = None
    victim: Optional[Character] = None
    damage: float = 0.0
    damage_causer_name: Optional[str] = None
    damage_reason: Optional[str] = None
    damage_type_category: Optional[str] = None


@dataclass(frozen=True)
class WeaponFireCountEvent(TelemetryEvent):
    KIND: ClassVar[str] = "WeaponFireCount"

    character: Optional[Character] = None
    weapon_id: Optional[str] = None
    fire_count: float = 0.0


@dataclass(frozen=True)
class HealEvent(TelemetryEvent):
    KIND: ClassVar[str] = "Heal"

    character: Optional[Character] = None
    item_id: Optional[str] = None
    heal_amount: float = 0.0


@dataclass(frozen=True)
class ItemUseEvent(TelemetryEvent):
    KIND: ClassVar[str] = "ItemUse"

    character: Optional[Character] = None
    item_id: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None


@dataclass(frozen=True)
class VehicleRideEvent(TelemetryEvent):
    KIND: ClassVar[str] = "VehicleRide"

    character: Optional[Character] = None
    vehicle_unique_id: Optional[str] = None
    vehicle_type_id: Optional[str] = None
    vehicle_type: Optional[str] = None
    seat_index: Optional[int] = None


@dataclass(frozen=True)
class VehicleLeaveEvent(TelemetryEvent):
    KIND: ClassVar[str] = "VehicleLeave"

    character: Optional[Character] = None
    vehicle_unique_id: Optional[str] = None
    vehicle_type_id: Optional[str] = None
    vehicle_type: Optional[str] = None
    seat_index: Optional[int] = None
    ride_distance: float = 0.0


@dataclass(frozen=True)
class SwimStartEvent(TelemetryEvent):
    KIND: ClassVar[str] = "SwimStart"

    character: Optional[Character] = None


@dataclass(frozen=True)
class SwimEndEvent(TelemetryEvent):
    KIND: ClassVar[str] = "SwimEnd"

    character: Optional[Character] = None
    swim_distance: float = 0.0


@dataclass(frozen=True)
class PlayerReviveEvent(TelemetryEvent):
    KIND: ClassVar[str] = "PlayerRevive"

    reviver: Optional[Character] = None
    victim: Optional[Character] = None


@dataclass(frozen=True)
class GameStatePeriodicEvent(TelemetryEvent):
    KIND: ClassVar[str] = "GameStatePeriodic"

    game_state: Optional[GameState] = None


@dataclass(frozen=True)
class MatchStartEvent(TelemetryEvent):
    KIND: ClassVar[str] = "MatchStart"

    character_count: Optional[int] = None
    map_name: Optional[str] = None


@dataclass(frozen=True)
class MatchEndEvent(TelemetryEvent):
    KIND: ClassVar[str] = "MatchEnd"

    character_count: Optional[int] = None


@dataclass(frozen=True)
class IgnoredEvent(TelemetryEvent):
    """Any event kind the analyzer does not consume."""

    KIND: ClassVar[str] = "Ignored"

    raw_kind: Optional[str] = None


# ============================================================================
# HELPERS
# ============================================================================


def get_event_type(event: Dict[str, Any]) -> Optional[str]:
    """
    Get event type from multiple possible keys.

    Args:
        event: Event dictionary

    Returns:
        Event type string or None
    """
    return event.get("_T") or event.get("type") or event.get("event_type")


def get_nested(obj: Dict[str, Any], path: str, default=None) -> Any:
    """
    Safely get nested dictionary value.

    Args:
        obj: Dictionary to extract from
        path: Dot-separated path (e.g., "character.location.x")
        default: Default value if not found

    Returns:
        Value or default
    """
    current = obj

    for key in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(key)
        if current is None:
            return default

    return current


def normalize_event_kind(kind: Optional[str]) -> Optional[str]:
    """Strip the 'Log' prefix so 'LogPlayerKill' and 'PlayerKill' compare equal."""
    if not kind or not isinstance(kind, str):
        return None
    if kind.startswith("Log") and len(kind) > 3:
        return kind[3:]
    return kind


def _number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return default
    else:
        return default
    # NaN and infinity are treated as missing
    return number if math.isfinite(number) else default


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    number = _number(value, default=math.nan)
    if math.isnan(number):
        return None
    return int(number)


def _string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _location(raw: Any) -> Optional[Location]:
    if not isinstance(raw, dict):
        return None
    return Location(x=_number(raw.get("x")), y=_number(raw.get("y")), z=_number(raw.get("z")))


def _character(raw: Any) -> Optional[Character]:
    if not isinstance(raw, dict):
        return None
    # LogMatchStart wraps characters as {"character": {...}} in newer patches
    if "character" in raw and isinstance(raw["character"], dict) and "name" not in raw:
        raw = raw["character"]
    return Character(
        name=_string(raw.get("name")),
        account_id=_string(raw.get("accountId")),
        team_id=_optional_int(raw.get("teamId")),
        location=_location(raw.get("location")),
        is_in_blue_zone=bool(raw.get("isInBlueZone")),
    )


def _count(raw: Any) -> Optional[int]:
    return len(raw) if isinstance(raw, list) else None


def _timestamp(raw: Dict[str, Any]) -> Optional[str]:
    value = raw.get("_D") or raw.get("timestamp")
    return value if isinstance(value, str) else None


# ============================================================================
# DECODERS
# ============================================================================


def _decode_position(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return PlayerPositionEvent(
        timestamp=timestamp,
        character=_character(raw.get("character")),
        elapsed_time=_number(raw.get("elapsedTime")),
        num_alive_players=_optional_int(raw.get("numAlivePlayers")),
    )


def _decode_kill(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    # V2 moves the damage details into killerDamageInfo / finishDamageInfo
    damage_info = raw.get("killerDamageInfo")
    if not isinstance(damage_info, dict) or not damage_info:
        damage_info = raw.get("finishDamageInfo")
    if not isinstance(damage_info, dict):
        damage_info = {}

    killer = _character(raw.get("killer")) or _character(raw.get("finisher"))

    assistants: List[Character] = []
    single = _character(raw.get("assistant"))
    if single is not None:
        assistants.append(single)
    entries = raw.get("assistants")
    for entry in entries if isinstance(entries, list) else []:
        assistant = _character(entry)
        if assistant is not None:
            assistants.append(assistant)

    raw_ids = raw.get("assists_AccountId")
    account_ids = tuple(
        str(account_id) for account_id in (raw_ids if isinstance(raw_ids, list) else []) if account_id
    )

    distance = raw.get("distance")
    if distance is None:
        distance = damage_info.get("distance")

    return PlayerKillEvent(
        timestamp=timestamp,
        killer=killer,
        victim=_character(raw.get("victim")),
        assistants=tuple(assistants),
        assistant_account_ids=account_ids,
        damage_causer_name=_string(raw.get("damageCauserName") or damage_info.get("damageCauserName")),
        damage_reason=_string(raw.get("damageReason") or damage_info.get("damageReason")),
        distance=_number(distance),
        victim_rank=_optional_int(
            get_nested(raw, "victimGameResult.rank")
            or get_nested(raw, "victimGameResult.stats.rank")
        ),
        victim_win_place=_optional_int(get_nested(raw, "victimGameResult.stats.winPlace")),
    )


def _decode_take_damage(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return PlayerTakeDamageEvent(
        timestamp=timestamp,
        attacker=_character(raw.get("attacker")),
        victim=_character(raw.get("victim")),
        damage=_number(raw.get("damage")),
        damage_causer_name=_string(raw.get("damageCauserName")),
        damage_reason=_string(raw.get("damageReason")),
        damage_type_category=_string(raw.get("damageTypeCategory")),
    )


def _decode_fire_count(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    weapon_id = raw.get("weaponId") or get_nested(raw, "character.primaryWeaponFirst")
    return WeaponFireCountEvent(
        timestamp=timestamp,
        character=_character(raw.get("character")),
        weapon_id=_string(weapon_id),
        fire_count=_number(raw.get("fireCount")),
    )


def _decode_heal(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return HealEvent(
        timestamp=timestamp,
        character=_character(raw.get("character")),
        item_id=_string(get_nested(raw, "item.itemId")),
        heal_amount=_number(raw.get("healAmount")),
    )


def _decode_item_use(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return ItemUseEvent(
        timestamp=timestamp,
        character=_character(raw.get("character")),
        item_id=_string(get_nested(raw, "item.itemId")),
        category=_string(get_nested(raw, "item.category")),
        sub_category=_string(get_nested(raw, "item.subCategory")),
    )


def _vehicle_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "character": _character(raw.get("character")),
        "vehicle_unique_id": _string(get_nested(raw, "vehicle.vehicleUniqueId")),
        "vehicle_type_id": _string(get_nested(raw, "vehicle.vehicleId")),
        "vehicle_type": _string(get_nested(raw, "vehicle.vehicleType")),
        "seat_index": _optional_int(raw.get("seatIndex")),
    }


def _decode_vehicle_ride(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return VehicleRideEvent(timestamp=timestamp, **_vehicle_fields(raw))


def _decode_vehicle_leave(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return VehicleLeaveEvent(
        timestamp=timestamp, ride_distance=_number(raw.get("rideDistance")), **_vehicle_fields(raw)
    )


def _decode_swim_start(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return SwimStartEvent(timestamp=timestamp, character=_character(raw.get("character")))


def _decode_swim_end(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return SwimEndEvent(
        timestamp=timestamp,
        character=_character(raw.get("character")),
        swim_distance=_number(raw.get("swimDistance")),
    )


def _decode_revive(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return PlayerReviveEvent(
        timestamp=timestamp,
        reviver=_character(raw.get("reviver")),
        victim=_character(raw.get("victim")),
    )


def _decode_game_state(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    state = raw.get("gameState")
    game_state = None
    if isinstance(state, dict) and state:
        elapsed = state.get("elapsedTime")
        game_state = GameState(
            elapsed_time=None if elapsed is None else _number(elapsed),
            num_alive_players=_optional_int(state.get("numAlivePlayers")),
            safety_zone_position=_location(state.get("safetyZonePosition")),
            safety_zone_radius=_number(state.get("safetyZoneRadius")),
        )
    return GameStatePeriodicEvent(timestamp=timestamp, game_state=game_state)


def _decode_match_start(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return MatchStartEvent(
        timestamp=timestamp,
        character_count=_count(raw.get("characters")),
        map_name=_string(raw.get("mapName")),
    )


def _decode_match_end(raw: Dict[str, Any], timestamp: Optional[str]) -> TelemetryEvent:
    return MatchEndEvent(timestamp=timestamp, character_count=_count(raw.get("characters")))


_DECODERS = {
    "PlayerPosition": _decode_position,
    "PlayerKill": _decode_kill,
    "PlayerKillV2": _decode_kill,
    "PlayerTakeDamage": _decode_take_damage,
    "WeaponFireCount": _decode_fire_count,
    "Heal": _decode_heal,
    "ItemUse": _decode_item_use,
    "VehicleRide": _decode_vehicle_ride,
    "VehicleLeave": _decode_vehicle_leave,
    "SwimStart": _decode_swim_start,
    "SwimEnd": _decode_swim_end,
    "PlayerRevive": _decode_revive,
    "GameStatePeriodic": _decode_game_state,
    "MatchStart": _decode_match_start,
    "MatchEnd": _decode_match_end,
}


def decode_event(raw: Any) -> TelemetryEvent:
    """
    Decode one raw telemetry event into its typed variant.

    Args:
        raw: Raw event dictionary

    Returns:
        Typed event; IgnoredEvent for unknown kinds or non-dict input
    """
    if not isinstance(raw, dict):
        return IgnoredEvent()

    raw_kind = get_event_type(raw)
    timestamp = _timestamp(raw)
    decoder = _DECODERS.get(normalize_event_kind(raw_kind))

    if decoder is None:
        return IgnoredEvent(timestamp=timestamp, raw_kind=raw_kind)

    return decoder(raw, timestamp)


def decode_events(raw_events: Iterable[Any]) -> List[TelemetryEvent]:
    """
    Decode a validated list of raw events.

    Args:
        raw_events: Raw event dictionaries (see validate_telemetry_payload)

    Returns:
        Typed events in stream order
    """
    events = [decode_event(raw) for raw in raw_events]

    kinds = Counter(type(event).KIND for event in events)
    logger.debug(f"Decoded {len(events)} telemetry events: {dict(kinds)}")

    for kind, count in kinds.items():
        TELEMETRY_EVENTS_DECODED.labels(event_type=kind).inc(count)

    return events


def validate_telemetry_payload(payload: Any) -> List[Dict[str, Any]]:
    """
    Check that a telemetry payload is a JSON array of discriminated events.

    Args:
        payload: Decoded telemetry response body

    Returns:
        The payload as a list of raw events

    Raises:
        MalformedTelemetryError: For HTML error pages, non-array payloads or
            events without a `_T` discriminator
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        lowered = payload.lstrip()[:512].lower()
        if lowered.startswith("<!doctype html") or lowered.startswith("<html") or "<!doctype html>" in lowered:
            raise MalformedTelemetryError("Received HTML error response instead of telemetry data")
        raise MalformedTelemetryError("Invalid telemetry data format. Expected array, got string")

    if not isinstance(payload, list):
        raise MalformedTelemetryError(
            f"Invalid telemetry data format. Expected array, got: {type(payload).__name__}"
        )

    if not payload:
        logger.warning("Telemetry payload is empty")

    for index, event in enumerate(payload):
        if not isinstance(event, dict) or not get_event_type(event):
            raise MalformedTelemetryError(
                f"Invalid telemetry event format at index {index}. Events should have '_T' property"
            )

    return payload
