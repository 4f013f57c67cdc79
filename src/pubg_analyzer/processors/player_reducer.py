"""
Player Telemetry Reducer

Folds a match's decoded telemetry into one player's statistics and timeline
in a single pass over the events.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..config.item_catalog import get_item_use_duration, is_boost_item
from ..core.geometry import distance_meters, parse_timestamp, to_meters
from ..core.telemetry import (
    Character,
    HealEvent,
    ItemUseEvent,
    Location,
    MatchEndEvent,
    MatchStartEvent,
    PlayerKillEvent,
    PlayerPositionEvent,
    PlayerReviveEvent,
    PlayerTakeDamageEvent,
    SwimEndEvent,
    SwimStartEvent,
    TelemetryEvent,
    VehicleLeaveEvent,
    VehicleRideEvent,
    WeaponFireCountEvent,
)
from ..models import (
    CombatStats,
    HealingItemUsage,
    HealingStats,
    MovementStats,
    PlayerMatchStats,
    PlayerTimelineEntry,
)
from .weapon_aggregator import WeaponAggregator

logger = logging.getLogger(__name__)


@dataclass
class PlayerReduction:
    """Result of reducing telemetry for one player."""

    stats: PlayerMatchStats
    timeline: List[PlayerTimelineEntry]
    account_id: Optional[str] = None


def _first(*values: Optional[float]) -> Optional[float]:
    for value in values:
        if value is not None:
            return value
    return None


def is_headshot(damage_reason: Optional[str]) -> bool:
    """Check whether a damage reason marks a head hit ('HeadShot')."""
    return bool(damage_reason) and "headshot" in damage_reason.lower()


def vehicle_key(event) -> str:
    """Key a ride by vehicle instance: unique id, then type id, then type, then seat."""
    return (
        event.vehicle_unique_id
        or event.vehicle_type_id
        or event.vehicle_type
        or f"seat-{event.seat_index if event.seat_index is not None else 'unknown'}"
    )


class PlayerTelemetryReducer:
    """
    Single-pass reducer for one player's match telemetry.

    Events are consumed in stream order but are not assumed to be sorted:
    every time-based metric tracks its own "last seen" marker and clamps
    negative intervals to zero. The timeline is sorted once at the end.

    Missing timestamps, locations or numbers never raise; they default to 0
    or the event contribution is skipped.

    Example:
        >>> reduction = PlayerTelemetryReducer(events, "PlayerOne").reduce()
        >>> reduction.stats.kills
        3
    """

    def __init__(
        self,
        events: Sequence[TelemetryEvent],
        player_name: str,
        match_start_ms: Optional[float] = None,
        match_end_ms: Optional[float] = None,
        now_ms: Optional[float] = None,
    ):
        """
        Initialize reducer state.

        Args:
            events: Decoded telemetry events for the whole match
            player_name: Target player's in-game name
            match_start_ms: Match start in epoch ms, when already known (otherwise
                taken from the first MatchStart event in the stream)
            match_end_ms: Match end in epoch ms, when already known
            now_ms: Last-resort "current time" in epoch ms for the survival
                fallback chain (default: wall clock at reduce time)
        """
        self.events = events
        self.player_name = player_name
        self.now_ms = now_ms
        self.match_start_ms = match_start_ms
        self.match_end_ms = match_end_ms
        self._reset()

    def _reset(self) -> None:
        self.kills = 0
        self.deaths = 0
        self.assists = 0
        self.damage_dealt = 0.0
        self.damage_taken = 0.0
        self.headshot_kills = 0
        self.kill_distance_total = 0.0
        self.longest_kill = 0.0
        self.shots_fired = 0
        self.shots_hit = 0

        self.total_distance = 0.0
        self.vehicle_distance = 0.0
        self.swim_distance = 0.0
        self.time_in_vehicle = 0.0
        self.time_in_blue_zone = 0.0

        self.health_used = 0.0
        self.boost_used = 0
        self.healing_items: Dict[str, HealingItemUsage] = {}

        self.weapons = WeaponAggregator()
        self.timeline: List[PlayerTimelineEntry] = []

        self.account_id: Optional[str] = None
        self.rank: Optional[int] = None

        self._last_position: Optional[Location] = None
        self._blue_zone_entered_at: Optional[float] = None
        self._vehicle_rides: Dict[str, Optional[float]] = {}
        self._swim_started_at: Optional[float] = None

        self._death_ts: Optional[float] = None
        self._first_seen_ts: Optional[float] = None
        self._last_seen_ts: Optional[float] = None
        self._match_start_ts = self.match_start_ms
        self._match_end_ts = self.match_end_ms
        self._match_start_seen = self.match_start_ms is not None
        self._match_end_seen = self.match_end_ms is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reduce(self) -> PlayerReduction:
        """
        Run the pass and finalize derived stats.

        Accumulators are reset first, so repeated calls give the same result.

        Returns:
            PlayerReduction with stats, time-sorted timeline and account id
        """
        self._reset()
        for event in self.events:
            self._consume(event)

        stats = self._finalize()
        timeline = sorted(self.timeline, key=lambda entry: entry.time)

        logger.debug(
            f"Reduced telemetry for '{self.player_name}': {stats.kills} kills, "
            f"{stats.deaths} deaths, {len(timeline)} timeline entries"
        )

        return PlayerReduction(stats=stats, timeline=timeline, account_id=self.account_id)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _consume(self, event: TelemetryEvent) -> None:
        ts = parse_timestamp(event.timestamp)

        if isinstance(event, PlayerPositionEvent):
            self._on_position(event, ts)
        elif isinstance(event, PlayerKillEvent):
            self._on_kill(event, ts)
        elif isinstance(event, PlayerTakeDamageEvent):
            self._on_take_damage(event, ts)
        elif isinstance(event, WeaponFireCountEvent):
            if self._is_target(event.character, ts):
                self.shots_fired += int(event.fire_count)
                self.weapons.record_shots(event.weapon_id, event.fire_count)
        elif isinstance(event, HealEvent):
            self._on_heal(event, ts)
        elif isinstance(event, ItemUseEvent):
            self._on_item_use(event, ts)
        elif isinstance(event, VehicleRideEvent):
            self._on_vehicle_ride(event, ts)
        elif isinstance(event, VehicleLeaveEvent):
            self._on_vehicle_leave(event, ts)
        elif isinstance(event, SwimStartEvent):
            if self._is_target(event.character, ts):
                self._swim_started_at = ts
        elif isinstance(event, SwimEndEvent):
            self._on_swim_end(event, ts)
        elif isinstance(event, PlayerReviveEvent):
            self._on_revive(event, ts)
        elif isinstance(event, MatchStartEvent):
            if not self._match_start_seen:
                self._match_start_seen = True
                self._match_start_ts = ts
        elif isinstance(event, MatchEndEvent):
            if not self._match_end_seen:
                self._match_end_seen = True
                self._match_end_ts = ts

    def _is_target(self, character: Optional[Character], ts: Optional[float]) -> bool:
        """Match a character against the target and record sighting bookkeeping."""
        if character is None or character.name != self.player_name:
            return False

        if self.account_id is None and character.account_id:
            self.account_id = character.account_id

        if ts is not None:
            if self._first_seen_ts is None or ts < self._first_seen_ts:
                self._first_seen_ts = ts
            if self._last_seen_ts is None or ts > self._last_seen_ts:
                self._last_seen_ts = ts

        return True

    def _on_position(self, event: PlayerPositionEvent, ts: Optional[float]) -> None:
        character = event.character
        if not self._is_target(character, ts):
            return

        location = character.location
        if location is not None:
            if self._last_position is not None:
                self.total_distance += distance_meters(self._last_position, location)
            self._last_position = location

        if character.is_in_blue_zone:
            if self._blue_zone_entered_at is None:
                self._blue_zone_entered_at = ts
            elif ts is not None:
                self.time_in_blue_zone += max(ts - self._blue_zone_entered_at, 0) / 1000
                self._blue_zone_entered_at = ts
        else:
            self._blue_zone_entered_at = None

    def _on_kill(self, event: PlayerKillEvent, ts: Optional[float]) -> None:
        if self._is_target(event.killer, ts):
            distance = to_meters(event.distance)
            headshot = is_headshot(event.damage_reason)

            self.kills += 1
            self.kill_distance_total += distance
            self.longest_kill = max(self.longest_kill, distance)
            if headshot:
                self.headshot_kills += 1
            self.weapons.record_kill(event.damage_causer_name, headshot)

            self._push(
                ts,
                "kill",
                event.killer.location,
                {
                    "victim": event.victim.name if event.victim else None,
                    "weapon": event.damage_causer_name,
                    "distance": distance,
                    "headshot": headshot,
                },
            )

        if self._is_target(event.victim, ts):
            self.deaths += 1
            rank = event.victim_rank if event.victim_rank else event.victim_win_place
            if rank:
                self.rank = rank
            if ts is not None and (self._death_ts is None or ts > self._death_ts):
                self._death_ts = ts

            self._push(
                ts,
                "death",
                event.victim.location,
                {
                    "killer": event.killer.name if event.killer else None,
                    "weapon": event.damage_causer_name,
                    "distance": to_meters(event.distance),
                },
            )

        if self._is_assistant(event, ts):
            self.assists += 1

    def _is_assistant(self, event: PlayerKillEvent, ts: Optional[float]) -> bool:
        for assistant in event.assistants:
            if self._is_target(assistant, ts):
                return True
        return self.account_id is not None and self.account_id in event.assistant_account_ids

    def _on_take_damage(self, event: PlayerTakeDamageEvent, ts: Optional[float]) -> None:
        if self._is_target(event.attacker, ts):
            self.damage_dealt += event.damage
            self.shots_hit += 1
            self.weapons.record_hit(event.damage_causer_name, event.damage)

        if self._is_target(event.victim, ts):
            self.damage_taken += event.damage
            self._push(
                ts,
                "damage_taken",
                event.victim.location,
                {
                    "attacker": event.attacker.name if event.attacker else None,
                    "damage": event.damage,
                    "weapon": event.damage_causer_name,
                    "reason": event.damage_reason,
                },
            )

    def _on_heal(self, event: HealEvent, ts: Optional[float]) -> None:
        if not self._is_target(event.character, ts):
            return

        self.health_used += event.heal_amount
        self._push(
            ts, "heal", event.character.location, {"item": event.item_id, "amount": event.heal_amount}
        )

    def _on_item_use(self, event: ItemUseEvent, ts: Optional[float]) -> None:
        if not self._is_target(event.character, ts):
            return

        boost = is_boost_item(event.item_id, event.category, event.sub_category)
        if boost:
            self.boost_used += 1

        item_id = event.item_id or "Unknown"
        usage = self.healing_items.setdefault(item_id, HealingItemUsage())
        usage.used += 1
        usage.time += get_item_use_duration(event.item_id)

        self._push(ts, "item_use", event.character.location, {"item": item_id, "boost": boost})

    def _on_vehicle_ride(self, event: VehicleRideEvent, ts: Optional[float]) -> None:
        if not self._is_target(event.character, ts):
            return

        key = vehicle_key(event)
        self._vehicle_rides[key] = ts
        self._push(
            ts,
            "vehicle_enter",
            event.character.location,
            {"vehicle": event.vehicle_type_id or event.vehicle_type, "seat": event.seat_index},
        )

    def _on_vehicle_leave(self, event: VehicleLeaveEvent, ts: Optional[float]) -> None:
        if not self._is_target(event.character, ts):
            return

        distance = to_meters(event.ride_distance)
        self.vehicle_distance += distance

        duration = 0.0
        key = vehicle_key(event)
        started_at = self._vehicle_rides.pop(key, None)
        if started_at is not None and ts is not None:
            duration = max(ts - started_at, 0) / 1000
            self.time_in_vehicle += duration

        self._push(
            ts,
            "vehicle_exit",
            event.character.location,
            {
                "vehicle": event.vehicle_type_id or event.vehicle_type,
                "distance": distance,
                "duration": duration,
            },
        )

    def _on_swim_end(self, event: SwimEndEvent, ts: Optional[float]) -> None:
        if not self._is_target(event.character, ts):
            return

        distance = to_meters(event.swim_distance)
        self.swim_distance += distance

        duration = 0.0
        if self._swim_started_at is not None and ts is not None:
            duration = max(ts - self._swim_started_at, 0) / 1000
        self._swim_started_at = None

        self._push(
            ts, "swim_end", event.character.location, {"duration": duration, "distance": distance}
        )

    def _on_revive(self, event: PlayerReviveEvent, ts: Optional[float]) -> None:
        if self._is_target(event.reviver, ts):
            self._push(
                ts,
                "revive",
                event.reviver.location,
                {"victim": event.victim.name if event.victim else None},
            )
        if self._is_target(event.victim, ts):
            self._push(
                ts,
                "revived",
                event.victim.location,
                {"reviver": event.reviver.name if event.reviver else None},
            )

    def _push(
        self,
        ts: Optional[float],
        kind: str,
        location: Optional[Location],
        details: Optional[Dict] = None,
    ) -> None:
        # Untimed events sort next to the latest timed sighting
        time_ms = _first(ts, self._last_seen_ts, 0.0)
        self.timeline.append(
            PlayerTimelineEntry(
                time=time_ms,
                event=kind,
                position=location.to_meters() if location is not None else None,
                details=details,
            )
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _finalize(self) -> PlayerMatchStats:
        now_ms = self.now_ms if self.now_ms is not None else time.time() * 1000

        final_ts = _first(
            self._death_ts, self._match_end_ts, self._last_seen_ts, self._match_start_ts, now_ms
        )

        if self._blue_zone_entered_at is not None:
            self.time_in_blue_zone += max(final_ts - self._blue_zone_entered_at, 0) / 1000

        survival_start = _first(self._first_seen_ts, self._match_start_ts, now_ms)
        survival_time = max(final_ts - survival_start, 0) / 1000

        foot_distance = max(self.total_distance - self.vehicle_distance - self.swim_distance, 0.0)
        avg_speed = self.total_distance / (survival_time / 60) if survival_time > 0 else 0.0

        kills = self.kills
        combat = CombatStats(
            shots_fired=self.shots_fired,
            shots_hit=self.shots_hit,
            headshot_percentage=self.headshot_kills / kills if kills else 0.0,
            longest_kill=self.longest_kill,
            avg_kill_distance=self.kill_distance_total / kills if kills else 0.0,
            damage_per_kill=self.damage_dealt / kills if kills else 0.0,
        )

        placement = self.rank if self.rank else 1

        return PlayerMatchStats(
            kills=kills,
            deaths=self.deaths,
            assists=self.assists,
            damage_dealt=self.damage_dealt,
            damage_taken=self.damage_taken,
            survival_time=survival_time,
            placement=placement,
            weapons=self.weapons.finalize(),
            movement=MovementStats(
                total_distance=self.total_distance,
                vehicle_distance=self.vehicle_distance,
                swim_distance=self.swim_distance,
                foot_distance=foot_distance,
                avg_speed=avg_speed,
                time_in_vehicle=self.time_in_vehicle,
                time_in_blue_zone=self.time_in_blue_zone,
            ),
            healing=HealingStats(
                health_used=self.health_used,
                boost_used=self.boost_used,
                healing_items=dict(self.healing_items),
            ),
            combat=combat,
        )


def reduce_player(
    events: Sequence[TelemetryEvent], player_name: str, **kwargs
) -> PlayerReduction:
    """Reduce a match's telemetry for one player (see PlayerTelemetryReducer)."""
    return PlayerTelemetryReducer(events, player_name, **kwargs).reduce()
