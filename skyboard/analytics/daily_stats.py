"""
Daily statistics derivation and delay heuristics.

Pure functions over entity snapshots. Nothing here touches I/O or
shared state, so every function is safe to call from any thread on a
copy of the rolling history.

Three kinds of logic live here:

1. derive_daily_statistics(): the "today" view (distinct entities,
   active count, mean altitude/speed among active entities, peaks).
2. estimate_ground_delays() / estimate_delay_minutes(): fallbacks used
   only when no authoritative delay source is configured. These are
   estimates, not measurements.
3. Severity lookups that map a numeric delay or cancellation rate to a
   human-readable label. Each is a total, deterministic step function.
"""

import math
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

import numpy as np

from skyboard.models.snapshot import DailyStatistics, EntitySnapshot

# Entities on the ground below this altitude (feet) count as "at the field"
LOW_ALTITUDE_FT = 1000


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (dashboard convention)."""
    return int(math.floor(value + 0.5))


def ms_to_iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def derive_daily_statistics(
    history: Mapping[str, Sequence[EntitySnapshot]],
    current: Sequence[EntitySnapshot],
    now_ms: int,
    window_ms: int,
    peak_flights: int = 0,
    peak_time: Optional[str] = None,
) -> DailyStatistics:
    """
    Compute daily statistics from rolling history plus the live snapshot.

    For each identifier, every snapshot inside the window counts towards
    data_points and the identifier counts once towards
    total_unique_flights. Only the latest snapshot in the window feeds
    the altitude/speed means, and only when that entity is airborne.

    currently_flying comes from the live snapshot, not from history.
    """
    cutoff = now_ms - window_ms

    unique = 0
    data_points = 0
    altitudes = []
    speeds = []

    for snapshots in history.values():
        recent = [s for s in snapshots if s.timestamp >= cutoff]
        if not recent:
            continue

        unique += 1
        data_points += len(recent)

        latest = max(recent, key=lambda s: s.timestamp)
        if latest.is_active:
            altitudes.append(latest.altitude)
            speeds.append(latest.speed)

    avg_altitude = round_half_up(float(np.mean(altitudes))) if altitudes else 0
    avg_speed = round_half_up(float(np.mean(speeds))) if speeds else 0

    currently_flying = sum(1 for s in current if s.is_active)

    return DailyStatistics(
        total_unique_flights=unique,
        currently_flying=currently_flying,
        avg_altitude=avg_altitude,
        avg_speed=avg_speed,
        peak_flights=peak_flights,
        peak_time=peak_time,
        last_update=ms_to_iso(now_ms),
        data_points=data_points,
    )


def percent_change(current: float, previous: float) -> float:
    """Percent change rounded to one decimal; 0.0 when there is no baseline."""
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def estimate_ground_delays(
    current: Sequence[EntitySnapshot],
    low_altitude_ft: float = LOW_ALTITUDE_FT,
) -> int:
    """
    Estimate delayed flights from the share of entities held on the ground.

    Fallback heuristic only. A high ground ratio suggests aircraft are
    waiting at gates or in departure queues:
        ratio > 0.4  -> 30% of grounded entities delayed
        ratio > 0.3  -> 15%
        otherwise    -> 5%
    """
    total = len(current)
    if total == 0:
        return 0

    grounded = sum(1 for s in current if s.on_ground and s.altitude < low_altitude_ft)
    ratio = grounded / total

    if ratio > 0.4:
        return round_half_up(grounded * 0.30)
    elif ratio > 0.3:
        return round_half_up(grounded * 0.15)
    return round_half_up(grounded * 0.05)


def estimate_delay_minutes(altitude: float, speed: float, on_ground: bool) -> int:
    """
    Display estimate of delay minutes for a single entity.

    Deterministic buckets on ground movement:
    - airborne                         -> 0
    - on ground, taxiing (>= 15 kts)   -> 5
    - on ground, queueing (5-15 kts)   -> 15
    - on ground, stationary at field   -> 30
    - on ground, stationary, altitude
      reported above LOW_ALTITUDE_FT   -> 20
    """
    if not on_ground:
        return 0
    if speed >= 15:
        return 5
    if speed >= 5:
        return 15
    if altitude < LOW_ALTITUDE_FT:
        return 30
    return 20


def infer_delay_reason(avg_delay: float) -> str:
    """Map mean delay minutes to the most likely cause label."""
    if avg_delay > 35:
        return 'Weather - Severe Conditions'
    if avg_delay > 30:
        return 'Air Traffic Control'
    if avg_delay > 25:
        return 'Weather - Thunderstorms'
    if avg_delay > 20:
        return 'Equipment/Maintenance'
    return 'Volume - High Traffic'


def infer_cancellation_reason(rate: float) -> str:
    """Map a cancellation rate (percent) to the most likely cause label."""
    if rate > 5:
        return 'Weather - Severe Impact'
    if rate > 3:
        return 'Operations Issues'
    if rate > 2:
        return 'Weather - Moderate'
    if rate > 1:
        return 'Volume Related'
    return 'Normal Operations'


def site_status(avg_delay: float) -> str:
    if avg_delay < 10:
        return 'Normal'
    if avg_delay < 30:
        return 'Moderate'
    return 'Severe'
