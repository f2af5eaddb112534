"""
Entity snapshot and derived daily statistics value objects.

EntitySnapshot is one observation of one tracked aircraft at one
instant. Snapshots are immutable: the live cache creates them on each
refresh, the rolling history appends them, and proximity consumers only
read them.

Units follow the dashboard display: altitude in feet, speed in knots,
timestamps in epoch milliseconds.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EntitySnapshot:
    """
    One timestamped observation of a tracked entity.

    Fields:
        id: Stable identifier (callsign, or ICAO24 when no callsign)
        altitude: Barometric altitude in feet (0 when unreported)
        speed: Ground speed in knots (0 when unreported)
        on_ground: Transponder on-ground flag
        timestamp: Capture time in epoch milliseconds
        lat, lon: WGS84 position
    """
    id: str
    altitude: float
    speed: float
    on_ground: bool
    timestamp: int
    lat: float
    lon: float

    @property
    def is_active(self) -> bool:
        """Airborne entities count as active."""
        return not self.on_ground

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'altitude': self.altitude,
            'speed': self.speed,
            'on_ground': self.on_ground,
            'timestamp': self.timestamp,
            'lat': self.lat,
            'lon': self.lon,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EntitySnapshot':
        """
        Rebuild a snapshot from its persisted form.

        Raises KeyError/TypeError/ValueError on malformed records so the
        loader can decide whether to skip or abort.
        """
        return cls(
            id=str(data['id']),
            altitude=float(data.get('altitude') or 0),
            speed=float(data.get('speed') or 0),
            on_ground=bool(data.get('on_ground', False)),
            timestamp=int(data['timestamp']),
            lat=float(data['lat']),
            lon=float(data['lon']),
        )


@dataclass(frozen=True)
class DailyStatistics:
    """
    Statistics derived from the rolling history and current snapshot.

    Recomputed on every query; only the peak fields come from
    process-wide counters.
    """
    total_unique_flights: int
    currently_flying: int
    avg_altitude: int
    avg_speed: int
    peak_flights: int
    peak_time: Optional[str]
    last_update: str
    data_points: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DailyStatistics':
        return cls(
            total_unique_flights=int(data.get('total_unique_flights', 0)),
            currently_flying=int(data.get('currently_flying', 0)),
            avg_altitude=int(data.get('avg_altitude', 0)),
            avg_speed=int(data.get('avg_speed', 0)),
            peak_flights=int(data.get('peak_flights', 0)),
            peak_time=data.get('peak_time'),
            last_update=str(data.get('last_update', '')),
            data_points=int(data.get('data_points', 0)),
        )
