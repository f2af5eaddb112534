"""Shared fakes and fixtures. No test touches the network."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, List, Optional

import pytest
import requests

from skyboard.ingestion.opensky_client import LiveFeed, StateVector
from skyboard.models import EntitySnapshot
from skyboard.sites import Site
from skyboard.storage import RollingHistoryStore

# 2026-06-15 12:00:00 UTC
START = 1_781_524_800.0


class FakeClock:
    """Manually advanced clock returning seconds since epoch."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, bad_json: bool = False) -> None:
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def json(self) -> Any:
        if self.bad_json:
            raise ValueError("not json")
        return self.payload


class FakeSession:
    """Stands in for requests.Session; records every GET."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.headers: dict = {}
        self.calls: List[tuple] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


SITES = [
    Site("ORD", "Chicago O'Hare Intl", 41.9742, -87.9073),
    Site("MDW", "Chicago Midway Intl", 41.7868, -87.7522),
    Site("ATL", "Hartsfield-Jackson Atlanta Intl", 33.6407, -84.4277),
]


def state_vector(
    icao24: str,
    lat: Optional[float],
    lon: Optional[float],
    callsign: Optional[str] = None,
    altitude_m: Optional[float] = 3000.0,
    velocity_mps: Optional[float] = 200.0,
    on_ground: bool = False,
) -> StateVector:
    arr = [
        icao24, callsign, "United States", 0, 0, lon, lat, altitude_m, on_ground,
        velocity_mps, 90.0, 0.0, None, None, None, False, 0,
    ]
    vector = StateVector.from_array(arr)
    assert vector is not None
    return vector


class FeedProvider:
    """
    Callable live provider scripted with feeds and exceptions.

    Each call pops the next item; once exhausted the last item repeats.
    """

    def __init__(self, items: Iterable[Any]) -> None:
        self.items = list(items)
        self.calls = 0

    def __call__(self) -> LiveFeed:
        item = self.items[min(self.calls, len(self.items) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sites() -> List[Site]:
    return list(SITES)


@pytest.fixture
def make_snapshot(clock: FakeClock) -> Callable[..., EntitySnapshot]:
    def _make(
        entity_id: str,
        offset_seconds: float = 0.0,
        on_ground: bool = False,
        altitude: float = 30000.0,
        speed: float = 450.0,
        lat: float = 41.98,
        lon: float = -87.90,
    ) -> EntitySnapshot:
        return EntitySnapshot(
            id=entity_id,
            altitude=0.0 if on_ground else altitude,
            speed=0.0 if on_ground else speed,
            on_ground=on_ground,
            timestamp=int((clock() + offset_seconds) * 1000),
            lat=lat,
            lon=lon,
        )

    return _make


@pytest.fixture
def store(tmp_path, clock: FakeClock) -> RollingHistoryStore:
    return RollingHistoryStore(
        data_file=str(tmp_path / "data" / "flight-history.json"),
        archive_dir=str(tmp_path / "data" / "archives"),
        retention_days=7,
        clock=clock,
    )


@pytest.fixture
def feed_factory(clock: FakeClock) -> Callable[..., LiveFeed]:
    """Build a LiveFeed of n entities around ORD captured at the current clock."""

    def _make(count: int = 10, prefix: str = "TST", grounded: int = 0) -> LiveFeed:
        states = [
            state_vector(
                f"a{i:05x}",
                41.97 + i * 0.001,
                -87.90,
                callsign=f"{prefix}{i}",
                altitude_m=0.0 if i < grounded else 3000.0,
                velocity_mps=0.0 if i < grounded else 200.0,
                on_ground=i < grounded,
            )
            for i in range(count)
        ]
        return LiveFeed(capture_time=int(clock()), states=states)

    return _make


def historical_blob(site_count: int = 35) -> dict:
    """Summary with two monthly and two quarterly aggregates and no yearly series."""
    airports = [
        {
            "code": f"S{i:02d}",
            "totalFlights": 1000 + i,
            "avgDepartureDelay": float(i),
            "avgArrivalDelay": float(i) / 2,
            "cancellationRate": i / 10,
            "onTimeRate": 80.0,
        }
        for i in range(site_count)
    ]
    airports.append({"code": "IDLE", "totalFlights": 0, "avgDepartureDelay": 99.0, "cancellationRate": 99.0})

    return {
        "metadata": {
            "source": "BTS On-Time Performance",
            "generatedAt": "2025-07-02T00:00:00Z",
            "dataRange": {"start": "2025-01-01", "end": "2025-06-30"},
        },
        "airports": airports,
        "trends": {
            "monthly": [
                {"month": "2025-05", "totalFlights": 600000, "avgDepDelay": 12.0, "avgArrDelay": 8.0,
                 "cancellationRate": 1.5},
                {"month": "2025-06", "totalFlights": 630000, "avgDepDelay": 15.0, "avgArrDelay": 10.0,
                 "cancellationRate": 2.0, "onTimeRate": 75.0, "delayedRate": 22.0},
            ],
            "quarterly": [
                {"quarter": "2025-Q1", "totalFlights": 1800000, "avgDepDelay": 10.0, "avgArrDelay": 7.0,
                 "cancellationRate": 1.0},
                {"quarter": "2025-Q2", "totalFlights": 1900000, "avgDepDelay": 13.0, "avgArrDelay": 9.0,
                 "cancellationRate": 1.8},
            ],
            "yearly": [],
        },
    }


@pytest.fixture
def historical_file(tmp_path) -> str:
    path = tmp_path / "historical-summary.json"
    path.write_text(json.dumps(historical_blob()), encoding="utf-8")
    return str(path)
