"""
Live snapshot cache - the single source of current flight positions.

Purpose: call the rate-limited live feed once per interval and serve
every request from memory.

- One refresh per interval (60s default), about 1,440 calls a day
- Readers never trigger upstream calls
- On failure the last good snapshot keeps being served

Atomicity: a refresh builds the new entity list and the site index
completely, then publishes them together as one immutable LiveState by
a single reference assignment. Readers grab the reference once and so
always see either the old or the new snapshot, never a mix. No reader
takes a lock.

Health state machine (driven only by refresh outcomes):
    UNINITIALIZED --success--> HEALTHY --failure--> DEGRADED
    DEGRADED --errors reach threshold--> UNHEALTHY
    any --success--> HEALTHY (error counter reset)
Unhealthy is advisory: stale data is still served.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from skyboard.exceptions import ProviderError, QuotaExceededError
from skyboard.ingestion.opensky_client import LiveFeed
from skyboard.ingestion.proximity import SiteAssignment, SiteIndex, build_site_index
from skyboard.models import EntitySnapshot
from skyboard.sites import Site

logger = logging.getLogger(__name__)

METERS_TO_FEET = 3.28084
MPS_TO_KNOTS = 1.94384


class CacheHealth(str, Enum):
    """Health of the live snapshot cache."""
    UNINITIALIZED = 'uninitialized'
    HEALTHY = 'healthy'
    DEGRADED = 'degraded'
    UNHEALTHY = 'unhealthy'


@dataclass(frozen=True)
class LiveState:
    """One published snapshot: entities plus their site index."""
    entities: Tuple[EntitySnapshot, ...] = ()
    site_index: SiteIndex = field(default_factory=SiteIndex)
    capture_time: Optional[int] = None  # epoch ms


class DailyQuota:
    """
    Hard daily call budget for the live feed.

    Resets when the wall-clock date changes, not on a rolling 24h
    window. A limit of None disables accounting.
    """

    def __init__(self, limit: Optional[int], clock: Callable[[], float] = time.time):
        self.limit = limit
        self._clock = clock
        self._lock = threading.Lock()
        self._day: date = self._today()
        self._used = 0

    def _today(self) -> date:
        return datetime.fromtimestamp(self._clock()).date()

    def _roll_locked(self) -> None:
        today = self._today()
        if today != self._day:
            if self._used:
                logger.info(f'Daily quota reset ({self._used} calls used on {self._day})')
            self._day = today
            self._used = 0

    def acquire(self) -> None:
        """
        Count one upstream call.

        Raises:
            QuotaExceededError if today's budget is spent
        """
        with self._lock:
            self._roll_locked()
            if self.limit is not None and self._used >= self.limit:
                raise QuotaExceededError(self.limit)
            self._used += 1

    @property
    def used(self) -> int:
        with self._lock:
            self._roll_locked()
            return self._used

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


def to_snapshots(feed: LiveFeed) -> List[EntitySnapshot]:
    """
    Convert a live feed into entity snapshots sharing one capture time.

    Altitude is converted to feet and speed to knots; vectors without a
    position are dropped.
    """
    timestamp = int(feed.capture_time) * 1000
    snapshots = []
    for sv in feed.states:
        if not sv.has_position():
            continue

        altitude_m = sv.baro_altitude if sv.baro_altitude is not None else sv.geo_altitude
        snapshots.append(EntitySnapshot(
            id=sv.identifier,
            altitude=round((altitude_m or 0.0) * METERS_TO_FEET),
            speed=round((sv.velocity or 0.0) * MPS_TO_KNOTS),
            on_ground=sv.on_ground,
            timestamp=timestamp,
            lat=sv.latitude,
            lon=sv.longitude,
        ))
    return snapshots


class LiveSnapshotCache:
    """
    Periodically refreshed, lock-free-read snapshot of all tracked entities.

    Refresh callbacks (e.g. the rolling history append) run right after
    each successful swap, in the refreshing thread.
    """

    def __init__(
        self,
        provider: Callable[[], LiveFeed],
        sites: Sequence[Site],
        radius_nm: float = 50.0,
        refresh_interval: float = 60.0,
        max_consecutive_errors: int = 5,
        freshness_seconds: float = 120.0,
        daily_limit: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            provider: Callable returning a LiveFeed or raising
            sites: Site table for the proximity index
            radius_nm: Association radius in nautical miles
            refresh_interval: Seconds between refreshes
            max_consecutive_errors: Failures before UNHEALTHY
            freshness_seconds: Age under which data counts as fresh
            daily_limit: Upstream call budget per calendar day
            clock: Seconds since epoch; injectable for tests
        """
        self._provider = provider
        self.sites = list(sites)
        self.radius_nm = radius_nm
        self.refresh_interval = refresh_interval
        self.max_consecutive_errors = max_consecutive_errors
        self.freshness_seconds = freshness_seconds
        self._clock = clock
        self._quota = DailyQuota(daily_limit, clock=clock)

        self._state = LiveState(site_index=SiteIndex(radius_nm=radius_nm))
        self._refresh_lock = threading.Lock()

        # Health tracking
        self._health = CacheHealth.UNINITIALIZED
        self._consecutive_errors = 0
        self._last_error: Optional[str] = None
        self._last_update: Optional[float] = None
        self._next_update: float = clock()

        # Statistics
        self._refresh_count = 0
        self._error_count = 0

        self._on_update_callbacks: List[Callable[[List[EntitySnapshot]], None]] = []

    @classmethod
    def from_config(
        cls,
        live_config,
        provider: Callable[[], LiveFeed],
        sites: Sequence[Site],
        daily_limit: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> 'LiveSnapshotCache':
        """Create a cache from LiveCacheConfig."""
        return cls(
            provider=provider,
            sites=sites,
            radius_nm=live_config.site_radius_nm,
            refresh_interval=live_config.refresh_interval,
            max_consecutive_errors=live_config.max_consecutive_errors,
            freshness_seconds=live_config.freshness_seconds,
            daily_limit=daily_limit,
            clock=clock,
        )

    def add_update_callback(self, callback: Callable[[List[EntitySnapshot]], None]) -> None:
        """
        Register callback to be invoked after each successful refresh.

        Callback receives the new entity list.
        """
        self._on_update_callbacks.append(callback)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def refresh(self) -> bool:
        """
        Execute one refresh cycle.

        Returns True when a new snapshot was published. Failures never
        raise; they are counted and the previous snapshot is kept.
        """
        with self._refresh_lock:
            started = self._clock()
            try:
                self._quota.acquire()
                feed = self._provider()
                entities = to_snapshots(feed)
                if not entities:
                    raise ProviderError('Live feed returned no entities', provider='opensky')
                index = build_site_index(entities, self.sites, self.radius_nm)
            except Exception as e:
                self._record_failure(e, started)
                return False

            self._state = LiveState(
                entities=tuple(entities),
                site_index=index,
                capture_time=entities[0].timestamp,
            )

            self._health = CacheHealth.HEALTHY
            self._consecutive_errors = 0
            self._last_error = None
            self._last_update = self._clock()
            self._next_update = self._last_update + self.refresh_interval
            self._refresh_count += 1

        duration_ms = (self._clock() - started) * 1000
        logger.info(
            f'Live cache updated: {len(entities)} flights, '
            f'{index.sites_with_activity} sites with activity ({duration_ms:.0f}ms)'
        )

        for callback in self._on_update_callbacks:
            try:
                callback(entities)
            except Exception as e:
                logger.error(f'Update callback error: {e}')

        return True

    def _record_failure(self, error: Exception, now: float) -> None:
        self._consecutive_errors += 1
        self._error_count += 1
        self._last_error = str(error) or error.__class__.__name__
        self._next_update = now + self.refresh_interval

        if self._consecutive_errors >= self.max_consecutive_errors:
            if self._health is not CacheHealth.UNHEALTHY:
                logger.error(
                    f'Live cache unhealthy after {self._consecutive_errors} consecutive errors'
                )
            self._health = CacheHealth.UNHEALTHY
        elif self._health is CacheHealth.HEALTHY:
            self._health = CacheHealth.DEGRADED

        if isinstance(error, QuotaExceededError):
            logger.warning(f'Live refresh skipped: {error}')
        else:
            logger.error(f'Live refresh failed: {self._last_error}')

    def force_refresh(self) -> bool:
        """Refresh now, outside the timer (admin/testing)."""
        logger.info('Force refresh requested')
        return self.refresh()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def state(self) -> LiveState:
        """The current published snapshot."""
        return self._state

    def get_all(self) -> List[EntitySnapshot]:
        """All entities in the current snapshot (empty before first success)."""
        return list(self._state.entities)

    def get_near_site(self, site_code: str) -> List[EntitySnapshot]:
        """Entities whose nearest site within the radius is site_code."""
        return self._state.site_index.entities_near(site_code)

    def get_site_assignments(self, site_code: str) -> Tuple[SiteAssignment, ...]:
        return self._state.site_index.assignments_near(site_code)

    @property
    def health(self) -> CacheHealth:
        return self._health

    @property
    def is_healthy(self) -> bool:
        return self._health in (CacheHealth.HEALTHY, CacheHealth.DEGRADED)

    def age_seconds(self) -> Optional[float]:
        if self._last_update is None:
            return None
        return max(0.0, self._clock() - self._last_update)

    def get_status(self) -> dict:
        """Freshness and health metadata for monitoring endpoints."""
        state = self._state
        age = self.age_seconds()

        return {
            'health': self._health.value,
            'is_healthy': self.is_healthy,
            'is_fresh': age is not None and age < self.freshness_seconds,
            'age_seconds': int(age) if age is not None else None,
            'last_update': _iso(self._last_update),
            'next_update': _iso(self._next_update),
            'consecutive_errors': self._consecutive_errors,
            'last_error': self._last_error,
            'total_flights': len(state.entities),
            'sites_with_activity': state.site_index.sites_with_activity,
            'quota_used': self._quota.used,
            'quota_remaining': self._quota.remaining,
        }

    @property
    def stats(self) -> dict:
        return {
            'refresh_count': self._refresh_count,
            'error_count': self._error_count,
        }


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
