"""
Dashboard data aggregator - the composition point of the read path.

Combines three sources into one normalized response:
- Live snapshot cache (current entities, site index, freshness)
- Rolling history store (today's derived statistics, baseline)
- Historical statistics provider (precomputed month/quarter/year
  aggregates and per-site history)
plus the optional airspace status feed for authoritative delay totals.

Policy:
- "today" prefers live data; longer windows use historical aggregates
  scaled to the window
- Every source call is independent and guarded. A failure substitutes
  a documented default (zero counts, empty list) and appends a caveat,
  so callers can tell "no activity" from "source unavailable"
- get_dashboard_data never raises because an upstream source is down

Remote sources (status feed, historical blob) are fanned out to a
thread pool and bounded by a timeout.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from skyboard.analytics import (
    estimate_ground_delays,
    infer_cancellation_reason,
    infer_delay_reason,
    percent_change,
    site_status,
)
from skyboard.ingestion.historical import HistoricalStatsProvider, empty_overall_stats
from skyboard.ingestion.live_cache import CacheHealth, LiveSnapshotCache, LiveState
from skyboard.ingestion.status_client import SiteStatus, StatusFeedClient, delay_totals
from skyboard.models import DailyStatistics, Period
from skyboard.sites import Site
from skyboard.storage import RollingHistoryStore

logger = logging.getLogger(__name__)

TOP_AFFECTED_LIMIT = 30
BUSIEST_LIMIT = 5

# Caveat texts
CAVEAT_LIVE_UNAVAILABLE = 'Live feed unavailable: no successful refresh yet; live counts are zero'
CAVEAT_HISTORY_UNAVAILABLE = 'Rolling history unavailable; daily statistics are zero'
CAVEAT_STATUS_NOT_CONFIGURED = (
    'No status feed configured; delays are estimated from the share of '
    'aircraft held on the ground (heuristic, not a measurement)'
)
CAVEAT_STATUS_FAILED_HEURISTIC = (
    'Status feed unavailable; delays are estimated from the share of '
    'aircraft held on the ground (heuristic, not a measurement)'
)
CAVEAT_STATUS_LAST_KNOWN = 'Status feed unavailable; showing last reported delay totals'
CAVEAT_HEURISTIC_NO_CANCELLATIONS = 'Cancellations are not estimated without a status feed'
CAVEAT_HISTORICAL_UNAVAILABLE = 'Historical statistics unavailable; historical figures are zero'
CAVEAT_RATES_ESTIMATED = 'On-time and delayed rates use industry averages'
CAVEAT_NO_BASELINE = 'No baseline from yesterday yet; change from yesterday is 0'


@dataclass
class AggregatedResponse:
    """Normalized dashboard payload for one period."""
    period: str
    summary: Dict[str, Any]
    top_affected_sites: Dict[str, List[Dict[str, Any]]]
    trends: List[Dict[str, Any]]
    busiest_sites: List[Dict[str, Any]]
    caveats: List[str] = field(default_factory=list)
    freshness: Dict[str, Any] = field(default_factory=dict)
    generated_at: str = ''

    @property
    def degraded(self) -> bool:
        return bool(self.caveats)

    def to_dict(self) -> dict:
        return {
            'period': self.period,
            'summary': self.summary,
            'top_affected_sites': self.top_affected_sites,
            'trends': self.trends,
            'busiest_sites': self.busiest_sites,
            'caveats': list(self.caveats),
            'freshness': self.freshness,
            'generated_at': self.generated_at,
        }


@dataclass
class _HistoricalBundle:
    overall: Dict[str, Any]
    sites: list
    trends: List[Dict[str, Any]]
    comparison: Dict[str, float]
    data_range: Dict[str, Optional[str]]


class DataAggregator:
    """
    Merges live, rolling and historical data into dashboard responses.

    Holds references to the components it reads; it owns no data of
    its own apart from the worker pool used for remote sources.
    """

    def __init__(
        self,
        live_cache: LiveSnapshotCache,
        history: RollingHistoryStore,
        historical: HistoricalStatsProvider,
        status_client: Optional[StatusFeedClient] = None,
        sites: Optional[Sequence[Site]] = None,
        source_timeout: float = 10.0,
        top_affected_limit: int = TOP_AFFECTED_LIMIT,
        busiest_limit: int = BUSIEST_LIMIT,
    ):
        self.live_cache = live_cache
        self.history = history
        self.historical = historical
        self.status_client = status_client
        self.source_timeout = source_timeout
        self.top_affected_limit = top_affected_limit
        self.busiest_limit = busiest_limit

        sites = sites if sites is not None else live_cache.sites
        self._site_names = {s.code: s.name for s in sites}

        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix='aggregator')

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # -------------------------------------------------------------------------
    # Guarded source calls
    # -------------------------------------------------------------------------

    def _submit(self, func: Callable[[], Any]) -> Future:
        return self._executor.submit(func)

    def _collect(
        self,
        name: str,
        future: Future,
        default: Any,
        caveat: Optional[str],
        caveats: List[str],
    ) -> Any:
        """Wait for a source; on failure or timeout return default and note the caveat."""
        try:
            return future.result(timeout=self.source_timeout)
        except Exception as e:
            future.cancel()
            logger.warning(f'{name} source failed, using defaults: {e or e.__class__.__name__}')
            if caveat:
                caveats.append(caveat)
            return default

    def _fetch_statuses(self) -> List[SiteStatus]:
        return self.status_client.get_site_statuses()

    def _fetch_historical(self, period: Period) -> _HistoricalBundle:
        summary = self.historical.load()
        return _HistoricalBundle(
            overall=self.historical.overall_stats(period),
            sites=self.historical.top_sites(limit=len(summary.sites)),
            trends=self.historical.daily_trends(days=period.trend_days),
            comparison=self.historical.period_comparison(period),
            data_range={
                'source': summary.source,
                'start': summary.data_range_start,
                'end': summary.data_range_end,
                'generated_at': summary.generated_at,
            },
        )

    # -------------------------------------------------------------------------
    # Public read surface
    # -------------------------------------------------------------------------

    def get_dashboard_data(self, period: Period = Period.TODAY) -> AggregatedResponse:
        """
        Build the dashboard response for a period.

        Always returns a well-formed response; degraded sources show up
        as zeroed fields plus entries in `caveats`.
        """
        start_time = time.perf_counter()
        caveats: List[str] = []

        # Fan out remote sources first so they overlap with local work
        status_future = None
        if period.is_live and self.status_client is not None and self.status_client.is_configured:
            status_future = self._submit(self._fetch_statuses)
        historical_future = self._submit(lambda: self._fetch_historical(period))

        state = self.live_cache.state
        self._live_caveats(state, caveats)

        statuses = None
        if status_future is not None:
            statuses = self._collect('Status feed', status_future, None, None, caveats)

        bundle = self._collect(
            'Historical',
            historical_future,
            _HistoricalBundle(
                overall=empty_overall_stats(),
                sites=[],
                trends=[],
                comparison={'flights': 0.0, 'delays': 0.0, 'cancellations': 0.0},
                data_range={},
            ),
            CAVEAT_HISTORICAL_UNAVAILABLE,
            caveats,
        )

        if period.is_live:
            summary = self._live_summary(state, statuses, bundle, caveats)
        else:
            summary = self._historical_summary(period, bundle, caveats)

        response = AggregatedResponse(
            period=period.value,
            summary=summary,
            top_affected_sites=self._top_affected_sites(period, statuses, bundle),
            trends=bundle.trends,
            busiest_sites=self._busiest_sites(state),
            caveats=caveats,
            freshness=self._freshness(bundle),
            generated_at=datetime.now(timezone.utc).isoformat(),
        )

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            f'Aggregated {period.value} dashboard in {duration_ms:.0f}ms '
            f'({len(caveats)} caveats)'
        )
        return response

    # -------------------------------------------------------------------------
    # Summary builders
    # -------------------------------------------------------------------------

    def _live_caveats(self, state: LiveState, caveats: List[str]) -> None:
        status = self.live_cache.get_status()
        if self.live_cache.health is CacheHealth.UNINITIALIZED:
            caveats.append(CAVEAT_LIVE_UNAVAILABLE)
        elif not status['is_healthy']:
            caveats.append(
                f'Live feed unhealthy after {status["consecutive_errors"]} consecutive errors; '
                f'serving data from {status["age_seconds"]}s ago'
            )
        elif not status['is_fresh']:
            caveats.append(f'Live data is stale ({status["age_seconds"]}s old)')

    def _daily_statistics(self, state: LiveState, caveats: List[str]) -> DailyStatistics:
        try:
            return self.history.derive_daily_statistics(state.entities)
        except Exception as e:
            logger.error(f'Daily statistics derivation failed: {e}')
            caveats.append(CAVEAT_HISTORY_UNAVAILABLE)
            return DailyStatistics(
                total_unique_flights=0,
                currently_flying=sum(1 for s in state.entities if s.is_active),
                avg_altitude=0,
                avg_speed=0,
                peak_flights=0,
                peak_time=None,
                last_update=datetime.now(timezone.utc).isoformat(),
                data_points=0,
            )

    def _delay_figures(
        self,
        state: LiveState,
        statuses: Optional[List[SiteStatus]],
        caveats: List[str],
    ) -> Dict[str, Any]:
        """
        Delay and cancellation totals, best source first:
        status feed, last reported totals, ground-ratio heuristic.
        """
        if statuses is not None:
            totals = delay_totals(statuses)
            try:
                self.history.set_delay_totals(totals['total_delays'], totals['total_cancellations'])
            except Exception as e:
                logger.error(f'Failed to record delay totals: {e}')
            return {
                'total_delays': totals['total_delays'],
                'total_cancellations': totals['total_cancellations'],
                'delay_source': 'status_feed',
            }

        configured = self.status_client is not None and self.status_client.is_configured
        if configured:
            last_delays, last_cancellations = self.history.delay_totals
            if last_delays or last_cancellations:
                caveats.append(CAVEAT_STATUS_LAST_KNOWN)
                return {
                    'total_delays': last_delays,
                    'total_cancellations': last_cancellations,
                    'delay_source': 'last_reported',
                }
            caveats.append(CAVEAT_STATUS_FAILED_HEURISTIC)
        else:
            caveats.append(CAVEAT_STATUS_NOT_CONFIGURED)

        caveats.append(CAVEAT_HEURISTIC_NO_CANCELLATIONS)
        return {
            'total_delays': estimate_ground_delays(state.entities),
            'total_cancellations': 0,
            'delay_source': 'ground_ratio_estimate',
        }

    def _live_summary(
        self,
        state: LiveState,
        statuses: Optional[List[SiteStatus]],
        bundle: _HistoricalBundle,
        caveats: List[str],
    ) -> Dict[str, Any]:
        stats = self._daily_statistics(state, caveats)
        delays = self._delay_figures(state, statuses, caveats)

        baseline = self.history.yesterday_stats
        if baseline is None:
            caveats.append(CAVEAT_NO_BASELINE)
            change_flights = 0.0
        elif CAVEAT_HISTORY_UNAVAILABLE in caveats:
            # Zeroed statistics would read as a -100% drop
            change_flights = 0.0
        else:
            change_flights = percent_change(stats.total_unique_flights, baseline.total_unique_flights)

        overall = bundle.overall
        if overall.get('reference') is not None and overall.get('rates_estimated'):
            caveats.append(CAVEAT_RATES_ESTIMATED)

        return {
            'total_flights': stats.total_unique_flights,
            'currently_flying': stats.currently_flying,
            'tracked_now': len(state.entities),
            'avg_altitude': stats.avg_altitude,
            'avg_speed': stats.avg_speed,
            'peak_flights': stats.peak_flights,
            'peak_time': stats.peak_time,
            'data_points': stats.data_points,
            'total_delays': delays['total_delays'],
            'total_cancellations': delays['total_cancellations'],
            'delay_source': delays['delay_source'],
            'average_delay': overall['avg_arr_delay'],
            'on_time_rate': overall['on_time_rate'],
            'change': {'basis': 'yesterday', 'flights': change_flights},
        }

    def _historical_summary(
        self,
        period: Period,
        bundle: _HistoricalBundle,
        caveats: List[str],
    ) -> Dict[str, Any]:
        overall = bundle.overall
        reference = overall.get('reference')
        if reference is not None:
            caveats.append(
                f'Historical reference snapshot ({reference}), not live data'
            )
            if overall.get('rates_estimated'):
                caveats.append(CAVEAT_RATES_ESTIMATED)
        elif CAVEAT_HISTORICAL_UNAVAILABLE not in caveats:
            caveats.append(CAVEAT_HISTORICAL_UNAVAILABLE)

        return {
            'total_flights': overall['total_flights'],
            'total_delays': overall['total_delayed'],
            'total_cancellations': overall['total_cancelled'],
            'delay_source': 'historical',
            'average_delay': overall['avg_arr_delay'],
            'average_departure_delay': overall['avg_dep_delay'],
            'cancellation_rate': overall['cancellation_rate'],
            'on_time_rate': overall['on_time_rate'],
            'reference_period': reference,
            'change': {'basis': f'previous {period.granularity} aggregate', **bundle.comparison},
        }

    # -------------------------------------------------------------------------
    # Rankings
    # -------------------------------------------------------------------------

    def _site_name(self, code: str) -> str:
        return self._site_names.get(code, code)

    def _top_affected_sites(
        self,
        period: Period,
        statuses: Optional[List[SiteStatus]],
        bundle: _HistoricalBundle,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Two independent rankings, each capped at top_affected_limit.

        by_delay uses the status feed's current mean delays for today
        when available, otherwise historical departure delays;
        by_cancellation always uses historical cancellation rates.
        """
        limit = self.top_affected_limit

        if period.is_live and statuses:
            ranked = sorted(statuses, key=lambda s: (-s.mean_delay_minutes, s.site_id))
            by_delay = [
                {
                    'code': s.site_id,
                    'name': self._site_name(s.site_id),
                    'avg_delay': round(s.mean_delay_minutes, 1),
                    'reason': infer_delay_reason(s.mean_delay_minutes),
                    'status': site_status(s.mean_delay_minutes),
                    'condition': s.condition_label,
                    'source': 'status_feed',
                }
                for s in ranked[:limit]
            ]
        else:
            active = [s for s in bundle.sites if s.total_flights > 0]
            ranked = sorted(active, key=lambda s: (-s.avg_departure_delay, s.code))
            by_delay = [
                {
                    'code': s.code,
                    'name': self._site_name(s.code),
                    'avg_delay': round(s.avg_departure_delay, 1),
                    'reason': infer_delay_reason(s.avg_departure_delay),
                    'status': site_status(s.avg_departure_delay),
                    'total_flights': s.total_flights,
                    'source': 'historical',
                }
                for s in ranked[:limit]
            ]

        active = [s for s in bundle.sites if s.total_flights > 0]
        ranked = sorted(active, key=lambda s: (-s.cancellation_rate, s.code))
        by_cancellation = [
            {
                'code': s.code,
                'name': self._site_name(s.code),
                'cancellation_rate': round(s.cancellation_rate, 2),
                'reason': infer_cancellation_reason(s.cancellation_rate),
                'total_flights': s.total_flights,
                'source': 'historical',
            }
            for s in ranked[:limit]
        ]

        return {'by_delay': by_delay, 'by_cancellation': by_cancellation}

    def _busiest_sites(self, state: LiveState) -> List[Dict[str, Any]]:
        return [
            {'code': code, 'name': self._site_name(code), 'flights': count}
            for code, count in state.site_index.busiest(self.busiest_limit)
        ]

    def _freshness(self, bundle: _HistoricalBundle) -> Dict[str, Any]:
        live = self.live_cache.get_status()
        return {
            'live': {
                'health': live['health'],
                'is_healthy': live['is_healthy'],
                'is_fresh': live['is_fresh'],
                'age_seconds': live['age_seconds'],
                'last_update': live['last_update'],
                'next_update': live['next_update'],
            },
            'historical': bundle.data_range,
        }
