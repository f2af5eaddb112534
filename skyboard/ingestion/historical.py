"""
Historical on-time performance statistics provider.

Serves precomputed aggregates (per site, and per month/quarter/year)
produced offline from the national on-time performance dataset. The
summary blob is loaded once per process from a file or URL and kept in
memory until reload() is called.

Blob layout:
    {
      "metadata": {"source", "generatedAt", "dataRange": {"start", "end"}},
      "airports": [{"code", "totalFlights", "avgDepartureDelay",
                    "avgArrivalDelay", "cancellationRate", "onTimeRate"}],
      "trends": {
        "monthly":   [{"month": "2025-06", "totalFlights", "avgDepDelay",
                       "avgArrDelay", "cancellationRate",
                       "onTimeRate"?, "delayedRate"?}],
        "quarterly": [{"quarter": "2025-Q2", ...}],
        "yearly":    [{"year": "2024", ...}]
      }
    }
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import requests

from skyboard.analytics.daily_stats import percent_change, round_half_up
from skyboard.exceptions import ProviderError
from skyboard.models import Period

logger = logging.getLogger(__name__)

PROVIDER = 'historical'

# Industry averages used when an aggregate carries no on-time/delayed rate
DEFAULT_PERIOD_RATES = {
    Period.TODAY: {'on_time': 62.5, 'delayed': 35.7},
    Period.WEEK: {'on_time': 62.5, 'delayed': 35.7},
    Period.MONTH: {'on_time': 63.8, 'delayed': 34.4},
    Period.QUARTER: {'on_time': 61.2, 'delayed': 37.0},
    Period.YEAR: {'on_time': 62.0, 'delayed': 36.0},
}

# Share of daily flights counted as delayed in trend estimates
DEFAULT_DAILY_DELAYED_RATE = 15.0


def empty_overall_stats() -> Dict[str, Any]:
    """Headline figures when no aggregate is available."""
    return {
        'total_flights': 0,
        'avg_dep_delay': 0.0,
        'avg_arr_delay': 0.0,
        'cancellation_rate': 0.0,
        'total_delayed': 0,
        'total_cancelled': 0,
        'on_time_rate': 0.0,
        'rates_estimated': True,
        'reference': None,
    }


def _num(data: Dict[str, Any], key: str, default: float = 0.0) -> float:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return default
    return float(value)


def _optional_num(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return None
    return float(value)


@dataclass(frozen=True)
class SiteHistory:
    """Historical aggregate for one site."""
    code: str
    total_flights: int
    avg_departure_delay: float
    avg_arrival_delay: float
    cancellation_rate: float
    on_time_rate: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SiteHistory':
        return cls(
            code=str(data['code']).upper(),
            total_flights=int(_num(data, 'totalFlights')),
            avg_departure_delay=_num(data, 'avgDepartureDelay'),
            avg_arrival_delay=_num(data, 'avgArrivalDelay'),
            cancellation_rate=_num(data, 'cancellationRate'),
            on_time_rate=_num(data, 'onTimeRate'),
        )


@dataclass(frozen=True)
class PeriodTrend:
    """Aggregate for one month, quarter, or year."""
    label: str
    total_flights: int
    avg_dep_delay: float
    avg_arr_delay: float
    cancellation_rate: float
    on_time_rate: Optional[float] = None
    delayed_rate: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PeriodTrend':
        label = data.get('month') or data.get('quarter') or data.get('year') or data.get('label')
        return cls(
            label=str(label or ''),
            total_flights=int(_num(data, 'totalFlights')),
            avg_dep_delay=_num(data, 'avgDepDelay'),
            avg_arr_delay=_num(data, 'avgArrDelay'),
            cancellation_rate=_num(data, 'cancellationRate'),
            on_time_rate=_optional_num(data, 'onTimeRate'),
            delayed_rate=_optional_num(data, 'delayedRate'),
        )

    @property
    def total_cancelled(self) -> int:
        return round_half_up(self.total_flights * self.cancellation_rate / 100)


@dataclass
class HistoricalSummary:
    """Parsed historical statistics blob."""
    source: str
    generated_at: Optional[str]
    data_range_start: Optional[str]
    data_range_end: Optional[str]
    sites: List[SiteHistory] = field(default_factory=list)
    trends: Dict[str, List[PeriodTrend]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'HistoricalSummary':
        """
        Parse the summary blob.

        Raises KeyError/TypeError/ValueError on malformed content.
        """
        if not isinstance(data, dict):
            raise TypeError('historical summary must be an object')

        metadata = data.get('metadata') or {}
        data_range = metadata.get('dataRange') or {}
        raw_trends = data.get('trends') or {}

        return cls(
            source=str(metadata.get('source') or 'unknown'),
            generated_at=metadata.get('generatedAt'),
            data_range_start=data_range.get('start') or None,
            data_range_end=data_range.get('end') or None,
            sites=[SiteHistory.from_dict(s) for s in (data.get('airports') or data.get('sites') or [])],
            trends={
                key: [PeriodTrend.from_dict(t) for t in (raw_trends.get(key) or [])]
                for key in ('monthly', 'quarterly', 'yearly')
            },
        )


class HistoricalStatsProvider:
    """
    Read-mostly access to the historical summary.

    The blob is parsed on first use and cached for the process lifetime.
    A failed load is not cached, so the next call retries.
    """

    def __init__(
        self,
        source: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.source = source
        self.timeout = timeout
        self.session = session or requests.Session()
        self._summary: Optional[HistoricalSummary] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, historical_config) -> 'HistoricalStatsProvider':
        return cls(source=historical_config.path, timeout=historical_config.timeout_seconds)

    def _read_blob(self) -> Any:
        if self.source.startswith(('http://', 'https://')):
            try:
                response = self.session.get(self.source, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except requests.exceptions.RequestException as e:
                raise ProviderError(f'Historical summary fetch failed: {e}', provider=PROVIDER) from e
            except ValueError as e:
                raise ProviderError('Historical summary is not JSON', provider=PROVIDER) from e

        try:
            with open(self.source, 'r', encoding='utf-8') as fh:
                return json.load(fh)
        except OSError as e:
            raise ProviderError(f'Historical summary unreadable: {e}', provider=PROVIDER) from e
        except ValueError as e:
            raise ProviderError(f'Historical summary is not JSON: {e}', provider=PROVIDER) from e

    def load(self) -> HistoricalSummary:
        """Return the cached summary, loading it on first use."""
        with self._lock:
            if self._summary is not None:
                return self._summary

            blob = self._read_blob()
            try:
                summary = HistoricalSummary.from_dict(blob)
            except (KeyError, TypeError, ValueError) as e:
                raise ProviderError(f'Historical summary malformed: {e}', provider=PROVIDER) from e

            self._summary = summary

        logger.info(
            f'Loaded historical data: {len(summary.sites)} sites, '
            f'range {summary.data_range_start} to {summary.data_range_end}'
        )
        return summary

    def reload(self) -> HistoricalSummary:
        """Drop the cached summary and load it again."""
        with self._lock:
            self._summary = None
        return self.load()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _latest_trend(self, period: Period) -> Optional[tuple]:
        """Latest aggregate for the period and the multiplier to apply to it."""
        trends = self.load().trends
        series = trends.get(period.granularity) or []
        if series:
            return series[-1], period.granularity_multiplier

        monthly = trends.get('monthly') or []
        if monthly:
            return monthly[-1], period.monthly_multiplier
        return None

    def overall_stats(self, period: Period) -> Dict[str, Any]:
        """
        Headline figures for a reporting window.

        Scales the most relevant aggregate to the window, e.g. a week is
        7/30 of the latest month.
        """
        latest = self._latest_trend(period)
        if latest is None:
            return empty_overall_stats()

        trend, multiplier = latest
        defaults = DEFAULT_PERIOD_RATES[period]
        on_time = trend.on_time_rate if trend.on_time_rate is not None else defaults['on_time']
        delayed = trend.delayed_rate if trend.delayed_rate is not None else defaults['delayed']
        flights = trend.total_flights * multiplier

        return {
            'total_flights': round_half_up(flights),
            'avg_dep_delay': trend.avg_dep_delay,
            'avg_arr_delay': trend.avg_arr_delay,
            'cancellation_rate': trend.cancellation_rate,
            'total_delayed': round_half_up(flights * delayed / 100),
            'total_cancelled': round_half_up(flights * trend.cancellation_rate / 100),
            'on_time_rate': round(on_time, 1),
            'rates_estimated': trend.on_time_rate is None or trend.delayed_rate is None,
            'reference': trend.label,
        }

    def top_sites(self, limit: int = 10) -> List[SiteHistory]:
        """Sites ordered by historical flight volume."""
        sites = sorted(self.load().sites, key=lambda s: s.total_flights, reverse=True)
        return sites[:limit]

    def daily_trends(self, days: int = 30, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Daily trend points estimated from the latest monthly aggregates.

        Each day takes its calendar month's aggregate when present, else
        the most recent one, divided evenly over 30 days.
        """
        monthly = (self.load().trends.get('monthly') or [])[-3:]
        if not monthly:
            return []

        by_month = {t.label: t for t in monthly}
        today = today or date.today()

        points = []
        for offset in range(days - 1, -1, -1):
            day = today - timedelta(days=offset)
            trend = by_month.get(day.strftime('%Y-%m'), monthly[-1])

            flights = round_half_up(trend.total_flights / 30)
            delayed_rate = trend.delayed_rate if trend.delayed_rate is not None else DEFAULT_DAILY_DELAYED_RATE
            delays = round_half_up(flights * delayed_rate / 100)
            cancellations = round_half_up(flights * trend.cancellation_rate / 100)
            on_time = max(0.0, 100 - delays / flights * 100) if flights else 100.0

            points.append({
                'date': day.isoformat(),
                'total_flights': flights,
                'delays': delays,
                'cancellations': cancellations,
                'on_time_rate': round(on_time, 1),
            })

        return points

    def period_comparison(self, period: Period) -> Dict[str, float]:
        """Percent change between the two latest aggregates of the period's series."""
        series = self.load().trends.get(period.granularity) or []
        if len(series) < 2:
            return {'flights': 0.0, 'delays': 0.0, 'cancellations': 0.0}

        previous, latest = series[-2], series[-1]
        return {
            'flights': percent_change(latest.total_flights, previous.total_flights),
            'delays': percent_change(latest.avg_arr_delay, previous.avg_arr_delay),
            'cancellations': percent_change(latest.total_cancelled, previous.total_cancelled),
        }
