"""
Composition root.

Constructs every component once, wires them together and owns their
lifecycle. There are no module-level instances: the Flask app keeps a
Components object in `app.extensions['skyboard']` and request handlers
reach the core through it.

Wiring:
    OpenSkyClient.fetch_live_feed --> LiveSnapshotCache.refresh
    LiveSnapshotCache (update callback) --> RollingHistoryStore.append
    DataAggregator reads LiveSnapshotCache, RollingHistoryStore,
        HistoricalStatsProvider and StatusFeedClient
    ResponseCache fronts DataAggregator at the API layer
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from skyboard.cache import ResponseCache
from skyboard.config import AppConfig
from skyboard.exceptions import ProviderError
from skyboard.ingestion import (
    HistoricalStatsProvider,
    LiveFeed,
    LiveSnapshotCache,
    OpenSkyClient,
    StatusFeedClient,
)
from skyboard.scheduler import Scheduler
from skyboard.services import DataAggregator
from skyboard.sites import Site, load_sites
from skyboard.storage import RollingHistoryStore

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Every long-lived object of a running SkyBoard process."""
    config: AppConfig
    sites: List[Site]
    status_client: StatusFeedClient
    historical: HistoricalStatsProvider
    history: RollingHistoryStore
    live_cache: LiveSnapshotCache
    aggregator: DataAggregator
    response_cache: ResponseCache
    scheduler: Scheduler
    opensky: Optional[OpenSkyClient] = None

    def start(self) -> None:
        """Start the persist worker and every periodic task."""
        self.history.start_persist_worker()
        self.scheduler.start()

    def stop(self) -> None:
        """Stop timers, then flush the rolling history to disk."""
        self.scheduler.stop()
        self.aggregator.close()
        self.history.stop()
        logger.info('SkyBoard components stopped')


def build_scheduler(
    config: AppConfig,
    live_cache: LiveSnapshotCache,
    history: RollingHistoryStore,
    response_cache: ResponseCache,
) -> Scheduler:
    """One independent timer per background job."""
    history_cfg = config.history
    scheduler = Scheduler()

    scheduler.add(
        'live-refresh',
        config.live_cache.refresh_interval,
        live_cache.refresh,
        run_immediately=True,
    )
    scheduler.add('history-prune', history_cfg.prune_interval, history.prune)
    scheduler.add(
        'history-rotate',
        history_cfg.rotate_interval,
        lambda: history.rotate_if_oversized(history_cfg.max_file_bytes),
    )
    # First run only records today's date
    scheduler.add(
        'daily-baseline',
        history_cfg.baseline_check_interval,
        lambda: history.capture_daily_baseline(live_cache.get_all()),
        run_immediately=True,
    )
    scheduler.add('response-cache-sweep', config.response_cache.sweep_interval, response_cache.cleanup)

    return scheduler


def build_components(
    config: AppConfig,
    live_provider: Optional[Callable[[], LiveFeed]] = None,
    status_client: Optional[StatusFeedClient] = None,
    historical: Optional[HistoricalStatsProvider] = None,
    sites: Optional[List[Site]] = None,
    clock: Callable[[], float] = time.time,
) -> Components:
    """
    Build and wire all components from configuration.

    Providers can be injected (tests, alternative feeds); by default
    they are constructed from config.

    Raises:
        ConfigurationError if the site table is malformed
    """
    if sites is None:
        sites = load_sites(config.sites_file)

    opensky = None
    if live_provider is None:
        opensky = OpenSkyClient.from_config(config.opensky)
        live_provider = opensky.fetch_live_feed

    status_client = status_client or StatusFeedClient.from_config(config.status_feed)
    historical = historical or HistoricalStatsProvider.from_config(config.historical)

    try:
        historical.load()
    except ProviderError as e:
        logger.warning(f'Historical statistics not loaded at startup: {e}')

    history = RollingHistoryStore.from_config(config.history, clock=clock)
    history.load()

    live_cache = LiveSnapshotCache.from_config(
        config.live_cache,
        provider=live_provider,
        sites=sites,
        daily_limit=config.opensky.daily_limit,
        clock=clock,
    )
    live_cache.add_update_callback(history.append)

    aggregator = DataAggregator(
        live_cache=live_cache,
        history=history,
        historical=historical,
        status_client=status_client,
        sites=sites,
        source_timeout=max(config.status_feed.timeout_seconds, config.historical.timeout_seconds),
    )

    response_cache = ResponseCache.from_config(config.response_cache, clock=clock)
    scheduler = build_scheduler(config, live_cache, history, response_cache)

    logger.info(
        f'Components ready: {len(sites)} sites, '
        f'status feed {"configured" if status_client.is_configured else "not configured"}'
    )

    return Components(
        config=config,
        sites=list(sites),
        status_client=status_client,
        historical=historical,
        history=history,
        live_cache=live_cache,
        aggregator=aggregator,
        response_cache=response_cache,
        scheduler=scheduler,
        opensky=opensky,
    )
