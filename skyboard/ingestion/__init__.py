"""
Data ingestion module for SkyBoard.

Upstream provider clients (live positions, airspace status, historical
statistics) and the live snapshot cache that polls the live feed.
"""

from skyboard.ingestion.opensky_client import OpenSkyClient, LiveFeed, StateVector
from skyboard.ingestion.status_client import StatusFeedClient, SiteStatus
from skyboard.ingestion.historical import HistoricalStatsProvider, HistoricalSummary
from skyboard.ingestion.live_cache import LiveSnapshotCache, CacheHealth

__all__ = [
    'OpenSkyClient',
    'LiveFeed',
    'StateVector',
    'StatusFeedClient',
    'SiteStatus',
    'HistoricalStatsProvider',
    'HistoricalSummary',
    'LiveSnapshotCache',
    'CacheHealth',
]
