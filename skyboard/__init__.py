"""
SkyBoard Backend Package.

Real-time flight status dashboard core built with Flask, Requests, and NumPy.

Modules:
    api/         REST endpoints for the dashboard, live flights, and cache status
    models/      Entity snapshots, daily statistics and reporting periods
    storage/     Persisted rolling 24h/7d flight history with archive rotation
    ingestion/   Upstream provider clients and the live snapshot cache
    analytics/   Daily statistics derivation and delay/cancellation heuristics
    services/    Data aggregator combining live and historical layers
    cache.py     Short-TTL response cache in front of the aggregator
    scheduler.py Background timers (refresh, prune, rotate, sweep, baseline)
    config.py    Centralized configuration from environment variables
    components.py Construction and wiring of every long-lived component
"""

__version__ = '1.0.0'
