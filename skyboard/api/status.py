"""
Cache status and admin API endpoints.

Provides endpoints for:
- GET /api/cache/status - Live cache health, history and cache statistics
- POST /api/cache/refresh - Force a live refresh and drop cached responses
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify

from skyboard.api.context import get_components

logger = logging.getLogger(__name__)

status_bp = Blueprint('cache_status', __name__, url_prefix='/api/cache')

# Response cache namespaces that depend on the live snapshot
LIVE_NAMESPACES = ('dashboard', 'flights_live', 'site_flights')


@status_bp.route('/status', methods=['GET'])
def get_cache_status():
    """
    Get system health and cache information.

    Returns:
    - Live snapshot cache health, freshness and quota
    - Rolling history statistics (entities, persistence, rotations)
    - Response cache statistics
    - Background task statistics
    """
    start_time = time.perf_counter()
    components = get_components()

    live_status = components.live_cache.get_status()
    config = components.config

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if live_status['is_healthy'] else 'degraded',
        'live': {**live_status, **components.live_cache.stats},
        'history': components.history.stats,
        'response_cache': components.response_cache.stats,
        'tasks': components.scheduler.stats,
        'config': {
            'refresh_interval': config.live_cache.refresh_interval,
            'site_radius_nm': config.live_cache.site_radius_nm,
            'retention_days': config.history.retention_days,
            'opensky_authenticated': config.opensky.is_authenticated,
            'status_feed_configured': components.status_client.is_configured,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@status_bp.route('/refresh', methods=['POST'])
def force_refresh():
    """
    Refresh the live snapshot now.

    Cached responses built from the previous snapshot are dropped on
    success. Responds 503 when the refresh fails; the previous snapshot
    keeps being served.
    """
    components = get_components()
    success = components.live_cache.force_refresh()

    invalidated = 0
    if success:
        for namespace in LIVE_NAMESPACES:
            invalidated += components.response_cache.invalidate_prefix(namespace)

    body = {
        'success': success,
        'invalidated': invalidated,
        'status': components.live_cache.get_status(),
    }
    return jsonify(body), (200 if success else 503)
