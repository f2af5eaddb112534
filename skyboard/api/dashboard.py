"""
Dashboard API endpoints.

Provides endpoints for:
- GET /api/dashboard/summary?period=today|week|month|quarter|year

Responses are memoized in the response cache: live views for
CACHE_LIVE_TTL_SECONDS, historical views for CACHE_HISTORICAL_TTL_SECONDS.
"""

import logging
import time

from flask import Blueprint, jsonify, request

from skyboard.api.context import get_components
from skyboard.cache import make_key
from skyboard.models import Period

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')


def ttl_for(period: Period, cache_config) -> int:
    return cache_config.live_ttl if period.is_live else cache_config.historical_ttl


@dashboard_bp.route('/summary', methods=['GET'])
def get_summary():
    """
    Get the aggregated dashboard for a period.

    Query params:
    - period: today (default), week, month, quarter, year

    Always 200 for a valid period; degraded sources are reported in
    the `caveats` list rather than as an error status.
    """
    start_time = time.perf_counter()

    try:
        period = Period.parse(request.args.get('period', 'today'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    components = get_components()
    key = make_key('dashboard', period=period.value)

    data = components.response_cache.get_or_compute(
        key,
        lambda: components.aggregator.get_dashboard_data(period).to_dict(),
        ttl_seconds=ttl_for(period, components.config.response_cache),
    )

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        **data,
        'query_time_ms': round(query_time_ms, 2),
    })
