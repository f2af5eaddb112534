"""
Live flight and site API endpoints.

Provides endpoints for:
- GET /api/flights/live - All entities in the current live snapshot
- GET /api/sites - Tracked sites with nearby flight counts
- GET /api/sites/<code>/flights - Entities assigned to one site

All reads come from the live snapshot cache; none of them calls the
upstream feed.
"""

import logging
import time
from typing import Dict

from flask import Blueprint, jsonify, request

from skyboard.analytics import estimate_delay_minutes
from skyboard.api.context import get_components
from skyboard.cache import make_key
from skyboard.ingestion.live_cache import LiveState
from skyboard.models import EntitySnapshot

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/flights')
sites_bp = Blueprint('sites', __name__, url_prefix='/api/sites')


def _nearest_sites(state: LiveState) -> Dict[str, str]:
    """Entity id -> assigned site code."""
    return {
        assignment.entity.id: code
        for code, assignments in state.site_index.by_site.items()
        for assignment in assignments
    }


def _flight_dict(snapshot: EntitySnapshot) -> dict:
    result = snapshot.to_dict()
    result['estimated_delay_minutes'] = estimate_delay_minutes(
        snapshot.altitude, snapshot.speed, snapshot.on_ground
    )
    return result


@flights_bp.route('/live', methods=['GET'])
def list_live_flights():
    """
    List all entities in the current live snapshot.

    Query params:
    - airborne_only: boolean, exclude entities on the ground (default false)
    - limit: max results (default: all)
    """
    start_time = time.perf_counter()

    airborne_only = request.args.get('airborne_only', 'false').lower() == 'true'
    limit = request.args.get('limit', type=int)
    if limit is not None and limit < 0:
        return jsonify({'error': 'limit must be non-negative'}), 400

    components = get_components()
    live_cache = components.live_cache

    def compute() -> dict:
        state = live_cache.state
        nearest = _nearest_sites(state)
        entities = [e for e in state.entities if e.is_active] if airborne_only else list(state.entities)
        if limit is not None:
            entities = entities[:limit]

        flights = []
        for entity in entities:
            flight = entity.to_dict()
            flight['site'] = nearest.get(entity.id)
            flights.append(flight)

        return {
            'flights': flights,
            'count': len(flights),
            'total_tracked': len(state.entities),
            'capture_time': state.capture_time,
            'status': live_cache.get_status(),
        }

    data = components.response_cache.get_or_compute(
        make_key('flights_live', airborne_only=airborne_only, limit=limit),
        compute,
        ttl_seconds=components.config.response_cache.live_ttl,
    )

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        **data,
        'query_time_ms': round(query_time_ms, 2),
    })


@sites_bp.route('', methods=['GET'])
def list_sites():
    """List tracked sites with the number of live entities near each."""
    components = get_components()
    index = components.live_cache.state.site_index

    sites = []
    for site in components.sites:
        site_dict = site.to_dict()
        site_dict['flights_nearby'] = len(index.assignments_near(site.code))
        sites.append(site_dict)

    return jsonify({
        'sites': sites,
        'count': len(sites),
        'radius_nm': components.live_cache.radius_nm,
    })


@sites_bp.route('/<code>/flights', methods=['GET'])
def get_site_flights(code: str):
    """
    Get entities whose nearest tracked site is `code`.

    Each entity carries its distance to the site and a display delay
    estimate derived from its ground movement.
    """
    start_time = time.perf_counter()
    code = code.upper()

    components = get_components()
    site = next((s for s in components.sites if s.code == code), None)
    if site is None:
        return jsonify({'error': f'Unknown site {code}'}), 404

    live_cache = components.live_cache

    def compute() -> dict:
        assignments = live_cache.get_site_assignments(code)
        flights = []
        for assignment in sorted(assignments, key=lambda a: a.distance_nm):
            flight = _flight_dict(assignment.entity)
            flight['distance_nm'] = round(assignment.distance_nm, 1)
            flights.append(flight)

        return {
            'site': site.to_dict(),
            'flights': flights,
            'count': len(flights),
            'on_ground': sum(1 for f in flights if f['on_ground']),
            'radius_nm': live_cache.radius_nm,
            'capture_time': live_cache.state.capture_time,
        }

    data = components.response_cache.get_or_compute(
        make_key('site_flights', code=code),
        compute,
        ttl_seconds=components.config.response_cache.live_ttl,
    )

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        **data,
        'query_time_ms': round(query_time_ms, 2),
    })
