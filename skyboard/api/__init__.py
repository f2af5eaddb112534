"""
API module for SkyBoard.

Provides REST endpoints for:
- Dashboard summary per period
- Live flights and per-site flights
- Cache status and admin refresh
"""

from skyboard.api.dashboard import dashboard_bp
from skyboard.api.flights import flights_bp, sites_bp
from skyboard.api.status import status_bp

__all__ = ['dashboard_bp', 'flights_bp', 'sites_bp', 'status_bp']
