"""
SkyBoard Flask Application.

Main entry point for the web application. Initializes:
- Configuration and the site table (fatal if malformed)
- Core components (live cache, rolling history, aggregator, caches)
- Background timers (live refresh, prune, rotation, baseline, sweep)
- API routes

Usage:
    python -m skyboard.app

Or with gunicorn:
    gunicorn 'skyboard.app:create_app()'
"""

import atexit
import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from skyboard.api import dashboard_bp, flights_bp, sites_bp, status_bp
from skyboard.api.context import EXTENSION_KEY
from skyboard.components import Components, build_components
from skyboard.config import AppConfig, load_config

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def create_app(
    config: Optional[AppConfig] = None,
    components: Optional[Components] = None,
    start_background: bool = True,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        config: Configuration; loaded from the environment if omitted.
        components: Prebuilt components (tests); built from config if omitted.
        start_background: Whether to start the background timers.
                          Set to False for testing.

    Returns:
        Configured Flask application instance.

    Raises:
        ConfigurationError for malformed settings or site table.
    """
    if config is None:
        config = components.config if components is not None else load_config()
    configure_logging(config.debug)

    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if components is None:
        components = build_components(config)
    app.extensions[EXTENSION_KEY] = components

    # Register API blueprints
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(flights_bp)
    app.register_blueprint(sites_bp)
    app.register_blueprint(status_bp)

    if start_background:
        components.start()
        atexit.register(components.stop)
        logger.info(
            f'Live refresh every {config.live_cache.refresh_interval}s, '
            f'{len(components.sites)} sites within {config.live_cache.site_radius_nm}nm'
        )

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        live_status = components.live_cache.get_status()
        return {
            'status': 'ok' if live_status['is_healthy'] else 'degraded',
            'live': live_status['health'],
            'is_fresh': live_status['is_fresh'],
        }

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    config = load_config()
    app = create_app(config)

    # Get port from environment or default
    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting SkyBoard on http://localhost:{port}')
    logger.info(f'Dashboard: http://localhost:{port}/api/dashboard/summary')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate background threads
    )


if __name__ == '__main__':
    run_development_server()
