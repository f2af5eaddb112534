"""
Configuration management for SkyBoard.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.

Values are read when load_config() runs, not at import, so a malformed
setting surfaces as a ConfigurationError at startup.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from skyboard.exceptions import ConfigurationError

load_dotenv()

# Continental US: lat_min, lon_min, lat_max, lon_max
DEFAULT_BOUNDS = '24.396308,-125.0,49.384358,-66.93457'


def _require_positive(name: str, value):
    """Numeric settings are intervals, TTLs, limits or sizes; all must be > 0."""
    if not value > 0:
        raise ConfigurationError(f'{name} must be positive, got {value}')
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f'{name} must be an integer, got {raw!r}') from None
    return _require_positive(name, value)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f'{name} must be a number, got {raw!r}') from None
    return _require_positive(name, value)


def _parse_bounds(value: str) -> Optional[Tuple[float, float, float, float]]:
    """Parse 'lat_min,lon_min,lat_max,lon_max' into a tuple, or None if empty."""
    if not value:
        return None
    try:
        lat_min, lon_min, lat_max, lon_max = (float(v.strip()) for v in value.split(','))
    except ValueError:
        raise ConfigurationError(f'OPENSKY_BOUNDS is malformed: {value!r}') from None
    if lat_min >= lat_max or lon_min >= lon_max:
        raise ConfigurationError(f'OPENSKY_BOUNDS has inverted corners: {value!r}')
    return (lat_min, lon_min, lat_max, lon_max)


@dataclass(frozen=True)
class OpenSkyConfig:
    """Live-position feed (OpenSky) configuration."""
    username: Optional[str] = field(default_factory=lambda: os.getenv('OPENSKY_USERNAME') or None)
    password: Optional[str] = field(default_factory=lambda: os.getenv('OPENSKY_PASSWORD') or None)
    base_url: str = field(
        default_factory=lambda: os.getenv('OPENSKY_API_URL', 'https://opensky-network.org/api')
    )
    daily_limit: int = field(default_factory=lambda: _env_int('OPENSKY_DAILY_LIMIT', 4000))
    timeout_seconds: float = field(
        default_factory=lambda: _env_float('OPENSKY_TIMEOUT_SECONDS', 15.0)
    )
    bounds: Optional[Tuple[float, float, float, float]] = field(
        default_factory=lambda: _parse_bounds(os.getenv('OPENSKY_BOUNDS', DEFAULT_BOUNDS))
    )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class StatusFeedConfig:
    """National airspace status feed configuration."""
    url: Optional[str] = field(default_factory=lambda: os.getenv('STATUS_FEED_URL') or None)
    timeout_seconds: float = field(
        default_factory=lambda: _env_float('STATUS_FEED_TIMEOUT_SECONDS', 10.0)
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class HistoricalConfig:
    """Historical on-time performance summary (file path or http(s) URL)."""
    path: str = field(
        default_factory=lambda: os.getenv('HISTORICAL_DATA_PATH', 'data/historical-summary.json')
    )
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class LiveCacheConfig:
    """Live snapshot cache settings."""
    refresh_interval: int = field(default_factory=lambda: _env_int('LIVE_REFRESH_SECONDS', 60))
    max_consecutive_errors: int = field(
        default_factory=lambda: _env_int('LIVE_MAX_CONSECUTIVE_ERRORS', 5)
    )
    freshness_seconds: int = field(default_factory=lambda: _env_int('LIVE_FRESHNESS_SECONDS', 120))
    site_radius_nm: float = field(default_factory=lambda: _env_float('SITE_RADIUS_NM', 50.0))


@dataclass(frozen=True)
class HistoryConfig:
    """Rolling history persistence and retention policy."""
    data_file: str = field(
        default_factory=lambda: os.getenv('HISTORY_DATA_FILE', os.path.join('data', 'flight-history.json'))
    )
    archive_dir: str = field(
        default_factory=lambda: os.getenv('HISTORY_ARCHIVE_DIR', os.path.join('data', 'archives'))
    )
    retention_days: int = field(default_factory=lambda: _env_int('HISTORY_RETENTION_DAYS', 7))
    stats_window_hours: int = 24
    max_file_bytes: int = field(
        default_factory=lambda: _env_int('HISTORY_MAX_FILE_BYTES', 10 * 1024 * 1024)
    )
    prune_interval: int = 300  # every 5 minutes
    rotate_interval: int = 3600  # hourly
    baseline_check_interval: int = 300


@dataclass(frozen=True)
class ResponseCacheConfig:
    """Response cache settings."""
    live_ttl: int = field(default_factory=lambda: _env_int('CACHE_LIVE_TTL_SECONDS', 30))
    historical_ttl: int = field(default_factory=lambda: _env_int('CACHE_HISTORICAL_TTL_SECONDS', 300))
    max_entries: int = 500
    sweep_interval: int = 300


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    opensky: OpenSkyConfig
    status_feed: StatusFeedConfig
    historical: HistoricalConfig
    live_cache: LiveCacheConfig
    history: HistoryConfig
    response_cache: ResponseCacheConfig

    # None = built-in site table
    sites_file: Optional[str]

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        opensky=OpenSkyConfig(),
        status_feed=StatusFeedConfig(),
        historical=HistoricalConfig(),
        live_cache=LiveCacheConfig(),
        history=HistoryConfig(),
        response_cache=ResponseCacheConfig(),
        sites_file=os.getenv('SITES_FILE') or None,
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )
