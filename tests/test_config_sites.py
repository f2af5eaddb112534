from __future__ import annotations

import json

import pytest

from skyboard.config import _parse_bounds, load_config
from skyboard.exceptions import ConfigurationError
from skyboard.models import Period
from skyboard.sites import DEFAULT_SITES, Site, load_sites, validate_sites


# ------------------------------------------------------------------
# Site table
# ------------------------------------------------------------------


def _write_sites(tmp_path, payload) -> str:
    path = tmp_path / "sites.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_builtin_table_is_valid() -> None:
    sites = load_sites(None)

    assert len(sites) == len(DEFAULT_SITES) == 30
    assert len({s.code for s in sites}) == 30


def test_load_sites_from_file_normalizes_codes(tmp_path) -> None:
    path = _write_sites(
        tmp_path,
        [
            {"code": "ord", "name": "O'Hare", "lat": 41.97, "lon": -87.9},
            {"code": "MDW", "lat": "41.78", "lon": -87.75},
        ],
    )

    sites = load_sites(path)

    assert [s.code for s in sites] == ["ORD", "MDW"]
    assert sites[1].name == "MDW"
    assert sites[1].lat == 41.78


@pytest.mark.parametrize(
    "payload",
    [
        {"code": "ORD"},
        [],
        [{"code": "ORD", "lat": 41.9, "lon": -87.9}, {"code": "ord", "lat": 41.9, "lon": -87.9}],
        [{"code": "ORD", "lat": 141.9, "lon": -87.9}],
        [{"code": "ORD", "lat": 41.9, "lon": -287.9}],
        [{"code": "ORD", "lat": "north", "lon": -87.9}],
        [{"name": "No code", "lat": 41.9, "lon": -87.9}],
        ["ORD"],
    ],
)
def test_malformed_site_table_is_fatal(tmp_path, payload) -> None:
    with pytest.raises(ConfigurationError):
        load_sites(_write_sites(tmp_path, payload))


def test_unreadable_site_table_is_fatal(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_sites(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("[{", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_sites(str(broken))


def test_validate_sites_rejects_empty_table() -> None:
    with pytest.raises(ConfigurationError):
        validate_sites([])

    assert validate_sites([Site("ORD", "O'Hare", 41.97, -87.9)])[0].code == "ORD"


# ------------------------------------------------------------------
# Environment settings
# ------------------------------------------------------------------


def test_defaults(monkeypatch) -> None:
    for name in ("LIVE_REFRESH_SECONDS", "HISTORY_RETENTION_DAYS", "STATUS_FEED_URL", "OPENSKY_BOUNDS"):
        monkeypatch.delenv(name, raising=False)

    config = load_config()

    assert config.live_cache.refresh_interval == 60
    assert config.live_cache.max_consecutive_errors == 5
    assert config.history.retention_days == 7
    assert config.history.max_file_bytes == 10 * 1024 * 1024
    assert config.response_cache.live_ttl == 30
    assert config.status_feed.is_configured is False
    assert config.opensky.bounds == (24.396308, -125.0, 49.384358, -66.93457)


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("LIVE_REFRESH_SECONDS", "30")
    monkeypatch.setenv("SITE_RADIUS_NM", "25.5")
    monkeypatch.setenv("STATUS_FEED_URL", "https://status.test/feed")

    config = load_config()

    assert config.live_cache.refresh_interval == 30
    assert config.live_cache.site_radius_nm == 25.5
    assert config.status_feed.is_configured is True


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LIVE_REFRESH_SECONDS", "sixty"),
        ("SITE_RADIUS_NM", "far"),
        ("OPENSKY_BOUNDS", "1,2,3"),
        ("OPENSKY_BOUNDS", "49,-66,24,-125"),
    ],
)
def test_malformed_environment_is_configuration_error(monkeypatch, name, value) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        load_config()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LIVE_REFRESH_SECONDS", "0"),
        ("LIVE_REFRESH_SECONDS", "-60"),
        ("LIVE_FRESHNESS_SECONDS", "0"),
        ("CACHE_LIVE_TTL_SECONDS", "0"),
        ("CACHE_HISTORICAL_TTL_SECONDS", "-1"),
        ("SITE_RADIUS_NM", "0"),
        ("HISTORY_MAX_FILE_BYTES", "0"),
        ("HISTORY_RETENTION_DAYS", "0"),
        ("OPENSKY_DAILY_LIMIT", "-5"),
        ("OPENSKY_TIMEOUT_SECONDS", "0"),
    ],
)
def test_non_positive_settings_are_rejected(monkeypatch, name, value) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match="must be positive"):
        load_config()



def test_empty_bounds_disable_filtering() -> None:
    assert _parse_bounds("") is None


# ------------------------------------------------------------------
# Periods
# ------------------------------------------------------------------


def test_period_parse() -> None:
    assert Period.parse("WEEK") is Period.WEEK
    assert Period.parse(" today ") is Period.TODAY

    with pytest.raises(ValueError, match="expected one of"):
        Period.parse("decade")


def test_period_windows() -> None:
    assert Period.TODAY.is_live is True
    assert Period.YEAR.is_live is False
    assert Period.QUARTER.granularity == "quarterly"
    assert Period.WEEK.granularity == "monthly"
    assert Period.YEAR.monthly_multiplier == 12.0
    assert Period.YEAR.trend_days == 365
