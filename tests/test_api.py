from __future__ import annotations

import pytest

from conftest import SITES, FakeSession, FeedProvider
from skyboard.app import create_app
from skyboard.components import build_components
from skyboard.config import load_config
from skyboard.exceptions import ProviderError
from skyboard.ingestion import HistoricalStatsProvider, StatusFeedClient


@pytest.fixture
def provider(feed_factory) -> FeedProvider:
    return FeedProvider([feed_factory(10, grounded=5)])


@pytest.fixture
def components(tmp_path, monkeypatch, clock, provider, historical_file):
    monkeypatch.setenv("HISTORY_DATA_FILE", str(tmp_path / "history" / "flight-history.json"))
    monkeypatch.setenv("HISTORY_ARCHIVE_DIR", str(tmp_path / "history" / "archives"))
    monkeypatch.delenv("SITES_FILE", raising=False)

    built = build_components(
        load_config(),
        live_provider=provider,
        status_client=StatusFeedClient(url=None, session=FakeSession()),
        historical=HistoricalStatsProvider(historical_file),
        sites=list(SITES),
        clock=clock,
    )
    yield built
    built.aggregator.close()


@pytest.fixture
def client(components):
    app = create_app(components=components, start_background=False)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def refreshed(components):
    assert components.live_cache.refresh() is True
    return components


# ------------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------------


def test_dashboard_summary_for_historical_period(client, refreshed) -> None:
    response = client.get("/api/dashboard/summary?period=week")

    assert response.status_code == 200
    body = response.get_json()
    assert body["period"] == "week"
    assert body["summary"]["total_flights"] == 147000
    assert "query_time_ms" in body
    assert body["caveats"]


def test_dashboard_summary_defaults_to_today(client, refreshed) -> None:
    body = client.get("/api/dashboard/summary").get_json()

    assert body["period"] == "today"
    assert body["summary"]["total_flights"] == 10
    assert body["summary"]["delay_source"] == "ground_ratio_estimate"


def test_dashboard_rejects_unknown_period(client) -> None:
    response = client.get("/api/dashboard/summary?period=decade")

    assert response.status_code == 400
    assert "decade" in response.get_json()["error"]


def test_dashboard_responses_are_cached(client, refreshed) -> None:
    first = client.get("/api/dashboard/summary?period=month").get_json()
    second = client.get("/api/dashboard/summary?period=month").get_json()

    assert first["generated_at"] == second["generated_at"]
    assert refreshed.response_cache.stats["hits"] == 1


def test_reads_never_call_the_live_feed(client, refreshed, provider) -> None:
    calls = provider.calls

    client.get("/api/dashboard/summary")
    client.get("/api/flights/live")
    client.get("/api/sites/ORD/flights")
    client.get("/api/cache/status")

    assert provider.calls == calls


def test_dashboard_before_first_refresh_is_degraded_not_failed(client) -> None:
    response = client.get("/api/dashboard/summary")

    assert response.status_code == 200
    body = response.get_json()
    assert body["summary"]["total_flights"] == 0
    assert body["freshness"]["live"]["health"] == "uninitialized"


# ------------------------------------------------------------------
# Flights and sites
# ------------------------------------------------------------------


def test_live_flights_with_filters(client, refreshed) -> None:
    body = client.get("/api/flights/live").get_json()
    assert body["count"] == 10
    assert {f["site"] for f in body["flights"]} == {"ORD"}

    airborne = client.get("/api/flights/live?airborne_only=true").get_json()
    assert airborne["count"] == 5
    assert airborne["total_tracked"] == 10

    limited = client.get("/api/flights/live?limit=3").get_json()
    assert limited["count"] == 3


def test_live_flights_rejects_negative_limit(client) -> None:
    assert client.get("/api/flights/live?limit=-1").status_code == 400


def test_site_list_counts_nearby_flights(client, refreshed) -> None:
    body = client.get("/api/sites").get_json()

    assert body["count"] == 3
    nearby = {s["code"]: s["flights_nearby"] for s in body["sites"]}
    assert nearby == {"ORD": 10, "MDW": 0, "ATL": 0}


def test_site_flights(client, refreshed) -> None:
    body = client.get("/api/sites/ord/flights").get_json()

    assert body["site"]["code"] == "ORD"
    assert body["count"] == 10
    assert body["on_ground"] == 5
    distances = [f["distance_nm"] for f in body["flights"]]
    assert distances == sorted(distances)
    assert all("estimated_delay_minutes" in f for f in body["flights"])


def test_unknown_site_is_404(client) -> None:
    response = client.get("/api/sites/ZZZ/flights")

    assert response.status_code == 404
    assert response.get_json()["error"] == "Unknown site ZZZ"


# ------------------------------------------------------------------
# Status and admin
# ------------------------------------------------------------------


def test_cache_status(client, refreshed) -> None:
    body = client.get("/api/cache/status").get_json()

    assert body["status"] == "healthy"
    assert body["live"]["refresh_count"] == 1
    assert body["live"]["total_flights"] == 10
    assert body["history"]["entities"] == 10
    assert body["config"]["status_feed_configured"] is False
    assert [t["name"] for t in body["tasks"]] == [
        "live-refresh",
        "history-prune",
        "history-rotate",
        "daily-baseline",
        "response-cache-sweep",
    ]


def test_force_refresh_drops_live_responses(client, refreshed, provider) -> None:
    client.get("/api/dashboard/summary")
    client.get("/api/flights/live")

    response = client.post("/api/cache/refresh")

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["invalidated"] == 2
    assert len(refreshed.response_cache) == 0
    assert provider.calls == 2


def test_failed_force_refresh_is_503(client, refreshed, provider) -> None:
    provider.items.append(ProviderError("down"))

    response = client.post("/api/cache/refresh")

    assert response.status_code == 503
    body = response.get_json()
    assert body["success"] is False
    assert body["status"]["health"] == "degraded"
    assert body["status"]["total_flights"] == 10


def test_health_endpoint(client, components) -> None:
    assert client.get("/health").get_json()["status"] == "degraded"

    components.live_cache.refresh()

    body = client.get("/health").get_json()
    assert body["status"] == "ok"
    assert body["live"] == "healthy"


def test_unknown_route_is_json_404(client) -> None:
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}
