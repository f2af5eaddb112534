from __future__ import annotations

from datetime import date

import pytest
import requests

from conftest import FakeResponse, FakeSession, historical_blob
from skyboard.exceptions import ProviderError
from skyboard.ingestion.historical import HistoricalStatsProvider, HistoricalSummary
from skyboard.models import Period


@pytest.fixture
def provider(historical_file) -> HistoricalStatsProvider:
    return HistoricalStatsProvider(historical_file)


def test_summary_parses_metadata_sites_and_trends() -> None:
    summary = HistoricalSummary.from_dict(historical_blob(site_count=3))

    assert summary.source == "BTS On-Time Performance"
    assert summary.data_range_end == "2025-06-30"
    assert [s.code for s in summary.sites] == ["S00", "S01", "S02", "IDLE"]
    assert [t.label for t in summary.trends["quarterly"]] == ["2025-Q1", "2025-Q2"]
    assert summary.trends["yearly"] == []
    assert summary.trends["monthly"][0].on_time_rate is None


def test_week_scales_latest_month(provider) -> None:
    stats = provider.overall_stats(Period.WEEK)

    assert stats["total_flights"] == 147000
    assert stats["total_delayed"] == 32340
    assert stats["total_cancelled"] == 2940
    assert stats["on_time_rate"] == 75.0
    assert stats["rates_estimated"] is False
    assert stats["reference"] == "2025-06"


def test_today_is_one_thirtieth_of_month(provider) -> None:
    assert provider.overall_stats(Period.TODAY)["total_flights"] == 21000


def test_quarter_uses_quarterly_series_with_default_rates(provider) -> None:
    stats = provider.overall_stats(Period.QUARTER)

    assert stats["total_flights"] == 1900000
    assert stats["on_time_rate"] == 61.2
    assert stats["rates_estimated"] is True
    assert stats["reference"] == "2025-Q2"


def test_year_falls_back_to_monthly_times_twelve(provider) -> None:
    stats = provider.overall_stats(Period.YEAR)

    assert stats["total_flights"] == 630000 * 12
    assert stats["reference"] == "2025-06"


def test_no_trends_gives_zero_figures(tmp_path) -> None:
    path = tmp_path / "empty.json"
    path.write_text('{"metadata": {}, "airports": [], "trends": {}}', encoding="utf-8")

    stats = HistoricalStatsProvider(str(path)).overall_stats(Period.MONTH)

    assert stats["total_flights"] == 0
    assert stats["reference"] is None


def test_period_comparison_uses_last_two_aggregates(provider) -> None:
    assert provider.period_comparison(Period.MONTH) == {
        "flights": 5.0,
        "delays": 25.0,
        "cancellations": 40.0,
    }
    assert provider.period_comparison(Period.YEAR) == {
        "flights": 0.0,
        "delays": 0.0,
        "cancellations": 0.0,
    }


def test_daily_trends_are_deterministic(provider) -> None:
    first = provider.daily_trends(days=30, today=date(2026, 6, 15))
    second = provider.daily_trends(days=30, today=date(2026, 6, 15))

    assert first == second
    assert len(first) == 30
    assert first[-1]["date"] == "2026-06-15"
    assert first[0]["date"] == "2026-05-17"
    assert first[-1] == {
        "date": "2026-06-15",
        "total_flights": 21000,
        "delays": 4620,
        "cancellations": 420,
        "on_time_rate": 78.0,
    }


def test_daily_trends_use_matching_month(provider) -> None:
    points = provider.daily_trends(days=2, today=date(2025, 6, 1))

    may, june = points
    assert may["total_flights"] == 20000
    assert may["delays"] == 3000  # default 15% delayed rate
    assert june["total_flights"] == 21000


def test_top_sites_sorted_by_volume(provider) -> None:
    top = provider.top_sites(limit=3)

    assert [s.code for s in top] == ["S34", "S33", "S32"]


def test_missing_file_raises_provider_error(tmp_path) -> None:
    with pytest.raises(ProviderError):
        HistoricalStatsProvider(str(tmp_path / "missing.json")).load()


def test_failed_load_is_retried(tmp_path) -> None:
    path = tmp_path / "late.json"
    provider = HistoricalStatsProvider(str(path))

    with pytest.raises(ProviderError):
        provider.load()

    path.write_text('{"airports": [], "trends": {}}', encoding="utf-8")
    assert provider.load().sites == []


def test_url_source_uses_session() -> None:
    session = FakeSession(FakeResponse(historical_blob(site_count=2)))
    provider = HistoricalStatsProvider("https://example.test/summary.json", session=session)

    provider.load()
    provider.load()

    assert len(session.calls) == 1
    assert session.calls[0][1]["timeout"] == 10.0


def test_url_source_errors_become_provider_errors() -> None:
    provider = HistoricalStatsProvider(
        "https://example.test/summary.json",
        session=FakeSession(error=requests.ConnectionError("refused")),
    )

    with pytest.raises(ProviderError) as exc_info:
        provider.load()
    assert exc_info.value.provider == "historical"


def test_reload_rereads_source(tmp_path) -> None:
    path = tmp_path / "summary.json"
    path.write_text('{"airports": [], "trends": {}}', encoding="utf-8")
    provider = HistoricalStatsProvider(str(path))
    provider.load()

    path.write_text('{"airports": [{"code": "ORD", "totalFlights": 10}], "trends": {}}', encoding="utf-8")

    assert provider.load().sites == []
    assert [s.code for s in provider.reload().sites] == ["ORD"]
