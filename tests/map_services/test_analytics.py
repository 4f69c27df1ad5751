"""Tests for the analytics tracker."""

from __future__ import annotations

import asyncio

import pytest
from support import FakeClock

from RideLink.MapServices.analytics import MAX_ERRORS, AnalyticsTracker
from RideLink.MapServices.errors import NetworkError


class TestTracking:
    """Call and cache accounting."""

    def test_track_api_call_success(self, analytics: AnalyticsTracker, clock: FakeClock) -> None:
        async def call() -> str:
            clock.advance(0.25)
            return "ok"

        assert asyncio.run(analytics.track_api_call("nominatim", "geocode", call)) == "ok"
        stats = analytics.get_service_stats("nominatim")
        assert stats["total_calls"] == 1
        assert stats["error_count"] == 0
        assert stats["average_response_time_ms"] == pytest.approx(250.0)
        assert stats["success_rate"] == 1.0
        assert stats["last_call"] is not None

    def test_track_api_call_failure_propagates(self, analytics: AnalyticsTracker) -> None:
        async def call() -> None:
            raise NetworkError("unreachable", provider="nominatim")

        with pytest.raises(NetworkError):
            asyncio.run(analytics.track_api_call("nominatim", "geocode", call))
        summary = analytics.get_analytics_summary()
        assert summary["total_requests"] == 1
        assert summary["total_errors"] == 1
        assert summary["errors_by_service"] == {"nominatim": 1}
        [entry] = analytics.get_error_log()
        assert entry["error_type"] == "NetworkError"
        assert entry["operation"] == "geocode"

    def test_cache_hit_rate(self, analytics: AnalyticsTracker) -> None:
        for _ in range(3):
            analytics.track_cache_hit("tile")
        analytics.track_cache_miss("geocode")
        summary = analytics.get_analytics_summary()
        assert summary["cache_hit_rate"] == pytest.approx(75.0)
        assert summary["cache_by_kind"] == {
            "geocode": {"hits": 0, "misses": 1},
            "tile": {"hits": 3, "misses": 0},
        }

    def test_empty_summary(self, analytics: AnalyticsTracker) -> None:
        summary = analytics.get_analytics_summary()
        assert summary["success_rate"] == 1.0
        assert summary["cache_hit_rate"] == 0.0
        assert summary["services"] == []

    def test_error_log_is_bounded(self, analytics: AnalyticsTracker) -> None:
        for index in range(MAX_ERRORS + 20):
            analytics.record_call("ors", "route", 0.1, RuntimeError(str(index)))
        log = analytics.get_error_log()
        assert len(log) == MAX_ERRORS
        assert log[-1]["error"] == str(MAX_ERRORS + 19)
        assert len(analytics.get_error_log(limit=5)) == 5

    def test_reset(self, analytics: AnalyticsTracker) -> None:
        analytics.record_call("ors", "route", 0.1)
        analytics.track_cache_hit("route")
        analytics.reset()
        summary = analytics.get_analytics_summary()
        assert summary["total_requests"] == 0
        assert summary["cache_hits"] == 0


class TestPerformance:
    """Percentiles and export."""

    def test_percentiles(self, analytics: AnalyticsTracker, clock: FakeClock) -> None:
        for latency in (0.1, 0.2, 0.3, 0.4, 1.0):
            analytics.record_call("ors", "route", latency)
        clock.advance(120)
        metrics = analytics.get_performance_metrics()["ors"]
        assert metrics["min_ms"] == pytest.approx(100.0)
        assert metrics["max_ms"] == pytest.approx(1000.0)
        assert metrics["p50_ms"] == pytest.approx(300.0)
        assert metrics["average_response_time_ms"] == pytest.approx(400.0)
        assert metrics["error_rate"] == 0.0
        assert metrics["requests_per_minute"] == pytest.approx(2.5)

    def test_export(self, analytics: AnalyticsTracker) -> None:
        analytics.record_call("ors", "route", 0.1)
        exported = analytics.export_analytics_data({"ors": {"remaining_daily": 10}})
        assert set(exported) == {
            "summary",
            "performance_metrics",
            "rate_limit_status",
            "error_log",
            "exported_at",
        }
        assert exported["rate_limit_status"] == {"ors": {"remaining_daily": 10}}
