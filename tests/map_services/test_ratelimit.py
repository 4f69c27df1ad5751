"""Tests for per-provider rate windows and daily quotas."""

from __future__ import annotations

from datetime import date

import pytest
from support import FakeClock

from RideLink.MapServices.config.models import ProviderRatePolicy
from RideLink.MapServices.errors import RateLimitError
from RideLink.MapServices.ratelimit import RateLimiter, parse_rates


class Calendar:
    def __init__(self, day: date) -> None:
        self.day = day

    def __call__(self) -> date:
        return self.day


def _limiter(clock: FakeClock, **kwargs) -> RateLimiter:
    return RateLimiter(
        {
            "nominatim": ProviderRatePolicy(rates=["1/SECOND"]),
            "openrouteservice": ProviderRatePolicy(rates=["40/MINUTE"], daily_quota=3),
        },
        now=clock,
        **kwargs,
    )


class TestParseRates:
    """Rate string parsing."""

    def test_units(self) -> None:
        rates = parse_rates(["1/SECOND", "40/minute", "2000/DAY"])
        assert [(r.limit, r.interval) for r in rates] == [
            (1, 1000),
            (40, 60_000),
            (2000, 86_400_000),
        ]

    def test_invalid_entries_are_skipped(self) -> None:
        assert parse_rates(["nonsense", "5/FORTNIGHT"]) == []


class TestSlidingWindow:
    """Window admission."""

    def test_one_per_second(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        assert limiter.can_make_request("nominatim")
        limiter.record_request("nominatim")
        assert not limiter.can_make_request("nominatim")
        clock.advance(0.5)
        assert not limiter.can_make_request("nominatim")
        clock.advance(1.5)
        assert limiter.can_make_request("nominatim")

    def test_window_reopens_exactly_one_interval_later(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        limiter.record_request("nominatim")
        clock.advance(1.0)
        assert limiter.can_make_request("nominatim")
        limiter.record_request("nominatim")
        assert not limiter.can_make_request("nominatim")
        assert limiter.status("nominatim").current_usage == 1

    def test_ensure_capacity_reports_retry_after(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        limiter.record_request("nominatim")
        clock.advance(0.25)
        with pytest.raises(RateLimitError) as excinfo:
            limiter.ensure_capacity("nominatim")
        assert excinfo.value.provider == "nominatim"
        assert excinfo.value.retry_after == pytest.approx(0.75, abs=0.01)

    def test_unknown_provider_is_unlimited(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        for _ in range(100):
            limiter.ensure_capacity("osm_tiles")
            limiter.record_request("osm_tiles")
        assert limiter.get_remaining_daily_requests("osm_tiles") is None

    def test_status(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        limiter.record_request("nominatim")
        status = limiter.status("nominatim")
        assert status.limit == 1
        assert status.interval_ms == 1000
        assert status.current_usage == 1
        assert status.remaining == 0
        assert status.throttled
        assert set(limiter.get_rate_limit_status()) == {"nominatim", "openrouteservice"}


class TestDailyQuota:
    """Decrementing quota and resets."""

    def test_quota_exhaustion(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        for _ in range(3):
            limiter.ensure_capacity("openrouteservice")
            limiter.record_request("openrouteservice")
        assert limiter.get_remaining_daily_requests("openrouteservice") == 0
        assert not limiter.can_make_request("openrouteservice")
        with pytest.raises(RateLimitError) as excinfo:
            limiter.ensure_capacity("openrouteservice")
        assert excinfo.value.remaining_daily == 0
        assert limiter.status("openrouteservice").throttled

    def test_manual_reset(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        limiter.record_request("openrouteservice")
        limiter.reset_daily_quota("openrouteservice")
        assert limiter.get_remaining_daily_requests("openrouteservice") == 3

    def test_reset_unknown_provider_is_noop(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        limiter.reset_daily_quota("google_maps")

    def test_new_calendar_day_restores_quota(self, clock: FakeClock) -> None:
        calendar = Calendar(date(2024, 5, 1))
        limiter = _limiter(clock, today=calendar)
        for _ in range(3):
            limiter.record_request("openrouteservice")
        assert limiter.get_remaining_daily_requests("openrouteservice") == 0
        calendar.day = date(2024, 5, 2)
        assert limiter.get_remaining_daily_requests("openrouteservice") == 3

    def test_without_calendar_quota_never_rolls(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        for _ in range(3):
            limiter.record_request("openrouteservice")
        clock.advance(2 * 86_400)
        assert limiter.get_remaining_daily_requests("openrouteservice") == 0
