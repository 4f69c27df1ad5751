"""Tests for the service health registry."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st
from support import FakeClock

from RideLink.MapServices.health import (
    HealthState,
    ServiceHealth,
    ServiceHealthRegistry,
)


class TestRecording:
    """Success/failure bookkeeping."""

    def test_unknown_service_is_optimistic(self, health: ServiceHealthRegistry) -> None:
        record = health.get("nominatim")
        assert record.is_available
        assert record.success_rate == 1.0
        assert record.total_requests == 0

    def test_mixed_outcomes(self, health: ServiceHealthRegistry) -> None:
        for _ in range(3):
            health.record_failure("ors", "timeout")
        health.record_success("ors", 0.2)
        health.record_success("ors", 0.4)
        record = health.get("ors")
        assert record.total_requests == 5
        assert record.successful_requests == 2
        assert record.success_rate == pytest.approx(0.4)
        assert record.avg_response_time == pytest.approx(0.3)
        assert record.failure_count == 3
        assert record.is_available
        assert record.last_error is None

    def test_five_failures_make_unavailable(self, health: ServiceHealthRegistry) -> None:
        for _ in range(4):
            health.record_failure("ors", "HTTP 503")
        assert health.is_available("ors")
        health.record_failure("ors", "HTTP 503")
        assert not health.is_available("ors")
        assert health.get("ors").last_error == "HTTP 503"
        assert health.state("ors") is HealthState.UNAVAILABLE

    def test_success_restores_availability(self, health: ServiceHealthRegistry) -> None:
        for _ in range(5):
            health.record_failure("ors", "boom")
        health.record_success("ors", 0.1)
        assert health.is_available("ors")

    def test_skips_do_not_count_as_requests(
        self, health: ServiceHealthRegistry, clock: FakeClock
    ) -> None:
        health.record_skip("primary_route", "offline")
        record = health.get("primary_route")
        assert record.skipped_requests == 1
        assert record.total_requests == 0
        assert record.last_checked == clock()

    def test_negative_latency_is_clamped(self, health: ServiceHealthRegistry) -> None:
        health.record_success("ors", -1.0)
        assert health.get("ors").avg_response_time == 0.0


class TestScoring:
    """Composite health score and state."""

    def test_perfect_score(self) -> None:
        assert ServiceHealth(name="x").health_score == pytest.approx(1.0)

    def test_degraded_state(self, health: ServiceHealthRegistry) -> None:
        health.record_success("ors", 0.1)
        health.record_failure("ors", "boom")
        assert health.state("ors") is HealthState.DEGRADED

    def test_healthy_state(self, health: ServiceHealthRegistry) -> None:
        health.record_success("ors", 0.1)
        assert health.state("ors") is HealthState.HEALTHY
        assert health.is_healthy("ors")

    @given(
        outcomes=st.lists(
            st.tuples(st.booleans(), st.floats(min_value=0.0, max_value=120.0)),
            max_size=40,
        )
    )
    def test_score_is_bounded(self, outcomes: list) -> None:
        registry = ServiceHealthRegistry(now=FakeClock())
        for ok, latency in outcomes:
            if ok:
                registry.record_success("svc", latency)
            else:
                registry.record_failure("svc", "err")
        record = registry.get("svc")
        assert 0.0 <= record.health_score <= 1.0
        assert 0.0 <= record.success_rate <= 1.0
        assert record.successful_requests <= record.total_requests

    def test_overall_score_counts_unavailable_as_zero(
        self, health: ServiceHealthRegistry
    ) -> None:
        health.record_success("a", 0.1)
        for _ in range(5):
            health.record_failure("b", "down")
        assert health.overall_score() == pytest.approx(0.5)

    def test_overall_score_empty(self, health: ServiceHealthRegistry) -> None:
        assert health.overall_score() == 0.0


class TestOverrides:
    """Manual pins and resets."""

    def test_override_wins_until_cleared(self, health: ServiceHealthRegistry) -> None:
        health.set_availability("google_maps", False)
        assert not health.is_available("google_maps")
        assert health.state("google_maps") is HealthState.MANUAL_UNAVAILABLE
        health.record_success("google_maps", 0.1)
        assert not health.is_available("google_maps")
        health.clear_override("google_maps")
        assert health.is_available("google_maps")

    def test_reset_forgets_everything(self, health: ServiceHealthRegistry) -> None:
        for _ in range(5):
            health.record_failure("ors", "down")
        health.set_availability("ors", False)
        health.reset("ors")
        assert not health.has_override("ors")
        assert health.get("ors") == ServiceHealth(name="ors")

    def test_reset_all(self, health: ServiceHealthRegistry) -> None:
        health.record_failure("a", "x")
        health.set_availability("b", False)
        health.reset_all()
        assert health.get("a").failure_count == 0
        assert health.is_available("b")


class TestSelection:
    """best_of and staleness."""

    def test_best_of_prefers_higher_score(self, health: ServiceHealthRegistry) -> None:
        health.record_success("fast", 0.1)
        health.record_success("slow", 8.0)
        assert health.best_of(["slow", "fast"]) == "fast"

    def test_best_of_skips_unavailable(self, health: ServiceHealthRegistry) -> None:
        health.set_availability("fast", False)
        health.record_success("slow", 8.0)
        assert health.best_of(["fast", "slow"]) == "slow"
        health.set_availability("slow", False)
        assert health.best_of(["fast", "slow"]) is None

    def test_best_of_ties_keep_input_order(self, health: ServiceHealthRegistry) -> None:
        assert health.best_of(["a", "b"]) == "a"

    def test_stale_after_five_minutes(
        self, health: ServiceHealthRegistry, clock: FakeClock
    ) -> None:
        health.record_success("ors", 0.1)
        assert health.stale() == []
        clock.advance(301)
        assert health.stale() == ["ors"]
