"""Tests for the two-tier fallback coordinator."""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from RideLink.MapServices.errors import (
    AuthError,
    CacheError,
    ConfigurationError,
    FallbackExhaustedError,
    NetworkError,
    ProviderError,
)
from RideLink.MapServices.fallback import AttemptRecord, FallbackCoordinator
from RideLink.MapServices.health import ServiceHealthRegistry


class Tier:
    """Counting async callable that returns a value or raises."""

    def __init__(self, value=None, error: Exception | None = None, delay: float = 0.0) -> None:
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


class TestExecute:
    """Primary-then-fallback semantics."""

    def test_primary_success_skips_fallback(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        primary, fallback = Tier("free"), Tier("paid")
        assert asyncio.run(coordinator.execute(primary, fallback, "route")) == "free"
        assert fallback.calls == 0
        assert health.get("primary_route").successful_requests == 1
        assert health.get("fallback_route").total_requests == 0

    def test_recoverable_failure_invokes_fallback_once(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        primary = Tier(error=NetworkError("ors unreachable"))
        fallback = Tier("paid")
        assert asyncio.run(coordinator.execute(primary, fallback, "route")) == "paid"
        assert primary.calls == 1
        assert fallback.calls == 1
        assert health.get("primary_route").failure_count == 1
        assert health.get("fallback_route").successful_requests == 1

    def test_auth_failure_escalates_to_fallback(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        primary = Tier(error=AuthError("invalid api key", status_code=401))
        fallback = Tier("paid")
        assert asyncio.run(coordinator.execute(primary, fallback, "route")) == "paid"
        assert fallback.calls == 1
        assert health.get("primary_route").last_error == "invalid api key"
        assert health.get("fallback_route").successful_requests == 1

    def test_both_tiers_fail(self, coordinator: FallbackCoordinator) -> None:
        primary = Tier(error=NetworkError("ors unreachable"))
        fallback = Tier(error=ProviderError("ZERO_RESULTS"))
        with pytest.raises(FallbackExhaustedError) as excinfo:
            asyncio.run(coordinator.execute(primary, fallback, "route"))
        assert isinstance(excinfo.value.primary_error, NetworkError)
        assert isinstance(excinfo.value.fallback_error, ProviderError)
        assert fallback.calls == 1

    def test_no_fallback_propagates_primary_error(self, coordinator: FallbackCoordinator) -> None:
        with pytest.raises(NetworkError):
            asyncio.run(coordinator.execute(Tier(error=NetworkError("down")), None, "nearby"))

    @pytest.mark.parametrize("error", [CacheError("disk full"), ConfigurationError("no key")])
    def test_non_recoverable_errors_skip_fallback(
        self, coordinator: FallbackCoordinator, error: Exception
    ) -> None:
        fallback = Tier("paid")
        with pytest.raises(type(error)):
            asyncio.run(coordinator.execute(Tier(error=error), fallback, "route"))
        assert fallback.calls == 0

    def test_timeout_becomes_network_error_and_falls_back(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        primary = Tier("late", delay=1.0)
        fallback = Tier("paid")
        result = asyncio.run(coordinator.execute(primary, fallback, "route", timeout=0.05))
        assert result == "paid"
        assert "timed out" in health.get("primary_route").last_error

    def test_timeout_without_fallback(self, coordinator: FallbackCoordinator) -> None:
        with pytest.raises(NetworkError, match="timed out"):
            asyncio.run(coordinator.execute(Tier(delay=1.0), None, "route", timeout=0.05))

    def test_pinned_primary_is_skipped(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        health.set_availability("primary_route", False)
        primary, fallback = Tier("free"), Tier("paid")
        assert asyncio.run(coordinator.execute(primary, fallback, "route")) == "paid"
        assert primary.calls == 0
        assert health.get("primary_route").skipped_requests == 1

    def test_pinned_primary_without_fallback_still_runs(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        health.set_availability("primary_nearby", False)
        primary = Tier("free")
        assert asyncio.run(coordinator.execute(primary, None, "nearby")) == "free"
        assert primary.calls == 1


class TestExecuteFallback:
    """Fallback-only execution."""

    def test_records_under_fallback_key(
        self, coordinator: FallbackCoordinator, health: ServiceHealthRegistry
    ) -> None:
        assert asyncio.run(coordinator.execute_fallback(Tier("paid"), "geocode")) == "paid"
        assert health.get("fallback_geocode").successful_requests == 1
        assert health.get("primary_geocode").total_requests == 0

    def test_failure_propagates(self, coordinator: FallbackCoordinator) -> None:
        with pytest.raises(ProviderError):
            asyncio.run(coordinator.execute_fallback(Tier(error=ProviderError("x")), "geocode"))


class TestObserver:
    """Attempt records."""

    def test_records_each_attempt(self, health: ServiceHealthRegistry) -> None:
        seen: List[AttemptRecord] = []
        coordinator = FallbackCoordinator(health, observer=seen.append)
        asyncio.run(coordinator.execute(Tier(error=NetworkError("down")), Tier("ok"), "route"))
        assert [(r.tier, r.outcome) for r in seen] == [
            ("primary", "failure"),
            ("fallback", "success"),
        ]
        assert seen[0].error_kind == "network"
        assert seen[0].key == "primary_route"

    def test_failing_observer_does_not_break_execution(
        self, health: ServiceHealthRegistry
    ) -> None:
        def explode(record: AttemptRecord) -> None:
            raise RuntimeError("observer bug")

        coordinator = FallbackCoordinator(health, observer=explode)
        assert asyncio.run(coordinator.execute(Tier("ok"), None, "route")) == "ok"

    def test_negative_elapsed_rejected(self) -> None:
        with pytest.raises(ValueError):
            AttemptRecord("route", "primary", "primary_route", "success", -1)
