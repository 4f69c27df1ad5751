"""Shared fixtures for the map services tests."""

from __future__ import annotations

import logging

import httpx
import pytest
from support import FakeClock

from RideLink.MapServices.analytics import AnalyticsTracker
from RideLink.MapServices.cache import ResponseCache
from RideLink.MapServices.cache_store import MemoryCacheStore
from RideLink.MapServices.fallback import FallbackCoordinator
from RideLink.MapServices.health import ServiceHealthRegistry
from RideLink.MapServices.offline import OfflineGate
from RideLink.MapServices.ratelimit import RateLimiter


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def health(clock: FakeClock) -> ServiceHealthRegistry:
    return ServiceHealthRegistry(now=clock)


@pytest.fixture
def analytics(clock: FakeClock) -> AnalyticsTracker:
    return AnalyticsTracker(now=clock, wall=clock)


@pytest.fixture
def gate() -> OfflineGate:
    """Online gate whose probes always answer."""
    transport = httpx.MockTransport(lambda request: httpx.Response(204))
    return OfflineGate(("https://probe.test",), client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def cache(clock: FakeClock, gate: OfflineGate, analytics: AnalyticsTracker) -> ResponseCache:
    return ResponseCache(MemoryCacheStore(), connectivity=gate, recorder=analytics, now=clock)


@pytest.fixture
def coordinator(health: ServiceHealthRegistry, clock: FakeClock) -> FallbackCoordinator:
    return FallbackCoordinator(health, default_timeout_s=1.0, clock=clock)


@pytest.fixture
def unlimited() -> RateLimiter:
    """Limiter with no policies; every provider is unlimited."""
    return RateLimiter({})


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo handlers and propagation changes made by ``setup_logging``."""
    logger = logging.getLogger("RideLink.MapServices")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    for handler in list(logger.handlers):
        if handler not in saved[0]:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(saved[1])
    logger.propagate = saved[2]
