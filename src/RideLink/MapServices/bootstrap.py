# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.bootstrap",
#   "purpose": "Explicit construction and lifecycle of the map services component graph.",
#   "sections": [
#     {
#       "id": "build-http-client",
#       "name": "build_http_client",
#       "anchor": "function-build-http-client",
#       "kind": "function"
#     },
#     {
#       "id": "build-cache-store",
#       "name": "build_cache_store",
#       "anchor": "function-build-cache-store",
#       "kind": "function"
#     },
#     {
#       "id": "mapservices",
#       "name": "MapServices",
#       "anchor": "class-mapservices",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Map Services Bootstrap

Builds every registry and client from one immutable
:class:`~RideLink.MapServices.config.MapServicesConfig` and wires them
together. Nothing in the package is a process-wide singleton: callers hold a
:class:`MapServices` instance and use it as an async context manager so the
shared ``httpx.AsyncClient`` and the cache store are closed on exit. Entering
the context probes connectivity and, when enabled, starts periodic health
checks; leaving it stops them.

Example:
    async with MapServices(load_config("mapservices.yaml")) as services:
        route = await services.orchestrator.calculate_route(origin, destination)
        fare = await services.orchestrator.estimate_fare(route)
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

import httpx

from .analytics import AnalyticsTracker
from .cache import ResponseCache
from .cache_store import CacheKind, CacheStore, MemoryCacheStore, SQLiteCacheStore
from .clients import GeocodingClient, RoutingClient, TileClient
from .config.models import CacheConfig, HttpClientConfig, MapServicesConfig, ProviderRatePolicy
from .errors import CacheError
from .fallback import FallbackCoordinator
from .health import ServiceHealthRegistry
from .monitor import ServiceMonitor
from .offline import OfflineGate
from .orchestrator import HybridRouteOrchestrator
from .providers.google import GoogleMapsProvider
from .providers.nominatim import NominatimProvider
from .providers.openrouteservice import OpenRouteServiceProvider
from .providers.tiles import TileServerProvider
from .ratelimit import RateLimiter
from .types import NOMINATIM, OPENROUTESERVICE

LOGGER = logging.getLogger(__name__)

FALLBACK_TILES = "fallback_tiles"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def build_http_client(config: HttpClientConfig) -> httpx.AsyncClient:
    """Shared async client; ``max_retries`` applies to connection establishment only."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_s, connect=config.connect_timeout_s),
        transport=httpx.AsyncHTTPTransport(retries=config.max_retries),
        follow_redirects=True,
    )


def build_cache_store(config: CacheConfig) -> CacheStore:
    """SQLite store at ``config.path``; an in-memory store when that cannot be opened."""
    if config.backend == "memory":
        return MemoryCacheStore()
    try:
        return SQLiteCacheStore(config.path)
    except CacheError as exc:
        LOGGER.warning("Persistent cache unavailable, caching in memory for this session: %s", exc)
        return MemoryCacheStore()


def _rate_policies(config: MapServicesConfig) -> dict[str, ProviderRatePolicy]:
    policies = dict(config.rate_limits)
    ors = policies.get(OPENROUTESERVICE)
    if ors is not None:
        policies[OPENROUTESERVICE] = ors.model_copy(
            update={"daily_quota": config.openrouteservice.daily_limit}
        )
    return policies


class MapServices:
    """
    Component container for one configuration.

    Attributes:
        config: Immutable configuration the graph was built from
        analytics, health, rate_limiter, gate, cache, coordinator: Shared registries
        geocoding, routing, tiles: Provider clients
        orchestrator: Route and fare facade
        monitor: Status, alerts and active probes
    """

    def __init__(
        self,
        config: Optional[MapServicesConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[CacheStore] = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.config = config or MapServicesConfig()
        cfg = self.config
        self._owns_client = client is None
        self.client = client or build_http_client(cfg.http)

        self.analytics = AnalyticsTracker()
        self.health = ServiceHealthRegistry()
        self.rate_limiter = RateLimiter(_rate_policies(cfg), today=today)
        self.gate = OfflineGate(
            cfg.offline.probe_urls, client=self.client, timeout_s=cfg.offline.probe_timeout_s
        )
        self.cache = ResponseCache(
            store or build_cache_store(cfg.cache),
            connectivity=self.gate,
            recorder=self.analytics,
            ttls={
                CacheKind.TILE: cfg.cache.tile_ttl_s,
                CacheKind.GEOCODE: cfg.cache.geocode_ttl_s,
                CacheKind.ROUTE: cfg.cache.route_ttl_s,
            },
            sweep_on_startup=cfg.cache.sweep_on_startup,
        )
        self.coordinator = FallbackCoordinator(self.health, default_timeout_s=cfg.http.timeout_s)

        user_agent = cfg.endpoints.user_agent
        self.nominatim = NominatimProvider(
            self.client, base_url=cfg.endpoints.nominatim_url, user_agent=user_agent
        )
        self.openrouteservice = OpenRouteServiceProvider(
            self.client,
            base_url=cfg.endpoints.openrouteservice_url,
            api_key=cfg.openrouteservice.api_key,
            user_agent=user_agent,
            fare_policy=cfg.fare,
        )
        self.google: Optional[GoogleMapsProvider] = None
        if cfg.fallback_available:
            self.google = GoogleMapsProvider(
                self.client,
                base_url=cfg.google.base_url,
                api_key=cfg.google.api_key,
                user_agent=user_agent,
                fare_policy=cfg.fare,
            )
        elif cfg.enable_fallback:
            LOGGER.info("Fallback enabled but no Google API key configured; running free tier only")

        tile_fallback = None
        if cfg.endpoints.fallback_tile_url_template:
            tile_fallback = TileServerProvider(
                self.client,
                url_template=cfg.endpoints.fallback_tile_url_template,
                user_agent=user_agent,
                name=FALLBACK_TILES,
            )

        shared = dict(
            cache=self.cache,
            coordinator=self.coordinator,
            rate_limiter=self.rate_limiter,
            analytics=self.analytics,
            gate=self.gate,
            timeout_s=cfg.http.timeout_s,
        )
        self.geocoding = GeocodingClient(self.nominatim, self.google, **shared)
        self.routing = RoutingClient(self.openrouteservice, self.google, **shared)
        self.tiles = TileClient(
            TileServerProvider(
                self.client, url_template=cfg.endpoints.tile_url_template, user_agent=user_agent
            ),
            tile_fallback,
            **shared,
        )
        estimators = [self.openrouteservice] + ([self.google] if self.google else [])
        self.orchestrator = HybridRouteOrchestrator(
            self.routing, fare_policy=cfg.fare, estimators=estimators
        )
        self.monitor = ServiceMonitor(
            self.analytics,
            self.health,
            self.rate_limiter,
            probes={
                NOMINATIM: self.nominatim.is_service_available,
                OPENROUTESERVICE: self.openrouteservice.is_service_available,
            },
        )
        LOGGER.debug("MapServices built (config %s)", cfg.config_hash()[:12])

    async def start(self) -> None:
        """Probe connectivity and start background monitoring, as configured."""
        if self.config.offline.check_on_start:
            await self.gate.initialize()
        if self.config.monitoring.enabled:
            self.monitor.start(self.config.monitoring.interval_s)

    async def aclose(self) -> None:
        await self.monitor.stop()
        await self.gate.close()
        self.cache.close()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "MapServices":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["MapServices", "build_cache_store", "build_http_client", "utc_today"]
