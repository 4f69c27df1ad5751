# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.clients",
#   "purpose": "Cache-first geocoding, routing and tile clients over the free/paid provider tiers.",
#   "sections": [
#     {
#       "id": "providerclient",
#       "name": "ProviderClient",
#       "anchor": "class-providerclient",
#       "kind": "class"
#     },
#     {
#       "id": "geocodingclient",
#       "name": "GeocodingClient",
#       "anchor": "class-geocodingclient",
#       "kind": "class"
#     },
#     {
#       "id": "routingclient",
#       "name": "RoutingClient",
#       "anchor": "class-routingclient",
#       "kind": "class"
#     },
#     {
#       "id": "tileclient",
#       "name": "TileClient",
#       "anchor": "class-tileclient",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Provider Clients

Every client call runs the same pipeline:

1. Cache lookup (stale entries are acceptable while offline)
2. Offline gate: no network call is attempted while offline
3. Rate limiter: a throttled primary is skipped in favour of the fallback,
   or raises ``RateLimitError`` when there is none
4. :class:`~RideLink.MapServices.fallback.FallbackCoordinator` with the free
   provider as primary and the paid provider as fallback
5. Cache write-through of the successful result

Each provider call is metered by the rate limiter and timed by the
analytics tracker under the provider's own name.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import List, Optional, Sequence, TypeVar

from .analytics import AnalyticsTracker
from .cache import ResponseCache, geocode_key, nearby_key, reverse_key, route_key
from .errors import ConfigurationError, MapServiceError, NetworkError
from .fallback import FallbackCoordinator
from .health import ServiceHealthRegistry
from .offline import OfflineGate
from .providers.google import GoogleMapsProvider
from .providers.nominatim import NominatimProvider
from .providers.openrouteservice import OpenRouteServiceProvider
from .providers.tiles import TileServerProvider, offline_placeholder
from .ratelimit import RateLimiter
from .types import GOOGLE_MAPS, NOMINATIM, OPENROUTESERVICE, LatLng, PlaceResult, RouteInfo, TileImage

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderClient:
    """
    Shared pipeline for the concrete clients.

    Attributes:
        cache: Response cache consulted before and written after each call
        coordinator: Two-tier executor recording health per operation
        rate_limiter: Per-provider budget checked before every outbound call
        analytics: Latency and error tracker per provider
        gate: Connectivity state; ``None`` means always online
        timeout_s: Per-tier timeout handed to the coordinator
    """

    def __init__(
        self,
        *,
        cache: ResponseCache,
        coordinator: FallbackCoordinator,
        rate_limiter: RateLimiter,
        analytics: AnalyticsTracker,
        gate: Optional[OfflineGate] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.cache = cache
        self.coordinator = coordinator
        self.rate_limiter = rate_limiter
        self.analytics = analytics
        self.gate = gate
        self.timeout_s = timeout_s

    @property
    def health(self) -> ServiceHealthRegistry:
        return self.coordinator.health

    @property
    def is_offline(self) -> bool:
        return self.gate is not None and not self.gate.is_online

    def _metered(
        self, provider: str, op_id: str, call: Callable[[], Awaitable[T]]
    ) -> Callable[[], Awaitable[T]]:
        async def run() -> T:
            self.rate_limiter.ensure_capacity(provider)
            self.rate_limiter.record_request(provider)
            return await self.analytics.track_api_call(provider, op_id, call)

        return run

    def _offline_error(self, op_id: str) -> NetworkError:
        self.health.record_skip(f"primary_{op_id}", "offline")
        LOGGER.info("%s unavailable offline with no cached result", op_id)
        return NetworkError(f"Offline and no cached result for {op_id}", details={"op_id": op_id})

    async def _dispatch(
        self,
        op_id: str,
        primary: tuple[str, Callable[[], Awaitable[T]]],
        fallback: Optional[tuple[str, Callable[[], Awaitable[T]]]],
        *,
        force_fallback: bool = False,
    ) -> T:
        """Route one logical call through the rate limiter and the coordinator."""
        primary_name, primary_call = primary
        fallback_call = self._metered(fallback[0], op_id, fallback[1]) if fallback else None

        if force_fallback:
            if fallback_call is None:
                raise ConfigurationError(
                    f"{op_id}: fallback provider requested but the fallback tier is disabled",
                    details={"op_id": op_id},
                )
            return await self.coordinator.execute_fallback(fallback_call, op_id, self.timeout_s)

        if not self.rate_limiter.can_make_request(primary_name):
            if fallback_call is None:
                self.rate_limiter.ensure_capacity(primary_name)
            else:
                self.health.record_skip(f"primary_{op_id}", "rate limited")
                LOGGER.info("%s throttled, using fallback tier for %s", primary_name, op_id)
                return await self.coordinator.execute_fallback(fallback_call, op_id, self.timeout_s)

        return await self.coordinator.execute(
            self._metered(primary_name, op_id, primary_call), fallback_call, op_id, self.timeout_s
        )


class GeocodingClient(ProviderClient):
    """Forward, reverse and nearby place search; Nominatim first, Google second."""

    def __init__(
        self,
        primary: NominatimProvider,
        fallback: Optional[GoogleMapsProvider] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.primary = primary
        self.fallback = fallback

    async def search(
        self,
        query: str,
        *,
        near: Optional[LatLng] = None,
        radius_m: Optional[float] = None,
        limit: int = 10,
        force_fallback: bool = False,
    ) -> List[PlaceResult]:
        if not query.strip():
            raise ValueError("query must not be empty")
        key = geocode_key(query, near, radius_m)
        cached = self.cache.get_places(key, allow_stale=self.is_offline)
        if cached is not None:
            return cached
        if self.is_offline:
            raise self._offline_error("geocode")

        google = self.fallback
        places = await self._dispatch(
            "geocode",
            (NOMINATIM, lambda: self.primary.search(query, near=near, radius_m=radius_m, limit=limit)),
            (GOOGLE_MAPS, lambda: google.geocode(query)) if google else None,
            force_fallback=force_fallback,
        )
        self.cache.put_places(key, places)
        return places

    async def reverse(self, coordinates: LatLng) -> List[PlaceResult]:
        key = reverse_key(coordinates)
        cached = self.cache.get_places(key, allow_stale=self.is_offline)
        if cached is not None:
            return cached
        if self.is_offline:
            raise self._offline_error("reverse_geocode")

        google = self.fallback
        places = await self._dispatch(
            "reverse_geocode",
            (NOMINATIM, lambda: self.primary.reverse(coordinates)),
            (GOOGLE_MAPS, lambda: google.reverse_geocode(coordinates)) if google else None,
        )
        self.cache.put_places(key, places)
        return places

    async def nearby(
        self, location: LatLng, radius_m: float, category: Optional[str] = None
    ) -> List[PlaceResult]:
        """Places around ``location``; Google has no equivalent so there is no fallback."""
        if radius_m <= 0:
            raise ValueError(f"radius_m must be positive, got {radius_m}")
        key = nearby_key(location, radius_m, category)
        cached = self.cache.get_places(key, allow_stale=self.is_offline)
        if cached is not None:
            return cached
        if self.is_offline:
            raise self._offline_error("nearby")

        places = await self._dispatch(
            "nearby",
            (NOMINATIM, lambda: self.primary.nearby(location, radius_m, category)),
            None,
        )
        self.cache.put_places(key, places)
        return places


class RoutingClient(ProviderClient):
    """Driving routes; OpenRouteService first, Google Directions second."""

    def __init__(
        self,
        primary: OpenRouteServiceProvider,
        fallback: Optional[GoogleMapsProvider] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.primary = primary
        self.fallback = fallback

    async def route(
        self,
        origin: LatLng,
        destination: LatLng,
        waypoints: Sequence[LatLng] = (),
        *,
        force_fallback: bool = False,
    ) -> RouteInfo:
        waypoints = tuple(waypoints)
        key = route_key(origin, destination, waypoints)
        cached = self.cache.get_route(key, allow_stale=self.is_offline)
        if cached is not None:
            return cached
        if self.is_offline:
            raise self._offline_error("route")

        coordinates = [origin, *waypoints, destination]
        google = self.fallback
        route = await self._dispatch(
            "route",
            (
                OPENROUTESERVICE,
                lambda: self.primary.route(coordinates, optimize_waypoints=bool(waypoints)),
            ),
            (GOOGLE_MAPS, lambda: google.directions(origin, destination, waypoints))
            if google
            else None,
            force_fallback=force_fallback,
        )
        self.cache.put_route(key, route)
        return route

    async def optimize_waypoints(self, locations: Sequence[LatLng]) -> List[LatLng]:
        """
        Visit order for ``locations`` with fixed endpoints.

        OpenRouteService optimizes server side without reporting the order, so
        a primary success keeps the input order. Google reports
        ``waypoint_order``, which is applied when the fallback tier answers.
        """
        locations = list(locations)
        if len(locations) < 3:
            return locations
        if self.is_offline:
            raise self._offline_error("optimize_waypoints")
        origin, waypoints, destination = locations[0], locations[1:-1], locations[-1]
        google = self.fallback

        async def keep_order() -> List[LatLng]:
            await self.primary.route(locations, optimize_waypoints=True)
            return locations

        async def google_order() -> List[LatLng]:
            order = await google.waypoint_order(origin, destination, waypoints)
            return [origin, *(waypoints[i] for i in order), destination]

        return await self._dispatch(
            "optimize_waypoints",
            (OPENROUTESERVICE, keep_order),
            (GOOGLE_MAPS, google_order) if google else None,
        )

    def remaining_daily_requests(self) -> Optional[int]:
        return self.rate_limiter.get_remaining_daily_requests(OPENROUTESERVICE)


class TileClient(ProviderClient):
    """
    Raster tiles. Never raises for provider failures: when no tile can be
    fetched the caller gets a stale cached tile (offline only) or a
    placeholder image.
    """

    def __init__(
        self,
        primary: TileServerProvider,
        fallback: Optional[TileServerProvider] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.primary = primary
        self.fallback = fallback

    async def tile(self, zoom: int, x: int, y: int) -> TileImage:
        self.primary.tile_url(zoom, x, y)
        cached = self.cache.get_tile(zoom, x, y, allow_stale=self.is_offline)
        if cached is not None:
            return cached
        if self.is_offline:
            self.health.record_skip("primary_tile", "offline")
            return offline_placeholder(zoom, x, y)

        secondary = self.fallback
        try:
            tile = await self._dispatch(
                "tile",
                (self.primary.name, lambda: self.primary.fetch(zoom, x, y)),
                (secondary.name, lambda: secondary.fetch(zoom, x, y)) if secondary else None,
            )
        except MapServiceError as exc:
            LOGGER.warning("Tile %d/%d/%d unavailable, serving placeholder: %s", zoom, x, y, exc)
            return offline_placeholder(zoom, x, y)
        self.cache.put_tile(tile)
        return tile


__all__ = [
    "GeocodingClient",
    "ProviderClient",
    "RoutingClient",
    "TileClient",
]
