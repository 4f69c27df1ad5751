# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.providers.openrouteservice",
#   "purpose": "OpenRouteService directions transport and the formula fare.",
#   "sections": [
#     {
#       "id": "formula-fare",
#       "name": "formula_fare",
#       "anchor": "function-formula-fare",
#       "kind": "function"
#     },
#     {
#       "id": "openrouteserviceprovider",
#       "name": "OpenRouteServiceProvider",
#       "anchor": "class-openrouteserviceprovider",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""OpenRouteService directions transport (free primary router)."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from ..config.models import FarePolicy
from ..errors import AuthError, ConfigurationError
from ..types import OPENROUTESERVICE, LatLng, RouteInfo
from .adapters import OrsDirections, to_route
from .base import HttpProvider

LOGGER = logging.getLogger(__name__)

PROFILE = "driving-car"


def formula_fare(route: RouteInfo, policy: FarePolicy) -> float:
    """``max(min_fare, base + per_km * km + per_minute * whole_minutes)``.

    Examples:
        >>> route = RouteInfo(polyline=(), distance_km=10.0, duration_s=1200)
        >>> formula_fare(route, FarePolicy())
        240.0
    """
    total = policy.base + policy.per_km * route.distance_km + policy.per_minute * route.duration_minutes
    return max(policy.min_fare, total)


class OpenRouteServiceProvider(HttpProvider):
    """Driving directions from OpenRouteService v2."""

    name = OPENROUTESERVICE

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
        user_agent: str,
        fare_policy: Optional[FarePolicy] = None,
    ) -> None:
        super().__init__(client, user_agent=user_agent)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.fare_policy = fare_policy

    async def route(
        self, coordinates: Sequence[LatLng], *, optimize_waypoints: bool = False
    ) -> RouteInfo:
        if len(coordinates) < 2:
            raise ValueError("a route needs at least an origin and a destination")
        if not self.api_key:
            raise AuthError(f"{self.name}: API key is not configured", provider=self.name)
        body = {
            "coordinates": [c.to_lonlat() for c in coordinates],
            "profile": PROFILE,
            "format": "json",
            "geometry": True,
            "instructions": True,
            "elevation": False,
            "optimize_waypoints": optimize_waypoints,
        }
        data = await self._json(
            "POST",
            f"{self.base_url}/directions/{PROFILE}",
            json_body=body,
            headers={"Authorization": self.api_key, "Content-Type": "application/json"},
        )
        route = to_route(OrsDirections(data))
        LOGGER.debug(
            "openrouteservice route %d points -> %.2f km", len(coordinates), route.distance_km
        )
        return route

    async def estimate_fare(self, route: RouteInfo) -> float:
        if self.fare_policy is None:
            raise ConfigurationError("no fare policy configured", provider=self.name)
        return formula_fare(route, self.fare_policy)

    async def is_service_available(self) -> bool:
        return await self._probe(f"{self.base_url}/health", headers={"Authorization": self.api_key})


__all__ = ["OpenRouteServiceProvider", "formula_fare"]
