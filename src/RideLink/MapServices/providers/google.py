# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.providers.google",
#   "purpose": "Google Maps geocoding and directions transport for the paid fallback tier.",
#   "sections": [
#     {
#       "id": "latlng-param",
#       "name": "_latlng_param",
#       "anchor": "function-latlng-param",
#       "kind": "function"
#     },
#     {
#       "id": "googlemapsprovider",
#       "name": "GoogleMapsProvider",
#       "anchor": "class-googlemapsprovider",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Google Maps Platform transport (paid fallback tier).

Geocoding and Directions both report logical failures through a ``status``
field in a 200 response; :func:`~.adapters.check_google_status` turns those
into typed errors inside the adapters.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config.models import FarePolicy
from ..errors import AuthError, ConfigurationError, ProviderError
from ..types import GOOGLE_MAPS, LatLng, PlaceResult, RouteInfo
from .adapters import (
    GoogleDirections,
    GoogleGeocodeResponse,
    check_google_status,
    to_places,
    to_route,
)
from .base import HttpProvider
from .openrouteservice import formula_fare

LOGGER = logging.getLogger(__name__)


def _latlng_param(coordinates: LatLng) -> str:
    return f"{coordinates.latitude},{coordinates.longitude}"


class GoogleMapsProvider(HttpProvider):
    """Geocoding, reverse geocoding and directions from Google Maps."""

    name = GOOGLE_MAPS

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

    def _params(self, **params: str) -> Dict[str, str]:
        if not self.api_key:
            raise AuthError(f"{self.name}: API key is not configured", provider=self.name)
        return {**params, "key": self.api_key}

    async def geocode(self, address: str) -> List[PlaceResult]:
        body = await self._json(
            "GET", f"{self.base_url}/geocode/json", params=self._params(address=address)
        )
        return to_places(GoogleGeocodeResponse(body))

    async def reverse_geocode(self, coordinates: LatLng) -> List[PlaceResult]:
        body = await self._json(
            "GET",
            f"{self.base_url}/geocode/json",
            params=self._params(latlng=_latlng_param(coordinates)),
        )
        return to_places(GoogleGeocodeResponse(body))

    async def _directions_body(
        self,
        origin: LatLng,
        destination: LatLng,
        waypoints: Sequence[LatLng],
        optimize: bool,
    ) -> Dict[str, Any]:
        params = {
            "origin": _latlng_param(origin),
            "destination": _latlng_param(destination),
            "mode": "driving",
        }
        if waypoints:
            prefix = "optimize:true|" if optimize else ""
            params["waypoints"] = prefix + "|".join(_latlng_param(w) for w in waypoints)
        return await self._json(
            "GET", f"{self.base_url}/directions/json", params=self._params(**params)
        )

    async def directions(
        self,
        origin: LatLng,
        destination: LatLng,
        waypoints: Sequence[LatLng] = (),
        *,
        optimize: bool = True,
    ) -> RouteInfo:
        body = await self._directions_body(origin, destination, waypoints, optimize)
        route = to_route(GoogleDirections(body))
        LOGGER.debug("google directions %d waypoints -> %.2f km", len(waypoints), route.distance_km)
        return route

    async def waypoint_order(
        self, origin: LatLng, destination: LatLng, waypoints: Sequence[LatLng]
    ) -> List[int]:
        """Indices of ``waypoints`` in the order Google's optimizer visits them."""
        body = await self._directions_body(origin, destination, waypoints, True)
        check_google_status(body, self.name)
        try:
            order = [int(i) for i in body["routes"][0].get("waypoint_order") or []]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(f"{self.name}: malformed waypoint order", provider=self.name) from exc
        if sorted(order) != list(range(len(waypoints))):
            raise ProviderError(
                f"{self.name}: waypoint order {order} does not cover the input",
                provider=self.name,
            )
        return order

    async def estimate_fare(self, route: RouteInfo) -> float:
        if self.fare_policy is None:
            raise ConfigurationError("no fare policy configured", provider=self.name)
        return formula_fare(route, self.fare_policy)


__all__ = ["GoogleMapsProvider"]
