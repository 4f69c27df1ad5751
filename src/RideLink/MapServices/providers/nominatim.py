# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.providers.nominatim",
#   "purpose": "Nominatim forward, reverse and nearby geocoding transport.",
#   "sections": [
#     {
#       "id": "viewbox",
#       "name": "viewbox",
#       "anchor": "function-viewbox",
#       "kind": "function"
#     },
#     {
#       "id": "nominatimprovider",
#       "name": "NominatimProvider",
#       "anchor": "class-nominatimprovider",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Nominatim (OpenStreetMap) geocoding transport.

Free forward and reverse geocoder. Nominatim's usage policy requires a
distinguishing ``User-Agent`` and at most one request per second; the latter
is enforced by the rate limiter before this module is reached.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from ..types import NOMINATIM, LatLng, PlaceResult
from .adapters import NominatimPlaces, to_places
from .base import HttpProvider

LOGGER = logging.getLogger(__name__)

METERS_PER_DEGREE = 111_000.0


def viewbox(center: LatLng, radius_m: float) -> str:
    """``minLon,maxLat,maxLon,minLat`` box around ``center``.

    Examples:
        >>> viewbox(LatLng(10.0, 20.0), 111000)
        '19.0,11.0,21.0,9.0'
    """
    delta = radius_m / METERS_PER_DEGREE
    return (
        f"{center.longitude - delta},{center.latitude + delta},"
        f"{center.longitude + delta},{center.latitude - delta}"
    )


class NominatimProvider(HttpProvider):
    """Forward, reverse and nearby search against a Nominatim server."""

    name = NOMINATIM

    def __init__(self, client: httpx.AsyncClient, *, base_url: str, user_agent: str) -> None:
        super().__init__(client, user_agent=user_agent)
        self.base_url = base_url.rstrip("/")

    async def search(
        self,
        query: str,
        *,
        near: Optional[LatLng] = None,
        radius_m: Optional[float] = None,
        limit: int = 10,
    ) -> List[PlaceResult]:
        params: Dict[str, str] = {
            "q": query,
            "format": "json",
            "addressdetails": "1",
            "limit": str(limit),
            "extratags": "1",
            "namedetails": "1",
        }
        if near is not None:
            params["lat"] = str(near.latitude)
            params["lon"] = str(near.longitude)
            if radius_m is not None:
                params["viewbox"] = viewbox(near, radius_m)
                params["bounded"] = "1"
        body = await self._json("GET", f"{self.base_url}/search", params=params)
        places = to_places(NominatimPlaces(body))
        LOGGER.debug("nominatim search %r -> %d places", query, len(places))
        return places

    async def reverse(self, coordinates: LatLng) -> List[PlaceResult]:
        params = {
            "lat": str(coordinates.latitude),
            "lon": str(coordinates.longitude),
            "format": "json",
            "addressdetails": "1",
            "extratags": "1",
            "namedetails": "1",
            "zoom": "18",
        }
        body = await self._json("GET", f"{self.base_url}/reverse", params=params)
        return to_places(NominatimPlaces(body))

    async def nearby(
        self, location: LatLng, radius_m: float, category: Optional[str] = None
    ) -> List[PlaceResult]:
        params = {
            "q": category or "*",
            "format": "json",
            "addressdetails": "1",
            "limit": "20",
            "viewbox": viewbox(location, radius_m),
            "bounded": "1",
        }
        body = await self._json("GET", f"{self.base_url}/search", params=params)
        return to_places(NominatimPlaces(body))

    async def is_service_available(self) -> bool:
        return await self._probe(f"{self.base_url}/status")


__all__ = ["NominatimProvider", "viewbox"]
