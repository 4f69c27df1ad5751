# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.providers.tiles",
#   "purpose": "Templated raster tile transport with offline placeholders.",
#   "sections": [
#     {
#       "id": "offline-placeholder",
#       "name": "offline_placeholder",
#       "anchor": "function-offline-placeholder",
#       "kind": "function"
#     },
#     {
#       "id": "max-tile-index",
#       "name": "max_tile_index",
#       "anchor": "function-max-tile-index",
#       "kind": "function"
#     },
#     {
#       "id": "tileserverprovider",
#       "name": "TileServerProvider",
#       "anchor": "class-tileserverprovider",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Raster tile transport for ``{z}/{x}/{y}`` tile servers."""

from __future__ import annotations

import base64

import httpx

from ..errors import ProviderError
from ..types import OSM_TILES, TileImage
from .base import HttpProvider

# 1x1 PNG returned when no tile is reachable.
OFFLINE_PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def offline_placeholder(zoom: int, x: int, y: int) -> TileImage:
    return TileImage(zoom=zoom, x=x, y=y, data=OFFLINE_PLACEHOLDER_PNG, is_placeholder=True)


def max_tile_index(zoom: int) -> int:
    return (1 << zoom) - 1


class TileServerProvider(HttpProvider):
    """Fetches raw tile bytes from a templated URL."""

    name = OSM_TILES

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url_template: str,
        user_agent: str,
        name: str = OSM_TILES,
    ) -> None:
        super().__init__(client, user_agent=user_agent)
        self.url_template = url_template
        self.name = name

    def tile_url(self, zoom: int, x: int, y: int) -> str:
        if zoom < 0 or not (0 <= x <= max_tile_index(zoom)) or not (0 <= y <= max_tile_index(zoom)):
            raise ValueError(f"tile {zoom}/{x}/{y} is outside the tile grid")
        return self.url_template.format(z=zoom, x=x, y=y)

    async def fetch(self, zoom: int, x: int, y: int) -> TileImage:
        url = self.tile_url(zoom, x, y)
        response = await self._request("GET", url, headers={"Accept": "image/png,image/*"})
        if not response.content:
            raise ProviderError(f"{self.name}: empty tile body for {zoom}/{x}/{y}", provider=self.name)
        return TileImage(zoom=zoom, x=x, y=y, data=response.content, url=url)


__all__ = ["OFFLINE_PLACEHOLDER_PNG", "TileServerProvider", "max_tile_index", "offline_placeholder"]
