"""HTTP transports and response adapters for the map providers."""

from .adapters import format_route_summary, to_places, to_route
from .base import HttpProvider
from .google import GoogleMapsProvider
from .nominatim import NominatimProvider, viewbox
from .openrouteservice import OpenRouteServiceProvider, formula_fare
from .tiles import TileServerProvider, offline_placeholder

__all__ = [
    "GoogleMapsProvider",
    "HttpProvider",
    "NominatimProvider",
    "OpenRouteServiceProvider",
    "TileServerProvider",
    "format_route_summary",
    "formula_fare",
    "offline_placeholder",
    "to_places",
    "to_route",
    "viewbox",
]
