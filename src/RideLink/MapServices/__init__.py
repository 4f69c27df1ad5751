# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices",
#   "purpose": "Package initialization for RideLink.MapServices",
#   "sections": [
#     {
#       "id": "getattr",
#       "name": "__getattr__",
#       "anchor": "function-getattr",
#       "kind": "function"
#     },
#     {
#       "id": "dir",
#       "name": "__dir__",
#       "anchor": "function-dir",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Public API for the RideLink map services resilience layer.

Free geocoding, routing and tile providers sit in front of an optional paid
fallback tier, behind a persistent response cache, per-provider rate limits,
a connectivity gate and a health registry. :class:`MapServices` builds the
whole graph from one configuration object.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Tuple

__version__ = "0.1.0"

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "AnalyticsTracker": (".analytics", "AnalyticsTracker"),
    "ErrorKind": (".errors", "ErrorKind"),
    "FallbackCoordinator": (".fallback", "FallbackCoordinator"),
    "FallbackExhaustedError": (".errors", "FallbackExhaustedError"),
    "GeocodingClient": (".clients", "GeocodingClient"),
    "HybridRouteOrchestrator": (".orchestrator", "HybridRouteOrchestrator"),
    "LatLng": (".types", "LatLng"),
    "MapServiceError": (".errors", "MapServiceError"),
    "MapServices": (".bootstrap", "MapServices"),
    "MapServicesConfig": (".config.models", "MapServicesConfig"),
    "OfflineGate": (".offline", "OfflineGate"),
    "PlaceResult": (".types", "PlaceResult"),
    "RateLimiter": (".ratelimit", "RateLimiter"),
    "ResponseCache": (".cache", "ResponseCache"),
    "RouteInfo": (".types", "RouteInfo"),
    "RoutingClient": (".clients", "RoutingClient"),
    "ServiceHealthRegistry": (".health", "ServiceHealthRegistry"),
    "ServiceMonitor": (".monitor", "ServiceMonitor"),
    "TileClient": (".clients", "TileClient"),
    "TileImage": (".types", "TileImage"),
    "load_config": (".config.loader", "load_config"),
}

__all__ = [*sorted(_EXPORTS), "__version__"]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .analytics import AnalyticsTracker
    from .bootstrap import MapServices
    from .cache import ResponseCache
    from .clients import GeocodingClient, RoutingClient, TileClient
    from .config.loader import load_config
    from .config.models import MapServicesConfig
    from .errors import ErrorKind, FallbackExhaustedError, MapServiceError
    from .fallback import FallbackCoordinator
    from .health import ServiceHealthRegistry
    from .monitor import ServiceMonitor
    from .offline import OfflineGate
    from .orchestrator import HybridRouteOrchestrator
    from .ratelimit import RateLimiter
    from .types import LatLng, PlaceResult, RouteInfo, TileImage


def __getattr__(name: str) -> Any:
    """Lazily import exports so ``import RideLink.MapServices`` stays light."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module = import_module(target[0], __name__)
    value = getattr(module, target[1])
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
