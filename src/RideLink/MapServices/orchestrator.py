# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.orchestrator",
#   "purpose": "Route, waypoint and fare operations on top of the routing client.",
#   "sections": [
#     {
#       "id": "fareestimator",
#       "name": "FareEstimator",
#       "anchor": "class-fareestimator",
#       "kind": "class"
#     },
#     {
#       "id": "hybridrouteorchestrator",
#       "name": "HybridRouteOrchestrator",
#       "anchor": "class-hybridrouteorchestrator",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Hybrid Route Orchestrator

Ride-facing facade over :class:`~RideLink.MapServices.clients.RoutingClient`.
Route calculation propagates errors from the client; waypoint optimization and
fare estimation always resolve:

- ``optimized_waypoints`` returns the input order when every tier fails
- ``estimate_fare`` tries the free estimator, then the paid one, then the
  deterministic :func:`formula_fare`
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .clients import RoutingClient
from .config.models import FarePolicy
from .errors import MapServiceError
from .providers.openrouteservice import formula_fare
from .types import FORMULA, OPENROUTESERVICE, LatLng, RouteInfo

LOGGER = logging.getLogger(__name__)


def _valid_fare(fare: object) -> bool:
    if isinstance(fare, bool) or not isinstance(fare, (int, float)):
        return False
    return math.isfinite(fare) and fare >= 0


class FareEstimator(Protocol):
    name: str

    async def estimate_fare(self, route: RouteInfo) -> float: ...


class HybridRouteOrchestrator:
    """
    Attributes:
        routing: Cache-first routing client
        fare_policy: Constants for the terminal fare formula
        estimators: Fare estimators tried in order before the formula
        fallback_enabled: Whether the paid tier is configured
    """

    def __init__(
        self,
        routing: RoutingClient,
        *,
        fare_policy: Optional[FarePolicy] = None,
        estimators: Sequence[FareEstimator] = (),
    ) -> None:
        self.routing = routing
        self.fare_policy = fare_policy or FarePolicy()
        self.estimators = list(estimators)

    @property
    def fallback_enabled(self) -> bool:
        return self.routing.fallback is not None

    async def calculate_route(self, origin: LatLng, destination: LatLng) -> RouteInfo:
        return await self.routing.route(origin, destination)

    async def route_with_waypoints(
        self, origin: LatLng, destination: LatLng, waypoints: Sequence[LatLng]
    ) -> RouteInfo:
        return await self.routing.route(origin, destination, waypoints)

    async def optimized_waypoints(self, locations: Sequence[LatLng]) -> List[LatLng]:
        """Best visit order for ``locations``; the input order when that cannot be determined."""
        try:
            return await self.routing.optimize_waypoints(locations)
        except MapServiceError as exc:
            LOGGER.info("Waypoint optimization unavailable, keeping input order: %s", exc)
            return list(locations)

    async def estimate_fare(self, route: RouteInfo) -> float:
        for estimator in self.estimators:
            try:
                fare = await estimator.estimate_fare(route)
            except Exception as exc:
                LOGGER.info("Fare estimator %s failed: %s", estimator.name, exc)
                continue
            if _valid_fare(fare):
                return float(fare)
            LOGGER.warning("Fare estimator %s returned unusable fare %r", estimator.name, fare)
        LOGGER.debug("Using %s fare for %.2f km", FORMULA, route.distance_km)
        return formula_fare(route, self.fare_policy)

    async def priced_route(self, origin: LatLng, destination: LatLng) -> RouteInfo:
        """``calculate_route`` with ``estimated_fare`` filled in."""
        route = await self.calculate_route(origin, destination)
        fare = await self.estimate_fare(route)
        return route.with_fare(fare)

    async def is_free_service_available(self) -> bool:
        return await self.routing.primary.is_service_available()

    async def service_health(self) -> Dict[str, Any]:
        health = self.routing.health
        return {
            "free_service": {
                "name": OPENROUTESERVICE,
                "available": await self.is_free_service_available(),
                "remaining_requests": self.routing.remaining_daily_requests(),
                "daily_limit": self.routing.rate_limiter.status(OPENROUTESERVICE).daily_quota,
            },
            "fallback_enabled": self.fallback_enabled,
            "tiers": {
                key: health.get(key).to_dict() for key in ("primary_route", "fallback_route")
            },
        }


__all__ = ["FareEstimator", "HybridRouteOrchestrator", "formula_fare"]
