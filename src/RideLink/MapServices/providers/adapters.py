# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.providers.adapters",
#   "purpose": "Per-provider response schemas adapted to canonical places and routes.",
#   "sections": [
#     {
#       "id": "nominatimplaces",
#       "name": "NominatimPlaces",
#       "anchor": "class-nominatimplaces",
#       "kind": "class"
#     },
#     {
#       "id": "googlegeocoderesponse",
#       "name": "GoogleGeocodeResponse",
#       "anchor": "class-googlegeocoderesponse",
#       "kind": "class"
#     },
#     {
#       "id": "orsdirections",
#       "name": "OrsDirections",
#       "anchor": "class-orsdirections",
#       "kind": "class"
#     },
#     {
#       "id": "googledirections",
#       "name": "GoogleDirections",
#       "anchor": "class-googledirections",
#       "kind": "class"
#     },
#     {
#       "id": "to-places",
#       "name": "to_places",
#       "anchor": "function-to-places",
#       "kind": "function"
#     },
#     {
#       "id": "to-route",
#       "name": "to_route",
#       "anchor": "function-to-route",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Provider response adapters.

Each provider schema is wrapped in its own tagged record
(``NominatimPlaces``, ``GoogleGeocodeResponse``, ``OrsDirections``,
``GoogleDirections``). :func:`to_places` and :func:`to_route` are the only
places that know those layouts; everything downstream sees
:class:`~RideLink.MapServices.types.PlaceResult` and
:class:`~RideLink.MapServices.types.RouteInfo`.

Malformed payloads raise :class:`ProviderError`. Individual malformed
geocoding hits are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import polyline

from ..errors import AuthError, ProviderError, RateLimitError
from ..types import (
    GOOGLE_DIRECTIONS,
    GOOGLE_GEOCODING,
    NOMINATIM,
    OPENROUTESERVICE,
    LatLng,
    PlaceResult,
    RouteInfo,
    RouteStep,
)

LOGGER = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class NominatimPlaces:
    """Body of Nominatim ``/search`` (a list) or ``/reverse`` (a single object)."""

    body: Union[List[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class GoogleGeocodeResponse:
    """Body of the Google Geocoding API."""

    body: Dict[str, Any]


@dataclass(frozen=True)
class OrsDirections:
    """Body of OpenRouteService ``/directions/{profile}`` (JSON format)."""

    body: Dict[str, Any]


@dataclass(frozen=True)
class GoogleDirections:
    """Body of the Google Directions API."""

    body: Dict[str, Any]


GeocodePayload = Union[NominatimPlaces, GoogleGeocodeResponse]
RoutePayload = Union[OrsDirections, GoogleDirections]


# ============================================================================
# Formatting helpers
# ============================================================================


def format_route_summary(distance_km: float, duration_s: float) -> str:
    """Render ``"1h 5min (12.3 km)"`` or ``"7min (850 m)"``.

    Examples:
        >>> format_route_summary(12.34, 3900)
        '1h 5min (12.3 km)'
        >>> format_route_summary(0.85, 420)
        '7min (850 m)'
    """
    if distance_km < 1.0:
        distance_text = f"{round(distance_km * 1000)} m"
    else:
        distance_text = f"{distance_km:.1f} km"
    minutes = int(duration_s // 60)
    hours = minutes // 60
    duration_text = f"{hours}h {minutes % 60}min" if hours > 0 else f"{minutes}min"
    return f"{duration_text} ({distance_text})"


def decode_polyline(encoded: str) -> Tuple[LatLng, ...]:
    try:
        return tuple(LatLng(lat, lon) for lat, lon in polyline.decode(encoded))
    except (ValueError, IndexError, TypeError) as exc:
        raise ProviderError(f"Undecodable route geometry: {exc}") from exc


def _describe(kind: Optional[str], category: Optional[str]) -> Optional[str]:
    if kind and category:
        return f"{kind.replace('_', ' ')} ({category.replace('_', ' ')})"
    if kind or category:
        return (kind or category or "").replace("_", " ")
    return None


def _first_part(text: str) -> str:
    return text.split(",")[0].strip() if text else text


# ============================================================================
# Geocoding
# ============================================================================


def _nominatim_place(item: Dict[str, Any]) -> Optional[PlaceResult]:
    try:
        lat = float(item["lat"])
        lon = float(item["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    display_name = item.get("display_name") or ""
    namedetails = item.get("namedetails") or {}
    name = item.get("name") or namedetails.get("name") or _first_part(display_name)
    place_id = item.get("place_id") or item.get("osm_id") or f"{lat}_{lon}"
    types = tuple(str(t) for t in (item.get("type"), item.get("class")) if t)
    try:
        importance = float(item.get("importance") or 0.0)
    except (TypeError, ValueError):
        importance = 0.0
    try:
        coordinates = LatLng(lat, lon)
    except ValueError:
        return None
    return PlaceResult(
        place_id=str(place_id),
        name=name,
        address=display_name,
        coordinates=coordinates,
        description=_describe(item.get("type"), item.get("class")),
        types=types,
        relevance_score=max(0.0, min(100.0, importance * 100.0)),
        provider=NOMINATIM,
    )


def _google_place(item: Dict[str, Any], rank: int, total: int) -> Optional[PlaceResult]:
    try:
        location = item["geometry"]["location"]
        coordinates = LatLng(float(location["lat"]), float(location["lng"]))
    except (KeyError, TypeError, ValueError):
        return None
    address = item.get("formatted_address") or ""
    components = item.get("address_components") or []
    name = components[0].get("long_name") if components else _first_part(address)
    types = tuple(item.get("types") or ())
    # Google returns results best-first without a score.
    relevance = 100.0 * (total - rank) / total if total else 0.0
    return PlaceResult(
        place_id=str(item.get("place_id") or f"{coordinates.latitude}_{coordinates.longitude}"),
        name=name or address,
        address=address,
        coordinates=coordinates,
        description=_describe(types[0] if types else None, None),
        types=types,
        relevance_score=relevance,
        provider=GOOGLE_GEOCODING,
    )


def check_google_status(body: Dict[str, Any], provider: str) -> None:
    """Raise for a non-OK ``status`` field in a Google Maps response body."""
    status = body.get("status", "OK")
    if status in ("OK", "ZERO_RESULTS"):
        return
    message = body.get("error_message") or status
    if status in ("OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT"):
        raise RateLimitError(f"{provider}: {message}", provider=provider)
    if status == "REQUEST_DENIED":
        raise AuthError(f"{provider}: {message}", provider=provider)
    raise ProviderError(f"{provider}: {message}", provider=provider, details={"status": status})


def to_places(payload: GeocodePayload) -> List[PlaceResult]:
    """Adapt a geocoding payload to canonical places, skipping malformed hits."""
    if isinstance(payload, NominatimPlaces):
        body = payload.body
        items = body if isinstance(body, list) else [body]
        if isinstance(body, dict) and "error" in body:
            return []
        places = [p for p in (_nominatim_place(i) for i in items if isinstance(i, dict)) if p]
    elif isinstance(payload, GoogleGeocodeResponse):
        check_google_status(payload.body, GOOGLE_GEOCODING)
        results = payload.body.get("results") or []
        places = [
            p for p in (_google_place(r, i, len(results)) for i, r in enumerate(results)) if p
        ]
    else:
        raise TypeError(f"unsupported geocode payload {type(payload).__name__}")
    return places


# ============================================================================
# Routing
# ============================================================================


def _ors_step(step: Dict[str, Any], geometry: Sequence[LatLng]) -> Optional[RouteStep]:
    way_points = step.get("way_points") or []
    if len(way_points) < 2 or not geometry:
        return None
    last = len(geometry) - 1
    start = geometry[min(int(way_points[0]), last)]
    end = geometry[min(int(way_points[-1]), last)]
    return RouteStep(
        instructions=step.get("instruction") or "",
        distance_km=float(step.get("distance") or 0.0) / 1000.0,
        duration_s=float(step.get("duration") or 0.0),
        start=start,
        end=end,
    )


def _ors_route(body: Dict[str, Any]) -> RouteInfo:
    routes = body.get("routes") or []
    if not routes:
        raise ProviderError("No routes found in response", provider=OPENROUTESERVICE)
    route = routes[0]
    try:
        summary = route["summary"]
        distance_km = float(summary.get("distance", 0.0)) / 1000.0
        duration_s = float(summary.get("duration", 0.0))
        geometry = route["geometry"]
    except (KeyError, TypeError, ValueError) as exc:
        raise ProviderError(f"Malformed route payload: {exc}", provider=OPENROUTESERVICE) from exc
    points = decode_polyline(geometry) if isinstance(geometry, str) else ()
    steps = tuple(
        s
        for segment in route.get("segments") or []
        for s in (_ors_step(step, points) for step in segment.get("steps") or [])
        if s is not None
    )
    return RouteInfo(
        polyline=points,
        distance_km=distance_km,
        duration_s=duration_s,
        text_instructions=format_route_summary(distance_km, duration_s),
        steps=steps,
        provider=OPENROUTESERVICE,
    )


def _google_latlng(data: Dict[str, Any]) -> LatLng:
    return LatLng(float(data["lat"]), float(data["lng"]))


def _google_route(body: Dict[str, Any]) -> RouteInfo:
    check_google_status(body, GOOGLE_DIRECTIONS)
    routes = body.get("routes") or []
    if not routes:
        raise ProviderError("No route found", provider=GOOGLE_DIRECTIONS)
    route = routes[0]
    try:
        legs = route["legs"]
        distance_km = sum(int(leg["distance"]["value"]) for leg in legs) / 1000.0
        duration_s = float(sum(int(leg["duration"]["value"]) for leg in legs))
        points = decode_polyline(route["overview_polyline"]["points"])
        steps = tuple(
            RouteStep(
                instructions=_TAG.sub("", step.get("html_instructions") or ""),
                distance_km=int(step["distance"]["value"]) / 1000.0,
                duration_s=float(step["duration"]["value"]),
                start=_google_latlng(step["start_location"]),
                end=_google_latlng(step["end_location"]),
            )
            for leg in legs
            for step in leg.get("steps") or []
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ProviderError(f"Malformed route payload: {exc}", provider=GOOGLE_DIRECTIONS) from exc
    return RouteInfo(
        polyline=points,
        distance_km=distance_km,
        duration_s=duration_s,
        text_instructions=format_route_summary(distance_km, duration_s),
        steps=steps,
        provider=GOOGLE_DIRECTIONS,
    )


def to_route(payload: RoutePayload) -> RouteInfo:
    """Adapt a directions payload to the canonical route descriptor."""
    if isinstance(payload, OrsDirections):
        return _ors_route(payload.body)
    if isinstance(payload, GoogleDirections):
        return _google_route(payload.body)
    raise TypeError(f"unsupported route payload {type(payload).__name__}")


__all__ = [
    "GeocodePayload",
    "GoogleDirections",
    "GoogleGeocodeResponse",
    "check_google_status",
    "NominatimPlaces",
    "OrsDirections",
    "RoutePayload",
    "decode_polyline",
    "format_route_summary",
    "to_places",
    "to_route",
]
