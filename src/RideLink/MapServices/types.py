"""Canonical value types for geocoding, routing and tile results.

This module defines the provider-independent records returned by every
client in the map services layer:

- LatLng: WGS84 coordinate pair
- PlaceResult: A single geocoding hit
- RouteStep: One manoeuvre along a route
- RouteInfo: A complete route descriptor with distance, duration and geometry
- TileImage: Raw raster tile bytes addressed by zoom/x/y

All types are frozen dataclasses. Each carries ``to_dict``/``from_dict`` so the
cache layer can persist them as JSON without knowing their shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

# Provider identifiers used as health/rate/analytics keys.
NOMINATIM = "nominatim"
OPENROUTESERVICE = "openrouteservice"
OSM_TILES = "osm_tiles"
GOOGLE_MAPS = "google_maps"
GOOGLE_GEOCODING = "google_geocoding"
GOOGLE_DIRECTIONS = "google_directions"
FORMULA = "formula"

@dataclass(frozen=True)
class LatLng:
    """WGS84 coordinate pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            msg = f"latitude must be within [-90, 90], got {self.latitude}"
            raise ValueError(msg)
        if not -180.0 <= self.longitude <= 180.0:
            msg = f"longitude must be within [-180, 180], got {self.longitude}"
            raise ValueError(msg)

    @classmethod
    def parse(cls, text: str) -> "LatLng":
        """Parse ``"lat,lon"`` text as typed on a command line."""

        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 2:
            raise ValueError(f"expected 'lat,lon', got {text!r}")
        return cls(float(parts[0]), float(parts[1]))

    def to_lonlat(self) -> List[float]:
        return [self.longitude, self.latitude]

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LatLng":
        return cls(float(data["latitude"]), float(data["longitude"]))


@dataclass(frozen=True)
class PlaceResult:
    """A geocoding hit normalized across providers.

    Attributes:
        place_id: Provider-scoped identifier
        name: Short display name
        address: Full formatted address
        coordinates: Location of the place
        description: Human-readable category, e.g. ``"restaurant (amenity)"``
        types: Provider category tags
        relevance_score: Relevance in ``[0, 100]``
        provider: Provider that produced the hit
    """

    place_id: str
    name: str
    address: str
    coordinates: LatLng
    description: Optional[str] = None
    types: Tuple[str, ...] = ()
    relevance_score: float = 0.0
    provider: str = NOMINATIM

    def __post_init__(self) -> None:
        if not 0.0 <= self.relevance_score <= 100.0:
            msg = f"relevance_score must be within [0, 100], got {self.relevance_score}"
            raise ValueError(msg)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "name": self.name,
            "address": self.address,
            "coordinates": self.coordinates.to_dict(),
            "description": self.description,
            "types": list(self.types),
            "relevance_score": self.relevance_score,
            "provider": self.provider,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceResult":
        return cls(
            place_id=str(data["place_id"]),
            name=data["name"],
            address=data["address"],
            coordinates=LatLng.from_dict(data["coordinates"]),
            description=data.get("description"),
            types=tuple(data.get("types") or ()),
            relevance_score=float(data.get("relevance_score", 0.0)),
            provider=data.get("provider", NOMINATIM),
        )


@dataclass(frozen=True)
class RouteStep:
    """One manoeuvre along a route."""

    instructions: str
    distance_km: float
    duration_s: float
    start: LatLng
    end: LatLng

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instructions": self.instructions,
            "distance_km": self.distance_km,
            "duration_s": self.duration_s,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteStep":
        return cls(
            instructions=data["instructions"],
            distance_km=float(data["distance_km"]),
            duration_s=float(data["duration_s"]),
            start=LatLng.from_dict(data["start"]),
            end=LatLng.from_dict(data["end"]),
        )


@dataclass(frozen=True)
class RouteInfo:
    """A provider-independent route descriptor.

    ``polyline`` holds the decoded geometry; ``estimated_fare`` is filled in by
    the orchestrator when a fare estimate has been computed.
    """

    polyline: Tuple[LatLng, ...]
    distance_km: float
    duration_s: float
    text_instructions: str = ""
    estimated_fare: Optional[float] = None
    steps: Tuple[RouteStep, ...] = ()
    provider: str = OPENROUTESERVICE

    def __post_init__(self) -> None:
        if self.distance_km < 0:
            msg = f"distance_km must be non-negative, got {self.distance_km}"
            raise ValueError(msg)
        if self.duration_s < 0:
            msg = f"duration_s must be non-negative, got {self.duration_s}"
            raise ValueError(msg)

    @property
    def duration_minutes(self) -> int:
        """Whole minutes, truncated."""
        return int(self.duration_s // 60)

    def with_fare(self, fare: float) -> "RouteInfo":
        return replace(self, estimated_fare=fare)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "polyline": [p.to_dict() for p in self.polyline],
            "distance_km": self.distance_km,
            "duration_s": self.duration_s,
            "text_instructions": self.text_instructions,
            "estimated_fare": self.estimated_fare,
            "steps": [s.to_dict() for s in self.steps],
            "provider": self.provider,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteInfo":
        return cls(
            polyline=tuple(LatLng.from_dict(p) for p in data.get("polyline") or ()),
            distance_km=float(data["distance_km"]),
            duration_s=float(data["duration_s"]),
            text_instructions=data.get("text_instructions", ""),
            estimated_fare=data.get("estimated_fare"),
            steps=tuple(RouteStep.from_dict(s) for s in data.get("steps") or ()),
            provider=data.get("provider", OPENROUTESERVICE),
        )


@dataclass(frozen=True)
class TileImage:
    """Raw raster tile bytes."""

    zoom: int
    x: int
    y: int
    data: bytes = field(repr=False)
    url: str = ""
    is_placeholder: bool = False
    is_stale: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.data)


__all__ = [
    "FORMULA",
    "GOOGLE_DIRECTIONS",
    "GOOGLE_GEOCODING",
    "GOOGLE_MAPS",
    "LatLng",
    "NOMINATIM",
    "OPENROUTESERVICE",
    "OSM_TILES",
    "PlaceResult",
    "RouteInfo",
    "RouteStep",
    "TileImage",
]
