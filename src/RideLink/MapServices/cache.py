# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.cache",
#   "purpose": "TTL-keyed response cache for tiles, geocode results and routes.",
#   "sections": [
#     {
#       "id": "tile-key",
#       "name": "tile_key",
#       "anchor": "function-tile-key",
#       "kind": "function"
#     },
#     {
#       "id": "geocode-key",
#       "name": "geocode_key",
#       "anchor": "function-geocode-key",
#       "kind": "function"
#     },
#     {
#       "id": "route-key",
#       "name": "route_key",
#       "anchor": "function-route-key",
#       "kind": "function"
#     },
#     {
#       "id": "responsecache",
#       "name": "ResponseCache",
#       "anchor": "class-responsecache",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Response Cache

Serves previously fetched provider responses while they are fresh, and only
serves expired ones when the caller explicitly accepts stale data *and* the
connectivity gate reports offline.

Design:
- Payloads are encoded by an explicit codec (raw bytes for tiles, JSON for
  geocode result sets and route descriptors) before reaching the store
- Default TTLs: 24h for tiles and geocodes, 6h for routes
- Storage failures are logged and treated as a miss or a no-op; they never
  reach the caller
- Eviction is time-based only: ``clear_all``, ``clear_expired`` and a
  startup sweep
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .cache_store import CacheEntry, CacheKind, CacheStore
from .errors import CacheError
from .types import LatLng, PlaceResult, RouteInfo, TileImage

LOGGER = logging.getLogger(__name__)

DEFAULT_TTLS: Dict[CacheKind, float] = {
    CacheKind.TILE: 24 * 3600.0,
    CacheKind.GEOCODE: 24 * 3600.0,
    CacheKind.ROUTE: 6 * 3600.0,
}

_WHITESPACE = re.compile(r"\s+")


class _Connectivity(Protocol):
    @property
    def is_online(self) -> bool: ...


class _CacheRecorder(Protocol):
    def track_cache_hit(self, kind: str) -> None: ...

    def track_cache_miss(self, kind: str) -> None: ...


# ============================================================================
# Key schemes
# ============================================================================


def tile_key(zoom: int, x: int, y: int) -> str:
    return f"tile_{zoom}_{x}_{y}"


def geocode_key(
    query: str,
    near: Optional[LatLng] = None,
    radius_m: Optional[float] = None,
) -> str:
    """Normalize query text and append the location-bias signature, if any.

    Examples:
        >>> geocode_key("  Main   Street ")
        'main_street'
        >>> geocode_key("cafe", LatLng(37.7749, -122.4194), 500)
        'cafe@37.775,-122.419~500'
    """
    text = _WHITESPACE.sub("_", query.strip().lower())
    if near is None:
        return text
    signature = f"{text}@{near.latitude:.3f},{near.longitude:.3f}"
    if radius_m is not None:
        signature += f"~{int(radius_m)}"
    return signature


def reverse_key(coordinates: LatLng) -> str:
    return f"reverse_{coordinates.latitude:.4f}_{coordinates.longitude:.4f}"


def nearby_key(location: LatLng, radius_m: float, category: Optional[str] = None) -> str:
    key = f"nearby_{location.latitude:.4f}_{location.longitude:.4f}_{int(radius_m)}"
    if category:
        key += f"_{_WHITESPACE.sub('_', category.strip().lower())}"
    return key


def route_key(origin: LatLng, destination: LatLng, waypoints: Sequence[LatLng] = ()) -> str:
    """Round coordinates to 4 decimals (about 11 m) so nearby requests share entries."""
    key = (
        f"route_{origin.latitude:.4f}_{origin.longitude:.4f}"
        f"_to_{destination.latitude:.4f}_{destination.longitude:.4f}"
    )
    if waypoints:
        key += "_via_" + "_".join(f"{w.latitude:.4f}_{w.longitude:.4f}" for w in waypoints)
    return key


# ============================================================================
# Codec
# ============================================================================


def _encode_json(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _decode_json(payload: bytes) -> Any:
    return json.loads(payload.decode("utf-8"))


class ResponseCache:
    """
    TTL-keyed durable store for tile bytes, geocode result sets and routes.

    Attributes:
        store: Storage engine (SQLite or in-memory)
        connectivity: Object exposing ``is_online``; stale reads need it offline
        recorder: Optional analytics sink for hit/miss counters
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        connectivity: Optional[_Connectivity] = None,
        recorder: Optional[_CacheRecorder] = None,
        ttls: Optional[Dict[CacheKind, float]] = None,
        now: Callable[[], float] = time.time,
        sweep_on_startup: bool = False,
    ) -> None:
        self.store = store
        self.connectivity = connectivity
        self.recorder = recorder
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._now = now
        if sweep_on_startup:
            removed = self.clear_expired()
            if removed:
                LOGGER.info("Startup sweep removed %d expired cache entries", removed)

    # ── Generic entry API ──────────────────────────────────────────────────

    def get(self, kind: CacheKind, key: str, *, allow_stale: bool = False) -> Optional[CacheEntry]:
        """
        Return the entry for ``key`` if present and fresh.

        An expired entry is returned only when ``allow_stale`` is set and the
        connectivity gate reports offline. Storage failures count as a miss.
        """
        entry = self._lookup(kind, key, allow_stale)
        self._record(kind, hit=entry is not None)
        return entry

    def _lookup(self, kind: CacheKind, key: str, allow_stale: bool) -> Optional[CacheEntry]:
        try:
            entry = self.store.get(kind, key)
        except CacheError as exc:
            LOGGER.warning("Cache read failed for %s/%s, treating as miss: %s", kind.value, key, exc)
            entry = None

        if entry is not None and entry.is_expired(self._now()):
            if allow_stale and self._offline():
                LOGGER.info(
                    "Serving stale %s entry %s while offline (age %.0fs)",
                    kind.value,
                    key,
                    entry.age(self._now()),
                )
            else:
                entry = None
        return entry

    def put(self, kind: CacheKind, key: str, payload: bytes, ttl: Optional[float] = None) -> None:
        """Store ``payload`` under ``key``, overwriting any existing entry."""
        entry = CacheEntry(
            key=key,
            kind=kind,
            payload=payload,
            cached_at=self._now(),
            ttl=float(ttl if ttl is not None else self.ttls[kind]),
        )
        try:
            self.store.put(entry)
        except CacheError as exc:
            LOGGER.warning("Cache write failed for %s/%s, skipping: %s", kind.value, key, exc)

    def is_stale(self, entry: CacheEntry) -> bool:
        return entry.is_expired(self._now())

    # ── Typed helpers ──────────────────────────────────────────────────────

    def get_tile(self, zoom: int, x: int, y: int, *, allow_stale: bool = False) -> Optional[TileImage]:
        entry = self.get(CacheKind.TILE, tile_key(zoom, x, y), allow_stale=allow_stale)
        if entry is None:
            return None
        return TileImage(
            zoom=zoom, x=x, y=y, data=entry.payload, is_stale=self.is_stale(entry)
        )

    def put_tile(self, tile: TileImage, ttl: Optional[float] = None) -> None:
        if tile.is_placeholder:
            return
        self.put(CacheKind.TILE, tile_key(tile.zoom, tile.x, tile.y), tile.data, ttl)

    def get_places(self, key: str, *, allow_stale: bool = False) -> Optional[List[PlaceResult]]:
        entry = self._lookup(CacheKind.GEOCODE, key, allow_stale)
        places: Optional[List[PlaceResult]] = None
        if entry is not None:
            try:
                places = [PlaceResult.from_dict(item) for item in _decode_json(entry.payload)]
            except (ValueError, KeyError, TypeError) as exc:
                LOGGER.warning("Dropping undecodable geocode entry %s: %s", key, exc)
                self._drop(CacheKind.GEOCODE, key)
        self._record(CacheKind.GEOCODE, hit=places is not None)
        return places

    def put_places(self, key: str, places: Sequence[PlaceResult], ttl: Optional[float] = None) -> None:
        self.put(CacheKind.GEOCODE, key, _encode_json([p.to_dict() for p in places]), ttl)

    def get_route(self, key: str, *, allow_stale: bool = False) -> Optional[RouteInfo]:
        entry = self._lookup(CacheKind.ROUTE, key, allow_stale)
        route: Optional[RouteInfo] = None
        if entry is not None:
            try:
                route = RouteInfo.from_dict(_decode_json(entry.payload))
            except (ValueError, KeyError, TypeError) as exc:
                LOGGER.warning("Dropping undecodable route entry %s: %s", key, exc)
                self._drop(CacheKind.ROUTE, key)
        self._record(CacheKind.ROUTE, hit=route is not None)
        return route

    def put_route(self, key: str, route: RouteInfo, ttl: Optional[float] = None) -> None:
        self.put(CacheKind.ROUTE, key, _encode_json(route.to_dict()), ttl)

    # ── Maintenance ────────────────────────────────────────────────────────

    def clear_all(self) -> int:
        try:
            removed = self.store.clear()
        except CacheError as exc:
            LOGGER.warning("Cache clear failed: %s", exc)
            return 0
        LOGGER.info("Cleared %d cache entries", removed)
        return removed

    def clear_expired(self) -> int:
        try:
            return self.store.delete_expired(self._now())
        except CacheError as exc:
            LOGGER.warning("Expired-entry sweep failed: %s", exc)
            return 0

    def get_stats(self) -> Dict[str, Any]:
        """Entry counts and byte sizes per kind, plus totals."""
        try:
            per_kind = self.store.stats()
        except CacheError as exc:
            LOGGER.warning("Cache stats unavailable: %s", exc)
            per_kind = {}
        kinds = {
            kind.value: dict(per_kind.get(kind, {"entries": 0, "bytes": 0})) for kind in CacheKind
        }
        stats: Dict[str, Any] = dict(kinds)
        stats["total_entries"] = sum(v["entries"] for v in kinds.values())
        stats["total_bytes"] = sum(v["bytes"] for v in kinds.values())
        return stats

    def close(self) -> None:
        self.store.close()

    # ── Internals ──────────────────────────────────────────────────────────

    def _offline(self) -> bool:
        return self.connectivity is not None and not self.connectivity.is_online

    def _drop(self, kind: CacheKind, key: str) -> None:
        try:
            self.store.delete(kind, key)
        except CacheError as exc:
            LOGGER.warning("Cache delete failed for %s/%s: %s", kind.value, key, exc)

    def _record(self, kind: CacheKind, *, hit: bool) -> None:
        if self.recorder is None:
            return
        if hit:
            self.recorder.track_cache_hit(kind.value)
        else:
            self.recorder.track_cache_miss(kind.value)


__all__ = [
    "DEFAULT_TTLS",
    "ResponseCache",
    "geocode_key",
    "nearby_key",
    "reverse_key",
    "route_key",
    "tile_key",
]
