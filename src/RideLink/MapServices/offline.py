# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.offline",
#   "purpose": "Connectivity gate deciding whether network calls are attempted.",
#   "sections": [
#     {
#       "id": "connectivitysubscription",
#       "name": "ConnectivitySubscription",
#       "anchor": "class-connectivitysubscription",
#       "kind": "class"
#     },
#     {
#       "id": "offlinegate",
#       "name": "OfflineGate",
#       "anchor": "class-offlinegate",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Offline Gate

Single source of truth for connectivity. One gate is constructed per
:class:`~RideLink.MapServices.bootstrap.MapServices` container and shared by
every client, which consults :attr:`OfflineGate.is_online` before touching the
network.

Design:
- ``check_connectivity`` probes candidate hosts in order with a short timeout;
  the first host that answers at all proves connectivity. It never raises.
- ``initialize`` runs that probe when a session starts so the gate reflects
  the real state rather than its optimistic initial value
- Passive notifications (``notify_connectivity_change``) update the state and
  are fanned out to subscribers only when the state actually changes
- An error reported by the platform's connectivity stream counts as offline
- Subscribers receive changes through an async iterator that ends when the
  gate is closed
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import List, Optional, Sequence, Set

import httpx

LOGGER = logging.getLogger(__name__)

_CLOSED = object()


class ConnectivitySubscription:
    """Async iterator over connectivity changes; registered on construction."""

    def __init__(self, gate: "OfflineGate") -> None:
        self._gate = gate
        self._queue: asyncio.Queue = asyncio.Queue()
        gate._register(self._queue)

    def __aiter__(self) -> "ConnectivitySubscription":
        return self

    async def __anext__(self) -> bool:
        item = await self._queue.get()
        if item is _CLOSED:
            self._gate._unregister(self._queue)
            raise StopAsyncIteration
        return bool(item)

    def close(self) -> None:
        self._gate._unregister(self._queue)
        self._queue.put_nowait(_CLOSED)


class OfflineGate:
    """
    Connectivity state with an active probe and passive notifications.

    Attributes:
        probe_urls: Hosts probed in order by :meth:`check_connectivity`
        timeout_s: Per-probe timeout
    """

    def __init__(
        self,
        probe_urls: Sequence[str] = ("https://www.google.com", "https://www.cloudflare.com"),
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 5.0,
        initial_online: bool = True,
    ) -> None:
        self.probe_urls: List[str] = list(probe_urls)
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None
        self._online = initial_online
        self._lock = threading.Lock()
        self._subscribers: Set[asyncio.Queue] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    # ── Active probe ───────────────────────────────────────────────────────

    async def check_connectivity(self) -> bool:
        """Return ``True`` if any probe host answers; never raises."""
        client = self._ensure_client()
        for url in self.probe_urls:
            try:
                response = await client.get(url, timeout=self.timeout_s)
            except (httpx.HTTPError, RuntimeError) as exc:
                # RuntimeError: the shared client was already closed.
                LOGGER.debug("Connectivity probe %s failed: %s", url, exc)
                continue
            LOGGER.debug("Connectivity probe %s answered %d", url, response.status_code)
            return True
        return False

    async def refresh_connectivity(self) -> bool:
        """Probe and publish the result."""
        online = await self.check_connectivity()
        self.notify_connectivity_change(online)
        return online

    async def initialize(self) -> bool:
        """Probe once at session start and publish the result."""
        online = await self.refresh_connectivity()
        LOGGER.info("Connectivity at startup: %s", "online" if online else "offline")
        return online

    # ── Passive notifications ──────────────────────────────────────────────

    def notify_connectivity_change(self, is_online: bool) -> None:
        with self._lock:
            if is_online == self._online:
                return
            self._online = is_online
            subscribers = list(self._subscribers)
        LOGGER.info("Connectivity changed: %s", "online" if is_online else "offline")
        for queue in subscribers:
            queue.put_nowait(is_online)

    def notify_connectivity_error(self, error: BaseException) -> None:
        """A failing platform connectivity stream is treated as offline."""
        LOGGER.warning("Connectivity stream error, assuming offline: %s", error)
        self.notify_connectivity_change(False)

    def subscribe(self) -> ConnectivitySubscription:
        return ConnectivitySubscription(self)

    # ── Lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for queue in subscribers:
            queue.put_nowait(_CLOSED)
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    def _register(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers.add(queue)

    def _unregister(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers.discard(queue)


__all__ = ["ConnectivitySubscription", "OfflineGate"]
