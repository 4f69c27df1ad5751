# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.health",
#   "purpose": "Per-provider rolling health statistics and derived availability.",
#   "sections": [
#     {
#       "id": "healthstate",
#       "name": "HealthState",
#       "anchor": "class-healthstate",
#       "kind": "class"
#     },
#     {
#       "id": "servicehealth",
#       "name": "ServiceHealth",
#       "anchor": "class-servicehealth",
#       "kind": "class"
#     },
#     {
#       "id": "servicehealthregistry",
#       "name": "ServiceHealthRegistry",
#       "anchor": "class-servicehealthregistry",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Service Health Registry

Keeps rolling statistics for every provider (or fallback tier key such as
``primary_route``) and derives availability, a composite health score and a
coarse state from them.

Design:
- ``ServiceHealth`` is a frozen snapshot; every update swaps in a new record
- ``success_rate`` is always ``successful_requests / total_requests``
  (1.0 before the first request)
- A provider becomes unavailable only when ``success_rate <= 0.5`` and
  ``failure_count >= 5``; a success marks it available again
- Failure counts never decay; operators clear them with :meth:`reset`
- Manual overrides win over computed availability until reset
- Skipped calls (offline, gated) are counted separately and never touch
  the success statistics
- All mutations are guarded by an ``RLock`` so the registry may be shared
  with worker threads
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

LOGGER = logging.getLogger(__name__)

UNAVAILABLE_SUCCESS_RATE = 0.5
UNAVAILABLE_FAILURE_COUNT = 5
HEALTHY_SUCCESS_RATE = 0.8
HEALTHY_MAX_LATENCY_S = 10.0
HEALTHY_MAX_FAILURES = 3
STALE_AFTER_S = 300.0


class HealthState(str, Enum):
    """Coarse provider state exposed to operators."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    MANUAL_AVAILABLE = "manual_available"
    MANUAL_UNAVAILABLE = "manual_unavailable"


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class ServiceHealth:
    """Rolling statistics for one provider.

    Attributes:
        name: Provider or tier key
        is_available: Computed (or overridden) availability
        success_rate: ``successful_requests / total_requests``
        avg_response_time: Mean latency of successful calls, seconds
        failure_count: Failures since the last reset
        last_failure: Epoch seconds of the most recent failure
        total_requests: Attempts recorded (skips excluded)
        successful_requests: Successful attempts
        last_error: Message of the most recent failure, cleared on success
        skipped_requests: Calls skipped without touching the network
        last_checked: Epoch seconds of the most recent update
    """

    name: str
    is_available: bool = True
    success_rate: float = 1.0
    avg_response_time: float = 0.0
    failure_count: int = 0
    last_failure: Optional[float] = None
    total_requests: int = 0
    successful_requests: int = 0
    last_error: Optional[str] = None
    skipped_requests: int = 0
    last_checked: Optional[float] = None

    @property
    def latency_ms(self) -> float:
        return self.avg_response_time * 1000.0

    @property
    def health_score(self) -> float:
        """Weighted composite of success rate, latency and failure count in ``[0, 1]``."""
        score = (
            0.6 * self.success_rate
            + 0.3 * (1.0 - min(self.latency_ms / 10000.0, 1.0))
            + 0.1 * (1.0 - min(self.failure_count / 10.0, 1.0))
        )
        return _clamp01(score)

    @property
    def is_healthy(self) -> bool:
        return (
            self.is_available
            and self.success_rate > HEALTHY_SUCCESS_RATE
            and self.avg_response_time < HEALTHY_MAX_LATENCY_S
            and self.failure_count < HEALTHY_MAX_FAILURES
        )

    def is_stale(self, now: float) -> bool:
        return self.last_checked is None or now - self.last_checked > STALE_AFTER_S

    def with_success(self, latency_s: float, now: float) -> "ServiceHealth":
        successes = self.successful_requests + 1
        total = self.total_requests + 1
        avg = (self.avg_response_time * self.successful_requests + latency_s) / successes
        return dataclasses.replace(
            self,
            is_available=True,
            success_rate=successes / total,
            avg_response_time=avg,
            total_requests=total,
            successful_requests=successes,
            last_error=None,
            last_checked=now,
        )

    def with_failure(self, error: str, now: float) -> "ServiceHealth":
        total = self.total_requests + 1
        failures = self.failure_count + 1
        rate = self.successful_requests / total
        unavailable = rate <= UNAVAILABLE_SUCCESS_RATE and failures >= UNAVAILABLE_FAILURE_COUNT
        return dataclasses.replace(
            self,
            is_available=not unavailable,
            success_rate=rate,
            failure_count=failures,
            last_failure=now,
            total_requests=total,
            last_error=error,
            last_checked=now,
        )

    def with_skip(self, now: float) -> "ServiceHealth":
        return dataclasses.replace(
            self, skipped_requests=self.skipped_requests + 1, last_checked=now
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["health_score"] = round(self.health_score, 4)
        data["is_healthy"] = self.is_healthy
        return data


class ServiceHealthRegistry:
    """
    Thread-safe registry of :class:`ServiceHealth` records keyed by name.

    Entries are created lazily on first reference with optimistic defaults.
    """

    def __init__(
        self,
        services: Iterable[str] = (),
        *,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._now = now
        self._lock = threading.RLock()
        self._records: Dict[str, ServiceHealth] = {}
        self._overrides: Dict[str, bool] = {}
        for name in services:
            self._records[name] = ServiceHealth(name=name)

    # ── Recording ──────────────────────────────────────────────────────────

    def record_success(self, name: str, latency_s: float) -> ServiceHealth:
        with self._lock:
            updated = self._record(name).with_success(max(0.0, latency_s), self._now())
            self._records[name] = updated
        LOGGER.debug("health success %s latency=%.3fs rate=%.2f", name, latency_s, updated.success_rate)
        return updated

    def record_failure(self, name: str, error: object) -> ServiceHealth:
        with self._lock:
            previous = self._record(name)
            updated = previous.with_failure(str(error), self._now())
            self._records[name] = updated
        if previous.is_available and not updated.is_available:
            LOGGER.warning(
                "Service %s marked unavailable after %d failures (success rate %.2f)",
                name,
                updated.failure_count,
                updated.success_rate,
            )
        else:
            LOGGER.debug("health failure %s: %s", name, error)
        return updated

    def record_skip(self, name: str, reason: str) -> ServiceHealth:
        """Count a call that never reached the network (offline, gated)."""
        with self._lock:
            updated = self._record(name).with_skip(self._now())
            self._records[name] = updated
        LOGGER.debug("health skip %s: %s", name, reason)
        return updated

    # ── Overrides ──────────────────────────────────────────────────────────

    def set_availability(self, name: str, available: bool) -> None:
        """Pin availability until :meth:`reset` or :meth:`clear_override`."""
        with self._lock:
            self._record(name)
            self._overrides[name] = available
        LOGGER.info("Manual availability override: %s -> %s", name, available)

    def clear_override(self, name: str) -> None:
        with self._lock:
            self._overrides.pop(name, None)

    def has_override(self, name: str) -> bool:
        with self._lock:
            return name in self._overrides

    def reset(self, name: str) -> None:
        """Forget all statistics and any override for ``name``."""
        with self._lock:
            self._records[name] = ServiceHealth(name=name)
            self._overrides.pop(name, None)
        LOGGER.info("Health statistics reset for %s", name)

    def reset_all(self) -> None:
        with self._lock:
            for name in list(self._records):
                self._records[name] = ServiceHealth(name=name)
            self._overrides.clear()

    # ── Queries ────────────────────────────────────────────────────────────

    def get(self, name: str) -> ServiceHealth:
        """Return the effective record, with any manual override applied."""
        with self._lock:
            record = self._record(name)
            override = self._overrides.get(name)
        if override is None or override == record.is_available:
            return record
        return dataclasses.replace(record, is_available=override)

    def is_available(self, name: str) -> bool:
        return self.get(name).is_available

    def is_healthy(self, name: str) -> bool:
        return self.get(name).is_healthy

    def health_score(self, name: str) -> float:
        return self.get(name).health_score

    def state(self, name: str) -> HealthState:
        with self._lock:
            override = self._overrides.get(name)
            record = self._record(name)
        if override is not None:
            return HealthState.MANUAL_AVAILABLE if override else HealthState.MANUAL_UNAVAILABLE
        if not record.is_available:
            return HealthState.UNAVAILABLE
        if record.is_healthy:
            return HealthState.HEALTHY
        return HealthState.DEGRADED

    def best_of(self, candidates: Iterable[str]) -> Optional[str]:
        """Available candidate with the highest health score; ties keep input order."""
        best: Optional[str] = None
        best_score = -1.0
        for name in candidates:
            record = self.get(name)
            if not record.is_available:
                continue
            if record.health_score > best_score:
                best, best_score = name, record.health_score
        return best

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def snapshot(self) -> Dict[str, ServiceHealth]:
        return {name: self.get(name) for name in self.names()}

    def unhealthy(self) -> List[ServiceHealth]:
        return [record for record in self.snapshot().values() if not record.is_healthy]

    def overall_score(self) -> float:
        """Mean success rate across services, counting unavailable ones as zero."""
        records = list(self.snapshot().values())
        if not records:
            return 0.0
        total = sum(r.success_rate if r.is_available else 0.0 for r in records)
        return total / len(records)

    def stale(self) -> List[str]:
        now = self._now()
        return [name for name, record in self.snapshot().items() if record.is_stale(now)]

    # ── Internals ──────────────────────────────────────────────────────────

    def _record(self, name: str) -> ServiceHealth:
        record = self._records.get(name)
        if record is None:
            record = ServiceHealth(name=name)
            self._records[name] = record
        return record


__all__ = [
    "HealthState",
    "ServiceHealth",
    "ServiceHealthRegistry",
]
