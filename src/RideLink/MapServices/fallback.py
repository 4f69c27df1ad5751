# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.fallback",
#   "purpose": "Two-tier primary/fallback executor with health recording.",
#   "sections": [
#     {
#       "id": "attemptrecord",
#       "name": "AttemptRecord",
#       "anchor": "class-attemptrecord",
#       "kind": "class"
#     },
#     {
#       "id": "fallbackcoordinator",
#       "name": "FallbackCoordinator",
#       "anchor": "class-fallbackcoordinator",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Fallback Coordinator

Runs a primary async operation under a timeout and, when it fails, exactly one
fallback operation. Every attempt is recorded in the
:class:`~RideLink.MapServices.health.ServiceHealthRegistry` under
``"primary_" + op_id`` or ``"fallback_" + op_id``.

Design:
- One hop only: no retries of the same tier, no cascading chains
- Recoverable failures (network, provider, rate limit, auth, unknown)
  escalate to the fallback tier; cache and configuration failures propagate
  after the primary failure is recorded
- Timeouts cancel the awaited path and surface as ``NetworkError``
- Both tiers failing raises ``FallbackExhaustedError`` carrying both errors
- A primary tier pinned unavailable by an operator override is skipped
  (recorded as a skip, not a failure) when a fallback exists
- ``asyncio.CancelledError`` is never swallowed
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal, Optional, TypeVar

from .errors import FallbackExhaustedError, NetworkError, classify_exception
from .health import ServiceHealthRegistry

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 10.0

Tier = Literal["primary", "fallback"]
AttemptOutcome = Literal["success", "failure", "timeout", "skipped"]


@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one tier attempt, handed to the optional observer.

    Attributes:
        op_id: Logical operation, e.g. ``"route"``
        tier: ``"primary"`` or ``"fallback"``
        key: Health registry key the attempt was recorded under
        outcome: success, failure, timeout or skipped
        elapsed_ms: Wall time spent in the attempt
        error_kind: ``ErrorKind`` value for failures
        message: Error message for failures, skip reason for skips
    """

    op_id: str
    tier: Tier
    key: str
    outcome: AttemptOutcome
    elapsed_ms: int
    error_kind: Optional[str] = None
    message: Optional[str] = field(default=None)

    def __post_init__(self) -> None:
        if self.elapsed_ms < 0:
            msg = f"elapsed_ms must be non-negative, got {self.elapsed_ms}"
            raise ValueError(msg)


class FallbackCoordinator:
    """
    Generic two-tier executor.

    Attributes:
        health: Registry receiving one record per attempt
        default_timeout_s: Timeout applied when ``execute`` is given none
        observer: Optional callback receiving each :class:`AttemptRecord`
    """

    def __init__(
        self,
        health: ServiceHealthRegistry,
        *,
        default_timeout_s: float = DEFAULT_TIMEOUT_S,
        observer: Optional[Callable[[AttemptRecord], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.health = health
        self.default_timeout_s = default_timeout_s
        self.observer = observer
        self._clock = clock

    async def execute(
        self,
        primary: Callable[[], Awaitable[T]],
        fallback: Optional[Callable[[], Awaitable[T]]],
        op_id: str,
        timeout: Optional[float] = None,
    ) -> T:
        """Run ``primary``; on failure run ``fallback`` once.

        Args:
            primary: Zero-argument callable returning the primary awaitable
            fallback: Zero-argument callable for the fallback tier, or None
            op_id: Operation identifier used in health keys
            timeout: Per-tier timeout in seconds (default 10s)

        Returns:
            The first successful tier's value

        Raises:
            MapServiceError: The primary error when there is no fallback or the
                error is not recoverable
            FallbackExhaustedError: When both tiers fail
        """
        limit = self.default_timeout_s if timeout is None else timeout
        primary_key = f"primary_{op_id}"
        fallback_key = f"fallback_{op_id}"

        if fallback is not None and self._pinned_unavailable(primary_key):
            self.health.record_skip(primary_key, "manual override")
            self._emit(AttemptRecord(op_id, "primary", primary_key, "skipped", 0, None, "manual override"))
            LOGGER.info("Skipping %s: pinned unavailable by operator", primary_key)
            return await self._attempt(op_id, "fallback", fallback_key, fallback, limit)

        try:
            return await self._attempt(op_id, "primary", primary_key, primary, limit)
        except Exception as exc:
            primary_error = exc
            kind = classify_exception(primary_error)
            if fallback is None or not kind.recoverable:
                raise
            LOGGER.info("%s failed (%s), trying fallback tier", primary_key, kind.value)

        try:
            return await self._attempt(op_id, "fallback", fallback_key, fallback, limit)
        except Exception as fallback_error:
            LOGGER.warning("Both tiers failed for %s", op_id)
            raise FallbackExhaustedError(op_id, primary_error, fallback_error) from fallback_error

    async def execute_fallback(
        self,
        fallback: Callable[[], Awaitable[T]],
        op_id: str,
        timeout: Optional[float] = None,
    ) -> T:
        """Run only the fallback tier, recorded under ``"fallback_" + op_id``."""
        limit = self.default_timeout_s if timeout is None else timeout
        return await self._attempt(op_id, "fallback", f"fallback_{op_id}", fallback, limit)

    async def _attempt(
        self,
        op_id: str,
        tier: Tier,
        key: str,
        call: Callable[[], Awaitable[T]],
        timeout: float,
    ) -> T:
        start = self._clock()
        try:
            value = await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            elapsed = self._clock() - start
            error = NetworkError(f"{key} timed out after {timeout:g}s", details={"op_id": op_id})
            self.health.record_failure(key, error)
            self._emit(AttemptRecord(op_id, tier, key, "timeout", _ms(elapsed), error.kind.value, str(error)))
            raise error from exc
        except Exception as exc:
            elapsed = self._clock() - start
            self.health.record_failure(key, exc)
            self._emit(
                AttemptRecord(
                    op_id, tier, key, "failure", _ms(elapsed), classify_exception(exc).value, str(exc)
                )
            )
            raise
        elapsed = self._clock() - start
        self.health.record_success(key, elapsed)
        self._emit(AttemptRecord(op_id, tier, key, "success", _ms(elapsed)))
        return value

    def _pinned_unavailable(self, key: str) -> bool:
        return self.health.has_override(key) and not self.health.is_available(key)

    def _emit(self, record: AttemptRecord) -> None:
        LOGGER.debug(
            "attempt op=%s tier=%s outcome=%s elapsed_ms=%d",
            record.op_id,
            record.tier,
            record.outcome,
            record.elapsed_ms,
            extra={
                "op_id": record.op_id,
                "tier": record.tier,
                "latency_ms": record.elapsed_ms,
                "outcome": record.outcome,
            },
        )
        if self.observer is None:
            return
        try:
            self.observer(record)
        except Exception as e:
            LOGGER.warning("Attempt observer failed: %s", e)


def _ms(seconds: float) -> int:
    return max(0, int(seconds * 1000))


__all__ = [
    "AttemptRecord",
    "DEFAULT_TIMEOUT_S",
    "FallbackCoordinator",
]
