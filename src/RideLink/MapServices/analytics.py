"""
Usage analytics for map provider calls.

Accumulates aggregate call counts, per-provider success/error counts, the
latencies of the last 100 calls per provider, an error log of the last 100
failures and cache hit/miss counters. Reports are plain dicts so they can be
rendered by the CLI or serialised as JSON.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

MAX_SAMPLES = 100
MAX_ERRORS = 100


def _percentile(sorted_values: List[float], fraction: float) -> float:
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


class AnalyticsTracker:
    """Thread-safe accumulator for provider call metrics."""

    def __init__(
        self,
        *,
        now: Callable[[], float] = time.monotonic,
        wall: Callable[[], float] = time.time,
    ) -> None:
        self._now = now
        self._wall = wall
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        """Drop every counter and start a new session."""
        with self._lock:
            self._session_start = self._now()
            self._calls: Dict[str, int] = {}
            self._errors: Dict[str, int] = {}
            self._latencies: Dict[str, Deque[float]] = {}
            self._last_call: Dict[str, float] = {}
            self._error_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_ERRORS)
            self._cache_hits: Dict[str, int] = {}
            self._cache_misses: Dict[str, int] = {}
            self._total_requests = 0
            self._total_errors = 0

    # ── Recording ──────────────────────────────────────────────────────────

    def record_call(
        self,
        provider: str,
        operation: str,
        latency_s: float,
        error: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            self._total_requests += 1
            self._calls[provider] = self._calls.get(provider, 0) + 1
            self._last_call[provider] = self._wall()
            if error is None:
                samples = self._latencies.setdefault(provider, deque(maxlen=MAX_SAMPLES))
                samples.append(latency_s)
                return
            self._total_errors += 1
            self._errors[provider] = self._errors.get(provider, 0) + 1
            self._error_log.append(
                {
                    "provider": provider,
                    "operation": operation,
                    "error": str(error),
                    "error_type": type(error).__name__,
                    "timestamp": datetime.fromtimestamp(self._wall(), timezone.utc).isoformat(),
                }
            )
        LOGGER.debug(
            "analytics error %s.%s: %s",
            provider,
            operation,
            error,
            extra={"provider": provider, "op_id": operation, "outcome": "failure"},
        )

    async def track_api_call(
        self,
        provider: str,
        operation: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Await ``call`` and record its latency or error; exceptions propagate."""
        start = self._now()
        try:
            result = await call()
        except Exception as exc:
            self.record_call(provider, operation, self._now() - start, exc)
            raise
        self.record_call(provider, operation, self._now() - start)
        return result

    def track_cache_hit(self, kind: str) -> None:
        with self._lock:
            self._cache_hits[kind] = self._cache_hits.get(kind, 0) + 1

    def track_cache_miss(self, kind: str) -> None:
        with self._lock:
            self._cache_misses[kind] = self._cache_misses.get(kind, 0) + 1

    # ── Reports ────────────────────────────────────────────────────────────

    def get_service_stats(self, provider: str) -> Dict[str, Any]:
        with self._lock:
            calls = self._calls.get(provider, 0)
            errors = self._errors.get(provider, 0)
            samples = list(self._latencies.get(provider, ()))
            last_call = self._last_call.get(provider)
        return {
            "provider": provider,
            "total_calls": calls,
            "error_count": errors,
            "success_count": calls - errors,
            "average_response_time_ms": (sum(samples) / len(samples) * 1000.0) if samples else 0.0,
            "success_rate": (calls - errors) / calls if calls else 1.0,
            "last_call": (
                datetime.fromtimestamp(last_call, timezone.utc).isoformat() if last_call else None
            ),
        }

    def get_analytics_summary(self) -> Dict[str, Any]:
        with self._lock:
            hits = sum(self._cache_hits.values())
            misses = sum(self._cache_misses.values())
            total = self._total_requests
            errors = self._total_errors
            providers = sorted(self._calls)
            recent_errors = list(self._error_log)[-10:]
            errors_by_provider: Dict[str, int] = dict(self._errors)
            cache_by_kind = {
                kind: {
                    "hits": self._cache_hits.get(kind, 0),
                    "misses": self._cache_misses.get(kind, 0),
                }
                for kind in sorted(set(self._cache_hits) | set(self._cache_misses))
            }
            session_s = self._now() - self._session_start
        return {
            "session_duration_s": session_s,
            "total_requests": total,
            "total_errors": errors,
            "success_rate": (total - errors) / total if total else 1.0,
            "cache_hits": hits,
            "cache_misses": misses,
            "cache_hit_rate": hits / (hits + misses) * 100.0 if hits + misses else 0.0,
            "cache_by_kind": cache_by_kind,
            "services": [self.get_service_stats(p) for p in providers],
            "recent_errors": recent_errors,
            "errors_by_service": errors_by_provider,
        }

    def get_error_log(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            entries = list(self._error_log)
        if limit is not None and limit < len(entries):
            return entries[len(entries) - limit :]
        return entries

    def get_performance_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Latency percentiles (ms), error rate (%) and request rate per provider."""
        with self._lock:
            snapshot = {p: sorted(self._latencies.get(p, ())) for p in self._calls}
            calls = dict(self._calls)
            errors = dict(self._errors)
            minutes = (self._now() - self._session_start) / 60.0
        metrics: Dict[str, Dict[str, Any]] = {}
        for provider, samples in snapshot.items():
            if not samples:
                continue
            ms = [s * 1000.0 for s in samples]
            metrics[provider] = {
                "average_response_time_ms": sum(ms) / len(ms),
                "p50_ms": _percentile(ms, 0.50),
                "p95_ms": _percentile(ms, 0.95),
                "p99_ms": _percentile(ms, 0.99),
                "min_ms": ms[0],
                "max_ms": ms[-1],
                "total_requests": calls[provider],
                "error_rate": errors.get(provider, 0) / calls[provider] * 100.0,
                "requests_per_minute": calls[provider] / minutes if minutes >= 1.0 else 0.0,
            }
        return metrics

    def export_analytics_data(self, rate_limit_status: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Everything above in one JSON-ready document."""
        return {
            "summary": self.get_analytics_summary(),
            "performance_metrics": self.get_performance_metrics(),
            "rate_limit_status": rate_limit_status or {},
            "error_log": self.get_error_log(),
            "exported_at": datetime.fromtimestamp(self._wall(), timezone.utc).isoformat(),
        }


__all__ = ["AnalyticsTracker"]
