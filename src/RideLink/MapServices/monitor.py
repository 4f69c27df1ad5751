# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.monitor",
#   "purpose": "Status snapshot, threshold alerts and active health probes across providers.",
#   "sections": [
#     {
#       "id": "alert",
#       "name": "Alert",
#       "anchor": "class-alert",
#       "kind": "class"
#     },
#     {
#       "id": "servicemonitor",
#       "name": "ServiceMonitor",
#       "anchor": "class-servicemonitor",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Service Monitor

Combines the analytics tracker, the health registry and the rate limiter into
one status document and derives alerts from fixed thresholds:

- ``high_error_rate`` (warning): overall error rate above 10%
- ``unhealthy_service``: warning while the service is still available,
  critical once it is not
- ``slow_response`` (warning): average provider latency above 5000 ms
- ``low_system_health`` (critical): overall health score below 0.7

:meth:`ServiceMonitor.run_health_checks` probes each provider's availability
endpoint and records the outcome under the provider's name.
:meth:`ServiceMonitor.start` repeats that probe plus an alert evaluation on an
interval in a background task until :meth:`ServiceMonitor.stop`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .analytics import AnalyticsTracker
from .health import ServiceHealthRegistry
from .ratelimit import RateLimiter

LOGGER = logging.getLogger(__name__)

ERROR_RATE_THRESHOLD_PCT = 10.0
RESPONSE_TIME_THRESHOLD_MS = 5000.0
HEALTH_SCORE_THRESHOLD = 0.7
CACHE_HIT_RATE_TARGET_PCT = 70.0
DEFAULT_CHECK_INTERVAL_S = 300.0

Probe = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class Alert:
    type: str
    severity: str
    message: str
    service: Optional[str] = None
    threshold: Optional[float] = None
    current_value: Optional[float] = None
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class ServiceMonitor:
    """
    Read-side aggregation over the resilience registries.

    Attributes:
        analytics: Per-provider call metrics
        health: Health registry (tier keys and provider probe keys)
        rate_limiter: Optional limiter whose status is included in reports
        probes: Provider name to availability probe
    """

    def __init__(
        self,
        analytics: AnalyticsTracker,
        health: ServiceHealthRegistry,
        rate_limiter: Optional[RateLimiter] = None,
        *,
        probes: Optional[Mapping[str, Probe]] = None,
        clock: Callable[[], float] = time.monotonic,
        wall: Callable[[], float] = time.time,
    ) -> None:
        self.analytics = analytics
        self.health = health
        self.rate_limiter = rate_limiter
        self.probes: Dict[str, Probe] = dict(probes or {})
        self._clock = clock
        self._wall = wall
        self._task: Optional[asyncio.Task] = None

    def _timestamp(self) -> str:
        return datetime.fromtimestamp(self._wall(), timezone.utc).isoformat()

    def _rate_limits(self) -> Dict[str, Dict[str, Any]]:
        return self.rate_limiter.get_rate_limit_status() if self.rate_limiter else {}

    # ── Status ─────────────────────────────────────────────────────────────

    def get_service_status(self) -> Dict[str, Any]:
        return {
            "timestamp": self._timestamp(),
            "analytics": self.analytics.get_analytics_summary(),
            "health": {name: record.to_dict() for name, record in self.health.snapshot().items()},
            "performance": self.analytics.get_performance_metrics(),
            "rate_limits": self._rate_limits(),
            "overall_health_score": self.health.overall_score(),
            "alerts": [alert.to_dict() for alert in self.check_alerts()],
        }

    def check_alerts(self) -> List[Alert]:
        now = self._timestamp()
        alerts: List[Alert] = []
        summary = self.analytics.get_analytics_summary()

        error_rate = (1.0 - summary["success_rate"]) * 100.0
        if error_rate > ERROR_RATE_THRESHOLD_PCT:
            alerts.append(
                Alert(
                    type="high_error_rate",
                    severity="warning",
                    message=f"Overall error rate is {error_rate:.1f}%",
                    threshold=ERROR_RATE_THRESHOLD_PCT,
                    current_value=error_rate,
                    timestamp=now,
                )
            )

        snapshot = self.health.snapshot()
        for name, record in snapshot.items():
            if record.is_healthy:
                continue
            alerts.append(
                Alert(
                    type="unhealthy_service",
                    severity="warning" if record.is_available else "critical",
                    message=f"Service {name} is {self.health.state(name).value}",
                    service=name,
                    current_value=record.health_score,
                    timestamp=now,
                )
            )

        for name, metrics in self.analytics.get_performance_metrics().items():
            latency = metrics["average_response_time_ms"]
            if latency > RESPONSE_TIME_THRESHOLD_MS:
                alerts.append(
                    Alert(
                        type="slow_response",
                        severity="warning",
                        message=f"Service {name} has slow response time: {latency:.0f}ms",
                        service=name,
                        threshold=RESPONSE_TIME_THRESHOLD_MS,
                        current_value=latency,
                        timestamp=now,
                    )
                )

        if snapshot:
            overall = self.health.overall_score()
            if overall < HEALTH_SCORE_THRESHOLD:
                alerts.append(
                    Alert(
                        type="low_system_health",
                        severity="critical",
                        message=f"Overall system health is low: {overall * 100:.1f}%",
                        threshold=HEALTH_SCORE_THRESHOLD,
                        current_value=overall,
                        timestamp=now,
                    )
                )

        for alert in alerts:
            log = LOGGER.error if alert.severity == "critical" else LOGGER.warning
            log("ALERT [%s] %s", alert.severity, alert.message)
        return alerts

    def generate_report(self) -> Dict[str, Any]:
        """Status plus recent errors and operator recommendations."""
        status = self.get_service_status()
        unhealthy = self.health.unhealthy()
        return {
            "report_id": str(int(self._wall() * 1000)),
            "generated_at": status["timestamp"],
            "status": status,
            "recent_errors": self.analytics.get_error_log(limit=20),
            "unhealthy_services": [record.to_dict() for record in unhealthy],
            "recommendations": self._recommendations(status, len(unhealthy)),
        }

    def _recommendations(self, status: Dict[str, Any], unhealthy_count: int) -> List[str]:
        analytics = status["analytics"]
        recommendations: List[str] = []

        hit_rate = analytics["cache_hit_rate"]
        if analytics["cache_hits"] + analytics["cache_misses"] and hit_rate < CACHE_HIT_RATE_TARGET_PCT:
            recommendations.append(
                f"Cache hit rate is {hit_rate:.1f}%; consider longer TTLs for geocode and route entries"
            )
        error_rate = (1.0 - analytics["success_rate"]) * 100.0
        if error_rate > 5.0:
            recommendations.append(
                f"Error rate is {error_rate:.1f}%; review the error log and fallback configuration"
            )
        if status["health"] and status["overall_health_score"] < 0.8:
            recommendations.append(
                f"System health is {status['overall_health_score'] * 100:.1f}%; "
                "check individual services"
            )
        if unhealthy_count:
            recommendations.append(f"{unhealthy_count} service(s) are unhealthy")
        for name, limit in status["rate_limits"].items():
            if limit.get("throttled"):
                recommendations.append(
                    f"Service {name} is being rate limited; spread requests or raise its quota"
                )
        if not recommendations:
            recommendations.append("All services are operating within normal parameters")
        return recommendations

    # ── Active checks ──────────────────────────────────────────────────────

    async def run_health_checks(self) -> Dict[str, bool]:
        """Probe every provider once and record the result under its name."""
        results: Dict[str, bool] = {}
        for name, probe in self.probes.items():
            start = self._clock()
            try:
                available = await probe()
            except Exception as exc:
                self.health.record_failure(name, exc)
                results[name] = False
                continue
            elapsed = self._clock() - start
            if available:
                self.health.record_success(name, elapsed)
            else:
                self.health.record_failure(name, "availability probe failed")
            results[name] = available
        LOGGER.info(
            "Health checks: %s",
            ", ".join(f"{name}={'up' if ok else 'down'}" for name, ok in results.items()) or "none",
        )
        return results

    # ── Background monitoring ──────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_s: float = DEFAULT_CHECK_INTERVAL_S) -> None:
        """Run health checks and alert evaluation every ``interval_s`` seconds.

        Must be called from a running event loop. Starting twice is a no-op.
        """
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run_periodically(interval_s), name="ridelink-service-monitor"
        )
        LOGGER.info("Service monitoring started (every %.0fs)", interval_s)

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        LOGGER.info("Service monitoring stopped")

    async def _run_periodically(self, interval_s: float) -> None:
        while True:
            try:
                await self.run_health_checks()
                self.check_alerts()
            except Exception:
                LOGGER.exception("Monitoring cycle failed")
            await asyncio.sleep(interval_s)


__all__ = [
    "DEFAULT_CHECK_INTERVAL_S",
    "Alert",
    "ERROR_RATE_THRESHOLD_PCT",
    "HEALTH_SCORE_THRESHOLD",
    "RESPONSE_TIME_THRESHOLD_MS",
    "ServiceMonitor",
]
