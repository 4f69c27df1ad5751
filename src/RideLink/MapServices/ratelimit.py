# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.ratelimit",
#   "purpose": "Per-provider sliding-window limits and daily quotas with pyrate-limiter.",
#   "sections": [
#     {
#       "id": "parse-rates",
#       "name": "parse_rates",
#       "anchor": "function-parse-rates",
#       "kind": "function"
#     },
#     {
#       "id": "ratestatus",
#       "name": "RateStatus",
#       "anchor": "class-ratestatus",
#       "kind": "class"
#     },
#     {
#       "id": "ratelimiter",
#       "name": "RateLimiter",
#       "anchor": "class-ratelimiter",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Per-provider request budgets.

Each provider may carry sliding-window rates (``"1/SECOND"``,
``"40/MINUTE"``) held in a pyrate-limiter ``InMemoryBucket`` and/or a
decrementing daily quota. Checks never block: a request that would exceed a
window or the quota is rejected before any network call.

Providers without a policy are unlimited. The daily quota is only restored
by :meth:`RateLimiter.reset_daily_quota`, or automatically when the limiter
is given a calendar clock and that clock reports a new day.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from pyrate_limiter import InMemoryBucket, Rate, RateItem

from .config.models import ProviderRatePolicy
from .errors import RateLimitError

LOGGER = logging.getLogger(__name__)

_UNIT_MS = {
    "SECOND": 1000,
    "MINUTE": 60_000,
    "HOUR": 3_600_000,
    "DAY": 86_400_000,
}


def parse_rates(rates: List[str]) -> List[Rate]:
    """Parse rate strings like ``'1/SECOND'`` or ``'40/MINUTE'`` into pyrate ``Rate`` objects."""
    parsed = []
    for rate_str in rates:
        if "/" not in rate_str:
            LOGGER.warning("Invalid rate format: %s", rate_str)
            continue
        limit_part, unit = rate_str.split("/", 1)
        interval = _UNIT_MS.get(unit.strip().upper())
        if interval is None:
            LOGGER.warning("Unknown rate unit in %r", rate_str)
            continue
        parsed.append(Rate(int(limit_part.strip()), interval))
    return parsed


@dataclass(frozen=True)
class RateStatus:
    """Point-in-time view of one provider's budget."""

    provider: str
    limit: Optional[int]
    interval_ms: Optional[int]
    current_usage: int
    remaining: Optional[int]
    daily_quota: Optional[int]
    remaining_daily: Optional[int]
    throttled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "interval_ms": self.interval_ms,
            "current_usage": self.current_usage,
            "remaining": self.remaining,
            "daily_quota": self.daily_quota,
            "remaining_daily": self.remaining_daily,
            "throttled": self.throttled,
        }


class _ProviderBudget:
    """Bucket plus quota counter for one provider."""

    def __init__(self, name: str, policy: ProviderRatePolicy) -> None:
        self.name = name
        self.rates = sorted(parse_rates(policy.rates), key=lambda r: r.interval)
        self.bucket = InMemoryBucket(self.rates) if self.rates else None
        self.daily_quota = policy.daily_quota
        self.remaining_daily = policy.daily_quota

    def in_window(self, rate: Rate, now_ms: int) -> List[RateItem]:
        if self.bucket is None:
            return []
        lower_bound = now_ms - rate.interval
        return [item for item in self.bucket.items if item.timestamp > lower_bound]

    def blocking_rate(self, now_ms: int) -> Optional[Rate]:
        for rate in self.rates:
            if len(self.in_window(rate, now_ms)) >= rate.limit:
                return rate
        return None


class RateLimiter:
    """
    Thread-safe per-provider rate and quota accounting.

    Attributes:
        policies: Mapping of provider name to :class:`ProviderRatePolicy`
    """

    def __init__(
        self,
        policies: Mapping[str, ProviderRatePolicy],
        *,
        now: Callable[[], float] = time.monotonic,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.policies = dict(policies)
        self._now = now
        self._today = today
        self._lock = threading.RLock()
        self._budgets: Dict[str, _ProviderBudget] = {
            name: _ProviderBudget(name, policy) for name, policy in self.policies.items()
        }
        self._quota_day: Optional[date] = today() if today else None

    def _now_ms(self) -> int:
        return int(self._now() * 1000)

    def _budget(self, provider: str) -> Optional[_ProviderBudget]:
        self._roll_quota_day()
        budget = self._budgets.get(provider)
        if budget is not None and budget.bucket is not None:
            budget.bucket.leak(self._now_ms())
        return budget

    def _roll_quota_day(self) -> None:
        if self._today is None:
            return
        today = self._today()
        if today != self._quota_day:
            LOGGER.info("New quota day %s, restoring daily quotas", today.isoformat())
            self._quota_day = today
            for budget in self._budgets.values():
                budget.remaining_daily = budget.daily_quota

    # ── Checks ─────────────────────────────────────────────────────────────

    def can_make_request(self, provider: str) -> bool:
        with self._lock:
            budget = self._budget(provider)
            if budget is None:
                return True
            if budget.remaining_daily is not None and budget.remaining_daily <= 0:
                return False
            return budget.blocking_rate(self._now_ms()) is None

    def ensure_capacity(self, provider: str) -> None:
        """Raise :class:`RateLimitError` when ``provider`` has no budget left."""
        with self._lock:
            budget = self._budget(provider)
            if budget is None:
                return
            if budget.remaining_daily is not None and budget.remaining_daily <= 0:
                raise RateLimitError(
                    f"{provider}: daily quota of {budget.daily_quota} requests exhausted",
                    provider=provider,
                    remaining_daily=0,
                )
            now_ms = self._now_ms()
            rate = budget.blocking_rate(now_ms)
            if rate is None:
                return
            oldest = min(item.timestamp for item in budget.in_window(rate, now_ms))
            retry_after = max(0.0, (oldest + rate.interval - now_ms) / 1000.0)
        raise RateLimitError(
            f"{provider}: rate limit {rate.limit}/{rate.interval}ms reached",
            provider=provider,
            retry_after=retry_after,
            remaining_daily=budget.remaining_daily,
        )

    # ── Accounting ─────────────────────────────────────────────────────────

    def record_request(self, provider: str) -> None:
        with self._lock:
            budget = self._budget(provider)
            if budget is None:
                return
            if budget.bucket is not None:
                now_ms = self._now_ms()
                if budget.blocking_rate(now_ms) is not None:
                    LOGGER.warning("Request to %s recorded beyond its rate window", provider)
                # bucket.put() counts an item exactly one interval old; the window here is strict.
                budget.bucket.items.append(RateItem(provider, now_ms))
            if budget.remaining_daily is not None:
                budget.remaining_daily = max(0, budget.remaining_daily - 1)

    def get_remaining_daily_requests(self, provider: str) -> Optional[int]:
        """Remaining quota, or ``None`` for providers without a daily quota."""
        with self._lock:
            budget = self._budget(provider)
            return None if budget is None else budget.remaining_daily

    def reset_daily_quota(self, provider: Optional[str] = None) -> None:
        with self._lock:
            if provider is None:
                targets = list(self._budgets.values())
            else:
                targets = [self._budgets[provider]] if provider in self._budgets else []
            for budget in targets:
                budget.remaining_daily = budget.daily_quota
        LOGGER.info("Daily quota reset for %s", provider or "all providers")

    def status(self, provider: str) -> RateStatus:
        with self._lock:
            budget = self._budget(provider)
            if budget is None:
                return RateStatus(provider, None, None, 0, None, None, None, False)
            now_ms = self._now_ms()
            primary = budget.rates[0] if budget.rates else None
            usage = len(budget.in_window(primary, now_ms)) if primary else 0
            remaining = max(0, primary.limit - usage) if primary else None
            throttled = budget.blocking_rate(now_ms) is not None or (
                budget.remaining_daily is not None and budget.remaining_daily <= 0
            )
            return RateStatus(
                provider=provider,
                limit=primary.limit if primary else None,
                interval_ms=primary.interval if primary else None,
                current_usage=usage,
                remaining=remaining,
                daily_quota=budget.daily_quota,
                remaining_daily=budget.remaining_daily,
                throttled=throttled,
            )

    def get_rate_limit_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: self.status(name).to_dict() for name in sorted(self._budgets)}


__all__ = [
    "RateLimiter",
    "RateStatus",
    "parse_rates",
]
