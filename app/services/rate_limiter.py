"""
Sliding-window rate limits per identity (client address, optionally + user id).
- Window: trailing hour of request timestamps; minute/hour counts are derived.
- Tiers: stricter caps for heavier query categories; unknown categories use the global default.
- Blacklisted identities are rejected before any counter is consulted.
- Identities idle for an hour are swept at most once a minute, so the table tracks only live windows.
State is in-process: correct for a single instance only.
"""
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from app.services.classifier import QueryCategory

logger = logging.getLogger(__name__)

MINUTE_SECONDS = 60
HOUR_SECONDS = 3600


@dataclass(frozen=True)
class RateLimits:
    per_minute: int
    per_hour: int


# Caps per tier name
TIER_LIMITS = {
    "simple_query": RateLimits(per_minute=30, per_hour=500),
    "file_analysis": RateLimits(per_minute=10, per_hour=100),
    "complex_analysis": RateLimits(per_minute=5, per_hour=50),
}

# Query category -> tier; categories not listed fall back to the default limits
CATEGORY_TIERS = {
    QueryCategory.GENERAL_CONSULTATION.value: "simple_query",
    QueryCategory.INVOICE_ANALYSIS.value: "file_analysis",
    QueryCategory.MARGIN_OPTIMIZATION.value: "complex_analysis",
    QueryCategory.FIFA_PROJECTIONS.value: "complex_analysis",
}


@dataclass
class RateLimitDecision:
    allowed: bool
    reason: str | None = None
    retry_after: int | None = None


def identity_key(address: str, user_id: str | None = None) -> str:
    return f"{address}:{user_id}" if user_id else address


class RateLimiter:
    """Per-identity request windows. check() counts and records in one critical section."""

    def __init__(
        self,
        default_limits: RateLimits,
        blacklist: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default = default_limits
        self._blacklist = set(blacklist)
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def limits_for(self, category: str | QueryCategory) -> RateLimits:
        """Accepts a tier name or a query category."""
        name = category.value if isinstance(category, QueryCategory) else category
        tier = name if name in TIER_LIMITS else CATEGORY_TIERS.get(name)
        return TIER_LIMITS.get(tier, self._default) if tier else self._default

    def check(self, identity: str, category: str | QueryCategory) -> RateLimitDecision:
        if identity in self._blacklist:
            return RateLimitDecision(allowed=False, reason="Blacklisted")

        limits = self.limits_for(category)
        with self._lock:
            now = self._clock()
            hour_ago = now - HOUR_SECONDS
            if now - self._last_sweep >= MINUTE_SECONDS:
                self._sweep(hour_ago)
                self._last_sweep = now
            window = self._requests.get(identity, deque())
            while window and window[0] <= hour_ago:
                window.popleft()
            if not window:
                self._requests.pop(identity, None)

            minute_ago = now - MINUTE_SECONDS
            last_minute = sum(1 for t in window if t > minute_ago)
            last_hour = len(window)

            if last_minute >= limits.per_minute:
                return RateLimitDecision(allowed=False, reason="Minute limit exceeded", retry_after=MINUTE_SECONDS)
            if last_hour >= limits.per_hour:
                return RateLimitDecision(allowed=False, reason="Hour limit exceeded", retry_after=HOUR_SECONDS)

            window.append(now)
            self._requests[identity] = window
        return RateLimitDecision(allowed=True)

    def _sweep(self, hour_ago: float) -> None:
        """Drop identities with no request in the trailing hour. Caller holds the lock."""
        stale = [k for k, w in self._requests.items() if not w or w[-1] <= hour_ago]
        for k in stale:
            del self._requests[k]
        if stale:
            logger.debug("Rate limiter sweep removed %d idle identities", len(stale))

    def block(self, identity: str) -> None:
        self._blacklist.add(identity)
        logger.info("Identity blacklisted: %s", identity)

    def unblock(self, identity: str) -> None:
        self._blacklist.discard(identity)

    def stats(self) -> dict:
        with self._lock:
            tracked = len(self._requests)
        return {
            "status": "healthy",
            "trackedIdentities": tracked,
            "blacklisted": len(self._blacklist),
            "limits": {
                "default": {"perMinute": self._default.per_minute, "perHour": self._default.per_hour},
                **{
                    name: {"perMinute": lim.per_minute, "perHour": lim.per_hour}
                    for name, lim in TIER_LIMITS.items()
                },
            },
        }
