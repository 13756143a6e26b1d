"""In-process request metrics for the health endpoint. Volatile; reset on restart."""
import threading
import time
from collections import Counter, deque
from collections.abc import Callable

WINDOW_SECONDS = 3600


class MetricsCollector:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._total_requests = 0
        self._cached_requests = 0
        self._errors: Counter[str] = Counter()
        self._query_types: Counter[str] = Counter()
        # (timestamp, duration_ms, estimated_tokens) for the trailing hour
        self._performance: deque[tuple[float, float, int]] = deque()

    def record_request(self, query_type: str | None, cached: bool = False) -> None:
        with self._lock:
            self._total_requests += 1
            if cached:
                self._cached_requests += 1
            if query_type:
                self._query_types[query_type] += 1

    def record_performance(self, duration_ms: float, token_count: int = 0) -> None:
        with self._lock:
            now = self._clock()
            self._performance.append((now, duration_ms, token_count))
            self._prune(now)

    def record_error(self, code: str) -> None:
        with self._lock:
            self._total_requests += 1
            self._errors[code] += 1

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while self._performance and self._performance[0][0] <= cutoff:
            self._performance.popleft()

    def stats(self) -> dict:
        with self._lock:
            self._prune(self._clock())
            recent = list(self._performance)
            total_errors = sum(self._errors.values())
            avg_duration = sum(p[1] for p in recent) / len(recent) if recent else 0
            avg_tokens = sum(p[2] for p in recent) / len(recent) if recent else 0
            error_rate = (total_errors / self._total_requests * 100) if self._total_requests else 0.0
            return {
                "totalRequests": self._total_requests,
                "cachedRequests": self._cached_requests,
                "averageResponseTime": round(avg_duration),
                "averageTokenCount": round(avg_tokens),
                "errorRate": f"{error_rate:.2f}%",
                "errors": dict(self._errors),
                "queryTypeDistribution": dict(self._query_types),
            }


def estimate_tokens(*texts: str) -> int:
    """Rough token estimate: ~4 characters per token."""
    return -(-sum(len(t) for t in texts) // 4)
