"""
Answer cache keyed by a fingerprint of (sanitized message, user id).
- TTL depends on the query category and is fixed when the entry is written (no sliding expiry).
- Expired entries read as a miss; put() sweeps all expired entries.
- RedisResponseCache is an optional shared tier (Cache-Aside). Redis errors are logged, never raised.
"""
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

RESPONSE_KEY_PREFIX = "chat:response:"


def fingerprint(message: str, user_id: str | None = None) -> str:
    """SHA-256 over the message and optional user id."""
    raw = json.dumps([message, user_id], ensure_ascii=False)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    fingerprint: str
    payload: str
    category: str
    created_at: float
    expires_at: float


class ResponseCache:
    """In-process cache. Hit/miss counters are for observability only."""

    def __init__(
        self,
        ttls: dict[str, int],
        default_ttl: int,
        clock: Callable[[], float] = time.time,
    ):
        self._ttls = dict(ttls)
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def ttl_for(self, category: str) -> int:
        return self._ttls.get(str(getattr(category, "value", category)), self._default_ttl)

    def get(self, message: str, user_id: str | None = None) -> str | None:
        key = fingerprint(message, user_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                self._hits += 1
                logger.debug("Cache hit %s (category=%s)", key[:12], entry.category)
                return entry.payload
            self._misses += 1
            return None

    def put(
        self,
        message: str,
        user_id: str | None,
        payload: str,
        category: str,
        expires_at: float | None = None,
    ) -> CacheEntry:
        """Store payload, overwriting any entry with the same fingerprint.
        expires_at overrides the category TTL (used when copying an entry from the shared tier)."""
        category = str(getattr(category, "value", category))
        with self._lock:
            now = self._clock()
            entry = CacheEntry(
                fingerprint=fingerprint(message, user_id),
                payload=payload,
                category=category,
                created_at=now,
                expires_at=expires_at if expires_at is not None else now + self.ttl_for(category),
            )
            self._entries[entry.fingerprint] = entry
            self._sweep(now)
        return entry

    def _sweep(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total else 0.0
            return {
                "totalHits": self._hits,
                "totalMisses": self._misses,
                "hitRate": f"{hit_rate:.2f}%",
                "cacheSize": len(self._entries),
            }


def _serialize(entry: CacheEntry) -> str:
    return json.dumps({
        "payload": entry.payload,
        "category": entry.category,
        "created_at": entry.created_at,
        "expires_at": entry.expires_at,
    })


def _deserialize(s: str) -> dict | None:
    try:
        data = json.loads(s)
        if isinstance(data, dict) and "payload" in data and "expires_at" in data:
            return data
    except (json.JSONDecodeError, TypeError):
        pass
    return None


class RedisResponseCache:
    """
    Shared response tier for multi-instance deployments. Key: chat:response:{fingerprint}.
    The entry stores its absolute expiry so a copy pulled into a local cache keeps the original TTL.
    All methods swallow Redis errors and log; caller gets None or no-op on failure.
    """

    def __init__(self, redis_client: Any):
        self._redis = redis_client

    async def get(self, message: str, user_id: str | None = None) -> dict | None:
        if not self._redis:
            return None
        key = fingerprint(message, user_id)
        try:
            raw = await self._redis.get(f"{RESPONSE_KEY_PREFIX}{key}")
            if not raw:
                return None
            data = _deserialize(raw.decode() if isinstance(raw, bytes) else raw)
            if data is None or time.time() >= float(data["expires_at"]):
                return None
            return data
        except Exception as e:
            logger.warning("Redis response cache get failed for %s: %s", key[:12], e, exc_info=False)
            return None

    async def put(self, entry: CacheEntry) -> None:
        if not self._redis:
            return
        ttl = int(entry.expires_at - entry.created_at)
        if ttl <= 0:
            return
        try:
            await self._redis.set(f"{RESPONSE_KEY_PREFIX}{entry.fingerprint}", _serialize(entry), ex=ttl)
        except Exception as e:
            logger.warning("Redis response cache put failed for %s: %s", entry.fingerprint[:12], e, exc_info=False)
