"""
Shared response tier lifecycle. The tier exists only when REDIS_URL is set and the server
answers a ping at startup; otherwise responses are cached in-process only.
"""
import logging

from redis.asyncio import Redis

from app.config import get_settings
from app.services.response_cache import RedisResponseCache

logger = logging.getLogger(__name__)

_shared_cache: RedisResponseCache | None = None
_connection: Redis | None = None


def _redacted(url: str) -> str:
    return url.split("@")[-1]


async def build_redis_response_cache(url: str | None = None) -> RedisResponseCache | None:
    """One RedisResponseCache per process, or None when disabled or unreachable."""
    global _shared_cache, _connection
    if _shared_cache is not None:
        return _shared_cache
    url = (get_settings().redis_url if url is None else url).strip()
    if not url:
        return None
    try:
        connection = Redis.from_url(url, decode_responses=True)
        await connection.ping()
    except Exception as e:
        logger.warning("Shared response cache disabled, %s unreachable: %s", _redacted(url), e)
        return None
    _connection = connection
    _shared_cache = RedisResponseCache(connection)
    logger.info("Shared response cache on %s", _redacted(url))
    return _shared_cache


async def close_redis_response_cache() -> None:
    global _shared_cache, _connection
    if _connection is not None:
        try:
            await _connection.aclose()
        except Exception as e:
            logger.warning("Redis close error: %s", e)
    _shared_cache = None
    _connection = None
