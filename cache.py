# cache.py - Redis backed TTL cache
import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

import config

logger = logging.getLogger("cache")

# Expiry per category (seconds)
TTL = {
    "home": 60 * 30,
    "category": 60 * 15,
    "search": 60 * 60 * 24 * 7,
    "detail": 60 * 60 * 24 * 7,
    "play": 60 * 60 * 24 * 7,
}

PREFIXES = list(TTL)

_redis = None
_connected = False


def _new_client():
    if config.REDIS_URL:
        return redis.from_url(config.REDIS_URL, decode_responses=True,
                              socket_connect_timeout=2, socket_timeout=3)
    return redis.Redis(host=config.REDIS_HOST, port=config.REDIS_PORT,
                       password=config.REDIS_PASSWORD, db=config.REDIS_DB,
                       decode_responses=True,
                       socket_connect_timeout=2, socket_timeout=3)


async def init_redis():
    """Connect to Redis. The client is kept on failure and reconnects on the next cache call."""
    global _redis, _connected
    _redis = _new_client()
    try:
        await _redis.ping()
        _connected = True
        logger.info("✅ Redis connected")
        return True
    except (RedisError, OSError) as e:
        logger.error(f"❌ Redis connection failed: {e}")
        _connected = False
        return False


async def _ensure_connection() -> bool:
    """Ping a lost connection back to life. Until it answers every read is a miss."""
    global _connected
    if _connected:
        return True
    if _redis is None:
        return False
    try:
        await _redis.ping()
    except (RedisError, OSError) as e:
        logger.debug(f"Redis still unreachable: {e}")
        return False
    _connected = True
    logger.info("✅ Redis reconnected")
    return True


def _lost(action: str, e: Exception):
    global _connected
    _connected = False
    logger.error(f"{action} failed: {e}")


async def close_redis():
    global _redis, _connected
    if _redis is not None:
        try:
            await _redis.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis: {e}")
        _redis = None
        _connected = False
        logger.info("🔌 Redis connection closed")


def is_connected() -> bool:
    return _connected


def make_key(prefix: str, params: Union[str, Mapping[str, Any]]) -> str:
    """Build `<namespace>:<prefix>:<params>`.

    Mapping params are sorted by name so the key does not depend on how the
    mapping was built.
    """
    if isinstance(params, str):
        encoded = params
    else:
        encoded = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    return f"{config.CACHE_NAMESPACE}:{prefix}:{encoded}"


async def get_cached(key: str):
    if not await _ensure_connection():
        return None
    try:
        data = await _redis.get(key)
    except (RedisError, OSError) as e:
        _lost(f"Cache read for {key}", e)
        return None
    if data is None:
        return None
    try:
        value = json.loads(data)
    except ValueError:
        logger.warning(f"Dropping undecodable cache value at {key}")
        return None
    logger.debug(f"📦 Cache hit: {key}")
    return value


async def set_cached(key: str, value: Any, ttl: int) -> bool:
    if not await _ensure_connection():
        return False
    try:
        data = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error(f"Cache value for {key} is not JSON: {e}")
        return False
    try:
        await _redis.setex(key, ttl, data)
        logger.debug(f"💾 Cached {key} (ttl {ttl}s)")
        return True
    except (RedisError, OSError) as e:
        _lost(f"Cache write for {key}", e)
        return False


async def delete_cached(key: str) -> bool:
    if not await _ensure_connection():
        return False
    try:
        await _redis.delete(key)
        return True
    except (RedisError, OSError) as e:
        _lost(f"Cache delete for {key}", e)
        return False


async def _scan(prefix: str):
    return [k async for k in _redis.scan_iter(match=f"{config.CACHE_NAMESPACE}:{prefix}:*", count=500)]


async def clear_by_prefix(prefix: str) -> int:
    """Remove every key of one category. Returns the number of keys removed."""
    if not await _ensure_connection():
        return 0
    try:
        keys = await _scan(prefix)
        if keys:
            await _redis.delete(*keys)
            logger.info(f"🗑️ Cleared {len(keys)} '{prefix}' keys")
        return len(keys)
    except (RedisError, OSError) as e:
        _lost(f"Cache clear for {prefix}", e)
        return 0


def is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, dict, tuple, str)):
        return len(value) == 0
    return False


async def with_cache(key: str, ttl: int, producer: Callable[[], Awaitable[Any]],
                     cacheable: Optional[Callable[[Any], bool]] = None):
    """Cache-aside: return the cached value, or run `producer` once and store its result.

    Only results accepted by `cacheable` (default: non-empty) are written, so a
    failed scrape is never cached. Concurrent misses on the same key are not
    coalesced; each caller runs its own producer and the last write wins.
    """
    cached = await get_cached(key)
    if cached is not None:
        return cached

    result = await producer()

    ok = cacheable(result) if cacheable else not is_empty(result)
    if ok:
        await set_cached(key, result, ttl)
    return result


async def get_stats() -> dict:
    empty = {"connected": False, "total_keys": 0, "memory": "0",
             "counts": {p: 0 for p in PREFIXES}}
    if not await _ensure_connection():
        return empty
    try:
        info = await _redis.info("memory")
        counts = {}
        for prefix in PREFIXES:
            counts[prefix] = len(await _scan(prefix))
        return {
            "connected": True,
            "total_keys": sum(counts.values()),
            "memory": str(info.get("used_memory_human", "0")),
            "counts": counts,
        }
    except (RedisError, OSError) as e:
        _lost("Cache stats", e)
        return empty
