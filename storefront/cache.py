# storefront/cache.py

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from config.settings import settings

logger = logging.getLogger(__name__)


async def get_redis_client() -> redis.Redis:
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def _key(key: str, prefix: Optional[str]) -> str:
    return f"{prefix}:{key}" if prefix else key


async def get_from_cache(rds: redis.Redis, key: str, prefix: Optional[str] = None) -> Optional[Any]:
    raw = await rds.get(_key(key, prefix))
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("[Cache] Dropping undecodable entry %s", _key(key, prefix))
        await rds.delete(_key(key, prefix))
        return None


async def set_in_cache(
    rds: redis.Redis,
    key: str,
    value: Any,
    ttl: Optional[int] = None,
    prefix: Optional[str] = None,
) -> None:
    """Store ``value`` as JSON; ``ttl`` is in seconds."""
    await rds.set(_key(key, prefix), json.dumps(value), ex=ttl)


async def invalidate_cache(rds: redis.Redis, *keys: str, prefix: Optional[str] = None) -> None:
    if keys:
        await rds.delete(*[_key(k, prefix) for k in keys])


async def invalidate_cache_pattern(rds: redis.Redis, pattern: str, prefix: Optional[str] = None) -> int:
    keys = [k async for k in rds.scan_iter(match=_key(pattern, prefix))]
    if keys:
        await rds.delete(*keys)
    return len(keys)
