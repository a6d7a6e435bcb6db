# storefront/rate_limit.py

from dataclasses import dataclass

import redis.asyncio as redis

from .errors import RateLimitError


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int


async def rate_limit(rds: redis.Redis, ip: str, endpoint: str, limit: int, window: int) -> RateLimitResult:
    """Fixed-window counter: ``limit`` requests per ``window`` seconds per ip."""
    key = f"rate-limit:{endpoint}:{ip}"

    count = await rds.incr(key)
    if count == 1:
        await rds.expire(key, window)
    ttl = await rds.ttl(key)

    reset = window if ttl < 0 else ttl
    return RateLimitResult(
        success=count <= limit,
        limit=limit,
        remaining=max(0, limit - count),
        reset=reset,
    )


async def enforce_rate_limit(rds: redis.Redis, ip: str, endpoint: str, limit: int, window: int) -> RateLimitResult:
    result = await rate_limit(rds, ip, endpoint, limit, window)
    if not result.success:
        raise RateLimitError(result.limit, result.remaining, result.reset)
    return result
