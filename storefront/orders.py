# storefront/orders.py

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import redis.asyncio as redis

from config.settings import settings

from .cache import get_from_cache, invalidate_cache, set_in_cache
from .errors import OwnershipError, ValidationError
from .model import OrderUpdate
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

ORDER_KEY_PREFIX = "order:"     # order:{order_id}
USER_ORDERS_PREFIX = "orders:"  # orders:{user_id}


def _check_owner(order: Dict[str, Any], user_id: str) -> None:
    if order.get("user_id") != user_id:
        raise OwnershipError()


async def _invalidate(rds: redis.Redis, order_id: str, user_id: str) -> None:
    await invalidate_cache(rds, f"{ORDER_KEY_PREFIX}{order_id}", f"{USER_ORDERS_PREFIX}{user_id}")


async def get_order(db: SupabaseClient, rds: redis.Redis, user_id: str, order_id: str) -> Dict[str, Any]:
    """Read an order, cache first. Only the owner may see it."""
    cache_key = f"{ORDER_KEY_PREFIX}{order_id}"

    cached = await get_from_cache(rds, cache_key)
    if cached is not None:
        _check_owner(cached, user_id)
        return cached

    order = await db.select_one("orders", order_id, "*, designs(name, image_url, prompt)")
    _check_owner(order, user_id)

    await set_in_cache(rds, cache_key, order, ttl=settings.ORDER_CACHE_TTL)
    return order


async def update_order(
    db: SupabaseClient,
    rds: redis.Redis,
    user_id: str,
    order_id: str,
    changes: OrderUpdate,
) -> Dict[str, Any]:
    existing = await db.select_one("orders", order_id, "user_id")
    _check_owner(existing, user_id)

    values = changes.model_dump(exclude_unset=True)
    values["updated_at"] = datetime.now(timezone.utc).isoformat()
    updated = await db.update("orders", order_id, values)

    await _invalidate(rds, order_id, user_id)
    logger.info("[Orders] Order %s updated by %s", order_id, user_id)
    return updated


async def cancel_order(db: SupabaseClient, rds: redis.Redis, user_id: str, order_id: str) -> Dict[str, Any]:
    existing = await db.select_one("orders", order_id, "user_id, status")
    _check_owner(existing, user_id)

    if existing.get("status") != "pending":
        raise ValidationError("Only pending orders can be cancelled")

    updated = await db.update(
        "orders",
        order_id,
        {"status": "cancelled", "updated_at": datetime.now(timezone.utc).isoformat()},
    )

    await _invalidate(rds, order_id, user_id)
    logger.info("[Orders] Order %s cancelled by %s", order_id, user_id)
    return updated
