# storefront/routes_orders.py

import redis.asyncio as redis
from fastapi import APIRouter, Depends

from . import orders
from .deps import CurrentUser, get_current_user, get_db, get_redis
from .model import OrderUpdate
from .supabase_client import SupabaseClient

router = APIRouter(prefix="/api/protected/orders")


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: SupabaseClient = Depends(get_db),
    rds: redis.Redis = Depends(get_redis),
):
    order = await orders.get_order(db.with_token(user.access_token), rds, user.id, order_id)
    return {"order": order}


@router.put("/{order_id}")
async def update_order(
    order_id: str,
    changes: OrderUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: SupabaseClient = Depends(get_db),
    rds: redis.Redis = Depends(get_redis),
):
    order = await orders.update_order(db.with_token(user.access_token), rds, user.id, order_id, changes)
    return {"order": order}


@router.delete("/{order_id}")
async def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: SupabaseClient = Depends(get_db),
    rds: redis.Redis = Depends(get_redis),
):
    order = await orders.cancel_order(db.with_token(user.access_token), rds, user.id, order_id)
    return {"order": order}
