# storefront/deps.py
"""FastAPI dependencies shared by the routers."""

from dataclasses import dataclass
from functools import lru_cache
from typing import AsyncIterator

import redis.asyncio as redis
from fastapi import Depends, Request

from config.settings import settings

from .cache import get_redis_client
from .errors import UnauthorizedError
from .fal_client import FalClient
from .printful_client import PrintfulClient
from .rate_limit import enforce_rate_limit
from .sessions import GenerationSessions
from .supabase_client import SupabaseClient
from .utils import PromptEnhancer

ACCESS_TOKEN_COOKIE = "sb-access-token"


@dataclass
class CurrentUser:
    id: str
    access_token: str


@lru_cache
def get_fal_client() -> FalClient:
    return FalClient()


@lru_cache
def get_printful_client() -> PrintfulClient:
    return PrintfulClient()


@lru_cache
def get_sessions() -> GenerationSessions:
    return GenerationSessions(get_fal_client())


@lru_cache
def get_prompt_enhancer() -> PromptEnhancer:
    return PromptEnhancer(
        base_url=settings.OPENAI_BASE_URL,
        model=settings.OPENAI_MODEL,
        api_key=settings.OPENAI_API_KEY,
    )


def get_db() -> SupabaseClient:
    return SupabaseClient()


async def get_redis() -> AsyncIterator[redis.Redis]:
    rds = await get_redis_client()
    try:
        yield rds
    finally:
        await rds.aclose()


async def get_current_user(request: Request, db: SupabaseClient = Depends(get_db)) -> CurrentUser:
    token = None
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
    if not token:
        token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise UnauthorizedError()

    user = await db.get_user(token)
    if not user or not user.get("id"):
        raise UnauthorizedError()
    return CurrentUser(id=user["id"], access_token=token)


async def limit_generation(request: Request, rds: redis.Redis = Depends(get_redis)) -> None:
    ip = request.client.host if request.client else "unknown"
    await enforce_rate_limit(
        rds, ip, "generate", settings.RATE_LIMIT_GENERATE, settings.RATE_LIMIT_WINDOW
    )
