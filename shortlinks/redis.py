"""Redis client construction for the redirect cache.

The cache is optional. When it is disabled in settings the factory returns
``None`` and every consumer treats that as "no cache", never as an error.

Flow Diagram - create_redis()
=============================
::
    ┌──────────────┐
    │ settings     │
    └──────┬───────┘
    CACHE_ENABLED and REDIS_URL?
    ┌──────┴──────┐
    │ NO           │ YES
    ▼              ▼
┌─────────┐   ┌──────────────┐
│ None    │   │ Redis client │
│ (no     │   │ (short socket│
│ cache)  │   │  timeouts)   │
└─────────┘   └──────────────┘

How to Use
===========
**Step 1 - Build on startup**::
    cache = create_redis(settings)

**Step 2 - Branch on presence**::
    if cache is not None:
        value = await cache.get("link:abc")

**Step 3 - Cleanup on shutdown**::
    await close_redis(cache)

Key Behaviours
===============
- Socket and connect timeouts are short so an unhealthy Redis degrades the
  redirect path to store-only instead of stalling it.
- UTF-8 encoding with decode_responses for string operations.
"""

from typing import Optional

import redis.asyncio as redis

from shortlinks.config import Settings

__all__ = ["create_redis", "close_redis"]


def create_redis(settings: Settings) -> Optional[redis.Redis]:
    if not settings.cache_configured:
        return None
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
    )


async def close_redis(client: Optional[redis.Redis]) -> None:
    if client is not None:
        await client.aclose()
