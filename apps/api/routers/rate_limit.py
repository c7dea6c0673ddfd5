"""Per-client request quotas for the write endpoints (Redis, in-process fallback)."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def _consume_redis_quota(key: str, window_seconds: int) -> int:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        async with client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            count, _ = await pipe.execute()
        return int(count)
    finally:
        await client.aclose()


async def _consume_local_quota(key: str, window_seconds: int) -> int:
    now = time.time()
    async with _local_lock:
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
        return count


def rate_limit(prefix: str, limit: int, window_seconds: int = 3600) -> Callable:
    """FastAPI dependency allowing `limit` calls per client per window."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False) or limit <= 0:
            return

        key = f"voiceflow:rate:{prefix}:{_client_identifier(request)}"
        try:
            count = await _consume_redis_quota(key, window_seconds)
        except redis.RedisError as exc:
            logger.warning("Rate limit store unavailable (%s); counting in-process", exc)
            count = await _consume_local_quota(key, window_seconds)

        if count > limit:
            raise HTTPException(
                status_code=429,
                detail=f"Too many {prefix} requests. Try again later.",
            )

    return _dependency
