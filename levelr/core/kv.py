"""
Counter store connection.

Vercel KV (and any Upstash/Redis deployment) speaks the Redis protocol, so the
usage counters and webhook de-duplication keys go through redis-py's asyncio
client. A missing KV_URL yields no client; callers treat that as a store
outage and fail open.
"""
import logging
from typing import Optional

from redis import asyncio as aioredis

from levelr.core.config import Settings, settings

logger = logging.getLogger("levelr")


def create_kv_client(settings_obj: Optional[Settings] = None) -> Optional[aioredis.Redis]:
    cfg = settings_obj or settings
    if not cfg.KV_URL:
        logger.warning("KV_URL not configured; usage tracking disabled (fail-open)")
        return None
    return aioredis.from_url(
        cfg.KV_URL,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )
