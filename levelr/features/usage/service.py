"""
levelr/features/usage/service.py

Monthly analysis accounting backed by the KV counter store.

Handles:
- Atomic per-month increments with a retention TTL
- Count reads as an explicit result (count or error)
- Limit checks per tier

Fail-open policy: a counter store failure must never block an analysis.
Reads that fail count as 0 and limit checks that cannot read allow the
request. The policy lives in `count()` and `can_use()`; `read_count()`
reports the raw outcome.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from redis.exceptions import RedisError

from levelr.core.errors import DevelopmentOnlyError
from levelr.core.metrics import usage_increments_total, usage_store_errors_total
from levelr.features.pricing.service import UNLIMITED, get_tier_limit
from levelr.models.usage import UsageInfo


logger = logging.getLogger("levelr")

USAGE_TTL_SECONDS = 60 * 60 * 24 * 62

_STORE_ERRORS = (RedisError, OSError, ValueError)


def get_month_key(now: Optional[datetime] = None) -> str:
    """YYYY-MM for the given instant (UTC)."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def usage_key(user_id: str, month_key: str) -> str:
    return f"usage:{user_id}:{month_key}"


@dataclass(frozen=True)
class UsageRead:
    """Outcome of a counter read: a count, or the reason it failed."""
    count: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class UsageStore:
    def __init__(
        self,
        client,
        *,
        ttl_seconds: int = USAGE_TTL_SECONDS,
        allow_reset: bool = False,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            client: redis.asyncio client (None = store not configured)
            ttl_seconds: retention window refreshed on every increment
            allow_reset: enable the development-only reset
            now_fn: clock override for deterministic month keys
        """
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.allow_reset = allow_reset
        self.now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def current_month_key(self) -> str:
        return get_month_key(self.now_fn())

    def _record_error(self, op: str, user_id: str, error: object) -> None:
        usage_store_errors_total.inc(labels={"op": op})
        logger.error(
            f"Usage store {op} failed: {error}",
            extra={"user_id": user_id, "event_type": f"usage.{op}_failed"},
        )

    async def increment(self, user_id: str) -> Optional[int]:
        """Count one analysis for the current month.

        Returns the new count, or None if the store was unavailable.
        """
        month_key = self.current_month_key()
        key = usage_key(user_id, month_key)
        if self.client is None:
            self._record_error("increment", user_id, "store not configured")
            return None
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                new_count, _ = await pipe.incr(key).expire(key, self.ttl_seconds).execute()
        except _STORE_ERRORS as e:
            self._record_error("increment", user_id, e)
            return None

        usage_increments_total.inc()
        logger.info(
            f"Recorded analysis {new_count} for {month_key}",
            extra={"user_id": user_id, "event_type": "usage.recorded"},
        )
        return int(new_count)

    async def read_count(self, user_id: str, month_key: str) -> UsageRead:
        if self.client is None:
            return UsageRead(error="store not configured")
        try:
            raw = await self.client.get(usage_key(user_id, month_key))
            return UsageRead(count=int(raw) if raw is not None else 0)
        except _STORE_ERRORS as e:
            return UsageRead(error=str(e) or e.__class__.__name__)

    async def count(self, user_id: str, month_key: Optional[str] = None) -> int:
        read = await self.read_count(user_id, month_key or self.current_month_key())
        if not read.ok:
            self._record_error("read", user_id, read.error)
            return 0
        return read.count

    async def can_use(self, user_id: str, tier: Optional[str]) -> bool:
        limit = get_tier_limit(tier)
        if limit == UNLIMITED:
            return True

        month_key = self.current_month_key()
        read = await self.read_count(user_id, month_key)
        if not read.ok:
            self._record_error("read", user_id, read.error)
            return True

        allowed = read.count < limit
        if not allowed:
            logger.info(
                f"Usage limit reached: {read.count}/{limit} in {month_key}",
                extra={"user_id": user_id, "tier": tier, "event_type": "usage.limit_reached"},
            )
        return allowed

    async def reset(self, user_id: str) -> None:
        """Delete the current month's counter (development only)."""
        if not self.allow_reset:
            raise DevelopmentOnlyError("Usage reset is only available in development")

        month_key = self.current_month_key()
        if self.client is None:
            self._record_error("reset", user_id, "store not configured")
            return
        try:
            await self.client.delete(usage_key(user_id, month_key))
        except _STORE_ERRORS as e:
            self._record_error("reset", user_id, e)
            return
        logger.info(f"Reset usage for {month_key}", extra={"user_id": user_id, "event_type": "usage.reset"})

    async def usage_info(self, user_id: str, tier: str) -> UsageInfo:
        month_key = self.current_month_key()
        current = await self.count(user_id, month_key)
        limit = get_tier_limit(tier)
        unlimited = limit == UNLIMITED
        can_analyze = await self.can_use(user_id, tier)
        return UsageInfo(
            tier=tier,
            month_key=month_key,
            current_usage=current,
            limit="unlimited" if unlimited else limit,
            remaining="unlimited" if unlimited else max(0, limit - current),
            can_analyze=can_analyze,
            is_unlimited=unlimited,
        )

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except _STORE_ERRORS:
            return False
