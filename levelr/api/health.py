"""
Health endpoints for operational monitoring (no secrets exposed).
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from levelr.api.deps import get_settings, get_usage_store
from levelr.core.config import Settings
from levelr.features.usage.service import UsageStore

logger = logging.getLogger("levelr")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    usage: UsageStore = Depends(get_usage_store),
    cfg: Settings = Depends(get_settings),
):
    """Readiness: counter store reachable. Without KV_URL the store is optional outside production."""
    if usage.client is None and not cfg.is_production:
        return {"status": "ok", "kv": "not_configured"}

    if not await usage.ping():
        logger.error("[readyz] counter store unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "counter store unreachable"})
    return {"status": "ok", "kv": "ok"}
