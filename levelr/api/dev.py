"""
Development API routes.

- GET    /api/dev/flags: resolved flags for the caller (debugging)
- PUT    /api/dev/flags: write the ff override cookie
- DELETE /api/dev/flags: clear the ff override cookie
- GET    /api/dev/usage: usage info for the caller
- DELETE /api/dev/usage: reset the caller's current month
- POST   /api/dev/usage/increment: record one analysis by hand
- GET    /api/dev/set-tier?tier=pro, POST /api/dev/set-tier: assign a tier

Everything except GET /api/dev/flags is development only.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, StrictBool
from starlette.requests import Request

from levelr.api.deps import get_directory, get_gate, get_usage_store, require_development
from levelr.core.auth import get_current_user_id
from levelr.core.errors import ValidationError
from levelr.features.flags.service import (
    OVERRIDE_COOKIE,
    OVERRIDE_COOKIE_MAX_AGE,
    decode_overrides,
    encode_overrides,
    to_client_flags,
)
from levelr.features.gate.service import ApiGate
from levelr.features.usage.service import UsageStore
from levelr.models.flags import TIERS, wire_name


logger = logging.getLogger("levelr")

router = APIRouter(prefix="/api/dev", tags=["dev"])


class SetTierRequest(BaseModel):
    tier: Optional[str] = None


@router.get("/flags")
async def debug_flags(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    gate: ApiGate = Depends(get_gate),
) -> Dict[str, Any]:
    tier, email = await gate.lookup_profile(user_id)
    resolver = gate.resolver
    flags = resolver.resolve(tier=tier, overrides=resolver.overrides_from_request(request), email=email)
    return {
        "userId": user_id,
        "userEmail": email,
        "tier": tier,
        "flags": to_client_flags(flags),
        "overridesActive": resolver.debug_overrides_enabled,
    }


@router.put("/flags", dependencies=[Depends(require_development)])
async def write_override_cookie(
    overrides: Dict[str, StrictBool],
    response: Response,
    gate: ApiGate = Depends(get_gate),
) -> Dict[str, Any]:
    blob = encode_overrides(overrides)
    response.set_cookie(
        OVERRIDE_COOKIE,
        blob,
        max_age=OVERRIDE_COOKIE_MAX_AGE,
        httponly=False,
        samesite="lax",
    )
    applied = {wire_name(k): v for k, v in decode_overrides(blob).items()}
    logger.info(f"Override cookie set with {len(applied)} flag(s)")
    return {"overrides": applied, "overridesActive": gate.resolver.debug_overrides_enabled}


@router.delete("/flags", dependencies=[Depends(require_development)])
async def clear_override_cookie(response: Response) -> Dict[str, Any]:
    response.delete_cookie(OVERRIDE_COOKIE)
    return {"success": True}


@router.get("/usage", dependencies=[Depends(require_development)])
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    gate: ApiGate = Depends(get_gate),
    usage: UsageStore = Depends(get_usage_store),
) -> Dict[str, Any]:
    tier, _ = await gate.lookup_profile(user_id)
    info = await usage.usage_info(user_id, tier)
    return {
        "userId": user_id,
        "usageInfo": info.model_dump(by_alias=True),
        "actions": {"reset": "/api/dev/usage", "increment": "/api/dev/usage/increment"},
    }


@router.delete("/usage", dependencies=[Depends(require_development)])
async def reset_usage(
    user_id: str = Depends(get_current_user_id),
    gate: ApiGate = Depends(get_gate),
    usage: UsageStore = Depends(get_usage_store),
) -> Dict[str, Any]:
    await usage.reset(user_id)
    tier, _ = await gate.lookup_profile(user_id)
    info = await usage.usage_info(user_id, tier)
    return {
        "success": True,
        "message": "Usage reset successfully",
        "usageInfo": info.model_dump(by_alias=True),
    }


@router.post("/usage/increment", dependencies=[Depends(require_development)])
async def increment_usage(
    user_id: str = Depends(get_current_user_id),
    gate: ApiGate = Depends(get_gate),
    usage: UsageStore = Depends(get_usage_store),
) -> Dict[str, Any]:
    new_count = await usage.increment(user_id)
    tier, _ = await gate.lookup_profile(user_id)
    info = await usage.usage_info(user_id, tier)
    return {"success": new_count is not None, "usageInfo": info.model_dump(by_alias=True)}


async def _assign_tier(directory, user_id: str, tier: Optional[str]) -> Dict[str, Any]:
    if not tier or tier not in TIERS:
        raise ValidationError(f"Invalid tier. Valid tiers: {', '.join(TIERS)}")
    await directory.set_tier(user_id, tier)
    return {
        "success": True,
        "message": f"User tier updated to: {tier}",
        "userId": user_id,
        "tier": tier,
    }


@router.get("/set-tier", dependencies=[Depends(require_development)])
async def set_tier_query(
    tier: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    directory=Depends(get_directory),
) -> Dict[str, Any]:
    result = await _assign_tier(directory, user_id, tier)
    result["redirectTo"] = "/dashboard"
    return result


@router.post("/set-tier", dependencies=[Depends(require_development)])
async def set_tier_body(
    body: SetTierRequest,
    user_id: str = Depends(get_current_user_id),
    directory=Depends(get_directory),
) -> Dict[str, Any]:
    return await _assign_tier(directory, user_id, body.tier)
