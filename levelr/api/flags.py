"""
Flags API routes.

- GET /api/flags: resolved flags for the caller (anonymous callers get defaults)
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from levelr.api.deps import get_gate
from levelr.core.auth import resolve_user_id
from levelr.core.errors import AuthenticationError
from levelr.features.flags.service import to_client_flags
from levelr.features.gate.service import ApiGate


router = APIRouter(prefix="/api", tags=["flags"])


@router.get("/flags")
async def get_client_flags(request: Request, gate: ApiGate = Depends(get_gate)) -> Dict[str, Any]:
    try:
        user_id = resolve_user_id(request)
    except AuthenticationError:
        user_id = None

    tier, email = (None, None)
    if user_id:
        tier, email = await gate.lookup_profile(user_id)

    resolver = gate.resolver
    flags = resolver.resolve(tier=tier, overrides=resolver.overrides_from_request(request), email=email)
    return {"tier": tier, "flags": to_client_flags(flags)}
