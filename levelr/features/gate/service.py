"""
levelr/features/gate/service.py

Request gate for protected operations.

Sequence (first failing check wins, later checks are not consulted):
1. Identity        -> authentication_required (401) when required and absent
2. Tier lookup     -> lowest tier on any directory failure
3. Flag resolution -> tier preset + development overrides
4. Global auth flag on and anonymous -> authentication_required (401)
5. Required flag off -> feature_disabled (403)
6. Usage exhausted -> limit_exceeded (403), hard block
7. GateContext

The gate only reads. Usage is recorded by the caller after the protected
operation succeeds (record_analysis_usage).
"""

import logging
from typing import Optional, Tuple, Union

from fastapi import Request

from levelr.core.auth import resolve_user_id
from levelr.core.errors import AppError, AuthenticationError, GateError
from levelr.core.metrics import gate_decisions_total
from levelr.features.flags.service import FlagResolver
from levelr.features.pricing.service import UNLIMITED, get_tier_limit
from levelr.features.usage.service import UsageStore
from levelr.models.flags import DEFAULT_TIER, flag_field, wire_name
from levelr.models.gate import (
    AUTHENTICATION_REQUIRED,
    FEATURE_DISABLED,
    INTERNAL_ERROR,
    LIMIT_EXCEEDED,
    GateContext,
    GateDenied,
    GateOptions,
)


logger = logging.getLogger("levelr")

GateDecision = Union[GateContext, GateDenied]


class ApiGate:
    def __init__(self, resolver: FlagResolver, directory, usage: UsageStore):
        self.resolver = resolver
        self.directory = directory
        self.usage = usage

    async def check(self, request: Request, options: GateOptions) -> GateDecision:
        try:
            decision = await self._evaluate(request, options)
        except Exception as e:
            logger.error(
                f"Gate check failed: {e.__class__.__name__}",
                exc_info=True,
                extra={"event_type": "gate.error", "feature": options.required_flag},
            )
            decision = GateDenied(INTERNAL_ERROR, "Unable to verify access. Please try again.", 500)

        reason = decision.reason if isinstance(decision, GateDenied) else "allowed"
        gate_decisions_total.inc(labels={"reason": reason})
        return decision

    async def lookup_profile(self, user_id: str) -> Tuple[str, Optional[str]]:
        if self.directory is None:
            return DEFAULT_TIER, None
        try:
            profile = await self.directory.get_profile(user_id)
        except (AppError, ValueError) as e:
            logger.warning(
                f"Profile lookup failed, using {DEFAULT_TIER}: {e}",
                extra={"user_id": user_id, "event_type": "gate.tier_fallback"},
            )
            return DEFAULT_TIER, None
        return profile.tier, profile.email

    async def _evaluate(self, request: Request, options: GateOptions) -> GateDecision:
        try:
            user_id = resolve_user_id(request)
        except AuthenticationError as e:
            if options.require_auth:
                return GateDenied(AUTHENTICATION_REQUIRED, e.message, 401)
            user_id = None

        if options.require_auth and not user_id:
            return GateDenied(AUTHENTICATION_REQUIRED, "Please sign in to continue", 401)

        tier: Optional[str] = None
        email: Optional[str] = None
        if user_id:
            tier, email = await self.lookup_profile(user_id)

        overrides = self.resolver.overrides_from_request(request)
        flags = self.resolver.resolve(tier=tier, overrides=overrides, email=email)

        if flags.auth and not user_id:
            return GateDenied(AUTHENTICATION_REQUIRED, "Please sign in to continue", 401)

        if not flags.is_enabled(options.required_flag):
            feature = wire_name(options.required_flag)
            return GateDenied(
                FEATURE_DISABLED,
                f"{feature} is not available on your current plan",
                403,
                feature=feature,
            )

        effective_tier = tier or DEFAULT_TIER
        if (
            options.enforce_usage_limits
            and flags.usage_limits
            and user_id
            and get_tier_limit(effective_tier) != UNLIMITED
            and not await self.usage.can_use(user_id, effective_tier)
        ):
            return GateDenied(
                LIMIT_EXCEEDED,
                f"You've used all {get_tier_limit(effective_tier)} analyses for this month. Upgrade for unlimited analyses.",
                403,
            )

        return GateContext(user_id=user_id, tier=effective_tier, flags=flags, email=email)


def require_gate(required_flag: str, *, require_auth: bool = True, enforce_usage_limits: bool = True):
    """
    FastAPI dependency factory: returns the GateContext or raises GateError.

    Raises:
        ValueError: required_flag is not a known flag (at declaration time)
    """
    try:
        flag_field(required_flag)
    except KeyError as e:
        raise ValueError(str(e)) from e

    options = GateOptions(
        required_flag=required_flag,
        require_auth=require_auth,
        enforce_usage_limits=enforce_usage_limits,
    )

    async def gate_dependency(request: Request) -> GateContext:
        gate: ApiGate = request.app.state.gate
        decision = await gate.check(request, options)
        if isinstance(decision, GateDenied):
            raise GateError(
                decision.reason,
                decision.message,
                status_code=decision.status_code,
                feature=decision.feature,
            )
        return decision

    return gate_dependency


async def record_analysis_usage(usage: UsageStore, user_id: Optional[str]) -> Optional[int]:
    """Count a completed analysis; anonymous callers are not counted."""
    if not user_id:
        return None
    return await usage.increment(user_id)
