"""
Billing API routes.

- POST /api/billing/checkout: Create checkout session (payments flag)
- POST /api/billing/portal: Create portal session (payments flag)
- POST /api/billing/webhook: Handle Stripe webhooks (signature verified)
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from levelr.api.deps import get_billing
from levelr.features.billing.service import BillingService
from levelr.features.gate.service import require_gate
from levelr.models.gate import GateContext


router = APIRouter(prefix="/api/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    tier: str = "pro"
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PortalRequest(BaseModel):
    return_url: Optional[str] = None


class UrlResponse(BaseModel):
    url: str


@router.post("/checkout", response_model=UrlResponse)
async def create_checkout(
    body: CheckoutRequest,
    ctx: GateContext = Depends(require_gate("payments", enforce_usage_limits=False)),
    billing: BillingService = Depends(get_billing),
):
    """
    Errors:
        501: Stripe not configured
        400: tier without a configured price
        502: Stripe API error
    """
    url = await billing.start_checkout(
        ctx.user_id,
        body.tier,
        email=ctx.email,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    return UrlResponse(url=url)


@router.post("/portal", response_model=UrlResponse)
async def create_portal(
    body: PortalRequest,
    ctx: GateContext = Depends(require_gate("payments", enforce_usage_limits=False)),
    billing: BillingService = Depends(get_billing),
):
    url = await billing.start_portal(ctx.user_id, body.return_url)
    return UrlResponse(url=url)


@router.post("/webhook")
async def stripe_webhook(request: Request, billing: BillingService = Depends(get_billing)) -> Dict[str, Any]:
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    return await billing.process_webhook(headers, body)
