"""
Billing service orchestrator.

Coordinates checkout, the billing portal and webhook-driven tier sync. Tiers
live in the user directory; this module never stores subscription state.

Webhook processing is idempotent: each Stripe event id is claimed in the KV
store (SET NX) before it is applied, and released again if applying fails so
Stripe's retry can succeed.
"""
import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from starlette.concurrency import run_in_threadpool

from levelr.core.config import Settings
from levelr.core.errors import NotFoundError, ValidationError
from levelr.core.logging import log_event
from levelr.features.billing.provider import (
    BillingDisabledError,
    BillingProvider,
    BillingWebhookEvent,
)
from levelr.features.billing.stripe_provider import StripeProvider


logger = logging.getLogger("levelr")

EVENT_DEDUPE_TTL_SECONDS = 60 * 60 * 24 * 7
PAID_TIERS = ("pro", "team", "enterprise")


def event_key(event_id: str) -> str:
    return f"stripe:event:{event_id}"


class BillingService:
    def __init__(
        self,
        provider: Optional[BillingProvider],
        directory,
        kv=None,
        *,
        prices: Optional[Dict[str, Optional[str]]] = None,
        app_url: str = "http://localhost:3000",
    ):
        self.provider = provider
        self.directory = directory
        self.kv = kv
        self.prices = {tier: price for tier, price in (prices or {}).items() if price}
        self.app_url = app_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings_obj: Settings, directory, kv=None) -> "BillingService":
        provider = None
        if settings_obj.STRIPE_SECRET_KEY:
            provider = StripeProvider(settings_obj.STRIPE_SECRET_KEY, settings_obj.STRIPE_WEBHOOK_SECRET)
        return cls(
            provider,
            directory,
            kv,
            prices={
                "pro": settings_obj.STRIPE_PRICE_PRO,
                "team": settings_obj.STRIPE_PRICE_TEAM,
                "enterprise": settings_obj.STRIPE_PRICE_ENTERPRISE,
            },
            app_url=settings_obj.APP_URL,
        )

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def _require_provider(self) -> BillingProvider:
        if self.provider is None:
            raise BillingDisabledError("Stripe not configured")
        return self.provider

    async def start_checkout(
        self,
        user_id: str,
        tier: str = "pro",
        *,
        email: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> str:
        """
        Returns:
            Checkout URL

        Raises:
            BillingDisabledError: Stripe not configured
            ValidationError: tier is not a paid tier with a configured price
            BillingProviderError: Stripe call failed
        """
        provider = self._require_provider()
        if tier not in PAID_TIERS:
            raise ValidationError(f"Cannot check out tier: {tier}")
        price_id = self.prices.get(tier)
        if not price_id:
            raise ValidationError(f"No Stripe price configured for tier: {tier}")

        customer_id = await run_in_threadpool(provider.ensure_customer, user_id, email)
        url = await run_in_threadpool(
            provider.create_checkout_session,
            customer_id,
            price_id,
            success_url or f"{self.app_url}/analyze?upgraded=true",
            cancel_url or f"{self.app_url}/pricing?cancelled=true",
            {"user_id": user_id, "tier": tier},
        )
        logger.info("billing.checkout_started", extra={"user_id": user_id, "tier": tier})
        return url

    async def start_portal(self, user_id: str, return_url: Optional[str] = None) -> str:
        """
        Raises:
            BillingDisabledError: Stripe not configured
            NotFoundError: user has never subscribed
        """
        provider = self._require_provider()
        customer_id = await run_in_threadpool(provider.find_customer, user_id)
        if not customer_id:
            raise NotFoundError("No subscription found. Please upgrade to Pro first.")
        return await run_in_threadpool(
            provider.create_portal_session,
            customer_id,
            return_url or f"{self.app_url}/billing",
        )

    async def _claim_event(self, event_id: str) -> bool:
        """False if the event was already processed."""
        if self.kv is None:
            return True
        try:
            claimed = await self.kv.set(event_key(event_id), "1", nx=True, ex=EVENT_DEDUPE_TTL_SECONDS)
        except RedisError as e:
            logger.warning(f"Webhook dedupe unavailable, processing anyway: {e}")
            return True
        return bool(claimed)

    async def _release_event(self, event_id: str) -> None:
        if self.kv is None:
            return
        try:
            await self.kv.delete(event_key(event_id))
        except RedisError as e:
            logger.warning(f"Could not release webhook event {event_id}: {e}")

    async def process_webhook(self, headers: Dict[str, str], body: bytes) -> Dict[str, Any]:
        """
        Verify and apply a webhook event.

        Raises:
            BillingDisabledError: Stripe not configured
            BillingWebhookError: bad signature or payload
        """
        provider = self._require_provider()
        event = provider.parse_webhook(headers, body)

        if not await self._claim_event(event.event_id):
            log_event("info", "billing.webhook_duplicate", event_type=event.event_type, extra={"event_id": event.event_id})
            return {"received": True, "duplicate": True}

        try:
            await self._apply(event)
        except Exception:
            await self._release_event(event.event_id)
            raise
        log_event(
            "info",
            "billing.webhook_processed",
            user_id=event.user_id,
            event_type=event.event_type,
            extra={"event_id": event.event_id, "object_id": event.object_id},
        )

        return {"received": True}

    async def _apply(self, event: BillingWebhookEvent) -> None:
        if event.event_type == "invoice.payment_failed":
            logger.warning(
                f"Payment failed for invoice {event.object_id}",
                extra={"user_id": event.user_id, "event_type": event.event_type},
            )
            return

        if event.tier is None:
            logger.info(f"Unhandled webhook event type: {event.event_type}", extra={"event_type": event.event_type})
            return

        if not event.user_id:
            if event.event_type == "checkout.session.completed":
                raise ValidationError("No user_id in checkout session metadata")
            logger.warning(
                f"No user_id on {event.object_id}, tier unchanged",
                extra={"event_type": event.event_type},
            )
            return

        await self.directory.set_tier(event.user_id, event.tier)
        logger.info(
            f"Tier synced to {event.tier}",
            extra={"user_id": event.user_id, "tier": event.tier, "event_type": event.event_type},
        )
