"""
Stripe implementation of the billing provider.

Users are linked to Stripe customers through `metadata.user_id`; checkout
sessions and subscriptions carry the same key so webhooks can find the user.
"""
import json
from typing import Any, Dict, Optional

import stripe

from levelr.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookEvent,
)
from levelr.models.flags import parse_tier


UPGRADE_TIER = "pro"
DOWNGRADE_TIER = "starter"


class StripeProvider:
    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None):
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        stripe.api_key = secret_key

    def find_customer(self, user_id: str) -> Optional[str]:
        try:
            result = stripe.Customer.search(query=f"metadata['user_id']:'{user_id}'", limit=1)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer lookup failed: {e.user_message or e.__class__.__name__}")
        return result.data[0].id if result.data else None

    def ensure_customer(self, user_id: str, email: Optional[str] = None) -> str:
        existing = self.find_customer(user_id)
        if existing:
            return existing

        customer_data: Dict[str, Any] = {"metadata": {"user_id": user_id}}
        if email:
            customer_data["email"] = email
        try:
            customer = stripe.Customer.create(**customer_data)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer creation failed: {e.user_message or e.__class__.__name__}")
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata or {},
                subscription_data={"metadata": metadata or {}},
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout failed: {e.user_message or e.__class__.__name__}")
        return session.url

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        try:
            session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe portal failed: {e.user_message or e.__class__.__name__}")
        return session.url

    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookEvent:
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")

        sig_header = headers.get("stripe-signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
            event = json.loads(body)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError:
            raise BillingWebhookError("Invalid signature")

        return self._parse_event(event)

    def _parse_event(self, event: Dict[str, Any]) -> BillingWebhookEvent:
        event_type = event["type"]
        data = event["data"]["object"]
        metadata = dict(data.get("metadata") or {})
        user_id = metadata.get("user_id")
        tier = None

        if event_type == "checkout.session.completed":
            user_id = user_id or data.get("client_reference_id")
            tier = parse_tier(metadata.get("tier")) or UPGRADE_TIER
        elif event_type == "customer.subscription.deleted":
            tier = DOWNGRADE_TIER

        return BillingWebhookEvent(
            event_id=event["id"],
            event_type=event_type,
            object_id=data.get("id"),
            user_id=user_id,
            tier=tier,
            metadata=metadata,
        )
