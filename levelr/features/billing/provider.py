"""
Billing provider protocol.

Defines the interface for billing providers (Stripe, etc.) so tier sync does
not depend on a specific vendor.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from levelr.core.errors import AppError, UpstreamError, ValidationError


@dataclass
class BillingWebhookEvent:
    """Verified webhook event, reduced to what tier sync needs."""
    event_id: str
    event_type: str
    object_id: Optional[str]
    user_id: Optional[str]
    tier: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    def ensure_customer(self, user_id: str, email: Optional[str] = None) -> str:
        """
        Return the provider customer id for a user, creating it if needed.

        Raises:
            BillingProviderError
        """
        ...

    def find_customer(self, user_id: str) -> Optional[str]:
        ...

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Returns:
            Checkout session URL

        Raises:
            BillingProviderError
        """
        ...

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        ...

    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookEvent:
        """
        Verify the signature and parse the event.

        Raises:
            BillingWebhookError: missing/invalid signature or payload
        """
        ...


class BillingDisabledError(AppError):
    code = "billing_disabled"
    status_code = 501


class BillingProviderError(UpstreamError):
    code = "billing_provider_error"


class BillingWebhookError(ValidationError):
    code = "invalid_webhook"
