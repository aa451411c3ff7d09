"""Tests for checkout, the billing portal and webhook-driven tier sync."""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

import pytest

from levelr.features.billing.provider import BillingDisabledError, BillingWebhookError
from levelr.features.billing.service import BillingService, event_key
from levelr.features.billing.stripe_provider import StripeProvider
from levelr.features.usage.service import get_month_key, usage_key
from levelr.tests.mocks import FailingRedis, FakeBillingProvider, FakeDirectory, FakeRedis


WEBHOOK_SECRET = "whsec_test_secret"


def _event(event_id="evt_1", event_type="checkout.session.completed", user_id="user_1", tier="pro"):
    return json.dumps(
        {"id": event_id, "type": event_type, "object_id": "cs_1", "user_id": user_id, "tier": tier}
    ).encode()


def make_service(directory=None, kv=None, provider=None):
    return BillingService(
        provider or FakeBillingProvider(),
        directory if directory is not None else FakeDirectory(),
        kv if kv is not None else FakeRedis(),
        prices={"pro": "price_pro", "team": "price_team", "enterprise": None},
        app_url="https://app.levelr.test/",
    )


@pytest.mark.asyncio
async def test_checkout_completed_upgrades_tier():
    directory = FakeDirectory()
    service = make_service(directory=directory)

    result = await service.process_webhook({"stripe-signature": "valid"}, _event())

    assert result == {"received": True}
    assert directory.tiers["user_1"] == "pro"


@pytest.mark.asyncio
async def test_duplicate_event_is_applied_once():
    directory = FakeDirectory()
    kv = FakeRedis()
    service = make_service(directory=directory, kv=kv)

    await service.process_webhook({"stripe-signature": "valid"}, _event())
    result = await service.process_webhook({"stripe-signature": "valid"}, _event())

    assert result == {"received": True, "duplicate": True}
    assert directory.set_calls == [("user_1", "pro")]
    assert event_key("evt_1") in kv.store


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades():
    directory = FakeDirectory(tiers={"user_1": "pro"})
    service = make_service(directory=directory)

    await service.process_webhook(
        {"stripe-signature": "valid"},
        _event(event_id="evt_2", event_type="customer.subscription.deleted", tier="starter"),
    )

    assert directory.tiers["user_1"] == "starter"


@pytest.mark.asyncio
async def test_failed_apply_releases_event_for_retry():
    kv = FakeRedis()
    failing = FakeDirectory(fail=True)
    service = make_service(directory=failing, kv=kv)

    with pytest.raises(Exception):
        await service.process_webhook({"stripe-signature": "valid"}, _event())
    assert event_key("evt_1") not in kv.store

    failing.fail = False
    assert await service.process_webhook({"stripe-signature": "valid"}, _event()) == {"received": True}
    assert failing.tiers["user_1"] == "pro"


@pytest.mark.asyncio
async def test_dedupe_outage_still_processes():
    directory = FakeDirectory()
    service = make_service(directory=directory, kv=FailingRedis())

    assert await service.process_webhook({"stripe-signature": "valid"}, _event()) == {"received": True}
    assert directory.tiers["user_1"] == "pro"


@pytest.mark.asyncio
async def test_checkout_without_user_is_rejected():
    service = make_service()
    with pytest.raises(Exception) as exc_info:
        await service.process_webhook({"stripe-signature": "valid"}, _event(user_id=None))
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_unhandled_event_types_are_acknowledged():
    directory = FakeDirectory()
    service = make_service(directory=directory)

    for i, event_type in enumerate(["invoice.payment_failed", "customer.created"]):
        result = await service.process_webhook(
            {"stripe-signature": "valid"}, _event(event_id=f"evt_{i}", event_type=event_type, tier=None)
        )
        assert result == {"received": True}
    assert directory.set_calls == []


@pytest.mark.asyncio
async def test_bad_signature_is_rejected():
    with pytest.raises(BillingWebhookError):
        await make_service().process_webhook({"stripe-signature": "forged"}, _event())


@pytest.mark.asyncio
async def test_disabled_billing_raises():
    service = BillingService(None, FakeDirectory())
    assert service.enabled is False
    with pytest.raises(BillingDisabledError):
        await service.process_webhook({}, b"{}")
    with pytest.raises(BillingDisabledError):
        await service.start_checkout("user_1")


@pytest.mark.asyncio
async def test_start_checkout_uses_configured_price():
    provider = FakeBillingProvider()
    service = make_service(provider=provider)

    url = await service.start_checkout("user_1", "team", email="a@b.co")

    assert url == "https://checkout.stripe.test/cus_user_1"
    checkout = provider.checkouts[0]
    assert checkout["price_id"] == "price_team"
    assert checkout["metadata"] == {"user_id": "user_1", "tier": "team"}
    assert checkout["success_url"] == "https://app.levelr.test/analyze?upgraded=true"


@pytest.mark.asyncio
@pytest.mark.parametrize("tier", ["starter", "enterprise", "platinum"])
async def test_checkout_rejects_tier_without_price(tier):
    with pytest.raises(Exception) as exc_info:
        await make_service().start_checkout("user_1", tier)
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_portal_requires_existing_customer():
    provider = FakeBillingProvider(customers={"user_2": "cus_2"})
    service = make_service(provider=provider)

    with pytest.raises(Exception) as exc_info:
        await service.start_portal("user_1")
    assert exc_info.value.status_code == 404

    assert await service.start_portal("user_2") == "https://billing.stripe.test/cus_2"
    assert provider.portals == [("cus_2", "https://app.levelr.test/billing")]


# ---------------------------------------------------------------------------
# Stripe event parsing
# ---------------------------------------------------------------------------

def _stripe_event(event_type, obj):
    return {"id": "evt_stripe", "type": event_type, "data": {"object": obj}}


def _signed_headers(body: bytes, secret: str = WEBHOOK_SECRET):
    timestamp = int(time.time())
    signed = f"{timestamp}.{body.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return {"stripe-signature": f"t={timestamp},v1={signature}"}


def test_stripe_checkout_event_reads_metadata():
    provider = StripeProvider("sk_test_123", WEBHOOK_SECRET)
    event = provider._parse_event(
        _stripe_event("checkout.session.completed", {"id": "cs_1", "metadata": {"user_id": "user_1", "tier": "team"}})
    )
    assert (event.user_id, event.tier, event.object_id) == ("user_1", "team", "cs_1")


def test_stripe_checkout_event_falls_back_to_client_reference():
    provider = StripeProvider("sk_test_123", WEBHOOK_SECRET)
    event = provider._parse_event(
        _stripe_event("checkout.session.completed", {"id": "cs_1", "client_reference_id": "user_9"})
    )
    assert (event.user_id, event.tier) == ("user_9", "pro")


def test_stripe_subscription_deleted_maps_to_starter():
    provider = StripeProvider("sk_test_123", WEBHOOK_SECRET)
    event = provider._parse_event(
        _stripe_event("customer.subscription.deleted", {"id": "sub_1", "metadata": {"user_id": "user_1"}})
    )
    assert (event.user_id, event.tier) == ("user_1", "starter")


def test_stripe_other_events_carry_no_tier():
    provider = StripeProvider("sk_test_123", WEBHOOK_SECRET)
    event = provider._parse_event(_stripe_event("invoice.payment_failed", {"id": "in_1"}))
    assert event.tier is None


def test_stripe_webhook_signature_is_verified():
    provider = StripeProvider("sk_test_123", WEBHOOK_SECRET)
    body = json.dumps(
        _stripe_event("checkout.session.completed", {"id": "cs_1", "metadata": {"user_id": "user_1"}})
    ).encode()

    event = provider.parse_webhook(_signed_headers(body), body)
    assert event.user_id == "user_1"

    with pytest.raises(BillingWebhookError):
        provider.parse_webhook(_signed_headers(body, secret="whsec_other"), body)
    with pytest.raises(BillingWebhookError):
        provider.parse_webhook({}, body)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def test_webhook_route(build_client, fake_kv, directory):
    client = build_client(billing_service=make_service(directory=directory, kv=fake_kv))

    response = client.post("/api/billing/webhook", content=_event(), headers={"Stripe-Signature": "valid"})

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert directory.tiers["user_1"] == "pro"


def test_webhook_route_rejects_bad_signature(build_client, fake_kv, directory):
    client = build_client(billing_service=make_service(directory=directory, kv=fake_kv))

    response = client.post("/api/billing/webhook", content=_event(), headers={"Stripe-Signature": "nope"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_webhook"


def test_billing_routes_without_stripe_are_501(build_client):
    client = build_client()

    response = client.post("/api/billing/webhook", content=b"{}")
    assert response.status_code == 501
    assert response.json()["error"]["code"] == "billing_disabled"

    response = client.post("/api/billing/checkout", json={}, headers={"X-User-Id": "user_1"})
    assert response.status_code == 501


def test_checkout_route_returns_url(build_client, fake_kv, directory):
    provider = FakeBillingProvider()
    client = build_client(billing_service=make_service(directory=directory, kv=fake_kv, provider=provider))

    response = client.post("/api/billing/checkout", json={"tier": "pro"}, headers={"X-User-Id": "user_1"})

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.test/cus_user_1"}


def test_checkout_ignores_usage_limits(build_client, fake_kv, directory):
    fake_kv.store[usage_key("user_1", get_month_key(datetime.now(timezone.utc)))] = "99"
    client = build_client(billing_service=make_service(directory=directory, kv=fake_kv))

    response = client.post("/api/billing/checkout", json={"tier": "pro"}, headers={"X-User-Id": "user_1"})

    assert response.status_code == 200


def test_checkout_requires_identity(build_client):
    response = build_client().post("/api/billing/checkout", json={"tier": "pro"})
    assert response.status_code == 401
    assert response.json()["reason"] == "authentication_required"


def test_checkout_blocked_when_payments_disabled(build_client, fake_kv, directory):
    client = build_client(
        settings_overrides={"DEBUG_FLAGS_ENABLED": True},
        billing_service=make_service(directory=directory, kv=fake_kv),
    )

    response = client.post(
        "/api/billing/checkout",
        json={"tier": "pro"},
        headers={"X-User-Id": "user_1", "x-ff": "eyJwYXltZW50cyI6IGZhbHNlfQ=="},
    )

    assert response.status_code == 403
    assert response.json()["feature"] == "payments"


def test_portal_route_404_without_customer(build_client, fake_kv, directory):
    client = build_client(billing_service=make_service(directory=directory, kv=fake_kv))

    response = client.post("/api/billing/portal", json={}, headers={"X-User-Id": "user_1"})

    assert response.status_code == 404
