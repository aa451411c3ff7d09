"""Tests for the Clerk-backed user directory (httpx MockTransport, no network)."""

import json

import httpx
import pytest

from levelr.core.errors import ServiceUnavailableError, UpstreamError, ValidationError
from levelr.features.users.service import ClerkDirectory


def make_directory(handler, secret_key="sk_test_clerk"):
    return ClerkDirectory(secret_key, api_url="https://api.clerk.test/v1", transport=httpx.MockTransport(handler))


CLERK_USER = {
    "id": "user_1",
    "public_metadata": {"tier": "team"},
    "primary_email_address_id": "idn_2",
    "email_addresses": [
        {"id": "idn_1", "email_address": "old@apex.test"},
        {"id": "idn_2", "email_address": "pm@apex.test"},
    ],
}


@pytest.mark.asyncio
async def test_get_profile_reads_tier_and_primary_email():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json=CLERK_USER)

    profile = await make_directory(handler).get_profile("user_1")

    assert profile.tier == "team"
    assert profile.email == "pm@apex.test"
    assert seen["url"] == "https://api.clerk.test/v1/users/user_1"
    assert seen["auth"] == "Bearer sk_test_clerk"


@pytest.mark.asyncio
async def test_missing_or_unknown_tier_is_starter():
    def handler(request):
        return httpx.Response(200, json={"id": "user_1", "public_metadata": {"tier": "gold"}})

    profile = await make_directory(handler).get_profile("user_1")

    assert profile.tier == "starter"
    assert profile.email is None


@pytest.mark.asyncio
async def test_clerk_error_status_raises_upstream():
    directory = make_directory(lambda request: httpx.Response(404, json={"errors": []}))
    with pytest.raises(UpstreamError):
        await directory.get_profile("user_1")


@pytest.mark.asyncio
async def test_transport_failure_raises_upstream():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        await make_directory(handler).get_profile("user_1")


@pytest.mark.asyncio
async def test_unconfigured_directory_is_unavailable():
    directory = make_directory(lambda request: httpx.Response(200, json=CLERK_USER), secret_key=None)
    assert directory.configured is False
    with pytest.raises(ServiceUnavailableError):
        await directory.get_profile("user_1")


@pytest.mark.asyncio
async def test_set_tier_patches_public_metadata():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=CLERK_USER)

    await make_directory(handler).set_tier("user_1", "pro")

    assert seen == {
        "method": "PATCH",
        "path": "/v1/users/user_1/metadata",
        "body": {"public_metadata": {"tier": "pro"}},
    }


@pytest.mark.asyncio
async def test_set_tier_rejects_unknown_tier_without_calling_clerk():
    calls = []
    directory = make_directory(lambda request: calls.append(request) or httpx.Response(200, json={}))

    with pytest.raises(ValidationError):
        await directory.set_tier("user_1", "platinum")
    assert calls == []


@pytest.mark.parametrize(
    "body",
    [
        {"id": "user_1", "public_metadata": "pro"},
        {"id": "user_1", "email_addresses": "pm@apex.test"},
        ["user_1"],
        "pro",
    ],
)
@pytest.mark.asyncio
async def test_unexpected_payload_shape_raises_upstream(body):
    directory = make_directory(lambda request: httpx.Response(200, json=body))
    with pytest.raises(UpstreamError):
        await directory.get_profile("user_1")


@pytest.mark.asyncio
async def test_non_json_body_raises_upstream():
    directory = make_directory(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    with pytest.raises(UpstreamError):
        await directory.get_profile("user_1")


@pytest.mark.asyncio
async def test_null_metadata_and_addresses_are_tolerated():
    def handler(request):
        return httpx.Response(200, json={"id": "user_1", "public_metadata": None, "email_addresses": None})

    profile = await make_directory(handler).get_profile("user_1")

    assert profile.tier == "starter"
    assert profile.email is None
