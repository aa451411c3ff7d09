"""Tests for Clerk session verification and request identity resolution."""

import json
from types import SimpleNamespace

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm
from starlette.requests import Request

from levelr.core.auth import SESSION_COOKIE, resolve_user_id
from levelr.core import clerk_auth
from levelr.core.clerk_auth import create_test_jwt, set_jwks_provider_for_tests, verify_jwt_token, warm_jwks_cache
from levelr.core.errors import AuthenticationError
from levelr.main import create_app
from levelr.tests.mocks import FakeDirectory, FakeLLM, FakeRedis


SECRET = "levelr-test-secret-key-0123456789abcdef"
ISSUER = "https://levelr-test.clerk.accounts.dev"


def make_request(cfg, headers=None, cookies=None) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        raw_headers.append((b"cookie", "; ".join(f"{k}={v}" for k, v in cookies.items()).encode()))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": raw_headers,
        "app": SimpleNamespace(state=SimpleNamespace(settings=cfg)),
    }
    return Request(scope)


@pytest.fixture
def rsa_keys():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk["kid"] = "test-key"
    set_jwks_provider_for_tests(lambda issuer, url: {"keys": [jwk]})
    yield pem
    set_jwks_provider_for_tests(None)


def test_hs256_token_resolves_subject(make_settings):
    cfg = make_settings(CLERK_JWT_SECRET=SECRET)
    token = create_test_jwt(sub="user_42", secret=SECRET)

    assert resolve_user_id(make_request(cfg, {"Authorization": f"Bearer {token}"})) == "user_42"


def test_session_cookie_is_accepted(make_settings):
    cfg = make_settings(CLERK_JWT_SECRET=SECRET)
    token = create_test_jwt(sub="user_42", secret=SECRET)

    assert resolve_user_id(make_request(cfg, cookies={SESSION_COOKIE: token})) == "user_42"


def test_expired_token_is_rejected(make_settings):
    cfg = make_settings(CLERK_JWT_SECRET=SECRET)
    token = create_test_jwt(sub="user_42", secret=SECRET, exp_minutes=-5)

    with pytest.raises(AuthenticationError) as exc_info:
        resolve_user_id(make_request(cfg, {"Authorization": f"Bearer {token}"}))
    assert exc_info.value.message == "Session expired"


def test_token_without_subject_is_rejected(make_settings):
    cfg = make_settings(CLERK_JWT_SECRET=SECRET)
    token = jwt.encode({"email": "a@b.co"}, SECRET, algorithm="HS256")

    with pytest.raises(AuthenticationError):
        resolve_user_id(make_request(cfg, {"Authorization": f"Bearer {token}"}))


def test_bad_token_wins_over_dev_header(make_settings):
    cfg = make_settings(CLERK_JWT_SECRET=SECRET)

    with pytest.raises(AuthenticationError):
        resolve_user_id(make_request(cfg, {"Authorization": "Bearer not-a-jwt", "X-User-Id": "user_1"}))


def test_dev_header_outside_production(make_settings):
    assert resolve_user_id(make_request(make_settings(), {"X-User-Id": " user_1 "})) == "user_1"
    assert resolve_user_id(make_request(make_settings(ENV="production"), {"X-User-Id": "user_1"})) is None


def test_anonymous_request(make_settings):
    assert resolve_user_id(make_request(make_settings())) is None


def test_rs256_token_verified_against_jwks(make_settings, rsa_keys):
    cfg = make_settings(CLERK_ISSUER=ISSUER)
    token = create_test_jwt(sub="user_rs", algorithm="RS256", private_key=rsa_keys, kid="test-key", issuer=ISSUER)

    claims = verify_jwt_token(token, cfg)

    assert claims["sub"] == "user_rs"


def test_rs256_wrong_issuer_is_rejected(make_settings, rsa_keys):
    cfg = make_settings(CLERK_ISSUER=ISSUER)
    token = create_test_jwt(
        sub="user_rs",
        algorithm="RS256",
        private_key=rsa_keys,
        kid="test-key",
        issuer="https://someone-else.clerk.accounts.dev",
    )

    with pytest.raises(jwt.PyJWTError):
        verify_jwt_token(token, cfg)


def test_rs256_unknown_kid_is_rejected(make_settings, rsa_keys):
    cfg = make_settings(CLERK_ISSUER=ISSUER)
    token = create_test_jwt(sub="user_rs", algorithm="RS256", private_key=rsa_keys, kid="rotated", issuer=ISSUER)

    with pytest.raises(jwt.PyJWTError):
        verify_jwt_token(token, cfg)


def test_unconfigured_verifier_rejects_tokens(make_settings):
    token = create_test_jwt(secret=SECRET)
    with pytest.raises(jwt.PyJWTError):
        verify_jwt_token(token, make_settings())


# ---------------------------------------------------------------------------
# JWKS prefetch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_warm_cache_serves_request_time_verification(make_settings, rsa_keys):
    jwks = clerk_auth.get_jwks(ISSUER)
    lookups = []
    set_jwks_provider_for_tests(lambda issuer, url: lookups.append(url) or jwks)
    cfg = make_settings(CLERK_ISSUER=ISSUER)

    assert await warm_jwks_cache(cfg) is True
    token = create_test_jwt(sub="user_rs", algorithm="RS256", private_key=rsa_keys, kid="test-key", issuer=ISSUER)
    claims = verify_jwt_token(token, cfg)

    assert claims["sub"] == "user_rs"
    assert lookups == [f"{ISSUER}/.well-known/jwks.json"]


@pytest.mark.asyncio
async def test_warm_cache_skipped_without_rs256(make_settings):
    assert await warm_jwks_cache(make_settings(CLERK_JWT_SECRET=SECRET, CLERK_ISSUER=ISSUER)) is False
    assert await warm_jwks_cache(make_settings()) is False


@pytest.mark.asyncio
async def test_warm_cache_fetches_with_async_client(make_settings, monkeypatch):
    set_jwks_provider_for_tests(None)
    fetched = []

    async def fake_fetch(url):
        fetched.append(url)
        return {"keys": []}

    monkeypatch.setattr(clerk_auth, "_default_fetch_jwks_async", fake_fetch)
    monkeypatch.setattr(clerk_auth, "_default_fetch_jwks", lambda issuer, url: pytest.fail("blocking fetch used"))
    cfg = make_settings(CLERK_JWKS_URL="https://jwks.levelr.test/keys.json")

    await warm_jwks_cache(cfg)

    assert fetched == ["https://jwks.levelr.test/keys.json"]
    assert clerk_auth.get_jwks(clerk_auth._UNSET_ISSUER, cfg.CLERK_JWKS_URL) == {"keys": []}
    set_jwks_provider_for_tests(None)


def test_startup_survives_unreachable_jwks(make_settings, monkeypatch, caplog):
    set_jwks_provider_for_tests(None)

    async def unreachable(url):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(clerk_auth, "_default_fetch_jwks_async", unreachable)
    app = create_app(
        make_settings(CLERK_ISSUER=ISSUER),
        kv_client=FakeRedis(),
        directory=FakeDirectory(),
        llm=FakeLLM(),
    )

    with TestClient(app) as client:
        assert client.get("/healthz").status_code == 200
    assert any("JWKS prefetch failed" in r.getMessage() for r in caplog.records)
