"""
Clerk session JWT verification.

Handles:
- HS256 verification against CLERK_JWT_SECRET (development and tests)
- RS256 verification against the instance JWKS with issuer/audience checks
- Async JWKS prefetch at startup (warm_jwks_cache)
- Test helpers for deterministic testing (no network)

Testing:
- Use create_test_jwt() to create test tokens
- Inject JWKS via set_jwks_provider_for_tests()
"""
import json
import time
from typing import Dict, Any, Optional, Callable, Tuple

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm

from levelr.core.config import Settings, settings


# JWKS override (tests) and cache keyed by issuer/jwks_url
_jwks_provider_override: Optional[Callable[[str, str], Dict[str, Any]]] = None
_jwks_cache: Dict[str, Dict[str, Any]] = {}
_UNSET_ISSUER = "https://clerk.invalid"


def set_jwks_provider_for_tests(provider: Optional[Callable[[str, str], Dict[str, Any]]]) -> None:
    """Set or clear JWKS provider override for deterministic testing (no network)."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()


def _jwks_location(issuer: str, jwks_url: Optional[str]) -> Tuple[str, str]:
    resolved_url = jwks_url or f"{issuer.rstrip('/')}/.well-known/jwks.json"
    return resolved_url, f"{issuer}|{resolved_url}"


def _default_fetch_jwks(issuer: str, jwks_url: str) -> Dict[str, Any]:
    response = httpx.get(jwks_url, timeout=5.0)
    response.raise_for_status()
    return response.json()


async def _default_fetch_jwks_async(jwks_url: str) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=5.0) as client:
        response = await client.get(jwks_url)
    response.raise_for_status()
    return response.json()


def get_jwks(issuer: str, jwks_url: Optional[str] = None) -> Dict[str, Any]:
    """Fetch JWKS using override (tests) or default fetcher. Cached per issuer/url."""
    resolved_url, cache_key = _jwks_location(issuer, jwks_url)

    if cache_key in _jwks_cache:
        return _jwks_cache[cache_key]

    if _jwks_provider_override:
        jwks = _jwks_provider_override(issuer, resolved_url)
    else:
        jwks = _default_fetch_jwks(issuer, resolved_url)

    _jwks_cache[cache_key] = jwks
    return jwks


async def warm_jwks_cache(settings_obj: Optional[Settings] = None) -> bool:
    """
    Prefetch the instance JWKS without blocking the event loop, so request-time
    RS256 verification is served from the cache.

    Returns False when RS256 verification is not configured.

    Raises:
        httpx.HTTPError: JWKS endpoint unreachable or returned an error status
    """
    cfg = settings_obj or settings
    if cfg.CLERK_JWT_SECRET or not (cfg.CLERK_ISSUER or cfg.CLERK_JWKS_URL):
        return False

    issuer = cfg.CLERK_ISSUER or _UNSET_ISSUER
    resolved_url, cache_key = _jwks_location(issuer, cfg.CLERK_JWKS_URL)
    if cache_key not in _jwks_cache:
        if _jwks_provider_override:
            _jwks_cache[cache_key] = _jwks_provider_override(issuer, resolved_url)
        else:
            _jwks_cache[cache_key] = await _default_fetch_jwks_async(resolved_url)
    return True


def verify_jwt_token(token: str, settings_obj: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify a Clerk session JWT and return its claims.

    Raises jwt.PyJWTError on an invalid, expired or unverifiable token.
    """
    cfg = settings_obj or settings

    secret = cfg.CLERK_JWT_SECRET
    if secret:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True, "verify_aud": False},
        )

    issuer = cfg.CLERK_ISSUER
    jwks_url = cfg.CLERK_JWKS_URL
    if not issuer and not jwks_url:
        raise jwt.PyJWTError("CLERK_ISSUER or CLERK_JWKS_URL must be configured for RS256 verification")

    try:
        jwks = get_jwks(issuer or _UNSET_ISSUER, jwks_url)
    except httpx.HTTPError as e:
        raise jwt.PyJWTError(f"Unable to fetch JWKS: {e}")

    kid = jwt.get_unverified_header(token).get("kid")
    if not kid:
        raise jwt.PyJWTError("Token missing 'kid' in header")

    matching_key = next((key for key in jwks.get("keys", []) if key.get("kid") == kid), None)
    if not matching_key:
        raise jwt.PyJWTError(f"Key ID '{kid}' not found in JWKS")

    public_key = RSAAlgorithm.from_jwk(json.dumps(matching_key))
    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(cfg.CLERK_AUDIENCE)}
    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        audience=cfg.CLERK_AUDIENCE,
        issuer=issuer,
        options=options,
    )


# ============================================================================
# Test Helpers (deterministic, no network)
# ============================================================================

def create_test_jwt(
    sub: str = "user_test123",
    email: Optional[str] = "test@example.com",
    exp_minutes: int = 60,
    secret: str = "levelr-test-secret-key-0123456789abcdef",
    algorithm: str = "HS256",
    private_key: Optional[str] = None,
    kid: Optional[str] = None,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
) -> str:
    """
    Create a signed test JWT.
    Supports HS256 (default) and RS256 (for JWKS-based tests).
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "iat": now,
        "exp": now + (exp_minutes * 60),
        "iss": issuer or settings.CLERK_ISSUER or "https://test.clerk.accounts.dev",
    }
    if email:
        payload["email"] = email
    if audience:
        payload["aud"] = audience

    headers = {"kid": kid} if kid else None
    key = private_key if algorithm == "RS256" and private_key else secret
    return jwt.encode(payload, key, algorithm=algorithm, headers=headers)
