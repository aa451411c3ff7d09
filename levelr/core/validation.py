"""
Environment validation utilities.

Ensures the backend fails fast on misconfiguration while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Optional, Iterable
from urllib.parse import urlparse

from levelr.core.config import settings


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _is_valid_kv_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"redis", "rediss"} and bool(parsed.netloc)


def _require(vars_required: Iterable[str], source: object) -> None:
    for var in vars_required:
        if not getattr(source, var, None):
            raise EnvValidationError(f"{var} is required in production")


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to levelr.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()
    kv_url = getattr(cfg, "KV_URL", None)

    if kv_url and not _is_valid_kv_url(kv_url):
        raise EnvValidationError("KV_URL must be a redis:// or rediss:// URL")

    required_prod = [
        "CLERK_SECRET_KEY",
        "CLAUDE_API_KEY",
        "KV_URL",
    ]

    if mode == "production":
        _require(required_prod, cfg)
        # The override channel must never be reachable from a production build
        if getattr(cfg, "DEBUG_FLAGS_ENABLED", False):
            raise EnvValidationError("DEBUG_FLAGS_ENABLED must not be set in production")
        if getattr(cfg, "CLERK_JWT_SECRET", None):
            raise EnvValidationError("CLERK_JWT_SECRET is a development-only verifier; use CLERK_ISSUER/JWKS in production")

    if getattr(cfg, "STRIPE_SECRET_KEY", None) and not getattr(cfg, "STRIPE_WEBHOOK_SECRET", None) and mode == "production":
        raise EnvValidationError("STRIPE_WEBHOOK_SECRET is required when STRIPE_SECRET_KEY is set")

    return True
