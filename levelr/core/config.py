import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Claude / Anthropic
    CLAUDE_API_KEY: Optional[str] = None
    CLAUDE_MODEL: str = "claude-sonnet-4-20250514"
    CLAUDE_MAX_TOKENS: int = 2000
    CLAUDE_TEMPERATURE: float = 0.1

    # Clerk Auth
    CLERK_SECRET_KEY: Optional[str] = None
    CLERK_API_URL: str = "https://api.clerk.com/v1"
    CLERK_JWT_SECRET: Optional[str] = None  # HS256 dev/test verification only
    CLERK_ISSUER: Optional[str] = None  # e.g. https://your-instance.clerk.accounts.dev
    CLERK_AUDIENCE: Optional[str] = None
    CLERK_JWKS_URL: Optional[str] = None

    # Counter store (Vercel KV speaks the Redis protocol)
    KV_URL: Optional[str] = None
    USAGE_TTL_SECONDS: int = 60 * 60 * 24 * 62

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_PRO: Optional[str] = None
    STRIPE_PRICE_TEAM: Optional[str] = None
    STRIPE_PRICE_ENTERPRISE: Optional[str] = None

    # App URLs
    APP_URL: str = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Development flag override channel (x-ff header / ff cookie)
    DEBUG_FLAGS_ENABLED: bool = False

    # Admin emails resolve to the all-features preset (comma-separated)
    ADMIN_EMAILS: str = ""

    # Feature flag defaults ("true" / "false"; unset keeps the baked-in default)
    NEXT_PUBLIC_ENABLE_AUTH: Optional[str] = None
    NEXT_PUBLIC_ENABLE_PAYMENTS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_USAGE_LIMITS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_BID_ANALYSIS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_DESIGN_ANALYSIS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_TRADE_ANALYSIS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_SUMMARY_GENERATION: Optional[str] = None
    NEXT_PUBLIC_ENABLE_GENERATE_RFP: Optional[str] = None
    NEXT_PUBLIC_ENABLE_PROJECT_MANAGEMENT: Optional[str] = None
    NEXT_PUBLIC_ENABLE_ANALYSIS_HISTORY: Optional[str] = None
    NEXT_PUBLIC_ENABLE_BID_LEVELING: Optional[str] = None
    NEXT_PUBLIC_ENABLE_BL_VARIANCE_EXPLANATION: Optional[str] = None
    NEXT_PUBLIC_ENABLE_BL_VARIANCE_ANALYSIS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_BL_COMPARATIVE_ANALYSIS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_EXPORT_BID_ANALYSIS: Optional[str] = None
    NEXT_PUBLIC_ENABLE_EXPORT_BID_LEVELING: Optional[str] = None
    NEXT_PUBLIC_ENABLE_EXPORT_RFP: Optional[str] = None
    NEXT_PUBLIC_ENABLE_BLOB_STORAGE: Optional[str] = None

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENV.lower() == "development"

    @property
    def debug_flags_active(self) -> bool:
        """Override payloads are only honoured outside production."""
        return self.DEBUG_FLAGS_ENABLED and not self.is_production

    def admin_email_list(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("levelr")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "CLERK_SECRET_KEY",
        "CLAUDE_API_KEY",
        "KV_URL",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
