import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from levelr import __version__
from levelr.api import billing, dev, flags, health, metrics, pricing, summarize
from levelr.core.clerk_auth import warm_jwks_cache
from levelr.core.config import Settings, settings, validate_config
from levelr.core.errors import (
    AppError,
    GateError,
    app_error_handler,
    gate_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from levelr.core.kv import create_kv_client
from levelr.core.logging import configure_logging
from levelr.core.middleware.metrics import MetricsMiddleware
from levelr.core.middleware.request_id import RequestIdMiddleware
from levelr.core.validation import validate_env
from levelr.features.billing.service import BillingService
from levelr.features.flags.service import FlagResolver
from levelr.features.gate.service import ApiGate
from levelr.features.summary.llm import ClaudeClient
from levelr.features.summary.service import SummaryStitcher
from levelr.features.usage.service import UsageStore
from levelr.features.users.service import ClerkDirectory


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    kv_client=None,
    directory=None,
    llm: Optional[ClaudeClient] = None,
    billing_service: Optional[BillingService] = None,
    usage_store: Optional[UsageStore] = None,
) -> FastAPI:
    """
    Build the application from one Settings instance.

    Collaborators default to the real implementations built from settings;
    tests pass fakes instead.
    """
    cfg = settings_obj or settings

    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    kv = kv_client if kv_client is not None else create_kv_client(cfg)
    user_directory = directory if directory is not None else ClerkDirectory.from_settings(cfg)
    resolver = FlagResolver.from_settings(cfg)
    usage = usage_store or UsageStore(
        kv,
        ttl_seconds=cfg.USAGE_TTL_SECONDS,
        allow_reset=cfg.is_development,
    )
    summarizer = SummaryStitcher(llm if llm is not None else ClaudeClient.from_settings(cfg))
    billing_svc = billing_service or BillingService.from_settings(cfg, user_directory, kv)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger("levelr")
        logger.info(f"Starting Levelr backend ({cfg.ENV})...")
        app.state.startup_time = time.time()
        try:
            await warm_jwks_cache(cfg)
        except httpx.HTTPError as e:
            logger.warning(f"JWKS prefetch failed, fetching on first request: {e}")
        try:
            yield
        finally:
            if kv is not None and hasattr(kv, "aclose"):
                await kv.aclose()
            logging.getLogger("levelr").info("Stopping Levelr backend...")

    app = FastAPI(title="Levelr - Backend", version=__version__, lifespan=lifespan)

    app.state.settings = cfg
    app.state.kv = kv
    app.state.flag_resolver = resolver
    app.state.user_directory = user_directory
    app.state.usage_store = usage
    app.state.gate = ApiGate(resolver, user_directory, usage)
    app.state.summarizer = summarizer
    app.state.billing = billing_svc

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(GateError, gate_error_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origin_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(summarize.router)
    app.include_router(flags.router)
    app.include_router(pricing.router)
    app.include_router(billing.router)
    app.include_router(dev.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    return app


app = create_app()
