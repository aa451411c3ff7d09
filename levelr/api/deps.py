"""
Shared FastAPI dependencies.

Services are built once in create_app() and stored on app.state.
"""
from fastapi import Request

from levelr.core.config import Settings
from levelr.core.errors import DevelopmentOnlyError
from levelr.features.billing.service import BillingService
from levelr.features.flags.service import FlagResolver
from levelr.features.gate.service import ApiGate
from levelr.features.summary.service import SummaryStitcher
from levelr.features.usage.service import UsageStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_resolver(request: Request) -> FlagResolver:
    return request.app.state.flag_resolver


def get_gate(request: Request) -> ApiGate:
    return request.app.state.gate


def get_usage_store(request: Request) -> UsageStore:
    return request.app.state.usage_store


def get_directory(request: Request):
    return request.app.state.user_directory


def get_summarizer(request: Request) -> SummaryStitcher:
    return request.app.state.summarizer


def get_billing(request: Request) -> BillingService:
    return request.app.state.billing


async def require_development(request: Request) -> None:
    if not request.app.state.settings.is_development:
        raise DevelopmentOnlyError("Not available in production")
