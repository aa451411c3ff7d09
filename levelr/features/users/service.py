"""
User directory backed by the Clerk Backend API.

- get_profile(user_id): tier (public_metadata.tier) and primary email
- set_tier(user_id, tier): writes public_metadata.tier
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from levelr.core.config import Settings
from levelr.core.errors import ServiceUnavailableError, UpstreamError, ValidationError
from levelr.models.flags import DEFAULT_TIER, TIERS, parse_tier
from levelr.models.users import ClerkUser


logger = logging.getLogger("levelr")


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    tier: str = DEFAULT_TIER
    email: Optional[str] = None


class ClerkDirectory:
    def __init__(
        self,
        secret_key: Optional[str],
        *,
        api_url: str = "https://api.clerk.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings_obj: Settings) -> "ClerkDirectory":
        return cls(settings_obj.CLERK_SECRET_KEY, api_url=settings_obj.CLERK_API_URL)

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def get_profile(self, user_id: str) -> UserProfile:
        """
        Raises:
            ServiceUnavailableError: directory not configured
            UpstreamError: Clerk call failed or returned an unexpected payload
        """
        if not self.configured:
            raise ServiceUnavailableError("User directory is not configured")

        try:
            async with self._client() as client:
                response = await client.get(f"/users/{user_id}")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Clerk user lookup failed: {e.__class__.__name__}")
        if response.status_code >= 300:
            raise UpstreamError(f"Clerk user lookup failed: {response.status_code}")

        try:
            user = ClerkUser.model_validate(response.json())
        except (ValueError, PydanticValidationError):
            raise UpstreamError("Clerk user lookup returned an unexpected payload")
        return UserProfile(
            user_id=user_id,
            tier=parse_tier(user.tier_value()) or DEFAULT_TIER,
            email=user.primary_email(),
        )

    async def set_tier(self, user_id: str, tier: str) -> None:
        if tier not in TIERS:
            raise ValidationError(f"Unknown tier: {tier}")
        if not self.configured:
            raise ServiceUnavailableError("User directory is not configured")

        body = {"public_metadata": {"tier": tier}}
        try:
            async with self._client() as client:
                response = await client.patch(f"/users/{user_id}/metadata", json=body)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Clerk tier update failed: {e.__class__.__name__}")
        if response.status_code >= 300:
            raise UpstreamError(f"Clerk tier update failed: {response.status_code}")

        logger.info(f"Tier set to {tier}", extra={"user_id": user_id, "tier": tier, "event_type": "users.tier_updated"})
