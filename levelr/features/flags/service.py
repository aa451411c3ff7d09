"""
levelr/features/flags/service.py

Feature flag resolution.

Three layers merged left to right, later layers winning key by key:
1. Environment defaults (read once from Settings)
2. Tier preset (partial overlay)
3. Development overrides (partial overlay, debug channel only)

Admin emails swap layers 1+2 for the admin preset; overrides still apply.
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import unquote

from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request

from levelr.core.config import Settings
from levelr.features.flags.presets import ADMIN_PRESET, get_tier_preset
from levelr.models.flags import FlagOverrides, FlagSet, flag_field


logger = logging.getLogger("levelr")

OVERRIDE_HEADER = "x-ff"
OVERRIDE_COOKIE = "ff"
OVERRIDE_COOKIE_MAX_AGE = 7 * 24 * 60 * 60

# (flag, env var, default when unset)
ENV_FLAG_SOURCES: Tuple[Tuple[str, str, bool], ...] = (
    ("auth", "NEXT_PUBLIC_ENABLE_AUTH", False),
    ("payments", "NEXT_PUBLIC_ENABLE_PAYMENTS", False),
    ("usage_limits", "NEXT_PUBLIC_ENABLE_USAGE_LIMITS", False),
    ("bid_analysis", "NEXT_PUBLIC_ENABLE_BID_ANALYSIS", True),
    ("design_analysis", "NEXT_PUBLIC_ENABLE_DESIGN_ANALYSIS", True),
    ("trade_analysis", "NEXT_PUBLIC_ENABLE_TRADE_ANALYSIS", True),
    ("summary_generation", "NEXT_PUBLIC_ENABLE_SUMMARY_GENERATION", True),
    ("generate_rfp", "NEXT_PUBLIC_ENABLE_GENERATE_RFP", True),
    ("project_management", "NEXT_PUBLIC_ENABLE_PROJECT_MANAGEMENT", False),
    ("analysis_history", "NEXT_PUBLIC_ENABLE_ANALYSIS_HISTORY", True),
    ("bid_leveling", "NEXT_PUBLIC_ENABLE_BID_LEVELING", True),
    ("bl_variance_explanation", "NEXT_PUBLIC_ENABLE_BL_VARIANCE_EXPLANATION", True),
    ("bl_variance_analysis", "NEXT_PUBLIC_ENABLE_BL_VARIANCE_ANALYSIS", True),
    ("bl_comparative_analysis", "NEXT_PUBLIC_ENABLE_BL_COMPARATIVE_ANALYSIS", True),
    ("export_bid_analysis", "NEXT_PUBLIC_ENABLE_EXPORT_BID_ANALYSIS", True),
    ("export_bid_leveling", "NEXT_PUBLIC_ENABLE_EXPORT_BID_LEVELING", True),
    ("export_rfp", "NEXT_PUBLIC_ENABLE_EXPORT_RFP", True),
    ("blob_storage", "NEXT_PUBLIC_ENABLE_BLOB_STORAGE", True),
)


class MalformedOverrideError(ValueError):
    """Override payload failed decoding or schema validation."""


def _env_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    # Default-on flags only turn off on an explicit "false" and vice versa
    if default:
        return value != "false"
    return value == "true"


def env_defaults(settings_obj: Settings) -> FlagSet:
    """Build the baked-in default flag set from configuration."""
    values = {
        flag: _env_bool(getattr(settings_obj, env_var, None), default)
        for flag, env_var, default in ENV_FLAG_SOURCES
    }
    return FlagSet(**values)


def decode_overrides(raw: str) -> Dict[str, bool]:
    """Decode a base64 JSON override blob into a partial flag map.

    Unknown keys are dropped. Anything else that does not fit the schema
    rejects the whole payload.

    Raises:
        MalformedOverrideError
    """
    text = unquote(raw.strip())
    padded = text + "=" * (-len(text) % 4)
    try:
        decoded = base64.b64decode(padded, validate=True).decode("utf-8")
        payload = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise MalformedOverrideError(f"undecodable payload: {e}")

    if not isinstance(payload, dict):
        raise MalformedOverrideError("payload must be a JSON object")

    try:
        parsed = FlagOverrides.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedOverrideError(f"schema violation: {e.error_count()} invalid field(s)")

    return parsed.model_dump(exclude_none=True)


def encode_overrides(overrides: Mapping[str, Any]) -> str:
    """Encode a partial flag map (either naming style) for the ff cookie / x-ff header."""
    parsed = FlagOverrides.model_validate(dict(overrides))
    wire = parsed.model_dump(exclude_none=True, by_alias=True)
    return base64.b64encode(json.dumps(wire).encode("utf-8")).decode("ascii")


def to_client_flags(flags: FlagSet) -> Dict[str, bool]:
    """Serialize a flag set for the browser (camelCase keys)."""
    return flags.model_dump(by_alias=True)


class FlagResolver:
    """Resolves the active flag set for a request.

    Constructed once at startup from Settings and shared read-only.
    """

    def __init__(
        self,
        defaults: FlagSet,
        *,
        admin_emails: Iterable[str] = (),
        debug_overrides_enabled: bool = False,
    ):
        self.defaults = defaults
        self.admin_emails = frozenset(e.lower() for e in admin_emails)
        self.debug_overrides_enabled = debug_overrides_enabled

    @classmethod
    def from_settings(cls, settings_obj: Settings) -> "FlagResolver":
        return cls(
            env_defaults(settings_obj),
            admin_emails=settings_obj.admin_email_list(),
            debug_overrides_enabled=settings_obj.debug_flags_active,
        )

    def is_admin(self, email: Optional[str]) -> bool:
        return bool(email) and email.lower() in self.admin_emails

    def resolve(
        self,
        tier: Optional[str] = None,
        overrides: Optional[Mapping[str, bool]] = None,
        email: Optional[str] = None,
    ) -> FlagSet:
        if self.is_admin(email):
            merged: Dict[str, bool] = dict(ADMIN_PRESET)
        else:
            merged = self.defaults.model_dump()
            merged.update(get_tier_preset(tier))
        for key, value in (overrides or {}).items():
            try:
                merged[flag_field(key)] = value
            except KeyError:
                continue
        return FlagSet(**merged)

    def overrides_from_request(self, request: Request) -> Dict[str, bool]:
        """Read development overrides from the x-ff header or ff cookie.

        Returns {} when the debug channel is off or the payload is malformed.
        """
        if not self.debug_overrides_enabled:
            return {}

        raw = request.headers.get(OVERRIDE_HEADER)
        source = "header"
        if not raw:
            raw = request.cookies.get(OVERRIDE_COOKIE)
            source = "cookie"
        if not raw:
            return {}

        try:
            overrides = decode_overrides(raw)
        except MalformedOverrideError as e:
            logger.warning(f"Ignoring malformed flag override from {source}: {e}")
            return {}

        if overrides:
            logger.info(f"Applying {len(overrides)} flag override(s) from {source}")
        return overrides
