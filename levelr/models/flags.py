"""
levelr/models/flags.py

Feature flag and tier models.

A FlagSet is always complete: every capability has a boolean value. Field
names are snake_case in Python; clients and override payloads use the
camelCase aliases (bidAnalysis, exportBidLeveling, ...).
"""

from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, StrictBool, create_model
from pydantic.alias_generators import to_camel


Tier = Literal["starter", "pro", "team", "enterprise"]
TIERS: Tuple[str, ...] = ("starter", "pro", "team", "enterprise")
DEFAULT_TIER: Tier = "starter"


def parse_tier(value: Optional[str]) -> Optional[Tier]:
    """Return the tier if it is one of the known tiers, else None."""
    if isinstance(value, str) and value in TIERS:
        return value  # type: ignore[return-value]
    return None


class FlagSet(BaseModel):
    """The resolved capability set for one request."""
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # platform
    auth: bool
    payments: bool
    usage_limits: bool

    # core analysis modules
    bid_analysis: bool
    design_analysis: bool
    trade_analysis: bool
    summary_generation: bool

    # advanced modules
    generate_rfp: bool
    project_management: bool
    analysis_history: bool
    bid_leveling: bool

    # bid leveling subfeatures
    bl_variance_explanation: bool
    bl_variance_analysis: bool
    bl_comparative_analysis: bool

    # exports
    export_bid_analysis: bool
    export_bid_leveling: bool
    export_rfp: bool

    # file management
    blob_storage: bool

    def is_enabled(self, flag: str) -> bool:
        return getattr(self, flag_field(flag)) is True


FLAG_NAMES: Tuple[str, ...] = tuple(FlagSet.model_fields)
_WIRE_TO_FIELD: Dict[str, str] = {to_camel(name): name for name in FLAG_NAMES}


def flag_field(name: str) -> str:
    """Map a flag name (snake_case or camelCase) to its FlagSet field.

    Raises:
        KeyError: unknown flag
    """
    if name in FlagSet.model_fields:
        return name
    if name in _WIRE_TO_FIELD:
        return _WIRE_TO_FIELD[name]
    raise KeyError(f"Unknown feature flag: {name}")


def wire_name(name: str) -> str:
    return to_camel(flag_field(name))


# Partial override payload: strict booleans, unknown keys dropped
FlagOverrides = create_model(
    "FlagOverrides",
    __config__=ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    ),
    **{name: (Optional[StrictBool], None) for name in FLAG_NAMES},
)
