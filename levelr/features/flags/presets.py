"""
Tier presets.

Each tier maps to a partial flag overlay; only the listed keys change when the
preset is applied on top of the environment defaults.
"""

from typing import Dict, Optional

from levelr.models.flags import FLAG_NAMES


STARTER_PRESET: Dict[str, bool] = {
    "payments": True,
    "usage_limits": True,
    "bid_analysis": True,
    "design_analysis": False,
    "trade_analysis": False,
    "summary_generation": True,
    "bid_leveling": True,
    "bl_variance_explanation": False,
    "bl_variance_analysis": True,
    "bl_comparative_analysis": False,
    "export_bid_analysis": False,
    "export_bid_leveling": False,
    "export_rfp": False,
    "generate_rfp": True,
    "project_management": False,
    "analysis_history": True,
    "blob_storage": True,
}

PRO_PRESET: Dict[str, bool] = {
    "payments": True,
    "usage_limits": False,
    "bid_analysis": True,
    "design_analysis": True,
    "trade_analysis": True,
    "summary_generation": True,
    "bid_leveling": True,
    "bl_variance_explanation": True,
    "bl_variance_analysis": True,
    "bl_comparative_analysis": True,
    "export_bid_analysis": True,
    "export_bid_leveling": True,
    "export_rfp": True,
    "generate_rfp": True,
    "project_management": False,
    "analysis_history": True,
    "blob_storage": True,
}

TEAM_PRESET: Dict[str, bool] = {**PRO_PRESET, "project_management": True}

ENTERPRISE_PRESET: Dict[str, bool] = {
    **{name: True for name in FLAG_NAMES},
    "usage_limits": False,
}

# Admins get everything; a complete set, not an overlay
ADMIN_PRESET: Dict[str, bool] = dict(ENTERPRISE_PRESET)

TIER_PRESETS: Dict[str, Dict[str, bool]] = {
    "starter": STARTER_PRESET,
    "pro": PRO_PRESET,
    "team": TEAM_PRESET,
    "enterprise": ENTERPRISE_PRESET,
}


def get_tier_preset(tier: Optional[str]) -> Dict[str, bool]:
    """Partial overlay for a tier; unknown or missing tiers overlay nothing."""
    if not tier:
        return {}
    return dict(TIER_PRESETS.get(tier, {}))
