"""
levelr/features/pricing/service.py

Pricing catalog, tier analysis limits and the sales ROI helper.
"""

import math
from typing import Any, Dict, Optional

from levelr.core.errors import ValidationError
from levelr.models.flags import DEFAULT_TIER, TIERS


UNLIMITED = -1

# Analyses per calendar month (UTC); -1 = unlimited
TIER_LIMITS: Dict[str, int] = {
    "starter": 3,
    "pro": UNLIMITED,
    "team": UNLIMITED,
    "enterprise": UNLIMITED,
}

MVP_PRICING: Dict[str, Dict[str, Any]] = {
    "professional": {
        "name": "Professional",
        "price": 299,
        "billing_period": "month",
        "analyses_per_month": 10,
        "features": [
            "CSI division analysis with market benchmarking",
            "Risk scoring and variance detection",
            "Professional PDF reports",
            "Email support",
        ],
        "value_proposition": "Prevent costly bid mistakes with expert-level analysis",
    },
    "trial": {
        "name": "Free Analysis",
        "price": 0,
        "analyses_per_month": 1,
        "features": ["Single analysis to test platform quality"],
        "value_proposition": "See our analysis quality before committing",
    },
}

TIER_PRICING: Dict[str, Dict[str, Any]] = {
    "starter": {
        "name": "Starter",
        "price": 0,
        "analyses_per_month": TIER_LIMITS["starter"],
        "features": ["Basic CSI analysis", "Market comparison", "Bid leveling"],
    },
    "pro": {
        "name": "Professional",
        "price": 49,
        "analyses_per_month": UNLIMITED,
        "features": ["Unlimited analyses", "Advanced risk scoring", "Excel export", "Design and trade analysis"],
    },
    "team": {
        "name": "Team",
        "price": 99,
        "analyses_per_month": UNLIMITED,
        "features": ["Everything in Pro", "Project management"],
    },
    "enterprise": {
        "name": "Enterprise",
        "price": 199,
        "analyses_per_month": UNLIMITED,
        "features": ["Everything in Team", "Priority support", "Custom integrations", "Advanced analytics"],
    },
}

# Conservative share of project value a leveled bid saves
_SAVINGS_RATE = 0.05


def get_tier_limit(tier: Optional[str]) -> int:
    """Monthly analysis limit for a tier; unknown tiers get the lowest tier's limit."""
    if tier in TIER_LIMITS:
        return TIER_LIMITS[tier]
    return TIER_LIMITS[DEFAULT_TIER]


def is_unlimited(tier: Optional[str]) -> bool:
    return get_tier_limit(tier) == UNLIMITED


def _js_round(value: float) -> int:
    # Half-up rounding, as shown on the pricing page
    return int(math.floor(value + 0.5))


def calculate_simple_roi(project_value: float) -> Dict[str, Any]:
    """ROI of the Professional plan for a project of the given value."""
    if project_value is None or project_value <= 0:
        raise ValidationError("project_value must be a positive number")

    monthly_fee = MVP_PRICING["professional"]["price"]
    potential_savings = project_value * _SAVINGS_RATE
    payback_days = _js_round((monthly_fee / potential_savings) * 30)
    annual_roi = ((potential_savings * 12 - monthly_fee * 12) / (monthly_fee * 12)) * 100

    return {
        "monthly_fee": monthly_fee,
        "potential_savings": potential_savings,
        "payback_days": max(payback_days, 1),
        "roi": "1000%+" if annual_roi > 1000 else f"{_js_round(annual_roi)}%",
    }


def pricing_catalog() -> Dict[str, Any]:
    return {
        "tiers": {tier: TIER_PRICING[tier] for tier in TIERS},
        "mvp": MVP_PRICING,
        "limits": dict(TIER_LIMITS),
    }
