"""Tests for tier limits, the pricing catalog and the ROI helper."""

import pytest

from levelr.core.errors import ValidationError
from levelr.features.pricing.service import (
    TIER_LIMITS,
    UNLIMITED,
    calculate_simple_roi,
    get_tier_limit,
    is_unlimited,
    pricing_catalog,
)


def test_tier_limits():
    assert get_tier_limit("starter") == 3
    assert get_tier_limit("pro") == UNLIMITED
    assert get_tier_limit("team") == UNLIMITED
    assert get_tier_limit("enterprise") == UNLIMITED


def test_unknown_tier_gets_lowest_limit():
    assert get_tier_limit("platinum") == TIER_LIMITS["starter"]
    assert get_tier_limit(None) == 3
    assert is_unlimited(None) is False


def test_roi_for_typical_project():
    roi = calculate_simple_roi(100000)
    assert roi["monthly_fee"] == 299
    assert roi["potential_savings"] == 5000
    assert roi["payback_days"] == 2
    assert roi["roi"] == "1000%+"


def test_roi_for_small_project():
    roi = calculate_simple_roi(10000)
    # 500 saved per month against a 299 fee
    assert roi["payback_days"] == 18
    assert roi["roi"] == "67%"


def test_roi_payback_is_at_least_one_day():
    assert calculate_simple_roi(50000000)["payback_days"] == 1


@pytest.mark.parametrize("value", [0, -10])
def test_roi_rejects_non_positive(value):
    with pytest.raises(ValidationError):
        calculate_simple_roi(value)


def test_catalog_lists_every_tier():
    catalog = pricing_catalog()
    assert list(catalog["tiers"]) == ["starter", "pro", "team", "enterprise"]
    assert catalog["limits"]["starter"] == 3
    assert catalog["tiers"]["starter"]["analyses_per_month"] == 3


def test_pricing_routes(build_client):
    client = build_client()

    response = client.get("/api/pricing")
    assert response.status_code == 200
    assert response.json()["limits"]["pro"] == UNLIMITED

    response = client.get("/api/pricing/roi", params={"project_value": 10000})
    assert response.json()["roi"] == "67%"

    response = client.get("/api/pricing/roi", params={"project_value": 0})
    assert response.status_code == 400

    response = client.get("/api/pricing/roi")
    assert response.status_code == 400
