from typing import Any, Dict

from fastapi import APIRouter, Query

from levelr.features.pricing.service import calculate_simple_roi, pricing_catalog


router = APIRouter(prefix="/api/pricing", tags=["pricing"])


@router.get("")
def get_pricing() -> Dict[str, Any]:
    return pricing_catalog()


@router.get("/roi")
def get_roi(project_value: float = Query(..., description="Project value in USD")) -> Dict[str, Any]:
    return calculate_simple_roi(project_value)
