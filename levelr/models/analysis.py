"""
levelr/models/analysis.py

Extracted bid analysis. Only the fields the summary pipeline relies on are
declared; everything else the extractor produced rides along untouched.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: str
    cost: float
    quantity: Optional[float] = None
    unit: Optional[str] = None
    unit_price: Optional[float] = None
    sub_code: Optional[str] = None
    scope_notes: Optional[str] = None


class CSIDivision(BaseModel):
    """One CSI MasterFormat division (key is the 2-digit code, e.g. "03")."""
    model_config = ConfigDict(extra="allow")

    cost: float
    items: List[Any] = Field(default_factory=list)
    subcontractor: Optional[str] = None
    estimated_percentage: Optional[float] = None


class AnalysisResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    contractor_name: str
    total_amount: float
    project_name: Optional[str] = None
    bid_date: Optional[str] = None
    base_bid_amount: Optional[float] = None
    discipline: str = "construction"
    csi_divisions: Dict[str, CSIDivision]

    def division_count(self) -> int:
        return len(self.csi_divisions)

    def compact_json(self) -> str:
        """Compact JSON, used for sizing and as LLM input."""
        return self.model_dump_json(exclude_none=True)
