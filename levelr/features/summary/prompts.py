"""
Prompt templates for the summary pipeline.
"""

import json
from typing import Dict, List, Sequence

from levelr.models.analysis import AnalysisResult


DEFAULT_SECTIONS: List[str] = [
    "ExecutiveSummary",
    "CostSnapshot",
    "ScopeByDivision",
    "HighRiskItems",
    "BidVarianceAnalysis",
    "ChatFoundationData",
]

SECTION_HEADINGS: Dict[str, str] = {
    "ExecutiveSummary": "Executive Summary",
    "CostSnapshot": "Cost Snapshot",
    "ScopeByDivision": "Scope by CSI Division",
    "HighRiskItems": "High-Risk Items & Assumptions",
    "BidVarianceAnalysis": "Bid Variance Analysis Factors",
    "ChatFoundationData": "Key Data for Chat Foundation",
}

FOCUS_POINTS = """Focus on:
- Specific cost breakdowns and unit pricing for variance analysis
- Risk factors that affect pricing (assumptions, exclusions, scope gaps)
- Detailed line items and specifications for chat queries
- Subcontractor assignments and trade breakdowns
- Project timeline and delivery constraints"""

STITCH_FOCUS_POINTS = """Focus on:
- Maintaining cost accuracy and division details for variance analysis
- Preserving specific line items and pricing for chat functionality
- Creating logical flow from executive summary to detailed breakdowns
- Highlighting key risk factors and assumptions"""

PIECE_SEPARATOR = "\n\n---\n\n"


def section_heading(section: str) -> str:
    """Markdown heading for a section id; unknown ids are used as written."""
    return f"## {SECTION_HEADINGS.get(section, section)}"


def chunk_prompt(chunk: AnalysisResult, sections: Sequence[str], char_budget: int) -> str:
    headings = "\n".join(section_heading(s) for s in (sections or DEFAULT_SECTIONS))
    data = json.dumps(chunk.model_dump(exclude_none=True), indent=2)
    return f"""You are writing a project summary for bid variance analysis and future chat queries.

Return MARKDOWN only. No code fences. No JSON. Stay under {char_budget} characters.

Required sections (only if data exists):
{headings}

{FOCUS_POINTS}

Use bullets, be concise. Numbers must match the provided analysis data exactly.

DATA (read-only, do not invent):
{data}"""


def stitch_prompt(pieces: Sequence[str], analysis: AnalysisResult, max_chars: int) -> str:
    return f"""You merge MARKDOWN sections into a single cohesive document optimized for bid variance analysis.

Return MARKDOWN only. No code fences. No JSON. Stay under {max_chars} characters.

{STITCH_FOCUS_POINTS}

Project: {analysis.contractor_name} - ${analysis.total_amount:,.0f}

SECTIONS TO MERGE:
{PIECE_SEPARATOR.join(pieces)}"""
