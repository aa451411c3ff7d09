"""
Summary API routes.

- POST /api/claude/summarize: chunked markdown summary of an extracted analysis
"""
import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from levelr.api.deps import get_summarizer, get_usage_store
from levelr.core.errors import UpstreamError
from levelr.features.gate.service import record_analysis_usage, require_gate
from levelr.features.summary.service import DEFAULT_MAX_CHARS, SummaryStitcher
from levelr.features.usage.service import UsageStore
from levelr.models.analysis import AnalysisResult
from levelr.models.gate import GateContext


logger = logging.getLogger("levelr")

router = APIRouter(prefix="/api/claude", tags=["summary"])


class SummarizeRequest(BaseModel):
    analysis: AnalysisResult
    sections: Optional[List[str]] = None
    max_chars: int = Field(default=DEFAULT_MAX_CHARS, gt=0)


class SummaryStats(BaseModel):
    chars: int
    sections_emitted: int
    processing_time_ms: int


class SummarizeResponse(BaseModel):
    markdown: str
    stats: SummaryStats


@router.post("/summarize", response_model=SummarizeResponse)
async def summarize_analysis(
    body: SummarizeRequest,
    ctx: GateContext = Depends(require_gate("summaryGeneration")),
    summarizer: SummaryStitcher = Depends(get_summarizer),
    usage: UsageStore = Depends(get_usage_store),
):
    """
    Errors:
        400: invalid body
        401/403: gate denial
        502: every chunk call failed (no usage recorded)
        503: Claude not configured
    """
    started = time.perf_counter()
    logger.info(
        f"Generating summary for {body.analysis.contractor_name}",
        extra={"user_id": ctx.user_id, "tier": ctx.tier, "event_type": "summary.requested"},
    )

    outcome = await summarizer.summarize(body.analysis, body.sections, body.max_chars)
    if outcome.pieces == 0:
        raise UpstreamError("Summary generation failed for every section")
    await record_analysis_usage(usage, ctx.user_id)

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return SummarizeResponse(
        markdown=outcome.markdown,
        stats=SummaryStats(
            chars=len(outcome.markdown),
            sections_emitted=outcome.pieces,
            processing_time_ms=elapsed_ms,
        ),
    )
