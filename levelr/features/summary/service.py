"""
levelr/features/summary/service.py

Chunked summary generation.

Handles:
- Per-chunk markdown generation (one Claude call per division group)
- Stitching pieces into one document, with a plain concatenation fallback
- Markdown-only cleanup and the final character cap

A failed chunk contributes nothing; it never aborts the summary.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from levelr.features.summary.chunker import DEFAULT_CHUNK_BUDGET, chunk_by_division
from levelr.features.summary.llm import ClaudeClient, LLMUnavailableError
from levelr.features.summary.markdown import enforce_markdown_only, hard_cap
from levelr.features.summary.prompts import DEFAULT_SECTIONS, PIECE_SEPARATOR, chunk_prompt, stitch_prompt
from levelr.models.analysis import AnalysisResult


logger = logging.getLogger("levelr")

DEFAULT_MAX_CHARS = 12000


@dataclass(frozen=True)
class SummaryOutcome:
    markdown: str
    pieces: int


class SummaryStitcher:
    def __init__(self, llm: Optional[ClaudeClient], *, chunk_budget: int = DEFAULT_CHUNK_BUDGET):
        self.llm = llm
        self.chunk_budget = chunk_budget

    async def generate(self, chunk: AnalysisResult, sections: Sequence[str], max_chars: int) -> str:
        """Markdown for one chunk, or "" if the call failed.

        Raises:
            LLMUnavailableError: no Claude credential configured
        """
        if self.llm is None:
            raise LLMUnavailableError("Claude API key not configured")

        completion = await self.llm.complete(chunk_prompt(chunk, sections, max_chars // 3), phase="chunk")
        if not completion.ok:
            logger.warning(
                f"Summary chunk dropped ({completion.status})",
                extra={"event_type": "summary.chunk_failed"},
            )
            return ""
        return enforce_markdown_only(completion.text)

    async def stitch(self, pieces: Sequence[str], analysis: AnalysisResult, max_chars: int) -> str:
        if not pieces:
            return ""
        if len(pieces) == 1:
            return pieces[0]

        fallback = PIECE_SEPARATOR.join(pieces)
        if self.llm is None:
            return fallback

        completion = await self.llm.complete(stitch_prompt(pieces, analysis, max_chars), phase="stitch")
        if not completion.ok:
            logger.warning("Stitch call failed, concatenating pieces", extra={"event_type": "summary.stitch_fallback"})
            return fallback

        merged = enforce_markdown_only(completion.text)
        return merged or fallback

    async def summarize(
        self,
        analysis: AnalysisResult,
        sections: Optional[Sequence[str]] = None,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> SummaryOutcome:
        if self.llm is None:
            raise LLMUnavailableError("Claude API key not configured")

        chunks = chunk_by_division(analysis, self.chunk_budget)
        wanted = list(sections) if sections else DEFAULT_SECTIONS

        # gather keeps chunk order regardless of completion order
        results: List[str] = await asyncio.gather(
            *(self.generate(chunk, wanted, max_chars) for chunk in chunks)
        )
        pieces = [piece for piece in results if piece.strip()]

        stitched = await self.stitch(pieces, analysis, max_chars)
        markdown = hard_cap(stitched, max_chars)

        logger.info(
            f"Summary built from {len(pieces)}/{len(chunks)} chunk(s), {len(markdown)} chars",
            extra={"event_type": "summary.generated"},
        )
        return SummaryOutcome(markdown=markdown, pieces=len(pieces))
