"""
Division chunking for large analyses.

A division is never split across chunks. Every chunk carries all non-division
fields of the source analysis.
"""

from typing import List

from levelr.models.analysis import AnalysisResult


DEFAULT_CHUNK_BUDGET = 6000


def chunk_by_division(analysis: AnalysisResult, max_budget: int = DEFAULT_CHUNK_BUDGET) -> List[AnalysisResult]:
    """Split an analysis into roughly three division groups when it is too large.

    Analyses under the budget (or without divisions) come back as the same
    object in a one-element list.
    """
    if len(analysis.compact_json()) < max_budget:
        return [analysis]

    entries = list(analysis.csi_divisions.items())
    if not entries:
        return [analysis]

    group_size = max(1, len(entries) // 3)
    chunks: List[AnalysisResult] = []
    for start in range(0, len(entries), group_size):
        group = dict(entries[start:start + group_size])
        chunks.append(analysis.model_copy(update={"csi_divisions": group}))
    return chunks
