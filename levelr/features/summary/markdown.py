"""Markdown post-processing for LLM output."""

import re


TRUNCATION_MARKER = "[Content truncated for length]"
_HARD_CUT_SUFFIX = "... "

_FENCED_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_BARE_OBJECT_RE = re.compile(r"^\s*\{[\s\S]*\}\s*$", re.MULTILINE)
_BARE_ARRAY_RE = re.compile(r"^\s*\[[\s\S]*\]\s*$", re.MULTILINE)

# Boundaries before this share of the budget are too early to cut at
_BOUNDARY_FLOOR = 0.8


def enforce_markdown_only(text: str) -> str:
    """Strip fenced code blocks and bare JSON literals, then trim."""
    if not text:
        return ""
    cleaned = _FENCED_BLOCK_RE.sub("", text)
    cleaned = _BARE_OBJECT_RE.sub("", cleaned)
    cleaned = _BARE_ARRAY_RE.sub("", cleaned)
    return cleaned.strip()


def hard_cap(text: str, max_chars: int) -> str:
    """Truncate to max_chars at a paragraph or sentence boundary.

    Falls back to a hard cut when neither boundary lies past 80% of the
    budget. Truncated output always ends with TRUNCATION_MARKER and is at most
    max_chars + len(TRUNCATION_MARKER) long.
    """
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    floor = max_chars * _BOUNDARY_FLOOR

    paragraph = truncated.rfind("\n\n")
    if paragraph > floor:
        return truncated[:paragraph] + "\n\n" + TRUNCATION_MARKER

    sentence = truncated.rfind(". ")
    if sentence > floor:
        return truncated[:sentence + 1] + " " + TRUNCATION_MARKER

    if max_chars <= len(_HARD_CUT_SUFFIX):
        return truncated + TRUNCATION_MARKER
    return truncated[:max_chars - len(_HARD_CUT_SUFFIX)] + _HARD_CUT_SUFFIX + TRUNCATION_MARKER
