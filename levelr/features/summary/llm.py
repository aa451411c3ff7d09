"""
Claude client for the summary pipeline.

Every call returns a Completion instead of raising, so callers decide how a
failed or malformed response degrades.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import anthropic

from levelr.core.config import Settings
from levelr.core.errors import ServiceUnavailableError
from levelr.core.metrics import llm_calls_total


logger = logging.getLogger("levelr")

PARSED = "parsed"
MALFORMED = "malformed"
FAILED = "failed"


class LLMUnavailableError(ServiceUnavailableError):
    code = "llm_unavailable"


@dataclass(frozen=True)
class Completion:
    status: str
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == PARSED


class ClaudeClient:
    def __init__(
        self,
        client,
        *,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 2000,
        temperature: float = 0.1,
    ):
        """
        Args:
            client: anthropic.AsyncAnthropic (or anything with the same messages.create)
        """
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings_obj: Settings) -> Optional["ClaudeClient"]:
        """None when no API key is configured."""
        if not settings_obj.CLAUDE_API_KEY:
            return None
        return cls(
            anthropic.AsyncAnthropic(api_key=settings_obj.CLAUDE_API_KEY),
            model=settings_obj.CLAUDE_MODEL,
            max_tokens=settings_obj.CLAUDE_MAX_TOKENS,
            temperature=settings_obj.CLAUDE_TEMPERATURE,
        )

    async def complete(self, prompt: str, *, phase: str) -> Completion:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            return self._finish(phase, Completion(FAILED, error=f"status {e.status_code}"))
        except anthropic.APIError as e:
            return self._finish(phase, Completion(FAILED, error=e.__class__.__name__))

        blocks = getattr(message, "content", None) or []
        first = blocks[0] if blocks else None
        if first is None or getattr(first, "type", None) != "text":
            return self._finish(phase, Completion(MALFORMED, error="first content block is not text"))
        return self._finish(phase, Completion(PARSED, text=first.text or ""))

    def _finish(self, phase: str, completion: Completion) -> Completion:
        llm_calls_total.inc(labels={"phase": phase, "status": completion.status})
        if not completion.ok:
            logger.warning(
                f"Claude {phase} call {completion.status}: {completion.error}",
                extra={"event_type": f"llm.{completion.status}"},
            )
        return completion
