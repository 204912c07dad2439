"""Chunk summarization via the Anthropic Messages API."""

import logging
import os
from typing import Callable

from .config import (
    ANTHROPIC_API_KEY_ENV,
    DEFAULT_SUMMARY_MODEL,
    SUMMARY_FALLBACK_CHARS,
    SUMMARY_MAX_TOKENS,
    SUMMARY_MODEL_ENV,
)
from .models import SummaryResult

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Summarize this Claude Code conversation segment in 2-3 sentences. "
    "Focus on: what task was being done, what tools were used, what was the outcome.\n\n"
)


def truncate_fallback(text: str) -> str:
    """Fallback digest: the first characters of the chunk text."""
    return text[:SUMMARY_FALLBACK_CHARS]


class ChunkSummarizer:
    """Single-exchange summarizer with an explicit, caller-chosen fallback."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = SUMMARY_MAX_TOKENS,
    ):
        # Credentials are held by this object, never read back from the process environment
        self._api_key = api_key if api_key is not None else os.environ.get(ANTHROPIC_API_KEY_ENV)
        self.model = model or os.environ.get(SUMMARY_MODEL_ENV) or DEFAULT_SUMMARY_MODEL
        self.max_tokens = max_tokens
        self._client = None

    @property
    def client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            import anthropic

            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def _request_summary(self, text: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": SUMMARY_PROMPT + text}],
        )
        summary = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        if not summary:
            raise ValueError("Summarizer returned no text")
        return summary

    def summarize(
        self, text: str, fallback: Callable[[str], str] = truncate_fallback
    ) -> SummaryResult:
        """
        Summarize chunk text in one round-trip.

        Any failure of the service is logged and replaced by fallback(text);
        this method never raises for service errors.

        Args:
            text: Formatted chunk text.
            fallback: Produces the digest used when the service fails.

        Returns:
            SummaryResult with degraded=True when the fallback was used.
        """
        try:
            return SummaryResult(text=self._request_summary(text))
        except Exception as e:
            logger.warning(f"Summarization failed, using fallback: {e}")
            return SummaryResult(text=fallback(text), degraded=True, error=str(e))
