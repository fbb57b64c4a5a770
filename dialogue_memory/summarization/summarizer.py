"""LLM-backed summarization of conversation turns.

Used by the memory store to attach a short summary to each saved interaction
and to collapse aged interactions into a single Summary record.
"""

from __future__ import annotations

import logging

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.errors import is_quota_error
from dialogue_memory.llm.client import llm_complete
from dialogue_memory.models import Interaction
from dialogue_memory.prompts import (
    BATCH_SUMMARY_SYSTEM,
    TURN_SUMMARY_SYSTEM,
    batch_prompt,
    turn_prompt,
)

logger = logging.getLogger(__name__)


class Summarizer:
    """Summarization capability gated by an ``enabled`` flag."""

    def __init__(
        self,
        model: str | None = None,
        enabled: bool = True,
        max_words: int | None = None,
    ) -> None:
        self.model = model or ENGINE_CONFIG["llm_model"]
        self.enabled = enabled
        self.max_words = max_words or ENGINE_CONFIG["summary_max_words"]

    async def summarize_turn(self, record: Interaction) -> str | None:
        if not self.enabled:
            return None
        try:
            text = await llm_complete(
                turn_prompt(record.input, record.response),
                system=TURN_SUMMARY_SYSTEM,
                model=self.model,
            )
        except Exception as exc:
            _log_failure("turn", exc)
            return None
        return text.strip() or None

    async def summarize_batch(self, records: list[Interaction]) -> str | None:
        if not self.enabled or not records:
            return None
        try:
            text = await llm_complete(
                batch_prompt([(r.input, r.response) for r in records], self.max_words),
                system=BATCH_SUMMARY_SYSTEM,
                model=self.model,
            )
        except Exception as exc:
            _log_failure("batch", exc)
            return None
        return text.strip() or None


class DisabledSummarizer:
    """Summarization capability that never produces a summary."""

    enabled = False

    async def summarize_turn(self, record: Interaction) -> str | None:
        return None

    async def summarize_batch(self, records: list[Interaction]) -> str | None:
        return None


def _log_failure(kind: str, exc: Exception) -> None:
    if is_quota_error(exc):
        logger.debug("Summarization (%s) skipped: quota exhausted", kind)
    else:
        logger.warning("Summarization (%s) failed: %s", kind, exc)
