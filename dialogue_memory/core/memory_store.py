"""Hybrid fast/durable persistence of interactions.

Write path: embed (when available) -> summarize the turn (when enabled) ->
append to the fast tier -> queue for the durable tier. The durable queue is
flushed in batches, on size or on a timer. A failed flush puts the batch back
at the front of the queue, so delivery is at-least-once and readers dedup by
(timestamp, input prefix).

Once the fast tier holds more than ``recent_threshold`` interactions, the
oldest full batch of not-yet-summarized ones is collapsed into a Summary in
the background. The summarized records themselves are left in place.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections import Counter
from datetime import datetime
from typing import Any

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.core.analytics import ConversationAnalytics
from dialogue_memory.embeddings.base import EmbeddingCapability, UnavailableEmbedder
from dialogue_memory.errors import is_quota_error
from dialogue_memory.models import Interaction, PatternAnalysis, Summary
from dialogue_memory.storage.fast_tier import FastTier
from dialogue_memory.storage.sqlite_store import SQLiteStore
from dialogue_memory.summarization.summarizer import DisabledSummarizer, Summarizer

logger = logging.getLogger(__name__)


def _epoch(timestamp: str) -> float:
    try:
        return datetime.fromisoformat(timestamp).timestamp()
    except (TypeError, ValueError):
        return 0.0


def dedup_key(record: Interaction) -> tuple[str, str]:
    return (record.timestamp, (record.input or "")[:ENGINE_CONFIG["dedup_prefix_length"]])


def deduplicate(records: list[Interaction]) -> list[Interaction]:
    seen: set[tuple[str, str]] = set()
    unique = []
    for record in records:
        key = dedup_key(record)
        if key not in seen:
            seen.add(key)
            unique.append(record)
    return unique


def history_hash(history: list[Interaction]) -> str:
    joined = "|".join((i.input or "")[:50] for i in history[-10:])
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()


def compute_patterns(history: list[Interaction]) -> PatternAnalysis:
    """Recurring themes and contradictions across ``history``."""
    words: Counter[str] = Counter()
    for record in history:
        text = (record.input or record.response or "").lower()
        words.update(w for w in text.split() if len(w) > 3)

    themes = sorted(
        ({"word": w, "count": c} for w, c in words.items() if c >= 3),
        key=lambda t: t["count"],
        reverse=True,
    )[:10]
    return PatternAnalysis(
        recurring_themes=themes,
        contradictions=[r.id for r in history if r.category == 8],
        causal_chains=compute_chains(history),
    )


def compute_chains(history: list[Interaction]) -> list[dict[str, Any]]:
    """Three consecutive turns where the second and third each continue the one before."""
    chains = []
    for first, middle, last in zip(history, history[1:], history[2:]):
        if first.category is None or middle.category is None or last.category is None:
            continue
        if middle.category in (1, 2) and last.category in (1, 2):
            chains.append({
                "start": first.input,
                "middle": middle.input,
                "end": last.input,
                "confidence": 0.7,
            })
    return chains


class MemoryStore:
    """Interaction persistence across the fast and durable tiers."""

    def __init__(
        self,
        fast_tier: FastTier,
        durable: SQLiteStore | None = None,
        embedder: EmbeddingCapability | None = None,
        summarizer: Summarizer | DisabledSummarizer | None = None,
        batch_size: int | None = None,
        batch_interval: float | None = None,
        analytics: ConversationAnalytics | None = None,
    ) -> None:
        cfg = ENGINE_CONFIG
        self.fast_tier = fast_tier
        self.durable = durable
        self.embedder = embedder or UnavailableEmbedder()
        self.summarizer = summarizer or DisabledSummarizer()
        self.analytics = analytics or ConversationAnalytics(fast_tier)
        self.batch_size = batch_size or cfg["batch_size"]
        self.batch_interval = batch_interval or cfg["batch_interval"]
        self.recent_threshold = cfg["recent_threshold"]

        self.queue: list[Interaction] = []
        self._flush_lock = asyncio.Lock()
        self._summary_lock = asyncio.Lock()
        self._timer: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    # ── Lifecycle ──

    def start(self) -> None:
        if self._timer is None:
            self._timer = asyncio.create_task(self._batch_loop())

    async def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        await self.wait_for_background()
        await self.flush()

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _batch_loop(self) -> None:
        while True:
            await asyncio.sleep(self.batch_interval)
            if self.queue:
                await self.flush()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ── Writes ──

    async def save_interaction(self, record: Interaction) -> bool:
        await self._embed(record)

        if self.summarizer.enabled and ENGINE_CONFIG["summarize_turns"]:
            record.summary = await self.summarizer.summarize_turn(record)

        if self.fast_tier.is_ready():
            await self.fast_tier.add_interaction(record.to_dict())
            count = await self.fast_tier.get_interaction_count()
            if count > self.recent_threshold and self.summarizer.enabled:
                self._spawn(self.summarize_old_interactions())

        self.queue.append(record)
        if len(self.queue) >= self.batch_size:
            await self.flush()
        return True

    async def _embed(self, record: Interaction) -> None:
        if not self.embedder.is_available():
            await self.analytics.track_embedding_usage(success=False, fallback=True)
            return
        semantics = record.semantics
        combined = f"{record.input} {record.response}"
        cache = getattr(self.embedder, "cache", None)
        cached = cache is not None and cache.get(combined) is not None
        started = time.perf_counter()
        try:
            semantics.embedding = await self.embedder.embed(combined)
            semantics.input_embedding = await self.embedder.embed(record.input)
            semantics.response_embedding = await self.embedder.embed(record.response)
        except Exception as exc:
            if is_quota_error(exc):
                logger.debug("Embedding quota exhausted, saving without embeddings")
            else:
                logger.warning("Failed to generate embeddings: %s", exc)
            await self.analytics.track_embedding_usage(
                success=False, fallback=True, duration_ms=(time.perf_counter() - started) * 1000,
            )
            return
        await self.analytics.track_embedding_usage(
            success=True, cached=cached, duration_ms=(time.perf_counter() - started) * 1000,
        )

    async def flush(self) -> int:
        """Write queued records to the durable tier; returns how many were sent."""
        async with self._flush_lock:
            if not self.queue:
                return 0
            batch, self.queue = self.queue, []
            if self.durable is None:
                logger.debug("No durable tier, dropping %d queued interactions", len(batch))
                return 0
            try:
                await self.durable.insert_many(batch)
            except Exception:
                logger.exception("Durable flush failed, re-queueing %d interactions", len(batch))
                self.queue[:0] = batch
                return 0
            logger.info("Flushed %d interactions to durable tier", len(batch))
            return len(batch)

    async def summarize_old_interactions(self) -> Summary | None:
        """Summarize the oldest full batch beyond the recent window, once."""
        if self._summary_lock.locked():
            return None
        async with self._summary_lock:
            try:
                return await self._summarize_oldest_batch()
            except Exception:
                logger.exception("Error summarizing old interactions")
                return None

    async def _summarize_oldest_batch(self) -> Summary | None:
        count = await self.fast_tier.get_interaction_count()
        if count <= self.recent_threshold:
            return None
        # Stored newest first; reverse the aged tail to walk it oldest first
        aged = await self.fast_tier.get_interactions(self.recent_threshold, count - 1)
        done = await self.fast_tier.get_summarized_ids()
        pending = [Interaction.from_dict(d) for d in reversed(aged) if d["id"] not in done]
        if len(pending) < self.batch_size:
            return None

        batch = pending[:self.batch_size]
        text = await self.summarizer.summarize_batch(batch)
        if not text:
            return None
        summary = Summary(
            interaction_ids=[r.id for r in batch],
            text=text,
            timestamp=batch[-1].timestamp,
            count=len(batch),
        )
        await self.fast_tier.add_summary(vars(summary), score=_epoch(summary.timestamp))
        logger.info("Summarized %d old interactions", len(batch))
        return summary

    # ── Reads ──

    async def get_recent_interactions(self, count: int = 100) -> list[Interaction]:
        """Newest first."""
        if self.fast_tier.is_ready():
            return [Interaction.from_dict(d) for d in await self.fast_tier.get_recent_interactions(count)]
        if self.durable is not None:
            try:
                return await self.durable.load_recent(count)
            except Exception:
                logger.exception("Error loading recent interactions from durable tier")
        return []

    async def load_all_history(self, limit: int | None = None) -> list[Interaction]:
        """Merged history across tiers, oldest first, deduplicated, at most ``limit`` long."""
        limit = limit or ENGINE_CONFIG["history_limit"]
        history: list[Interaction] = []

        if self.fast_tier.is_ready():
            recent = await self.fast_tier.get_recent_interactions(self.recent_threshold)
            history.extend(Interaction.from_dict(d) for d in recent)
            if self.summarizer.enabled:
                for data in await self.fast_tier.get_summaries(limit - self.recent_threshold):
                    history.append(Summary(**data).to_interaction())
            else:
                older = await self.fast_tier.get_interactions(self.recent_threshold, limit - 1)
                history.extend(Interaction.from_dict(d) for d in older)

        if self.durable is not None:
            try:
                history.extend(await self.durable.load_recent(limit))
            except Exception:
                logger.exception("Error loading history from durable tier")

        history.sort(key=lambda r: r.timestamp)
        return deduplicate(history)[-limit:]

    # ── Pattern analysis ──

    async def detect_patterns(self, history: list[Interaction] | None = None) -> PatternAnalysis:
        if history is None:
            history = await self.load_all_history(1000)
        key = self.fast_tier.key("patterns", history_hash(history))
        cached = await self.fast_tier.get_json(key)
        if cached:
            return PatternAnalysis(**cached)
        started = time.perf_counter()
        patterns = compute_patterns(history)
        found = (
            ["recurring_theme"] * len(patterns.recurring_themes)
            + ["contradiction"] * len(patterns.contradictions)
            + ["causal_chain"] * len(patterns.causal_chains)
        )
        if found:
            await self.analytics.track_pattern_detection(found, (time.perf_counter() - started) * 1000)
        await self.fast_tier.set_json(key, vars(patterns), ttl=ENGINE_CONFIG["pattern_cache_ttl"])
        return patterns

    async def infer_chains(self, history: list[Interaction] | None = None) -> list[dict[str, Any]]:
        if history is None:
            history = await self.load_all_history(1000)
        key = self.fast_tier.key("chains", history_hash(history))
        cached = await self.fast_tier.get_json(key)
        if cached is not None:
            return cached
        chains = compute_chains(history)
        await self.fast_tier.set_json(key, chains, ttl=ENGINE_CONFIG["pattern_cache_ttl"])
        return chains
