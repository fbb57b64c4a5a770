"""Multi-signal retrieval over stored interactions.

Four independent signals score the candidate pool:
  - time: recency rank, 1 - rank / N
  - topic: fraction of query keywords present in the interaction text
  - semantic: embedding cosine similarity (only when embeddings are available)
  - relation: concept-graph overlap between query and interaction

Each signal is normalized to [0, 1], weighted, and summed per interaction.
A signal that cannot be computed is simply absent from the sum.
"""

from __future__ import annotations

import logging
from typing import Mapping

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.core.memory_store import MemoryStore
from dialogue_memory.embeddings.base import EmbeddingCapability, UnavailableEmbedder
from dialogue_memory.knowledge.concept_graph import ConceptGraph
from dialogue_memory.models import Interaction, RankedCandidate
from dialogue_memory.storage.vector_store import VectorStore

logger = logging.getLogger(__name__)

SignalResults = list[tuple[Interaction, float]]


def combine(
    signals: Mapping[str, SignalResults],
    weights: Mapping[str, float],
    limit: int,
) -> list[RankedCandidate]:
    """Merge per-signal results into ranked candidates.

    ``signals["time"]`` must be ordered most recent first; its scores are
    derived from rank. Every other signal carries its own raw score.
    """
    merged: dict[str, RankedCandidate] = {}
    for name, results in signals.items():
        weight = weights.get(name, 0.0)
        for rank, (interaction, raw) in enumerate(results):
            if name == "time":
                score = 1 - rank / max(len(results), 1)
            else:
                score = max(0.0, min(1.0, raw))
            candidate = merged.get(interaction.id)
            if candidate is None:
                candidate = merged[interaction.id] = RankedCandidate(
                    interaction_id=interaction.id, interaction=interaction,
                )
            candidate.scores[name] = score
            candidate.combined_score += score * weight
    ranked = sorted(merged.values(), key=lambda c: c.combined_score, reverse=True)
    return ranked[:limit]


def _text(interaction: Interaction) -> str:
    return f"{interaction.input} {interaction.response}"


class MemoryRetriever:
    """Ranks stored interactions against a query."""

    def __init__(
        self,
        memory: MemoryStore,
        embedder: EmbeddingCapability | None = None,
        graph: ConceptGraph | None = None,
        vectors: VectorStore | None = None,
    ) -> None:
        self.memory = memory
        self.embedder = embedder or UnavailableEmbedder()
        self.graph = graph
        self.vectors = vectors
        self.pool_size = ENGINE_CONFIG["retrieval_pool_size"]

    async def retrieve(
        self,
        query: str,
        weights: Mapping[str, float] | None = None,
        limit: int | None = None,
    ) -> list[RankedCandidate]:
        weights = {**ENGINE_CONFIG["retrieval_weights"], **(weights or {})}
        limit = limit or ENGINE_CONFIG["retrieval_limit"]
        pool = await self.memory.get_recent_interactions(self.pool_size)
        if not pool:
            return []

        signals: dict[str, SignalResults] = {
            "time": self.by_time(pool),
            "topic": self.by_topic(query, pool),
        }
        if self.embedder.is_available():
            signals["semantic"] = await self.by_semantic(query, pool)
        if self.graph is not None and len(self.graph):
            signals["relation"] = self.by_relation(query, pool)
        return combine(signals, weights, limit)

    @staticmethod
    def by_time(pool: list[Interaction]) -> SignalResults:
        ordered = sorted(pool, key=lambda r: r.timestamp, reverse=True)
        return [(r, 0.0) for r in ordered]

    @staticmethod
    def by_topic(query: str, pool: list[Interaction]) -> SignalResults:
        words = [w for w in (query or "").lower().split() if len(w) > 3]
        if not words:
            return []
        results = []
        for record in pool:
            text = _text(record).lower()
            score = sum(1 for w in words if w in text) / len(words)
            if score > 0:
                results.append((record, score))
        return sorted(results, key=lambda r: r[1], reverse=True)

    async def by_semantic(self, query: str, pool: list[Interaction]) -> SignalResults:
        try:
            query_vector = await self.embedder.embed(query)
        except Exception as exc:
            logger.debug("Semantic signal skipped: %s", exc)
            return []

        cached = {}
        if self.vectors is not None:
            missing = [r.id for r in pool if not r.semantics.embedding]
            try:
                cached = self.vectors.get_many(missing)
            except Exception:
                logger.exception("Embedding cache lookup failed")

        results = []
        for record in pool:
            vector = record.semantics.embedding or cached.get(record.id)
            if vector is None:
                vector = await self._compute_embedding(record)
                if vector is None:
                    continue
            results.append((record, self.embedder.similarity(query_vector, vector)))
        return sorted(results, key=lambda r: r[1], reverse=True)

    async def _compute_embedding(self, record: Interaction) -> list[float] | None:
        try:
            vector = await self.embedder.embed(_text(record))
        except Exception as exc:
            logger.debug("Could not embed interaction %s: %s", record.id, exc)
            return None
        if self.vectors is not None:
            try:
                self.vectors.upsert(record.id, vector, timestamp=record.timestamp)
            except Exception:
                logger.exception("Failed to cache embedding for %s", record.id)
        return vector

    def by_relation(self, query: str, pool: list[Interaction]) -> SignalResults:
        topics = self.graph.extract_topics_with_graph(query)
        if not topics.primary:
            return []
        related = {n.id for n in topics.primary} | {n.id for n in topics.neighbors}

        results = []
        for record in pool:
            own = self.graph.extract_topics_with_graph(_text(record))
            primary_hits = sum(1 for n in own.primary if n.id in related)
            neighbor_hits = sum(1 for n in own.neighbors if n.id in related)
            score = (primary_hits + 0.5 * neighbor_hits) / max(len(related), 1)
            if score > 0:
                results.append((record, score))
        return sorted(results, key=lambda r: r[1], reverse=True)
