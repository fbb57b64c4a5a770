"""Conversation engine: the entry points external collaborators call.

    process_input   -> read shared state, interrupt speech if needed,
                       classify, speak the transition
    save_interaction -> persist the finished turn, advance shared state
    retrieve        -> multi-signal lookup over stored interactions

Each session admits one ``process_input`` at a time; a concurrent call on a
busy session is rejected with None rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.core.analytics import ConversationAnalytics
from dialogue_memory.core.classifier import ClassificationContext, RelationshipClassifier
from dialogue_memory.core.interruption import InterruptionCoordinator, VoiceOutput
from dialogue_memory.core.memory_store import MemoryStore
from dialogue_memory.core.retrieval import MemoryRetriever
from dialogue_memory.core.session_state import SessionStateService
from dialogue_memory.core.similarity import SimilarityEngine, extract_topics, tokenize
from dialogue_memory.core.transitions import TransitionSelector
from dialogue_memory.embeddings.base import EmbeddingCapability, UnavailableEmbedder
from dialogue_memory.knowledge.concept_graph import ConceptGraph
from dialogue_memory.knowledge.graph_builder import build_valuation_graph
from dialogue_memory.models import (
    ClassificationResult,
    Interaction,
    InteractionSemantics,
    ProcessResult,
    RankedCandidate,
    Turn,
)
from dialogue_memory.storage.fast_tier import FastTier
from dialogue_memory.storage.graph_store import GraphStore
from dialogue_memory.storage.sqlite_store import SQLiteStore
from dialogue_memory.storage.vector_store import VectorStore
from dialogue_memory.summarization.summarizer import DisabledSummarizer, Summarizer

logger = logging.getLogger(__name__)


def make_embedder(provider: str | None = None) -> EmbeddingCapability:
    """Embedding capability for ``provider``: "api", "local" or "none"."""
    provider = provider or ENGINE_CONFIG["embedding_provider"]
    if provider == "api":
        from dialogue_memory.embeddings.api_embedder import ApiEmbedder
        return ApiEmbedder()
    if provider == "local":
        from dialogue_memory.embeddings.text_embedder import TextEmbedder
        return TextEmbedder()
    return UnavailableEmbedder()


@dataclass
class _Session:
    state: SessionStateService
    interruption: InterruptionCoordinator
    lock: asyncio.Lock


class ConversationEngine:
    """Composes classification, interruption and memory for every session."""

    def __init__(
        self,
        fast_tier: FastTier,
        durable: SQLiteStore | None = None,
        embedder: EmbeddingCapability | None = None,
        summarizer: Summarizer | DisabledSummarizer | None = None,
        voice: VoiceOutput | None = None,
        graph: ConceptGraph | None = None,
        graph_store: GraphStore | None = None,
        vectors: VectorStore | None = None,
        transitions: TransitionSelector | None = None,
        session_id: str = "default",
        interruption_delays: Mapping[str, float] | None = None,
        analytics: ConversationAnalytics | None = None,
    ) -> None:
        self.fast_tier = fast_tier
        self.durable = durable
        self.embedder = embedder or UnavailableEmbedder()
        self.summarizer = summarizer or DisabledSummarizer()
        self.voice = voice
        self.graph = graph
        self.graph_store = graph_store
        self.vectors = vectors
        self.default_session = session_id
        self.interruption_delays = dict(interruption_delays or {})
        self.analytics = analytics or ConversationAnalytics(fast_tier)

        self.similarity = SimilarityEngine(self.embedder)
        self.classifier = RelationshipClassifier(self.similarity, transitions)
        self.memory = MemoryStore(
            fast_tier, durable, self.embedder, self.summarizer, analytics=self.analytics,
        )
        self.retriever = MemoryRetriever(self.memory, self.embedder, graph, vectors)
        self._sessions: dict[str, _Session] = {}

    @classmethod
    def from_config(cls, voice: VoiceOutput | None = None, **overrides: Any) -> ConversationEngine:
        """Engine wired to the configured Redis, SQLite, Qdrant and Kuzu locations."""
        parts: dict[str, Any] = {
            "fast_tier": FastTier.from_url(),
            "durable": SQLiteStore(),
            "embedder": make_embedder(),
            "summarizer": Summarizer(),
            "graph_store": GraphStore(),
            "vectors": VectorStore(),
            "voice": voice,
        }
        parts.update(overrides)
        return cls(**parts)

    # ── Lifecycle ──

    async def initialize(self) -> bool:
        await self.fast_tier.connect()
        if self.durable is not None:
            await self.durable.initialize()
        if self.vectors is not None:
            self.vectors.initialize()
        if self.graph is None:
            self.graph = self._load_graph()
            self.retriever.graph = self.graph
        self.memory.start()
        await self._session(self.default_session).state.listen()
        logger.info(
            "Conversation engine ready (fast tier %s, embeddings %s, summarization %s)",
            "up" if self.fast_tier.is_ready() else "down",
            "on" if self.embedder.is_available() else "off",
            "on" if self.summarizer.enabled else "off",
        )
        return True

    def _load_graph(self) -> ConceptGraph:
        if self.graph_store is None:
            return build_valuation_graph()
        self.graph_store.initialize()
        graph = self.graph_store.load_graph()
        if not len(graph):
            graph = build_valuation_graph()
            self.graph_store.save_graph(graph)
        return graph

    async def close(self) -> None:
        await self.memory.close()
        await self.fast_tier.close()
        if self.durable is not None:
            await self.durable.close()
        if self.vectors is not None:
            self.vectors.close()
        if self.graph_store is not None:
            self.graph_store.close()

    def _session(self, session_id: str | None) -> _Session:
        session_id = session_id or self.default_session
        session = self._sessions.get(session_id)
        if session is None:
            state = SessionStateService(self.fast_tier, session_id)
            session = _Session(
                state=state,
                interruption=InterruptionCoordinator(state, self.voice, **self.interruption_delays),
                lock=asyncio.Lock(),
            )
            self._sessions[session_id] = session
        return session

    # ── Entry points ──

    async def process_input(
        self,
        text: str,
        entity_info: Mapping[str, Any] | None = None,
        session_id: str | None = None,
    ) -> ProcessResult | None:
        """Classify ``text`` against the session. None if the session is busy."""
        session = self._session(session_id)
        if session.lock.locked():
            logger.warning("Already processing input for this session, rejecting")
            return None
        async with session.lock:
            try:
                return await self._process(session, text, entity_info or {})
            except Exception:
                logger.exception("Error processing input")
                return None

    async def _process(self, session: _Session, text: str, entity_info: Mapping[str, Any]) -> ProcessResult:
        state = await session.state.get_all()
        is_speaking = bool(state.get("is_speaking"))
        recent_turns = await session.state.get_recent_turns()
        full_history = await self.memory.load_all_history(1000)

        if is_speaking:
            await session.interruption.interrupt_mid_sentence()

        new_entity = entity_info.get("name") or entity_info.get("ticker")
        started = time.perf_counter()
        classification = await self.classifier.classify(text, ClassificationContext(
            current_sentence=state.get("current_sentence"),
            recent_turns=recent_turns,
            full_history=full_history,
            current_entity=state.get("current_entity"),
            new_entity=new_entity,
            is_first_interaction=not recent_turns,
        ))
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Category %d (%s), confidence %.2f, %.0fms",
            classification.category, classification.rule, classification.confidence, duration_ms,
        )
        await self.analytics.track_classification(
            classification,
            duration_ms,
            session_id=session.state.session_id,
            used_embeddings=self.embedder.is_available(),
            input_length=len(text),
            history_length=len(full_history),
        )

        if is_speaking and classification.category != 9:
            await session.interruption.handle_transition(classification, classification.transition_phrase)

        updates: dict[str, Any] = {"is_speaking": False, "current_sentence": None}
        if new_entity:
            updates["current_entity"] = new_entity
        await session.state.update(**updates)

        return ProcessResult(
            classification=classification,
            context={
                "state": state,
                "recent_turns": recent_turns,
                "full_history": full_history[-20:],
            },
            request_id=f"req-{uuid.uuid4().hex[:12]}",
        )

    async def save_interaction(
        self,
        text: str,
        response: str,
        classification: ClassificationResult,
        patterns: list[str] | None = None,
        context: Mapping[str, Any] | None = None,
        session_id: str | None = None,
    ) -> bool:
        context = context or {}
        session = self._session(session_id)
        keywords = list(dict.fromkeys(w for w in tokenize(text) if len(w) > 3))
        record = Interaction(
            input=text,
            response=response,
            session_id=session.state.session_id,
            user_id=context.get("user_id"),
            category=classification.category,
            confidence=classification.confidence,
            similarity=classification.similarity,
            transition_phrase=classification.transition_phrase,
            pattern=classification.pattern,
            semantics=InteractionSemantics(
                topics=list(context.get("topics") or extract_topics(text)),
                keywords=keywords,
            ),
            patterns=list(patterns or []),
        )
        try:
            started = time.perf_counter()
            await self.memory.save_interaction(record)
            await self.analytics.track_memory_operation(
                "save_interaction",
                (time.perf_counter() - started) * 1000,
                has_embeddings=record.semantics.embedding is not None,
                patterns_count=len(record.patterns),
            )
            if record.patterns:
                await self.analytics.track_pattern_detection(record.patterns, session_id=record.session_id)
            await session.state.add_recent_turn(
                Turn(input=text, response=response, category=classification.category)
            )
            await session.state.update(current_sentence=response, is_speaking=True)
            session.interruption.mark_speaking()
            return True
        except Exception:
            logger.exception("Error saving interaction")
            return False

    async def retrieve(
        self,
        query: str,
        weights: Mapping[str, float] | None = None,
        limit: int | None = None,
    ) -> list[RankedCandidate]:
        return await self.retriever.retrieve(query, weights, limit)

    async def get_current_state(self, session_id: str | None = None) -> dict[str, Any]:
        return await self._session(session_id).state.get_all()

    async def reset(self, session_id: str | None = None) -> None:
        await self._session(session_id).state.reset()
        logger.info("Session state reset")
