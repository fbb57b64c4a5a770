"""Tests for multi-signal retrieval."""

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer

from dialogue_memory.core.memory_store import MemoryStore
from dialogue_memory.core.retrieval import MemoryRetriever, combine
from dialogue_memory.embeddings.base import cosine_similarity
from dialogue_memory.knowledge.graph_builder import build_valuation_graph
from dialogue_memory.models import Interaction
from dialogue_memory.storage.fast_tier import FastTier
from dialogue_memory.storage.vector_store import VectorStore


class KeywordEmbedder:
    """Maps any text mentioning rates onto one axis, everything else onto another."""

    def __init__(self):
        self.calls = []

    def is_available(self):
        return True

    async def embed(self, text):
        self.calls.append(text)
        return [1.0, 0.0, 0.0] if "rate" in text.lower() else [0.0, 1.0, 0.0]

    def similarity(self, v1, v2):
        return cosine_similarity(v1, v2)


@pytest_asyncio.fixture
async def memory():
    tier = FastTier(FakeAsyncRedis(server=FakeServer(), decode_responses=True))
    await tier.connect()
    yield MemoryStore(tier, None)
    await tier.close()


async def _seed(memory, *texts):
    for i, text in enumerate(texts):
        record = Interaction(
            id=f"int-{i}", input=text, response="",
            timestamp=f"2026-01-01T00:00:{i:02d}+00:00",
        )
        await memory.fast_tier.add_interaction(record.to_dict())


def _i(iid, ts="2026-01-01T00:00:00+00:00"):
    return Interaction(id=iid, timestamp=ts)


# ── combine ──

def test_combine_time_scores_from_rank():
    a, b = _i("a"), _i("b")
    ranked = combine({"time": [(a, 0.0), (b, 0.0)]}, {"time": 1.0}, limit=10)
    assert [c.interaction_id for c in ranked] == ["a", "b"]
    assert ranked[0].scores["time"] == pytest.approx(1.0)
    assert ranked[1].scores["time"] == pytest.approx(0.5)


def test_combine_weighted_sum_and_clamp():
    a, b = _i("a"), _i("b")
    ranked = combine(
        {"time": [(a, 0.0), (b, 0.0)], "topic": [(b, 1.5)]},
        {"time": 0.3, "topic": 0.7},
        limit=10,
    )
    assert [c.interaction_id for c in ranked] == ["b", "a"]
    assert ranked[0].scores["topic"] == 1.0
    assert ranked[0].combined_score == pytest.approx(0.5 * 0.3 + 0.7)
    assert ranked[1].combined_score == pytest.approx(0.3)


def test_combine_limit():
    records = [(_i(f"r{n}"), 0.0) for n in range(5)]
    assert len(combine({"time": records}, {"time": 1.0}, limit=2)) == 2


# ── Signals ──

def test_by_topic_fraction_of_keywords():
    hit = Interaction(id="hit", input="the discount rate moved")
    half = Interaction(id="half", input="a lower discount")
    miss = Interaction(id="miss", input="weather")
    results = MemoryRetriever.by_topic("discount rate", [hit, half, miss])
    assert [(r.id, s) for r, s in results] == [("hit", 1.0), ("half", 0.5)]


def test_by_topic_ignores_short_query_words():
    assert MemoryRetriever.by_topic("a an of", [Interaction(input="a an of")]) == []


@pytest.mark.asyncio
async def test_retrieve_empty_pool(memory):
    assert await MemoryRetriever(memory).retrieve("anything") == []


@pytest.mark.asyncio
async def test_retrieve_recency_only(memory):
    await _seed(memory, "first question", "second question", "third question")
    retriever = MemoryRetriever(memory)
    ranked = await retriever.retrieve(
        "question", weights={"time": 1.0, "topic": 0.0, "semantic": 0.0, "relation": 0.0},
    )
    assert [c.interaction_id for c in ranked] == ["int-2", "int-1", "int-0"]


@pytest.mark.asyncio
async def test_retrieve_without_embeddings_has_no_semantic_signal(memory):
    await _seed(memory, "discount rate question")
    ranked = await MemoryRetriever(memory).retrieve("discount rate")
    assert "semantic" not in ranked[0].scores
    assert ranked[0].scores["topic"] == 1.0


@pytest.mark.asyncio
async def test_relation_signal_uses_concept_graph(memory):
    await _seed(memory, "what about the wacc assumption", "weather today")
    retriever = MemoryRetriever(memory, graph=build_valuation_graph())
    ranked = await retriever.retrieve("tell me about the discount rate")

    by_id = {c.interaction_id: c for c in ranked}
    assert by_id["int-0"].scores["relation"] > 0
    assert "relation" not in by_id["int-1"].scores


@pytest.mark.asyncio
async def test_semantic_signal_uses_vector_cache(memory, tmp_path):
    await _seed(memory, "cached about rates", "fresh text on launches")
    vectors = VectorStore(tmp_path / "vectors")
    vectors.initialize()
    vectors.upsert("int-0", [1.0, 0.0, 0.0])
    embedder = KeywordEmbedder()

    retriever = MemoryRetriever(memory, embedder=embedder, vectors=vectors)
    ranked = await retriever.retrieve("rate outlook", weights={"semantic": 1.0, "time": 0.0, "topic": 0.0})

    assert ranked[0].interaction_id == "int-0"
    assert ranked[0].scores["semantic"] == pytest.approx(1.0)
    # Only the query and the uncached interaction were embedded
    assert embedder.calls == ["rate outlook", "fresh text on launches "]
    assert set(vectors.get_many(["int-1"])) == {"int-1"}
    vectors.close()


@pytest.mark.asyncio
async def test_semantic_signal_prefers_stored_embedding(memory):
    record = Interaction(id="int-0", input="anything", timestamp="2026-01-01T00:00:00+00:00")
    record.semantics.embedding = [1.0, 0.0, 0.0]
    await memory.fast_tier.add_interaction(record.to_dict())
    embedder = KeywordEmbedder()

    results = await MemoryRetriever(memory, embedder=embedder).by_semantic("rates", [record])
    assert results[0][1] == pytest.approx(1.0)
    assert embedder.calls == ["rates"]
