"""Tests for the embedding capabilities and shared helpers."""

import threading

import numpy as np
import pytest

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.embeddings import api_embedder, text_embedder
from dialogue_memory.embeddings.api_embedder import ApiEmbedder
from dialogue_memory.embeddings.base import EmbeddingCache, UnavailableEmbedder, cosine_similarity
from dialogue_memory.embeddings.text_embedder import TextEmbedder
from dialogue_memory.errors import CapabilityUnavailableError, QuotaExceededError


def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_similarity_degenerate_inputs():
    assert cosine_similarity(None, [1.0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([1.0, 0.0], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_cache_key_ignores_case_and_padding():
    assert EmbeddingCache.key("  Hello World ") == EmbeddingCache.key("hello world")
    assert EmbeddingCache.key("hello world") != EmbeddingCache.key("hello worlds")


def test_cache_evicts_oldest():
    cache = EmbeddingCache(max_size=2)
    cache.put("one", [1.0])
    cache.put("two", [2.0])
    cache.put("three", [3.0])
    assert len(cache) == 2
    assert cache.get("one") is None
    assert cache.get("three") == [3.0]


@pytest.mark.asyncio
async def test_unavailable_embedder():
    embedder = UnavailableEmbedder()
    assert not embedder.is_available()
    with pytest.raises(CapabilityUnavailableError):
        await embedder.embed("text")


# ── ApiEmbedder ──

class FakeProvider:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def __call__(self, text, model=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [0.1, 0.2, 0.3]


def _embedder():
    return ApiEmbedder(api_key="test-key")


def test_unavailable_without_key():
    assert not ApiEmbedder(api_key="").is_available()
    assert not ApiEmbedder(api_key="k", enabled=False).is_available()


def test_key_read_from_configured_variable(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("VOYAGE_API_KEY", "voyage-key")
    embedder = ApiEmbedder(model="voyage/voyage-3", key_env="VOYAGE_API_KEY")
    assert embedder.api_key == "voyage-key"
    assert embedder.is_available()

    monkeypatch.delenv("VOYAGE_API_KEY")
    assert not ApiEmbedder(model="voyage/voyage-3", key_env="VOYAGE_API_KEY").is_available()


def test_key_check_can_be_disabled(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setitem(ENGINE_CONFIG, "api_embedding_key_env", None)
    assert ApiEmbedder(model="ollama/nomic-embed-text").is_available()


@pytest.mark.asyncio
async def test_embed_caches(monkeypatch):
    provider = FakeProvider()
    monkeypatch.setattr(api_embedder, "llm_embed", provider)
    embedder = _embedder()

    assert await embedder.embed("Discount rate") == [0.1, 0.2, 0.3]
    assert await embedder.embed(" discount rate ") == [0.1, 0.2, 0.3]
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_empty_text_rejected(monkeypatch):
    monkeypatch.setattr(api_embedder, "llm_embed", FakeProvider())
    with pytest.raises(ValueError):
        await _embedder().embed("   ")


@pytest.mark.asyncio
async def test_circuit_opens_after_threshold(monkeypatch):
    provider = FakeProvider(RuntimeError("timeout"))
    monkeypatch.setattr(api_embedder, "llm_embed", provider)
    embedder = _embedder()

    for _ in range(3):
        with pytest.raises(RuntimeError):
            await embedder.embed("text")
    assert embedder.circuit_open
    assert not embedder.is_available()
    with pytest.raises(CapabilityUnavailableError):
        await embedder.embed("text")
    assert provider.calls == 3


@pytest.mark.asyncio
async def test_circuit_resets_after_timeout(monkeypatch):
    provider = FakeProvider(QuotaExceededError("quota exceeded"))
    monkeypatch.setattr(api_embedder, "llm_embed", provider)
    embedder = _embedder()
    for _ in range(3):
        with pytest.raises(QuotaExceededError):
            await embedder.embed("text")
    assert not embedder.is_available()

    embedder.last_failure_time -= embedder.breaker_timeout + 1
    assert embedder.is_available()
    assert embedder.failure_count == 0


@pytest.mark.asyncio
async def test_success_resets_failure_count(monkeypatch):
    provider = FakeProvider(RuntimeError("timeout"))
    monkeypatch.setattr(api_embedder, "llm_embed", provider)
    embedder = _embedder()
    with pytest.raises(RuntimeError):
        await embedder.embed("text")
    assert embedder.failure_count == 1

    provider.error = None
    await embedder.embed("other text")
    assert embedder.failure_count == 0


# ── TextEmbedder ──

class FakeSentenceModel:
    loads = 0

    def __init__(self, name):
        FakeSentenceModel.loads += 1
        self.name = name

    def encode(self, texts, convert_to_numpy=True):
        if isinstance(texts, str):
            return np.array([float(len(texts)), 1.0])
        return np.array([[float(len(t)), 1.0] for t in texts])

    def get_sentence_embedding_dimension(self):
        return 2


@pytest.mark.asyncio
async def test_text_embedder_loads_lazily(monkeypatch):
    FakeSentenceModel.loads = 0
    monkeypatch.setattr(text_embedder, "SentenceTransformer", FakeSentenceModel)
    embedder = TextEmbedder("tiny-model")
    assert FakeSentenceModel.loads == 0

    assert embedder.is_available()
    assert embedder.dimension == 2
    assert await embedder.embed("abc") == [3.0, 1.0]
    assert embedder.embed_batch(["a", "abcd"]) == [[1.0, 1.0], [4.0, 1.0]]
    assert FakeSentenceModel.loads == 1


@pytest.mark.asyncio
async def test_text_embedder_encodes_off_the_event_loop(monkeypatch):
    threads = []

    class RecordingModel(FakeSentenceModel):
        def encode(self, texts, convert_to_numpy=True):
            threads.append(threading.get_ident())
            return super().encode(texts, convert_to_numpy)

    monkeypatch.setattr(text_embedder, "SentenceTransformer", RecordingModel)
    embedder = TextEmbedder("tiny-model")
    assert await embedder.embed("abcd") == [4.0, 1.0]
    assert threads and threads[0] != threading.get_ident()
    # Cached vectors skip the model entirely
    assert await embedder.embed("abcd") == [4.0, 1.0]
    assert len(threads) == 1


def test_text_embedder_unavailable_when_model_fails(monkeypatch):
    def broken(name):
        raise OSError("model not found")

    monkeypatch.setattr(text_embedder, "SentenceTransformer", broken)
    embedder = TextEmbedder("missing-model")
    assert not embedder.is_available()
    assert not embedder.is_available()
