"""Sentence-transformers wrapper for local text embeddings.

Provides the embedding capability without a remote provider. Runs locally on
CPU or GPU; the model is loaded on first use.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from sentence_transformers import SentenceTransformer

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.embeddings.base import EmbeddingCache, cosine_similarity

logger = logging.getLogger(__name__)


class TextEmbedder:
    """Lazy-loading wrapper around sentence-transformers."""

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or ENGINE_CONFIG["text_embedding_model"]
        self._model: SentenceTransformer | None = None
        self._load_failed = False
        self.cache = EmbeddingCache(ENGINE_CONFIG["embedding_cache_size"])

    @property
    def model(self) -> SentenceTransformer:
        if self._model is None:
            logger.info("Loading text embedding model: %s", self._model_name)
            self._model = SentenceTransformer(self._model_name)
        return self._model

    @property
    def dimension(self) -> int:
        return self.model.get_sentence_embedding_dimension()

    def is_available(self) -> bool:
        if self._load_failed:
            return False
        try:
            self.model
        except Exception:
            logger.warning("Text embedding model %s failed to load", self._model_name, exc_info=True)
            self._load_failed = True
            return False
        return True

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string. Returns a list of floats."""
        cached = self.cache.get(text)
        if cached is not None:
            return cached
        # encode is CPU-bound
        encoded = await asyncio.to_thread(self.model.encode, text, convert_to_numpy=True)
        vector = encoded.tolist()
        self.cache.put(text, vector)
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts. Returns a list of float lists."""
        vectors = self.model.encode(texts, convert_to_numpy=True)
        return [v.tolist() for v in vectors]

    def similarity(self, v1: Sequence[float] | None, v2: Sequence[float] | None) -> float:
        return cosine_similarity(v1, v2)
