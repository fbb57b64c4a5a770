"""Remote embedding capability backed by litellm.

Wraps the provider call with a text-keyed cache and a circuit breaker: after
``circuit_breaker_threshold`` consecutive failures the capability reports
itself unavailable for ``circuit_breaker_timeout`` seconds, so callers drop to
their token-overlap fallbacks without hammering the provider.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Sequence

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.embeddings.base import EmbeddingCache, cosine_similarity
from dialogue_memory.errors import CapabilityUnavailableError, is_quota_error
from dialogue_memory.llm.client import llm_embed

logger = logging.getLogger(__name__)


class ApiEmbedder:
    """Embedding capability calling a hosted embedding model through litellm."""

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        key_env: str | None = None,
        enabled: bool = True,
        cache_size: int | None = None,
    ) -> None:
        cfg = ENGINE_CONFIG
        self.model = model or cfg["api_embedding_model"]
        # Variable the provider reads its key from; empty means litellm resolves credentials itself
        self.key_env = cfg["api_embedding_key_env"] if key_env is None else key_env
        if api_key is None and self.key_env:
            api_key = os.environ.get(self.key_env)
        self.api_key = api_key
        self.enabled = enabled
        self.cache = EmbeddingCache(cache_size or cfg["embedding_cache_size"])

        self.failure_count = 0
        self.last_failure_time: float | None = None
        self.circuit_open = False
        self.breaker_threshold = cfg["circuit_breaker_threshold"]
        self.breaker_timeout = cfg["circuit_breaker_timeout"]

    def is_available(self) -> bool:
        if self.circuit_open:
            elapsed = time.monotonic() - (self.last_failure_time or 0.0)
            if elapsed <= self.breaker_timeout:
                return False
            logger.info("Embedding circuit breaker reset, retrying provider")
            self.circuit_open = False
            self.failure_count = 0
        return bool(self.enabled and (self.api_key or not self.key_env))

    async def embed(self, text: str) -> list[float]:
        if not self.is_available():
            raise CapabilityUnavailableError("Embedding service not available")
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        cached = self.cache.get(text)
        if cached is not None:
            return cached

        try:
            vector = await llm_embed(text[:ENGINE_CONFIG["embedding_max_chars"]], model=self.model)
        except Exception as exc:
            self._record_failure(exc)
            raise

        self._record_success()
        self.cache.put(text, vector)
        return vector

    def similarity(self, v1: Sequence[float] | None, v2: Sequence[float] | None) -> float:
        return cosine_similarity(v1, v2)

    def _record_failure(self, exc: BaseException) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.failure_count >= self.breaker_threshold and not self.circuit_open:
            self.circuit_open = True
            if is_quota_error(exc):
                logger.info("Embedding quota exhausted, circuit open; using token-overlap fallback")
            else:
                logger.warning(
                    "Embedding circuit breaker opened after %d failures, retry in %ds",
                    self.failure_count, self.breaker_timeout,
                )

    def _record_success(self) -> None:
        self.failure_count = 0
        self.circuit_open = False
