"""Embedding capability interface and shared helpers.

An embedding capability is injected once at construction. Callers never check
for its presence: an ``UnavailableEmbedder`` stands in when embeddings are off,
so every call site only has to ask ``is_available()``.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Protocol, Sequence

import numpy as np

from dialogue_memory.errors import CapabilityUnavailableError


class EmbeddingCapability(Protocol):
    def is_available(self) -> bool: ...

    async def embed(self, text: str) -> list[float]: ...

    def similarity(self, v1: Sequence[float] | None, v2: Sequence[float] | None) -> float: ...


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity between two vectors; 0.0 on missing or mismatched input."""
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    norm = np.linalg.norm(a_arr) * np.linalg.norm(b_arr)
    return float(np.dot(a_arr, b_arr) / norm) if norm > 0 else 0.0


class EmbeddingCache:
    """Bounded FIFO cache keyed by normalised text."""

    def __init__(self, max_size: int = 1000) -> None:
        self.max_size = max_size
        self._entries: OrderedDict[str, list[float]] = OrderedDict()

    @staticmethod
    def key(text: str) -> str:
        normalized = " ".join(text.strip()[:100].lower().split())
        return f"{len(text.strip())}-{normalized}"

    def get(self, text: str) -> list[float] | None:
        return self._entries.get(self.key(text))

    def put(self, text: str, vector: list[float]) -> None:
        key = self.key(text)
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = vector

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class UnavailableEmbedder:
    """Embedding capability that is never available."""

    def is_available(self) -> bool:
        return False

    async def embed(self, text: str) -> list[float]:
        raise CapabilityUnavailableError("Embedding capability not configured")

    def similarity(self, v1: Sequence[float] | None, v2: Sequence[float] | None) -> float:
        return cosine_similarity(v1, v2)
