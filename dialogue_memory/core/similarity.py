"""Text-pair similarity, topic extraction and contradiction detection.

Similarity uses the injected embedding capability when it reports itself
available and falls back to token-overlap (Jaccard) similarity otherwise, or
when the capability fails. Empty input on either side always scores 0.
"""

from __future__ import annotations

import logging
import re
from collections import Counter

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.embeddings.base import EmbeddingCapability, UnavailableEmbedder
from dialogue_memory.errors import is_quota_error

logger = logging.getLogger(__name__)

_PUNCT = re.compile(r"[^\w\s]")

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "should", "could", "may", "might", "must", "can", "this",
    "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
})

CONTRADICTION_KEYWORDS = frozenset({
    "but", "however", "although", "despite", "nevertheless", "yet",
    "contrary", "opposite", "different", "disagree", "wrong", "incorrect",
    "no", "not", "never", "none", "nothing",
})


def tokenize(text: str | None) -> list[str]:
    """Lowercase, punctuation-stripped word tokens."""
    if not text:
        return []
    return _PUNCT.sub(" ", text.lower()).split()


def jaccard(a: str | None, b: str | None) -> float:
    set_a = set(tokenize(a))
    set_b = set(tokenize(b))
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def extract_topics(text: str | None, limit: int = 5) -> list[str]:
    """The ``limit`` most frequent non-stop-word tokens, first occurrence breaking ties."""
    counts = Counter(w for w in tokenize(text) if w not in STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def topic_overlap(a: str | None, b: str | None) -> float:
    topics_a = set(extract_topics(a))
    topics_b = set(extract_topics(b))
    if not topics_a or not topics_b:
        return 0.0
    return len(topics_a & topics_b) / len(topics_a | topics_b)


class SimilarityEngine:
    """Similarity scoring over an optional embedding capability."""

    def __init__(self, embedder: EmbeddingCapability | None = None) -> None:
        self.embedder = embedder or UnavailableEmbedder()

    def embeddings_available(self) -> bool:
        return self.embedder.is_available()

    async def similarity(self, a: str | None, b: str | None) -> float:
        """Similarity in [0, 1]; never raises."""
        if not a or not b:
            return 0.0
        if self.embedder.is_available():
            try:
                v1 = await self.embedder.embed(a)
                v2 = await self.embedder.embed(b)
                return max(0.0, min(1.0, self.embedder.similarity(v1, v2)))
            except Exception as exc:
                if is_quota_error(exc):
                    logger.debug("Embedding quota exhausted, using token overlap")
                else:
                    logger.warning("Embedding similarity failed, falling back to token overlap: %s", exc)
        return jaccard(a, b)

    async def is_same_topic(self, a: str | None, b: str | None, threshold: float | None = None) -> bool:
        if threshold is None:
            threshold = ENGINE_CONFIG["contradiction_topic_threshold"]
        return await self.similarity(a, b) >= threshold

    async def detects_contradiction(self, a: str | None, b: str | None) -> bool:
        """True when ``b`` stays on the topic of ``a`` but contains a contrast keyword."""
        if not a or not b:
            return False
        if not CONTRADICTION_KEYWORDS.intersection(tokenize(b)):
            return False
        return await self.is_same_topic(a, b)

    @staticmethod
    def extract_topics(text: str | None) -> list[str]:
        return extract_topics(text)

    @staticmethod
    def jaccard(a: str | None, b: str | None) -> float:
        return jaccard(a, b)
