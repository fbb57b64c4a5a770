"""Usage analytics for classification, embeddings and memory operations.

Counters and timing samples are kept in memory for the running process.
Every tracked event is also pushed onto a bounded, expiring fast-tier list per
event kind (``agent:analytics:<kind>``), and the current summary is written
to ``agent:analytics:metrics`` so other instances and dashboards can read it.
A fast tier that is down only loses the persisted copy.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, deque
from typing import Any

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.models import ClassificationResult
from dialogue_memory.storage.fast_tier import FastTier

logger = logging.getLogger(__name__)

EVENT_KINDS = ("classification", "embedding", "memory", "pattern")


def _mean(samples) -> float | None:
    return sum(samples) / len(samples) if samples else None


def _rate(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


class ConversationAnalytics:
    """Tracks how the engine classifies, embeds and stores turns."""

    def __init__(self, fast_tier: FastTier | None = None) -> None:
        self.fast_tier = fast_tier
        self.reset_metrics()

    def reset_metrics(self) -> None:
        samples = ENGINE_CONFIG["analytics_max_samples"]
        self.interactions = 0
        self.categories: Counter[int] = Counter()
        self.rules: Counter[str] = Counter()
        self.similarity_scores: deque[float] = deque(maxlen=samples)
        self.embedding_usage = {"total": 0, "successful": 0, "failed": 0, "cache_hits": 0, "fallbacks": 0}
        self.timings: dict[str, deque[float]] = {
            "classification": deque(maxlen=samples),
            "embedding": deque(maxlen=samples),
            "memory": deque(maxlen=samples),
        }
        self.patterns_detected = 0
        self.pattern_types: Counter[str] = Counter()

    # ── Tracking ──

    async def track_classification(
        self,
        result: ClassificationResult,
        duration_ms: float,
        session_id: str | None = None,
        used_embeddings: bool = False,
        input_length: int = 0,
        history_length: int = 0,
    ) -> dict[str, Any]:
        self.interactions += 1
        self.categories[result.category] += 1
        if result.rule:
            self.rules[result.rule] += 1
        if result.similarity:
            self.similarity_scores.append(result.similarity)
        self.timings["classification"].append(duration_ms)

        event = {
            "session_id": session_id,
            "category": result.category,
            "rule": result.rule,
            "confidence": result.confidence,
            "similarity": result.similarity,
            "duration_ms": duration_ms,
            "used_embeddings": used_embeddings,
            "input_length": input_length,
            "history_length": history_length,
        }
        await self._record("classification", event)
        return event

    async def track_embedding_usage(
        self,
        success: bool,
        cached: bool = False,
        fallback: bool = False,
        duration_ms: float | None = None,
    ) -> None:
        """Record one embedding attempt.

        ``fallback`` marks a record that was stored without embeddings, either
        because the capability was unavailable or because the provider failed.
        """
        usage = self.embedding_usage
        usage["total"] += 1
        if success:
            usage["successful"] += 1
            if cached:
                usage["cache_hits"] += 1
        else:
            usage["failed"] += 1
            if fallback:
                usage["fallbacks"] += 1
        if duration_ms is not None:
            self.timings["embedding"].append(duration_ms)

        await self._record("embedding", {
            "success": success, "cached": cached, "fallback": fallback, "duration_ms": duration_ms,
        })

    async def track_memory_operation(self, operation: str, duration_ms: float, **details: Any) -> None:
        self.timings["memory"].append(duration_ms)
        await self._record("memory", {"operation": operation, "duration_ms": duration_ms, **details})

    async def track_pattern_detection(
        self, pattern_types: list[str], duration_ms: float = 0.0, session_id: str | None = None,
    ) -> None:
        self.patterns_detected += 1
        self.pattern_types.update(pattern_types)
        await self._record("pattern", {
            "session_id": session_id,
            "types": list(pattern_types),
            "count": len(pattern_types),
            "duration_ms": duration_ms,
        })

    # ── Reporting ──

    def get_summary(self) -> dict[str, Any]:
        usage = self.embedding_usage
        return {
            "total_interactions": self.interactions,
            "category_distribution": {str(k): v for k, v in sorted(self.categories.items())},
            "rule_distribution": dict(self.rules),
            "average_similarity": _mean(self.similarity_scores),
            "embedding": {
                "total": usage["total"],
                "success_rate": _rate(usage["successful"], usage["total"]),
                "cache_hit_rate": _rate(usage["cache_hits"], usage["successful"]),
                "fallback_rate": _rate(usage["fallbacks"], usage["total"]),
            },
            "performance": {
                "avg_classification_ms": _mean(self.timings["classification"]),
                "avg_embedding_ms": _mean(self.timings["embedding"]),
                "avg_memory_operation_ms": _mean(self.timings["memory"]),
            },
            "patterns": {
                "total_detected": self.patterns_detected,
                "types": dict(self.pattern_types),
            },
        }

    def get_metrics(self) -> dict[str, Any]:
        return {
            "interactions": self.interactions,
            "categories": dict(self.categories),
            "embedding_usage": dict(self.embedding_usage),
            "timings": {name: list(samples) for name, samples in self.timings.items()},
            "summary": self.get_summary(),
        }

    async def get_events(self, kind: str, limit: int = 100, session_id: str | None = None) -> list[dict[str, Any]]:
        """Persisted events of ``kind``, newest first."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown analytics event kind: {kind}")
        if self.fast_tier is None:
            return []
        events = await self.fast_tier.get_list(self.fast_tier.key("analytics", kind), limit)
        if session_id is not None:
            events = [e for e in events if e.get("session_id") == session_id]
        return events

    async def get_persisted_summary(self) -> dict[str, Any] | None:
        if self.fast_tier is None:
            return None
        return await self.fast_tier.get_json(self.fast_tier.key("analytics", "metrics"))

    async def _record(self, kind: str, data: dict[str, Any]) -> None:
        if self.fast_tier is None or not self.fast_tier.is_ready():
            return
        event = {"timestamp": time.time(), **data}
        pushed = await self.fast_tier.push(
            self.fast_tier.key("analytics", kind),
            event,
            max_length=ENGINE_CONFIG["analytics_max_events"],
            ttl=ENGINE_CONFIG["analytics_event_ttl"],
        )
        if not pushed:
            logger.debug("Analytics %s event not persisted", kind)
            return
        await self.fast_tier.set_json(self.fast_tier.key("analytics", "metrics"), self.get_summary())
