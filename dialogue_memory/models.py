"""Data models for the dialogue memory engine."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uuid() -> str:
    return str(uuid.uuid4())


@dataclass
class InteractionSemantics:
    topics: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    embedding: list[float] | None = None
    input_embedding: list[float] | None = None
    response_embedding: list[float] | None = None


@dataclass
class Interaction:
    id: str = field(default_factory=_uuid)
    input: str = ""
    response: str = ""
    timestamp: str = field(default_factory=_now)
    session_id: str | None = None
    user_id: str | None = None

    # Classification of the input that produced this interaction
    category: int | None = None
    confidence: float = 0.0
    similarity: float = 0.0
    transition_phrase: str | None = None
    pattern: str | None = None

    semantics: InteractionSemantics = field(default_factory=InteractionSemantics)
    summary: str | None = None
    patterns: list[str] = field(default_factory=list)

    # Set only when a Summary is surfaced through history loading
    is_summary: bool = False
    summary_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Interaction:
        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        semantics = values.pop("semantics", None) or {}
        sem_known = set(InteractionSemantics.__dataclass_fields__)
        return cls(
            **values,
            semantics=InteractionSemantics(
                **{k: v for k, v in semantics.items() if k in sem_known}
            ),
        )


@dataclass
class Summary:
    """Stand-in for a contiguous batch of aged interactions."""
    id: str = field(default_factory=_uuid)
    interaction_ids: list[str] = field(default_factory=list)
    text: str = ""
    timestamp: str = field(default_factory=_now)
    count: int = 0

    def to_interaction(self) -> Interaction:
        return Interaction(
            id=f"summary-{self.timestamp}",
            input="[Summarized]",
            response=self.text,
            timestamp=self.timestamp,
            is_summary=True,
            summary_count=self.count,
        )


@dataclass
class ClassificationResult:
    category: int
    confidence: float
    similarity: float = 0.0
    transition_phrase: str | None = None
    pattern: str | None = None
    rule: str = ""


@dataclass
class Turn:
    input: str = ""
    response: str = ""
    category: int | None = None
    timestamp: str = field(default_factory=_now)


@dataclass
class SessionState:
    is_speaking: bool = False
    current_sentence: str | None = None
    current_sentence_position: Any = None
    recent_turns: list[Turn] = field(default_factory=list)
    pause_requested: bool = False
    pause_timestamp: str | None = None
    current_topic: str | None = None
    current_entity: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        known = set(cls.__dataclass_fields__)
        values = {k: v for k, v in data.items() if k in known}
        values["recent_turns"] = [
            t if isinstance(t, Turn) else Turn(**t)
            for t in values.get("recent_turns") or []
        ]
        return cls(**values)


@dataclass
class ConceptNode:
    id: str
    label: str = ""
    type: str = "input"  # input | factor | algorithm | output
    domain: str = ""
    synonyms: list[str] = field(default_factory=list)
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConceptEdge:
    source_id: str
    target_id: str
    type: str = ""
    direction: str = "forward"  # display only
    strength: float = 0.0
    confidence: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphPath:
    source: ConceptNode
    target: ConceptNode
    path: list[str] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.path)


@dataclass
class GraphTopics:
    primary: list[ConceptNode] = field(default_factory=list)
    neighbors: list[ConceptNode] = field(default_factory=list)
    paths: list[GraphPath] = field(default_factory=list)


@dataclass
class RankedCandidate:
    interaction_id: str
    interaction: Interaction | None = None
    scores: dict[str, float] = field(default_factory=dict)
    combined_score: float = 0.0


@dataclass
class PatternAnalysis:
    recurring_themes: list[dict[str, Any]] = field(default_factory=list)
    contradictions: list[str] = field(default_factory=list)
    causal_chains: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ProcessResult:
    classification: ClassificationResult
    context: dict[str, Any] = field(default_factory=dict)
    request_id: str = ""
