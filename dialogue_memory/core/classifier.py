"""Relationship classification of a new utterance against the running dialogue.

Categories:
    1  direct continuation of the sentence being spoken
    2  strong topical relatedness to recent dialogue
    3  moderate topical relatedness
    4  reinforcement of a pattern in recent history
    5  clarification or refinement request
    6  weak or unrelated shift (fallback)
    7  explicit resumption of an earlier thread
    8  contradiction or challenge
    9  first interaction, nothing to relate to

Rules are evaluated in ``RULES`` order and the first match wins. The order is
part of the contract: resumption is checked before contradiction, which is
checked before any similarity band.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.core.similarity import SimilarityEngine, extract_topics
from dialogue_memory.core.transitions import TransitionSelector
from dialogue_memory.models import ClassificationResult

logger = logging.getLogger(__name__)

RESUMPTION_KEYWORDS = (
    "back to", "return to", "resume", "continue", "earlier", "before",
    "previous", "we discussed", "we talked about", "going back",
)

CLARIFICATION_KEYWORDS = (
    "what", "how", "why", "explain", "clarify", "elaborate",
    "more about", "tell me more", "can you", "could you",
    "focus on", "zoom in", "drill down", "specifically",
)


@dataclass
class ClassificationContext:
    current_sentence: str | None = None
    recent_turns: Sequence[Any] = field(default_factory=list)
    full_history: Sequence[Any] = field(default_factory=list)
    current_entity: str | None = None
    new_entity: str | None = None
    is_first_interaction: bool = False


@dataclass
class RuleMatch:
    confidence: float
    similarity: float = 0.0
    pattern: str | None = None


def has_resumption_cue(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in RESUMPTION_KEYWORDS)


def has_clarification_cue(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in CLARIFICATION_KEYWORDS)


def is_question(text: str) -> bool:
    return "?" in text or has_clarification_cue(text)


def turn_text(turn: Any) -> str:
    """Input of a turn or history record, falling back to its response."""
    if isinstance(turn, dict):
        return turn.get("input") or turn.get("response") or ""
    return getattr(turn, "input", None) or getattr(turn, "response", None) or ""


def topic_progression(history: Sequence[Any]) -> float:
    """Mean topic Jaccard overlap between consecutive turns."""
    topics = [set(extract_topics(turn_text(t))) for t in history]
    if len(topics) < 2:
        return 0.0
    total = 0.0
    for prev, cur in zip(topics, topics[1:]):
        union = prev | cur
        total += len(prev & cur) / len(union) if union else 0.0
    return total / (len(topics) - 1)


def extract_patterns(history: Sequence[Any]) -> list[RuleMatch]:
    """Conversation patterns present in ``history``."""
    patterns = []
    questions = sum(1 for t in history if is_question(turn_text(t)))
    statements = len(history) - questions
    if questions > statements * 0.5:
        patterns.append(RuleMatch(confidence=0.7, pattern="question-answer"))

    progression = topic_progression(history)
    if progression > 0.5:
        patterns.append(RuleMatch(confidence=progression, pattern="topic-progression"))
    return patterns


class _Evaluation:
    """Per-call scratch state; similarity scores are computed at most once."""

    def __init__(self, text: str, ctx: ClassificationContext, engine: SimilarityEngine) -> None:
        self.text = text
        self.ctx = ctx
        self.engine = engine
        self._current: float | None = None
        self._recent: float | None = None

    async def current_sim(self) -> float:
        if self._current is None:
            self._current = await self.engine.similarity(self.ctx.current_sentence, self.text)
        return self._current

    async def recent_sim(self) -> float:
        if self._recent is None:
            scores = [await self.engine.similarity(turn_text(t), self.text) for t in self.ctx.recent_turns]
            self._recent = max(scores, default=0.0)
        return self._recent

    async def max_sim(self) -> float:
        return max(await self.current_sim(), await self.recent_sim())


class Rule:
    name = ""
    category = 0

    async def match(self, ev: _Evaluation) -> RuleMatch | None:
        raise NotImplementedError


class FirstInteraction(Rule):
    name = "first_interaction"
    category = 9

    async def match(self, ev):
        ctx = ev.ctx
        if ctx.is_first_interaction or (not ctx.current_sentence and not ctx.recent_turns):
            return RuleMatch(confidence=1.0, similarity=0.0)
        return None


class Resumption(Rule):
    name = "resumption"
    category = 7

    async def match(self, ev):
        if not has_resumption_cue(ev.text):
            return None
        cfg = ENGINE_CONFIG
        window = list(ev.ctx.full_history)[-cfg["resumption_history_window"]:]
        lowered = ev.text.lower()
        for turn in [*ev.ctx.recent_turns, *window]:
            text = turn_text(turn).lower()
            if len(text) < cfg["min_turn_length"]:
                continue
            sim = await ev.engine.similarity(text, lowered)
            if sim > cfg["resumption_threshold"]:
                return RuleMatch(confidence=0.9, similarity=sim)
        return None


class Contradiction(Rule):
    name = "contradiction"
    category = 8

    async def match(self, ev):
        current = ev.ctx.current_sentence
        if not current or not await ev.engine.detects_contradiction(current, ev.text):
            return None
        return RuleMatch(confidence=0.85, similarity=await ev.current_sim())


class Continuation(Rule):
    name = "continuation"
    category = 1

    async def match(self, ev):
        sim = await ev.current_sim()
        if sim >= ENGINE_CONFIG["continuation_threshold"]:
            return RuleMatch(confidence=0.9, similarity=sim)
        return None


class StrongRelatedness(Rule):
    name = "strong_relatedness"
    category = 2

    async def match(self, ev):
        sim = await ev.max_sim()
        if sim >= ENGINE_CONFIG["strong_relatedness_threshold"]:
            return RuleMatch(confidence=0.85, similarity=sim)
        return None


class ModerateRelatedness(Rule):
    name = "moderate_relatedness"
    category = 3

    async def match(self, ev):
        sim = await ev.max_sim()
        if ENGINE_CONFIG["moderate_relatedness_threshold"] <= sim < ENGINE_CONFIG["strong_relatedness_threshold"]:
            return RuleMatch(confidence=0.75, similarity=sim)
        return None


class Clarification(Rule):
    name = "clarification"
    category = 5

    async def match(self, ev):
        sim = await ev.max_sim()
        if sim >= ENGINE_CONFIG["clarification_threshold"] and has_clarification_cue(ev.text):
            return RuleMatch(confidence=0.8, similarity=sim)
        return None


class PatternReinforcement(Rule):
    name = "pattern_reinforcement"
    category = 4

    async def match(self, ev):
        history = list(ev.ctx.full_history)
        if len(history) < 3:
            return None
        for pattern in extract_patterns(history[-ENGINE_CONFIG["pattern_history_window"]:]):
            if pattern.pattern == "question-answer" and not is_question(ev.text):
                continue
            return RuleMatch(
                confidence=pattern.confidence,
                similarity=await ev.max_sim(),
                pattern=pattern.pattern,
            )
        return None


class TopicShift(Rule):
    name = "topic_shift"
    category = 6

    async def match(self, ev):
        return RuleMatch(confidence=0.7, similarity=await ev.max_sim())


RULES: tuple[Rule, ...] = (
    FirstInteraction(),
    Resumption(),
    Contradiction(),
    Continuation(),
    StrongRelatedness(),
    ModerateRelatedness(),
    Clarification(),
    PatternReinforcement(),
    TopicShift(),
)

RULE_ORDER = tuple(rule.name for rule in RULES)


class RelationshipClassifier:
    """Assigns one of the nine categories and a transition phrase."""

    def __init__(
        self,
        similarity: SimilarityEngine | None = None,
        transitions: TransitionSelector | None = None,
    ) -> None:
        self.similarity = similarity or SimilarityEngine()
        self.transitions = transitions or TransitionSelector()
        self.rules = RULES

    async def classify(self, text: str, ctx: ClassificationContext | None = None) -> ClassificationResult:
        ctx = ctx or ClassificationContext()
        ev = _Evaluation(text or "", ctx, self.similarity)
        for rule in self.rules:
            result = await rule.match(ev)
            if result is None:
                continue
            logger.debug("Classified as %d by %s (similarity %.2f)", rule.category, rule.name, result.similarity)
            return ClassificationResult(
                category=rule.category,
                confidence=result.confidence,
                similarity=result.similarity,
                transition_phrase=self.transitions.select(
                    rule.category, ctx.current_entity, ctx.new_entity,
                ),
                pattern=result.pattern,
                rule=rule.name,
            )
        raise AssertionError("topic_shift rule always matches")
