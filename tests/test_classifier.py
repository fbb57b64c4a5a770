"""Tests for relationship classification."""

import random

import pytest

from dialogue_memory.core.classifier import (
    RULE_ORDER,
    ClassificationContext,
    RelationshipClassifier,
    extract_patterns,
    has_clarification_cue,
    has_resumption_cue,
    topic_progression,
)
from dialogue_memory.core.similarity import SimilarityEngine
from dialogue_memory.core.transitions import TRANSITIONS, TransitionSelector
from dialogue_memory.models import Interaction, Turn


class ConstantEmbedder:
    """Every pair of texts is identical as far as embeddings go."""

    def is_available(self):
        return True

    async def embed(self, text):
        return [1.0, 0.0, 0.0]

    def similarity(self, v1, v2):
        return 1.0


def _classifier(embedder=None):
    return RelationshipClassifier(
        SimilarityEngine(embedder),
        TransitionSelector(rng=random.Random(0)),
    )


def test_rule_order():
    assert RULE_ORDER == (
        "first_interaction",
        "resumption",
        "contradiction",
        "continuation",
        "strong_relatedness",
        "moderate_relatedness",
        "clarification",
        "pattern_reinforcement",
        "topic_shift",
    )


def test_keyword_cues():
    assert has_resumption_cue("Can we go BACK TO the revenue model?")
    assert not has_resumption_cue("Tell me about revenue")
    assert has_clarification_cue("Could you zoom in on that")
    assert not has_clarification_cue("List the launch schedule")


@pytest.mark.asyncio
async def test_first_interaction_flag():
    result = await _classifier().classify(
        "What about the discount rate instead?",
        ClassificationContext(is_first_interaction=True),
    )
    assert result.category == 9
    assert result.confidence == 1.0
    assert result.similarity == 0
    assert result.transition_phrase in TRANSITIONS[9]


@pytest.mark.asyncio
async def test_no_context_is_first_interaction_regardless_of_input():
    classifier = _classifier(ConstantEmbedder())
    for text in ["back to earlier", "No, that is wrong", "explain it", ""]:
        result = await classifier.classify(text, ClassificationContext())
        assert result.category == 9
        assert result.confidence == 1.0


@pytest.mark.asyncio
async def test_first_interaction_flag_wins_over_context():
    ctx = ClassificationContext(
        current_sentence="Launch volume drives the cost curve",
        recent_turns=[Turn(input="launch volume drives the cost curve")],
        is_first_interaction=True,
    )
    result = await _classifier().classify("launch volume drives the cost curve", ctx)
    assert result.category == 9


@pytest.mark.asyncio
async def test_direct_continuation():
    ctx = ClassificationContext(current_sentence="Starlink revenue is driven by penetration rate.")
    result = await _classifier(ConstantEmbedder()).classify(
        "Tell me more about penetration rate specifically", ctx,
    )
    assert result.category == 1
    assert result.confidence == 0.9
    assert result.rule == "continuation"


@pytest.mark.asyncio
async def test_direct_continuation_with_token_overlap():
    ctx = ClassificationContext(current_sentence="Launch volume drives the cost curve")
    result = await _classifier().classify("launch volume drives the cost curve", ctx)
    assert result.category == 1
    assert result.similarity == 1.0


@pytest.mark.asyncio
async def test_resumption_runs_before_continuation():
    ctx = ClassificationContext(
        current_sentence="Starlink revenue is driven by penetration rate.",
        recent_turns=[Turn(input="How sensitive is the discount rate?")],
    )
    result = await _classifier(ConstantEmbedder()).classify(
        "Going back to the discount rate from before", ctx,
    )
    assert result.category == 7
    assert result.confidence == 0.9
    assert result.rule == "resumption"


@pytest.mark.asyncio
async def test_resumption_searches_history():
    ctx = ClassificationContext(
        current_sentence="Tech sector growth feeds penetration",
        recent_turns=[Turn(input="tell me about tech growth")],
        full_history=[Interaction(input="the discount rate and valuation link")],
    )
    result = await _classifier().classify("back to the discount rate and valuation", ctx)
    assert result.category == 7


@pytest.mark.asyncio
async def test_resumption_skips_short_turns():
    ctx = ClassificationContext(current_sentence="anything", recent_turns=[Turn(input="back")])
    result = await _classifier(ConstantEmbedder()).classify("go back to it", ctx)
    # The only candidate turn is too short, so the continuation rule decides
    assert result.category == 1


@pytest.mark.asyncio
async def test_contradiction():
    ctx = ClassificationContext(current_sentence="Launch volume drives the cost curve")
    result = await _classifier().classify("No, launch volume does not drive the cost curve", ctx)
    assert result.category == 8
    assert result.confidence == 0.85
    assert result.similarity == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_contradiction_runs_before_continuation():
    ctx = ClassificationContext(current_sentence="launch volume drives the cost curve")
    result = await _classifier().classify("not launch volume drives the cost curve", ctx)
    assert result.category == 8


@pytest.mark.asyncio
async def test_strong_relatedness_to_recent_turn():
    ctx = ClassificationContext(
        current_sentence="Discount rate sets the valuation",
        recent_turns=[Turn(input="tech sector growth lifts penetration")],
    )
    result = await _classifier().classify("tech sector growth lifts penetration", ctx)
    assert result.category == 2
    assert result.confidence == 0.85
    assert result.similarity == 1.0


@pytest.mark.asyncio
async def test_moderate_relatedness():
    ctx = ClassificationContext(current_sentence="launch volume drives cost")
    result = await _classifier().classify("launch volume drives revenue", ctx)
    assert result.category == 3
    assert result.confidence == 0.75
    assert result.similarity == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_entity_aware_phrase_for_relatedness():
    ctx = ClassificationContext(
        current_sentence="launch volume drives cost",
        current_entity="SpaceX",
        new_entity="Tesla",
    )
    result = await _classifier().classify("launch volume drives revenue", ctx)
    assert result.transition_phrase.endswith("Tesla relates to SpaceX…")


@pytest.mark.asyncio
async def test_clarification():
    ctx = ClassificationContext(current_sentence="launch volume drives cost")
    result = await _classifier().classify("explain launch volume please", ctx)
    assert result.category == 5
    assert result.confidence == 0.8
    assert result.similarity == pytest.approx(1 / 3)


@pytest.mark.asyncio
async def test_question_answer_pattern():
    history = [
        Interaction(input="What drives revenue?"),
        Interaction(input="How does the discount rate work?"),
        Interaction(input="Why is launch volume important?"),
    ]
    ctx = ClassificationContext(
        current_sentence="Launch volume drives the cost curve",
        recent_turns=[Turn(input="Why is launch volume important?")],
        full_history=history,
    )
    result = await _classifier().classify("Is equity sensitive?", ctx)
    assert result.category == 4
    assert result.pattern == "question-answer"
    assert result.confidence == 0.7


@pytest.mark.asyncio
async def test_topic_progression_pattern():
    history = [Interaction(input="launch volume growth") for _ in range(3)]
    ctx = ClassificationContext(recent_turns=[Turn(input="zzz unrelated words")], full_history=history)
    result = await _classifier().classify("List the satellite schedule", ctx)
    assert result.category == 4
    assert result.pattern == "topic-progression"
    assert result.confidence == 1.0


@pytest.mark.asyncio
async def test_pattern_needs_three_history_turns():
    history = [Interaction(input="What drives revenue?"), Interaction(input="How so?")]
    ctx = ClassificationContext(recent_turns=[Turn(input="zzz unrelated words")], full_history=history)
    result = await _classifier().classify("Is equity sensitive?", ctx)
    assert result.category == 6


@pytest.mark.asyncio
async def test_topic_shift_fallback():
    ctx = ClassificationContext(
        current_sentence="Launch volume drives the cost curve",
        current_entity="SpaceX",
        new_entity="Tesla",
    )
    result = await _classifier().classify("List equity holders", ctx)
    assert result.category == 6
    assert result.confidence == 0.7
    assert result.transition_phrase == "Switching to Tesla…"


def test_extract_patterns():
    questions = [Interaction(input="What is it?") for _ in range(4)]
    assert [p.pattern for p in extract_patterns(questions)] == ["question-answer", "topic-progression"]

    statements = [Interaction(input=f"statement number {i}") for i in range(4)]
    assert extract_patterns(statements) == []


def test_topic_progression_score():
    assert topic_progression([]) == 0.0
    assert topic_progression([Interaction(input="launch volume")]) == 0.0
    turns = [Interaction(input="launch volume"), Interaction(input="launch cost")]
    assert topic_progression(turns) == pytest.approx(1 / 3)
