"""Tests for transition phrase selection."""

import random

from dialogue_memory.core.transitions import TRANSITIONS, TransitionSelector


def test_every_category_has_four_phrases():
    assert sorted(TRANSITIONS) == list(range(1, 10))
    assert all(len(phrases) >= 4 for phrases in TRANSITIONS.values())


def test_no_repeat_until_pool_exhausted():
    selector = TransitionSelector(rng=random.Random(7))
    picks = [selector.select(3) for _ in range(4)]
    assert sorted(picks) == sorted(TRANSITIONS[3])


def test_exhausted_pool_falls_back_to_all_phrases():
    selector = TransitionSelector(rng=random.Random(1))
    for _ in range(4):
        selector.select(1)
    assert selector.select(1) in TRANSITIONS[1]


def test_recent_memory_is_bounded():
    selector = TransitionSelector(rng=random.Random(3), memory=10)
    for category in range(1, 10):
        for _ in range(2):
            selector.select(category)
    assert len(selector.recent) == 10


def test_unknown_category_uses_topic_shift_phrases():
    selector = TransitionSelector(rng=random.Random(0))
    assert selector.select(42) in TRANSITIONS[6]
    assert selector.select(None) in TRANSITIONS[6]


def test_entity_aware_shift():
    selector = TransitionSelector(rng=random.Random(0))
    assert selector.select(6, "SpaceX", "Tesla") == "Switching to Tesla…"


def test_entity_aware_relatedness():
    selector = TransitionSelector(rng=random.Random(0))
    phrase = selector.select(2, "SpaceX", "Tesla")
    assert phrase.endswith("Tesla relates to SpaceX…")
    assert any(phrase.startswith(p) for p in TRANSITIONS[2])


def test_entities_ignored_when_one_missing_or_other_category():
    selector = TransitionSelector(rng=random.Random(0))
    assert selector.select(3, None, "Tesla") in TRANSITIONS[3]
    assert selector.select(1, "SpaceX", "Tesla") in TRANSITIONS[1]


def test_clear_recent():
    selector = TransitionSelector()
    selector.select(5)
    selector.clear_recent()
    assert len(selector.recent) == 0
