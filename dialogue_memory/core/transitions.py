"""Spoken segue phrases for each relationship category."""

from __future__ import annotations

import random
from collections import deque

from dialogue_memory.config import ENGINE_CONFIG

TRANSITIONS: dict[int, tuple[str, ...]] = {
    1: (  # direct continuation
        "Exactly – let's go deeper on that…",
        "Perfect follow-up…",
        "Building on that…",
        "Let me expand on that…",
    ),
    2: (  # strong topical relatedness
        "That connects perfectly…",
        "This fits right in…",
        "Related to what we were discussing…",
        "That ties in nicely…",
    ),
    3: (  # moderate topical relatedness
        "Building on our earlier point…",
        "Related angle here…",
        "This connects to what we covered…",
        "Similar theme…",
    ),
    4: (  # pattern reinforcement
        "Another instance of this pattern…",
        "See the chain growing…",
        "This follows the same pattern…",
        "The pattern continues…",
    ),
    5: (  # clarification
        "Good – let's focus precisely on…",
        "Clarifying that part…",
        "Zooming in on…",
        "Let's drill down into…",
    ),
    6: (  # weak or unrelated shift
        "Ok, switching topics…",
        "Moving to your new selection…",
        "Let's shift focus to…",
        "Switching to…",
    ),
    7: (  # explicit resumption
        "Going back to where we left off…",
        "Picking up the earlier thread…",
        "Resuming our discussion about…",
        "Returning to…",
    ),
    8: (  # contradiction
        "Interesting challenge – let's examine that…",
        "Good point – let's reconsider…",
        "That's a valid concern…",
        "Let's address that directly…",
    ),
    9: (  # first interaction
        "Starting fresh with this…",
        "Let's begin with…",
        "Looking at…",
        "Examining…",
    ),
}

DEFAULT_CATEGORY = 6
ENTITY_AWARE_CATEGORIES = frozenset({2, 3, 6})


class TransitionSelector:
    """Picks a phrase per category, avoiding the most recently used ones."""

    def __init__(self, rng: random.Random | None = None, memory: int | None = None) -> None:
        self.rng = rng or random.Random()
        self.recent: deque[str] = deque(maxlen=memory or ENGINE_CONFIG["transition_memory"])

    def select(
        self,
        category: int | None,
        previous_entity: str | None = None,
        new_entity: str | None = None,
    ) -> str:
        phrases = TRANSITIONS.get(category or DEFAULT_CATEGORY, TRANSITIONS[DEFAULT_CATEGORY])
        candidates = [p for p in phrases if p not in self.recent] or list(phrases)
        phrase = self.rng.choice(candidates)
        self.recent.append(phrase)

        if previous_entity and new_entity and category in ENTITY_AWARE_CATEGORIES:
            if category == 6:
                return f"Switching to {new_entity}…"
            return f"{phrase} {new_entity} relates to {previous_entity}…"
        return phrase

    def clear_recent(self) -> None:
        self.recent.clear()
