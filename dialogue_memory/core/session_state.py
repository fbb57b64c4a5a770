"""Shared per-session state.

State lives in a fast-tier hash so every engine instance serving the session
sees the same values. Updates are read-modify-publish with last-write-wins:
each update is merged locally, written to the hash, then broadcast on the
session channel so other instances can merge it and notify their own
subscribers. When the fast tier is down the service keeps working on its
local copy alone.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.models import SessionState, Turn
from dialogue_memory.storage.fast_tier import FastTier

logger = logging.getLogger(__name__)

StateCallback = Callable[[dict[str, Any], dict[str, Any]], None]


def _initial_state() -> dict[str, Any]:
    return dataclasses.asdict(SessionState())


class SessionStateService:
    """get/update/subscribe access to one session's shared state."""

    def __init__(self, fast_tier: FastTier, session_id: str = "default") -> None:
        self.fast_tier = fast_tier
        self.session_id = session_id
        self.instance_id = str(uuid.uuid4())
        self._local: dict[str, Any] = _initial_state()
        self._subscribers: list[StateCallback] = []

        self.state_key = fast_tier.key("session", session_id, "state")
        self.channel = fast_tier.key("session", session_id, "updates")
        self.interrupted_key = fast_tier.key("session", session_id, "interrupted")
        self.transition_key = fast_tier.key("session", session_id, "transitions")

    # ── Reads ──

    async def get(self, field: str) -> Any:
        """Fast-tier value when the field exists there (even if null), else the local copy."""
        remote = await self.fast_tier.get_hash(self.state_key)
        if field in remote:
            self._local[field] = remote[field]
            return remote[field]
        return self._local.get(field)

    async def get_all(self) -> dict[str, Any]:
        remote = await self.fast_tier.get_hash(self.state_key)
        if remote:
            self._local.update(remote)
        return dict(self._local)

    async def snapshot(self) -> SessionState:
        return SessionState.from_dict(await self.get_all())

    # ── Writes ──

    async def update(self, **updates: Any) -> None:
        self._local.update(updates)
        if await self.fast_tier.update_hash(self.state_key, updates):
            await self.fast_tier.publish(self.channel, {"origin": self.instance_id, "updates": updates})
        self._notify(updates)

    async def reset(self) -> None:
        self._local = _initial_state()
        await self.fast_tier.delete(self.state_key)
        self._notify(dict(self._local))

    # ── Subscription ──

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register ``callback(updates, state)``; returns the unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def listen(self) -> bool:
        """Start merging updates published by other instances."""
        return await self.fast_tier.subscribe(self.channel, self._on_message)

    def _on_message(self, message: dict[str, Any]) -> None:
        if message.get("origin") == self.instance_id:
            return
        self.handle_remote_update(message.get("updates") or {})

    def handle_remote_update(self, updates: dict[str, Any]) -> None:
        self._local.update(updates)
        self._notify(updates)

    def _notify(self, updates: dict[str, Any]) -> None:
        state = dict(self._local)
        for callback in list(self._subscribers):
            try:
                callback(updates, state)
            except Exception:
                logger.exception("State subscriber failed")

    # ── Recent turns ──

    async def add_recent_turn(self, turn: Turn) -> None:
        turns = list(await self.get("recent_turns") or [])
        turns.append(dataclasses.asdict(turn))
        await self.update(recent_turns=turns[-ENGINE_CONFIG["recent_turns_size"]:])

    async def get_recent_turns(self, count: int | None = None) -> list[Turn]:
        turns = await self.get("recent_turns") or []
        count = count or ENGINE_CONFIG["recent_turns_size"]
        return [t if isinstance(t, Turn) else Turn(**t) for t in turns[-count:]]

    # ── Interrupted position ──

    async def save_interrupted_position(self, position: Any, ttl: int | None = None) -> bool:
        record = {"position": position, "timestamp": datetime.now(timezone.utc).isoformat()}
        return await self.fast_tier.set_json(
            self.interrupted_key, record, ttl=ttl or ENGINE_CONFIG["interrupted_position_ttl"],
        )

    async def get_interrupted_position(self) -> Any:
        record = await self.fast_tier.get_json(self.interrupted_key)
        return record["position"] if record else None

    async def clear_interrupted_position(self) -> bool:
        return await self.fast_tier.delete(self.interrupted_key)

    # ── Transition queue ──

    async def queue_transition(self, record: dict[str, Any]) -> bool:
        return await self.fast_tier.push(
            self.transition_key, record,
            max_length=ENGINE_CONFIG["transition_queue_size"],
            ttl=ENGINE_CONFIG["transition_queue_ttl"],
        )

    async def next_transition(self) -> dict[str, Any] | None:
        return await self.fast_tier.pop(self.transition_key)
