"""Interruption of in-progress speech and spoken transitions.

Per-session speech lifecycle:

    IDLE -> SPEAKING -> INTERRUPTING -> PAUSED -> TRANSITIONING -> SPEAKING

Every public coroutine reports success as a bool (or returns a value) and
never raises; repeated or concurrent calls are safe.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.core.session_state import SessionStateService
from dialogue_memory.models import ClassificationResult

logger = logging.getLogger(__name__)


class VoiceOutput(Protocol):
    """Voice output capability. ``get_current_position`` is optional."""

    async def speak(self, text: str) -> None: ...

    async def stop(self) -> None: ...


class SpeechPhase(str, enum.Enum):
    IDLE = "idle"
    SPEAKING = "speaking"
    INTERRUPTING = "interrupting"
    PAUSED = "paused"
    TRANSITIONING = "transitioning"


class InterruptionCoordinator:
    """Pauses spoken output and speaks transition phrases for one session."""

    def __init__(
        self,
        state: SessionStateService,
        voice: VoiceOutput | None = None,
        settle_delay: float | None = None,
        final_delay: float | None = None,
        pre_pause: float | None = None,
        post_pause: float | None = None,
    ) -> None:
        cfg = ENGINE_CONFIG
        self.state = state
        self.voice = voice
        self.settle_delay = cfg["stop_settle_delay"] if settle_delay is None else settle_delay
        self.final_delay = cfg["stop_final_delay"] if final_delay is None else final_delay
        self.pre_pause = cfg["transition_pre_pause"] if pre_pause is None else pre_pause
        self.post_pause = cfg["transition_post_pause"] if post_pause is None else post_pause
        self.phase = SpeechPhase.IDLE

    def mark_speaking(self) -> None:
        self.phase = SpeechPhase.SPEAKING

    async def get_current_position(self) -> Any:
        """Playback position from shared state, else from the voice capability."""
        try:
            position = await self.state.get("current_sentence_position")
            if position:
                return position
            getter = getattr(self.voice, "get_current_position", None)
            if getter is not None:
                return await getter()
        except Exception:
            logger.exception("Failed to read current sentence position")
        return None

    async def interrupt_mid_sentence(self) -> bool:
        self.phase = SpeechPhase.INTERRUPTING
        try:
            position = await self.get_current_position()
            if position:
                await self.state.save_interrupted_position(position)
            paused = await self.pause_current()
            logger.info("Interrupted mid-sentence at position %s", position)
            return paused
        except Exception:
            logger.exception("Error interrupting mid-sentence")
            return False

    async def pause_current(self) -> bool:
        """Request a pause everywhere, then stop playback twice.

        The second stop catches audio that was already buffered when the
        first one landed.
        """
        try:
            await self.state.update(
                pause_requested=True,
                pause_timestamp=datetime.now(timezone.utc).isoformat(),
            )
            if self.voice is not None:
                await self.voice.stop()
                await asyncio.sleep(self.settle_delay)
                await self.voice.stop()
                await asyncio.sleep(self.final_delay)
            self.phase = SpeechPhase.PAUSED
            return True
        except Exception:
            logger.exception("Error pausing current audio")
            return False

    async def handle_transition(self, classification: ClassificationResult, phrase: str | None) -> bool:
        """Queue, then speak ``phrase`` between fixed pauses. Skipped for first interactions."""
        if classification.category == 9:
            return False
        self.phase = SpeechPhase.TRANSITIONING
        try:
            await self.state.queue_transition({
                "category": classification.category,
                "transition_phrase": phrase,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })
            await asyncio.sleep(self.pre_pause)
            if phrase:
                await self.speak_transition(phrase)
            await asyncio.sleep(self.post_pause)
            self.phase = SpeechPhase.SPEAKING
            return True
        except Exception:
            logger.exception("Error handling transition")
            return False

    async def speak_transition(self, phrase: str) -> bool:
        if self.voice is None:
            logger.warning("No voice output available for transition")
            return False
        try:
            await self.voice.speak(phrase)
            return True
        except Exception:
            logger.exception("Error speaking transition")
            return False

    async def get_interrupted_position(self) -> Any:
        return await self.state.get_interrupted_position()

    async def clear_interrupted_position(self) -> bool:
        return await self.state.clear_interrupted_position()

    async def was_pause_requested(self) -> bool:
        return await self.state.get("pause_requested") is True

    async def clear_pause_request(self) -> None:
        await self.state.update(pause_requested=False)
