"""AssistantStatusTracker: client-side view of the conversational state.

Derives an ``AssistantState`` from the stream of server events so a UI can
show "listening", "thinking", "speaking". Pure and synchronous: the
transport feeds it events, the audio player reports when playback ends.

States:
    IDLE -> LISTENING -> PROCESSING -> RESPONDING -> IDLE | LISTENING

Rules:
- INTERRUPTED is reachable from any non-idle state and settles to IDLE (or
  LISTENING while recording) on the next event.
- ``error`` events return to the resting state; a failed pipeline never
  leaves the tracker stuck in PROCESSING.
- Invalid transitions raise ``InvalidTransitionError`` from
  :meth:`transition`; :meth:`on_event` only attempts valid ones.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from voxrelay._types import AssistantState
from voxrelay.exceptions import InvalidTransitionError
from voxrelay.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = get_logger("client.status")

_VALID_TRANSITIONS: dict[AssistantState, frozenset[AssistantState]] = {
    AssistantState.IDLE: frozenset({AssistantState.LISTENING}),
    AssistantState.LISTENING: frozenset(
        {AssistantState.IDLE, AssistantState.PROCESSING, AssistantState.INTERRUPTED}
    ),
    AssistantState.PROCESSING: frozenset(
        {
            AssistantState.IDLE,
            AssistantState.LISTENING,
            AssistantState.RESPONDING,
            AssistantState.INTERRUPTED,
        }
    ),
    AssistantState.RESPONDING: frozenset(
        {
            AssistantState.IDLE,
            AssistantState.LISTENING,
            AssistantState.PROCESSING,
            AssistantState.INTERRUPTED,
        }
    ),
    AssistantState.INTERRUPTED: frozenset({AssistantState.IDLE, AssistantState.LISTENING}),
}


class AssistantStatusTracker:
    """Tracks the assistant state from server events.

    Args:
        on_change: Called with ``(previous, current)`` after every transition.
        min_transcript_chars: A final transcript longer than this (trimmed)
            is expected to start a reply; matches the server threshold.
    """

    def __init__(
        self,
        on_change: Callable[[AssistantState, AssistantState], None] | None = None,
        *,
        min_transcript_chars: int = 2,
    ) -> None:
        self._state = AssistantState.IDLE
        self._recording = False
        self._on_change = on_change
        self._min_chars = min_transcript_chars

    @property
    def state(self) -> AssistantState:
        return self._state

    @property
    def recording(self) -> bool:
        return self._recording

    def can_transition(self, target: AssistantState) -> bool:
        return target in _VALID_TRANSITIONS[self._state]

    def transition(self, target: AssistantState) -> None:
        """Move to ``target``.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if target is self._state:
            return
        if not self.can_transition(target):
            raise InvalidTransitionError(self._state.value, target.value)
        previous = self._state
        self._state = target
        logger.debug("assistant_state_changed", previous=previous.value, current=target.value)
        if self._on_change is not None:
            self._on_change(previous, target)

    def on_event(self, event: Mapping[str, Any]) -> AssistantState:
        """Apply one server event. Returns the (possibly unchanged) state."""
        event_type = event.get("type")

        if event_type == "recording_started":
            self._recording = True
        elif event_type == "recording_stopped":
            self._recording = False

        if self._state is AssistantState.INTERRUPTED and event_type != "interrupted":
            self._try(self._resting())

        target = self._target_for(event_type, event)
        if target is not None:
            self._try(target)
        return self._state

    def playback_finished(self) -> AssistantState:
        """The reply audio finished playing on the client."""
        if self._state is AssistantState.RESPONDING:
            self._try(self._resting())
        return self._state

    def _target_for(self, event_type: Any, event: Mapping[str, Any]) -> AssistantState | None:
        if event_type == "recording_started":
            return AssistantState.LISTENING
        if event_type == "recording_stopped":
            return AssistantState.IDLE if self._state is AssistantState.LISTENING else None
        if event_type == "transcript_update":
            text = str(event.get("transcript", ""))
            if event.get("isFinal") and len(text.strip()) > self._min_chars:
                return AssistantState.PROCESSING
            return None
        if event_type == "response_ready":
            return AssistantState.RESPONDING
        if event_type == "error":
            if self._state in (AssistantState.PROCESSING, AssistantState.RESPONDING):
                return self._resting()
            return None
        if event_type == "interrupted":
            return AssistantState.INTERRUPTED
        return None

    def _resting(self) -> AssistantState:
        return AssistantState.LISTENING if self._recording else AssistantState.IDLE

    def _try(self, target: AssistantState) -> None:
        if target is self._state:
            return
        if self.can_transition(target):
            self.transition(target)
        else:
            logger.debug(
                "assistant_transition_skipped",
                current=self._state.value,
                target=target.value,
            )
