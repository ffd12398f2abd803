"""PlaybackGate: echo suppression while the assistant's reply is playing.

After a reply is synthesized the client plays it out loud, and the
microphone hears it. The gate remembers when the reply was issued and for
how long it is expected to play; inbound audio is dropped while the gate is
closed so the recognizer never transcribes the assistant's own voice.

Lifecycle:
    1. Pipeline delivers a reply -> ``start(duration_ms)``: playing, timestamp set
    2. A reset task flips ``playing`` back to False after ``duration_ms``
    3. An interrupt calls ``stop()``: the reset task is cancelled, playing is False
    4. Session teardown calls ``close()`` so no timer outlives the session

Starting a new reply cancels the previous reset task, so only the latest
reply owns the gate.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from voxrelay.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("session.playback")


class PlaybackGate:
    """Tracks whether the assistant is speaking and for how long.

    Single event loop; no locking.

    Args:
        session_id: Session ID for logging.
        clock: Monotonic clock in seconds. Injectable for tests.
    """

    def __init__(
        self,
        session_id: str = "",
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_id = session_id
        self._clock = clock
        self._playing = False
        self._last_response_time: float | None = None
        self._reset_task: asyncio.Task[None] | None = None

    @property
    def playing(self) -> bool:
        """True while the last reply is expected to be audible."""
        return self._playing

    @property
    def last_response_time(self) -> float | None:
        """Monotonic time (seconds) at which the last reply was issued."""
        return self._last_response_time

    @property
    def has_pending_reset(self) -> bool:
        return self._reset_task is not None and not self._reset_task.done()

    def start(self, duration_ms: int | None = None) -> None:
        """Mark a reply as playing.

        Args:
            duration_ms: Expected playback length. When given, ``playing``
                resets automatically after this long. Requires a running loop.
        """
        self._cancel_reset()
        self._playing = True
        self._last_response_time = self._clock()
        if duration_ms is not None:
            self._reset_task = asyncio.get_running_loop().create_task(
                self._reset_after(duration_ms / 1000.0),
                name=f"playback-reset-{self._session_id}",
            )
        logger.debug("playback_started", session_id=self._session_id, duration_ms=duration_ms)

    def stop(self) -> None:
        """Playback ended early (interrupt). Cancels the pending reset."""
        self._cancel_reset()
        if self._playing:
            logger.debug("playback_stopped", session_id=self._session_id)
        self._playing = False

    def close(self) -> None:
        """Release the reset task. Called on session teardown."""
        self._cancel_reset()

    def suppresses(self, window_ms: int) -> bool:
        """True if inbound audio must be dropped right now.

        Audio is dropped only while a reply is playing AND the reply was
        issued less than ``window_ms`` ago. Past the window, audio flows even
        if ``playing`` was never cleared.
        """
        if not self._playing or self._last_response_time is None:
            return False
        elapsed_ms = (self._clock() - self._last_response_time) * 1000.0
        return elapsed_ms < window_ms

    async def _reset_after(self, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        self._playing = False
        self._reset_task = None
        logger.debug("playback_finished", session_id=self._session_id)

    def _cancel_reset(self) -> None:
        task = self._reset_task
        self._reset_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
