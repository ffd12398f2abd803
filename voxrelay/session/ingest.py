"""Inbound audio: echo suppression, recognizer forwarding, level metering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from voxrelay.audio.pcm import audio_level
from voxrelay.logging import get_logger
from voxrelay.server.models.events import AudioLevelEvent

if TYPE_CHECKING:
    from voxrelay.config.settings import SessionSettings
    from voxrelay.session.sequencer import OutboundSequencer
    from voxrelay.session.state import ClientSession

logger = get_logger("session.ingest")


class AudioIngestor:
    """Gate and forward PCM16 frames from the client's microphone.

    A frame is forwarded to the recognizer only when the session is
    recording, has a live recognizer handle, and the playback gate is not
    suppressing (see ``PlaybackGate.suppresses``). Every forwarded frame is
    followed by an ``audio_level`` event.
    """

    def __init__(self, sequencer: OutboundSequencer, settings: SessionSettings) -> None:
        self._sequencer = sequencer
        self._window_ms = settings.echo_suppress_window_ms

    async def ingest(self, session: ClientSession, frame: bytes) -> bool:
        """Process one inbound frame.

        Returns:
            True if the frame reached the recognizer.
        """
        handle = session.recognizer
        if not session.recording or handle is None:
            return False

        if session.playback.suppresses(self._window_ms):
            logger.debug("audio_suppressed_echo", client_id=session.client_id, size=len(frame))
            return False

        try:
            await handle.send(frame)
        except Exception:
            # A failing send is non-fatal; a dead stream is reported
            # through the recognizer's error callback.
            logger.warning("recognizer_send_failed", client_id=session.client_id, exc_info=True)
            return False

        await self._sequencer.enqueue(session, AudioLevelEvent(level=audio_level(frame)))
        return True
