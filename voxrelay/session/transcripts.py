"""Transcript aggregation: forwards recognizer results and triggers the pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from voxrelay._types import LanguageSample
from voxrelay.logging import get_logger
from voxrelay.server.models.events import LanguageHistoryEntry, TranscriptUpdateEvent, now_ms

if TYPE_CHECKING:
    from voxrelay._types import TranscriptResult
    from voxrelay.config.settings import SessionSettings
    from voxrelay.session.pipeline import PipelineCoordinator
    from voxrelay.session.sequencer import OutboundSequencer
    from voxrelay.session.state import ClientSession

logger = get_logger("session.transcripts")


class TranscriptAggregator:
    """Turns recognizer callbacks into ``transcript_update`` events.

    Interim results are forwarded as-is. A final result replaces the
    session's transcript buffer, extends the language history (when the
    recognizer reported a language), and, if the session is still recording
    and the trimmed text is long enough, hands the utterance to the
    pipeline. The handed-off text is consumed from the buffer so that a
    later ``stop_recording`` does not process it a second time.
    """

    def __init__(
        self,
        sequencer: OutboundSequencer,
        pipeline: PipelineCoordinator,
        settings: SessionSettings,
    ) -> None:
        self._sequencer = sequencer
        self._pipeline = pipeline
        self._min_chars = settings.min_transcript_chars
        self._reported = settings.language_history_reported

    async def on_partial(self, session: ClientSession, result: TranscriptResult) -> None:
        if session.closed:
            return
        await self._sequencer.enqueue(
            session,
            TranscriptUpdateEvent(
                transcript=result.transcript,
                is_final=False,
                confidence=result.confidence,
                language=result.language or session.detected_language,
            ),
        )

    async def on_final(self, session: ClientSession, result: TranscriptResult) -> None:
        if session.closed:
            return

        session.current_transcript = result.transcript
        if result.language:
            session.language_history.append(
                LanguageSample(
                    language=result.language,
                    confidence=result.confidence,
                    timestamp_ms=now_ms(),
                )
            )

        history = [
            LanguageHistoryEntry(
                language=sample.language,
                confidence=sample.confidence,
                timestamp=sample.timestamp_ms,
            )
            for sample in session.recent_languages(self._reported)
        ]
        await self._sequencer.enqueue(
            session,
            TranscriptUpdateEvent(
                transcript=result.transcript,
                is_final=True,
                confidence=result.confidence,
                language=result.language or session.detected_language,
                language_history=history or None,
            ),
        )

        if session.recording and self.is_actionable(result.transcript):
            self._pipeline.trigger(session, session.consume_transcript())

    def is_actionable(self, transcript: str) -> bool:
        """True if the utterance is long enough to be worth answering."""
        return len(transcript.strip()) > self._min_chars
