"""Tests for TranscriptAggregator: forwarding, language history, pipeline trigger."""

from __future__ import annotations

from unittest.mock import MagicMock

from voxrelay._types import TranscriptResult, TransportMode
from voxrelay.config.settings import SessionSettings
from voxrelay.session.sequencer import OutboundSequencer
from voxrelay.session.state import ClientSession
from voxrelay.session.transcripts import TranscriptAggregator


def _setup() -> tuple[TranscriptAggregator, MagicMock, ClientSession]:
    pipeline = MagicMock()
    aggregator = TranscriptAggregator(OutboundSequencer(), pipeline, SessionSettings())
    session = ClientSession.create("c1", TransportMode.POLLING)
    session.recording = True
    return aggregator, pipeline, session


class TestPartial:
    async def test_forwarded_not_final(self) -> None:
        aggregator, pipeline, session = _setup()

        await aggregator.on_partial(session, TranscriptResult("hel", is_final=False))

        [event] = session.outbound_queue
        wire = event.to_wire()
        assert wire["type"] == "transcript_update"
        assert wire["isFinal"] is False
        assert session.current_transcript == ""
        pipeline.trigger.assert_not_called()


class TestFinal:
    async def test_triggers_pipeline_and_consumes_buffer(self) -> None:
        aggregator, pipeline, session = _setup()

        await aggregator.on_final(session, TranscriptResult("hello there", is_final=True))

        pipeline.trigger.assert_called_once_with(session, "hello there")
        assert session.current_transcript == ""

    async def test_short_transcript_not_triggered(self) -> None:
        aggregator, pipeline, session = _setup()

        await aggregator.on_final(session, TranscriptResult("  ok ", is_final=True))

        pipeline.trigger.assert_not_called()
        assert session.current_transcript == "  ok "

    async def test_not_recording_buffers_only(self) -> None:
        aggregator, pipeline, session = _setup()
        session.recording = False

        await aggregator.on_final(session, TranscriptResult("late words", is_final=True))

        pipeline.trigger.assert_not_called()
        assert session.current_transcript == "late words"

    async def test_language_history_reports_last_three(self) -> None:
        aggregator, _pipeline, session = _setup()
        session.recording = False
        for lang in ("en", "es", "fr", "de"):
            await aggregator.on_final(
                session, TranscriptResult("words", is_final=True, confidence=0.8, language=lang)
            )

        last = session.outbound_queue[-1].to_wire()
        assert last["language"] == "de"
        assert [h["language"] for h in last["languageHistory"]] == ["es", "fr", "de"]
        assert len(session.language_history) == 4

    async def test_language_falls_back_to_history(self) -> None:
        aggregator, _pipeline, session = _setup()
        session.recording = False
        await aggregator.on_final(session, TranscriptResult("hola", is_final=True, language="es"))

        await aggregator.on_partial(session, TranscriptResult("que", is_final=False))

        assert session.outbound_queue[-1].to_wire()["language"] == "es"

    async def test_closed_session_ignored(self) -> None:
        aggregator, pipeline, session = _setup()
        session.closed = True

        await aggregator.on_final(session, TranscriptResult("hello there", is_final=True))

        assert len(session.outbound_queue) == 0
        pipeline.trigger.assert_not_called()
