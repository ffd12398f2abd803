"""SessionOrchestrator: applies client commands and audio to sessions.

Transport-agnostic. The socket route and the HTTP fallback routes both
parse client input into typed commands and hand them here; every event the
orchestrator produces goes through the outbound sequencer, which decides
between socket delivery and the polling queue.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from voxrelay._types import TransportMode
from voxrelay.config.settings import PipelineSettings, SessionSettings
from voxrelay.logging import get_logger
from voxrelay.server.models.events import (
    ConnectionReadyCommand,
    ErrorEvent,
    IntegrationTestResultsEvent,
    InterruptCommand,
    InterruptedEvent,
    PingCommand,
    PongEvent,
    RecordingStartedEvent,
    RecordingStoppedEvent,
    RunIntegrationTestCommand,
    ServerReadyEvent,
    SettingsUpdateCommand,
    StartRecordingCommand,
    StopRecordingCommand,
    now_ms,
)
from voxrelay.session.ingest import AudioIngestor
from voxrelay.session.integration import IntegrationTestRunner
from voxrelay.session.pipeline import PipelineCoordinator
from voxrelay.session.registry import SessionRegistry
from voxrelay.session.sequencer import OutboundSequencer
from voxrelay.session.state import SessionPreferences
from voxrelay.session.transcripts import TranscriptAggregator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from voxrelay._types import TranscriptResult
    from voxrelay.providers.interface import RecognizerHandle
    from voxrelay.providers.loader import Collaborators
    from voxrelay.server.models.events import ClientCommand, ServerEventBase
    from voxrelay.session.state import ClientSession

logger = get_logger("session.orchestrator")


class SessionOrchestrator:
    """Owns the registry and the per-session components built around it.

    Args:
        collaborators: Recognizer, generator, and synthesizer.
        registry: Session store. Created from ``session_settings`` if omitted.
        session_settings: Buffer sizes, echo window, playback estimation.
        pipeline_settings: Collaborator timeout and generation options.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        *,
        registry: SessionRegistry | None = None,
        session_settings: SessionSettings | None = None,
        pipeline_settings: PipelineSettings | None = None,
    ) -> None:
        self._collaborators = collaborators
        self._session_settings = session_settings or SessionSettings()
        self._pipeline_settings = pipeline_settings or PipelineSettings()
        self.registry = registry or SessionRegistry(self._session_settings)
        self.sequencer = OutboundSequencer()
        self.pipeline = PipelineCoordinator(
            collaborators.generator,
            collaborators.synthesizer,
            self.sequencer,
            self._pipeline_settings,
            self._session_settings,
        )
        self.transcripts = TranscriptAggregator(
            self.sequencer, self.pipeline, self._session_settings
        )
        self.ingestor = AudioIngestor(self.sequencer, self._session_settings)
        self.integration = IntegrationTestRunner(
            collaborators, self._pipeline_settings.collaborator_timeout_s
        )
        self._handlers: dict[type[Any], Callable[[ClientSession, Any], Awaitable[None]]] = {
            ConnectionReadyCommand: self._on_connection_ready,
            StartRecordingCommand: self._on_start_recording,
            StopRecordingCommand: self._on_stop_recording,
            InterruptCommand: self._on_interrupt,
            PingCommand: self._on_ping,
            SettingsUpdateCommand: self._on_settings_update,
            RunIntegrationTestCommand: self._on_run_integration_test,
        }

    async def emit(self, session: ClientSession, event: ServerEventBase) -> None:
        await self.sequencer.enqueue(session, event)

    async def handle_command(self, session: ClientSession, command: ClientCommand) -> None:
        """Apply one parsed control command to ``session``."""
        session.touch()
        handler = self._handlers.get(type(command))
        if handler is None:
            logger.warning("command_without_handler", command_type=command.type)
            return
        logger.debug("command_received", client_id=session.client_id, command_type=command.type)
        if session.replay_pending and not isinstance(command, ConnectionReadyCommand):
            # No handshake on this control socket: catch it up from the attach.
            await self.sequencer.replay(session, session.replay_floor)
        await handler(session, command)

    async def handle_audio(self, session: ClientSession, frame: bytes) -> bool:
        """Route one inbound audio frame. Returns True if it reached the recognizer."""
        session.touch()
        return await self.ingestor.ingest(session, frame)

    async def disconnect(self, client_id: str) -> None:
        await self.registry.teardown(client_id)

    # -----------------------------------------------------------------------
    # Command handlers
    # -----------------------------------------------------------------------

    async def _on_connection_ready(
        self, session: ClientSession, command: ConnectionReadyCommand
    ) -> None:
        self.sequencer.rebase(session, command.last_event_id)
        if session.transport_mode is TransportMode.SOCKET:
            await self.sequencer.replay(session, command.last_event_id)
        logger.info(
            "client_ready",
            client_id=session.client_id,
            transport=session.transport_mode.value,
            last_event_id=command.last_event_id,
        )
        await self.emit(session, ServerReadyEvent())

    async def _on_start_recording(
        self, session: ClientSession, command: StartRecordingCommand
    ) -> None:
        if session.recording:
            logger.debug("start_recording_ignored", client_id=session.client_id)
            return

        session.recording = True
        session.current_transcript = ""
        session.recording_generation += 1
        generation = session.recording_generation

        async def on_partial(result: TranscriptResult) -> None:
            await self.transcripts.on_partial(session, result)

        async def on_final(result: TranscriptResult) -> None:
            await self.transcripts.on_final(session, result)

        async def on_error(exc: Exception) -> None:
            await self._on_recognizer_error(session, generation, exc)

        try:
            handle = await asyncio.wait_for(
                self._collaborators.recognizer.open(
                    session.client_id, on_partial, on_final, on_error
                ),
                timeout=self._pipeline_settings.collaborator_timeout_s,
            )
        except Exception as exc:
            if session.recording_generation == generation:
                session.recording = False
            logger.error(
                "recognizer_open_failed",
                client_id=session.client_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self.emit(
                session,
                ErrorEvent(
                    code="recognizer_unavailable",
                    message="Failed to initialize speech recognition",
                ),
            )
            return

        if session.closed or not session.recording or session.recording_generation != generation:
            # stopped (or torn down) while the stream was opening
            await self._close_handle(session, handle)
            return

        session.recognizer = handle
        logger.info("recording_started", client_id=session.client_id)
        await self.emit(session, RecordingStartedEvent())

    async def _on_stop_recording(
        self, session: ClientSession, command: StopRecordingCommand
    ) -> None:
        if not session.recording:
            logger.debug("stop_recording_ignored", client_id=session.client_id)
            return

        session.recording = False
        handle = session.recognizer
        session.recognizer = None
        if handle is not None:
            # closing flushes any last final result into current_transcript
            await self._close_handle(session, handle)

        transcript = session.consume_transcript()
        if transcript.strip():
            self.pipeline.trigger(session, transcript)

        logger.info("recording_stopped", client_id=session.client_id)
        await self.emit(session, RecordingStoppedEvent())

    async def _on_interrupt(self, session: ClientSession, command: InterruptCommand) -> None:
        session.playback.stop()
        logger.info("interrupted", client_id=session.client_id, processing=session.processing)
        await self.emit(session, InterruptedEvent())

    async def _on_ping(self, session: ClientSession, command: PingCommand) -> None:
        await self.emit(session, PongEvent(latency=max(0, now_ms() - command.timestamp)))

    async def _on_settings_update(
        self, session: ClientSession, command: SettingsUpdateCommand
    ) -> None:
        data = command.data
        current = session.preferences
        session.preferences = SessionPreferences(
            voice=data.selected_voice or current.voice,
            language=data.language or current.language,
            auto_language=data.auto_language,
        )
        logger.info(
            "preferences_updated",
            client_id=session.client_id,
            voice=session.preferences.voice,
            language=session.preferences.language,
            auto_language=session.preferences.auto_language,
        )

    async def _on_run_integration_test(
        self, session: ClientSession, command: RunIntegrationTestCommand
    ) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run_integration_test(session),
            name=f"integration-test-{session.client_id}",
        )
        session.track(task)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _run_integration_test(self, session: ClientSession) -> None:
        try:
            report = await self.integration.run()
        except Exception as exc:
            logger.error("integration_test_error", client_id=session.client_id, error=str(exc))
            await self.emit(
                session,
                ErrorEvent(code="integration_test_failed", message="Integration test failed"),
            )
            return
        await self.emit(session, IntegrationTestResultsEvent(results=report))

    async def _on_recognizer_error(
        self, session: ClientSession, generation: int, exc: Exception
    ) -> None:
        if session.closed or session.recording_generation != generation or not session.recording:
            logger.debug("stale_recognizer_error", client_id=session.client_id, error=str(exc))
            return

        logger.error("recognizer_failed", client_id=session.client_id, error=str(exc))
        session.recording = False
        handle = session.recognizer
        session.recognizer = None
        await self.emit(
            session,
            ErrorEvent(code="recognizer_error", message="Speech recognition failed"),
        )
        await self.emit(session, RecordingStoppedEvent())
        if handle is not None:
            await self._close_handle(session, handle)

    @staticmethod
    async def _close_handle(session: ClientSession, handle: RecognizerHandle) -> None:
        try:
            await handle.close()
        except Exception:
            logger.warning("recognizer_close_failed", client_id=session.client_id, exc_info=True)
