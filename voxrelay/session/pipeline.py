"""PipelineCoordinator: one utterance -> reply text -> reply audio.

At most one pipeline run per session at a time. The single-flight guard is
checked and set synchronously in :meth:`PipelineCoordinator.trigger`, before
any suspension point, so two triggers in the same loop iteration cannot
both pass it. ``processing`` is cleared in a ``finally`` so no failure path
leaves the session stuck.

Run order on success:
    1. generate_response(transcript)   (timeout-bounded)
    2. synthesize(reply)               (timeout-bounded)
    3. emit response_ready
    4. open the playback gate (echo suppression starts)
    5. deliver audio (audio socket, or pending-audio buffer)
    6. emit audio_ready
    7. playback gate resets after the estimated playback duration

Any failure in 1-2 emits one ``error`` event and ends the run.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, TypeVar

from voxrelay._types import GenerationOptions, SynthesisOptions
from voxrelay.audio.pcm import estimate_playback_ms
from voxrelay.exceptions import (
    ChannelClosedError,
    CollaboratorTimeoutError,
    GenerationError,
    SynthesisError,
)
from voxrelay.logging import get_logger
from voxrelay.server.models.events import (
    AudioReadyEvent,
    ErrorEvent,
    ResponsePayload,
    ResponseReadyEvent,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from voxrelay.config.settings import PipelineSettings, SessionSettings
    from voxrelay.providers.interface import ResponseGenerator, SpeechSynthesizer
    from voxrelay.session.sequencer import OutboundSequencer
    from voxrelay.session.state import ClientSession

logger = get_logger("session.pipeline")

_T = TypeVar("_T")

PIPELINE_ERROR_MESSAGE = "Failed to process voice request"


class PipelineCoordinator:
    """Runs generation and synthesis for final utterances.

    Args:
        generator: Response generator collaborator.
        synthesizer: Speech synthesizer collaborator.
        sequencer: Outbound sequencer for emitting events.
        pipeline_settings: Timeout and generation options.
        session_settings: Playback estimation parameters.
        clock: Monotonic clock in seconds (latency measurement).
    """

    def __init__(
        self,
        generator: ResponseGenerator,
        synthesizer: SpeechSynthesizer,
        sequencer: OutboundSequencer,
        pipeline_settings: PipelineSettings,
        session_settings: SessionSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._generator = generator
        self._synthesizer = synthesizer
        self._sequencer = sequencer
        self._pipeline = pipeline_settings
        self._session = session_settings
        self._clock = clock

    def trigger(self, session: ClientSession, transcript: str) -> asyncio.Task[None] | None:
        """Start a pipeline run in the background.

        Returns:
            The run task, or None if a run is already in flight (the new
            utterance is dropped).
        """
        if session.processing:
            logger.info(
                "pipeline_busy_dropped",
                client_id=session.client_id,
                transcript_chars=len(transcript),
            )
            return None

        session.processing = True
        task = asyncio.get_running_loop().create_task(
            self._execute(session, transcript),
            name=f"pipeline-{session.client_id}",
        )
        session.track(task)
        return task

    async def run(self, session: ClientSession, transcript: str) -> bool:
        """Trigger and wait. Returns False if the run was dropped."""
        task = self.trigger(session, transcript)
        if task is None:
            return False
        await task
        return True

    async def _execute(self, session: ClientSession, transcript: str) -> None:
        started = self._clock()
        try:
            try:
                reply, llm_ms = await self._timed(
                    "response_generator",
                    self._generator.generate_response(
                        transcript, self._generation_options(session)
                    ),
                )
                if not reply.strip():
                    raise GenerationError("empty reply")
            except Exception as exc:
                await self._fail(session, "generation_failed", exc)
                return

            try:
                audio, tts_ms = await self._timed(
                    "speech_synthesizer",
                    self._synthesizer.synthesize(reply, self._synthesis_options(session)),
                )
                if not audio:
                    raise SynthesisError("empty audio")
            except Exception as exc:
                await self._fail(session, "synthesis_failed", exc)
                return

            total_ms = self._elapsed_ms(started)
            await self._sequencer.enqueue(
                session,
                ResponseReadyEvent(
                    response=ResponsePayload(
                        text=reply,
                        latency=total_ms,
                        llm_latency=llm_ms,
                        tts_latency=tts_ms,
                    )
                ),
            )

            duration_ms = estimate_playback_ms(
                len(audio),
                bytes_per_second=self._session.playback_bytes_per_second,
                minimum_ms=self._session.playback_min_ms,
            )
            session.playback.start(duration_ms)

            await self._deliver_audio(session, audio)
            await self._sequencer.enqueue(session, AudioReadyEvent(audio_length=len(audio)))

            logger.info(
                "pipeline_complete",
                client_id=session.client_id,
                latency_ms=total_ms,
                llm_ms=llm_ms,
                tts_ms=tts_ms,
                audio_bytes=len(audio),
                playback_ms=duration_ms,
            )
        finally:
            session.processing = False

    async def _timed(self, collaborator: str, call: Awaitable[_T]) -> tuple[_T, int]:
        started = self._clock()
        timeout = self._pipeline.collaborator_timeout_s
        try:
            result = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise CollaboratorTimeoutError(collaborator, timeout) from exc
        return result, self._elapsed_ms(started)

    async def _deliver_audio(self, session: ClientSession, audio: bytes) -> None:
        channel = session.audio
        if channel is not None and channel.is_open:
            try:
                await channel.send_bytes(audio)
            except ChannelClosedError:
                logger.info("audio_send_failed_buffered", client_id=session.client_id)
            else:
                return
        session.pending_audio.append(audio)

    async def _fail(self, session: ClientSession, code: str, exc: Exception) -> None:
        logger.error(
            "pipeline_failed",
            client_id=session.client_id,
            code=code,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await self._sequencer.enqueue(
            session,
            ErrorEvent(code=code, message=PIPELINE_ERROR_MESSAGE, recoverable=True),
        )

    def _generation_options(self, session: ClientSession) -> GenerationOptions:
        return GenerationOptions(
            max_tokens=self._pipeline.max_tokens,
            temperature=self._pipeline.temperature,
            model=self._pipeline.model,
            language=self._language(session),
        )

    def _synthesis_options(self, session: ClientSession) -> SynthesisOptions:
        return SynthesisOptions(
            voice=session.preferences.voice or self._pipeline.default_voice,
            language=self._language(session),
        )

    @staticmethod
    def _language(session: ClientSession) -> str | None:
        prefs = session.preferences
        if prefs.language and not prefs.auto_language:
            return prefs.language
        return session.detected_language or prefs.language

    def _elapsed_ms(self, started: float) -> int:
        return round((self._clock() - started) * 1000)
