"""Shared test helpers: fake collaborators, fake channels, a manual clock.

Usage:
    from tests.helpers import (
        FakeChannel,
        FakeClock,
        FakeGenerator,
        FakeRecognizer,
        FakeSynthesizer,
        make_orchestrator,
        make_pcm_frame,
    )
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import numpy as np

from voxrelay._types import TranscriptResult
from voxrelay.config.settings import PipelineSettings, SessionSettings
from voxrelay.exceptions import ChannelClosedError
from voxrelay.providers.interface import (
    RecognizerHandle,
    ResponseGenerator,
    SpeechRecognizer,
    SpeechSynthesizer,
)
from voxrelay.providers.loader import Collaborators
from voxrelay.session.orchestrator import SessionOrchestrator
from voxrelay.session.registry import SessionRegistry

if TYPE_CHECKING:
    from voxrelay._types import GenerationOptions, SynthesisOptions
    from voxrelay.providers.interface import ErrorCallback, TranscriptCallback

SAMPLE_RATE = 16000
FRAME_SIZE = 1600  # 100ms at 16kHz


def make_pcm_frame(amplitude: float = 0.25, n_samples: int = FRAME_SIZE) -> bytes:
    """PCM16 LE bytes of a constant-amplitude frame."""
    value = int(amplitude * 32767)
    return np.full(n_samples, value, dtype="<i2").tobytes()


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRecognizerHandle(RecognizerHandle):
    def __init__(
        self,
        on_partial: TranscriptCallback,
        on_final: TranscriptCallback,
        on_error: ErrorCallback,
        *,
        final_on_close: str | None = None,
    ) -> None:
        self.on_partial = on_partial
        self.on_final = on_final
        self.on_error = on_error
        self.frames: list[bytes] = []
        self.closed = False
        self.send_error: Exception | None = None
        self._final_on_close = final_on_close

    async def send(self, frame: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.frames.append(frame)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._final_on_close is not None:
            await self.on_final(TranscriptResult(self._final_on_close, is_final=True))

    async def emit_partial(self, text: str, **kwargs: Any) -> None:
        await self.on_partial(TranscriptResult(text, is_final=False, **kwargs))

    async def emit_final(self, text: str, **kwargs: Any) -> None:
        await self.on_final(TranscriptResult(text, is_final=True, **kwargs))

    async def emit_error(self, exc: Exception) -> None:
        await self.on_error(exc)


class FakeRecognizer(SpeechRecognizer):
    name = "Speech recognizer"

    def __init__(self, *, open_error: Exception | None = None, healthy: bool = True) -> None:
        self.open_error = open_error
        self.healthy = healthy
        self.final_on_close: str | None = None
        self.handles: list[FakeRecognizerHandle] = []

    @property
    def handle(self) -> FakeRecognizerHandle:
        return self.handles[-1]

    async def open(
        self,
        session_id: str,
        on_partial: TranscriptCallback,
        on_final: TranscriptCallback,
        on_error: ErrorCallback,
    ) -> FakeRecognizerHandle:
        if self.open_error is not None:
            raise self.open_error
        handle = FakeRecognizerHandle(
            on_partial, on_final, on_error, final_on_close=self.final_on_close
        )
        self.handles.append(handle)
        return handle

    async def check(self) -> bool:
        return self.healthy


class FakeGenerator(ResponseGenerator):
    name = "Response generator"

    def __init__(
        self,
        reply: str = "Hello! How can I help?",
        *,
        error: Exception | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.reply = reply
        self.error = error
        self.delay_s = delay_s
        self.calls: list[tuple[str, GenerationOptions]] = []
        self.release = asyncio.Event()
        self.release.set()

    async def generate_response(self, text: str, options: GenerationOptions) -> str:
        self.calls.append((text, options))
        await self.release.wait()
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSynthesizer(SpeechSynthesizer):
    name = "Speech synthesizer"

    def __init__(self, audio: bytes = b"\xff\xfb" * 8000, *, error: Exception | None = None) -> None:
        self.audio = audio
        self.error = error
        self.calls: list[tuple[str, SynthesisOptions]] = []

    async def synthesize(self, text: str, options: SynthesisOptions) -> bytes:
        self.calls.append((text, options))
        if self.error is not None:
            raise self.error
        return self.audio


class FakeChannel:
    """In-memory OutboundChannel that records what was sent."""

    def __init__(self, *, is_open: bool = True, fail: bool = False) -> None:
        self.open = is_open
        self.fail = fail
        self.sent_json: list[dict[str, Any]] = []
        self.sent_bytes: list[bytes] = []
        self.close_code: int | None = None

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.fail or not self.open:
            raise ChannelClosedError("control", "broken pipe")
        self.sent_json.append(payload)

    async def send_bytes(self, data: bytes) -> None:
        if self.fail or not self.open:
            raise ChannelClosedError("audio", "broken pipe")
        self.sent_bytes.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.open = False
        self.close_code = code

    def types(self) -> list[str]:
        return [e["type"] for e in self.sent_json]


def make_collaborators(
    *,
    recognizer: FakeRecognizer | None = None,
    generator: FakeGenerator | None = None,
    synthesizer: FakeSynthesizer | None = None,
) -> Collaborators:
    return Collaborators(
        recognizer=recognizer or FakeRecognizer(),
        generator=generator or FakeGenerator(),
        synthesizer=synthesizer or FakeSynthesizer(),
    )


def make_orchestrator(
    *,
    recognizer: FakeRecognizer | None = None,
    generator: FakeGenerator | None = None,
    synthesizer: FakeSynthesizer | None = None,
    clock: FakeClock | None = None,
    session_settings: SessionSettings | None = None,
    pipeline_settings: PipelineSettings | None = None,
) -> SessionOrchestrator:
    """Orchestrator over fake collaborators; pass ``clock`` to control time."""
    session_settings = session_settings or SessionSettings()
    registry = SessionRegistry(session_settings, clock=clock) if clock else None
    return SessionOrchestrator(
        make_collaborators(recognizer=recognizer, generator=generator, synthesizer=synthesizer),
        registry=registry,
        session_settings=session_settings,
        pipeline_settings=pipeline_settings,
    )
