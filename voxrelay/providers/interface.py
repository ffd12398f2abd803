"""Abstract interfaces for the three external collaborators.

The orchestrator talks to speech recognition, response generation, and speech
synthesis exclusively through these ABCs. Vendor SDKs live in separate
packages and are loaded by dotted path (see ``voxrelay.providers.loader``).
Adding a provider requires implementing one ABC; zero changes to the core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from voxrelay._types import GenerationOptions, SynthesisOptions, TranscriptResult

    TranscriptCallback = Callable[[TranscriptResult], Awaitable[None]]
    ErrorCallback = Callable[[Exception], Awaitable[None]]


class RecognizerHandle(ABC):
    """One open streaming-recognition connection, owned by a single session."""

    @abstractmethod
    async def send(self, frame: bytes) -> None:
        """Forward one PCM16 frame, verbatim, to the recognizer."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Finish the stream and release the connection. Must be idempotent."""
        ...


class SpeechRecognizer(ABC):
    """Contract for streaming speech-to-text providers.

    Interim results go to ``on_partial``, final ones to ``on_final``. A
    mid-stream failure is reported once through ``on_error``; the handle is
    considered dead after that.
    """

    name: str = "speech_recognizer"

    @abstractmethod
    async def open(
        self,
        session_id: str,
        on_partial: TranscriptCallback,
        on_final: TranscriptCallback,
        on_error: ErrorCallback,
    ) -> RecognizerHandle:
        """Open a live recognition stream for ``session_id``.

        Raises:
            RecognizerError: If the stream cannot be established.
        """
        ...

    async def check(self) -> bool:
        """Return True if the provider is reachable. Used by the self-test."""
        return True


class ResponseGenerator(ABC):
    """Contract for language-response providers."""

    name: str = "response_generator"

    @abstractmethod
    async def generate_response(self, text: str, options: GenerationOptions) -> str:
        """Return a reply for the user's utterance.

        Raises:
            GenerationError: On provider failure.
        """
        ...

    async def check(self) -> bool:
        """Return True if the provider is reachable. Used by the self-test."""
        return True


class SpeechSynthesizer(ABC):
    """Contract for text-to-speech providers.

    Returns the whole reply as one compressed blob (``audio/mpeg``).
    """

    name: str = "speech_synthesizer"

    @abstractmethod
    async def synthesize(self, text: str, options: SynthesisOptions) -> bytes:
        """Synthesize ``text`` into audio bytes.

        Raises:
            SynthesisError: On provider failure.
        """
        ...

    async def check(self) -> bool:
        """Return True if the provider is reachable. Used by the self-test."""
        return True
