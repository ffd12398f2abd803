"""Core enums and value types for voxrelay.

Used by both halves (server orchestrator and client transport). Changes here
affect the wire protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TransportMode(Enum):
    """How a client reaches the server. Chosen once per connection attempt."""

    SOCKET = "socket"
    POLLING = "polling"


class ChannelType(Enum):
    """Logical sub-channel of a socket-mode session."""

    CONTROL = "control"
    AUDIO = "audio"


class ConnectionStatus(Enum):
    """Client-visible connection state.

    ERROR is terminal: it is reached only after the reconnect ceiling.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class AssistantState(Enum):
    """Conversational state of a session.

    Transitions:
        IDLE -> LISTENING (recording started)
        LISTENING -> PROCESSING (final transcript accepted)
        PROCESSING -> RESPONDING (reply ready)
        RESPONDING -> IDLE | LISTENING (playback finished)
        Any non-idle -> INTERRUPTED (explicit interrupt) -> IDLE
    """

    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    RESPONDING = "responding"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class TranscriptResult:
    """One recognizer callback payload (interim or final)."""

    transcript: str
    is_final: bool
    confidence: float = 0.0
    language: str | None = None


@dataclass(frozen=True, slots=True)
class LanguageSample:
    """Language detected for one final utterance."""

    language: str
    confidence: float
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    """Bounded options passed to the response generator."""

    max_tokens: int = 75
    temperature: float = 0.5
    model: str | None = None
    language: str | None = None


@dataclass(frozen=True, slots=True)
class SynthesisOptions:
    """Options passed to the speech synthesizer."""

    voice: str | None = None
    language: str | None = None


@dataclass(frozen=True, slots=True)
class ServiceCheckResult:
    """Outcome of probing one collaborator during the integration self-test."""

    service: str
    status: str  # "success" | "error"
    latency_ms: int
    error: str | None = None
    details: dict[str, object] | None = None
