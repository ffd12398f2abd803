"""Pydantic models for the control-channel protocol.

Every message is a JSON object with a ``type`` discriminator and an epoch-ms
``timestamp``. Field names are camelCase on the wire (``isFinal``,
``audioLength``) and snake_case in Python.

Server events get an ``id`` from the outbound sequencer when they are queued
for delivery; models are frozen, so the sequencer stores an updated copy.
"""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from voxrelay._audio_constants import TTS_MIME_TYPE


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class WireModel(BaseModel):
    """Base for every control-channel payload."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )

    def to_wire(self) -> dict[str, object]:
        """Serialize with wire (camelCase) names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Shared payloads
# ---------------------------------------------------------------------------


class VoiceSettingsPayload(WireModel):
    """Client-side voice preferences sent with ``settings_update``."""

    selected_voice: str | None = None
    language: str | None = None
    auto_language: bool = True
    vad_sensitivity: float | None = Field(default=None, ge=0.0, le=1.0)
    smart_interruptions: bool | None = None


class LanguageHistoryEntry(WireModel):
    language: str
    confidence: float
    timestamp: int


class ResponsePayload(WireModel):
    """Reply text plus per-stage latencies (ms)."""

    text: str
    latency: int
    llm_latency: int | None = None
    tts_latency: int | None = None
    stt_latency: int | None = None


class ServiceResult(WireModel):
    service: str
    status: Literal["success", "error"]
    latency: int
    error: str | None = None
    details: dict[str, object] | None = None


class IntegrationTestReport(WireModel):
    success: bool
    results: list[ServiceResult]
    total_latency: int


# ---------------------------------------------------------------------------
# Client -> Server commands
# ---------------------------------------------------------------------------


class ConnectionReadyCommand(WireModel):
    """Readiness handshake on a freshly opened control channel."""

    type: Literal["connection_ready"] = "connection_ready"
    timestamp: int
    client_id: str | None = None
    last_event_id: int = Field(default=0, ge=0)


class StartRecordingCommand(WireModel):
    type: Literal["start_recording"] = "start_recording"
    timestamp: int


class StopRecordingCommand(WireModel):
    type: Literal["stop_recording"] = "stop_recording"
    timestamp: int


class InterruptCommand(WireModel):
    type: Literal["interrupt"] = "interrupt"
    timestamp: int


class PingCommand(WireModel):
    type: Literal["ping"] = "ping"
    timestamp: int


class SettingsUpdateCommand(WireModel):
    type: Literal["settings_update"] = "settings_update"
    timestamp: int
    data: VoiceSettingsPayload = Field(default_factory=VoiceSettingsPayload)


class RunIntegrationTestCommand(WireModel):
    type: Literal["run_integration_test"] = "run_integration_test"
    timestamp: int


# ---------------------------------------------------------------------------
# Server -> Client events
# ---------------------------------------------------------------------------


class ServerEventBase(WireModel):
    timestamp: int = Field(default_factory=now_ms)
    id: int | None = None


class ServerReadyEvent(ServerEventBase):
    type: Literal["server_ready"] = "server_ready"
    status: str = "connected"


class RecordingStartedEvent(ServerEventBase):
    type: Literal["recording_started"] = "recording_started"


class RecordingStoppedEvent(ServerEventBase):
    type: Literal["recording_stopped"] = "recording_stopped"


class TranscriptUpdateEvent(ServerEventBase):
    type: Literal["transcript_update"] = "transcript_update"
    transcript: str
    is_final: bool
    confidence: float = 0.0
    language: str | None = None
    language_history: list[LanguageHistoryEntry] | None = None


class ResponseReadyEvent(ServerEventBase):
    type: Literal["response_ready"] = "response_ready"
    response: ResponsePayload


class AudioReadyEvent(ServerEventBase):
    type: Literal["audio_ready"] = "audio_ready"
    audio_length: int
    mime_type: str = TTS_MIME_TYPE


class AudioLevelEvent(ServerEventBase):
    type: Literal["audio_level"] = "audio_level"
    level: float


class InterruptedEvent(ServerEventBase):
    type: Literal["interrupted"] = "interrupted"


class PongEvent(ServerEventBase):
    type: Literal["pong"] = "pong"
    latency: int


class ErrorEvent(ServerEventBase):
    """Error report; ``message`` is user-facing, details stay in the logs."""

    type: Literal["error"] = "error"
    code: str
    message: str
    recoverable: bool = True


class IntegrationTestResultsEvent(ServerEventBase):
    type: Literal["integration_test_results"] = "integration_test_results"
    results: IntegrationTestReport


# ---------------------------------------------------------------------------
# Union types for dispatch
# ---------------------------------------------------------------------------

ClientCommand = (
    ConnectionReadyCommand
    | StartRecordingCommand
    | StopRecordingCommand
    | InterruptCommand
    | PingCommand
    | SettingsUpdateCommand
    | RunIntegrationTestCommand
)

ServerEvent = (
    ServerReadyEvent
    | RecordingStartedEvent
    | RecordingStoppedEvent
    | TranscriptUpdateEvent
    | ResponseReadyEvent
    | AudioReadyEvent
    | AudioLevelEvent
    | InterruptedEvent
    | PongEvent
    | ErrorEvent
    | IntegrationTestResultsEvent
)

SERVER_EVENT_TYPES: dict[str, type[ServerEventBase]] = {
    "server_ready": ServerReadyEvent,
    "recording_started": RecordingStartedEvent,
    "recording_stopped": RecordingStoppedEvent,
    "transcript_update": TranscriptUpdateEvent,
    "response_ready": ResponseReadyEvent,
    "audio_ready": AudioReadyEvent,
    "audio_level": AudioLevelEvent,
    "interrupted": InterruptedEvent,
    "pong": PongEvent,
    "error": ErrorEvent,
    "integration_test_results": IntegrationTestResultsEvent,
}
