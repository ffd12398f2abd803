"""Control-message parsing for both socket frames and HTTP fallback bodies.

Receives raw socket messages (dict with 'bytes' or 'text') or already-decoded
JSON bodies and returns a typed result: audio bytes, parsed command, or an
error event. Unknown ``type`` values are rejected explicitly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pydantic

from voxrelay.logging import get_logger
from voxrelay.server.models.events import (
    ConnectionReadyCommand,
    ErrorEvent,
    InterruptCommand,
    PingCommand,
    RunIntegrationTestCommand,
    SettingsUpdateCommand,
    StartRecordingCommand,
    StopRecordingCommand,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from voxrelay.server.models.events import ClientCommand

logger = get_logger("server.protocol")

_COMMAND_TYPES: dict[str, type[ClientCommand]] = {
    "connection_ready": ConnectionReadyCommand,
    "start_recording": StartRecordingCommand,
    "stop_recording": StopRecordingCommand,
    "interrupt": InterruptCommand,
    "ping": PingCommand,
    "settings_update": SettingsUpdateCommand,
    "run_integration_test": RunIntegrationTestCommand,
}


@dataclass(frozen=True, slots=True)
class AudioFrameResult:
    """Dispatch result: binary audio frame."""

    data: bytes


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Dispatch result: parsed control command."""

    command: ClientCommand


@dataclass(frozen=True, slots=True)
class ErrorResult:
    """Dispatch result: parsing/validation error."""

    event: ErrorEvent


DispatchResult = AudioFrameResult | CommandResult | ErrorResult


def dispatch_message(message: Mapping[str, Any]) -> DispatchResult | None:
    """Dispatch a raw socket message to a typed result.

    Args:
        message: Raw dict from ``websocket.receive()`` with 'bytes' or 'text' keys.

    Returns:
        ``AudioFrameResult`` for binary frames, ``CommandResult`` for parsed JSON,
        ``ErrorResult`` for errors, or ``None`` if the message contains
        neither bytes nor text.
    """
    raw_bytes = message.get("bytes")
    if raw_bytes is not None:
        if not isinstance(raw_bytes, bytes):
            return ErrorResult(
                event=ErrorEvent(code="invalid_frame", message="Binary frame data is not bytes"),
            )
        return AudioFrameResult(data=raw_bytes)

    raw_text = message.get("text")
    if raw_text is not None:
        return parse_command_text(str(raw_text))

    return None


def parse_command_text(raw_text: str) -> CommandResult | ErrorResult:
    """Decode JSON text and validate it as a control command."""
    try:
        data = json.loads(raw_text)
    except (json.JSONDecodeError, ValueError) as exc:
        logger.warning("malformed_json", error=str(exc), raw=raw_text[:200])
        return ErrorResult(
            event=ErrorEvent(code="malformed_json", message=f"Invalid JSON: {exc}"),
        )
    return parse_command(data)


def parse_command(data: object) -> CommandResult | ErrorResult:
    """Validate a decoded JSON value against the closed command union.

    Flow:
        1. Require a JSON object.
        2. Extract ``type``.
        3. Validate against the matching Pydantic model.

    Errors are returned as ``ErrorResult`` with ``recoverable=True``; the
    rest of the session is unaffected.
    """
    if not isinstance(data, dict):
        logger.warning("invalid_command_format", got=type(data).__name__)
        return ErrorResult(
            event=ErrorEvent(
                code="malformed_json",
                message="Expected JSON object, got " + type(data).__name__,
            ),
        )

    command_type = data.get("type")
    if command_type is None:
        logger.warning("missing_type_field", data_keys=list(data.keys()))
        return ErrorResult(
            event=ErrorEvent(code="unknown_command", message="Missing required field: 'type'"),
        )

    command_class = _COMMAND_TYPES.get(command_type)
    if command_class is None:
        logger.warning("unknown_command_type", command_type=command_type)
        return ErrorResult(
            event=ErrorEvent(
                code="unknown_command",
                message=f"Unknown command type: '{command_type}'",
            ),
        )

    try:
        command = command_class.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.warning("command_validation_error", command_type=command_type, error=str(exc))
        return ErrorResult(
            event=ErrorEvent(
                code="validation_error",
                message=f"Validation error for '{command_type}': {exc}",
            ),
        )

    return CommandResult(command=command)
