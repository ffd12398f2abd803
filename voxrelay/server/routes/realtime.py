"""WS /ws -- control and audio sub-channels of a client session.

A client opens two sockets against the same ``clientId``:

- ``?clientId=<id>&type=control``: JSON commands in, JSON events out;
- ``?clientId=<id>&type=audio``: PCM16 frames in, reply audio out.

A second socket for the same (client, channel) pair replaces the first.
The session is torn down when its last socket goes away. Protocol-level
keepalive pings are sent by uvicorn (``ws_ping_interval``).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from voxrelay._types import ChannelType
from voxrelay.exceptions import ChannelClosedError
from voxrelay.logging import bound_client, get_logger
from voxrelay.server.channels import WebSocketChannel
from voxrelay.server.models.events import ErrorEvent
from voxrelay.server.protocol import (
    AudioFrameResult,
    CommandResult,
    ErrorResult,
    dispatch_message,
)

if TYPE_CHECKING:
    from voxrelay.session.orchestrator import SessionOrchestrator
    from voxrelay.session.state import ClientSession

logger = get_logger("server.realtime")

router = APIRouter(tags=["Realtime"])

_AUDIO_HANDSHAKE_TYPE = "audio_connection_ready"


@router.get(
    "/ws",
    status_code=426,
    summary="WebSocket session channels (control + audio)",
    response_description="This endpoint requires a WebSocket connection.",
)
async def realtime_docs() -> JSONResponse:
    """Plain HTTP on the socket path returns 426 Upgrade Required."""
    return JSONResponse(
        status_code=426,
        content={
            "error": {
                "message": "Connect via WebSocket: /ws?clientId=<id>&type=control|audio",
                "type": "upgrade_required",
                "code": "upgrade_required",
            }
        },
    )


async def _reject(websocket: WebSocket, code: str, message: str) -> None:
    """Accept, report the problem, and close with policy-violation."""
    await websocket.accept()
    event = ErrorEvent(code=code, message=message, recoverable=False)
    await websocket.send_json(event.to_wire())
    await websocket.close(code=1008, reason=message[:120])


async def _send_ack(channel: WebSocketChannel, event: ErrorEvent) -> None:
    """Unsequenced error acknowledgment to the sender only."""
    try:
        await channel.send_json(event.to_wire())
    except ChannelClosedError:
        logger.debug("ack_send_failed", channel=channel.channel_type.value)


@router.websocket("/ws")
async def session_socket(
    websocket: WebSocket,
    client_id: str | None = Query(default=None, alias="clientId"),
    channel_type: str | None = Query(default=None, alias="type"),
) -> None:
    """WebSocket endpoint for one sub-channel of a client session.

    Query params:
        clientId: Opaque client identifier (required).
        type: ``control`` or ``audio`` (required).
    """
    if not client_id:
        await _reject(websocket, "invalid_request", "Query parameter 'clientId' is required")
        return

    try:
        channel_kind = ChannelType(channel_type or "")
    except ValueError:
        await _reject(
            websocket,
            "invalid_request",
            "Query parameter 'type' must be 'control' or 'audio'",
        )
        return

    orchestrator: SessionOrchestrator | None = websocket.app.state.orchestrator
    if orchestrator is None:
        await _reject(websocket, "service_unavailable", "Server has no collaborators configured")
        return

    await websocket.accept()
    channel = WebSocketChannel(websocket, channel_kind)
    registry = orchestrator.registry
    max_frame = websocket.app.state.max_audio_frame_bytes

    with bound_client(client_id):
        session, previous = registry.attach(client_id, channel_kind, channel)
        if previous is not None:
            await previous.close(code=1000, reason="Replaced by a newer connection")

        try:
            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break

                session.touch()
                if channel_kind is ChannelType.CONTROL:
                    await _on_control_message(orchestrator, session, channel, message)
                else:
                    await _on_audio_message(orchestrator, session, channel, message, max_frame)

        except WebSocketDisconnect:
            logger.info("client_disconnected", channel=channel_kind.value)
        except Exception:
            logger.exception("socket_error", channel=channel_kind.value)
            await _send_ack(
                channel,
                ErrorEvent(code="internal_error", message="Internal server error", recoverable=False),
            )
        finally:
            if registry.detach(client_id, channel_kind, channel):
                await orchestrator.disconnect(client_id)
            logger.info("socket_closed", channel=channel_kind.value)


async def _on_control_message(
    orchestrator: SessionOrchestrator,
    session: ClientSession,
    channel: WebSocketChannel,
    message: Any,
) -> None:
    result = dispatch_message(message)
    if result is None:
        return

    if isinstance(result, ErrorResult):
        await _send_ack(channel, result.event)
        return

    if isinstance(result, AudioFrameResult):
        await _send_ack(
            channel,
            ErrorEvent(
                code="invalid_frame",
                message="Binary audio belongs on the audio channel",
            ),
        )
        return

    if isinstance(result, CommandResult):
        await orchestrator.handle_command(session, result.command)


async def _on_audio_message(
    orchestrator: SessionOrchestrator,
    session: ClientSession,
    channel: WebSocketChannel,
    message: Any,
    max_frame: int,
) -> None:
    data = message.get("bytes")
    if data is not None:
        if len(data) > max_frame:
            await _send_ack(
                channel,
                ErrorEvent(
                    code="frame_too_large",
                    message=f"Frame too large: {len(data)} bytes (max {max_frame})",
                ),
            )
            return
        await orchestrator.handle_audio(session, data)
        return

    text = message.get("text")
    if text is not None:
        try:
            payload = json.loads(text)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("type") == _AUDIO_HANDSHAKE_TYPE:
            logger.info("audio_channel_ready")
        else:
            logger.debug("audio_channel_text_ignored", size=len(text))
