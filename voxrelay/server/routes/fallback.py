"""HTTP polling fallback for clients that cannot hold WebSockets open.

The same command vocabulary as the control socket, carried over plain HTTP:

- ``POST /sessions/{client_id}/messages``: one control command
- ``GET  /sessions/{client_id}/messages?after=N``: queued events with id > N
- ``POST /sessions/{client_id}/audio``: one PCM16 chunk
- ``GET  /sessions/{client_id}/audio``: oldest pending reply audio, or 204

POSTs create the session on first contact. GETs never do: polling an
unknown client returns an empty list (or 204).
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response

from voxrelay._audio_constants import TTS_MIME_TYPE
from voxrelay.exceptions import InvalidRequestError
from voxrelay.logging import bound_client, get_logger
from voxrelay.server.dependencies import get_max_audio_bytes, get_orchestrator
from voxrelay.server.protocol import ErrorResult, parse_command
from voxrelay.session.orchestrator import SessionOrchestrator  # noqa: TC001

logger = get_logger("server.fallback")

router = APIRouter(prefix="/sessions", tags=["Fallback"])


@router.post("/{client_id}/messages")
async def post_message(
    client_id: str,
    request: Request,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """Submit one control command."""
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid JSON: {exc}") from exc

    result = parse_command(body)
    if isinstance(result, ErrorResult):
        raise InvalidRequestError(result.event.message)

    with bound_client(client_id):
        session = orchestrator.registry.open_polling(client_id)
        await orchestrator.handle_command(session, result.command)
    return {"success": True}


@router.get("/{client_id}/messages")
async def poll_messages(
    client_id: str,
    after: int = Query(default=0, ge=0),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> list[dict[str, Any]]:
    """Return queued events with ``id > after``, ascending."""
    session = orchestrator.registry.get(client_id)
    if session is None:
        return []
    session.touch()
    return [event.to_wire() for event in orchestrator.sequencer.drain_after(session, after)]


@router.post("/{client_id}/audio")
async def post_audio(
    client_id: str,
    request: Request,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),  # noqa: B008
    max_bytes: int = Depends(get_max_audio_bytes),
) -> dict[str, Any]:
    """Submit one chunk of PCM16 LE mono 16 kHz audio."""
    data = await request.body()
    if not data:
        raise InvalidRequestError("Audio body is empty")
    if len(data) > max_bytes:
        raise InvalidRequestError(f"Audio chunk too large: {len(data)} bytes (max {max_bytes})")

    with bound_client(client_id):
        session = orchestrator.registry.open_polling(client_id)
        await orchestrator.handle_audio(session, data)
    return {"success": True}


@router.get("/{client_id}/audio")
async def fetch_audio(
    client_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> Response:
    """Pop the oldest pending reply audio. 204 when there is none."""
    session = orchestrator.registry.get(client_id)
    if session is None or not session.pending_audio:
        return Response(status_code=204)
    session.touch()
    audio = session.pending_audio.popleft()
    logger.debug("pending_audio_served", client_id=client_id, size=len(audio))
    return Response(content=audio, media_type=TTS_MIME_TYPE)
