"""Socket sub-channel wrapper used by the outbound sequencer and pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.websockets import WebSocketDisconnect, WebSocketState

from voxrelay.exceptions import ChannelClosedError
from voxrelay.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket

    from voxrelay._types import ChannelType

logger = get_logger("server.channels")


class WebSocketChannel:
    """One accepted WebSocket bound to a client's control or audio channel.

    Send failures surface as ``ChannelClosedError`` so callers can fall back
    to queueing without knowing about Starlette.
    """

    def __init__(self, websocket: WebSocket, channel_type: ChannelType) -> None:
        self._websocket = websocket
        self._channel_type = channel_type
        self._closed = False

    @property
    def channel_type(self) -> ChannelType:
        return self._channel_type

    @property
    def is_open(self) -> bool:
        ws = self._websocket
        return (
            not self._closed
            and ws.client_state == WebSocketState.CONNECTED
            and ws.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, payload: dict[str, object]) -> None:
        if not self.is_open:
            raise ChannelClosedError(self._channel_type.value)
        try:
            await self._websocket.send_json(payload)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed = True
            raise ChannelClosedError(self._channel_type.value, str(exc) or "disconnected") from exc

    async def send_bytes(self, data: bytes) -> None:
        if not self.is_open:
            raise ChannelClosedError(self._channel_type.value)
        try:
            await self._websocket.send_bytes(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed = True
            raise ChannelClosedError(self._channel_type.value, str(exc) or "disconnected") from exc

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError):
            logger.debug("channel_close_ignored", channel=self._channel_type.value)
