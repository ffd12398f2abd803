"""VoiceTransport: the client half of the session transport.

Two modes, chosen per connection attempt:

- SOCKET: two WebSockets (control, then audio; never in parallel). The
  control socket completes a readiness handshake (``connection_ready`` ->
  ``server_ready``) before the audio socket is opened.
- POLLING: plain HTTP. Commands and audio are POSTed; events are fetched
  every ``poll_interval_s`` with ``?after=<last seen id>``.

In both modes events are delivered to the message callback in id order and
at most once: anything with an id at or below the last one seen is dropped.
The last seen id is sent with ``connection_ready`` so a reconnecting socket
client gets the events it missed.

An abnormal socket close (any code but 1000) schedules a reconnect with
linear backoff (see ``ReconnectPolicy``). After the attempt ceiling the
status becomes ERROR and stays there until ``connect()`` is called again.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx
import numpy as np
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from voxrelay._types import ChannelType, ConnectionStatus, TransportMode
from voxrelay.audio.pcm import float32_to_pcm16
from voxrelay.client.backoff import ReconnectPolicy
from voxrelay.client.status import AssistantStatusTracker
from voxrelay.config.settings import ClientSettings
from voxrelay.exceptions import HandshakeError, ReconnectExhaustedError
from voxrelay.logging import get_logger
from voxrelay.server.models.events import ConnectionReadyCommand, WireModel, now_ms

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from voxrelay._types import AssistantState

logger = get_logger("client.transport")

_NORMAL_CLOSURE = 1000
_ABNORMAL_CLOSURE = 1006
_MAX_AUDIO_MESSAGE_BYTES = 16 * 1024 * 1024

_CONNECT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    WebSocketException,
    HandshakeError,
    httpx.HTTPError,
)


class VoiceTransport:
    """Client connection to a voxrelay server.

    Args:
        client_id: Opaque id shared by both sub-channels (or all HTTP calls).
        mode: SOCKET or POLLING.
        settings: Server URL, polling cadence, backoff, timeouts.
        on_status: Called with every connection status change.
        on_message: Called with every server event (decoded JSON object).
        on_audio: Called with every reply audio blob.
        on_assistant_state: Called with ``(previous, current)`` assistant state.
        http_client: Pre-built ``httpx.AsyncClient`` (tests inject an
            ASGI or mock transport). Owned by the caller.
        connector: WebSocket connect function. Defaults to
            ``websockets.asyncio.client.connect``.
    """

    def __init__(
        self,
        client_id: str,
        *,
        mode: TransportMode = TransportMode.SOCKET,
        settings: ClientSettings | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
        on_message: Callable[[dict[str, Any]], None] | None = None,
        on_audio: Callable[[bytes], None] | None = None,
        on_assistant_state: Callable[[AssistantState, AssistantState], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: Callable[..., Any] | None = None,
    ) -> None:
        self._client_id = client_id
        self._mode = mode
        self._settings = settings or ClientSettings()
        self._policy = ReconnectPolicy.from_settings(self._settings)
        self._on_status = on_status
        self._on_message = on_message
        self._on_audio = on_audio
        self._tracker = AssistantStatusTracker(on_assistant_state)
        self._http = http_client
        self._owns_http = http_client is None
        self._connector = connector or ws_connect

        self._status = ConnectionStatus.DISCONNECTED
        self._last_event_id = 0
        self._attempts = 0
        self._closing = False
        self._control: Any = None
        self._audio: Any = None
        self._readers: set[asyncio.Task[None]] = set()
        self._poll_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def mode(self) -> TransportMode:
        return self._mode

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_event_id(self) -> int:
        return self._last_event_id

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def assistant_state(self) -> AssistantState:
        return self._tracker.state

    @property
    def status_tracker(self) -> AssistantStatusTracker:
        return self._tracker

    async def connect(self) -> bool:
        """Open the transport. Returns True once connected.

        A failure is logged and schedules a reconnect; it does not raise.
        """
        if self._status is ConnectionStatus.CONNECTING:
            return False
        if self._status is ConnectionStatus.ERROR:
            self._attempts = 0
        self._closing = False
        self._set_status(ConnectionStatus.CONNECTING)

        try:
            if self._mode is TransportMode.POLLING:
                await self._connect_polling()
            else:
                await self._close_sockets()
                await self._open_control()
                await self._open_audio()
        except _CONNECT_ERRORS as exc:
            logger.warning(
                "connect_failed",
                client_id=self._client_id,
                mode=self._mode.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._close_sockets()
            self._set_status(ConnectionStatus.DISCONNECTED)
            self._schedule_reconnect()
            return False

        self._attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("connected", client_id=self._client_id, mode=self._mode.value)
        return True

    async def disconnect(self) -> None:
        """Close everything and stop reconnecting."""
        self._closing = True
        for task in (self._reconnect_task, self._poll_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._reconnect_task = None
        self._poll_task = None
        await self._close_sockets()
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.info("disconnected", client_id=self._client_id)

    async def send_control_message(self, message: WireModel | Mapping[str, Any]) -> bool:
        """Send one control command. Returns False if it could not be sent."""
        payload = message.to_wire() if isinstance(message, WireModel) else dict(message)

        if self._mode is TransportMode.POLLING:
            try:
                response = await self._http_client().post(
                    f"/sessions/{self._client_id}/messages", json=payload
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning(
                    "control_send_failed",
                    client_id=self._client_id,
                    command_type=payload.get("type"),
                    error=str(exc),
                )
                return False
            return True

        ws = self._control
        if ws is None:
            logger.warning(
                "control_channel_not_connected",
                client_id=self._client_id,
                command_type=payload.get("type"),
            )
            return False
        try:
            await ws.send(json.dumps(payload))
        except ConnectionClosed:
            logger.warning("control_send_failed", client_id=self._client_id)
            return False
        return True

    async def send_audio_data(self, samples: np.ndarray | bytes) -> bool:
        """Send one chunk of microphone audio.

        Float samples are quantized to PCM16 LE; bytes are sent as-is.
        """
        frame = samples if isinstance(samples, bytes) else float32_to_pcm16(samples)

        if self._mode is TransportMode.POLLING:
            try:
                response = await self._http_client().post(
                    f"/sessions/{self._client_id}/audio",
                    content=frame,
                    headers={"Content-Type": "application/octet-stream"},
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("audio_send_failed", client_id=self._client_id, error=str(exc))
                return False
            return True

        ws = self._audio
        if ws is None:
            return False
        try:
            await ws.send(frame)
        except ConnectionClosed:
            logger.warning("audio_send_failed", client_id=self._client_id)
            return False
        return True

    def playback_finished(self) -> None:
        """Report that the reply audio finished playing locally."""
        self._tracker.playback_finished()

    # -----------------------------------------------------------------------
    # Socket mode
    # -----------------------------------------------------------------------

    def _ws_url(self, channel: ChannelType) -> str:
        base = self._settings.server_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        query = urlencode({"clientId": self._client_id, "type": channel.value})
        return f"{base}/ws?{query}"

    async def _open_control(self) -> None:
        timeout = self._settings.handshake_timeout_s
        ws = await self._connector(self._ws_url(ChannelType.CONTROL), open_timeout=timeout)
        self._control = ws

        ready = ConnectionReadyCommand(
            timestamp=now_ms(),
            client_id=self._client_id,
            last_event_id=self._last_event_id,
        )
        await ws.send(json.dumps(ready.to_wire()))

        try:
            await asyncio.wait_for(self._await_server_ready(ws), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise HandshakeError("control", f"no server_ready within {timeout}s") from exc
        except ConnectionClosed as exc:
            raise HandshakeError("control", f"closed during handshake: {exc}") from exc

        self._spawn_reader(self._read_control(ws), "control")
        logger.debug("control_channel_ready", client_id=self._client_id)

    async def _await_server_ready(self, ws: Any) -> None:
        while True:
            raw = await ws.recv()
            if isinstance(raw, bytes):
                continue
            event = self._decode(raw)
            if event is None:
                continue
            # A server_ready at or below the cursor was not delivered; keep waiting.
            if self._deliver(event) and event.get("type") == "server_ready":
                return

    async def _open_audio(self) -> None:
        ws = await self._connector(
            self._ws_url(ChannelType.AUDIO),
            open_timeout=self._settings.handshake_timeout_s,
            max_size=_MAX_AUDIO_MESSAGE_BYTES,
        )
        self._audio = ws
        await ws.send(
            json.dumps(
                {
                    "type": "audio_connection_ready",
                    "timestamp": now_ms(),
                    "clientId": self._client_id,
                }
            )
        )
        self._spawn_reader(self._read_audio(ws), "audio")
        logger.debug("audio_channel_ready", client_id=self._client_id)

    def _spawn_reader(self, coro: Any, name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=f"{name}-reader")
        self._readers.add(task)
        task.add_done_callback(self._readers.discard)

    async def _read_control(self, ws: Any) -> None:
        code = _NORMAL_CLOSURE
        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    continue
                event = self._decode(raw)
                if event is not None:
                    self._deliver(event)
        except ConnectionClosed as exc:
            code = exc.rcvd.code if exc.rcvd is not None else _ABNORMAL_CLOSURE
        self._on_socket_closed(ChannelType.CONTROL, ws, code)

    async def _read_audio(self, ws: Any) -> None:
        code = _NORMAL_CLOSURE
        try:
            async for data in ws:
                if isinstance(data, bytes):
                    if self._on_audio is not None:
                        self._on_audio(data)
        except ConnectionClosed as exc:
            code = exc.rcvd.code if exc.rcvd is not None else _ABNORMAL_CLOSURE
        self._on_socket_closed(ChannelType.AUDIO, ws, code)

    def _on_socket_closed(self, channel: ChannelType, ws: Any, code: int) -> None:
        if channel is ChannelType.CONTROL and self._control is ws:
            self._control = None
        elif channel is ChannelType.AUDIO and self._audio is ws:
            self._audio = None
        else:
            return

        if self._closing:
            return

        logger.info("socket_closed", client_id=self._client_id, channel=channel.value, code=code)
        if self._status is not ConnectionStatus.CONNECTED:
            return
        self._set_status(ConnectionStatus.DISCONNECTED)
        if code != _NORMAL_CLOSURE:
            self._schedule_reconnect()

    async def _close_sockets(self) -> None:
        current = asyncio.current_task()
        for task in list(self._readers):
            if task is not current:
                task.cancel()
        for ws in (self._control, self._audio):
            if ws is not None:
                with contextlib.suppress(WebSocketException, OSError):
                    await ws.close(code=_NORMAL_CLOSURE)
        self._control = None
        self._audio = None

    # -----------------------------------------------------------------------
    # Polling mode
    # -----------------------------------------------------------------------

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._settings.server_url,
                timeout=self._settings.http_timeout_s,
            )
            self._owns_http = True
        return self._http

    async def _connect_polling(self) -> None:
        ready = ConnectionReadyCommand(
            timestamp=now_ms(),
            client_id=self._client_id,
            last_event_id=self._last_event_id,
        )
        response = await self._http_client().post(
            f"/sessions/{self._client_id}/messages", json=ready.to_wire()
        )
        response.raise_for_status()

        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(
                self._poll_loop(), name=f"poll-{self._client_id}"
            )

    async def _poll_loop(self) -> None:
        while not self._closing:
            try:
                await self.poll_once()
            except httpx.HTTPError as exc:
                logger.warning("poll_failed", client_id=self._client_id, error=str(exc))
            await asyncio.sleep(self._settings.poll_interval_s)

    async def poll_once(self) -> int:
        """Fetch and deliver new events once. Returns how many were delivered."""
        response = await self._http_client().get(
            f"/sessions/{self._client_id}/messages",
            params={"after": self._last_event_id},
        )
        response.raise_for_status()

        events = [e for e in response.json() if isinstance(e, dict)]
        events.sort(key=lambda e: e.get("id") or 0)

        delivered = 0
        audio_pending = False
        for event in events:
            if self._deliver(event):
                delivered += 1
                if event.get("type") == "audio_ready":
                    audio_pending = True

        if audio_pending:
            await self._fetch_pending_audio()
        return delivered

    async def _fetch_pending_audio(self) -> None:
        client = self._http_client()
        while True:
            response = await client.get(f"/sessions/{self._client_id}/audio")
            if response.status_code == 204:
                return
            response.raise_for_status()
            if self._on_audio is not None:
                self._on_audio(response.content)

    # -----------------------------------------------------------------------
    # Shared
    # -----------------------------------------------------------------------

    def _decode(self, raw: str) -> dict[str, Any] | None:
        try:
            event = json.loads(raw)
        except ValueError:
            logger.warning("malformed_server_event", client_id=self._client_id, raw=raw[:200])
            return None
        return event if isinstance(event, dict) else None

    def _deliver(self, event: dict[str, Any]) -> bool:
        """Forward one event unless it was already seen. Returns True if forwarded."""
        event_id = event.get("id")
        if isinstance(event_id, int):
            if event_id <= self._last_event_id:
                return False
            self._last_event_id = event_id

        self._tracker.on_event(event)
        if self._on_message is not None:
            self._on_message(event)
        return True

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        if self._on_status is not None:
            self._on_status(status)

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._policy.exhausted(self._attempts):
            exc = ReconnectExhaustedError(self._attempts)
            logger.error("reconnect_exhausted", client_id=self._client_id, error=str(exc))
            self._set_status(ConnectionStatus.ERROR)
            return

        self._attempts += 1
        delay = self._policy.delay_for(self._attempts)
        logger.info(
            "reconnect_scheduled",
            client_id=self._client_id,
            attempt=self._attempts,
            delay_s=delay,
        )
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay), name=f"reconnect-{self._client_id}"
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closing:
            return
        await self.connect()
