"""Tests for VoiceTransport in SOCKET mode, with an in-memory fake connector."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import numpy as np
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from voxrelay._types import ConnectionStatus, TransportMode
from voxrelay.client.transport import VoiceTransport
from voxrelay.config.settings import ClientSettings
from voxrelay.server.models.events import PingCommand, now_ms

_CLOSED = object()


class FakeSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(
        self,
        url: str,
        kwargs: dict[str, Any],
        *,
        answer_ready: bool = True,
        ready_id: int | None = None,
    ) -> None:
        self.url = url
        self.kwargs = kwargs
        self.sent: list[str | bytes] = []
        self.closed_with: int | None = None
        self._answer_ready = answer_ready
        self._ready_id = ready_id
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self._next_id = 1

    def push(self, item: Any) -> None:
        self._incoming.put_nowait(item)

    def push_event(self, **event: Any) -> None:
        self.push(json.dumps(event))

    def drop(self, code: int = 1011) -> None:
        self.push(ConnectionClosedError(Close(code, "gone"), None))

    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.sent if isinstance(m, str)]

    async def send(self, message: str | bytes) -> None:
        self.sent.append(message)
        if isinstance(message, str) and self._answer_ready:
            payload = json.loads(message)
            if payload.get("type") == "connection_ready":
                ready_id = self._ready_id or payload.get("lastEventId", 0) + 1
                self.push_event(type="server_ready", status="connected", id=ready_id)

    async def recv(self) -> Any:
        item = await self._incoming.get()
        if isinstance(item, Exception):
            raise item
        if item is _CLOSED:
            raise ConnectionClosedError(None, None)
        return item

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed_with is None:
            self.closed_with = code
            self.push(_CLOSED)


class FakeConnector:
    """Records every connect call and hands out FakeSockets."""

    def __init__(self, *, answer_ready: bool = True, fail: Exception | None = None) -> None:
        self.sockets: list[FakeSocket] = []
        self.calls = 0
        self.answer_ready = answer_ready
        self.ready_id: int | None = None
        self.fail = fail

    async def __call__(self, url: str, **kwargs: Any) -> FakeSocket:
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        ws = FakeSocket(url, kwargs, answer_ready=self.answer_ready, ready_id=self.ready_id)
        self.sockets.append(ws)
        return ws

    def control(self, index: int = -1) -> FakeSocket:
        return [s for s in self.sockets if "type=control" in s.url][index]

    def audio(self, index: int = -1) -> FakeSocket:
        return [s for s in self.sockets if "type=audio" in s.url][index]


def _settings(**overrides: Any) -> ClientSettings:
    values: dict[str, Any] = {
        "server_url": "https://voice.example.com",
        "reconnect_base_s": 0.0,
        "reconnect_increment_s": 0.0,
        "reconnect_max_s": 1.0,
        "max_reconnect_attempts": 3,
        "handshake_timeout_s": 1.0,
    }
    values.update(overrides)
    return ClientSettings(**values)


async def _until(predicate: Any, timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


class TestConnect:
    async def test_control_handshake_then_audio(self) -> None:
        connector = FakeConnector()
        messages: list[dict[str, Any]] = []
        statuses: list[ConnectionStatus] = []
        transport = VoiceTransport(
            "client 1",
            mode=TransportMode.SOCKET,
            settings=_settings(),
            on_message=messages.append,
            on_status=statuses.append,
            connector=connector,
        )

        assert await transport.connect() is True

        first, second = connector.sockets
        assert first.url == "wss://voice.example.com/ws?clientId=client+1&type=control"
        assert second.url == "wss://voice.example.com/ws?clientId=client+1&type=audio"
        assert second.kwargs["max_size"] == 16 * 1024 * 1024
        ready = first.sent_json()[0]
        assert ready["type"] == "connection_ready"
        assert ready["lastEventId"] == 0
        assert second.sent_json()[0]["type"] == "audio_connection_ready"
        assert [m["type"] for m in messages] == ["server_ready"]
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
        await transport.disconnect()

    async def test_handshake_timeout_without_retries_is_error(self) -> None:
        connector = FakeConnector(answer_ready=False)
        transport = VoiceTransport(
            "c1",
            settings=_settings(handshake_timeout_s=0.05, max_reconnect_attempts=0),
            connector=connector,
        )

        assert await transport.connect() is False

        assert transport.status is ConnectionStatus.ERROR
        assert connector.calls == 1
        assert connector.control().closed_with == 1000


class TestEvents:
    async def test_ordered_and_deduplicated(self) -> None:
        connector = FakeConnector()
        messages: list[dict[str, Any]] = []
        transport = VoiceTransport(
            "c1", settings=_settings(), on_message=messages.append, connector=connector
        )
        await transport.connect()
        control = connector.control()

        control.push_event(type="pong", id=2, latency=3)
        control.push_event(type="pong", id=2, latency=3)
        control.push_event(type="pong", id=1, latency=3)
        control.push("not json")
        control.push_event(type="pong", id=3, latency=3)
        await _until(lambda: transport.last_event_id == 3)

        assert [m["id"] for m in messages] == [1, 2, 3]
        await transport.disconnect()

    async def test_reply_audio_reaches_callback(self) -> None:
        connector = FakeConnector()
        audio: list[bytes] = []
        transport = VoiceTransport("c1", settings=_settings(), on_audio=audio.append, connector=connector)
        await transport.connect()

        connector.audio().push(b"\xff\xfb" * 10)
        await _until(lambda: len(audio) == 1)

        assert audio == [b"\xff\xfb" * 10]
        await transport.disconnect()


class TestSend:
    async def test_control_and_audio(self) -> None:
        connector = FakeConnector()
        transport = VoiceTransport("c1", settings=_settings(), connector=connector)
        await transport.connect()

        assert await transport.send_control_message(PingCommand(timestamp=now_ms()))
        assert await transport.send_audio_data(np.zeros(160, dtype=np.float32))
        assert await transport.send_audio_data(b"\x01\x02")

        assert connector.control().sent_json()[-1]["type"] == "ping"
        frames = [m for m in connector.audio().sent if isinstance(m, bytes)]
        assert [len(f) for f in frames] == [320, 2]
        await transport.disconnect()

    async def test_not_connected_returns_false(self) -> None:
        transport = VoiceTransport("c1", settings=_settings(), connector=FakeConnector())

        assert await transport.send_control_message({"type": "ping", "timestamp": 1}) is False
        assert await transport.send_audio_data(b"\x00\x00") is False


class TestReconnect:
    async def test_abnormal_close_reconnects_with_last_event_id(self) -> None:
        connector = FakeConnector()
        statuses: list[ConnectionStatus] = []
        transport = VoiceTransport(
            "c1", settings=_settings(), on_status=statuses.append, connector=connector
        )
        await transport.connect()
        connector.control().push_event(type="pong", id=7, latency=1)
        await _until(lambda: transport.last_event_id == 7)

        connector.control().drop(1011)
        await _until(lambda: len(connector.sockets) == 4 and transport.status is ConnectionStatus.CONNECTED)

        resumed = connector.control().sent_json()[0]
        assert resumed["lastEventId"] == 7
        assert ConnectionStatus.DISCONNECTED in statuses
        assert transport.reconnect_attempts == 0
        await transport.disconnect()

    async def test_normal_close_does_not_reconnect(self) -> None:
        connector = FakeConnector()
        transport = VoiceTransport("c1", settings=_settings(), connector=connector)
        await transport.connect()

        connector.control().drop(1000)
        await _until(lambda: transport.status is ConnectionStatus.DISCONNECTED)
        await asyncio.sleep(0.01)

        assert len(connector.sockets) == 2
        assert transport.reconnect_attempts == 0
        await transport.disconnect()

    async def test_gives_up_after_max_attempts(self) -> None:
        connector = FakeConnector(fail=OSError("connection refused"))
        statuses: list[ConnectionStatus] = []
        transport = VoiceTransport(
            "c1",
            settings=_settings(max_reconnect_attempts=2),
            on_status=statuses.append,
            connector=connector,
        )

        assert await transport.connect() is False
        await _until(lambda: transport.status is ConnectionStatus.ERROR)

        assert connector.calls == 3
        assert statuses[-1] is ConnectionStatus.ERROR

    async def test_connect_after_error_resets_attempts(self) -> None:
        connector = FakeConnector(fail=OSError("connection refused"))
        transport = VoiceTransport(
            "c1", settings=_settings(max_reconnect_attempts=0), connector=connector
        )
        await transport.connect()
        assert transport.status is ConnectionStatus.ERROR

        connector.fail = None
        assert await transport.connect() is True
        assert transport.reconnect_attempts == 0
        await transport.disconnect()

    async def test_disconnect_stops_reconnecting(self) -> None:
        connector = FakeConnector()
        transport = VoiceTransport(
            "c1",
            settings=_settings(reconnect_base_s=0.5, reconnect_max_s=1.0),
            connector=connector,
        )
        await transport.connect()

        connector.control().drop(1011)
        await _until(lambda: transport.reconnect_attempts == 1)
        await transport.disconnect()
        await asyncio.sleep(0.01)

        assert len(connector.sockets) == 2
        assert transport.status is ConnectionStatus.DISCONNECTED


class TestResumeHandshake:
    async def test_cursor_travels_with_connection_ready(self) -> None:
        connector = FakeConnector()
        messages: list[dict[str, Any]] = []
        transport = VoiceTransport(
            "c1", settings=_settings(), on_message=messages.append, connector=connector
        )
        await transport.connect()
        connector.control().push_event(type="pong", id=6, latency=1)
        await _until(lambda: transport.last_event_id == 6)
        await transport.disconnect()

        assert await transport.connect() is True

        assert connector.control().sent_json()[0]["lastEventId"] == 6
        assert messages[-1]["type"] == "server_ready"
        assert messages[-1]["id"] == 7
        await transport.disconnect()

    async def test_server_ready_below_cursor_fails_handshake(self) -> None:
        connector = FakeConnector()
        messages: list[dict[str, Any]] = []
        transport = VoiceTransport(
            "c1",
            settings=_settings(handshake_timeout_s=0.05, max_reconnect_attempts=0),
            on_message=messages.append,
            connector=connector,
        )
        await transport.connect()
        connector.control().push_event(type="pong", id=6, latency=1)
        await _until(lambda: transport.last_event_id == 6)
        await transport.disconnect()
        messages.clear()

        connector.ready_id = 1
        connected = await transport.connect()

        assert connected is False
        assert transport.status is ConnectionStatus.ERROR
        assert messages == []
