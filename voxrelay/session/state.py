"""Per-client session state.

One ``ClientSession`` exists per client id. It owns the recording flags,
the transcript buffer, the outbound event queue and id counter, the
recognizer handle, and the references to the socket sub-channels. All
mutation happens on the event loop; there is no locking except the send
lock that serializes writes to the control channel.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from voxrelay._types import AssistantState, ChannelType, LanguageSample, TransportMode
from voxrelay.config.settings import SessionSettings
from voxrelay.session.playback import PlaybackGate

if TYPE_CHECKING:
    from collections.abc import Callable

    from voxrelay.providers.interface import RecognizerHandle
    from voxrelay.server.models.events import ServerEventBase


class OutboundChannel(Protocol):
    """Server-side end of one socket sub-channel."""

    @property
    def is_open(self) -> bool: ...

    async def send_json(self, payload: dict[str, object]) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


@dataclass(slots=True)
class SessionPreferences:
    """Voice preferences from the last ``settings_update``."""

    voice: str | None = None
    language: str | None = None
    auto_language: bool = True


@dataclass(eq=False)
class ClientSession:
    """Mutable state for one client id.

    Construct via :meth:`create` so the bounded buffers pick up their
    configured sizes.
    """

    client_id: str
    transport_mode: TransportMode
    language_history: deque[LanguageSample]
    outbound_queue: deque[ServerEventBase]
    pending_audio: deque[bytes]
    playback: PlaybackGate
    clock: Callable[[], float] = time.monotonic
    recording: bool = False
    processing: bool = False
    current_transcript: str = ""
    recording_generation: int = 0
    outbound_seq: int = 0
    replay_pending: bool = False
    replay_floor: int = 0
    recognizer: RecognizerHandle | None = None
    control: OutboundChannel | None = None
    audio: OutboundChannel | None = None
    preferences: SessionPreferences = field(default_factory=SessionPreferences)
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    last_activity: float = 0.0
    closed: bool = False

    @classmethod
    def create(
        cls,
        client_id: str,
        transport_mode: TransportMode,
        settings: SessionSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> ClientSession:
        s = settings or SessionSettings()
        return cls(
            client_id=client_id,
            transport_mode=transport_mode,
            language_history=deque(maxlen=s.language_history_max),
            outbound_queue=deque(maxlen=s.outbound_queue_max),
            pending_audio=deque(maxlen=s.pending_audio_max),
            playback=PlaybackGate(client_id, clock=clock),
            clock=clock,
            last_activity=clock(),
        )

    @property
    def playing(self) -> bool:
        return self.playback.playing

    @property
    def assistant_state(self) -> AssistantState:
        """Conversational state derived from the flags."""
        if self.processing:
            return AssistantState.PROCESSING
        if self.playing:
            return AssistantState.RESPONDING
        if self.recording:
            return AssistantState.LISTENING
        return AssistantState.IDLE

    @property
    def has_socket(self) -> bool:
        """True while at least one socket sub-channel is attached."""
        return self.control is not None or self.audio is not None

    @property
    def detected_language(self) -> str | None:
        """Language of the most recent final utterance, if any."""
        if not self.language_history:
            return None
        return self.language_history[-1].language

    def channel(self, channel_type: ChannelType) -> OutboundChannel | None:
        return self.control if channel_type is ChannelType.CONTROL else self.audio

    def set_channel(self, channel_type: ChannelType, channel: OutboundChannel | None) -> None:
        """Install or clear a sub-channel.

        A new control channel starts with ``replay_pending`` set: events keep
        going to the outbound queue until :meth:`OutboundSequencer.replay`
        has caught the socket up, so nothing overtakes the replayed ids.
        """
        if channel_type is ChannelType.CONTROL:
            self.control = channel
            self.replay_pending = channel is not None
            self.replay_floor = self.outbound_seq
        else:
            self.audio = channel

    def touch(self) -> None:
        """Record client activity (for the idle sweeper)."""
        self.last_activity = self.clock()

    def idle_for(self) -> float:
        """Seconds since the last client activity."""
        return self.clock() - self.last_activity

    def recent_languages(self, count: int) -> list[LanguageSample]:
        if count <= 0:
            return []
        return list(self.language_history)[-count:]

    def consume_transcript(self) -> str:
        """Return the buffered final transcript and clear the buffer."""
        text = self.current_transcript
        self.current_transcript = ""
        return text

    def track(self, task: asyncio.Task[None]) -> None:
        """Keep a reference to a background task until it finishes."""
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def wait_for_tasks(self) -> None:
        """Wait for all tracked background tasks (tests and shutdown)."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)

    def cancel_tasks(self) -> None:
        for task in list(self.tasks):
            task.cancel()
