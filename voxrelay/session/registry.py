"""SessionRegistry: the process-wide map of client id to session.

Owns creation and destruction of ``ClientSession`` objects. A session is
created on first contact (socket attach or HTTP request) and destroyed when:

- its last socket sub-channel detaches (socket mode), or
- it has seen no activity for the idle timeout and has no socket attached
  (polling mode; see :meth:`SessionRegistry.sweep_idle`).

Teardown closes the recognizer handle and cancels every timer and
background task the session owns.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from voxrelay._types import ChannelType, TransportMode
from voxrelay.exceptions import SessionNotFoundError, TransportConflictError
from voxrelay.logging import get_logger
from voxrelay.session.state import ClientSession

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from voxrelay.config.settings import SessionSettings
    from voxrelay.session.state import OutboundChannel

logger = get_logger("session.registry")


class SessionRegistry:
    """In-memory session store.

    Args:
        settings: Buffer sizes for newly created sessions.
        clock: Monotonic clock in seconds. Injectable for tests.
    """

    def __init__(
        self,
        settings: SessionSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._sessions: dict[str, ClientSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._sessions

    def __iter__(self) -> Iterator[ClientSession]:
        return iter(list(self._sessions.values()))

    def get(self, client_id: str) -> ClientSession | None:
        return self._sessions.get(client_id)

    def require(self, client_id: str) -> ClientSession:
        """Return the session or raise ``SessionNotFoundError``."""
        session = self._sessions.get(client_id)
        if session is None:
            raise SessionNotFoundError(client_id)
        return session

    def get_or_create(self, client_id: str, mode: TransportMode) -> ClientSession:
        session = self._sessions.get(client_id)
        if session is None:
            session = ClientSession.create(client_id, mode, self._settings, clock=self._clock)
            self._sessions[client_id] = session
            logger.info("session_created", client_id=client_id, transport=mode.value)
        return session

    def open_polling(self, client_id: str) -> ClientSession:
        """Session for an HTTP fallback request.

        Raises:
            TransportConflictError: If a socket sub-channel is attached.
        """
        session = self.get_or_create(client_id, TransportMode.POLLING)
        if session.has_socket:
            raise TransportConflictError(client_id)
        session.transport_mode = TransportMode.POLLING
        session.touch()
        return session

    def attach(
        self,
        client_id: str,
        channel_type: ChannelType,
        channel: OutboundChannel,
    ) -> tuple[ClientSession, OutboundChannel | None]:
        """Attach a socket sub-channel, creating the session if needed.

        Returns:
            The session and the channel this one replaced (if any). The
            caller is responsible for closing the replaced channel.
        """
        session = self.get_or_create(client_id, TransportMode.SOCKET)
        session.transport_mode = TransportMode.SOCKET
        previous = session.channel(channel_type)
        session.set_channel(channel_type, channel)
        session.touch()
        logger.info(
            "channel_attached",
            client_id=client_id,
            channel=channel_type.value,
            replaced=previous is not None,
        )
        return session, previous

    def detach(
        self,
        client_id: str,
        channel_type: ChannelType,
        channel: OutboundChannel,
    ) -> bool:
        """Detach a sub-channel if it is still the registered one.

        A channel that was already replaced by a newer connection is left
        alone.

        Returns:
            True if the session now has no sub-channels and should be torn down.
        """
        session = self._sessions.get(client_id)
        if session is None or session.channel(channel_type) is not channel:
            return False
        session.set_channel(channel_type, None)
        logger.info("channel_detached", client_id=client_id, channel=channel_type.value)
        return not session.has_socket

    async def teardown(self, client_id: str) -> bool:
        """Destroy a session and release everything it owns.

        Cleanup failures are logged, never raised. Returns False if the
        session did not exist.
        """
        session = self._sessions.pop(client_id, None)
        if session is None:
            return False

        session.closed = True
        session.recording = False
        session.current_transcript = ""
        session.playback.close()
        session.cancel_tasks()

        handle = session.recognizer
        session.recognizer = None
        if handle is not None:
            try:
                await handle.close()
            except Exception:
                logger.warning("recognizer_close_failed", client_id=client_id, exc_info=True)

        logger.info("session_destroyed", client_id=client_id)
        return True

    async def sweep_idle(self, idle_timeout_s: float) -> list[str]:
        """Tear down sessions with no socket and no activity for ``idle_timeout_s``.

        Returns:
            Client ids that were removed.
        """
        expired = [
            s.client_id
            for s in self._sessions.values()
            if not s.has_socket and s.idle_for() >= idle_timeout_s
        ]
        for client_id in expired:
            logger.info("session_idle_timeout", client_id=client_id, timeout_s=idle_timeout_s)
            await self.teardown(client_id)
        return expired

    async def close_all(self) -> None:
        """Tear down every session (server shutdown)."""
        for client_id in list(self._sessions):
            await self.teardown(client_id)
