"""Outbound sequencer: ids, ordering, and delivery of server events.

Every server event gets the next id from the session's counter at the
moment it is enqueued, before any await, so ids follow enqueue order.
Delivery then goes one of two ways:

- control sub-channel live: sent immediately, writes serialized by the
  session's send lock so frames reach the socket in id order;
- otherwise: appended to the bounded outbound queue, where a polling client
  picks it up with ``drain_after``. A freshly attached control channel is
  not live until ``replay`` has sent it the queued backlog.

A send that fails because the socket closed underneath us falls back to the
queue, so the event is not lost.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from voxrelay.exceptions import ChannelClosedError
from voxrelay.logging import get_logger
from voxrelay.server.models.events import ServerEventBase

if TYPE_CHECKING:
    from voxrelay.session.state import ClientSession

logger = get_logger("session.sequencer")

_E = TypeVar("_E", bound=ServerEventBase)


class OutboundSequencer:
    """Assigns ids to server events and routes them to socket or queue."""

    async def enqueue(self, session: ClientSession, event: _E) -> _E:
        """Assign the next id and deliver (or queue) the event.

        Returns:
            The event carrying its assigned id.
        """
        session.outbound_seq += 1
        sequenced = event.model_copy(update={"id": session.outbound_seq})

        channel = session.control
        if channel is not None and channel.is_open and not session.replay_pending:
            async with session.send_lock:
                try:
                    await channel.send_json(sequenced.to_wire())
                except ChannelClosedError as exc:
                    logger.info(
                        "event_send_failed_queued",
                        client_id=session.client_id,
                        event_id=sequenced.id,
                        event_type=sequenced.type,  # type: ignore[attr-defined]
                        reason=exc.reason,
                    )
                else:
                    return sequenced

        self._append(session, sequenced)
        return sequenced

    def drain_after(self, session: ClientSession, last_seen_id: int) -> list[ServerEventBase]:
        """Queued events with ``id > last_seen_id``, ascending.

        Does not remove anything: the client acknowledges by advancing
        ``last_seen_id`` on its next poll, and old events age out of the
        bounded queue.
        """
        return [e for e in session.outbound_queue if e.id is not None and e.id > last_seen_id]

    async def replay(self, session: ClientSession, last_seen_id: int) -> int:
        """Catch a newly attached control channel up, then make it live.

        Sends queued events newer than ``last_seen_id`` in id order, including
        any queued while the replay itself was sending. ``replay_pending`` is
        cleared only once the queue holds nothing newer, with the send lock
        still held, so later events follow the replayed ones on the wire.

        Returns:
            The number of events sent. Stops at the first failed send and
            leaves the channel pending.
        """
        channel = session.control
        if channel is None or not channel.is_open:
            return 0

        sent = 0
        cursor = last_seen_id
        async with session.send_lock:
            pending = self.drain_after(session, cursor)
            while pending:
                for event in pending:
                    try:
                        await channel.send_json(event.to_wire())
                    except ChannelClosedError:
                        logger.info(
                            "replay_interrupted",
                            client_id=session.client_id,
                            sent=sent,
                            next_id=event.id,
                        )
                        return sent
                    sent += 1
                    cursor = event.id or cursor
                pending = self.drain_after(session, cursor)
            if session.control is channel:
                session.replay_pending = False

        if sent:
            logger.info(
                "queued_events_replayed",
                client_id=session.client_id,
                count=sent,
                after=last_seen_id,
            )
        return sent

    def rebase(self, session: ClientSession, floor: int) -> None:
        """Move the session's ids above a client cursor from an earlier session.

        A session created after teardown (or a server restart) counts from 0,
        while the returning client still holds its old cursor and would drop
        every id at or below it. Queued events are renumbered to follow
        ``floor`` in their original order, and the counter continues from there.
        """
        if floor <= session.outbound_seq:
            return
        queue = session.outbound_queue
        renumbered = [e.model_copy(update={"id": (e.id or 0) + floor}) for e in queue]
        queue.clear()
        queue.extend(renumbered)
        session.outbound_seq += floor
        session.replay_floor += floor
        logger.info(
            "event_ids_rebased",
            client_id=session.client_id,
            floor=floor,
            next_id=session.outbound_seq + 1,
        )

    def _append(self, session: ClientSession, event: ServerEventBase) -> None:
        queue = session.outbound_queue
        if queue.maxlen is not None and len(queue) == queue.maxlen:
            logger.debug(
                "outbound_queue_evicted",
                client_id=session.client_id,
                evicted_id=queue[0].id,
            )
        queue.append(event)
