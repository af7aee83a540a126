"""Server-side handle for one client's WebSocket.

A handle owns a bounded outbound queue drained by a single writer
coroutine, so callers (the Room, under its lock) only ever enqueue and
never wait on network I/O. Per-connection ordering is the queue's FIFO
order.

Liveness:
    OPEN     accepts and delivers events.
    CLOSING  peer stopped keeping up (queue full or send timed out);
             nothing more is accepted, the worker is tearing it down.
    CLOSED   terminal; queued events released.
"""
import asyncio
import logging
import uuid
from enum import Enum

from fastapi import WebSocket

from roomcast.errors import PeerUnresponsive

logger = logging.getLogger(__name__)

# Sentinel telling the writer to stop
_STOP = object()


class Liveness(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionHandle:
    """One participant's live duplex channel.

    Attributes:
        id: Server-generated handle identifier.
        room_id: Room this handle is bound to for its whole lifetime.
        participant_id: Display name supplied at connect time.
        state: Current liveness.
        unresponsive: True once the peer was declared unresponsive.
    """

    def __init__(
        self,
        websocket: WebSocket,
        room_id: str,
        participant_id: str,
        *,
        queue_size: int = 256,
        send_timeout: float = 5.0,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.room_id = room_id
        self.participant_id = participant_id
        self.state = Liveness.OPEN
        self.unresponsive = False
        self._send_timeout = send_timeout
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._stop_queued = False

    def __repr__(self) -> str:
        return (
            f"ConnectionHandle(id={self.id!r}, room_id={self.room_id!r}, "
            f"participant_id={self.participant_id!r}, state={self.state.value})"
        )

    @property
    def is_open(self) -> bool:
        return self.state is Liveness.OPEN

    @property
    def pending(self) -> int:
        """Number of events waiting to be written."""
        return self._queue.qsize()

    def send(self, event: dict) -> bool:
        """Enqueue an outbound event without blocking.

        Returns:
            True if queued, False if the handle is not open or the peer
            has fallen too far behind (the handle then moves to CLOSING).
        """
        if self.state is not Liveness.OPEN:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "[Conn] %s in room %s is not draining its queue (%d pending); closing",
                self.participant_id, self.room_id, self._queue.qsize(),
            )
            self.unresponsive = True
            self._stop(Liveness.CLOSING)
            return False
        return True

    def close(self) -> None:
        """Transition to CLOSED and release queued events. Idempotent."""
        if self.state is Liveness.CLOSED:
            return
        self._stop(Liveness.CLOSED)

    async def run_writer(self) -> None:
        """Deliver queued events in order until the handle stops.

        Raises:
            PeerUnresponsive: A single send exceeded the send timeout.
        """
        while True:
            event = await self._queue.get()
            if event is _STOP:
                return
            try:
                await asyncio.wait_for(
                    self.websocket.send_json(event), timeout=self._send_timeout
                )
            except asyncio.TimeoutError as exc:
                self.unresponsive = True
                self._stop(Liveness.CLOSING)
                raise PeerUnresponsive(
                    f"send to {self.participant_id} blocked for more than "
                    f"{self._send_timeout}s"
                ) from exc
            except Exception as e:
                # Socket already gone; the reader sees the disconnect.
                logger.debug("[Conn] Failed to send to %s: %s", self.id, e)
                self._stop(Liveness.CLOSING)
                return

    def _stop(self, state: Liveness) -> None:
        if self.state is not Liveness.CLOSED:
            self.state = state
        if self._stop_queued:
            return
        self._stop_queued = True
        self._drain()
        self._queue.put_nowait(_STOP)

    def _drain(self) -> int:
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            dropped += 1
        if dropped:
            logger.debug("[Conn] Dropped %d queued events for %s", dropped, self.id)
        return dropped
