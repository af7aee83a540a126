"""Connection acceptance and the per-connection worker.

Each accepted WebSocket runs one worker (``BroadcastServer.serve``) that
walks an explicit state machine:

    CONNECTING -> JOINING -> ACTIVE -> CLOSING -> CLOSED

The worker owns two tasks while ACTIVE: a reader that parses inbound
events and dispatches them to the room, and the handle's writer that
drains the outbound queue. Whichever finishes first (peer disconnect,
unresponsive peer, local close) ends the session; cleanup always leaves
the room before the handle is closed.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from fastapi import WebSocket
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect, WebSocketState

from .connection import ConnectionHandle
from .registry import RoomRegistry
from .room import Room
from .schemas import InboundEvent, error_event
from roomcast.config import RoomSettings
from roomcast.errors import ConnectParamError, InvalidPayload, InvalidState, PeerUnresponsive

logger = logging.getLogger(__name__)

# WebSocket close codes (RFC 6455)
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_POLICY_VIOLATION = 1008
CLOSE_INTERNAL_ERROR = 1011

INVALID_FORMAT = "Invalid message format"


class SessionState(str, Enum):
    CONNECTING = "connecting"
    JOINING = "joining"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


def parse_connect_params(room: Optional[str], username: Optional[str]) -> Tuple[str, str]:
    """Validate the handshake query parameters.

    Raises:
        ConnectParamError: Either parameter is missing or empty.
    """
    if not room or not username:
        raise ConnectParamError("Missing room or username parameters")
    return room, username


def parse_inbound(raw: str) -> InboundEvent:
    """Parse one inbound text frame.

    Raises:
        InvalidPayload: Not JSON, not an object, or not a known event.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidPayload(INVALID_FORMAT) from exc
    if not isinstance(data, dict):
        raise InvalidPayload(INVALID_FORMAT)
    try:
        return InboundEvent.model_validate(data)
    except ValidationError as exc:
        raise InvalidPayload(INVALID_FORMAT) from exc


class BroadcastServer:
    """Accepts connections and binds each one to a room.

    The server owns the room registry for its whole lifetime; it is
    created once per application and reached through ``app.state``.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        send_queue_size: int = 256,
        send_timeout: float = 5.0,
    ) -> None:
        self.registry = registry
        self.send_queue_size = send_queue_size
        self.send_timeout = send_timeout
        self._handles: Dict[str, ConnectionHandle] = {}
        self._workers: Set[asyncio.Task] = set()
        self._shutting_down = False

    @classmethod
    def from_settings(cls, settings: RoomSettings) -> "BroadcastServer":
        registry = RoomRegistry(
            history_limit=settings.history_limit,
            replay_limit=settings.replay_limit,
        )
        return cls(
            registry,
            send_queue_size=settings.send_queue_size,
            send_timeout=settings.send_timeout_seconds,
        )

    @property
    def connection_count(self) -> int:
        return len(self._handles)

    def stats(self) -> dict:
        """Live room and connection counts for diagnostics."""
        return {
            "rooms": len(self.registry),
            "connections": len(self._handles),
            "details": self.registry.snapshot(),
        }

    async def serve(self, websocket: WebSocket, room_id: str, participant_id: str) -> None:
        """Run one connection from accept to close.

        Args:
            websocket: The not yet accepted WebSocket.
            room_id: Validated room parameter.
            participant_id: Validated username parameter.
        """
        state = SessionState.CONNECTING
        if self._shutting_down:
            await websocket.close(code=CLOSE_GOING_AWAY)
            return

        await websocket.accept()
        state = SessionState.JOINING
        handle = ConnectionHandle(
            websocket,
            room_id,
            participant_id,
            queue_size=self.send_queue_size,
            send_timeout=self.send_timeout,
        )
        self._handles[handle.id] = handle
        worker = asyncio.current_task()
        if worker is not None:
            self._workers.add(worker)

        room: Optional[Room] = None
        reader: Optional[asyncio.Task] = None
        writer = asyncio.create_task(handle.run_writer())
        close_code = CLOSE_NORMAL

        try:
            room = await self._join(handle)
            if room is None:
                close_code = CLOSE_INTERNAL_ERROR
                return

            state = SessionState.ACTIVE
            reader = asyncio.create_task(self._receive_loop(handle, room))
            await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            close_code = self._close_code(handle)
        finally:
            previous, state = state, SessionState.CLOSING
            logger.info(
                f"[Server] {participant_id} leaving room {room_id} "
                f"({previous.value} -> {state.value}, code={close_code})"
            )
            # Room state is released before anything that may suspend
            if room is not None:
                await room.leave(handle)
            handle.close()
            self._handles.pop(handle.id, None)
            if worker is not None:
                self._workers.discard(worker)
            await self._finish_tasks(handle, reader, writer)
            await self._close_socket(websocket, close_code)
            state = SessionState.CLOSED
            logger.debug(f"[Server] Connection {handle.id} {state.value}")

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Close every connection and release all rooms."""
        self._shutting_down = True
        handles = list(self._handles.values())
        logger.info(f"[Server] Shutting down, closing {len(handles)} connections")
        for handle in handles:
            handle.close()

        workers = [task for task in self._workers if task is not asyncio.current_task()]
        if workers:
            _, pending = await asyncio.wait(workers, timeout=timeout)
            if pending:
                logger.warning(f"[Server] {len(pending)} connections did not close in time")
        self.registry.clear()

    async def _join(self, handle: ConnectionHandle) -> Optional[Room]:
        # A room can be destroyed between lookup and join; re-resolve once.
        for attempt in (1, 2):
            room = self.registry.get_or_create(handle.room_id)
            try:
                await room.join(handle)
                return room
            except InvalidState:
                logger.warning(
                    f"[Server] Room {handle.room_id} destroyed while "
                    f"{handle.participant_id} was joining (attempt {attempt})"
                )
        logger.error(f"[Server] Giving up joining room {handle.room_id}")
        return None

    async def _receive_loop(self, handle: ConnectionHandle, room: Room) -> None:
        websocket = handle.websocket
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                try:
                    raw = message["bytes"].decode("utf-8")
                except UnicodeDecodeError:
                    raw = None

            try:
                if raw is None:
                    raise InvalidPayload(INVALID_FORMAT)
                event = parse_inbound(raw)
                await room.publish(handle, event.content)
            except InvalidPayload as exc:
                logger.info(f"[Server] Rejected payload from {handle.participant_id}: {exc}")
                handle.send(error_event(str(exc)))
            except InvalidState as exc:
                logger.warning(f"[Server] Dropped message from {handle.participant_id}: {exc}")

    def _close_code(self, handle: ConnectionHandle) -> int:
        if handle.unresponsive:
            return CLOSE_POLICY_VIOLATION
        if self._shutting_down:
            return CLOSE_GOING_AWAY
        return CLOSE_NORMAL

    async def _finish_tasks(
        self,
        handle: ConnectionHandle,
        reader: Optional[asyncio.Task],
        writer: asyncio.Task,
    ) -> None:
        tasks = [task for task in (reader, writer) if task is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, PeerUnresponsive):
                logger.warning(f"[Server] Peer unresponsive in room {handle.room_id}: {result}")
            elif isinstance(result, Exception):
                logger.error(
                    f"[Server] Connection {handle.id} failed: {result!r}",
                    exc_info=result,
                )

    async def _close_socket(self, websocket: WebSocket, code: int) -> None:
        if (
            websocket.application_state != WebSocketState.CONNECTED
            or websocket.client_state != WebSocketState.CONNECTED
        ):
            return
        try:
            await websocket.close(code=code)
        except (RuntimeError, WebSocketDisconnect) as e:
            logger.debug(f"[Server] Socket already closed: {e!r}")
