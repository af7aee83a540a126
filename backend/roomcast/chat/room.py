"""A single chat room: its members and its bounded message history.

All membership and history mutations run under the room's own
``asyncio.Lock``. Inside the critical section the room only appends to
in-memory state and enqueues events on member handles (non-blocking), so
the lock is never held across network I/O. Because append and fan-out
happen in one critical section, every member's queue receives the room's
events in the same total order.
"""
import asyncio
import logging
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from .connection import ConnectionHandle
from .schemas import (
    ChatMessage,
    history_event,
    message_event,
    user_count_event,
)
from roomcast.errors import InvalidPayload, InvalidState

logger = logging.getLogger(__name__)

# Default number of messages retained per room
DEFAULT_HISTORY_LIMIT = 100

# Default number of messages replayed to a joining member
DEFAULT_REPLAY_LIMIT = 50


class Room:
    """Members plus bounded history for one room id.

    A room is created by the registry on first join and destroyed the
    moment its last member leaves. Once destroyed (``closed``) it rejects
    joins and publishes with :class:`InvalidState`; callers re-resolve the
    room through the registry.

    Attributes:
        id: The room identifier.
        history_limit: Maximum number of messages retained (oldest evicted).
        replay_limit: Maximum number of messages replayed on join.
    """

    def __init__(
        self,
        room_id: str,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        replay_limit: int = DEFAULT_REPLAY_LIMIT,
        on_empty: Optional[Callable[["Room"], None]] = None,
    ) -> None:
        self.id = room_id
        self.history_limit = history_limit
        self.replay_limit = replay_limit
        self._members: Dict[str, ConnectionHandle] = {}
        self._history: Deque[ChatMessage] = deque(maxlen=history_limit)
        self._lock = asyncio.Lock()
        self._on_empty = on_empty
        self.closed = False

    def __repr__(self) -> str:
        return (
            f"Room(id={self.id!r}, members={len(self._members)}, "
            f"messages={len(self._history)}, closed={self.closed})"
        )

    @property
    def member_count(self) -> int:
        return len(self._members)

    @property
    def message_count(self) -> int:
        return len(self._history)

    def has_member(self, handle: ConnectionHandle) -> bool:
        return handle.id in self._members

    def get_history(self, limit: Optional[int] = None) -> List[ChatMessage]:
        """Return retained messages, oldest first, optionally only the last ``limit``."""
        messages = list(self._history)
        if limit is None:
            return messages
        return messages[-limit:] if limit > 0 else []

    async def join(self, handle: ConnectionHandle) -> List[ChatMessage]:
        """Register ``handle`` and replay recent history to it.

        The replay (at most ``replay_limit`` messages) is enqueued to the
        new member before the updated ``userCount`` goes out to everyone,
        so the replay is always a prefix of what the member sees live.

        Args:
            handle: The joining connection.

        Returns:
            Snapshot of the full retained history, oldest first.

        Raises:
            InvalidState: The room was already destroyed.
        """
        async with self._lock:
            if self.closed:
                raise InvalidState(f"room {self.id} has been destroyed")

            self._members[handle.id] = handle
            snapshot = list(self._history)
            replay = snapshot[-self.replay_limit:] if self.replay_limit else []
            handle.send(history_event(replay))
            self._broadcast(user_count_event(len(self._members)))

        logger.info(
            f"[Room] {handle.participant_id} joined room {self.id} "
            f"({len(self._members)} members, replayed {len(replay)} messages)"
        )
        return snapshot

    async def leave(self, handle: ConnectionHandle) -> None:
        """Remove ``handle``; destroy the room once nobody is left. Idempotent."""
        async with self._lock:
            if self._members.pop(handle.id, None) is None:
                return

            remaining = len(self._members)
            self._broadcast(user_count_event(remaining))
            if remaining == 0:
                self.closed = True
                self._history.clear()
                if self._on_empty is not None:
                    self._on_empty(self)

        logger.info(
            f"[Room] {handle.participant_id} left room {self.id} ({remaining} members)"
        )

    async def publish(self, sender: ConnectionHandle, content: str) -> ChatMessage:
        """Append a message to history and broadcast it, sender included.

        Args:
            sender: The publishing connection.
            content: Raw message text.

        Returns:
            The stored message with server-assigned id and timestamp.

        Raises:
            InvalidPayload: Content is empty or whitespace only.
            InvalidState: The room was already destroyed.
        """
        if not isinstance(content, str) or not content.strip():
            raise InvalidPayload("Invalid message format: content is required")

        async with self._lock:
            if self.closed:
                raise InvalidState(f"room {self.id} has been destroyed")

            message = ChatMessage(
                content=content,
                sender=sender.participant_id,
                roomId=self.id,
            )
            # deque(maxlen) evicts the oldest entry on overflow
            self._history.append(message)
            delivered = self._broadcast(message_event(message))

        logger.debug(
            "[Room] %s published %s in room %s (delivered to %d)",
            sender.participant_id, message.id, self.id, delivered,
        )
        return message

    def _broadcast(self, event: dict) -> int:
        """Enqueue ``event`` on every open member. Caller holds the lock."""
        delivered = 0
        for handle in self._members.values():
            if not handle.is_open:
                continue
            if handle.send(event):
                delivered += 1
        return delivered
