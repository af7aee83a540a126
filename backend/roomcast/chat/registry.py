"""Room id to Room mapping.

Rooms are created lazily on first lookup and removed by the room itself
when its last member leaves. Lookups and inserts never await, so on a
single event loop ``get_or_create`` is atomic without a lock of its own;
per-room state is guarded by each room's lock, never a global one.
"""
import logging
from typing import Dict, List, Optional

from .room import DEFAULT_HISTORY_LIMIT, DEFAULT_REPLAY_LIMIT, Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Owns the set of live rooms.

    The registry is only iterated for diagnostics and shutdown; broadcast
    always goes through a single Room.
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        replay_limit: int = DEFAULT_REPLAY_LIMIT,
    ) -> None:
        self.history_limit = history_limit
        self.replay_limit = replay_limit
        self._rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> Room:
        """Return the live room for ``room_id``, creating an empty one if needed."""
        room = self._rooms.get(room_id)
        if room is not None and not room.closed:
            return room

        room = Room(
            room_id,
            history_limit=self.history_limit,
            replay_limit=self.replay_limit,
            on_empty=self._room_emptied,
        )
        self._rooms[room_id] = room
        logger.info(f"[Registry] Room {room_id} created ({len(self._rooms)} live rooms)")
        return room

    def remove(self, room_id: str, room: Optional[Room] = None) -> bool:
        """Drop the mapping for ``room_id``.

        Args:
            room_id: Room to remove.
            room: If given, only remove when the mapping still points at
                this exact room (a fresh room may already have replaced it).

        Returns:
            True if a mapping was removed, False if it was already gone.
        """
        current = self._rooms.get(room_id)
        if current is None:
            return False
        if room is not None and current is not room:
            return False
        del self._rooms[room_id]
        logger.info(f"[Registry] Room {room_id} removed ({len(self._rooms)} live rooms)")
        return True

    def clear(self) -> None:
        """Forget every room (server shutdown)."""
        for room in self._rooms.values():
            room.closed = True
        self._rooms.clear()

    def snapshot(self) -> List[dict]:
        """Per-room member and message counts for diagnostics."""
        return [
            {
                "roomId": room.id,
                "members": room.member_count,
                "messages": room.message_count,
            }
            for room in self._rooms.values()
        ]

    def _room_emptied(self, room: Room) -> None:
        self.remove(room.id, room)
