"""Tests for the room registry."""
import pytest

from roomcast.chat.connection import ConnectionHandle
from roomcast.chat.registry import RoomRegistry


def make_handle(name: str, room_id: str) -> ConnectionHandle:
    return ConnectionHandle(None, room_id, name)


class TestRoomRegistry:
    def test_get_or_create_returns_same_live_room(self):
        registry = RoomRegistry()
        room = registry.get_or_create("r1")
        assert registry.get_or_create("r1") is room
        assert len(registry) == 1
        assert "r1" in registry

    def test_room_ids_are_case_sensitive(self):
        registry = RoomRegistry()
        assert registry.get_or_create("Room") is not registry.get_or_create("room")
        assert len(registry) == 2

    def test_rooms_inherit_limits(self):
        registry = RoomRegistry(history_limit=7, replay_limit=3)
        room = registry.get_or_create("r1")
        assert room.history_limit == 7
        assert room.replay_limit == 3

    def test_remove_is_idempotent(self):
        registry = RoomRegistry()
        registry.get_or_create("r1")
        assert registry.remove("r1") is True
        assert registry.remove("r1") is False
        assert len(registry) == 0

    def test_remove_ignores_stale_room(self):
        registry = RoomRegistry()
        old = registry.get_or_create("r1")
        registry.remove("r1")
        fresh = registry.get_or_create("r1")

        assert registry.remove("r1", old) is False
        assert registry.get("r1") is fresh

    def test_snapshot_and_clear(self):
        registry = RoomRegistry()
        room = registry.get_or_create("r1")
        assert registry.snapshot() == [{"roomId": "r1", "members": 0, "messages": 0}]

        registry.clear()
        assert len(registry) == 0
        assert room.closed

    @pytest.mark.asyncio
    async def test_room_removed_when_last_member_leaves(self):
        registry = RoomRegistry()
        room = registry.get_or_create("r1")
        alice, bob = make_handle("alice", "r1"), make_handle("bob", "r1")
        await room.join(alice)
        await room.join(bob)

        await room.leave(alice)
        assert "r1" in registry

        await room.leave(bob)
        assert "r1" not in registry

    @pytest.mark.asyncio
    async def test_rejoin_after_removal_creates_fresh_room(self):
        registry = RoomRegistry()
        room = registry.get_or_create("r1")
        alice = make_handle("alice", "r1")
        await room.join(alice)
        await room.publish(alice, "hello")
        await room.leave(alice)

        fresh = registry.get_or_create("r1")
        assert fresh is not room
        assert fresh.message_count == 0
        assert not fresh.closed

    def test_closed_room_still_mapped_is_replaced(self):
        registry = RoomRegistry()
        room = registry.get_or_create("r1")
        room.closed = True
        assert registry.get_or_create("r1") is not room
