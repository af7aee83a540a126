"""Tests for Room membership, history and broadcast semantics."""
import pytest

from roomcast.chat.connection import ConnectionHandle, Liveness
from roomcast.chat.room import Room
from roomcast.errors import InvalidPayload, InvalidState


def make_handle(name: str, room_id: str = "r1", queue_size: int = 256) -> ConnectionHandle:
    return ConnectionHandle(None, room_id, name, queue_size=queue_size)


def drain(handle: ConnectionHandle) -> list:
    """Pop every queued outbound event (the writer is not running here)."""
    events = []
    while not handle._queue.empty():
        events.append(handle._queue.get_nowait())
    return events


def counts(events: list) -> list:
    return [e["count"] for e in events if e["type"] == "userCount"]


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_replays_history_then_count(self):
        room = Room("r1")
        alice = make_handle("alice")

        snapshot = await room.join(alice)

        assert snapshot == []
        assert drain(alice) == [
            {"type": "history", "messages": []},
            {"type": "userCount", "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_join_broadcasts_post_join_count_to_everyone(self):
        room = Room("r1")
        alice, bob = make_handle("alice"), make_handle("bob")
        await room.join(alice)
        drain(alice)

        await room.join(bob)

        assert counts(drain(alice)) == [2]
        assert counts(drain(bob)) == [2]
        assert room.member_count == 2

    @pytest.mark.asyncio
    async def test_join_closed_room_raises(self):
        room = Room("r1")
        alice = make_handle("alice")
        await room.join(alice)
        await room.leave(alice)

        with pytest.raises(InvalidState):
            await room.join(make_handle("bob"))

    @pytest.mark.asyncio
    async def test_join_returns_full_snapshot_but_replays_tail(self):
        room = Room("r1", history_limit=10, replay_limit=4)
        alice = make_handle("alice")
        await room.join(alice)
        for i in range(7):
            await room.publish(alice, f"m{i}")

        bob = make_handle("bob")
        snapshot = await room.join(bob)

        assert [m.content for m in snapshot] == [f"m{i}" for i in range(7)]
        replay = drain(bob)[0]
        assert [m["content"] for m in replay["messages"]] == ["m3", "m4", "m5", "m6"]

    @pytest.mark.asyncio
    async def test_zero_replay_limit_sends_empty_history(self):
        room = Room("r1", replay_limit=0)
        alice = make_handle("alice")
        await room.join(alice)
        await room.publish(alice, "hello")

        bob = make_handle("bob")
        await room.join(bob)
        assert drain(bob)[0] == {"type": "history", "messages": []}


class TestLeave:
    @pytest.mark.asyncio
    async def test_leave_broadcasts_remaining_count(self):
        room = Room("r1")
        alice, bob = make_handle("alice"), make_handle("bob")
        await room.join(alice)
        await room.join(bob)
        drain(alice)
        drain(bob)

        await room.leave(bob)

        assert counts(drain(alice)) == [1]
        assert drain(bob) == []
        assert not room.has_member(bob)

    @pytest.mark.asyncio
    async def test_leave_is_idempotent(self):
        room = Room("r1")
        alice, bob = make_handle("alice"), make_handle("bob")
        await room.join(alice)
        await room.join(bob)
        drain(alice)

        await room.leave(bob)
        await room.leave(bob)

        assert counts(drain(alice)) == [1]
        assert room.member_count == 1

    @pytest.mark.asyncio
    async def test_last_leave_closes_room_and_signals_once(self):
        emptied = []
        room = Room("r1", on_empty=emptied.append)
        alice = make_handle("alice")
        await room.join(alice)
        await room.publish(alice, "bye")

        await room.leave(alice)
        await room.leave(alice)

        assert room.closed
        assert room.message_count == 0
        assert emptied == [room]

    @pytest.mark.asyncio
    async def test_count_tracks_membership_through_churn(self):
        room = Room("r1")
        observer = make_handle("observer")
        await room.join(observer)
        drain(observer)

        others = [make_handle(f"u{i}") for i in range(4)]
        expected = []
        for handle in others:
            await room.join(handle)
            expected.append(room.member_count)
        for handle in others[:2]:
            await room.leave(handle)
            expected.append(room.member_count)

        assert counts(drain(observer)) == expected == [2, 3, 4, 5, 4, 3]


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_echoes_to_sender_and_peers(self):
        room = Room("r1")
        alice, bob = make_handle("alice"), make_handle("bob")
        await room.join(alice)
        await room.join(bob)
        drain(alice)
        drain(bob)

        message = await room.publish(alice, "hi")

        expected = {"type": "message", **message.model_dump()}
        assert drain(alice) == [expected]
        assert drain(bob) == [expected]
        assert message.sender == "alice"
        assert message.roomId == "r1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", " ", "\n\t"])
    async def test_publish_rejects_blank_content(self, content):
        room = Room("r1")
        alice, bob = make_handle("alice"), make_handle("bob")
        await room.join(alice)
        await room.join(bob)
        drain(alice)
        drain(bob)

        with pytest.raises(InvalidPayload):
            await room.publish(alice, content)

        assert drain(alice) == []
        assert drain(bob) == []
        assert room.message_count == 0

    @pytest.mark.asyncio
    async def test_history_evicts_oldest_first(self):
        room = Room("r1", history_limit=100)
        alice = make_handle("alice", queue_size=1000)
        await room.join(alice)
        for i in range(105):
            await room.publish(alice, f"m{i}")

        history = room.get_history()
        assert len(history) == 100
        assert history[0].content == "m5"
        assert history[-1].content == "m104"

    @pytest.mark.asyncio
    async def test_publish_skips_members_that_are_not_open(self):
        room = Room("r1")
        alice, bob = make_handle("alice"), make_handle("bob")
        await room.join(alice)
        await room.join(bob)
        drain(alice)
        bob.close()

        await room.publish(alice, "anyone?")

        assert len(drain(alice)) == 1
        assert bob.state is Liveness.CLOSED
        # bob stays a member until its own disconnect path leaves
        assert room.member_count == 2

    @pytest.mark.asyncio
    async def test_publish_to_closed_room_raises(self):
        room = Room("r1")
        alice = make_handle("alice")
        await room.join(alice)
        await room.leave(alice)

        with pytest.raises(InvalidState):
            await room.publish(alice, "too late")

    @pytest.mark.asyncio
    async def test_get_history_limit(self):
        room = Room("r1")
        alice = make_handle("alice")
        await room.join(alice)
        for i in range(3):
            await room.publish(alice, f"m{i}")

        assert [m.content for m in room.get_history(2)] == ["m1", "m2"]
        assert room.get_history(0) == []
