"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws (and /): Real-time room chat
    - GET /rooms: Live room diagnostics
    - GET /rooms/{room_id}/history: Most recent messages of a live room

Connection parameters (query string):
    - room: Room ID to join (required)
    - username: Display name of the participant (required)

Protocol Message Types:
    - message: Chat message (client -> server and broadcast)
    - history: Recent messages, sent once after join
    - userCount: Room member count, broadcast on every join/leave
    - error: Malformed or empty payload, sent to the offending client only
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket

from .server import (
    CLOSE_POLICY_VIOLATION,
    BroadcastServer,
    parse_connect_params,
)
from roomcast.errors import ConnectParamError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_broadcast_server(request: Request) -> BroadcastServer:
    """Return the BroadcastServer owned by the running application."""
    return request.app.state.broadcast_server


@router.websocket("/")
@router.websocket("/ws")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    room: Optional[str] = Query(None, description="Room ID to join"),
    username: Optional[str] = Query(None, description="Participant display name"),
) -> None:
    """WebSocket endpoint for real-time chat in a room.

    Protocol Flow:
        1. Client connects with ?room=<id>&username=<name>
           -> Missing either: closed with 1008 (policy violation)
        2. Server sends: {type: "history", messages: [...]} (last 50)
           -> Server broadcasts: {type: "userCount", count: N}
        3. Client sends: {type: "message", content}
           -> Server broadcasts: {type: "message", id, content, sender, roomId, timestamp}
           -> Bad JSON / unknown type / empty content: {type: "error", message}
        4. On disconnect -> Server broadcasts: {type: "userCount", count: N - 1}

    Args:
        websocket: The WebSocket connection.
        room: The room ID to join.
        username: The participant's display name.
    """
    try:
        room_id, participant_id = parse_connect_params(room, username)
    except ConnectParamError as exc:
        logger.warning(f"[WS] Rejecting connection: {exc} (room={room!r}, username={username!r})")
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=str(exc))
        return

    logger.info(f"[WS] {participant_id} connecting to room {room_id}")
    server: BroadcastServer = websocket.app.state.broadcast_server
    await server.serve(websocket, room_id, participant_id)


@router.get("/rooms")
async def list_rooms(request: Request) -> dict:
    """Live room and connection counts.

    Returns:
        dict: {rooms, connections, details: [{roomId, members, messages}]}
    """
    return get_broadcast_server(request).stats()


@router.get("/rooms/{room_id}/history")
async def get_room_history(
    request: Request,
    room_id: str,
    limit: Optional[int] = Query(None, ge=1, description="Number of most recent messages"),
) -> dict:
    """Most recent messages of a live room, oldest first.

    Args:
        room_id: The room ID.
        limit: Maximum number of messages (defaults to the join replay size,
               capped at the room's history size).

    Raises:
        HTTPException: 404 if no live room has this ID.
    """
    server = get_broadcast_server(request)
    room = server.registry.get(room_id)
    if room is None or room.closed:
        raise HTTPException(status_code=404, detail=f"Room {room_id} not found")

    if limit is None:
        limit = room.replay_limit
    limit = min(limit, room.history_limit)
    return {"messages": [msg.model_dump() for msg in room.get_history(limit)]}
