"""Pydantic schemas for the chat wire protocol.

Server -> client events are plain dicts built by the helpers below so they
can be queued and serialized with ``send_json`` directly.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Wire event kinds.

    Attributes:
        MESSAGE: Chat message (both directions).
        HISTORY: One-time history replay after join.
        USER_COUNT: Live member count of the room.
        ERROR: Protocol error reported to one connection.
    """
    MESSAGE = "message"
    HISTORY = "history"
    USER_COUNT = "userCount"
    ERROR = "error"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ChatMessage(BaseModel):
    """A published chat message, immutable once created.

    Attributes:
        id: Unique message identifier (server-generated UUID).
        content: Message text.
        sender: Display name of the sending participant.
        roomId: Room this message belongs to.
        timestamp: ISO-8601 UTC time the server accepted the message.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique message ID"
    )
    content: str = Field(..., min_length=1, description="Message content")
    sender: str = Field(..., description="Display name of the sender")
    roomId: str = Field(..., description="Room ID this message belongs to")
    timestamp: str = Field(
        default_factory=_utc_timestamp,
        description="Server receive time (ISO-8601, UTC)"
    )


class InboundEvent(BaseModel):
    """Client -> server event.

    Only ``type`` and ``content`` are read. Any ``id``, ``sender``,
    ``roomId`` or ``timestamp`` the client sends is ignored; the server
    assigns its own.
    """
    type: Literal["message"]
    content: str


def message_event(message: ChatMessage) -> dict:
    return {"type": EventType.MESSAGE.value, **message.model_dump()}


def history_event(messages: List[ChatMessage]) -> dict:
    return {
        "type": EventType.HISTORY.value,
        "messages": [msg.model_dump() for msg in messages],
    }


def user_count_event(count: int) -> dict:
    return {"type": EventType.USER_COUNT.value, "count": count}


def error_event(message: str) -> dict:
    return {"type": EventType.ERROR.value, "message": message}
