"""Error taxonomy for the roomcast server.

Every error raised by the chat core or the collaborator clients derives
from :class:`RoomcastError` so callers can contain failures per connection
without catching unrelated exceptions.
"""


class RoomcastError(Exception):
    """Base class for all roomcast errors."""


class ConnectParamError(RoomcastError):
    """Connection request is missing the room or username parameter."""


class InvalidPayload(RoomcastError):
    """Inbound event is malformed or carries empty content.

    Reported to the sending connection only; the connection stays open.
    """


class InvalidState(RoomcastError):
    """Operation attempted against a room that has already been destroyed."""


class PeerUnresponsive(RoomcastError):
    """Outbound send could not make progress; the handle is force-closed."""


class UpstreamError(RoomcastError):
    """A collaborator HTTP or JSON-RPC call failed."""
