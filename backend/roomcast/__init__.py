"""roomcast: room-scoped real-time broadcast chat server."""

__version__ = "0.1.0"
