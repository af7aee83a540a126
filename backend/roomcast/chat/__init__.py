"""Real-time chat rooms.

Components:
    - ConnectionHandle: one client's duplex channel and outbound queue.
    - Room: members plus bounded message history for one room.
    - RoomRegistry: room id to Room mapping, rooms created lazily.
    - BroadcastServer: per-connection worker and lifecycle state machine.
"""
