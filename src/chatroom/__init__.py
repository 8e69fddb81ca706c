"""
Chatroom Server Package

This package provides the presence directory, room membership coordinator,
fan-out policy, inactivity reaper and WebSocket server of the chatroom
server.
"""

from .errors import (
    ChatError,
    NotFound,
    AlreadyExists,
    InvalidInput,
    StorageFailure,
    DuplicateConnection,
)
from .models import User, Room, Message, LOBBY, SYSTEM_AUTHOR
from .store import RoomStore, MessageStore, UserStore
from .presence import PresenceDirectory
from .rooms import RoomCoordinator, CreateResult, JoinResult, LeaveResult
from .reaper import (
    InactivityReaper,
    ReapResult,
    REAP_INTERVAL,
    INACTIVITY_THRESHOLD,
)
from .service import ChatService
from .websocket_server import WebSocketServer

__all__ = [
    "ChatError",
    "NotFound",
    "AlreadyExists",
    "InvalidInput",
    "StorageFailure",
    "DuplicateConnection",
    "User",
    "Room",
    "Message",
    "LOBBY",
    "SYSTEM_AUTHOR",
    "RoomStore",
    "MessageStore",
    "UserStore",
    "PresenceDirectory",
    "RoomCoordinator",
    "CreateResult",
    "JoinResult",
    "LeaveResult",
    "InactivityReaper",
    "ReapResult",
    "REAP_INTERVAL",
    "INACTIVITY_THRESHOLD",
    "ChatService",
    "WebSocketServer",
]
