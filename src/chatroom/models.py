"""
Data Model for the Chatroom Server

Records held by the stores: users (one per live connection), rooms and
messages. Timestamps are timezone-aware datetimes and are serialized as
ISO 8601 strings.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

LOBBY = "lobby"
SYSTEM_AUTHOR = "System"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a client supplied timestamp.

    Accepts datetimes, ISO 8601 strings (with or without a trailing "Z")
    and epoch milliseconds as sent by browser clients.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    elif isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class User:
    """
    Presence record for one live connection.

    Attributes:
        connection_id: Transport assigned connection identifier
        display_name: Visible name, defaults to the connection id
        room_id: Room the user is currently in, or "lobby"
        last_active_at: Time of the user's last action
        color_scheme: Ordered list of the user's display colors
        bubble_color: Color of the user's chat bubbles
        avatar_url: Optional avatar location
    """

    connection_id: str
    display_name: str
    room_id: str = LOBBY
    last_active_at: datetime = field(default_factory=utcnow)
    color_scheme: List[str] = field(default_factory=list)
    bubble_color: str = ""
    avatar_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "clientId": self.connection_id,
            "username": self.display_name,
            "chatroomId": self.room_id,
            "lastActiveAt": self.last_active_at.isoformat(),
            "colorScheme": list(self.color_scheme),
            "bubbleColor": self.bubble_color,
            "avatar": self.avatar_url,
        }

    def copy(self) -> "User":
        """Return a detached copy safe to hand out of a store."""
        return replace(self, color_scheme=list(self.color_scheme))


@dataclass
class Room:
    """
    A named chat room.

    Attributes:
        room_id: Unique room identifier, chosen by the creating client
        member_usernames: Display names of the current members
        last_active_at: Time of the last message posted to the room
    """

    room_id: str
    member_usernames: Set[str] = field(default_factory=set)
    last_active_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert room to dictionary for serialization."""
        return {
            "chatroomId": self.room_id,
            "users": sorted(self.member_usernames),
            "memberCount": len(self.member_usernames),
            "lastActiveAt": self.last_active_at.isoformat(),
        }

    def is_empty(self) -> bool:
        return not self.member_usernames

    def copy(self) -> "Room":
        return replace(self, member_usernames=set(self.member_usernames))


@dataclass(frozen=True)
class Message:
    """
    A persisted chat message. Messages are never mutated.

    Attributes:
        room_id: Room the message was posted to
        author_name: Display name of the author, "System" for system messages
        text: Message body
        created_at: Creation time, used for ordering
        bubble_color: Optional bubble color of the author
        system: True for server synthesized membership announcements
    """

    room_id: str
    author_name: str
    text: str
    created_at: datetime
    bubble_color: Optional[str] = None
    system: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chatroomId": self.room_id,
            "username": self.author_name,
            "text": self.text,
            "createdAt": self.created_at.isoformat(),
            "bubbleColor": self.bubble_color,
            "system": self.system,
        }
