"""
Document Stores

Asynchronous in-memory stores for rooms, messages and users. Each call is
atomic with respect to the event loop: a mutation never awaits halfway
through, so a single record is never observed half-updated. Records are
copied on the way in and out so callers cannot mutate stored state.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from .models import Message, Room, User, utcnow

logger = logging.getLogger(__name__)


class RoomStore:
    """Room records keyed by room id."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    async def find(self, room_id: str) -> Optional[Room]:
        room = self._rooms.get(room_id)
        return room.copy() if room else None

    async def find_all(self) -> List[Room]:
        return [room.copy() for room in self._rooms.values()]

    async def find_stale(self, older_than: datetime) -> List[Room]:
        """Rooms whose last activity is strictly before the given time."""
        return [
            room.copy()
            for room in self._rooms.values()
            if room.last_active_at < older_than
        ]

    async def create(self, room: Room) -> Optional[Room]:
        """
        Insert a room.

        Returns:
            The stored room, or None if a room with the same id exists
        """
        if room.room_id in self._rooms:
            return None
        self._rooms[room.room_id] = room.copy()
        logger.debug(f"Stored room {room.room_id}")
        return room.copy()

    async def add_member(self, room_id: str, username: str) -> Optional[bool]:
        """
        Add a username to a room's membership.

        Returns:
            True if added, False if already a member, None if no such room
        """
        room = self._rooms.get(room_id)
        if room is None:
            return None
        if username in room.member_usernames:
            return False
        room.member_usernames.add(username)
        return True

    async def remove_member(
        self, room_id: str, username: str
    ) -> Optional[bool]:
        """
        Remove a username from a room's membership.

        Returns:
            True if removed, False if not a member, None if no such room
        """
        room = self._rooms.get(room_id)
        if room is None:
            return None
        if username not in room.member_usernames:
            return False
        room.member_usernames.discard(username)
        return True

    async def rename_member(
        self, room_id: str, old_name: str, new_name: str
    ) -> bool:
        room = self._rooms.get(room_id)
        if room is None or old_name not in room.member_usernames:
            return False
        room.member_usernames.discard(old_name)
        room.member_usernames.add(new_name)
        return True

    async def update_last_active(
        self, room_id: str, when: Optional[datetime] = None
    ) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            return False
        room.last_active_at = when or utcnow()
        return True

    async def delete(self, room_id: str) -> bool:
        return self._rooms.pop(room_id, None) is not None


class MessageStore:
    """Append-only message log, grouped by room."""

    def __init__(self):
        self._messages: Dict[str, List[Message]] = {}

    async def create(self, message: Message) -> Message:
        self._messages.setdefault(message.room_id, []).append(message)
        return message

    async def find_by_room(self, room_id: str) -> List[Message]:
        """
        Messages of a room ordered by creation time.

        The sort is stable, so messages with equal timestamps keep their
        insertion order.
        """
        return sorted(
            self._messages.get(room_id, []), key=lambda m: m.created_at
        )

    async def delete_by_room(self, room_id: str) -> int:
        return len(self._messages.pop(room_id, []))


class UserStore:
    """User records keyed by connection id."""

    def __init__(self):
        self._users: Dict[str, User] = {}

    async def create(self, user: User) -> Optional[User]:
        """
        Insert a user.

        Returns:
            The stored user, or None if the connection id is taken
        """
        if user.connection_id in self._users:
            return None
        self._users[user.connection_id] = user.copy()
        return user.copy()

    async def find_by_connection(self, connection_id: str) -> Optional[User]:
        user = self._users.get(connection_id)
        return user.copy() if user else None

    async def find_by_name(self, display_name: str) -> Optional[User]:
        """First user, in registration order, with the given display name."""
        for user in self._users.values():
            if user.display_name == display_name:
                return user.copy()
        return None

    async def find_all(self) -> List[User]:
        return [user.copy() for user in self._users.values()]

    async def find_by_room(self, room_id: str) -> List[User]:
        return [
            user.copy()
            for user in self._users.values()
            if user.room_id == room_id
        ]

    async def update(self, connection_id: str, **changes) -> Optional[User]:
        """
        Apply field changes to a user.

        Returns:
            The updated user, or None if the connection id is unknown
        """
        user = self._users.get(connection_id)
        if user is None:
            return None
        for name, value in changes.items():
            if not hasattr(user, name):
                raise AttributeError(f"User has no field '{name}'")
            setattr(user, name, value)
        return user.copy()

    async def delete(self, connection_id: str) -> Optional[User]:
        return self._users.pop(connection_id, None)

    async def delete_all(self) -> int:
        count = len(self._users)
        self._users.clear()
        return count
