"""
Presence Directory

Authoritative registry of connected users: display name, colors, avatar
and the room each connection is currently in. Backed by the user store;
one directory is created at startup and injected into the components that
need it.
"""

import logging
from typing import List, Optional

from .colors import (
    COLOR_SCHEME_SIZE,
    generate_random_color,
    generate_random_colors,
)
from .errors import DuplicateConnection, InvalidInput, NotFound, storage_errors
from .models import LOBBY, User, utcnow
from .store import RoomStore, UserStore
from .utils.locks import KeyedLocks

logger = logging.getLogger(__name__)


class PresenceDirectory:
    """
    Registry of online users keyed by connection id.

    The connection id is the canonical identity. Display names form a
    secondary, non-unique index used by lookups that only know a name.
    Every mutation holds the lock of the affected connection.
    """

    def __init__(self, users: UserStore, rooms: Optional[RoomStore] = None):
        """
        Initialize the directory.

        Args:
            users: Store holding one user record per connection
            rooms: Optional room store, used to resolve stale room pointers
        """
        self.users = users
        self.rooms = rooms
        self._locks = KeyedLocks()

    async def register_connection(self, connection_id: str) -> User:
        """
        Create the presence record for a new connection.

        Raises:
            DuplicateConnection: If the connection id is already registered
        """
        user = User(
            connection_id=connection_id,
            display_name=connection_id,
            room_id=LOBBY,
            last_active_at=utcnow(),
            color_scheme=generate_random_colors(COLOR_SCHEME_SIZE),
            bubble_color=generate_random_color(),
        )
        async with self._locks.hold(connection_id):
            with storage_errors("register connection"):
                created = await self.users.create(user)
        if created is None:
            raise DuplicateConnection(
                f"Connection {connection_id} is already registered"
            )
        logger.info(f"Registered connection {connection_id}")
        return created

    async def rename_user(self, connection_id: str, new_name: str) -> User:
        """
        Change a user's display name.

        Raises:
            InvalidInput: If the new name is empty
            NotFound: If the connection is not registered
        """
        if not isinstance(new_name, str) or not new_name.strip():
            raise InvalidInput("Username must be a non-empty string")
        new_name = new_name.strip()

        async with self._locks.hold(connection_id):
            with storage_errors("rename user"):
                user = await self.users.update(
                    connection_id, display_name=new_name, last_active_at=utcnow()
                )
        if user is None:
            raise NotFound(f"User {connection_id} not found")
        logger.info(f"User {connection_id} set their username to {new_name}")
        return user

    async def set_user_room(self, identity_key: str, room_id: str) -> User:
        """
        Point a user at a room.

        The key is tried as a connection id first and then as a display
        name.

        Raises:
            NotFound: If no user matches the key
        """
        user = await self._resolve(identity_key)
        async with self._locks.hold(user.connection_id):
            with storage_errors("set user room"):
                updated = await self.users.update(
                    user.connection_id, room_id=room_id or LOBBY
                )
        if updated is None:
            raise NotFound(f"User {identity_key} not found")
        logger.debug(f"User {updated.display_name} is now in {updated.room_id}")
        return updated

    async def touch(self, connection_id: str) -> Optional[User]:
        """Refresh a user's last activity time."""
        async with self._locks.hold(connection_id):
            with storage_errors("update last active"):
                return await self.users.update(
                    connection_id, last_active_at=utcnow()
                )

    async def update_avatar(self, connection_id: str, avatar_url: str) -> User:
        """
        Set or clear (with an empty string) a user's avatar.

        Raises:
            NotFound: If the connection is not registered
        """
        async with self._locks.hold(connection_id):
            with storage_errors("update avatar"):
                user = await self.users.update(
                    connection_id, avatar_url=avatar_url or None
                )
        if user is None:
            raise NotFound(f"User {connection_id} not found")
        return user

    async def list_all(self) -> List[User]:
        with storage_errors("list users"):
            return await self.users.find_all()

    async def list_by_room(self, room_id: str) -> List[User]:
        with storage_errors("list users by room"):
            return await self.users.find_by_room(room_id)

    async def find(self, connection_id: str) -> User:
        with storage_errors("find user"):
            user = await self.users.find_by_connection(connection_id)
        if user is None:
            raise NotFound(f"User {connection_id} not found")
        return user

    async def find_by_name(self, name: str) -> User:
        with storage_errors("find user by name"):
            user = await self.users.find_by_name(name)
        if user is None:
            raise NotFound(f"User {name} not found")
        return user

    async def resolve_room(self, user: User) -> str:
        """The user's room, or the lobby if the room no longer exists."""
        if user.room_id == LOBBY or self.rooms is None:
            return user.room_id
        with storage_errors("find room"):
            room = await self.rooms.find(user.room_id)
        return user.room_id if room else LOBBY

    async def remove(self, connection_id: str) -> Optional[User]:
        """Delete a user's record. Removing an unknown connection is a no-op."""
        async with self._locks.hold(connection_id):
            with storage_errors("remove user"):
                user = await self.users.delete(connection_id)
        if user is None:
            logger.info(f"Connection {connection_id} not found in the users list")
        else:
            logger.info(
                f"Connection {connection_id}, known as {user.display_name}, "
                f"removed from the users list"
            )
        return user

    async def purge(self) -> int:
        """Delete every user record."""
        with storage_errors("purge users"):
            count = await self.users.delete_all()
        logger.info(f"Purged {count} users from the directory")
        return count

    async def _resolve(self, identity_key: str) -> User:
        with storage_errors("find user"):
            user = await self.users.find_by_connection(identity_key)
            if user is None:
                user = await self.users.find_by_name(identity_key)
        if user is None:
            raise NotFound(f"User {identity_key} not found")
        return user
