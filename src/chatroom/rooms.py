"""
Room Membership Coordinator

Creates rooms, moves users in and out of them and records the system
messages that announce each membership change. Every mutation of a room
runs under that room's lock; the presence directory is updated after the
room change so a user's room pointer follows their membership.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .errors import AlreadyExists, InvalidInput, NotFound, storage_errors
from .models import LOBBY, SYSTEM_AUTHOR, Message, Room, User, utcnow
from .presence import PresenceDirectory
from .store import MessageStore, RoomStore
from .utils.locks import KeyedLocks
from .utils.validation import validate_message_content, validate_name

logger = logging.getLogger(__name__)


@dataclass
class CreateResult:
    room: Room
    system_message: Message


@dataclass
class JoinResult:
    """
    Outcome of a join.

    Attributes:
        room: The room after the join
        history: Messages posted before the join, oldest first
        system_message: The "has joined" message, None for a repeated join
        joined: False when the user was already a member
    """

    room: Room
    history: List[Message] = field(default_factory=list)
    system_message: Optional[Message] = None
    joined: bool = True


@dataclass
class LeaveResult:
    """
    Outcome of a leave.

    Empty rooms are left to the inactivity reaper, so room_deleted is
    always False here; it is kept so callers handle both outcomes.
    """

    room: Room
    left: bool
    room_deleted: bool = False
    system_message: Optional[Message] = None


def _require(value, name: str):
    is_valid, error = validate_name(value, name)
    if not is_valid:
        raise InvalidInput(error)


class RoomCoordinator:
    """
    Room lifecycle and membership transitions.

    Membership sets hold display names. Join and leave are idempotent:
    repeating them changes nothing and records no further system message.
    """

    def __init__(
        self,
        rooms: RoomStore,
        messages: MessageStore,
        directory: PresenceDirectory,
        locks: Optional[KeyedLocks] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            rooms: Room store
            messages: Message store
            directory: Presence directory kept in sync with membership
            locks: Per-room locks, shared with the inactivity reaper
        """
        self.rooms = rooms
        self.messages = messages
        self.directory = directory
        self.locks = locks if locks is not None else KeyedLocks()

    async def create_room(
        self, room_id: str, username: str, connection_id: Optional[str] = None
    ) -> CreateResult:
        """
        Create a room with the creating user as its only member.

        Raises:
            InvalidInput: If room_id or username is empty
            AlreadyExists: If a room with room_id exists
        """
        _require(room_id, "chatroomId")
        _require(username, "username")

        async with self.locks.hold(room_id):
            with storage_errors("create room"):
                room = await self.rooms.create(
                    Room(room_id=room_id, member_usernames={username})
                )
            if room is None:
                raise AlreadyExists(f"Chatroom {room_id} already exists")
            message = await self._append_system_message(
                room_id, f"{username} has created the chatroom"
            )
            room = await self._find(room_id)

        logger.info(f"User {username} created chatroom {room_id}")
        await self._point_user(connection_id or username, room_id)
        return CreateResult(room=room, system_message=message)

    async def join_room(
        self, room_id: str, username: str, connection_id: Optional[str] = None
    ) -> JoinResult:
        """
        Add a user to a room.

        Raises:
            InvalidInput: If room_id or username is empty
            NotFound: If the room does not exist
        """
        _require(room_id, "chatroomId")
        _require(username, "username")

        async with self.locks.hold(room_id):
            room = await self._get(room_id)
            if username in room.member_usernames:
                with storage_errors("load messages"):
                    history = await self.messages.find_by_room(room_id)
                result = JoinResult(room=room, history=history, joined=False)
            else:
                with storage_errors("join room"):
                    await self.rooms.add_member(room_id, username)
                    history = await self.messages.find_by_room(room_id)
                message = await self._append_system_message(
                    room_id, f"{username} has joined the chatroom"
                )
                result = JoinResult(
                    room=await self._find(room_id),
                    history=history,
                    system_message=message,
                )

        if result.joined:
            logger.info(f"User {username} joined chatroom {room_id}")
        else:
            logger.info(
                f"User {username} re-joining chatroom {room_id} "
                f"(already a member)"
            )
        await self._point_user(connection_id or username, room_id)
        return result

    async def leave_room(
        self, room_id: str, username: str, connection_id: Optional[str] = None
    ) -> LeaveResult:
        """
        Remove a user from a room.

        The departure is announced even when the user was not a member;
        membership is then left unchanged and `left` is False.

        Raises:
            InvalidInput: If room_id or username is empty
            NotFound: If the room does not exist
        """
        _require(room_id, "chatroomId")
        _require(username, "username")

        async with self.locks.hold(room_id):
            await self._get(room_id)
            with storage_errors("leave room"):
                left = await self.rooms.remove_member(room_id, username)
            message = await self._append_system_message(
                room_id, f"{username} has left the chatroom"
            )
            room = await self._find(room_id)

        if left:
            logger.info(f"User {username} left chatroom {room_id}")
            if room.is_empty():
                logger.info(
                    f"Chatroom {room_id} is empty, leaving it to the reaper"
                )
        await self._release_user(connection_id or username, room_id)
        return LeaveResult(room=room, left=bool(left), system_message=message)

    async def rename_member(
        self, room_id: str, old_name: str, new_name: str
    ) -> bool:
        """Carry a renamed user's membership over to the new name."""
        if not room_id or room_id == LOBBY or old_name == new_name:
            return False
        async with self.locks.hold(room_id):
            with storage_errors("rename member"):
                renamed = await self.rooms.rename_member(
                    room_id, old_name, new_name
                )
        if renamed:
            logger.info(
                f"Renamed member {old_name} to {new_name} in chatroom {room_id}"
            )
        return renamed

    async def save_message(
        self,
        room_id: str,
        author_name: str,
        text: str,
        created_at: Optional[datetime] = None,
        bubble_color: Optional[str] = None,
    ) -> Message:
        """
        Persist a chat message and mark the room active.

        Raises:
            InvalidInput: If the text is empty or too long
            NotFound: If the room does not exist
        """
        _require(room_id, "chatroomId")
        _require(author_name, "username")
        is_valid, error = validate_message_content(text)
        if not is_valid:
            raise InvalidInput(error)

        async with self.locks.hold(room_id):
            await self._get(room_id)
            return await self._save(
                Message(
                    room_id=room_id,
                    author_name=author_name,
                    text=text,
                    created_at=created_at or utcnow(),
                    bubble_color=bubble_color,
                )
            )

    async def get_messages_by_chatroom(self, room_id: str) -> List[Message]:
        with storage_errors("load messages"):
            return await self.messages.find_by_room(room_id)

    async def get_chatrooms(self) -> List[Room]:
        """All rooms, most recently active first."""
        with storage_errors("list rooms"):
            rooms = await self.rooms.find_all()
        return sorted(rooms, key=lambda r: r.last_active_at, reverse=True)

    async def get_chatroom_users(self, room_id: str) -> List[User]:
        return await self.directory.list_by_room(room_id)

    async def room_exists(self, room_id: str) -> bool:
        with storage_errors("find room"):
            return await self.rooms.find(room_id) is not None

    async def _append_system_message(self, room_id: str, text: str) -> Message:
        return await self._save(
            Message(
                room_id=room_id,
                author_name=SYSTEM_AUTHOR,
                text=text,
                created_at=utcnow(),
                system=True,
            )
        )

    async def _save(self, message: Message) -> Message:
        with storage_errors("save message"):
            saved = await self.messages.create(message)
            await self.rooms.update_last_active(message.room_id, utcnow())
        return saved

    async def _find(self, room_id: str) -> Optional[Room]:
        with storage_errors("find room"):
            return await self.rooms.find(room_id)

    async def _get(self, room_id: str) -> Room:
        room = await self._find(room_id)
        if room is None:
            raise NotFound(f"Chatroom {room_id} does not exist")
        return room

    async def _point_user(self, identity_key: str, room_id: str):
        try:
            await self.directory.set_user_room(identity_key, room_id)
        except NotFound:
            logger.warning(
                f"User {identity_key} is not online, room pointer not updated"
            )

    async def _release_user(self, identity_key: str, room_id: str):
        """Send a user back to the lobby if they are still in room_id."""
        try:
            user = await self.directory.find(identity_key)
        except NotFound:
            try:
                user = await self.directory.find_by_name(identity_key)
            except NotFound:
                return
        if user.room_id == room_id:
            await self._point_user(user.connection_id, LOBBY)
