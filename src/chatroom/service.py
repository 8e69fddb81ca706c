"""
Chat Service for the Chatroom Server

Handles all client → server events. Each event name maps to one handler
in a dispatch table; handlers receive a validated request, drive the
presence directory and the room coordinator, and return the deliveries
computed by the fan-out policy. The transport sends them.

Architecture:
    - Async/await for non-blocking I/O
    - One lock per connection, so a connection's events run in order
    - Errors are reported to the originating connection only
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .errors import (
    AlreadyExists,
    ChatError,
    InvalidInput,
    NotFound,
    StorageFailure,
)
from .models import LOBBY, User
from .presence import PresenceDirectory
from .reaper import ReapResult
from .rooms import RoomCoordinator
from .schemas import events, requests
from .schemas.responses import create_error_response
from .utils import broadcast
from .utils.broadcast import Delivery
from .utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

Handler = Callable[[str, requests.BaseRequest], Awaitable[List[Delivery]]]


class ChatService:
    """
    Main chat service for handling events from clients.
    """

    def __init__(
        self,
        directory: PresenceDirectory,
        coordinator: RoomCoordinator,
        transport=None,
    ):
        """
        Initialize the chat service.

        Args:
            directory: Presence directory
            coordinator: Room membership coordinator
            transport: Object providing deliver, join_room_channel and
                leave_room_channel; usually the WebSocketServer
        """
        self.directory = directory
        self.coordinator = coordinator
        self.transport = transport
        self._connection_locks = KeyedLocks()
        self.handlers: Dict[str, Handler] = {
            requests.UPDATE_USERNAME: self.handle_update_username,
            requests.CREATE_CHATROOM: self.handle_create_chatroom,
            requests.JOIN_CHATROOM: self.handle_join_chatroom,
            requests.LEAVE_CHATROOM: self.handle_leave_chatroom,
            requests.SEND_MESSAGE: self.handle_send_message,
            requests.GET_CHATROOMS_LIST: self.handle_get_chatrooms_list,
            requests.DOES_CHATROOM_EXIST: self.handle_does_chatroom_exist,
            requests.GET_CHATROOM_USERS: self.handle_get_chatroom_users,
            requests.GET_MESSAGES: self.handle_get_messages,
        }
        logger.info("ChatService initialized")

    # ===== Connection lifecycle =====

    async def on_connect(self, connection_id: str) -> User:
        """Register a new connection and confirm its presence."""
        async with self._connection_locks.hold(connection_id):
            user = await self.directory.register_connection(connection_id)
            await self._deliver(broadcast.on_connected(user))
            await self._deliver(
                broadcast.on_username_changed(await self.directory.list_all())
            )
        return user

    async def on_disconnect(self, connection_id: str):
        """
        Tear down a connection's presence.

        A user still in a room leaves it first, so no stale membership
        survives an abrupt disconnect.
        """
        async with self._connection_locks.hold(connection_id):
            leave_deliveries: List[Delivery] = []
            try:
                user = await self.directory.find(connection_id)
            except NotFound:
                user = None

            if user is not None:
                room_id = await self.directory.resolve_room(user)
                if room_id != LOBBY:
                    try:
                        leave_deliveries = await self._leave(
                            connection_id, room_id, user.display_name
                        )
                    except ChatError as e:
                        logger.warning(
                            f"Could not remove {user.display_name} from "
                            f"{room_id} on disconnect: {e}"
                        )

            await self.directory.remove(connection_id)
            deliveries = broadcast.on_disconnected(
                leave_deliveries, await self.directory.list_all()
            )
            await self._deliver(deliveries)

    # ===== Dispatch =====

    async def handle_message(self, connection_id: str, raw) -> List[Delivery]:
        """
        Entry point for handling an incoming frame.

        Returns:
            The deliveries that were sent, including any error response
        """
        event = None
        try:
            event, request = requests.decode_frame(raw)
            async with self._connection_locks.hold(connection_id):
                deliveries = await self.handlers[event](connection_id, request)
                await self._deliver(deliveries)
            return deliveries
        except ChatError as e:
            logger.warning(f"Error {e.code} handling {event}: {e.message}")
            deliveries = self._error(connection_id, e.message, e.code, event)
        except Exception:
            logger.exception(f"Unexpected error handling {event}")
            deliveries = self._error(
                connection_id,
                "Internal server error",
                StorageFailure.code,
                event,
            )

        await self._deliver(deliveries)
        return deliveries

    # ===== Handlers =====

    async def handle_update_username(
        self, connection_id: str, request: requests.UpdateUsernameRequest
    ) -> List[Delivery]:
        before = await self.directory.find(connection_id)
        user = await self.directory.rename_user(
            connection_id, request.newUsername
        )
        room_id = await self.directory.resolve_room(before)
        if room_id != LOBBY:
            await self.coordinator.rename_member(
                room_id, before.display_name, user.display_name
            )
        return broadcast.on_username_changed(await self.directory.list_all())

    async def handle_create_chatroom(
        self, connection_id: str, request: requests.CreateChatroomRequest
    ) -> List[Delivery]:
        if await self.coordinator.room_exists(request.chatroomId):
            raise AlreadyExists(f"Chatroom {request.chatroomId} already exists")

        user = await self._sender(connection_id, request.username)
        result = await self.coordinator.create_room(
            request.chatroomId, user.display_name, connection_id
        )
        self._join_channel(connection_id, request.chatroomId)
        previous = await self._leave_current_room(user, request.chatroomId)

        return previous + broadcast.on_room_created(
            result.system_message,
            await self.directory.list_all(),
            await self.coordinator.get_chatrooms(),
        )

    async def handle_join_chatroom(
        self, connection_id: str, request: requests.JoinChatroomRequest
    ) -> List[Delivery]:
        if not await self.coordinator.room_exists(request.chatroomId):
            raise NotFound(f"Chatroom {request.chatroomId} does not exist")

        user = await self._sender(connection_id, request.username)
        result = await self.coordinator.join_room(
            request.chatroomId, user.display_name, connection_id
        )
        self._join_channel(connection_id, request.chatroomId)
        previous = await self._leave_current_room(user, request.chatroomId)

        return previous + broadcast.on_room_joined(
            connection_id,
            request.chatroomId,
            result.history,
            result.system_message,
            await self.directory.list_all(),
            await self.coordinator.get_chatroom_users(request.chatroomId),
        )

    async def handle_leave_chatroom(
        self, connection_id: str, request: requests.LeaveChatroomRequest
    ) -> List[Delivery]:
        user = await self._sender(connection_id, request.username)
        return await self._leave(
            connection_id, request.chatroomId, user.display_name
        )

    async def handle_send_message(
        self, connection_id: str, request: requests.SendMessageRequest
    ) -> List[Delivery]:
        user = await self._sender(connection_id, request.username)
        await self.directory.touch(connection_id)
        message = await self.coordinator.save_message(
            request.chatroomId,
            user.display_name,
            request.text,
            created_at=request.createdAt,
            bubble_color=user.bubble_color,
        )
        return broadcast.on_chat_message(
            message, await self.coordinator.get_chatrooms()
        )

    async def handle_get_chatrooms_list(
        self, connection_id: str, request: requests.GetChatroomsListRequest
    ) -> List[Delivery]:
        rooms = await self.coordinator.get_chatrooms()
        return [
            Delivery.to_client(
                connection_id,
                events.CHATROOMS_LIST,
                events.create_chatrooms_list_event(rooms),
            )
        ]

    async def handle_does_chatroom_exist(
        self, connection_id: str, request: requests.DoesChatroomExistRequest
    ) -> List[Delivery]:
        exists = await self.coordinator.room_exists(request.chatroomId)
        return [
            Delivery.to_client(
                connection_id,
                events.CHATROOM_EXISTS,
                events.create_chatroom_exists_event(request.chatroomId, exists),
            )
        ]

    async def handle_get_chatroom_users(
        self, connection_id: str, request: requests.GetChatroomUsersRequest
    ) -> List[Delivery]:
        users = await self.coordinator.get_chatroom_users(request.chatroomId)
        return [
            Delivery.to_client(
                connection_id,
                events.CHATROOM_USERS_LIST,
                events.create_chatroom_users_list_event(
                    request.chatroomId, users
                ),
            )
        ]

    async def handle_get_messages(
        self, connection_id: str, request: requests.GetMessagesRequest
    ) -> List[Delivery]:
        if not await self.coordinator.room_exists(request.chatroomId):
            raise NotFound(f"Chatroom {request.chatroomId} does not exist")
        messages = await self.coordinator.get_messages_by_chatroom(
            request.chatroomId
        )
        return [
            Delivery.to_client(
                connection_id,
                events.PREVIOUS_MESSAGES,
                events.create_previous_messages_event(
                    request.chatroomId, messages
                ),
            )
        ]

    # ===== Reaper =====

    async def on_reaped(self, result: ReapResult):
        """Announce the rooms deleted by a reaper sweep."""
        deliveries = broadcast.on_reaped(result.deleted_room_ids, result.rooms)
        await self._deliver(deliveries)
        if self.transport is not None:
            for room_id in result.deleted_room_ids:
                self.transport.close_room_channel(room_id)

    # ===== Helpers =====

    async def _sender(self, connection_id: str, username: str) -> User:
        """
        The user behind a connection, checked against the username the
        client claims in its request.

        Room membership is keyed on the directory's display name, so a
        request naming anyone else is rejected.

        Raises:
            NotFound: If the connection is not registered
            InvalidInput: If username is not the connection's display name
        """
        user = await self.directory.find(connection_id)
        if username != user.display_name:
            raise InvalidInput(
                f"Username {username} does not match the connection's "
                f"display name {user.display_name}"
            )
        return user

    async def _leave(
        self, connection_id: str, room_id: str, username: str
    ) -> List[Delivery]:
        result = await self.coordinator.leave_room(
            room_id, username, connection_id
        )
        self._leave_channel(connection_id, room_id)
        deliveries = broadcast.on_room_left(
            room_id,
            username,
            result.system_message,
            await self.directory.list_all(),
            await self.coordinator.get_chatroom_users(room_id),
        )
        if result.room_deleted:
            deliveries.extend(broadcast.on_room_deleted(room_id))
        return deliveries

    async def _leave_current_room(
        self, user: User, next_room_id: str
    ) -> List[Delivery]:
        """Leave the room the user was in before moving to next_room_id."""
        room_id = await self.directory.resolve_room(user)
        if room_id in (LOBBY, next_room_id):
            return []
        try:
            deliveries = await self._leave(
                user.connection_id, room_id, user.display_name
            )
        except NotFound:
            # reaped since the room was resolved
            return []
        # the moving user's own presence is refreshed by the join deliveries
        return [
            d
            for d in deliveries
            if d.event != events.USERS_LIST
        ]

    def _join_channel(self, connection_id: str, room_id: str):
        if self.transport is not None:
            self.transport.join_room_channel(connection_id, room_id)

    def _leave_channel(self, connection_id: str, room_id: str):
        if self.transport is not None:
            self.transport.leave_room_channel(connection_id, room_id)

    def _error(
        self,
        connection_id: str,
        message: str,
        code: str,
        event: Optional[str],
    ) -> List[Delivery]:
        return broadcast.on_error(
            connection_id, create_error_response(message, code, event)
        )

    async def _deliver(self, deliveries: List[Delivery]):
        if self.transport is not None and deliveries:
            await self.transport.deliver(deliveries)
