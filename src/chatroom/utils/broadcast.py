"""
Broadcast Fan-out Policy

Pure functions mapping a state change to the deliveries it causes. Each
returns an ordered list of Delivery objects; the transport sends them in
that order. Nothing here touches a store or a socket.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..models import Message, Room, User
from ..schemas import events


class Scope(Enum):
    """Who receives a delivery."""

    CLIENT = "client"
    ROOM = "room"
    ALL = "all"


@dataclass(frozen=True)
class Delivery:
    """
    One outbound event.

    Attributes:
        scope: Receiver scope
        target: Connection id for CLIENT, room id for ROOM, None for ALL
        event: Event name
        payload: Event data
    """

    scope: Scope
    target: Optional[str]
    event: str
    payload: Dict[str, Any]

    @classmethod
    def to_client(cls, connection_id: str, event: str, payload) -> "Delivery":
        return cls(Scope.CLIENT, connection_id, event, payload)

    @classmethod
    def to_room(cls, room_id: str, event: str, payload) -> "Delivery":
        return cls(Scope.ROOM, room_id, event, payload)

    @classmethod
    def to_all(cls, event: str, payload) -> "Delivery":
        return cls(Scope.ALL, None, event, payload)


def system_message_deliveries(message: Optional[Message]) -> List[Delivery]:
    """A persisted system message goes to its room only."""
    if message is None:
        return []
    return [
        Delivery.to_room(
            message.room_id,
            events.RECEIVE_MESSAGE,
            events.create_receive_message_event(message),
        )
    ]


def users_list_delivery(users: Iterable[User]) -> Delivery:
    return Delivery.to_all(
        events.USERS_LIST, events.create_users_list_event(users)
    )


def chatrooms_list_delivery(rooms: Iterable[Room]) -> Delivery:
    return Delivery.to_all(
        events.CHATROOMS_LIST, events.create_chatrooms_list_event(rooms)
    )


def chatroom_users_delivery(room_id: str, users: Iterable[User]) -> Delivery:
    return Delivery.to_room(
        room_id,
        events.CHATROOM_USERS_LIST,
        events.create_chatroom_users_list_event(room_id, users),
    )


def on_connected(user: User) -> List[Delivery]:
    return [
        Delivery.to_client(
            user.connection_id,
            events.CONNECTED,
            events.create_connected_event(user),
        )
    ]


def on_username_changed(users: Iterable[User]) -> List[Delivery]:
    return [users_list_delivery(users)]


def on_room_created(
    system_message: Message, users: Iterable[User], rooms: Iterable[Room]
) -> List[Delivery]:
    """
    Deliveries for a newly created room.

    Args:
        system_message: The "has created" message
        users: Directory snapshot after the creator moved into the room
        rooms: Room list after the creation
    """
    return [
        users_list_delivery(users),
        *system_message_deliveries(system_message),
        chatrooms_list_delivery(rooms),
    ]


def on_room_joined(
    connection_id: str,
    room_id: str,
    history: Iterable[Message],
    system_message: Optional[Message],
    users: Iterable[User],
    room_users: Iterable[User],
) -> List[Delivery]:
    """
    Deliveries for a join.

    The joining connection receives the room's prior history first, then
    the room sees the "has joined" message (absent for a repeated join).

    Args:
        connection_id: The joining connection
        room_id: The joined room
        history: Messages posted before the join
        system_message: The "has joined" message or None
        users: Directory snapshot after the join
        room_users: Users now pointing at the room
    """
    return [
        Delivery.to_client(
            connection_id,
            events.PREVIOUS_MESSAGES,
            events.create_previous_messages_event(room_id, history),
        ),
        *system_message_deliveries(system_message),
        users_list_delivery(users),
        chatroom_users_delivery(room_id, room_users),
    ]


def on_room_left(
    room_id: str,
    username: str,
    system_message: Optional[Message],
    users: Iterable[User],
    room_users: Iterable[User],
) -> List[Delivery]:
    """
    Deliveries for a leave.

    A leave that changed nothing only refreshes the users list.
    """
    deliveries = []
    if system_message is not None:
        deliveries.extend(system_message_deliveries(system_message))
        deliveries.append(
            Delivery.to_room(
                room_id,
                events.USER_LEFT,
                events.create_user_left_event(room_id, username),
            )
        )
    deliveries.append(users_list_delivery(users))
    if system_message is not None:
        deliveries.append(chatroom_users_delivery(room_id, room_users))
    return deliveries


def on_chat_message(message: Message, rooms: Iterable[Room]) -> List[Delivery]:
    """The room receives the message; everyone gets the re-sorted room list."""
    return [
        Delivery.to_room(
            message.room_id,
            events.RECEIVE_MESSAGE,
            events.create_receive_message_event(message),
        ),
        chatrooms_list_delivery(rooms),
    ]


def on_room_deleted(room_id: str) -> List[Delivery]:
    return [
        Delivery.to_room(
            room_id,
            events.CHATROOM_DELETED,
            events.create_chatroom_deleted_event(room_id),
        )
    ]


def on_reaped(
    deleted_room_ids: Iterable[str], rooms: Optional[Iterable[Room]]
) -> List[Delivery]:
    """
    Deliveries after a reaper sweep.

    Args:
        deleted_room_ids: Rooms removed by the sweep
        rooms: Refreshed room list, None when nothing was deleted
    """
    if rooms is None:
        return []
    deliveries = []
    for room_id in deleted_room_ids:
        deliveries.extend(on_room_deleted(room_id))
    deliveries.append(chatrooms_list_delivery(rooms))
    return deliveries


def on_disconnected(
    leave_deliveries: List[Delivery], users: Iterable[User]
) -> List[Delivery]:
    """
    Deliveries after a connection is gone.

    Args:
        leave_deliveries: Deliveries from leaving the user's room, if any
        users: Directory snapshot without the departed user
    """
    deliveries = [
        d
        for d in leave_deliveries
        if not (d.scope is Scope.ALL and d.event == events.USERS_LIST)
    ]
    deliveries.append(users_list_delivery(users))
    return deliveries


def on_error(connection_id: str, payload: Dict[str, Any]) -> List[Delivery]:
    return [Delivery.to_client(connection_id, events.ERROR, payload)]
