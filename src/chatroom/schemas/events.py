"""
Event Schema Definitions

Event names sent to clients and functions creating their payloads.
"""

from typing import Any, Dict, Iterable

from ..models import Message, Room, User

CONNECTED = "connected"
USERS_LIST = "usersList"
PREVIOUS_MESSAGES = "previousMessages"
RECEIVE_MESSAGE = "receiveMessage"
USER_LEFT = "userLeft"
CHATROOM_DELETED = "chatroomDeleted"
CHATROOMS_LIST = "chatroomsList"
CHATROOM_EXISTS = "chatroomExists"
CHATROOM_USERS_LIST = "chatroomUsersList"
ERROR = "error"


def create_connected_event(user: User) -> Dict[str, Any]:
    """
    Create the presence confirmation sent to a new connection.

    Args:
        user: The user registered for the connection

    Returns:
        dict: Event data
    """
    return {
        "clientId": user.connection_id,
        "user": user.to_dict(),
    }


def create_users_list_event(users: Iterable[User]) -> Dict[str, Any]:
    users = [user.to_dict() for user in users]
    return {"users": users, "total_count": len(users)}


def create_previous_messages_event(
    room_id: str, messages: Iterable[Message]
) -> Dict[str, Any]:
    """
    Create the history payload sent to a joining connection.

    Args:
        room_id: Room the history belongs to
        messages: Messages ordered oldest first

    Returns:
        dict: Event data
    """
    return {
        "chatroomId": room_id,
        "messages": [message.to_dict() for message in messages],
    }


def create_receive_message_event(message: Message) -> Dict[str, Any]:
    return message.to_dict()


def create_user_left_event(room_id: str, username: str) -> Dict[str, Any]:
    return {"chatroomId": room_id, "username": username}


def create_chatroom_deleted_event(room_id: str) -> Dict[str, Any]:
    """
    Create a chatroomDeleted event.

    Args:
        room_id: Room that was deleted

    Returns:
        dict: Event data
    """
    return {
        "chatroomId": room_id,
        "message": f"Chatroom '{room_id}' has been deleted",
    }


def create_chatrooms_list_event(rooms: Iterable[Room]) -> Dict[str, Any]:
    rooms = [room.to_dict() for room in rooms]
    return {"chatrooms": rooms, "total_count": len(rooms)}


def create_chatroom_exists_event(room_id: str, exists: bool) -> Dict[str, Any]:
    return {"chatroomId": room_id, "exists": exists}


def create_chatroom_users_list_event(
    room_id: str, users: Iterable[User]
) -> Dict[str, Any]:
    return {
        "chatroomId": room_id,
        "users": [user.to_dict() for user in users],
    }
