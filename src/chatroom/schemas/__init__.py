"""
Schemas for the Chatroom Server

This module contains the typed client requests, the payload builders for
server events and the error response format.
"""

from .requests import (
    REQUEST_TYPES,
    BaseRequest,
    UpdateUsernameRequest,
    CreateChatroomRequest,
    JoinChatroomRequest,
    LeaveChatroomRequest,
    SendMessageRequest,
    GetChatroomsListRequest,
    DoesChatroomExistRequest,
    GetChatroomUsersRequest,
    GetMessagesRequest,
    decode_frame,
)
from .events import (
    create_connected_event,
    create_users_list_event,
    create_previous_messages_event,
    create_receive_message_event,
    create_user_left_event,
    create_chatroom_deleted_event,
    create_chatrooms_list_event,
    create_chatroom_exists_event,
    create_chatroom_users_list_event,
)
from .responses import create_error_response

__all__ = [
    "REQUEST_TYPES",
    "BaseRequest",
    "UpdateUsernameRequest",
    "CreateChatroomRequest",
    "JoinChatroomRequest",
    "LeaveChatroomRequest",
    "SendMessageRequest",
    "GetChatroomsListRequest",
    "DoesChatroomExistRequest",
    "GetChatroomUsersRequest",
    "GetMessagesRequest",
    "decode_frame",
    "create_connected_event",
    "create_users_list_event",
    "create_previous_messages_event",
    "create_receive_message_event",
    "create_user_left_event",
    "create_chatroom_deleted_event",
    "create_chatrooms_list_event",
    "create_chatroom_exists_event",
    "create_chatroom_users_list_event",
    "create_error_response",
]
