"""
Request Schema Definitions

Typed structures for the events clients send. Incoming frames are decoded
and validated here, before any handler sees them, so handlers work with
well-formed requests only.
"""

import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, TypeVar

from ..errors import InvalidInput
from ..models import parse_timestamp
from ..utils.validation import validate_message_content, validate_name

T = TypeVar("T", bound="BaseRequest")

UPDATE_USERNAME = "updateUsernameInUsersList"
CREATE_CHATROOM = "createChatroom"
JOIN_CHATROOM = "joinChatroom"
LEAVE_CHATROOM = "leaveChatroom"
SEND_MESSAGE = "sendMessage"
GET_CHATROOMS_LIST = "getChatroomsList"
DOES_CHATROOM_EXIST = "doesChatroomExist"
GET_CHATROOM_USERS = "getChatroomUsers"
GET_MESSAGES = "getMessages"


def _require_name(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    is_valid, error = validate_name(value, key)
    if not is_valid:
        raise InvalidInput(error)
    return value.strip()


class BaseRequest:
    """
    Base class for request schemas.

    Subclasses set ``event`` to the client event name and override
    ``_from_data`` when a field needs more than a presence check.
    """

    event: ClassVar[str] = ""

    @classmethod
    def from_data(cls: Type[T], data: Any) -> T:
        """
        Create a validated request from an event payload.

        Raises:
            InvalidInput: If the payload is not an object or a field is invalid
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidInput(f"Payload of '{cls.event}' must be an object")
        return cls._from_data(data)

    @classmethod
    def _from_data(cls: Type[T], data: Dict[str, Any]) -> T:
        return cls(**{f.name: _require_name(data, f.name) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire frame format."""
        if fields(self):
            return {"type": self.event, "data": asdict(self)}
        return {"type": self.event}


@dataclass
class UpdateUsernameRequest(BaseRequest):
    event: ClassVar[str] = UPDATE_USERNAME

    newUsername: str


@dataclass
class CreateChatroomRequest(BaseRequest):
    """
    Request to create a room.

    Attributes:
        chatroomId: Id of the room to create
        username: Name of the creating user
    """

    event: ClassVar[str] = CREATE_CHATROOM

    chatroomId: str
    username: str


@dataclass
class JoinChatroomRequest(BaseRequest):
    event: ClassVar[str] = JOIN_CHATROOM

    chatroomId: str
    username: str


@dataclass
class LeaveChatroomRequest(BaseRequest):
    event: ClassVar[str] = LEAVE_CHATROOM

    chatroomId: str
    username: str


@dataclass
class SendMessageRequest(BaseRequest):
    """
    Request to post a message to a room.

    Attributes:
        chatroomId: Room to post to
        username: Author's display name
        text: Message body
        createdAt: Client side creation time, server time when omitted
    """

    event: ClassVar[str] = SEND_MESSAGE

    chatroomId: str
    username: str
    text: str
    createdAt: Optional[datetime] = None

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "SendMessageRequest":
        text = data.get("text")
        is_valid, error = validate_message_content(text)
        if not is_valid:
            raise InvalidInput(error)

        created_at = None
        if data.get("createdAt") is not None:
            try:
                created_at = parse_timestamp(data["createdAt"])
            except (TypeError, ValueError) as e:
                raise InvalidInput(f"Invalid createdAt: {e}") from e

        return cls(
            chatroomId=_require_name(data, "chatroomId"),
            username=_require_name(data, "username"),
            text=text,
            createdAt=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        frame = super().to_dict()
        if self.createdAt is not None:
            frame["data"]["createdAt"] = self.createdAt.isoformat()
        return frame


@dataclass
class GetChatroomsListRequest(BaseRequest):
    event: ClassVar[str] = GET_CHATROOMS_LIST


@dataclass
class DoesChatroomExistRequest(BaseRequest):
    event: ClassVar[str] = DOES_CHATROOM_EXIST

    chatroomId: str


@dataclass
class GetChatroomUsersRequest(BaseRequest):
    event: ClassVar[str] = GET_CHATROOM_USERS

    chatroomId: str


@dataclass
class GetMessagesRequest(BaseRequest):
    event: ClassVar[str] = GET_MESSAGES

    chatroomId: str


REQUEST_TYPES: Dict[str, Type[BaseRequest]] = {
    request_cls.event: request_cls
    for request_cls in (
        UpdateUsernameRequest,
        CreateChatroomRequest,
        JoinChatroomRequest,
        LeaveChatroomRequest,
        SendMessageRequest,
        GetChatroomsListRequest,
        DoesChatroomExistRequest,
        GetChatroomUsersRequest,
        GetMessagesRequest,
    )
}


def decode_frame(raw: Any) -> Tuple[str, BaseRequest]:
    """
    Decode a client frame of the form {"type": <event>, "data": {...}}.

    Returns:
        tuple: (event name, validated request)

    Raises:
        InvalidInput: On invalid JSON, unknown events or invalid payloads
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        frame = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise InvalidInput("Message must be valid JSON") from e

    if not isinstance(frame, dict):
        raise InvalidInput("Message must be a JSON object")

    event = frame.get("type")
    request_cls = REQUEST_TYPES.get(event) if isinstance(event, str) else None
    if request_cls is None:
        raise InvalidInput(f"Unknown message type: {event}")
    return event, request_cls.from_data(frame.get("data"))
