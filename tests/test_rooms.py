"""
Tests for the Room Membership Coordinator

Tests for creating, joining and leaving rooms, saving messages and the
idempotence of membership changes.
"""

import asyncio
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock

from src.chatroom import (
    AlreadyExists,
    InvalidInput,
    MessageStore,
    NotFound,
    PresenceDirectory,
    RoomCoordinator,
    RoomStore,
    StorageFailure,
    UserStore,
    LOBBY,
    SYSTEM_AUTHOR,
)
from src.chatroom.models import utcnow


@pytest.fixture
def rooms():
    return RoomStore()


@pytest.fixture
def messages():
    return MessageStore()


@pytest.fixture
def directory(rooms):
    return PresenceDirectory(UserStore(), rooms)


@pytest.fixture
def coordinator(rooms, messages, directory):
    return RoomCoordinator(rooms, messages, directory)


async def register(directory, connection_id, name):
    await directory.register_connection(connection_id)
    return await directory.rename_user(connection_id, name)


def texts(message_list):
    return [m.text for m in message_list]


# ===== Create Tests =====


@pytest.mark.asyncio
async def test_create_room(coordinator, directory):
    """Test that the creator is the only member and is moved in."""
    await register(directory, "conn-a", "alice")

    result = await coordinator.create_room("general", "alice", "conn-a")

    assert result.room.room_id == "general"
    assert result.room.member_usernames == {"alice"}
    assert result.system_message.text == "alice has created the chatroom"
    assert result.system_message.author_name == SYSTEM_AUTHOR
    assert result.system_message.system is True
    assert (await directory.find("conn-a")).room_id == "general"


@pytest.mark.asyncio
async def test_create_duplicate_room(coordinator):
    await coordinator.create_room("general", "alice")

    with pytest.raises(AlreadyExists):
        await coordinator.create_room("general", "bob")

    room = (await coordinator.get_chatrooms())[0]
    assert room.member_usernames == {"alice"}
    assert len(await coordinator.get_messages_by_chatroom("general")) == 1


@pytest.mark.asyncio
async def test_create_room_without_online_user(coordinator):
    """Test that creation succeeds when the creator has no presence row."""
    result = await coordinator.create_room("general", "ghost")
    assert result.room.member_usernames == {"ghost"}


@pytest.mark.asyncio
@pytest.mark.parametrize("room_id,username", [("", "alice"), ("general", "")])
async def test_create_room_invalid_input(coordinator, room_id, username):
    with pytest.raises(InvalidInput):
        await coordinator.create_room(room_id, username)
    assert await coordinator.get_chatrooms() == []


# ===== Join Tests =====


@pytest.mark.asyncio
async def test_join_room(coordinator, directory):
    await register(directory, "conn-b", "bob")
    await coordinator.create_room("general", "alice")

    result = await coordinator.join_room("general", "bob", "conn-b")

    assert result.joined is True
    assert result.room.member_usernames == {"alice", "bob"}
    assert result.system_message.text == "bob has joined the chatroom"
    assert (await directory.find("conn-b")).room_id == "general"


@pytest.mark.asyncio
async def test_join_returns_prior_history_only(coordinator):
    """Test that the history excludes the joiner's own join message."""
    await coordinator.create_room("general", "alice")
    await coordinator.save_message("general", "alice", "hello")

    result = await coordinator.join_room("general", "bob")

    assert texts(result.history) == [
        "alice has created the chatroom",
        "hello",
    ]


@pytest.mark.asyncio
async def test_join_is_idempotent(coordinator):
    """Test that repeated joins keep one membership and one message."""
    await coordinator.create_room("general", "alice")

    for _ in range(3):
        await coordinator.join_room("general", "bob")

    room = (await coordinator.get_chatrooms())[0]
    assert sorted(room.member_usernames) == ["alice", "bob"]
    joined = [
        m
        for m in await coordinator.get_messages_by_chatroom("general")
        if m.text == "bob has joined the chatroom"
    ]
    assert len(joined) == 1


@pytest.mark.asyncio
async def test_repeated_join_reports_no_state_change(coordinator):
    await coordinator.create_room("general", "alice")
    await coordinator.join_room("general", "bob")

    result = await coordinator.join_room("general", "bob")

    assert result.joined is False
    assert result.system_message is None
    assert len(result.history) == 2


@pytest.mark.asyncio
async def test_concurrent_joins_are_idempotent(coordinator):
    await coordinator.create_room("general", "alice")

    await asyncio.gather(
        *(coordinator.join_room("general", "bob") for _ in range(10))
    )

    all_messages = await coordinator.get_messages_by_chatroom("general")
    assert texts(all_messages).count("bob has joined the chatroom") == 1


@pytest.mark.asyncio
async def test_join_missing_room(coordinator):
    with pytest.raises(NotFound):
        await coordinator.join_room("missing", "bob")


# ===== Leave Tests =====


@pytest.mark.asyncio
async def test_leave_room(coordinator, directory):
    await register(directory, "conn-b", "bob")
    await coordinator.create_room("general", "alice")
    await coordinator.join_room("general", "bob", "conn-b")

    result = await coordinator.leave_room("general", "bob", "conn-b")

    assert result.left is True
    assert result.room_deleted is False
    assert result.room.member_usernames == {"alice"}
    assert result.system_message.text == "bob has left the chatroom"
    assert (await directory.find("conn-b")).room_id == LOBBY


@pytest.mark.asyncio
async def test_leave_as_non_member_keeps_membership(coordinator):
    """Test that the departure is still announced without a state change."""
    await coordinator.create_room("general", "alice")

    result = await coordinator.leave_room("general", "mallory")

    assert result.left is False
    assert result.system_message.text == "mallory has left the chatroom"
    assert result.room.member_usernames == {"alice"}


@pytest.mark.asyncio
async def test_last_leave_keeps_room_for_reaper(coordinator):
    await coordinator.create_room("general", "alice")

    result = await coordinator.leave_room("general", "alice")

    assert result.room.member_usernames == set()
    assert result.room_deleted is False
    assert await coordinator.room_exists("general")


@pytest.mark.asyncio
async def test_leave_does_not_move_user_out_of_another_room(
    coordinator, directory
):
    """Test that a stale leave does not reset a pointer to another room."""
    await register(directory, "conn-a", "alice")
    await coordinator.create_room("general", "alice", "conn-a")
    await coordinator.create_room("random", "alice", "conn-a")

    await coordinator.leave_room("general", "alice", "conn-a")

    assert (await directory.find("conn-a")).room_id == "random"


@pytest.mark.asyncio
async def test_leave_missing_room(coordinator):
    with pytest.raises(NotFound):
        await coordinator.leave_room("missing", "bob")


# ===== Message Tests =====


@pytest.mark.asyncio
async def test_save_message_missing_room(coordinator):
    with pytest.raises(NotFound):
        await coordinator.save_message("missing", "alice", "hi")


@pytest.mark.asyncio
async def test_save_message_updates_last_active(coordinator, rooms):
    await coordinator.create_room("general", "alice")
    old = utcnow() - timedelta(hours=1)
    await rooms.update_last_active("general", old)

    message = await coordinator.save_message(
        "general", "alice", "hi", bubble_color="#112233"
    )

    room = await rooms.find("general")
    assert room.last_active_at > old
    assert message.bubble_color == "#112233"
    assert message.system is False


@pytest.mark.asyncio
async def test_save_empty_message(coordinator):
    await coordinator.create_room("general", "alice")

    with pytest.raises(InvalidInput):
        await coordinator.save_message("general", "alice", "   ")


@pytest.mark.asyncio
async def test_message_history_order(coordinator):
    """Test create, join and message are returned oldest first."""
    await coordinator.create_room("general", "alice")
    await coordinator.join_room("general", "bob")
    await coordinator.save_message(
        "general", "alice", "hi", created_at=utcnow() + timedelta(seconds=1)
    )

    history = await coordinator.get_messages_by_chatroom("general")

    assert texts(history) == [
        "alice has created the chatroom",
        "bob has joined the chatroom",
        "hi",
    ]
    assert [m.system for m in history] == [True, True, False]


@pytest.mark.asyncio
async def test_messages_with_equal_timestamps_keep_insertion_order(
    coordinator,
):
    await coordinator.create_room("general", "alice")
    at = utcnow() + timedelta(seconds=5)

    for text in ("one", "two", "three"):
        await coordinator.save_message("general", "alice", text, created_at=at)

    history = await coordinator.get_messages_by_chatroom("general")
    assert texts(history)[1:] == ["one", "two", "three"]


# ===== Listing and Rename Tests =====


@pytest.mark.asyncio
async def test_get_chatrooms_most_recent_first(coordinator, rooms):
    await coordinator.create_room("older", "alice")
    await coordinator.create_room("newer", "bob")
    await rooms.update_last_active("older", utcnow() - timedelta(minutes=5))

    chatrooms = await coordinator.get_chatrooms()

    assert [r.room_id for r in chatrooms] == ["newer", "older"]


@pytest.mark.asyncio
async def test_room_exists(coordinator):
    assert not await coordinator.room_exists("general")
    await coordinator.create_room("general", "alice")
    assert await coordinator.room_exists("general")


@pytest.mark.asyncio
async def test_rename_member(coordinator, rooms):
    await coordinator.create_room("general", "alice")

    assert await coordinator.rename_member("general", "alice", "alicia")

    room = await rooms.find("general")
    assert room.member_usernames == {"alicia"}


@pytest.mark.asyncio
async def test_rename_member_in_lobby_is_noop(coordinator):
    assert not await coordinator.rename_member(LOBBY, "alice", "alicia")


@pytest.mark.asyncio
async def test_get_chatroom_users(coordinator, directory):
    await register(directory, "conn-a", "alice")
    await register(directory, "conn-b", "bob")
    await coordinator.create_room("general", "alice", "conn-a")

    users = await coordinator.get_chatroom_users("general")

    assert [u.display_name for u in users] == ["alice"]


# ===== Storage Failure Tests =====


@pytest.mark.asyncio
async def test_store_error_surfaces_as_storage_failure(
    coordinator, rooms
):
    rooms.create = AsyncMock(side_effect=RuntimeError("connection reset"))

    with pytest.raises(StorageFailure) as exc_info:
        await coordinator.create_room("general", "alice")

    assert "connection reset" in exc_info.value.message
