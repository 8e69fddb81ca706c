"""
Tests for the Presence Directory

Tests for connection registration, renaming, room pointers, lookups and
removal.
"""

import re

import pytest
from unittest.mock import AsyncMock

from src.chatroom import (
    DuplicateConnection,
    InvalidInput,
    NotFound,
    PresenceDirectory,
    Room,
    RoomStore,
    StorageFailure,
    UserStore,
    LOBBY,
)


@pytest.fixture
def rooms():
    return RoomStore()


@pytest.fixture
def directory(rooms):
    return PresenceDirectory(UserStore(), rooms)


# ===== Registration Tests =====


@pytest.mark.asyncio
async def test_register_connection_defaults(directory):
    """Test that a new user gets a default name, the lobby and colors."""
    user = await directory.register_connection("conn-1")

    assert user.connection_id == "conn-1"
    assert user.display_name == "conn-1"
    assert user.room_id == LOBBY
    assert len(user.color_scheme) == 10
    assert re.match(r"^#[0-9a-f]{6}$", user.bubble_color)
    assert user.avatar_url is None


@pytest.mark.asyncio
async def test_register_connection_twice_fails(directory):
    await directory.register_connection("conn-1")

    with pytest.raises(DuplicateConnection):
        await directory.register_connection("conn-1")

    assert len(await directory.list_all()) == 1


# ===== Rename Tests =====


@pytest.mark.asyncio
async def test_rename_user(directory):
    await directory.register_connection("conn-1")

    user = await directory.rename_user("conn-1", "alice")

    assert user.display_name == "alice"
    assert (await directory.find("conn-1")).display_name == "alice"
    assert (await directory.find_by_name("alice")).connection_id == "conn-1"


@pytest.mark.asyncio
async def test_rename_unknown_user(directory):
    with pytest.raises(NotFound):
        await directory.rename_user("missing", "alice")


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", None])
async def test_rename_with_empty_name(directory, name):
    await directory.register_connection("conn-1")

    with pytest.raises(InvalidInput):
        await directory.rename_user("conn-1", name)

    assert (await directory.find("conn-1")).display_name == "conn-1"


# ===== Room Pointer Tests =====


@pytest.mark.asyncio
async def test_set_user_room_by_connection_id(directory):
    await directory.register_connection("conn-1")

    user = await directory.set_user_room("conn-1", "general")

    assert user.room_id == "general"


@pytest.mark.asyncio
async def test_set_user_room_by_display_name(directory):
    """Test that the key falls back to the display name index."""
    await directory.register_connection("conn-1")
    await directory.rename_user("conn-1", "alice")

    user = await directory.set_user_room("alice", "general")

    assert user.connection_id == "conn-1"
    assert user.room_id == "general"


@pytest.mark.asyncio
async def test_set_user_room_unknown(directory):
    with pytest.raises(NotFound):
        await directory.set_user_room("nobody", "general")


@pytest.mark.asyncio
async def test_list_by_room(directory):
    for connection_id in ("conn-1", "conn-2", "conn-3"):
        await directory.register_connection(connection_id)
    await directory.set_user_room("conn-1", "general")
    await directory.set_user_room("conn-3", "general")

    users = await directory.list_by_room("general")

    assert sorted(u.connection_id for u in users) == ["conn-1", "conn-3"]
    assert len(await directory.list_by_room(LOBBY)) == 1


@pytest.mark.asyncio
async def test_resolve_room_with_stale_pointer(directory, rooms):
    """Test that a pointer to a deleted room reads as the lobby."""
    await rooms.create(Room(room_id="general"))
    await directory.register_connection("conn-1")
    user = await directory.set_user_room("conn-1", "general")
    assert await directory.resolve_room(user) == "general"

    await rooms.delete("general")

    assert await directory.resolve_room(user) == LOBBY


# ===== Lookup and Removal Tests =====


@pytest.mark.asyncio
async def test_find_unknown(directory):
    with pytest.raises(NotFound):
        await directory.find("missing")
    with pytest.raises(NotFound):
        await directory.find_by_name("missing")


@pytest.mark.asyncio
async def test_list_all_is_stable(directory):
    """Test that two reads without a mutation return the same users."""
    await directory.register_connection("conn-1")
    await directory.register_connection("conn-2")

    first = await directory.list_all()
    second = await directory.list_all()

    assert first == second


@pytest.mark.asyncio
async def test_list_all_returns_copies(directory):
    await directory.register_connection("conn-1")

    users = await directory.list_all()
    users[0].display_name = "tampered"

    assert (await directory.find("conn-1")).display_name == "conn-1"


@pytest.mark.asyncio
async def test_remove(directory):
    await directory.register_connection("conn-1")

    removed = await directory.remove("conn-1")

    assert removed.connection_id == "conn-1"
    assert await directory.list_all() == []


@pytest.mark.asyncio
async def test_remove_unknown_is_noop(directory):
    assert await directory.remove("missing") is None


@pytest.mark.asyncio
async def test_touch_updates_last_active(directory):
    user = await directory.register_connection("conn-1")

    touched = await directory.touch("conn-1")

    assert touched.last_active_at >= user.last_active_at


@pytest.mark.asyncio
async def test_update_and_clear_avatar(directory):
    await directory.register_connection("conn-1")

    user = await directory.update_avatar("conn-1", "/uploads/1-me.png")
    assert user.avatar_url == "/uploads/1-me.png"

    user = await directory.update_avatar("conn-1", "")
    assert user.avatar_url is None


@pytest.mark.asyncio
async def test_update_avatar_unknown(directory):
    with pytest.raises(NotFound):
        await directory.update_avatar("missing", "/uploads/x.png")


@pytest.mark.asyncio
async def test_purge(directory):
    await directory.register_connection("conn-1")
    await directory.register_connection("conn-2")

    assert await directory.purge() == 2
    assert await directory.list_all() == []


@pytest.mark.asyncio
async def test_store_errors_become_storage_failure():
    users = UserStore()
    users.find_all = AsyncMock(side_effect=RuntimeError("store offline"))
    directory = PresenceDirectory(users)

    with pytest.raises(StorageFailure):
        await directory.list_all()
