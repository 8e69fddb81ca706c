"""
Inactivity Reaper

Periodic sweep deleting rooms that are empty and have been inactive for
longer than the threshold, together with their messages.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional

from .errors import storage_errors
from .models import Room, utcnow
from .presence import PresenceDirectory
from .store import MessageStore, RoomStore
from .utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

REAP_INTERVAL = 300  # seconds between sweeps
INACTIVITY_THRESHOLD = 600  # seconds (10 minutes) an empty room may idle


@dataclass
class ReapResult:
    """
    Outcome of one sweep.

    Attributes:
        deleted_room_ids: Rooms removed by the sweep
        rooms: Refreshed room list, None when nothing was deleted
    """

    deleted_room_ids: List[str] = field(default_factory=list)
    rooms: Optional[List[Room]] = None


class InactivityReaper:
    """
    Deletes empty, stale rooms on a fixed interval.

    Shares the per-room locks of the room coordinator and re-reads a
    candidate's membership under its lock, so a join racing the sweep
    either lands before the check (room kept) or finds the room gone.
    """

    def __init__(
        self,
        rooms: RoomStore,
        messages: MessageStore,
        directory: PresenceDirectory,
        locks: KeyedLocks,
        interval: float = REAP_INTERVAL,
        threshold: float = INACTIVITY_THRESHOLD,
    ):
        self.rooms = rooms
        self.messages = messages
        self.directory = directory
        self.locks = locks
        self.interval = interval
        self.threshold = threshold
        self._task: Optional[asyncio.Task] = None
        self._stop: Optional[asyncio.Event] = None

    async def sweep(self) -> ReapResult:
        """
        Run one reaping pass.

        A failure while deleting one room is logged and the remaining
        candidates are still evaluated.
        """
        cutoff = utcnow() - timedelta(seconds=self.threshold)
        with storage_errors("find stale rooms"):
            candidates = await self.rooms.find_stale(cutoff)
        result = ReapResult()

        for candidate in candidates:
            try:
                if await self._reap_room(candidate.room_id, cutoff):
                    result.deleted_room_ids.append(candidate.room_id)
            except Exception:
                logger.exception(
                    f"Failed to remove inactive chatroom {candidate.room_id}"
                )

        if result.deleted_room_ids:
            with storage_errors("list rooms"):
                rooms = await self.rooms.find_all()
            result.rooms = sorted(
                rooms, key=lambda r: r.last_active_at, reverse=True
            )
            logger.info(
                f"Removed {len(result.deleted_room_ids)} inactive chatrooms: "
                f"{result.deleted_room_ids}"
            )
        return result

    async def _reap_room(self, room_id: str, cutoff) -> bool:
        async with self.locks.hold(room_id):
            with storage_errors("find room"):
                room = await self.rooms.find(room_id)
            if room is None:
                return False
            if not room.is_empty() or room.last_active_at >= cutoff:
                return False
            if await self.directory.list_by_room(room_id):
                logger.debug(
                    f"Chatroom {room_id} still has users pointing at it"
                )
                return False

            with storage_errors("delete room"):
                await self.rooms.delete(room_id)
                removed = await self.messages.delete_by_room(room_id)
        logger.info(
            f"Deleted inactive chatroom {room_id} and {removed} messages"
        )
        return True

    def start(
        self, on_reaped: Optional[Callable[[ReapResult], Awaitable[None]]] = None
    ):
        """
        Launch the periodic sweep task.

        Args:
            on_reaped: Coroutine called with the result of every sweep that
                deleted at least one room
        """
        if self._task is not None and not self._task.done():
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop, on_reaped))
        logger.info(
            f"Starting inactivity reaper (interval {self.interval}s, "
            f"threshold {self.threshold}s)"
        )

    async def stop(self):
        """Signal the sweep task to stop and wait for it."""
        if self._task is None:
            return
        self._stop.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Inactivity reaper stopped")

    async def _run(self, stop: asyncio.Event, on_reaped):
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                result = await self.sweep()
                if result.rooms is not None and on_reaped is not None:
                    await on_reaped(result)
            except asyncio.CancelledError:
                logger.info("Inactivity reaper task cancelled")
                raise
            except Exception as e:
                logger.error(f"Error in inactivity reaper: {e}")
