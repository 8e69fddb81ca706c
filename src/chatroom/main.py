#!/usr/bin/env python3
"""
Chatroom Server

Real-time chatroom server: presence, rooms and messages over WebSocket.
"""

import asyncio
import logging
import os
import sys

from .presence import PresenceDirectory
from .reaper import INACTIVITY_THRESHOLD, REAP_INTERVAL, InactivityReaper
from .rooms import RoomCoordinator
from .service import ChatService
from .store import MessageStore, RoomStore, UserStore
from .utils.locks import KeyedLocks
from .websocket_server import WebSocketServer

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_app(
    host: str,
    port: int,
    reap_interval: float = REAP_INTERVAL,
    inactivity_threshold: float = INACTIVITY_THRESHOLD,
):
    """
    Wire the stores, directory, coordinator, reaper, service and server.

    Returns:
        tuple: (WebSocketServer, InactivityReaper)
    """
    rooms = RoomStore()
    messages = MessageStore()
    users = UserStore()
    room_locks = KeyedLocks()

    directory = PresenceDirectory(users, rooms)
    coordinator = RoomCoordinator(rooms, messages, directory, room_locks)
    reaper = InactivityReaper(
        rooms,
        messages,
        directory,
        room_locks,
        interval=reap_interval,
        threshold=inactivity_threshold,
    )
    service = ChatService(directory, coordinator)
    ws_server = WebSocketServer(service, host, port)
    return ws_server, reaper


async def run_server(
    host: str,
    port: int,
    reap_interval: float = REAP_INTERVAL,
    inactivity_threshold: float = INACTIVITY_THRESHOLD,
):
    """
    Run the chatroom server until cancelled.

    Args:
        host: WebSocket host address to bind to
        port: WebSocket port to listen on
        reap_interval: Seconds between reaper sweeps
        inactivity_threshold: Seconds before an empty room is reaped
    """
    ws_server, reaper = build_app(
        host, port, reap_interval, inactivity_threshold
    )
    service = ws_server.service

    await ws_server.start()
    reaper.start(service.on_reaped)
    logger.info(f"Chatroom server listening on ws://{host}:{port}")

    try:
        # Wait indefinitely
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        await reaper.stop()
        await ws_server.stop()
        await service.directory.purge()
        logger.info("Chatroom server stopped")


def main():
    """Main entry point for the chatroom server."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
    )
    logger.info("Starting chatroom server...")

    host = os.environ.get("WEBSOCKET_HOST", "0.0.0.0")
    port = int(os.environ.get("WEBSOCKET_PORT", "3000"))
    reap_interval = float(os.environ.get("REAP_INTERVAL", REAP_INTERVAL))
    inactivity_threshold = float(
        os.environ.get("INACTIVITY_THRESHOLD", INACTIVITY_THRESHOLD)
    )

    try:
        asyncio.run(
            run_server(host, port, reap_interval, inactivity_threshold)
        )
    except KeyboardInterrupt:
        logger.info("Shutting down chatroom server...")
        sys.exit(0)


if __name__ == "__main__":
    main()
