"""
WebSocket Server for the Chatroom Server

Accepts client connections, assigns each a connection id, tags connections
with the rooms they are in and delivers events to one connection, one room
or everyone. Incoming frames are handed to the chat service.
"""

import asyncio
import json
import logging
import uuid
from typing import Dict, Iterable, Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection, serve

from .service import ChatService
from .utils.broadcast import Delivery, Scope

logger = logging.getLogger(__name__)

ALL_CONNECTIONS = "*"


class WebSocketServer:
    """
    WebSocket hub for client connections.

    Frames in both directions are JSON objects of the form
    {"type": <event name>, "data": <payload>}.
    """

    def __init__(self, service: ChatService, host: str, port: int):
        """
        Initialize the WebSocket server.

        Args:
            service: The chat service handling client events
            host: Host address to bind to
            port: Port to listen on
        """
        self.service = service
        self.service.transport = self
        self.host = host
        self.port = port
        self.server = None
        # Maps connection_id -> websocket
        self.connections: Dict[str, ServerConnection] = {}
        # Maps room_id -> set of connection_ids
        self._room_clients: Dict[str, Set[str]] = {}
        # Maps connection_id -> set of room_ids
        self._client_rooms: Dict[str, Set[str]] = {}

    async def start(self):
        """Start the WebSocket server."""
        self.server = await serve(self.handle_client, self.host, self.port)
        logger.info(f"WebSocket server started on ws://{self.host}:{self.port}")

    async def stop(self):
        """Stop the WebSocket server."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("WebSocket server stopped")

    async def handle_client(self, websocket: ServerConnection):
        """
        Handle a client connection for its whole lifetime.

        Args:
            websocket: The WebSocket connection
        """
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        logger.info(f"Client {connection_id} connected")

        try:
            await self.service.on_connect(connection_id)
            async for message in websocket:
                await self.service.handle_message(connection_id, message)
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Client {connection_id} disconnected")
        except Exception as e:
            logger.error(f"Error handling client {connection_id}: {e}")
        finally:
            self.unregister_client(connection_id)
            try:
                await self.service.on_disconnect(connection_id)
            except Exception as e:
                logger.error(
                    f"Error cleaning up after client {connection_id}: {e}"
                )
            logger.info(f"Client {connection_id} removed")

    # ===== Room channels =====

    def join_room_channel(self, connection_id: str, room_id: str):
        """
        Tag a connection with a room so room broadcasts reach it.

        Args:
            connection_id: The connection
            room_id: The room ID
        """
        self._room_clients.setdefault(room_id, set()).add(connection_id)
        self._client_rooms.setdefault(connection_id, set()).add(room_id)

    def leave_room_channel(self, connection_id: str, room_id: str):
        if room_id in self._room_clients:
            self._room_clients[room_id].discard(connection_id)
            if not self._room_clients[room_id]:
                del self._room_clients[room_id]
        if connection_id in self._client_rooms:
            self._client_rooms[connection_id].discard(room_id)

    def close_room_channel(self, room_id: str):
        """Drop every connection's tag for a deleted room."""
        for connection_id in self._room_clients.pop(room_id, set()):
            if connection_id in self._client_rooms:
                self._client_rooms[connection_id].discard(room_id)

    def unregister_client(self, connection_id: str):
        """Forget a connection and all of its room tags."""
        self.connections.pop(connection_id, None)
        for room_id in self._client_rooms.pop(connection_id, set()):
            if room_id in self._room_clients:
                self._room_clients[room_id].discard(connection_id)
                if not self._room_clients[room_id]:
                    del self._room_clients[room_id]

    def room_members(self, room_id: str) -> Set[str]:
        return set(self._room_clients.get(room_id, set()))

    # ===== Delivery =====

    async def emit(self, connection_id: str, event: str, payload: dict):
        """
        Send an event to one connection.

        Args:
            connection_id: Receiving connection
            event: Event name
            payload: Event data
        """
        websocket = self.connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {event} for unknown client {connection_id}")
            return
        await self._send(websocket, json.dumps({"type": event, "data": payload}))

    async def broadcast(
        self,
        room_id: str,
        event: str,
        payload: dict,
        exclude: Optional[str] = None,
    ):
        """
        Send an event to every connection in a room, or to all connections
        when room_id is "*".

        Args:
            room_id: The room ID or "*"
            event: Event name
            payload: Event data
            exclude: Optional connection to skip
        """
        if room_id == ALL_CONNECTIONS:
            targets = list(self.connections)
        else:
            targets = list(self._room_clients.get(room_id, ()))

        message_json = json.dumps({"type": event, "data": payload})
        sends = [
            self._send(self.connections[connection_id], message_json)
            for connection_id in targets
            if connection_id != exclude and connection_id in self.connections
        ]
        if sends:
            await asyncio.gather(*sends)
        logger.debug(f"Broadcast {event} to {len(sends)} clients in {room_id}")

    async def deliver(self, deliveries: Iterable[Delivery]):
        """Send deliveries one after another, preserving their order."""
        for delivery in deliveries:
            if delivery.scope is Scope.CLIENT:
                await self.emit(delivery.target, delivery.event, delivery.payload)
            elif delivery.scope is Scope.ROOM:
                await self.broadcast(
                    delivery.target, delivery.event, delivery.payload
                )
            else:
                await self.broadcast(
                    ALL_CONNECTIONS, delivery.event, delivery.payload
                )

    async def _send(self, websocket, message_json: str):
        try:
            await websocket.send(message_json)
        except websockets.exceptions.ConnectionClosed:
            pass
