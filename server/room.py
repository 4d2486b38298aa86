"""
Room management for multiplayer Mao games.

This module handles room creation, player membership, and the WebSocket
association for each seat.

A Room contains:
    - A unique room code for joining
    - A Game instance with the authoritative session state
    - The connection table mapping player names to WebSockets
    - A lock that serializes every mutation of the session

The connection table lives here rather than on game.Player so the engine
never depends on the transport.
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from fastapi import WebSocket

from constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from errors import CapacityError, ErrorCode, NotFoundError
from game import Game, now_ms

logger = logging.getLogger(__name__)


@dataclass
class Room:
    """
    A game room that hosts one Mao session.

    Attributes:
        code: Room code players type to join (e.g., "K3X9QZ").
        game: The Game instance containing actual game state.
        connections: Dict mapping player names to their WebSocket.
        game_lock: asyncio.Lock for serializing game mutations to prevent race conditions.
    """

    code: str
    game: Game
    connections: dict[str, WebSocket] = field(default_factory=dict)
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def attach(self, player_name: str, websocket: WebSocket) -> None:
        """Associate a seated player with the connection that reaches them."""
        self.connections[player_name] = websocket

    def detach(self, player_name: str) -> None:
        self.connections.pop(player_name, None)

    def is_empty(self) -> bool:
        """Check if the room has no players."""
        return not self.game.players

    def player_list(self) -> list[dict]:
        """Get list of players for client display."""
        return self.game.player_list()

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every connected player in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player name to skip.
        """
        for player_name, websocket in list(self.connections.items()):
            if player_name != exclude:
                await self._safe_send(player_name, websocket, message)

    async def send_to(self, player_name: str, message: dict) -> None:
        """
        Send a message to a specific player.

        Args:
            player_name: Name of the recipient player.
            message: JSON-serializable message dict.
        """
        websocket = self.connections.get(player_name)
        if websocket is not None:
            await self._safe_send(player_name, websocket, message)

    async def send_hands(self, message_type: str = "hand_update", **extra) -> None:
        """Send every player their own hand, and nobody else's."""
        for player in self.game.players:
            view = self.game.private_view(player.name)
            await self.send_to(player.name, {"type": message_type, **view, **extra})

    async def _safe_send(self, player_name: str, websocket: WebSocket, message: dict) -> None:
        # A dead socket must not stop delivery to the rest of the table
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.debug(
                f"Send to {player_name} failed: {e}",
                extra={"room_code": self.code},
            )


class RoomManager:
    """
    Registry of all open rooms.

    Provides room creation with unique codes, lookup, membership changes
    and removal of stale rooms. The server builds one instance and hands
    it to every handler; tests build their own.
    """

    def __init__(self) -> None:
        """Initialize an empty room manager."""
        self.rooms: dict[str, Room] = {}

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a room code not used by any open room."""
        for _ in range(max_attempts):
            code = "".join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(self, host_name: str) -> Room:
        """
        Open a new room with host_name as its only player.

        Raises:
            CapacityError: NameInvalid.
        """
        if not host_name or not host_name.strip():
            raise CapacityError(ErrorCode.NAME_INVALID)

        code = self._generate_code()
        game = Game(room_code=code)
        game.add_player(host_name)
        room = Room(code=code, game=game)
        self.rooms[code] = room

        logger.info(f"Room created by {host_name}", extra={"room_code": code})
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """
        Get a room by its code (case-insensitive).

        Returns:
            The Room if found, None otherwise.
        """
        if not code:
            return None
        return self.rooms.get(code.upper())

    def require_room(self, code: str) -> Room:
        room = self.get_room(code)
        if room is None:
            raise NotFoundError(ErrorCode.ROOM_NOT_FOUND)
        return room

    @asynccontextmanager
    async def locked_room(self, code: str) -> AsyncIterator[Room]:
        """
        Hold a room's lock for the duration of one action.

        Raises RoomNotFound if the room is closed before or while waiting
        for the lock.
        """
        room = self.require_room(code)
        async with room.game_lock:
            if self.rooms.get(room.code) is not room:
                raise NotFoundError(ErrorCode.ROOM_NOT_FOUND)
            yield room

    def join_room(self, code: str, player_name: str) -> Room:
        """
        Seat a player in an existing room.

        Raises:
            NotFoundError: RoomNotFound.
            CapacityError: RoomFull, NameTaken or NameInvalid.
        """
        room = self.require_room(code)
        room.game.add_player(player_name)
        logger.info(f"{player_name} joined", extra={"room_code": room.code})
        return room

    def leave_room(self, code: str, player_name: str) -> Optional[Room]:
        """
        Remove a player from a room, closing the room once it is empty.

        Returns:
            The Room if it is still open, None if it was closed or never existed.
        """
        room = self.get_room(code)
        if room is None:
            return None

        if room.game.remove_player(player_name) is not None:
            logger.info(f"{player_name} left", extra={"room_code": room.code})
        room.detach(player_name)

        if room.is_empty():
            self.remove_room(room.code)
            logger.info("Room closed - no players left", extra={"room_code": room.code})
            return None
        return room

    def remove_room(self, code: str) -> None:
        """Delete a room."""
        if code in self.rooms:
            del self.rooms[code]

    def sweep_stale(self, max_age_ms: int, now: Optional[int] = None) -> list[str]:
        """
        Close rooms created more than max_age_ms ago.

        Rooms whose lock is held by an in-flight action are left for the
        next sweep.

        Returns:
            Codes of the rooms that were closed.
        """
        return [room.code for room in self._remove_stale(max_age_ms, now)]

    async def close_stale_rooms(self, max_age_ms: int, now: Optional[int] = None) -> list[str]:
        """
        Sweep stale rooms and tell everyone still connected to them.

        Each swept room's connections get a room_closed message and are
        then dropped from the room's connection table.

        Returns:
            Codes of the rooms that were closed.
        """
        removed = self._remove_stale(max_age_ms, now)
        for room in removed:
            await room.broadcast({
                "type": "room_closed",
                "room_code": room.code,
                "reason": "expired",
            })
            room.connections.clear()
        return [room.code for room in removed]

    def _remove_stale(self, max_age_ms: int, now: Optional[int]) -> list[Room]:
        now = now if now is not None else now_ms()
        removed = []
        for code, room in list(self.rooms.items()):
            if now - room.game.created_at <= max_age_ms:
                continue
            if room.game_lock.locked():
                continue
            del self.rooms[code]
            removed.append(room)

        if removed:
            codes = ", ".join(room.code for room in removed)
            logger.info(f"Swept {len(removed)} stale room(s): {codes}")
        return removed

    def room_count(self) -> int:
        return len(self.rooms)

    def connection_count(self) -> int:
        """Number of players with a live connection across all rooms."""
        return sum(len(room.connections) for room in self.rooms.values())
