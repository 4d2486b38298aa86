"""
Error taxonomy for the Mao engine.

Every engine failure is recoverable: the request is rejected, the session
is left exactly as it was, and the error is reported to the requesting
connection only. Errors are grouped by category; the concrete reason
travels as an ErrorCode so the client can react to it.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine-readable failure reasons sent to clients."""

    # Rejected actions
    ILLEGAL_PLAY = "IllegalPlay"
    CARD_NOT_IN_HAND = "CardNotInHand"
    NOT_YOUR_TURN = "NotYourTurn"
    NOT_ENOUGH_PLAYERS = "NotEnoughPlayers"
    NOT_HOST = "NotHost"
    CHAT_MUTED = "ChatMuted"

    # Missing entities
    ROOM_NOT_FOUND = "RoomNotFound"
    PLAYER_NOT_FOUND = "PlayerNotFound"

    # Precondition violations
    ROOM_FULL = "RoomFull"
    NAME_TAKEN = "NameTaken"
    NAME_INVALID = "NameInvalid"
    ALREADY_ACTIVE = "AlreadyActive"
    ALREADY_SEATED = "AlreadySeated"

    # Exhausted piles
    NO_CARDS_AVAILABLE = "NoCardsAvailable"

    # Transport-level
    INVALID_MESSAGE = "InvalidMessage"
    NOT_IN_ROOM = "NotInRoom"
    INTERNAL_ERROR = "InternalError"


DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.ILLEGAL_PLAY: "Cannot play this card",
    ErrorCode.CARD_NOT_IN_HAND: "Card not in hand",
    ErrorCode.NOT_YOUR_TURN: "Not your turn",
    ErrorCode.NOT_ENOUGH_PLAYERS: "Need at least 2 players",
    ErrorCode.NOT_HOST: "Only the host can start the game",
    ErrorCode.CHAT_MUTED: "Chat is muted during gameplay",
    ErrorCode.ROOM_NOT_FOUND: "Room not found",
    ErrorCode.PLAYER_NOT_FOUND: "Player not found",
    ErrorCode.ROOM_FULL: "Room is full",
    ErrorCode.NAME_TAKEN: "Name already taken",
    ErrorCode.NAME_INVALID: "Player name is required",
    ErrorCode.ALREADY_ACTIVE: "Point of Order already active",
    ErrorCode.ALREADY_SEATED: "Leave your current room first",
    ErrorCode.NO_CARDS_AVAILABLE: "No cards available",
    ErrorCode.INVALID_MESSAGE: "Malformed message",
    ErrorCode.NOT_IN_ROOM: "Join a room first",
    ErrorCode.INTERNAL_ERROR: "Something went wrong",
}


class GameError(Exception):
    """Base class for all recoverable engine errors."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.message = message or DEFAULT_MESSAGES.get(code, code.value)
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Error reply for the requesting connection."""
        return {"type": "error", "code": self.code.value, "message": self.message}


class InvalidActionError(GameError):
    """The request breaks a game rule; nothing changed."""
    pass


class NotFoundError(GameError):
    """The room or player named in the request does not exist."""
    pass


class CapacityError(GameError):
    """A room-level precondition (size, names, open interrupt) was violated."""
    pass


class ResourceExhaustedError(GameError):
    """Neither pile can supply the card that was asked for."""
    pass
