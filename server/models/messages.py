"""
Inbound WebSocket message schemas.

Each client action that carries data is validated here before it reaches
the engine, so a malformed message is rejected without touching a room.
Actions without a payload (start_game, draw_card, ...) need no schema.
"""

from typing import Optional

from pydantic import BaseModel, Field

from game import Card, Rank, Suit


class CardPayload(BaseModel):
    """A card as sent by the client: {"suit": "hearts", "rank": "10"}."""
    suit: Suit
    rank: Rank

    def to_card(self) -> Card:
        return Card(self.suit, self.rank)


class CreateRoomRequest(BaseModel):
    """Request to open a new room."""
    player_name: str = ""


class JoinRoomRequest(BaseModel):
    """Request to take a seat in an existing room."""
    room_code: str
    player_name: str = ""


class PlayCardRequest(BaseModel):
    """Request to play a card; declared_suit only counts for Jacks."""
    card: CardPayload
    declared_suit: Optional[Suit] = None


class GivePenaltyRequest(BaseModel):
    """Request to penalize another player."""
    receiver: str
    reason: str = Field(default="", max_length=500)


class AddRuleRequest(BaseModel):
    """Request to record a new house rule."""
    rule: str = Field(max_length=1000)


class ChatMessageRequest(BaseModel):
    """Table talk."""
    message: str = Field(min_length=1, max_length=1000)
