"""Wire models for the Mao game server."""

from .messages import (
    CardPayload,
    ChatMessageRequest,
    CreateRoomRequest,
    GivePenaltyRequest,
    JoinRoomRequest,
    PlayCardRequest,
    AddRuleRequest,
)

__all__ = [
    "CardPayload",
    "ChatMessageRequest",
    "CreateRoomRequest",
    "GivePenaltyRequest",
    "JoinRoomRequest",
    "PlayCardRequest",
    "AddRuleRequest",
]
