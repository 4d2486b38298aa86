"""WebSocket message handlers for the Mao card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict; dispatch() turns engine
errors into an error reply for the sender so one bad request never
affects the rest of the room.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from errors import CapacityError, ErrorCode, GameError, NotFoundError
from logging_config import get_logger, room_code_var
from models.messages import (
    AddRuleRequest,
    ChatMessageRequest,
    CreateRoomRequest,
    GivePenaltyRequest,
    JoinRoomRequest,
    PlayCardRequest,
)
from room import Room, RoomManager

logger = logging.getLogger(__name__)
log = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_name: Optional[str] = None
    current_room: Optional[Room] = None

    def seat(self) -> tuple[Room, str]:
        """The room and name this connection plays as."""
        if self.current_room is None or self.player_name is None:
            raise NotFoundError(ErrorCode.NOT_IN_ROOM)
        return self.current_room, self.player_name

    def take_seat(self, room: Room, player_name: str) -> None:
        self.current_room = room
        self.player_name = player_name
        room.attach(player_name, self.websocket)
        room_code_var.set(room.code)

    def holds_open_seat(self, room_manager: RoomManager) -> bool:
        """Whether this connection sits in a room that is still open.

        A seat in a room closed by the staleness sweep is released here.
        """
        if self.current_room is None:
            return False
        if room_manager.get_room(self.current_room.code) is self.current_room:
            return True
        self.current_room = None
        self.player_name = None
        room_code_var.set(None)
        return False


async def leave_current_room(ctx: ConnectionContext, room_manager: RoomManager) -> None:
    """Give up this connection's seat (explicit leave or disconnect)."""
    room, player_name = ctx.current_room, ctx.player_name
    ctx.current_room = None
    ctx.player_name = None
    room_code_var.set(None)
    if room is None or player_name is None:
        return

    async with room.game_lock:
        if room_manager.get_room(room.code) is not room:
            room.detach(player_name)
            return
        remaining = room_manager.leave_room(room.code, player_name)
        if remaining is not None:
            await remaining.broadcast({
                "type": "player_left",
                "player_name": player_name,
                "players": remaining.player_list(),
                "game_state": remaining.game.public_view(),
            })


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    request = CreateRoomRequest.model_validate(data)
    if ctx.holds_open_seat(room_manager):
        raise CapacityError(ErrorCode.ALREADY_SEATED)

    room = room_manager.create_room(request.player_name)
    ctx.take_seat(room, request.player_name)

    await ctx.websocket.send_json({
        "type": "room_created",
        "room_code": room.code,
        "player_name": request.player_name,
        "players": room.player_list(),
    })


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    request = JoinRoomRequest.model_validate(data)
    if ctx.holds_open_seat(room_manager):
        raise CapacityError(ErrorCode.ALREADY_SEATED)

    async with room_manager.locked_room(request.room_code) as room:
        room_manager.join_room(room.code, request.player_name)
        ctx.take_seat(room, request.player_name)

        await ctx.websocket.send_json({
            "type": "room_joined",
            "room_code": room.code,
            "player_name": request.player_name,
            "players": room.player_list(),
        })
        await room.broadcast({
            "type": "player_joined",
            "player_name": request.player_name,
            "players": room.player_list(),
        }, exclude=request.player_name)


async def handle_leave_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    await leave_current_room(ctx, room_manager)


# ---------------------------------------------------------------------------
# Game lifecycle / turn handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()

    async with room_manager.locked_room(room.code) as room:
        room.game.start_game(player_name)
        log.with_context(room_code=room.code).info(
            f"Game started with {len(room.game.players)} players"
        )

        await room.send_hands("game_started", game_state=room.game.public_view())


async def handle_play_card(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()
    request = PlayCardRequest.model_validate(data)
    card = request.card.to_card()

    async with room_manager.locked_room(room.code) as room:
        winner = room.game.play_card(player_name, card, request.declared_suit)
        game_state = room.game.public_view()

        if winner:
            log.with_context(room_code=room.code, player_name=winner).info("Round won")
            await room.broadcast({
                "type": "player_won",
                "winner": winner,
                "game_state": game_state,
            })
        else:
            await room.broadcast({
                "type": "card_played",
                "player": player_name,
                "card": card.to_dict(),
                "game_state": game_state,
            })

        await room.send_hands()


async def handle_draw_card(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()

    async with room_manager.locked_room(room.code) as room:
        card = room.game.draw_card(player_name)

        await ctx.websocket.send_json({
            "type": "card_drawn",
            "card": card.to_dict(),
            "hand": room.game.private_view(player_name)["hand"],
        })
        await room.broadcast({
            "type": "player_drew_card",
            "player": player_name,
            "game_state": room.game.public_view(),
        }, exclude=player_name)


# ---------------------------------------------------------------------------
# Side-channel handlers
# ---------------------------------------------------------------------------

async def handle_give_penalty(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()
    request = GivePenaltyRequest.model_validate(data)

    async with room_manager.locked_room(room.code) as room:
        penalty = room.game.give_penalty(player_name, request.receiver, request.reason)
        log.with_context(room_code=room.code, player_name=player_name).info(
            f"Penalty to {penalty.receiver} (card given: {penalty.card_given})"
        )

        await room.broadcast({
            "type": "penalty_given",
            "penalty": penalty.to_dict(),
            "game_state": room.game.public_view(),
        })
        await room.send_to(penalty.receiver, {
            "type": "hand_update",
            **room.game.private_view(penalty.receiver),
        })


async def handle_call_point_of_order(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()

    async with room_manager.locked_room(room.code) as room:
        room.game.call_point_of_order(player_name)

        await room.broadcast({
            "type": "point_of_order_called",
            "player": player_name,
            "game_state": room.game.public_view(),
        })


async def handle_end_point_of_order(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, _ = ctx.seat()

    async with room_manager.locked_room(room.code) as room:
        room.game.end_point_of_order()

        await room.broadcast({
            "type": "point_of_order_ended",
            "game_state": room.game.public_view(),
        })


async def handle_add_rule(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()
    request = AddRuleRequest.model_validate(data)

    async with room_manager.locked_room(room.code) as room:
        rule_count = room.game.add_custom_rule(player_name, request.rule)

        # Only the count is shared; the rule text stays secret
        await room.broadcast({
            "type": "rule_added",
            "creator": player_name,
            "rule_count": rule_count,
        })


async def handle_chat_message(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room, player_name = ctx.seat()
    request = ChatMessageRequest.model_validate(data)

    async with room_manager.locked_room(room.code) as room:
        message = room.game.chat_message(player_name, request.message)
        await room.broadcast({"type": "chat_message", **message})


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "leave_room": handle_leave_room,
    "start_game": handle_start_game,
    "play_card": handle_play_card,
    "draw_card": handle_draw_card,
    "give_penalty": handle_give_penalty,
    "call_point_of_order": handle_call_point_of_order,
    "end_point_of_order": handle_end_point_of_order,
    "add_rule": handle_add_rule,
    "chat_message": handle_chat_message,
}


async def send_error(ctx: ConnectionContext, code: ErrorCode, message: Optional[str] = None) -> None:
    await ctx.websocket.send_json(GameError(code, message).to_dict())


async def dispatch_raw(raw: str, ctx: ConnectionContext, **deps) -> None:
    """Decode one text frame and dispatch it."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        await send_error(ctx, ErrorCode.INVALID_MESSAGE, "Messages must be JSON")
        return
    await dispatch(data, ctx, **deps)


async def dispatch(data, ctx: ConnectionContext, **deps) -> None:
    """
    Run the handler for one client message.

    Rejected actions are answered with an error on the sender's own
    connection; a missing or non-string type is InvalidMessage and an
    unknown type is ignored.
    """
    if not isinstance(data, dict):
        await send_error(ctx, ErrorCode.INVALID_MESSAGE)
        return

    msg_type = data.get("type")
    if not isinstance(msg_type, str):
        await send_error(ctx, ErrorCode.INVALID_MESSAGE)
        return

    handler = HANDLERS.get(msg_type)
    if handler is None:
        return

    try:
        await handler(data, ctx, **deps)
    except GameError as e:
        logger.debug(f"{msg_type} rejected: {e.code.value}")
        await ctx.websocket.send_json(e.to_dict())
    except ValidationError as e:
        await send_error(ctx, ErrorCode.INVALID_MESSAGE, f"Invalid {msg_type} message: {e.error_count()} error(s)")
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception(f"Handler for {msg_type} failed")
        await send_error(ctx, ErrorCode.INTERNAL_ERROR)
