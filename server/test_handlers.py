"""
Test suite for WebSocket message handlers.

Drives handlers through dispatch() with mock WebSockets and checks what
each connection receives: successful flows, fan-out of public state,
private hands, and error replies that leave the room untouched.

Run with: pytest test_handlers.py -v
"""

import pytest

from game import Card, Deck, Rank, Suit, standard_cards
from handlers import ConnectionContext, dispatch, dispatch_raw, leave_current_room
from room import RoomManager


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]

    def clear(self):
        self.messages.clear()


def make_ctx(connection_id: str = "conn_123") -> ConnectionContext:
    return ConnectionContext(websocket=MockWebSocket(), connection_id=connection_id)


def C(rank: str, suit: str) -> Card:
    return Card(Suit(suit), Rank(rank))


async def send(ctx: ConnectionContext, rm: RoomManager, msg_type: str, **fields) -> None:
    await dispatch({"type": msg_type, **fields}, ctx, room_manager=rm)


async def seated_table(*names: str, start: bool = False):
    """Create a room through the handlers and seat every name in it."""
    rm = RoomManager()
    ctxs = {name: make_ctx(f"conn_{name}") for name in names}
    await send(ctxs[names[0]], rm, "create_room", player_name=names[0])
    code = ctxs[names[0]].current_room.code
    for name in names[1:]:
        await send(ctxs[name], rm, "join_room", room_code=code, player_name=name)
    if start:
        await send(ctxs[names[0]], rm, "start_game")
    for ctx in ctxs.values():
        ctx.websocket.clear()
    return rm, ctxs


def rig(room, hands: dict, discard: list[Card]) -> None:
    """Arrange exact hands and discard pile, rest of the cards in the deck."""
    placed = [card for hand in hands.values() for card in hand] + discard
    for player in room.game.players:
        player.hand = list(hands.get(player.name, []))
    room.game.discard_pile = list(discard)
    room.game.deck = Deck(cards=[c for c in standard_cards() if c not in placed], seed=1)
    room.game.current_player_index = 0


# =============================================================================
# Lobby handlers
# =============================================================================

class TestCreateAndJoin:

    @pytest.mark.asyncio
    async def test_creates_room(self):
        rm = RoomManager()
        ctx = make_ctx()
        await send(ctx, rm, "create_room", player_name="Ana")

        assert ctx.current_room is not None
        assert ctx.player_name == "Ana"
        assert len(rm.rooms) == 1
        reply = ctx.websocket.last_message()
        assert reply["type"] == "room_created"
        assert reply["room_code"] == ctx.current_room.code
        assert reply["players"] == [{"name": "Ana", "is_host": True}]
        assert ctx.current_room.connections["Ana"] is ctx.websocket

    @pytest.mark.asyncio
    async def test_create_requires_name(self):
        rm = RoomManager()
        ctx = make_ctx()
        await send(ctx, rm, "create_room", player_name="")

        assert ctx.current_room is None
        assert rm.rooms == {}
        assert ctx.websocket.last_message()["code"] == "NameInvalid"

    @pytest.mark.asyncio
    async def test_join_notifies_others(self):
        rm, ctxs = await seated_table("Ana")
        ben = make_ctx("conn_ben")
        await send(ben, rm, "join_room", room_code=ctxs["Ana"].current_room.code.lower(), player_name="Ben")

        assert ben.websocket.last_message()["type"] == "room_joined"
        joined = ctxs["Ana"].websocket.messages_of_type("player_joined")
        assert joined[0]["player_name"] == "Ben"
        assert [p["name"] for p in joined[0]["players"]] == ["Ana", "Ben"]
        assert not ben.websocket.messages_of_type("player_joined")

    @pytest.mark.asyncio
    async def test_join_unknown_room(self):
        rm = RoomManager()
        ctx = make_ctx()
        await send(ctx, rm, "join_room", room_code="NOPE00", player_name="Ben")
        assert ctx.websocket.last_message() == {
            "type": "error", "code": "RoomNotFound", "message": "Room not found",
        }
        assert ctx.current_room is None

    @pytest.mark.asyncio
    async def test_join_name_taken(self):
        rm, ctxs = await seated_table("Ana")
        ctx = make_ctx()
        await send(ctx, rm, "join_room", room_code=ctxs["Ana"].current_room.code, player_name="Ana")
        assert ctx.websocket.last_message()["code"] == "NameTaken"
        assert ctx.current_room is None

    @pytest.mark.asyncio
    async def test_cannot_create_while_seated(self):
        rm, ctxs = await seated_table("Ana")
        await send(ctxs["Ana"], rm, "create_room", player_name="Ana")
        assert ctxs["Ana"].websocket.last_message()["code"] == "AlreadySeated"
        assert len(rm.rooms) == 1


class TestLeave:

    @pytest.mark.asyncio
    async def test_leave_notifies_remaining(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        await send(ctxs["Ana"], rm, "leave_room")

        left = ctxs["Ben"].websocket.messages_of_type("player_left")
        assert left[0]["player_name"] == "Ana"
        assert left[0]["players"] == [{"name": "Ben", "is_host": True}]
        assert ctxs["Ana"].current_room is None

    @pytest.mark.asyncio
    async def test_last_leave_closes_room(self):
        rm, ctxs = await seated_table("Ana")
        await leave_current_room(ctxs["Ana"], rm)
        assert rm.rooms == {}

    @pytest.mark.asyncio
    async def test_leave_without_room_is_noop(self):
        rm = RoomManager()
        ctx = make_ctx()
        await send(ctx, rm, "leave_room")
        assert ctx.websocket.messages == []


# =============================================================================
# Game lifecycle / turns
# =============================================================================

class TestStartGame:

    @pytest.mark.asyncio
    async def test_each_player_gets_own_hand(self):
        rm, ctxs = await seated_table("Ana", "Ben", "Cy")
        await send(ctxs["Ana"], rm, "start_game")

        room = ctxs["Ana"].current_room
        for name, ctx in ctxs.items():
            started = ctx.websocket.messages_of_type("game_started")
            assert len(started) == 1
            assert started[0]["hand"] == room.game.get_player(name).hand_to_dict()
            assert started[0]["card_count"] == 4
            assert started[0]["game_state"]["current_player"] == "Ana"

    @pytest.mark.asyncio
    async def test_non_host_rejected(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        await send(ctxs["Ben"], rm, "start_game")
        assert ctxs["Ben"].websocket.last_message()["code"] == "NotHost"
        assert ctxs["Ana"].websocket.messages == []

    @pytest.mark.asyncio
    async def test_not_enough_players(self):
        rm, ctxs = await seated_table("Ana")
        await send(ctxs["Ana"], rm, "start_game")
        assert ctxs["Ana"].websocket.last_message()["code"] == "NotEnoughPlayers"

    @pytest.mark.asyncio
    async def test_requires_room(self):
        rm = RoomManager()
        ctx = make_ctx()
        await send(ctx, rm, "start_game")
        assert ctx.websocket.last_message()["code"] == "NotInRoom"


class TestPlayCard:

    @pytest.mark.asyncio
    async def test_play_broadcasts_state_and_hands(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        rig(room, {"Ana": [C("3", "hearts"), C("9", "clubs")], "Ben": [C("4", "spades")]},
            [C("5", "hearts")])

        await send(ctxs["Ana"], rm, "play_card", card={"suit": "hearts", "rank": "3"})

        for ctx in ctxs.values():
            played = ctx.websocket.messages_of_type("card_played")
            assert played[0]["player"] == "Ana"
            assert played[0]["card"] == {"suit": "hearts", "rank": "3"}
            assert played[0]["game_state"]["current_player"] == "Ben"
            assert played[0]["game_state"]["discard_pile"][0] == {"suit": "hearts", "rank": "3"}
        assert ctxs["Ana"].websocket.messages_of_type("hand_update")[0]["hand"] == [
            {"suit": "clubs", "rank": "9"}
        ]
        assert ctxs["Ben"].websocket.messages_of_type("hand_update")[0]["hand"] == [
            {"suit": "spades", "rank": "4"}
        ]

    @pytest.mark.asyncio
    async def test_jack_with_declared_suit(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        rig(room, {"Ana": [C("J", "spades"), C("9", "clubs")], "Ben": [C("4", "spades")]},
            [C("5", "clubs")])

        await send(ctxs["Ana"], rm, "play_card",
                   card={"suit": "spades", "rank": "J"}, declared_suit="hearts")

        state = ctxs["Ben"].websocket.messages_of_type("card_played")[0]["game_state"]
        assert state["declared_suit"] == "hearts"

    @pytest.mark.asyncio
    async def test_winning_play(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        rig(room, {"Ana": [C("3", "hearts")], "Ben": [C("4", "spades")]}, [C("5", "hearts")])

        await send(ctxs["Ana"], rm, "play_card", card={"suit": "hearts", "rank": "3"})

        won = ctxs["Ben"].websocket.messages_of_type("player_won")
        assert won[0]["winner"] == "Ana"
        assert won[0]["game_state"]["phase"] == "finished"
        assert not ctxs["Ben"].websocket.messages_of_type("card_played")

    @pytest.mark.asyncio
    async def test_illegal_play_only_tells_sender(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        rig(room, {"Ana": [C("9", "clubs")], "Ben": [C("4", "spades")]}, [C("5", "hearts")])

        await send(ctxs["Ana"], rm, "play_card", card={"suit": "clubs", "rank": "9"})

        assert ctxs["Ana"].websocket.last_message()["code"] == "IllegalPlay"
        assert ctxs["Ben"].websocket.messages == []
        assert room.game.get_player("Ana").card_count == 1

    @pytest.mark.asyncio
    async def test_card_not_in_hand(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        rig(room, {"Ana": [C("9", "clubs")], "Ben": [C("4", "spades")]}, [C("5", "hearts")])

        await send(ctxs["Ana"], rm, "play_card", card={"suit": "hearts", "rank": "3"})
        assert ctxs["Ana"].websocket.last_message()["code"] == "CardNotInHand"

    @pytest.mark.asyncio
    async def test_malformed_card(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        await send(ctxs["Ana"], rm, "play_card", card={"suit": "stars", "rank": "3"})
        assert ctxs["Ana"].websocket.last_message()["code"] == "InvalidMessage"

        await send(ctxs["Ana"], rm, "play_card")
        assert ctxs["Ana"].websocket.last_message()["code"] == "InvalidMessage"
        assert ctxs["Ben"].websocket.messages == []


class TestDrawCard:

    @pytest.mark.asyncio
    async def test_draw_private_to_drawer(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        top = room.game.deck.cards[-1]

        await send(ctxs["Ana"], rm, "draw_card")

        drawn = ctxs["Ana"].websocket.messages_of_type("card_drawn")[0]
        assert drawn["card"] == top.to_dict()
        assert len(drawn["hand"]) == 5
        notice = ctxs["Ben"].websocket.messages_of_type("player_drew_card")[0]
        assert notice["player"] == "Ana"
        assert notice["game_state"]["players"][0]["card_count"] == 5
        assert "card" not in notice
        assert not ctxs["Ana"].websocket.messages_of_type("player_drew_card")

    @pytest.mark.asyncio
    async def test_draw_out_of_turn(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        await send(ctxs["Ben"], rm, "draw_card")
        assert ctxs["Ben"].websocket.last_message()["code"] == "NotYourTurn"

    @pytest.mark.asyncio
    async def test_no_cards_available(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room
        discard = [C("5", "hearts")]
        ana = [C("3", "clubs")]
        ben = [c for c in standard_cards() if c not in discard + ana]
        for player, hand in zip(room.game.players, (ana, ben)):
            player.hand = hand
        room.game.discard_pile = discard
        room.game.deck = Deck(cards=[])

        await send(ctxs["Ana"], rm, "draw_card")
        assert ctxs["Ana"].websocket.last_message()["code"] == "NoCardsAvailable"
        assert room.game.is_conserved()


# =============================================================================
# Side channel
# =============================================================================

class TestSideChannel:

    @pytest.mark.asyncio
    async def test_penalty(self):
        rm, ctxs = await seated_table("Ana", "Ben", "Cy", start=True)

        await send(ctxs["Cy"], rm, "give_penalty", receiver="Ben", reason="Talking")

        for ctx in ctxs.values():
            given = ctx.websocket.messages_of_type("penalty_given")[0]
            assert given["penalty"]["giver"] == "Cy"
            assert given["penalty"]["receiver"] == "Ben"
        updates = ctxs["Ben"].websocket.messages_of_type("hand_update")
        assert updates[0]["card_count"] == 5
        assert not ctxs["Ana"].websocket.messages_of_type("hand_update")

    @pytest.mark.asyncio
    async def test_penalty_unknown_receiver(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        await send(ctxs["Ana"], rm, "give_penalty", receiver="Zed", reason="?")
        assert ctxs["Ana"].websocket.last_message()["code"] == "PlayerNotFound"
        assert ctxs["Ana"].current_room.game.penalty_log == []

    @pytest.mark.asyncio
    async def test_chat_muted_during_play(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        await send(ctxs["Ana"], rm, "chat_message", message="psst")
        assert ctxs["Ana"].websocket.last_message()["code"] == "ChatMuted"
        assert ctxs["Ben"].websocket.messages == []

    @pytest.mark.asyncio
    async def test_point_of_order_opens_chat(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)

        await send(ctxs["Ben"], rm, "call_point_of_order")
        called = ctxs["Ana"].websocket.messages_of_type("point_of_order_called")[0]
        assert called["player"] == "Ben"
        assert called["game_state"]["chat_muted"] is False

        await send(ctxs["Ana"], rm, "chat_message", message="That was a spade")
        chat = ctxs["Ben"].websocket.messages_of_type("chat_message")[0]
        assert chat["player"] == "Ana"
        assert chat["message"] == "That was a spade"

        await send(ctxs["Ana"], rm, "call_point_of_order")
        assert ctxs["Ana"].websocket.last_message()["code"] == "AlreadyActive"

        await send(ctxs["Ana"], rm, "end_point_of_order")
        ended = ctxs["Ben"].websocket.messages_of_type("point_of_order_ended")[0]
        assert ended["game_state"]["point_of_order_active"] is False
        assert ended["game_state"]["chat_muted"] is True

    @pytest.mark.asyncio
    async def test_add_rule_shares_count_not_text(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        await send(ctxs["Ana"], rm, "add_rule", rule="Say 'spades' when playing a spade")

        added = ctxs["Ben"].websocket.messages_of_type("rule_added")[0]
        assert added == {"type": "rule_added", "creator": "Ana", "rule_count": 1}


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:

    @pytest.mark.asyncio
    async def test_unknown_type_ignored(self):
        rm = RoomManager()
        ctx = make_ctx()
        await send(ctx, rm, "teleport")
        assert ctx.websocket.messages == []

    @pytest.mark.asyncio
    async def test_bad_json(self):
        rm = RoomManager()
        ctx = make_ctx()
        await dispatch_raw("{not json", ctx, room_manager=rm)
        assert ctx.websocket.last_message()["code"] == "InvalidMessage"

    @pytest.mark.asyncio
    async def test_non_object_message(self):
        rm = RoomManager()
        ctx = make_ctx()
        await dispatch_raw("[1, 2]", ctx, room_manager=rm)
        assert ctx.websocket.last_message()["code"] == "InvalidMessage"

    @pytest.mark.asyncio
    async def test_dispatch_raw_routes(self):
        rm = RoomManager()
        ctx = make_ctx()
        await dispatch_raw('{"type": "create_room", "player_name": "Ana"}', ctx, room_manager=rm)
        assert ctx.websocket.last_message()["type"] == "room_created"

    @pytest.mark.asyncio
    async def test_swept_room_reports_not_found(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        code = ctxs["Ana"].current_room.code
        rm.remove_room(code)
        await send(ctxs["Ana"], rm, "start_game")
        assert ctxs["Ana"].websocket.last_message()["code"] == "RoomNotFound"

    @pytest.mark.asyncio
    async def test_non_string_type_keeps_seat(self):
        rm, ctxs = await seated_table("Ana", "Ben", start=True)
        room = ctxs["Ana"].current_room

        await dispatch({"type": ["draw_card"]}, ctxs["Ana"], room_manager=rm)
        await dispatch({"type": {"name": "play_card"}}, ctxs["Ana"], room_manager=rm)

        assert [m["code"] for m in ctxs["Ana"].websocket.messages] == ["InvalidMessage", "InvalidMessage"]
        assert ctxs["Ana"].current_room is room
        assert [p.name for p in room.game.players] == ["Ana", "Ben"]
        assert room.game.get_player("Ana").card_count == 4
        assert ctxs["Ben"].websocket.messages == []

    @pytest.mark.asyncio
    async def test_missing_type(self):
        rm = RoomManager()
        ctx = make_ctx()
        await dispatch({"player_name": "Ana"}, ctx, room_manager=rm)
        assert ctx.websocket.last_message()["code"] == "InvalidMessage"
        assert rm.rooms == {}

    @pytest.mark.asyncio
    async def test_draw_in_lobby_rejected(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        room = ctxs["Ana"].current_room

        await send(ctxs["Ana"], rm, "draw_card")

        assert ctxs["Ana"].websocket.last_message()["code"] == "NotYourTurn"
        assert room.game.get_player("Ana").card_count == 0
        assert ctxs["Ben"].websocket.messages == []


# =============================================================================
# Stale room sweep
# =============================================================================

class TestSweptRooms:

    @pytest.mark.asyncio
    async def test_players_told_room_closed(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        room = ctxs["Ana"].current_room
        room.game.created_at = 0

        closed = await rm.close_stale_rooms(max_age_ms=1, now=100_000)

        assert closed == [room.code]
        for ctx in ctxs.values():
            assert ctx.websocket.last_message() == {
                "type": "room_closed", "room_code": room.code, "reason": "expired",
            }
        assert room.connections == {}

    @pytest.mark.asyncio
    async def test_can_create_after_room_swept(self):
        rm, ctxs = await seated_table("Ana", "Ben")
        old = ctxs["Ana"].current_room
        old.game.created_at = 0
        await rm.close_stale_rooms(max_age_ms=1, now=100_000)

        await send(ctxs["Ana"], rm, "create_room", player_name="Ana")
        assert ctxs["Ana"].websocket.last_message()["type"] == "room_created"
        assert ctxs["Ana"].current_room is not old

        await send(ctxs["Ben"], rm, "join_room",
                   room_code=ctxs["Ana"].current_room.code, player_name="Ben")
        assert ctxs["Ben"].websocket.last_message()["type"] == "room_joined"
