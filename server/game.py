"""
Game logic for Mao.

This module implements the authoritative game session: the deck and discard
pile, each player's hand, turn order, play legality, and the side-channel
mechanics (penalties, point of order, custom rules) that players use to
enforce the unwritten rules of Mao socially.

Mao Rules Enforced Here:
    - Each player is dealt 4 cards; one card starts the discard pile
    - On your turn, play a card matching the top card's suit or rank
    - Jacks are wild; the player may declare the suit that must follow
    - Drawing does not end your turn
    - First player to empty their hand wins the round
    - Everything else is a house rule, enforced with penalties

Card Containers:
    deck          top = end of list (pop is O(1))
    discard_pile  top = index 0
    player.hand   display order, stable

    Every card is in exactly one container; together they always hold
    all 52 cards of the session.
"""

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from constants import DECK_SIZE, HAND_SIZE, MAX_PLAYERS, MIN_PLAYERS, WILD_RANK
from errors import (
    CapacityError,
    ErrorCode,
    InvalidActionError,
    NotFoundError,
    ResourceExhaustedError,
)


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class Suit(Enum):
    """Card suits for a standard deck."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"


class Rank(Enum):
    """Card ranks with their display values."""

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"


class GamePhase(Enum):
    """
    Phases of a Mao session.

    LOBBY: Waiting for the host to deal (players may join)
    IN_PLAY: Cards dealt, players taking turns
    FINISHED: Someone emptied their hand; waits for the host to deal again
    """

    LOBBY = "lobby"
    IN_PLAY = "in_play"
    FINISHED = "finished"


@dataclass(frozen=True)
class Card:
    """
    An immutable playing card.

    Two cards are equal when suit and rank match, so a card sent by a
    client can be compared directly against the cards in a hand.
    """

    suit: Suit
    rank: Rank

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {"suit": self.suit.value, "rank": self.rank.value}

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        """Build a card from its wire form (raises ValueError on bad values)."""
        return cls(Suit(data["suit"]), Rank(data["rank"]))

    def is_wild(self) -> bool:
        return self.rank.value == WILD_RANK

    def __str__(self) -> str:
        return f"{self.rank.value} of {self.suit.value}"


def standard_cards() -> list[Card]:
    """One of every card, in suit-then-rank order."""
    return [Card(suit, rank) for suit in Suit for rank in Rank]


class Deck:
    """
    The draw pile.

    Shuffling uses a per-deck random.Random (Fisher-Yates), so every
    permutation is equally likely and a seed can make a deal reproducible
    in tests without touching the global random state.
    """

    def __init__(
        self,
        cards: Optional[list[Card]] = None,
        seed: Optional[int] = None,
        shuffle: bool = True,
    ) -> None:
        """
        Initialize a new draw pile.

        Args:
            cards: Cards to start with. Defaults to a full 52-card deck.
            seed: Optional random seed for deterministic shuffles.
                  If None, a random seed is generated and stored.
            shuffle: Whether to shuffle the starting cards.
        """
        self.cards: list[Card] = list(cards) if cards is not None else standard_cards()
        self.seed: int = seed if seed is not None else random.randint(0, 2**31 - 1)
        self._rng = random.Random(self.seed)
        if shuffle:
            self.shuffle()

    def shuffle(self) -> None:
        """Randomize the order of cards in the pile."""
        self._rng.shuffle(self.cards)

    def draw(self) -> Optional[Card]:
        """
        Draw the top card.

        Returns:
            The drawn Card, or None if the pile is empty.
        """
        if self.cards:
            return self.cards.pop()
        return None

    def add_cards(self, cards: list[Card]) -> None:
        """
        Add cards to the pile and shuffle.

        Used when reshuffling the discard pile or returning a departing
        player's hand.
        """
        self.cards.extend(cards)
        self.shuffle()

    def cards_remaining(self) -> int:
        return len(self.cards)

    def __len__(self) -> int:
        return len(self.cards)


@dataclass
class Player:
    """
    A seat at the Mao table.

    The connection used to reach this player is tracked by the room, not
    here, so session state stays plain data.

    Attributes:
        name: Display name, unique (case-sensitive) within the room.
        is_host: Whether this player may deal.
        hand: Cards held, in the order they were received.
    """

    name: str
    is_host: bool = False
    hand: list[Card] = field(default_factory=list)

    @property
    def card_count(self) -> int:
        return len(self.hand)

    def has_card(self, card: Card) -> bool:
        return card in self.hand

    def remove_card(self, card: Card) -> None:
        """Remove exactly one copy of card from the hand."""
        self.hand.remove(card)

    def hand_to_dict(self) -> list[dict]:
        return [card.to_dict() for card in self.hand]

    def summary(self) -> dict:
        """Public information about this player (never the hand)."""
        return {
            "name": self.name,
            "is_host": self.is_host,
            "card_count": self.card_count,
        }


@dataclass
class PenaltyRecord:
    """One entry in the penalty log."""

    giver: str
    receiver: str
    reason: str
    timestamp: int = field(default_factory=now_ms)
    card_given: bool = True

    def to_dict(self) -> dict:
        return {
            "giver": self.giver,
            "receiver": self.receiver,
            "reason": self.reason,
            "timestamp": self.timestamp,
            "card_given": self.card_given,
        }


@dataclass
class CustomRule:
    """A free-text house rule. Enforced by the players, not the server."""

    creator: str
    rule: str
    timestamp: int = field(default_factory=now_ms)


@dataclass
class Game:
    """
    Main game state and logic controller for one Mao room.

    This is the only place session state is mutated. Every public method
    validates the request completely before touching any field, so a
    rejected action leaves the session exactly as it was.

    Attributes:
        room_code: Code of the room this session belongs to.
        players: Players in turn order; index 0 is dealt first.
        deck: The draw pile.
        discard_pile: Played cards, most recent first.
        current_player_index: Index of the player whose turn it is.
        game_active: Whether cards have been dealt.
        declared_suit: Suit named by the last Jack, if any.
        chat_muted: Whether table talk is currently forbidden.
        point_of_order_active: Whether a point of order is open.
        point_of_order_caller: Who opened it.
        penalty_log: Every penalty issued in this room.
        custom_rules: House rules added by players.
        winner: Player who emptied their hand this round.
        created_at: Creation time in epoch milliseconds.
    """

    room_code: str
    players: list[Player] = field(default_factory=list)
    deck: Deck = field(default_factory=Deck)
    discard_pile: list[Card] = field(default_factory=list)
    current_player_index: int = 0
    game_active: bool = False
    declared_suit: Optional[Suit] = None
    chat_muted: bool = True
    point_of_order_active: bool = False
    point_of_order_caller: Optional[str] = None
    penalty_log: list[PenaltyRecord] = field(default_factory=list)
    custom_rules: list[CustomRule] = field(default_factory=list)
    winner: Optional[str] = None
    created_at: int = field(default_factory=now_ms)

    @property
    def phase(self) -> GamePhase:
        if not self.game_active:
            return GamePhase.LOBBY
        if self.winner is not None:
            return GamePhase.FINISHED
        return GamePhase.IN_PLAY

    # -------------------------------------------------------------------------
    # Player Management
    # -------------------------------------------------------------------------

    def add_player(self, name: str) -> Player:
        """
        Seat a new player at the end of the turn order.

        The first player seated becomes the host.

        Raises:
            CapacityError: NameInvalid, RoomFull or NameTaken.
        """
        if not name or not name.strip():
            raise CapacityError(ErrorCode.NAME_INVALID)
        if len(self.players) >= MAX_PLAYERS:
            raise CapacityError(ErrorCode.ROOM_FULL)
        if self.get_player(name) is not None:
            raise CapacityError(ErrorCode.NAME_TAKEN)

        player = Player(name=name, is_host=not self.players)
        self.players.append(player)
        return player

    def remove_player(self, name: str) -> Optional[Player]:
        """
        Remove a player by name.

        The departing hand goes back into the draw pile so no card leaves
        the session. The player who would have played next keeps the turn,
        and if the host left, the first remaining player becomes host.

        Returns:
            The removed Player, or None if not found.
        """
        for index, player in enumerate(self.players):
            if player.name == name:
                break
        else:
            return None

        removed = self.players.pop(index)
        if removed.hand:
            self.deck.add_cards(removed.hand)
            removed.hand = []

        if not self.players:
            self.current_player_index = 0
        elif index < self.current_player_index:
            self.current_player_index -= 1
        elif self.current_player_index >= len(self.players):
            self.current_player_index = 0

        if removed.is_host:
            removed.is_host = False
            if self.players:
                self.players[0].is_host = True

        return removed

    def get_player(self, name: str) -> Optional[Player]:
        """Find a player by exact name."""
        for player in self.players:
            if player.name == name:
                return player
        return None

    def require_player(self, name: str) -> Player:
        player = self.get_player(name)
        if player is None:
            raise NotFoundError(ErrorCode.PLAYER_NOT_FOUND)
        return player

    def current_player(self) -> Optional[Player]:
        """Get the player whose turn it currently is."""
        if self.players:
            return self.players[self.current_player_index]
        return None

    def host(self) -> Optional[Player]:
        for player in self.players:
            if player.is_host:
                return player
        return None

    def is_players_turn(self, name: str) -> bool:
        """Whether name may act now. Nobody has the turn before the deal or once a round is won."""
        if not self.game_active or self.winner is not None:
            return False
        current = self.current_player()
        return current is not None and current.name == name

    # -------------------------------------------------------------------------
    # Game Lifecycle
    # -------------------------------------------------------------------------

    def start_game(self, requester_name: str, seed: Optional[int] = None) -> None:
        """
        Deal a fresh game.

        Builds and shuffles a new 52-card deck, deals HAND_SIZE cards to each
        player in seat order and turns up one card to start the discard pile.
        Can be called again after a round is won to deal a new one.

        Args:
            requester_name: Player asking to deal; must be the host.
            seed: Optional shuffle seed (tests and replays).

        Raises:
            InvalidActionError: NotHost or NotEnoughPlayers.
        """
        requester = self.get_player(requester_name)
        if requester is None or not requester.is_host:
            raise InvalidActionError(ErrorCode.NOT_HOST)
        if len(self.players) < MIN_PLAYERS:
            raise InvalidActionError(ErrorCode.NOT_ENOUGH_PLAYERS)

        self.deck = Deck(seed=seed)
        for player in self.players:
            player.hand = [self.deck.draw() for _ in range(HAND_SIZE)]
        self.discard_pile = [self.deck.draw()]

        self.current_player_index = 0
        self.game_active = True
        self.chat_muted = True
        self.declared_suit = None
        self.winner = None
        self.point_of_order_active = False
        self.point_of_order_caller = None

    # -------------------------------------------------------------------------
    # Turn Actions
    # -------------------------------------------------------------------------

    def discard_top(self) -> Optional[Card]:
        """Get the top card of the discard pile (if any)."""
        if self.discard_pile:
            return self.discard_pile[0]
        return None

    def effective_suit(self) -> Optional[Suit]:
        """The suit a play must follow: the declared suit, else the top card's."""
        if self.declared_suit is not None:
            return self.declared_suit
        top = self.discard_top()
        return top.suit if top else None

    def is_legal_play(self, player: Player, card: Card) -> bool:
        """
        Check whether player may put card on the pile right now.

        A card is legal on your turn when it follows the effective suit,
        matches the top card's rank, or is a Jack.
        """
        if not self.game_active:
            return False
        if not self.is_players_turn(player.name):
            return False
        top = self.discard_top()
        if top is None:
            return False

        return (
            card.suit == self.effective_suit()
            or card.rank == top.rank
            or card.is_wild()
        )

    def play_card(
        self,
        player_name: str,
        card: Card,
        declared_suit: Optional[Suit] = None,
    ) -> Optional[str]:
        """
        Play a card from a player's hand onto the discard pile.

        A Jack played with a declared suit sets the suit the next player must
        follow. Any other play clears a previous declaration.

        Returns:
            The player's name if that play emptied their hand, else None.

        Raises:
            NotFoundError: PlayerNotFound.
            InvalidActionError: CardNotInHand or IllegalPlay.
        """
        player = self.require_player(player_name)
        if not player.has_card(card):
            raise InvalidActionError(ErrorCode.CARD_NOT_IN_HAND)
        if not self.is_legal_play(player, card):
            raise InvalidActionError(ErrorCode.ILLEGAL_PLAY)

        player.remove_card(card)
        self.discard_pile.insert(0, card)

        if card.is_wild() and declared_suit is not None:
            self.declared_suit = declared_suit
        else:
            self.declared_suit = None

        if not player.hand:
            self.winner = player.name
            return player.name

        self._next_turn()
        return None

    def draw_card(self, player_name: str) -> Card:
        """
        Draw the top card of the deck into a player's hand.

        If the deck is empty, the discard pile (all but its top card) is
        shuffled back in first. Drawing does not end the turn.

        Raises:
            NotFoundError: PlayerNotFound.
            InvalidActionError: NotYourTurn.
            ResourceExhaustedError: NoCardsAvailable.
        """
        player = self.require_player(player_name)
        if not self.is_players_turn(player_name):
            raise InvalidActionError(ErrorCode.NOT_YOUR_TURN)
        if not self.deck.cards and len(self.discard_pile) <= 1:
            raise ResourceExhaustedError(ErrorCode.NO_CARDS_AVAILABLE)

        if not self.deck.cards:
            self._reshuffle_discard_pile()

        card = self.deck.draw()
        player.hand.append(card)
        return card

    def _reshuffle_discard_pile(self) -> bool:
        """
        Rebuild the draw pile from the discard pile.

        Keeps the top discard card where it is and shuffles the rest into
        the deck.

        Returns:
            True if any cards were moved.
        """
        if len(self.discard_pile) <= 1:
            return False

        top_card = self.discard_pile[0]
        self.deck.add_cards(self.discard_pile[1:])
        self.discard_pile = [top_card]
        return True

    def _next_turn(self) -> None:
        """Advance to the next player's turn."""
        self.current_player_index = (self.current_player_index + 1) % len(self.players)

    # -------------------------------------------------------------------------
    # Side Channel: Penalties, Point of Order, House Rules, Chat
    # -------------------------------------------------------------------------

    def give_penalty(self, giver: str, receiver: str, reason: str) -> PenaltyRecord:
        """
        Give a player a penalty card.

        The penalty is always logged. If neither the deck nor a reshuffled
        discard pile can supply a card, the record notes that no card
        changed hands.

        Raises:
            NotFoundError: PlayerNotFound (receiver).
        """
        receiver_player = self.require_player(receiver)

        if not self.deck.cards:
            self._reshuffle_discard_pile()

        card = self.deck.draw()
        if card is not None:
            receiver_player.hand.append(card)

        penalty = PenaltyRecord(
            giver=giver,
            receiver=receiver,
            reason=reason,
            card_given=card is not None,
        )
        self.penalty_log.append(penalty)
        return penalty

    def call_point_of_order(self, caller_name: str) -> None:
        """
        Open a point of order, suspending play and unmuting chat.

        Raises:
            CapacityError: AlreadyActive.
        """
        if self.point_of_order_active:
            raise CapacityError(ErrorCode.ALREADY_ACTIVE)

        self.point_of_order_active = True
        self.point_of_order_caller = caller_name
        self.chat_muted = False

    def end_point_of_order(self) -> None:
        """Close the point of order (if any) and mute chat again."""
        self.point_of_order_active = False
        self.point_of_order_caller = None
        self.chat_muted = True

    def add_custom_rule(self, creator: str, rule: str) -> int:
        """
        Record a new house rule.

        Returns:
            Number of custom rules now in effect.
        """
        self.custom_rules.append(CustomRule(creator=creator, rule=rule))
        return len(self.custom_rules)

    def chat_allowed(self) -> bool:
        return not self.chat_muted or self.point_of_order_active

    def chat_message(self, sender: str, text: str) -> dict:
        """
        Build a chat message for the table.

        Raises:
            InvalidActionError: ChatMuted.
        """
        if not self.chat_allowed():
            raise InvalidActionError(ErrorCode.CHAT_MUTED)
        return {"player": sender, "message": text, "timestamp": now_ms()}

    # -------------------------------------------------------------------------
    # State Projection
    # -------------------------------------------------------------------------

    def total_cards(self) -> int:
        """Cards across every container; always DECK_SIZE."""
        in_hands = sum(player.card_count for player in self.players)
        return len(self.deck) + len(self.discard_pile) + in_hands

    def is_conserved(self) -> bool:
        return self.total_cards() == DECK_SIZE

    def player_list(self) -> list[dict]:
        """Lobby roster for client display."""
        return [{"name": p.name, "is_host": p.is_host} for p in self.players]

    def public_view(self) -> dict:
        """
        State every player in the room may see.

        Hands are reduced to card counts and the draw pile to its size.
        """
        current = self.current_player()
        return {
            "room_code": self.room_code,
            "phase": self.phase.value,
            "players": [player.summary() for player in self.players],
            "current_player": current.name if current else None,
            "discard_pile": [card.to_dict() for card in self.discard_pile],
            "deck_remaining": self.deck.cards_remaining(),
            "game_active": self.game_active,
            "winner": self.winner,
            "penalty_log": [penalty.to_dict() for penalty in self.penalty_log],
            "point_of_order_active": self.point_of_order_active,
            "point_of_order_caller": self.point_of_order_caller,
            "chat_muted": self.chat_muted,
            "declared_suit": self.declared_suit.value if self.declared_suit else None,
            "custom_rule_count": len(self.custom_rules),
        }

    def private_view(self, player_name: str) -> Optional[dict]:
        """
        One player's own hand. Only ever sent on that player's connection.

        Returns:
            Dict with hand and card_count, or None for an unknown player.
        """
        player = self.get_player(player_name)
        if player is None:
            return None
        return {"hand": player.hand_to_dict(), "card_count": player.card_count}
