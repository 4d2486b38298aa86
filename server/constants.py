"""
Game constants for Mao.

Values that operators may tune are read from config.py (and therefore
from the environment). Everything else here is fixed by the rules of the
game itself.

Mechanically enforced rules:
    - 2-10 players per room
    - 4 cards dealt to each player, one card turned up to start the pile
    - Play must match the top card's suit (or the suit declared by a Jack)
      or its rank
    - Jacks are wild and may always be played
"""

from config import config


# =============================================================================
# Deck
# =============================================================================

DECK_SIZE = 52
WILD_RANK = "J"


# =============================================================================
# Table / Room Constants
# =============================================================================

MIN_PLAYERS = config.game_rules.min_players
MAX_PLAYERS = config.game_rules.max_players
HAND_SIZE = config.game_rules.hand_size

ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

ROOM_MAX_AGE_MS = config.ROOM_MAX_AGE_HOURS * 60 * 60 * 1000
ROOM_SWEEP_INTERVAL_SECONDS = config.ROOM_SWEEP_INTERVAL_MINUTES * 60
