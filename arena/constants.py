"""
Arena-wide constants for the head-to-head battle engine.

This module contains the fixed numbers of the game rules that are not meant
to be tuned per deployment (tunables live in ``arena.config.Config``).
"""

class LadderConstants:
    """Constants related to the rating ladder."""

    # Ordered (tier, minimum rating) thresholds, lowest first
    TIER_THRESHOLDS = (
        ("bronze", 0),
        ("silver", 1200),
        ("gold", 1400),
        ("platinum", 1600),
        ("diamond", 1800),
        ("master", 2000),
    )

    WIN = "W"
    LOSS = "L"


class BattleConstants:
    """Constants for battle capacity and round counts."""

    # (default capacity, maximum capacity) per battle type
    CAPACITY = {
        "quick": (2, 2),
        "ladder": (4, 4),
        "tournament": (8, 8),
        "custom": (4, 8),
    }

    MIN_PARTICIPANTS_TO_START = 2

    # Fixed round counts; tournament battles use ceil(log2(participants))
    FIXED_ROUNDS = {
        "quick": 1,
        "ladder": 1,
    }
    DEFAULT_ROUNDS = 3

    # Event thresholds
    MILESTONE_SCORE = 150
    BIG_PLAY_POINTS = 30

    CAPTAIN_MULTIPLIER = 2.0
    VICE_CAPTAIN_MULTIPLIER = 1.5


class RosterConstants:
    """Constants for roster slots."""

    # Slot order used when building and validating rosters
    SLOT_ORDER = ("QB", "RB", "WR", "TE", "FLEX", "DST", "K")

    # Positions allowed in the FLEX slot
    FLEX_ELIGIBLE = ("RB", "WR", "TE")

    DEFAULT_REQUIREMENTS = {
        "qb": 1, "rb": 2, "wr": 3, "te": 1, "flex": 1, "dst": 1, "k": 1, "bench": 6,
    }

    DEFAULT_FORMATION = "3-4-3"


class UIConstants:
    """Constants for notification embeds."""

    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_COLOR = 0xffd700           # Battle and tournament winners
    ERROR_COLOR = 0xe74c3c          # Red
    SUCCESS_COLOR = 0x2ecc71        # Green

    TROPHY_EMOJI = "🏆"
    SWORDS_EMOJI = "⚔️"
    BOLT_EMOJI = "⚡"
