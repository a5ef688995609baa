"""
Pairing helpers shared by battles and tournaments.
"""

import math
from typing import List, Optional, Sequence, Tuple


def bracket_rounds(size: int) -> int:
    """Rounds needed to reduce ``size`` competitors to one by elimination"""
    if size < 2:
        return 1
    return math.ceil(math.log2(size))


def seed_order(bracket_size: int) -> List[int]:
    """
    Standard bracket seed order, so top seeds meet as late as possible.

    Example:
        seed_order(8) -> [1, 8, 4, 5, 2, 7, 3, 6]
    """
    if bracket_size < 2 or bracket_size & (bracket_size - 1):
        raise ValueError("bracket_size must be a power of two >= 2")
    order = [1, 2]
    while len(order) < bracket_size:
        mirror = len(order) * 2 + 1
        order = [seed for s in order for seed in (s, mirror - s)]
    return order


def circle_pairings(ids: Sequence[str], round_index: int) -> List[Tuple[Optional[str], Optional[str]]]:
    """
    Round-robin pairings for one round using the circle method.

    The first id stays fixed while the rest rotate. With an odd number of
    ids, one pairing per round contains None (a bye).
    """
    players: List[Optional[str]] = list(ids)
    if len(players) % 2:
        players.append(None)
    n = len(players)
    if n < 2:
        return []

    rotating = players[1:]
    shift = round_index % (n - 1)
    rotating = rotating[-shift:] + rotating[:-shift] if shift else rotating
    arranged = [players[0]] + rotating

    return [(arranged[i], arranged[n - 1 - i]) for i in range(n // 2)]


def round_robin_rounds(count: int) -> int:
    """Rounds for everyone to meet everyone once"""
    if count < 2:
        return 1
    return count - 1 if count % 2 == 0 else count
