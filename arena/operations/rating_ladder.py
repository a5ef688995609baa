"""
Rating Ladder Operations

Maintains each competitor's margin-weighted Elo rating, tier, win/loss
record and streak. Ranks are created lazily on the first rated result and
persist across battles. Updates for a pair of users are serialized through
per-user locks taken in sorted order.
"""

from datetime import datetime
from typing import Callable, List, Optional, Tuple

from arena.constants import LadderConstants
from arena.data_models.codec import utcnow
from arena.data_models.ladder import LadderRank, LadderTier, RatingChange, Streak
from arena.database.store import Store
from arena.services.event_bus import DomainEvent, DomainEventType, EventBus
from arena.services.keyed_lock import KeyedLock
from arena.utils.elo import EloCalculator
from arena.utils.logger import setup_logger


def calculate_tier(rating: int) -> Tuple[LadderTier, float]:
    """
    Highest tier whose threshold the rating meets, plus progress to the next.

    Returns:
        Tuple of (tier, next_tier_progress) with progress in 0..100
    """
    thresholds = LadderConstants.TIER_THRESHOLDS
    index = 0
    for i, (_, minimum) in enumerate(thresholds):
        if rating >= minimum:
            index = i

    tier = LadderTier(thresholds[index][0])
    if index == len(thresholds) - 1:
        return tier, 100.0

    current_min = thresholds[index][1]
    next_min = thresholds[index + 1][1]
    progress = (rating - current_min) / (next_min - current_min) * 100
    return tier, round(max(0.0, min(100.0, progress)), 1)


class RatingLadder:
    """Persistent skill ladder over a rank store and a rating history store."""

    def __init__(self, ranks: Store[LadderRank], history: Store[RatingChange],
                 event_bus: EventBus, user_locks: KeyedLock = None,
                 clock: Callable[[], datetime] = utcnow):
        self.ranks = ranks
        self.history = history
        self.event_bus = event_bus
        self.user_locks = user_locks or KeyedLock()
        self.clock = clock
        self.logger = setup_logger(f"{__name__}.RatingLadder")

    async def _load_or_create(self, user_id: str, username: str = None) -> LadderRank:
        rank = await self.ranks.get(user_id)
        if rank is None:
            rank = LadderRank(user_id=user_id, username=username or f"Player_{user_id}")
            rank.tier, rank.next_tier_progress = calculate_tier(rank.rating)
            self.logger.debug(f"Created ladder rank for {user_id} at {rank.rating}")
        elif username:
            rank.username = username
        return rank

    @staticmethod
    def _apply_outcome(rank: LadderRank, new_rating: int, won: bool, now: datetime):
        rank.rating = new_rating
        if won:
            rank.wins += 1
        else:
            rank.losses += 1
        rank.win_rate = rank.wins / rank.matches_played

        outcome = LadderConstants.WIN if won else LadderConstants.LOSS
        if rank.streak.type == outcome and rank.streak.count > 0:
            rank.streak = Streak(type=outcome, count=rank.streak.count + 1)
        else:
            rank.streak = Streak(type=outcome, count=1)

        rank.tier, rank.next_tier_progress = calculate_tier(rank.rating)
        rank.updated_at = now

    async def record_result(
        self,
        winner_id: str,
        loser_id: str,
        winner_score: float,
        loser_score: float,
        battle_id: Optional[str] = None,
        usernames: dict = None,
        events: Optional[List[DomainEvent]] = None
    ) -> RatingChange:
        """
        Apply one decided result to both competitors' ranks.

        Args:
            winner_id: User that won the battle
            loser_id: User that lost the battle
            winner_score: Winner's final fantasy score
            loser_score: Loser's final fantasy score
            battle_id: Source battle, recorded in the audit row
            usernames: Optional user_id -> display name mapping
            events: Buffer for the ladder_updated event; published
                immediately when omitted

        Returns:
            The RatingChange audit row. A battle that already has one gets
            it back without touching either rank

        Raises:
            ValueError: If winner and loser are the same user
        """
        if winner_id == loser_id:
            raise ValueError("winner and loser must be different users")
        usernames = usernames or {}

        async with self.user_locks.hold_many([winner_id, loser_id]):
            recorded = await self.find_change(battle_id) if battle_id else None
            if recorded is not None:
                self.logger.info(f"Battle {battle_id} already rated, keeping change {recorded.id}")
                winner = await self._load_or_create(recorded.winner_id)
                loser = await self._load_or_create(recorded.loser_id)
                await self._emit(recorded, winner, loser, events)
                return recorded

            winner = await self._load_or_create(winner_id, usernames.get(winner_id))
            loser = await self._load_or_create(loser_id, usernames.get(loser_id))

            delta, k_effective, expected_win = EloCalculator.calculate_rating_delta(
                winner.rating, loser.rating, winner_score, loser_score
            )
            new_winner, new_loser = EloCalculator.apply_rating_delta(winner.rating, loser.rating, delta)

            now = self.clock()
            change = RatingChange(
                winner_id=winner_id,
                loser_id=loser_id,
                winner_old_rating=winner.rating,
                winner_new_rating=new_winner,
                loser_old_rating=loser.rating,
                loser_new_rating=new_loser,
                delta=delta,
                k_factor=k_effective,
                expected_win=expected_win,
                winner_score=winner_score,
                loser_score=loser_score,
                battle_id=battle_id,
                recorded_at=now,
            )

            self._apply_outcome(winner, new_winner, True, now)
            self._apply_outcome(loser, new_loser, False, now)

            await self.ranks.put(winner_id, winner)
            await self.ranks.put(loser_id, loser)
            await self.history.put(change.id, change)

        self.logger.info(
            f"Ladder update: {winner_id} {change.winner_old_rating}->{new_winner} "
            f"({EloCalculator.format_rating_change(delta)}), "
            f"{loser_id} {change.loser_old_rating}->{new_loser}"
        )

        await self._emit(change, winner, loser, events)
        return change

    async def _emit(self, change: RatingChange, winner: LadderRank, loser: LadderRank,
                    events: Optional[List[DomainEvent]]):
        event = DomainEvent(
            event_type=DomainEventType.LADDER_UPDATED,
            battle_id=change.battle_id,
            user_ids=(change.winner_id, change.loser_id),
            payload={
                "delta": change.delta,
                "winner_rating": change.winner_new_rating,
                "loser_rating": change.loser_new_rating,
                "winner_tier": winner.tier.value,
                "loser_tier": loser.tier.value,
            },
            timestamp=change.recorded_at,
        )
        if events is not None:
            events.append(event)
        else:
            await self.event_bus.publish(event)

    async def find_change(self, battle_id: str) -> Optional[RatingChange]:
        """The rating change recorded for a battle, if any"""
        for change in await self.history.list_all():
            if change.battle_id == battle_id:
                return change
        return None

    async def get_rating(self, user_id: str) -> Optional[int]:
        rank = await self.ranks.get(user_id)
        return rank.rating if rank else None

    async def _ordered(self) -> List[LadderRank]:
        ranks = await self.ranks.list_all()
        ranks.sort(key=lambda r: (-r.rating, -r.wins, r.user_id))
        for position, rank in enumerate(ranks, start=1):
            rank.rank = position
        return ranks

    async def get_rank(self, user_id: str) -> Optional[LadderRank]:
        """A user's rank with its ladder position filled, or None"""
        if await self.ranks.get(user_id) is None:
            return None
        for rank in await self._ordered():
            if rank.user_id == user_id:
                return rank
        return None

    async def get_leaderboard(self, limit: int = 10, offset: int = 0) -> List[LadderRank]:
        ranks = await self._ordered()
        return ranks[offset:offset + limit]

    async def get_history(self, user_id: str, limit: int = 20) -> List[RatingChange]:
        """Most recent rating changes involving a user"""
        changes = [change for change in await self.history.list_all() if change.involves(user_id)]
        changes.sort(key=lambda c: c.recorded_at, reverse=True)
        return changes[:limit]
