"""
Prize Distributor

Maps final standings to reward grants through a declarative prize table and
delivers them to the rewards sink. Every grant is recorded; grants the sink
could not accept stay pending until ``retry_pending`` delivers them. Awarding
the same source twice never grants twice.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from arena.data_models.battle import BattleType
from arena.data_models.rewards import PrizeTableEntry, RewardBundle, RewardGrant
from arena.database.store import Store
from arena.services.base import BaseService
from arena.services.collaborators import RewardsSink
from arena.utils.logger import setup_logger

BATTLE_PRIZE_TABLES: Dict[BattleType, Tuple[PrizeTableEntry, ...]] = {
    BattleType.QUICK: (
        PrizeTableEntry(1, RewardBundle(gems=10, xp=100), "Winner gets 10 gems"),
        PrizeTableEntry("all", RewardBundle(xp=100), "All participants get 100 XP"),
    ),
    BattleType.TOURNAMENT: (
        PrizeTableEntry(
            1,
            RewardBundle(gems=100, badges=["tournament_winner"], title="champion"),
            "1st place: 100 gems, Tournament Winner badge and Champion title",
        ),
    ),
    BattleType.LADDER: (
        PrizeTableEntry(1, RewardBundle(gems=25, xp=200), "Ladder win: 25 gems and XP bonus"),
    ),
    BattleType.CUSTOM: (
        PrizeTableEntry("all", RewardBundle(xp=50), "Participation XP"),
    ),
}


class PrizeDistributor(BaseService):
    """Grants prize-table rewards for final ranks"""

    def __init__(self, grants: Store[RewardGrant], rewards_sink: RewardsSink):
        super().__init__()
        self.grants = grants
        self.rewards_sink = rewards_sink
        self._delivery_lock = asyncio.Lock()
        self.logger = setup_logger(f"{__name__}.PrizeDistributor")

    @staticmethod
    def battle_prize_table(battle_type: BattleType) -> List[PrizeTableEntry]:
        return list(BATTLE_PRIZE_TABLES.get(battle_type, ()))

    @staticmethod
    def match_entry(rank: int, prize_table: Sequence[PrizeTableEntry]) -> Optional[PrizeTableEntry]:
        """First entry covering ``rank``; a rank never matches two entries"""
        for entry in prize_table:
            if entry.covers(rank):
                return entry
        return None

    async def _deliver(self, grant: RewardGrant) -> bool:
        async def _grant():
            await self.rewards_sink.grant(grant.user_id, grant.rewards)

        try:
            await self.execute_with_retry(_grant)
        except Exception as e:
            self.logger.error(
                f"Failed to deliver grant {grant.id} to {grant.user_id}: {e}", exc_info=True
            )
            return False
        grant.delivered = True
        return True

    async def award(self, source_id: str, standings: Sequence[Tuple[str, int]],
                    prize_table: Sequence[PrizeTableEntry]) -> List[RewardGrant]:
        """
        Grant rewards for every ranked competitor.

        Args:
            source_id: Battle or tournament id the ranks come from
            standings: (user_id, final rank) pairs
            prize_table: Ordered prize table entries

        Returns:
            The recorded grants, delivered or pending. Users that already
            hold a grant for ``source_id`` get that grant back unchanged
        """
        grants = []
        async with self._delivery_lock:
            existing = {grant.user_id: grant for grant in await self.get_grants(source_id=source_id)}
            for user_id, rank in standings:
                if user_id in existing:
                    grants.append(existing[user_id])
                    continue
                entry = self.match_entry(rank, prize_table)
                if entry is None or entry.rewards.is_empty:
                    continue
                grant = RewardGrant(user_id=user_id, rank=rank, rewards=entry.rewards, source_id=source_id)
                # Recorded as pending before delivery so a lost write never re-grants
                await self.grants.put(grant.id, grant)
                if await self._deliver(grant):
                    await self.grants.put(grant.id, grant)
                grants.append(grant)

        delivered = sum(1 for g in grants if g.delivered)
        self.logger.info(f"Awarded {delivered}/{len(grants)} prize grant(s) for {source_id}")
        return grants

    async def get_grants(self, user_id: str = None, source_id: str = None) -> List[RewardGrant]:
        grants = await self.grants.list_all()
        return [
            grant for grant in grants
            if (user_id is None or grant.user_id == user_id)
            and (source_id is None or grant.source_id == source_id)
        ]

    async def retry_pending(self) -> int:
        """Redeliver undelivered grants; returns how many succeeded"""
        delivered = 0
        async with self._delivery_lock:
            for grant in await self.grants.list_all():
                if grant.delivered:
                    continue
                if await self._deliver(grant):
                    await self.grants.put(grant.id, grant)
                    delivered += 1
        if delivered:
            self.logger.info(f"Redelivered {delivered} pending prize grant(s)")
        return delivered
