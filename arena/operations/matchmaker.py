"""
Matchmaker

A periodically ticking queue that pairs waiting players by battle
preferences and ladder rating. Matched entries leave the queue under the
queue lock in the same step that creates their battle, so no entry is ever
matched twice.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from arena.config import Config
from arena.data_models.battle import Battle, BattleFormat, BattleSettings, BattleStatus, BattleType
from arena.data_models.codec import utcnow
from arena.operations.battle_operations import BattleOperations
from arena.operations.rating_ladder import RatingLadder
from arena.utils.exceptions import ArenaError
from arena.utils.logger import setup_logger

MATCHABLE_TYPES = (BattleType.QUICK, BattleType.LADDER)


@dataclass
class QueueEntry:
    user_id: str
    battle_type: BattleType
    battle_format: BattleFormat
    settings: Optional[BattleSettings] = None
    source_battle_id: Optional[str] = None  # Public battle the user is waiting in
    username: str = ""
    queued_at: datetime = field(default_factory=utcnow)


class Matchmaker:
    """Rating-aware pairing of queued players"""

    def __init__(self, battle_ops: BattleOperations, ladder: RatingLadder,
                 clock: Callable[[], datetime] = utcnow):
        self.battle_ops = battle_ops
        self.ladder = ladder
        self.clock = clock
        self._queue: Dict[str, QueueEntry] = {}  # Insertion ordered
        self._lock = asyncio.Lock()
        self.logger = setup_logger(f"{__name__}.Matchmaker")

    def queue_size(self) -> int:
        return len(self._queue)

    def is_queued(self, user_id: str) -> bool:
        return user_id in self._queue

    def entries(self) -> List[QueueEntry]:
        return list(self._queue.values())

    async def enqueue(self, user_id: str, battle_type, battle_format,
                      settings: BattleSettings = None, source_battle_id: str = None,
                      username: str = "") -> QueueEntry:
        """
        Add or replace a user's queue entry.

        Raises:
            ValueError: If the battle type is not matchable
        """
        battle_type = battle_type if isinstance(battle_type, BattleType) else BattleType(battle_type)
        battle_format = battle_format if isinstance(battle_format, BattleFormat) else BattleFormat(battle_format)
        if battle_type not in MATCHABLE_TYPES:
            raise ValueError(f"{battle_type.value} battles are not matchmade")

        entry = QueueEntry(
            user_id=user_id,
            battle_type=battle_type,
            battle_format=battle_format,
            settings=settings,
            source_battle_id=source_battle_id,
            username=username,
            queued_at=self.clock(),
        )
        async with self._lock:
            self._queue.pop(user_id, None)
            self._queue[user_id] = entry
        self.logger.info(f"Queued {user_id} for {battle_type.value}/{battle_format.value}")
        return entry

    async def dequeue(self, user_id: str) -> bool:
        async with self._lock:
            removed = self._queue.pop(user_id, None) is not None
        if removed:
            self.logger.info(f"Removed {user_id} from the matchmaking queue")
        return removed

    async def is_good_match(self, first: QueueEntry, second: QueueEntry) -> bool:
        if first.user_id == second.user_id:
            return False
        if first.battle_type != second.battle_type or first.battle_format != second.battle_format:
            return False

        rating1 = await self.ladder.get_rating(first.user_id)
        rating2 = await self.ladder.get_rating(second.user_id)
        if rating1 is None or rating2 is None:
            return True  # Unrated players are always eligible
        return abs(rating1 - rating2) <= Config.MATCHMAKING_RATING_TOLERANCE

    async def _is_stale(self, entry: QueueEntry) -> bool:
        """Source battle gone, started or already joined by someone else"""
        if entry.source_battle_id is None:
            return False
        battle = await self.battle_ops.store.get(entry.source_battle_id)
        return (
            battle is None
            or battle.status != BattleStatus.WAITING
            or len(battle.participants) > 1
            or not battle.has_participant(entry.user_id)
        )

    async def tick(self) -> List[Battle]:
        """
        One matchmaking pass over the queue in queue order.

        Returns:
            Battles created for matched pairs
        """
        created: List[Battle] = []
        async with self._lock:
            for entry in list(self._queue.values()):
                if await self._is_stale(entry):
                    self._queue.pop(entry.user_id, None)
                    self.logger.debug(f"Dropped stale queue entry for {entry.user_id}")

            pairs: List[Tuple[QueueEntry, QueueEntry]] = []
            matched = set()
            entries = list(self._queue.values())
            for i, first in enumerate(entries):
                if first.user_id in matched:
                    continue
                for second in entries[i + 1:]:
                    if second.user_id in matched:
                        continue
                    if await self.is_good_match(first, second):
                        pairs.append((first, second))
                        matched.update((first.user_id, second.user_id))
                        break

            for first, second in pairs:
                held = await self._vacate_sources(first, second)
                if held is not None:
                    # Someone joined this player's battle; the partner waits for the next tick
                    self._queue.pop(held.user_id, None)
                    continue
                battle = await self._create_matched_battle(first, second)
                if battle is None:
                    continue
                self._queue.pop(first.user_id, None)
                self._queue.pop(second.user_id, None)
                created.append(battle)

        if created:
            self.logger.info(f"Matchmaking tick created {len(created)} battle(s), {self.queue_size()} waiting")
        return created

    async def _vacate_sources(self, first: QueueEntry, second: QueueEntry) -> Optional[QueueEntry]:
        """
        Abandon the public battles a matched pair was waiting in.

        Returns:
            The entry whose battle could not be abandoned because someone
            joined it, or None when both players are free
        """
        for entry in (first, second):
            if entry.source_battle_id is None:
                continue
            if not await self.battle_ops.abandon_waiting(entry.source_battle_id, entry.user_id):
                self.logger.warning(
                    f"{entry.user_id} is already playing in {entry.source_battle_id}, "
                    f"not matching with {(second if entry is first else first).user_id}"
                )
                return entry
            entry.source_battle_id = None
        return None

    async def _create_matched_battle(self, first: QueueEntry, second: QueueEntry) -> Optional[Battle]:
        settings = copy.deepcopy(first.settings) if first.settings else BattleSettings(
            salary_cap=Config.DEFAULT_SALARY_CAP
        )
        settings.max_participants = 2

        try:
            battle = await self.battle_ops.create_battle(
                first.user_id, first.battle_type, first.battle_format,
                settings=settings, is_public=False, creator_name=first.username,
            )
            battle = await self.battle_ops.join_battle(battle.id, second.user_id, username=second.username)
        except ArenaError as e:
            self.logger.error(f"Failed to create matched battle for {first.user_id} vs {second.user_id}: {e}",
                              exc_info=True)
            return None

        self.logger.info(f"Matched {first.user_id} vs {second.user_id} in battle {battle.id}")
        return battle
