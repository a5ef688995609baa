"""
Battle Service

Facade over the operations layer. Wires one shared lock registry, event bus
and set of stores through every operation and owns the background tasks
(matchmaking tick and round monitor).
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from discord.ext import tasks

from arena.config import Config
from arena.data_models.battle import Battle, BattleRoster, BattleSettings, BattleStatus
from arena.data_models.codec import utcnow
from arena.data_models.ladder import LadderRank, RatingChange
from arena.data_models.power_up import ActiveEffect
from arena.data_models.rewards import PrizeTableEntry, RewardGrant
from arena.data_models.tournament import EntryRequirements, Tournament
from arena.database.store import MemoryStore, Store
from arena.operations.battle_operations import BattleOperations
from arena.operations.matchmaker import MATCHABLE_TYPES, Matchmaker, QueueEntry
from arena.operations.power_ups import PowerUpCatalog
from arena.operations.prize_distributor import PrizeDistributor
from arena.operations.rating_ladder import RatingLadder
from arena.operations.roster_operations import RosterInitializer
from arena.operations.scoring_engine import ScoringEngine
from arena.operations.tournament_scheduler import TournamentScheduler
from arena.services.collaborators import PlayerPool, RewardsSink, ScoringFeed, SocialSink
from arena.services.event_bus import EventBus
from arena.services.keyed_lock import KeyedLock
from arena.utils.logger import setup_logger


class BattleService:
    """
    Entry point for every battle, ladder, queue and tournament operation.

    Stores default to in-memory ones; pass the SQL stores from
    ``arena.database.store`` for persistence.
    """

    def __init__(
        self,
        scoring_feed: ScoringFeed,
        player_pool: PlayerPool,
        social_sink: SocialSink,
        rewards_sink: RewardsSink,
        battles: Store[Battle] = None,
        tournaments: Store[Tournament] = None,
        ladder_ranks: Store[LadderRank] = None,
        rating_history: Store[RatingChange] = None,
        reward_grants: Store[RewardGrant] = None,
        event_bus: EventBus = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.logger = setup_logger(f"{__name__}.BattleService")
        self.clock = clock
        self.event_bus = event_bus or EventBus()
        self.locks = KeyedLock()

        self.ladder = RatingLadder(
            ladder_ranks if ladder_ranks is not None else MemoryStore(),
            rating_history if rating_history is not None else MemoryStore(),
            self.event_bus, user_locks=self.locks, clock=clock,
        )
        self.catalog = PowerUpCatalog()
        self.roster_initializer = RosterInitializer(player_pool)
        self.scoring_engine = ScoringEngine(scoring_feed, clock=clock)
        self.prize_distributor = PrizeDistributor(
            reward_grants if reward_grants is not None else MemoryStore(), rewards_sink
        )
        self.battle_ops = BattleOperations(
            battles if battles is not None else MemoryStore(),
            self.event_bus, self.catalog, self.roster_initializer, self.scoring_engine,
            self.ladder, self.prize_distributor, social_sink,
            locks=self.locks, clock=clock,
        )
        self.matchmaker = Matchmaker(self.battle_ops, self.ladder, clock=clock)
        self.tournaments = TournamentScheduler(
            tournaments if tournaments is not None else MemoryStore(),
            self.battle_ops, self.ladder, self.prize_distributor, self.event_bus,
            locks=self.locks, clock=clock,
        )

    # ------------------------------------------------------------------
    # Battles
    # ------------------------------------------------------------------

    async def create_battle(self, creator_id: str, battle_type, battle_format,
                            settings: BattleSettings = None, invitees: Sequence[str] = None,
                            is_public: bool = False, creator_name: str = None) -> Battle:
        """
        Create a battle. Public quick and ladder battles also put the creator
        in the matchmaking queue so a compatible player can be paired in.
        """
        battle = await self.battle_ops.create_battle(
            creator_id, battle_type, battle_format, settings=settings,
            invitees=invitees, is_public=is_public, creator_name=creator_name,
        )
        if is_public and battle.battle_type in MATCHABLE_TYPES:
            await self.matchmaker.enqueue(
                creator_id, battle.battle_type, battle.battle_format, settings=battle.settings,
                source_battle_id=battle.id, username=creator_name or "",
            )
        return battle

    async def join_battle(self, battle_id: str, user_id: str, username: str = None) -> Battle:
        battle = await self.battle_ops.join_battle(battle_id, user_id, username=username)
        await self.matchmaker.dequeue(user_id)
        return battle

    async def leave_battle(self, battle_id: str, user_id: str) -> Optional[Battle]:
        battle = await self.battle_ops.leave_battle(battle_id, user_id)
        await self.matchmaker.dequeue(user_id)
        return battle

    async def start_battle(self, battle_id: str) -> Battle:
        return await self.battle_ops.start_battle(battle_id)

    async def submit_roster(self, battle_id: str, user_id: str, roster: BattleRoster) -> Battle:
        return await self.battle_ops.submit_roster(battle_id, user_id, roster)

    async def substitute_player(self, battle_id: str, user_id: str,
                                out_player_id: str, in_player_id: str) -> Battle:
        return await self.battle_ops.substitute_player(battle_id, user_id, out_player_id, in_player_id)

    async def use_power_up(self, battle_id: str, user_id: str, power_up_id: str,
                           target: str = None) -> ActiveEffect:
        return await self.battle_ops.use_power_up(battle_id, user_id, power_up_id, target)

    async def update_battle_scores(self, battle_id: str) -> Battle:
        return await self.battle_ops.update_battle_scores(battle_id)

    async def check_active_battles(self) -> int:
        return await self.battle_ops.check_active_battles()

    async def get_battle(self, battle_id: str) -> Battle:
        return await self.battle_ops.get_battle(battle_id)

    async def list_battles(self, status: BattleStatus = None) -> List[Battle]:
        return await self.battle_ops.list_battles(status)

    async def get_battle_history(self, user_id: str, limit: int = 10, offset: int = 0,
                                 battle_type=None) -> List[Battle]:
        return await self.battle_ops.get_battle_history(user_id, limit=limit, offset=offset,
                                                        battle_type=battle_type)

    def list_power_ups(self):
        return self.catalog.list_power_ups()

    # ------------------------------------------------------------------
    # Ladder
    # ------------------------------------------------------------------

    async def get_ladder_rank(self, user_id: str) -> Optional[LadderRank]:
        return await self.ladder.get_rank(user_id)

    async def get_ladder_leaderboard(self, limit: int = 10, offset: int = 0) -> List[LadderRank]:
        return await self.ladder.get_leaderboard(limit=limit, offset=offset)

    async def get_rating_history(self, user_id: str, limit: int = 20) -> List[RatingChange]:
        return await self.ladder.get_history(user_id, limit=limit)

    # ------------------------------------------------------------------
    # Matchmaking
    # ------------------------------------------------------------------

    async def queue_for_battle(self, user_id: str, battle_type, battle_format,
                               settings: BattleSettings = None, username: str = "") -> QueueEntry:
        return await self.matchmaker.enqueue(
            user_id, battle_type, battle_format,
            settings=settings, username=username,
        )

    async def leave_queue(self, user_id: str) -> bool:
        return await self.matchmaker.dequeue(user_id)

    async def run_matchmaking_once(self) -> List[Battle]:
        return await self.matchmaker.tick()

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    async def create_tournament(self, name: str, tournament_format, size: int,
                                prize_table: Sequence[PrizeTableEntry],
                                entry_requirements: EntryRequirements = None,
                                description: str = None) -> Tournament:
        return await self.tournaments.create_tournament(
            name, tournament_format, size, prize_table,
            entry_requirements=entry_requirements, description=description,
        )

    async def join_tournament(self, tournament_id: str, user_id: str) -> Tournament:
        return await self.tournaments.join_tournament(tournament_id, user_id)

    async def start_tournament(self, tournament_id: str) -> Tournament:
        return await self.tournaments.start_tournament(tournament_id)

    async def record_tournament_result(self, tournament_id: str, match_id: str, winner_id: str,
                                       score1: float = None, score2: float = None) -> Tournament:
        return await self.tournaments.record_result(tournament_id, match_id, winner_id, score1, score2)

    async def start_tournament_round(self, tournament_id: str) -> List[Battle]:
        return await self.tournaments.start_round(tournament_id)

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return await self.tournaments.get_tournament(tournament_id)

    async def get_reward_grants(self, user_id: str = None, source_id: str = None) -> List[RewardGrant]:
        return await self.prize_distributor.get_grants(user_id=user_id, source_id=source_id)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def run_monitor_once(self):
        """One round-monitor tick: battles, tournaments, then pending prizes"""
        checked = await self.battle_ops.check_active_battles()
        started = await self.tournaments.check_tournaments()
        redelivered = await self.prize_distributor.retry_pending()
        self.logger.debug(
            f"Monitor tick: {checked} battle(s) checked, {started} tournament(s) started, "
            f"{redelivered} grant(s) redelivered"
        )

    @tasks.loop(seconds=Config.MATCHMAKING_INTERVAL_SECONDS)
    async def matchmaking_loop(self):
        """Pair queued players every few seconds"""
        try:
            await self.run_matchmaking_once()
        except Exception as e:
            self.logger.error(f"Error in matchmaking task: {e}", exc_info=True)

    @tasks.loop(seconds=Config.ROUND_CHECK_INTERVAL_SECONDS)
    async def monitor_loop(self):
        """Advance rounds, start full tournaments and retry prizes"""
        try:
            await self.run_monitor_once()
        except Exception as e:
            self.logger.error(f"Error in round monitor task: {e}", exc_info=True)

    def start_background_tasks(self):
        """Start both loops; must be called with an event loop running"""
        for loop in (self.matchmaking_loop, self.monitor_loop):
            if not loop.is_running():
                loop.start()
        self.logger.info("Background tasks started")

    async def stop_background_tasks(self):
        for loop in (self.matchmaking_loop, self.monitor_loop):
            task = loop.get_task()
            loop.cancel()
            if task is None:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.logger.info("Background tasks stopped")
