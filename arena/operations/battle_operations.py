"""
Battle Operations

Owns each battle's lifecycle: ``waiting -> {drafting | active} -> completed``.
Every mutation runs under the battle's lock, is stored as a whole, and only
then publishes the domain events buffered during the transition, so no
partial transition is ever observable.
"""

import itertools
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from arena.config import Config
from arena.constants import BattleConstants
from arena.data_models.battle import (
    Battle, BattleEvent, BattleEventType, BattleFormat, BattleParticipant,
    BattleRoster, BattleRound, BattleSettings, BattleStatus, BattleType, Matchup,
    PlayerStatus
)
from arena.data_models.codec import utcnow
from arena.data_models.power_up import ActiveEffect
from arena.database.store import Store
from arena.operations.power_ups import PowerUpCatalog
from arena.operations.prize_distributor import PrizeDistributor
from arena.operations.rating_ladder import RatingLadder
from arena.operations.roster_operations import RosterInitializer
from arena.operations.scoring_engine import ScoringEngine
from arena.services.collaborators import SocialSink
from arena.services.event_bus import DomainEvent, DomainEventType, EventBus
from arena.services.keyed_lock import KeyedLock
from arena.utils.brackets import bracket_rounds, circle_pairings
from arena.utils.exceptions import (
    AlreadyJoinedError, AlreadyStartedError, BattleFullError, BattleNotFoundError,
    CapacityExceededError, InvalidStateError, NotActiveError, NotParticipantError,
    PowerUpsDisabledError, ScoringFeedUnavailableError, SwapLimitExceededError
)
from arena.utils.logger import setup_logger

CompletionHook = Callable[[Battle], Awaitable[None]]

SOCIAL_EVENT_TYPE = "h2h_battle"


def _as_enum(enum_class, value):
    return value if isinstance(value, enum_class) else enum_class(str(value).lower())


class BattleOperations:
    """
    Service class for the battle state machine.

    Collaborators are injected; ``completion_hooks`` run after a completed
    battle has been stored (the tournament scheduler registers one to
    advance its bracket).
    """

    def __init__(
        self,
        store: Store[Battle],
        event_bus: EventBus,
        catalog: PowerUpCatalog,
        roster_initializer: RosterInitializer,
        scoring_engine: ScoringEngine,
        ladder: RatingLadder,
        prize_distributor: PrizeDistributor,
        social_sink: SocialSink,
        locks: KeyedLock = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.event_bus = event_bus
        self.catalog = catalog
        self.roster_initializer = roster_initializer
        self.scoring_engine = scoring_engine
        self.ladder = ladder
        self.prize_distributor = prize_distributor
        self.social_sink = social_sink
        self.locks = locks or KeyedLock()
        self.clock = clock
        self.completion_hooks: List[CompletionHook] = []
        self.logger = setup_logger(f"{__name__}.BattleOperations")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def capacity(battle: Battle) -> int:
        default, _ = BattleConstants.CAPACITY[battle.battle_type.value]
        return battle.settings.max_participants or default

    @staticmethod
    def calculate_total_rounds(battle_type: BattleType, participant_count: int) -> int:
        if battle_type.value in BattleConstants.FIXED_ROUNDS:
            return BattleConstants.FIXED_ROUNDS[battle_type.value]
        if battle_type == BattleType.TOURNAMENT:
            return max(1, bracket_rounds(participant_count))
        return BattleConstants.DEFAULT_ROUNDS

    def _event(self, event_type: DomainEventType, battle: Battle, user_ids: Sequence[str] = None,
               **payload) -> DomainEvent:
        return DomainEvent(
            event_type=event_type,
            battle_id=battle.id,
            tournament_id=battle.tournament_id,
            user_ids=tuple(user_ids if user_ids is not None else (p.user_id for p in battle.participants)),
            payload=payload,
            timestamp=self.clock(),
        )

    def _transition(self, battle: Battle, new_status: BattleStatus, events: List[DomainEvent]):
        """Move forward in the lifecycle; regressions are refused"""
        old_status = battle.status
        if new_status.order <= old_status.order:
            raise InvalidStateError(
                f"Battle '{battle.id}' cannot move from {old_status.value} to {new_status.value}"
            )
        battle.status = new_status
        events.append(self._event(
            DomainEventType.BATTLE_STATUS_CHANGED, battle,
            old_status=old_status.value, new_status=new_status.value,
        ))
        self.logger.info(f"Battle {battle.id}: {old_status.value} -> {new_status.value}")

    async def _load(self, battle_id: str) -> Battle:
        battle = await self.store.get(battle_id)
        if battle is None:
            raise BattleNotFoundError(battle_id)
        return battle

    async def _save_and_publish(self, battle: Battle, events: List[DomainEvent]):
        await self.store.put(battle.id, battle)
        await self.event_bus.publish_all(events)

    async def _run_completion_hooks(self, battle: Battle):
        for hook in self.completion_hooks:
            try:
                await hook(battle)
            except Exception as e:
                self.logger.error(f"Completion hook failed for battle {battle.id}: {e}", exc_info=True)

    @staticmethod
    def _require_participant(battle: Battle, user_id: str) -> BattleParticipant:
        participant = battle.get_participant(user_id)
        if participant is None:
            raise NotParticipantError(user_id, battle.id)
        return participant

    # ------------------------------------------------------------------
    # Creation and membership
    # ------------------------------------------------------------------

    async def create_battle(
        self,
        creator_id: str,
        battle_type: Union[BattleType, str],
        battle_format: Union[BattleFormat, str],
        settings: Optional[BattleSettings] = None,
        invitees: Optional[Sequence[str]] = None,
        is_public: bool = False,
        creator_name: Optional[str] = None,
        tournament_id: Optional[str] = None,
        bracket_match_id: Optional[str] = None
    ) -> Battle:
        """
        Create a waiting battle with the creator as first participant.

        Raises:
            CapacityExceededError: If max_participants is outside the
                type's allowed range
        """
        battle_type = _as_enum(BattleType, battle_type)
        battle_format = _as_enum(BattleFormat, battle_format)
        settings = settings or BattleSettings(salary_cap=Config.DEFAULT_SALARY_CAP)

        _, max_capacity = BattleConstants.CAPACITY[battle_type.value]
        if settings.max_participants is not None and not (
                BattleConstants.MIN_PARTICIPANTS_TO_START <= settings.max_participants <= max_capacity):
            raise CapacityExceededError(
                f"max_participants {settings.max_participants} outside 2..{max_capacity} for {battle_type.value}",
                f"❌ {battle_type.value.title()} battles allow between 2 and {max_capacity} participants."
            )

        now = self.clock()
        battle = Battle(
            battle_type=battle_type,
            battle_format=battle_format,
            creator_id=creator_id,
            settings=settings,
            participants=[BattleParticipant(user_id=creator_id, username=creator_name or "", joined_at=now)],
            prizes=self.prize_distributor.battle_prize_table(battle_type),
            invited_user_ids=[user for user in (invitees or []) if user != creator_id],
            is_public=is_public,
            tournament_id=tournament_id,
            bracket_match_id=bracket_match_id,
            created_at=now,
        )

        events = [self._event(
            DomainEventType.BATTLE_CREATED, battle, [creator_id],
            battle_type=battle_type.value, battle_format=battle_format.value, is_public=is_public,
        )]
        for invitee in battle.invited_user_ids:
            events.append(self._event(DomainEventType.BATTLE_INVITE, battle, [invitee], from_user_id=creator_id))

        async with self.locks.hold(battle.id):
            await self._save_and_publish(battle, events)

        self.logger.info(
            f"Created {battle_type.value}/{battle_format.value} battle {battle.id} by {creator_id} "
            f"(capacity {self.capacity(battle)}, {len(battle.invited_user_ids)} invite(s))"
        )
        return battle

    async def join_battle(self, battle_id: str, user_id: str, username: str = None) -> Battle:
        """
        Add a participant; reaching capacity starts the battle.

        Raises:
            BattleNotFoundError: Unknown battle
            AlreadyStartedError: Battle is no longer waiting
            AlreadyJoinedError: User is already a participant
            BattleFullError: Battle is at capacity
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status != BattleStatus.WAITING:
                raise AlreadyStartedError(battle_id, battle.status.value)
            if battle.has_participant(user_id):
                raise AlreadyJoinedError(user_id, battle_id)
            capacity = self.capacity(battle)
            if len(battle.participants) >= capacity:
                raise BattleFullError(battle_id, capacity)

            battle.participants.append(
                BattleParticipant(user_id=user_id, username=username or "", joined_at=self.clock())
            )
            events = [self._event(
                DomainEventType.PARTICIPANT_JOINED, battle,
                joined_user_id=user_id, participant_count=len(battle.participants),
            )]
            self.logger.info(f"{user_id} joined battle {battle_id} ({len(battle.participants)}/{capacity})")

            if len(battle.participants) >= capacity:
                await self._start(battle, events)

            await self._save_and_publish(battle, events)
            return battle

    async def leave_battle(self, battle_id: str, user_id: str) -> Optional[Battle]:
        """
        Remove a participant from a waiting battle.

        Returns:
            The updated battle, or None when the last participant left and
            the battle was deleted

        Raises:
            AlreadyStartedError: Battle is no longer waiting
            NotParticipantError: User is not in the battle
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status != BattleStatus.WAITING:
                raise AlreadyStartedError(battle_id, battle.status.value)
            participant = self._require_participant(battle, user_id)

            battle.participants.remove(participant)
            events = [self._event(
                DomainEventType.PARTICIPANT_LEFT, battle, [user_id] + [p.user_id for p in battle.participants],
                left_user_id=user_id, participant_count=len(battle.participants),
            )]

            if not battle.participants:
                await self.store.delete(battle_id)
                await self.event_bus.publish_all(events)
                self.logger.info(f"Battle {battle_id} deleted after its last participant left")
                result = None
            else:
                if battle.creator_id == user_id:
                    battle.creator_id = battle.participants[0].user_id
                await self._save_and_publish(battle, events)
                self.logger.info(f"{user_id} left battle {battle_id}")
                result = battle

        if result is None:
            self.locks.discard(battle_id)
        return result

    async def abandon_waiting(self, battle_id: str, user_id: str) -> bool:
        """
        Delete a waiting battle whose only participant is ``user_id``.

        The check and the delete happen under the battle lock, so a join
        racing this call either lands first and keeps the battle or finds
        it gone.

        Returns:
            False when the battle started or someone else joined it
        """
        async with self.locks.hold(battle_id):
            battle = await self.store.get(battle_id)
            if battle is None:
                return True
            if (battle.status != BattleStatus.WAITING
                    or [p.user_id for p in battle.participants] != [user_id]):
                self.logger.info(f"{user_id} can no longer abandon battle {battle_id} ({battle.status.value})")
                return False

            await self.store.delete(battle_id)
            await self.event_bus.publish(self._event(
                DomainEventType.PARTICIPANT_LEFT, battle, [user_id],
                left_user_id=user_id, participant_count=0,
            ))
            self.logger.info(f"Battle {battle_id} abandoned by {user_id}")

        self.locks.discard(battle_id)
        return True

    # ------------------------------------------------------------------
    # Starting play
    # ------------------------------------------------------------------

    async def start_battle(self, battle_id: str) -> Battle:
        """
        Leave ``waiting``; a no-op once the battle has already started.

        Raises:
            BattleNotFoundError: Unknown battle
            InvalidStateError: Fewer than two participants
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status != BattleStatus.WAITING:
                self.logger.debug(f"start_battle on {battle_id} ignored (status={battle.status.value})")
                return battle
            if len(battle.participants) < BattleConstants.MIN_PARTICIPANTS_TO_START:
                raise InvalidStateError(
                    f"Battle '{battle_id}' needs at least {BattleConstants.MIN_PARTICIPANTS_TO_START} participants",
                    "❌ At least two participants are needed to start."
                )
            events: List[DomainEvent] = []
            await self._start(battle, events)
            await self._save_and_publish(battle, events)
            return battle

    async def _start(self, battle: Battle, events: List[DomainEvent]):
        battle.total_rounds = self.calculate_total_rounds(battle.battle_type, len(battle.participants))

        if battle.battle_format == BattleFormat.DRAFT:
            self._transition(battle, BattleStatus.DRAFTING, events)
            if all(p.roster is not None for p in battle.participants):
                self._open_play(battle, events)
            return

        # Build every missing roster before touching state so a failure leaves the battle waiting
        built = {}
        starting = {p.id for participant in battle.participants if participant.roster
                    for p in participant.roster.players}
        for participant in battle.participants:
            if participant.roster is None:
                roster = await self.roster_initializer.build_default_roster(battle.settings, avoid=starting)
                starting.update(p.id for p in roster.players)
                built[participant.user_id] = roster
        for participant in battle.participants:
            if participant.user_id in built:
                participant.roster = built[participant.user_id]
        self._open_play(battle, events)

    def _open_play(self, battle: Battle, events: List[DomainEvent]):
        now = self.clock()
        self._transition(battle, BattleStatus.ACTIVE, events)
        battle.started_at = now
        battle.current_round = 1
        battle.rounds = [self._create_round(battle, 1, now)]
        events.append(self._event(
            DomainEventType.BATTLE_STARTED, battle,
            total_rounds=battle.total_rounds, round_end=battle.rounds[0].end_date.isoformat(),
        ))

    def _create_round(self, battle: Battle, round_number: int, start: datetime) -> BattleRound:
        hours = battle.settings.round_duration_hours or Config.ROUND_DURATION_HOURS
        ids = [participant.user_id for participant in battle.participants]
        matchups = []
        for index, (first, second) in enumerate(circle_pairings(ids, round_number - 1)):
            if first is None or second is None:
                continue  # Bye
            matchups.append(Matchup(id=f"{battle.id}_r{round_number}_m{index + 1}",
                                    player1_id=first, player2_id=second))
        return BattleRound(
            round_number=round_number,
            start_date=start,
            end_date=start + timedelta(hours=hours),
            matchups=matchups,
        )

    async def submit_roster(self, battle_id: str, user_id: str, roster: BattleRoster) -> Battle:
        """
        Assign a participant's roster before play opens.

        In a drafting battle, the last submission opens play.

        Raises:
            AlreadyStartedError: Battle is active or completed
            NotParticipantError: User is not in the battle
            CapacityExceededError: Roster violates slots or salary cap
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status not in (BattleStatus.WAITING, BattleStatus.DRAFTING):
                raise AlreadyStartedError(battle_id, battle.status.value)
            participant = self._require_participant(battle, user_id)

            participant.roster = self.roster_initializer.prepare_submitted(roster, battle.settings)
            self.logger.info(f"{user_id} submitted a roster for battle {battle_id} (salary {roster.salary})")

            events: List[DomainEvent] = []
            if battle.status == BattleStatus.DRAFTING and all(p.roster is not None for p in battle.participants):
                self._open_play(battle, events)
            await self._save_and_publish(battle, events)
            return battle

    # ------------------------------------------------------------------
    # Active play
    # ------------------------------------------------------------------

    async def use_power_up(self, battle_id: str, user_id: str, power_up_id: str,
                           target: Optional[str] = None) -> ActiveEffect:
        """
        Apply a power-up for the current round.

        Raises:
            BattleNotFoundError: Unknown battle
            NotActiveError: Battle is not active
            PowerUpsDisabledError: Battle settings disable power-ups
            NotParticipantError: User is not in the battle
            UnknownPowerUpError: Power-up id not in the catalog
            OnCooldownError: Power-up used too recently
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status != BattleStatus.ACTIVE:
                raise NotActiveError(battle_id, battle.status.value)
            if not battle.settings.power_ups_enabled:
                raise PowerUpsDisabledError(battle_id)
            participant = self._require_participant(battle, user_id)

            effect = self.catalog.apply(battle, participant, power_up_id, battle.current_round,
                                        target, now=self.clock())
            events = [self._event(
                DomainEventType.POWER_UP_USED, battle,
                used_by=user_id, power_up_id=power_up_id, round_number=battle.current_round,
                target=effect.target_user_id or effect.target_player_id or effect.target_position,
            )]
            await self._save_and_publish(battle, events)
            return effect

    async def substitute_player(self, battle_id: str, user_id: str,
                                out_player_id: str, in_player_id: str) -> Battle:
        """
        Swap an active player for a bench player within the round's allowance.

        Raises:
            NotActiveError: Battle is not active
            NotParticipantError: User is not in the battle
            SwapLimitExceededError: No substitutions left this round
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status != BattleStatus.ACTIVE:
                raise NotActiveError(battle_id, battle.status.value)
            participant = self._require_participant(battle, user_id)

            round_number = battle.current_round
            allowed = self.catalog.swap_allowance(battle, user_id, round_number, Config.DEFAULT_SWAPS_PER_ROUND)
            used = participant.swaps_used.get(round_number, 0)
            if used >= allowed:
                raise SwapLimitExceededError(allowed)

            self.roster_initializer.substitute(participant.roster, out_player_id, in_player_id, battle.settings)
            participant.swaps_used[round_number] = used + 1
            self.logger.info(
                f"{user_id} swapped {out_player_id} for {in_player_id} in battle {battle_id} "
                f"({used + 1}/{allowed} this round)"
            )
            await self._save_and_publish(battle, [])
            return battle

    async def update_battle_scores(self, battle_id: str) -> Battle:
        """
        Recompute scores and advance the round or battle when its end passes.

        Never raises for feed outages: the last-known scores are kept and
        advancement waits for the next successful update.

        Raises:
            BattleNotFoundError: Unknown battle
        """
        async with self.locks.hold(battle_id):
            battle = await self._load(battle_id)
            if battle.status != BattleStatus.ACTIVE:
                return battle

            try:
                await self.scoring_engine.update_scores(battle)
            except ScoringFeedUnavailableError as e:
                self.logger.warning(f"Scoring feed unavailable for battle {battle_id}, deferring: {e}")
                return battle

            events: List[DomainEvent] = []
            if self.clock() > battle.current.end_date:
                await self._complete_round(battle, events)
            await self._save_and_publish(battle, events)

        if battle.is_completed:
            await self._notify_social(battle)
            await self._run_completion_hooks(battle)
        return battle

    async def check_active_battles(self) -> int:
        """
        Update every active battle once; safe to re-run on every tick.

        Returns:
            Number of battles checked
        """
        checked = 0
        for battle in await self.store.list_all():
            if battle.status != BattleStatus.ACTIVE:
                continue
            try:
                await self.update_battle_scores(battle.id)
                checked += 1
            except BattleNotFoundError:
                continue
            except Exception as e:
                self.logger.error(f"Round check failed for battle {battle.id}: {e}", exc_info=True)
        return checked

    # ------------------------------------------------------------------
    # Round and battle completion
    # ------------------------------------------------------------------

    async def _complete_round(self, battle: Battle, events: List[DomainEvent]):
        current = battle.current
        round_number = current.round_number
        now = self.clock()
        current.completed = True

        for matchup in current.matchups:
            p1 = battle.get_participant(matchup.player1_id)
            p2 = battle.get_participant(matchup.player2_id)
            if p1 is None or p2 is None:
                continue
            matchup.player1_score = p1.round_score(round_number)
            matchup.player2_score = p2.round_score(round_number)
            matchup.margin = abs(matchup.player1_score - matchup.player2_score)

            if matchup.player1_score == matchup.player2_score:
                matchup.winner_id = None
                matchup.highlights.append(f"Draw at {matchup.player1_score:.1f}")
                current.events.append(BattleEvent(
                    event_type=BattleEventType.DRAW,
                    description=f"{p1.username or p1.user_id} and {p2.username or p2.user_id} drew",
                    timestamp=now,
                    affected_users=(p1.user_id, p2.user_id),
                ))
                continue

            winner, loser = (p1, p2) if matchup.player1_score > matchup.player2_score else (p2, p1)
            matchup.winner_id = winner.user_id
            winner.stats.rounds_won += 1
            matchup.highlights.append(
                f"{winner.username or winner.user_id} won by {matchup.margin:.1f}"
            )

            if winner.user_id in matchup.trailing_user_ids:
                winner.stats.comebacks += 1
                matchup.highlights.append("Comeback victory")
                current.events.append(BattleEvent(
                    event_type=BattleEventType.COMEBACK,
                    description=f"{winner.username or winner.user_id} came from behind to win",
                    timestamp=now,
                    fantasy_impact=matchup.margin,
                    affected_users=(winner.user_id, loser.user_id),
                ))

            await self._check_upset(battle, current, winner, loser, now)

        for participant in battle.participants:
            roster = participant.roster
            if roster and roster.players and all(
                    (p.actual_points or 0) > 0 for p in roster.players if p.status != PlayerStatus.BENCHED):
                participant.stats.perfect_lineups += 1

        events.append(self._event(
            DomainEventType.ROUND_COMPLETED, battle,
            round_number=round_number,
            results=[
                {"matchup_id": m.id, "winner_id": m.winner_id, "margin": m.margin}
                for m in current.matchups
            ],
        ))
        self.logger.info(f"Battle {battle.id} completed round {round_number}/{battle.total_rounds}")

        if round_number >= battle.total_rounds:
            await self._complete_battle(battle, events)
        else:
            battle.current_round = round_number + 1
            battle.rounds.append(self._create_round(battle, battle.current_round, now))

    async def _check_upset(self, battle: Battle, current: BattleRound,
                           winner: BattleParticipant, loser: BattleParticipant, now: datetime):
        winner_rating = await self.ladder.get_rating(winner.user_id)
        loser_rating = await self.ladder.get_rating(loser.user_id)
        if winner_rating is None or loser_rating is None:
            return
        gap = loser_rating - winner_rating
        if gap >= Config.UPSET_RATING_GAP:
            current.events.append(BattleEvent(
                event_type=BattleEventType.UPSET,
                description=f"Upset! {winner.username or winner.user_id} beat a {gap}-point favourite",
                timestamp=now,
                fantasy_impact=float(gap),
                affected_users=(winner.user_id, loser.user_id),
            ))

    @staticmethod
    def rank_participants(battle: Battle) -> List[BattleParticipant]:
        """Total score, then rounds won, then join order"""
        indexed = list(enumerate(battle.participants))
        indexed.sort(key=lambda item: (-item[1].score, -item[1].stats.rounds_won, item[0]))
        return [participant for _, participant in indexed]

    async def _complete_battle(self, battle: Battle, events: List[DomainEvent]):
        """
        Rank a finished battle, then grant its prizes and ladder change.

        Prize grants and ladder changes are keyed by battle id, so when the
        battle write that follows fails the next tick redoes this without
        granting or rating twice.
        """
        standings = self.rank_participants(battle)
        for rank, participant in enumerate(standings, start=1):
            participant.rank = rank
        battle.winner = standings[0].user_id if standings else None
        battle.completed_at = self.clock()
        self._transition(battle, BattleStatus.COMPLETED, events)

        await self.prize_distributor.award(
            battle.id, [(p.user_id, p.rank) for p in standings], battle.prizes
        )

        if (len(standings) == 2 and Config.is_rated_type(battle.battle_type.value)
                and standings[0].score != standings[1].score):
            await self.ladder.record_result(
                standings[0].user_id, standings[1].user_id,
                standings[0].score, standings[1].score,
                battle_id=battle.id,
                usernames={p.user_id: p.username for p in standings if p.username},
                events=events,
            )

        events.append(self._event(
            DomainEventType.BATTLE_COMPLETED, battle,
            winner=battle.winner,
            standings=[{"user_id": p.user_id, "rank": p.rank, "score": p.score} for p in standings],
        ))
        self.logger.info(f"Battle {battle.id} completed, winner {battle.winner}")

    async def _notify_social(self, battle: Battle):
        challenge_key = f"battle_{battle.id}"
        ids = [p.user_id for p in battle.participants]
        for first, second in itertools.combinations(ids, 2):
            for user_id in (first, second):
                try:
                    await self.social_sink.update_challenge_progress(challenge_key, user_id, SOCIAL_EVENT_TYPE, 1)
                except Exception as e:
                    self.logger.warning(f"Social progress update failed for {user_id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_battle(self, battle_id: str) -> Battle:
        """
        Raises:
            BattleNotFoundError: Unknown battle
        """
        return await self._load(battle_id)

    async def list_battles(self, status: BattleStatus = None) -> List[Battle]:
        battles = await self.store.list_all()
        return [b for b in battles if status is None or b.status == status]

    async def get_battle_history(self, user_id: str, limit: int = 10, offset: int = 0,
                                 battle_type: Union[BattleType, str, None] = None) -> List[Battle]:
        """Completed battles for a user, most recently completed first"""
        if battle_type is not None:
            battle_type = _as_enum(BattleType, battle_type)
        history = [
            battle for battle in await self.store.list_all()
            if battle.status == BattleStatus.COMPLETED
            and battle.has_participant(user_id)
            and (battle_type is None or battle.battle_type == battle_type)
        ]
        history.sort(key=lambda b: b.completed_at or b.created_at, reverse=True)
        return history[offset:offset + limit]
