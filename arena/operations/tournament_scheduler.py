"""
Tournament Scheduler

Builds tournament schedules and brackets, seeds registrations, turns ready
bracket matches into two-seat tournament battles and advances the bracket as
results come in.

Formats:
- single_elimination: whole bracket built up front, standard seed order,
  byes for the top seeds when the field is not a power of two
- round_robin: every round built up front with the circle method
- swiss: each round paired by record once the previous one completes
- double_elimination: each round paired within loss groups; two losses
  eliminate
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from arena.config import Config
from arena.data_models.battle import Battle, BattleFormat, BattleSettings, BattleType
from arena.data_models.codec import utcnow
from arena.data_models.rewards import PrizeTableEntry
from arena.data_models.tournament import (
    BracketMatch, BracketRound, BracketSlot, DateRange, EntryRequirements,
    Registration, Tournament, TournamentFormat, TournamentSchedule,
    TournamentStanding, TournamentStatus
)
from arena.database.store import Store
from arena.operations.battle_operations import BattleOperations
from arena.operations.prize_distributor import PrizeDistributor
from arena.operations.rating_ladder import RatingLadder
from arena.services.event_bus import DomainEvent, DomainEventType, EventBus
from arena.services.keyed_lock import KeyedLock
from arena.utils.brackets import bracket_rounds, circle_pairings, round_robin_rounds, seed_order
from arena.utils.exceptions import (
    AlreadyJoinedError, ArenaError, InvalidStateError, NotParticipantError,
    RegistrationClosedError, RequirementsNotMetError, TournamentFullError,
    TournamentNotFoundError
)
from arena.utils.logger import setup_logger

MAX_DOUBLE_ELIMINATION_LOSSES = 2


def _match_id(round_number: int, position: int) -> str:
    return f"r{round_number}_m{position + 1}"


class TournamentScheduler:
    """Service class for tournament registration, brackets and results"""

    def __init__(
        self,
        store: Store[Tournament],
        battle_ops: BattleOperations,
        ladder: RatingLadder,
        prize_distributor: PrizeDistributor,
        event_bus: EventBus,
        locks: KeyedLock = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.battle_ops = battle_ops
        self.ladder = ladder
        self.prize_distributor = prize_distributor
        self.event_bus = event_bus
        self.locks = locks or KeyedLock()
        self.clock = clock
        self.logger = setup_logger(f"{__name__}.TournamentScheduler")

        battle_ops.completion_hooks.append(self.on_battle_completed)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_rounds(tournament_format: TournamentFormat, size: int) -> int:
        if tournament_format == TournamentFormat.ROUND_ROBIN:
            return round_robin_rounds(size)
        return bracket_rounds(size)

    @staticmethod
    def build_schedule(start: datetime, rounds: int) -> TournamentSchedule:
        """
        Registration window, then one range per round with a gap before
        each round (including the first).
        """
        registration = DateRange(start=start, end=start + timedelta(days=Config.TOURNAMENT_REGISTRATION_DAYS))
        ranges = []
        round_start = registration.end + timedelta(days=Config.TOURNAMENT_ROUND_GAP_DAYS)
        for _ in range(rounds):
            round_end = round_start + timedelta(days=Config.TOURNAMENT_ROUND_DAYS)
            ranges.append(DateRange(start=round_start, end=round_end))
            round_start = round_end + timedelta(days=Config.TOURNAMENT_ROUND_GAP_DAYS)
        return TournamentSchedule(registration=registration, rounds=ranges)

    def _event(self, event_type: DomainEventType, tournament: Tournament, **payload) -> DomainEvent:
        return DomainEvent(
            event_type=event_type,
            tournament_id=tournament.id,
            user_ids=tuple(tournament.entrant_ids),
            payload=payload,
            timestamp=self.clock(),
        )

    async def _load(self, tournament_id: str) -> Tournament:
        tournament = await self.store.get(tournament_id)
        if tournament is None:
            raise TournamentNotFoundError(tournament_id)
        return tournament

    async def _save_and_publish(self, tournament: Tournament, events: List[DomainEvent]):
        await self.store.put(tournament.id, tournament)
        await self.event_bus.publish_all(events)

    # ------------------------------------------------------------------
    # Creation and registration
    # ------------------------------------------------------------------

    async def create_tournament(
        self,
        name: str,
        tournament_format: Union[TournamentFormat, str],
        size: int,
        prize_table: Sequence[PrizeTableEntry],
        entry_requirements: Optional[EntryRequirements] = None,
        description: Optional[str] = None
    ) -> Tournament:
        """
        Create a tournament open for registration.

        Raises:
            ValueError: If size is below 2 or the format is unknown
        """
        if not isinstance(tournament_format, TournamentFormat):
            tournament_format = TournamentFormat(str(tournament_format).lower())
        if size < 2:
            raise ValueError("tournament size must be at least 2")

        now = self.clock()
        rounds = self.calculate_rounds(tournament_format, size)
        tournament = Tournament(
            name=name,
            description=description or f"{size}-player {tournament_format.value} tournament",
            tournament_format=tournament_format,
            size=size,
            schedule=self.build_schedule(now, rounds),
            total_rounds=rounds,
            prizes=list(prize_table),
            entry_requirements=entry_requirements or EntryRequirements(),
            created_at=now,
        )
        events = [self._event(
            DomainEventType.TOURNAMENT_CREATED, tournament,
            name=name, tournament_format=tournament_format.value, size=size, total_rounds=rounds,
        )]
        async with self.locks.hold(tournament.id):
            await self._save_and_publish(tournament, events)

        self.logger.info(f"Created tournament {tournament.id} '{name}' ({tournament.description}, {rounds} rounds)")
        return tournament

    async def join_tournament(self, tournament_id: str, user_id: str) -> Tournament:
        """
        Register a user; the final registration starts the tournament.

        Raises:
            TournamentNotFoundError: Unknown tournament
            RegistrationClosedError: Not in registration or window passed
            AlreadyJoinedError: User already registered
            TournamentFullError: Field already complete
            RequirementsNotMetError: Rating below minimum or not invited
        """
        async with self.locks.hold(tournament_id):
            tournament = await self._load(tournament_id)
            now = self.clock()
            if tournament.is_registered(user_id):
                raise AlreadyJoinedError(user_id, tournament_id)
            if tournament.is_full:
                raise TournamentFullError(tournament_id, tournament.size)
            if tournament.status != TournamentStatus.REGISTRATION or now > tournament.schedule.registration.end:
                raise RegistrationClosedError(tournament_id)

            requirements = tournament.entry_requirements
            if requirements.invite_only and user_id not in requirements.invited_user_ids:
                raise RequirementsNotMetError("this tournament is invite only")
            rating = await self.ladder.get_rating(user_id)
            if requirements.min_rating is not None and (rating is None or rating < requirements.min_rating):
                raise RequirementsNotMetError(f"a ladder rating of at least {requirements.min_rating} is required")

            tournament.registrations.append(Registration(user_id=user_id, rating=rating, registered_at=now))
            self.logger.info(
                f"{user_id} joined tournament {tournament_id} ({len(tournament.registrations)}/{tournament.size})"
            )

            events: List[DomainEvent] = []
            if tournament.is_full:
                self._start(tournament, events)
            await self._save_and_publish(tournament, events)
            return tournament

    async def start_tournament(self, tournament_id: str) -> Tournament:
        """
        Close registration early and seed whoever registered.

        Raises:
            InvalidStateError: Fewer than two registrations
        """
        async with self.locks.hold(tournament_id):
            tournament = await self._load(tournament_id)
            if tournament.status != TournamentStatus.REGISTRATION:
                return tournament
            if len(tournament.registrations) < 2:
                raise InvalidStateError(
                    f"Tournament '{tournament_id}' needs at least 2 registrations",
                    "❌ At least two entrants are needed to start."
                )
            events: List[DomainEvent] = []
            self._start(tournament, events)
            await self._save_and_publish(tournament, events)
            return tournament

    async def check_tournaments(self) -> int:
        """
        Start tournaments whose registration window has closed.

        Returns:
            Number of tournaments started
        """
        started = 0
        now = self.clock()
        for tournament in await self.store.list_all():
            if tournament.status != TournamentStatus.REGISTRATION or now <= tournament.schedule.registration.end:
                continue
            if len(tournament.registrations) < 2:
                continue
            try:
                await self.start_tournament(tournament.id)
                started += 1
            except ArenaError as e:
                self.logger.warning(f"Could not start tournament {tournament.id}: {e}")
        return started

    # ------------------------------------------------------------------
    # Seeding and brackets
    # ------------------------------------------------------------------

    @staticmethod
    def seed(tournament: Tournament) -> List[str]:
        """Entrant ids in seed order (seed 1 first)"""
        indexed = list(enumerate(tournament.registrations))
        if Config.TOURNAMENT_SEEDING == 'rating':
            indexed.sort(key=lambda item: (
                -(item[1].rating if item[1].rating is not None else Config.STARTING_RATING), item[0]
            ))
        return [registration.user_id for _, registration in indexed]

    def _start(self, tournament: Tournament, events: List[DomainEvent]):
        seeds = self.seed(tournament)
        tournament.status = TournamentStatus.ACTIVE
        tournament.started_at = self.clock()
        tournament.total_rounds = self.calculate_rounds(tournament.tournament_format, len(seeds))

        if tournament.tournament_format == TournamentFormat.SINGLE_ELIMINATION:
            tournament.bracket = self._build_single_elimination(seeds)
        elif tournament.tournament_format == TournamentFormat.ROUND_ROBIN:
            tournament.bracket = self._build_round_robin(seeds)
        else:
            tournament.bracket = [self._pair_next_round(tournament, 1)]

        self._update_standings(tournament)
        events.append(self._event(
            DomainEventType.TOURNAMENT_STARTED, tournament,
            seeds=seeds, total_rounds=tournament.total_rounds,
        ))
        self.logger.info(f"Tournament {tournament.id} started with {len(seeds)} entrants")

    @staticmethod
    def _slot(seeds: List[str], seed: int) -> Optional[BracketSlot]:
        return BracketSlot(user_id=seeds[seed - 1], seed=seed) if seed <= len(seeds) else None

    def _build_single_elimination(self, seeds: List[str]) -> List[BracketRound]:
        rounds = bracket_rounds(len(seeds))
        order = seed_order(2 ** rounds)

        first = BracketRound(round_number=1)
        for position in range(len(order) // 2):
            slot1 = self._slot(seeds, order[position * 2])
            slot2 = self._slot(seeds, order[position * 2 + 1])
            match = BracketMatch(id=_match_id(1, position), round_number=1, position=position,
                                 slot1=slot1, slot2=slot2)
            if slot2 is None:
                match.is_bye = True
                match.winner_id = slot1.user_id
            first.matches.append(match)

        bracket = [first]
        for round_number in range(2, rounds + 1):
            count = len(order) // (2 ** round_number)
            bracket.append(BracketRound(
                round_number=round_number,
                matches=[BracketMatch(id=_match_id(round_number, p), round_number=round_number, position=p)
                         for p in range(count)],
            ))

        for match in first.matches:
            if match.is_bye:
                self._advance_winner(bracket, match)
        return bracket

    @staticmethod
    def _advance_winner(bracket: List[BracketRound], match: BracketMatch):
        """Move a single-elimination winner into the next round's slot"""
        if match.round_number >= len(bracket):
            return
        next_match = bracket[match.round_number].matches[match.position // 2]
        winner_slot = match.slot1 if match.slot1 and match.slot1.user_id == match.winner_id else match.slot2
        if match.position % 2 == 0:
            next_match.slot1 = winner_slot
        else:
            next_match.slot2 = winner_slot

    def _build_round_robin(self, seeds: List[str]) -> List[BracketRound]:
        bracket = []
        seed_of = {user_id: seed for seed, user_id in enumerate(seeds, start=1)}
        for index in range(round_robin_rounds(len(seeds))):
            round_number = index + 1
            bracket_round = BracketRound(round_number=round_number)
            for position, (first, second) in enumerate(circle_pairings(seeds, index)):
                bracket_round.matches.append(self._pairing_match(round_number, position, first, second, seed_of))
            bracket.append(bracket_round)
        return bracket

    @staticmethod
    def _pairing_match(round_number: int, position: int, first: Optional[str], second: Optional[str],
                       seed_of: Dict[str, int]) -> BracketMatch:
        if first is None:
            first, second = second, first
        match = BracketMatch(
            id=_match_id(round_number, position),
            round_number=round_number,
            position=position,
            slot1=BracketSlot(user_id=first, seed=seed_of[first]),
            slot2=BracketSlot(user_id=second, seed=seed_of[second]) if second else None,
        )
        if second is None:
            match.is_bye = True
            match.winner_id = first
        return match

    def _records(self, tournament: Tournament) -> Dict[str, Dict[str, float]]:
        records = {uid: {"wins": 0, "losses": 0, "points": 0.0, "byes": 0, "last_loss_round": 0}
                   for uid in tournament.entrant_ids}
        for bracket_round in tournament.bracket:
            for match in bracket_round.matches:
                if not match.is_decided:
                    continue
                if match.is_bye:
                    records[match.winner_id]["wins"] += 1
                    records[match.winner_id]["byes"] += 1
                    continue
                loser = match.loser_id()
                records[match.winner_id]["wins"] += 1
                records[loser]["losses"] += 1
                records[loser]["last_loss_round"] = match.round_number
                records[match.slot1.user_id]["points"] += match.score1 or 0.0
                records[match.slot2.user_id]["points"] += match.score2 or 0.0
        return records

    @staticmethod
    def _previous_opponents(tournament: Tournament) -> Dict[str, set]:
        met: Dict[str, set] = {uid: set() for uid in tournament.entrant_ids}
        for bracket_round in tournament.bracket:
            for match in bracket_round.matches:
                if match.slot1 and match.slot2:
                    met[match.slot1.user_id].add(match.slot2.user_id)
                    met[match.slot2.user_id].add(match.slot1.user_id)
        return met

    def _pair_group(self, ordered: List[str], met: Dict[str, set], records) -> List[Tuple[str, Optional[str]]]:
        """Greedy adjacent pairing avoiding rematches; the lowest player without a bye sits out"""
        pool = list(ordered)
        bye = None
        if len(pool) % 2:
            bye = next((uid for uid in reversed(pool) if records[uid]["byes"] == 0), pool[-1])
            pool.remove(bye)

        pairs: List[Tuple[str, Optional[str]]] = []
        while pool:
            first = pool.pop(0)
            opponent = next((uid for uid in pool if uid not in met[first]), pool[0])
            pool.remove(opponent)
            pairs.append((first, opponent))
        if bye is not None:
            pairs.append((bye, None))
        return pairs

    def _pair_next_round(self, tournament: Tournament, round_number: int) -> BracketRound:
        seeds = self.seed(tournament)
        seed_of = {user_id: seed for seed, user_id in enumerate(seeds, start=1)}
        records = self._records(tournament)
        met = self._previous_opponents(tournament)

        def standing_key(uid):
            return (-records[uid]["wins"], records[uid]["losses"], -records[uid]["points"], seed_of[uid])

        if tournament.tournament_format == TournamentFormat.DOUBLE_ELIMINATION:
            pairs = []
            for losses in range(MAX_DOUBLE_ELIMINATION_LOSSES):
                group = sorted((uid for uid in seeds if records[uid]["losses"] == losses), key=standing_key)
                pairs.extend(self._pair_group(group, met, records))
        else:
            pairs = self._pair_group(sorted(seeds, key=standing_key), met, records)

        bracket_round = BracketRound(round_number=round_number)
        for position, (first, second) in enumerate(pairs):
            bracket_round.matches.append(self._pairing_match(round_number, position, first, second, seed_of))
        return bracket_round

    def _alive(self, tournament: Tournament) -> List[str]:
        records = self._records(tournament)
        return [uid for uid in tournament.entrant_ids if records[uid]["losses"] < MAX_DOUBLE_ELIMINATION_LOSSES]

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    async def record_result(self, tournament_id: str, match_id: str, winner_id: str,
                            score1: float = None, score2: float = None) -> Tournament:
        """
        Record a bracket match result and advance the bracket.

        Raises:
            TournamentNotFoundError: Unknown tournament or match
            InvalidStateError: Tournament not active or match not ready
            NotParticipantError: Winner is not in the match
        """
        async with self.locks.hold(tournament_id):
            tournament = await self._load(tournament_id)
            if tournament.status != TournamentStatus.ACTIVE:
                raise InvalidStateError(f"Tournament '{tournament_id}' is not active (status={tournament.status.value})",
                                        "❌ This tournament is not in progress.")
            match = tournament.find_match(match_id)
            if match is None:
                raise TournamentNotFoundError(f"{tournament_id}/{match_id}")
            if not match.is_ready:
                raise InvalidStateError(f"Match '{match_id}' is not awaiting a result",
                                        "❌ That match is not awaiting a result.")
            if winner_id not in match.user_ids:
                raise NotParticipantError(winner_id, match_id)

            match.winner_id = winner_id
            match.score1 = score1
            match.score2 = score2
            self.logger.info(f"Tournament {tournament_id} match {match_id}: winner {winner_id}")

            events: List[DomainEvent] = []
            await self._advance(tournament, match, events)
            await self._save_and_publish(tournament, events)
            return tournament

    async def _advance(self, tournament: Tournament, match: BracketMatch, events: List[DomainEvent]):
        tournament_format = tournament.tournament_format
        if tournament_format == TournamentFormat.SINGLE_ELIMINATION:
            self._advance_winner(tournament.bracket, match)
            final = tournament.bracket[-1].matches[0]
            if final.is_decided:
                await self._complete(tournament, events)
            else:
                self._update_standings(tournament)
            return

        # Round robin rounds may be played out of order
        if not all(bracket_round.is_complete for bracket_round in tournament.bracket):
            self._update_standings(tournament)
            return

        last_round = tournament.bracket[-1].round_number
        finished = last_round >= tournament.total_rounds
        if tournament_format == TournamentFormat.DOUBLE_ELIMINATION and len(self._alive(tournament)) <= 1:
            finished = True
        if finished:
            await self._complete(tournament, events)
            return

        tournament.bracket.append(self._pair_next_round(tournament, last_round + 1))
        self._update_standings(tournament)

    def _update_standings(self, tournament: Tournament):
        records = self._records(tournament)
        seeds = self.seed(tournament)
        seed_of = {user_id: seed for seed, user_id in enumerate(seeds, start=1)}

        if tournament.tournament_format == TournamentFormat.SINGLE_ELIMINATION:
            def key(uid):
                still_in = records[uid]["losses"] == 0
                return (not still_in, -records[uid]["last_loss_round"], -records[uid]["wins"],
                        -records[uid]["points"], seed_of[uid])
        elif tournament.tournament_format == TournamentFormat.DOUBLE_ELIMINATION:
            def key(uid):
                return (records[uid]["losses"] >= MAX_DOUBLE_ELIMINATION_LOSSES, records[uid]["losses"],
                        -records[uid]["wins"], -records[uid]["points"], seed_of[uid])
        else:
            def key(uid):
                return (-records[uid]["wins"], records[uid]["losses"], -records[uid]["points"], seed_of[uid])

        tournament.standings = [
            TournamentStanding(
                user_id=uid, rank=rank,
                wins=int(records[uid]["wins"]), losses=int(records[uid]["losses"]),
                points_for=records[uid]["points"],
            )
            for rank, uid in enumerate(sorted(seeds, key=key), start=1)
        ]

    async def _complete(self, tournament: Tournament, events: List[DomainEvent]):
        self._update_standings(tournament)
        if tournament.tournament_format == TournamentFormat.SINGLE_ELIMINATION:
            tournament.winner = tournament.bracket[-1].matches[0].winner_id
        else:
            tournament.winner = tournament.standings[0].user_id
        tournament.status = TournamentStatus.COMPLETED
        tournament.completed_at = self.clock()

        await self.prize_distributor.award(
            tournament.id, [(s.user_id, s.rank) for s in tournament.standings], tournament.prizes
        )
        events.append(self._event(
            DomainEventType.TOURNAMENT_COMPLETED, tournament,
            winner=tournament.winner,
            standings=[s.to_dict() for s in tournament.standings],
        ))
        self.logger.info(f"Tournament {tournament.id} completed, winner {tournament.winner}")

    # ------------------------------------------------------------------
    # Battles
    # ------------------------------------------------------------------

    async def start_round(self, tournament_id: str) -> List[Battle]:
        """
        Create a two-seat tournament battle for every ready match of the
        current bracket round that has none yet.

        Returns:
            Battles created by this call
        """
        created: List[Battle] = []
        async with self.locks.hold(tournament_id):
            tournament = await self._load(tournament_id)
            if tournament.status != TournamentStatus.ACTIVE:
                raise InvalidStateError(f"Tournament '{tournament_id}' is not active (status={tournament.status.value})",
                                        "❌ This tournament is not in progress.")
            bracket_round = tournament.current_round
            if bracket_round is None:
                return created

            schedule_range = None
            if bracket_round.round_number <= len(tournament.schedule.rounds):
                schedule_range = tournament.schedule.rounds[bracket_round.round_number - 1]

            for match in bracket_round.matches:
                if not match.is_ready or match.battle_id is not None:
                    continue
                settings = BattleSettings(salary_cap=Config.DEFAULT_SALARY_CAP, max_participants=2)
                if schedule_range is not None:
                    settings.round_duration_hours = (schedule_range.end - schedule_range.start).total_seconds() / 3600
                try:
                    battle = await self.battle_ops.create_battle(
                        match.slot1.user_id, BattleType.TOURNAMENT, BattleFormat.CLASSIC,
                        settings=settings, tournament_id=tournament.id, bracket_match_id=match.id,
                    )
                    match.battle_id = battle.id
                    battle = await self.battle_ops.join_battle(battle.id, match.slot2.user_id)
                except ArenaError as e:
                    self.logger.error(f"Could not create battle for {tournament_id}/{match.id}: {e}", exc_info=True)
                    continue
                created.append(battle)

            await self.store.put(tournament.id, tournament)

        self.logger.info(f"Tournament {tournament_id} round {bracket_round.round_number}: {len(created)} battle(s) created")
        return created

    async def on_battle_completed(self, battle: Battle):
        """Record a finished tournament battle into its bracket"""
        if battle.tournament_id is None or battle.bracket_match_id is None:
            return
        tournament = await self.store.get(battle.tournament_id)
        if tournament is None:
            self.logger.warning(f"Battle {battle.id} references missing tournament {battle.tournament_id}")
            return
        match = tournament.find_match(battle.bracket_match_id)
        if match is None or match.is_decided:
            return

        scores = {p.user_id: p.score for p in battle.participants}
        await self.record_result(
            tournament.id, match.id, battle.winner,
            score1=scores.get(match.slot1.user_id), score2=scores.get(match.slot2.user_id),
        )

    async def get_tournament(self, tournament_id: str) -> Tournament:
        """
        Raises:
            TournamentNotFoundError: Unknown tournament
        """
        return await self._load(tournament_id)

    async def list_tournaments(self, status: TournamentStatus = None) -> List[Tournament]:
        tournaments = await self.store.list_all()
        return [t for t in tournaments if status is None or t.status == status]
