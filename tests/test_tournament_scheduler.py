"""Tests for tournament registration, brackets and result advancement."""

import asyncio
from datetime import timedelta

import pytest

from arena.data_models.battle import BattleStatus, BattleType
from arena.data_models.ladder import LadderRank
from arena.data_models.rewards import PrizeTableEntry, RewardBundle
from arena.data_models.tournament import EntryRequirements, TournamentStatus
from arena.services.event_bus import DomainEventType
from arena.utils.exceptions import (
    AlreadyJoinedError, InvalidStateError, NotParticipantError, RegistrationClosedError,
    RequirementsNotMetError, TournamentFullError
)

from conftest import START

PRIZES = [
    PrizeTableEntry(1, RewardBundle(gems=100, badges=["tournament_winner"], title="champion")),
    PrizeTableEntry(2, RewardBundle(gems=50)),
    PrizeTableEntry("all", RewardBundle(xp=25)),
]


def users(count):
    return [f"u{i}" for i in range(1, count + 1)]


async def create_and_fill(service, tournament_format, size, entrants=None, **kwargs):
    tournament = await service.create_tournament("Cup", tournament_format, size, PRIZES, **kwargs)
    for user_id in entrants if entrants is not None else users(size):
        tournament = await service.join_tournament(tournament.id, user_id)
    return tournament


def match_users(tournament, match_id):
    match = tournament.find_match(match_id)
    return [slot.user_id if slot else None for slot in (match.slot1, match.slot2)]


class TestCreate:

    def test_rounds_and_schedule(self, service):
        tournament = asyncio.run(service.create_tournament("Cup", "single_elimination", 8, PRIZES))

        assert tournament.status == TournamentStatus.REGISTRATION
        assert tournament.total_rounds == 3
        schedule = tournament.schedule
        assert schedule.registration.start == START
        assert schedule.registration.end == START + timedelta(days=7)
        assert len(schedule.rounds) == 3
        assert schedule.rounds[0].start == START + timedelta(days=8)
        assert schedule.rounds[1].start == schedule.rounds[0].end + timedelta(days=1)

    def test_round_robin_rounds(self, service):
        tournament = asyncio.run(service.create_tournament("League", "round_robin", 5, PRIZES))
        assert tournament.total_rounds == 5

    def test_too_small(self, service):
        with pytest.raises(ValueError):
            asyncio.run(service.create_tournament("Solo", "swiss", 1, PRIZES))


class TestRegistration:

    def test_full_field_starts(self, service, published):
        tournament = asyncio.run(create_and_fill(service, "single_elimination", 8))

        assert tournament.status == TournamentStatus.ACTIVE
        assert len(tournament.bracket) == 3
        assert len(tournament.bracket[0].matches) == 4
        assert DomainEventType.TOURNAMENT_STARTED in [e.event_type for e in published]

    def test_ninth_entrant_rejected(self, service):
        async def play():
            tournament = await create_and_fill(service, "single_elimination", 8)
            await service.join_tournament(tournament.id, "u9")

        with pytest.raises(TournamentFullError):
            asyncio.run(play())

    def test_duplicate_join(self, service):
        async def play():
            tournament = await service.create_tournament("Cup", "swiss", 4, PRIZES)
            await service.join_tournament(tournament.id, "u1")
            await service.join_tournament(tournament.id, "u1")

        with pytest.raises(AlreadyJoinedError):
            asyncio.run(play())

    def test_registration_window(self, service, clock):
        async def play():
            tournament = await service.create_tournament("Cup", "swiss", 4, PRIZES)
            clock.advance(days=8)
            await service.join_tournament(tournament.id, "u1")

        with pytest.raises(RegistrationClosedError):
            asyncio.run(play())

    def test_invite_only(self, service):
        requirements = EntryRequirements(invite_only=True, invited_user_ids=["u1"])

        async def play():
            tournament = await service.create_tournament("Cup", "swiss", 4, PRIZES,
                                                         entry_requirements=requirements)
            joined = await service.join_tournament(tournament.id, "u1")
            try:
                await service.join_tournament(tournament.id, "u2")
            except RequirementsNotMetError:
                return joined, True
            return joined, False

        joined, rejected = asyncio.run(play())
        assert joined.entrant_ids == ["u1"]
        assert rejected

    def test_min_rating(self, service):
        requirements = EntryRequirements(min_rating=1300)

        async def play():
            await service.ladder.ranks.put("pro", LadderRank(user_id="pro", rating=1350))
            tournament = await service.create_tournament("Cup", "swiss", 4, PRIZES,
                                                         entry_requirements=requirements)
            joined = await service.join_tournament(tournament.id, "pro")
            try:
                await service.join_tournament(tournament.id, "rookie")
            except RequirementsNotMetError:
                return joined
            return None

        joined = asyncio.run(play())
        assert joined is not None
        assert joined.registrations[0].rating == 1350

    def test_start_early(self, service):
        async def play():
            tournament = await create_and_fill(service, "single_elimination", 8, entrants=users(3))
            return await service.start_tournament(tournament.id)

        tournament = asyncio.run(play())
        assert tournament.status == TournamentStatus.ACTIVE
        assert tournament.total_rounds == 2

    def test_start_needs_two(self, service):
        async def play():
            tournament = await create_and_fill(service, "swiss", 4, entrants=["u1"])
            await service.start_tournament(tournament.id)

        with pytest.raises(InvalidStateError):
            asyncio.run(play())

    def test_check_tournaments_after_window(self, service, clock):
        async def play():
            tournament = await create_and_fill(service, "swiss", 8, entrants=users(2))
            before = await service.tournaments.check_tournaments()
            clock.advance(days=8)
            after = await service.tournaments.check_tournaments()
            return tournament.id, before, after

        tournament_id, before, after = asyncio.run(play())
        assert (before, after) == (0, 1)
        assert asyncio.run(service.get_tournament(tournament_id)).status == TournamentStatus.ACTIVE


class TestSeeding:

    def test_rating_seeds_first(self, service):
        async def play():
            await service.ladder.ranks.put("u4", LadderRank(user_id="u4", rating=1500))
            return await create_and_fill(service, "single_elimination", 4)

        tournament = asyncio.run(play())
        assert match_users(tournament, "r1_m1") == ["u4", "u3"]
        assert match_users(tournament, "r1_m2") == ["u1", "u2"]


class TestSingleElimination:

    def test_bracket_to_champion(self, service, rewards):
        async def play():
            tournament = await create_and_fill(service, "single_elimination", 4)
            first_round = [match_users(tournament, "r1_m1"), match_users(tournament, "r1_m2")]
            await service.record_tournament_result(tournament.id, "r1_m1", "u1", 110, 90)
            middle = await service.record_tournament_result(tournament.id, "r1_m2", "u3", 95, 100)
            final = await service.record_tournament_result(tournament.id, "r2_m1", "u3", 95, 120)
            return first_round, middle, final

        first_round, middle, final = asyncio.run(play())

        assert first_round == [["u1", "u4"], ["u2", "u3"]]
        assert match_users(middle, "r2_m1") == ["u1", "u3"]
        assert middle.status == TournamentStatus.ACTIVE

        assert final.status == TournamentStatus.COMPLETED
        assert final.winner == "u3"
        assert [s.user_id for s in final.standings] == ["u3", "u1", "u2", "u4"]
        assert rewards.balance("u3")["gems"] == 100
        assert rewards.balance("u3")["titles"] == ["champion"]
        assert rewards.balance("u1")["gems"] == 50
        assert rewards.balance("u4")["xp"] == 25

    def test_byes_advance_top_seeds(self, service):
        tournament = asyncio.run(create_and_fill(service, "single_elimination", 6))

        assert tournament.find_match("r1_m1").is_bye
        assert tournament.find_match("r1_m3").is_bye
        assert match_users(tournament, "r2_m1")[0] == "u1"
        assert match_users(tournament, "r2_m2")[0] == "u2"
        assert match_users(tournament, "r1_m2") == ["u4", "u5"]

    def test_result_validation(self, service):
        tournament = asyncio.run(create_and_fill(service, "single_elimination", 4))

        with pytest.raises(NotParticipantError):
            asyncio.run(service.record_tournament_result(tournament.id, "r1_m1", "u2"))
        with pytest.raises(InvalidStateError):
            asyncio.run(service.record_tournament_result(tournament.id, "r2_m1", "u1"))

    def test_cannot_record_twice(self, service):
        async def play():
            tournament = await create_and_fill(service, "single_elimination", 4)
            await service.record_tournament_result(tournament.id, "r1_m1", "u1")
            await service.record_tournament_result(tournament.id, "r1_m1", "u4")

        with pytest.raises(InvalidStateError):
            asyncio.run(play())


class TestRoundRobin:

    def test_out_of_order_results(self, service):
        async def play():
            tournament = await create_and_fill(service, "round_robin", 4)
            match_ids = [m.id for r in reversed(tournament.bracket) for m in r.matches]
            for match_id in match_ids:
                winner = min(tournament.find_match(match_id).user_ids)
                tournament = await service.record_tournament_result(tournament.id, match_id, winner)
            return tournament

        tournament = asyncio.run(play())
        assert len(tournament.bracket) == 3
        assert tournament.status == TournamentStatus.COMPLETED
        assert [s.user_id for s in tournament.standings] == ["u1", "u2", "u3", "u4"]
        assert [s.wins for s in tournament.standings] == [3, 2, 1, 0]


class TestSwiss:

    def test_rounds_paired_by_record(self, service):
        async def play():
            tournament = await create_and_fill(service, "swiss", 4)
            opening = [match_users(tournament, "r1_m1"), match_users(tournament, "r1_m2")]
            await service.record_tournament_result(tournament.id, "r1_m1", "u1")
            second = await service.record_tournament_result(tournament.id, "r1_m2", "u3")
            pairings = [match_users(second, "r2_m1"), match_users(second, "r2_m2")]
            await service.record_tournament_result(tournament.id, "r2_m1", "u1")
            final = await service.record_tournament_result(tournament.id, "r2_m2", "u2")
            return opening, pairings, final

        opening, pairings, final = asyncio.run(play())
        assert opening == [["u1", "u2"], ["u3", "u4"]]
        assert pairings == [["u1", "u3"], ["u2", "u4"]]
        assert final.status == TournamentStatus.COMPLETED
        assert final.winner == "u1"

    def test_odd_field_gets_bye(self, service):
        tournament = asyncio.run(create_and_fill(service, "swiss", 5))
        byes = [m for m in tournament.bracket[0].matches if m.is_bye]
        assert len(byes) == 1
        assert byes[0].winner_id == "u5"


class TestDoubleElimination:

    def test_loss_groups(self, service):
        async def play():
            tournament = await create_and_fill(service, "double_elimination", 4)
            await service.record_tournament_result(tournament.id, "r1_m1", "u1")
            second = await service.record_tournament_result(tournament.id, "r1_m2", "u3")
            pairings = [match_users(second, "r2_m1"), match_users(second, "r2_m2")]
            await service.record_tournament_result(tournament.id, "r2_m1", "u1")
            final = await service.record_tournament_result(tournament.id, "r2_m2", "u2")
            return pairings, final

        pairings, final = asyncio.run(play())
        assert pairings == [["u1", "u3"], ["u2", "u4"]]
        assert final.winner == "u1"
        assert [s.user_id for s in final.standings] == ["u1", "u2", "u3", "u4"]


class TestTournamentBattles:

    def test_battle_completion_advances_bracket(self, service, feed, clock, published):
        feed.set_points("qb1", 10.0)
        feed.set_points("qb2", 10.0)

        async def play():
            tournament = await create_and_fill(service, "single_elimination", 2)
            battles = await service.start_tournament_round(tournament.id)
            again = await service.start_tournament_round(tournament.id)
            battle = battles[0]
            await service.use_power_up(battle.id, "u2", "boost_captain")
            clock.past_round_end()
            finished = await service.update_battle_scores(battle.id)
            return battles, again, finished, await service.get_tournament(tournament.id)

        battles, again, battle, tournament = asyncio.run(play())

        assert len(battles) == 1 and again == []
        assert battle.battle_type == BattleType.TOURNAMENT
        assert battle.tournament_id == tournament.id
        assert battle.settings.max_participants == 2
        assert battle.settings.round_duration_hours == pytest.approx(168)
        assert battle.status == BattleStatus.COMPLETED and battle.winner == "u2"

        match = tournament.find_match("r1_m1")
        assert match.battle_id == battle.id
        assert match.winner_id == "u2"
        assert match.score1 == pytest.approx(20) and match.score2 == pytest.approx(60)
        assert tournament.status == TournamentStatus.COMPLETED
        assert tournament.winner == "u2"
        assert DomainEventType.TOURNAMENT_COMPLETED in [e.event_type for e in published]

        grants = asyncio.run(service.get_reward_grants(source_id=tournament.id))
        assert {(g.user_id, g.rank) for g in grants} == {("u2", 1), ("u1", 2)}

    def test_start_round_requires_active(self, service):
        async def play():
            tournament = await service.create_tournament("Cup", "swiss", 4, PRIZES)
            await service.start_tournament_round(tournament.id)

        with pytest.raises(InvalidStateError):
            asyncio.run(play())
