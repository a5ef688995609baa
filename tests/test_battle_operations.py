"""Tests for the battle lifecycle: joining, play, rounds and completion."""

import asyncio

import pytest

from arena.data_models.battle import BattleEventType, BattleSettings, BattleStatus
from arena.database.store import MemoryStore
from arena.services.battle_service import BattleService
from arena.services.event_bus import DomainEventType
from arena.utils.exceptions import (
    AlreadyStartedError, BattleNotFoundError, CapacityExceededError, InvalidStateError,
    NotActiveError, NotParticipantError, OnCooldownError, PowerUpsDisabledError,
    SwapLimitExceededError
)

from conftest import ALTERNATE_LINEUP, make_roster


def alternate_roster():
    return make_roster(ALTERNATE_LINEUP, captain_id="qb2", vice_captain_id="rb4")


async def start_quick(service, battle_type="quick", settings=None):
    """Alice submits the alternate roster, Bob joins and gets the default one"""
    battle = await service.create_battle("alice", battle_type, "classic", settings=settings)
    await service.submit_roster(battle.id, "alice", alternate_roster())
    return await service.join_battle(battle.id, "bob")


def types_of(events):
    return [event.event_type for event in events]


class TestQuickBattle:

    def test_second_join_starts_play(self, service):
        battle = asyncio.run(start_quick(service))

        assert battle.status == BattleStatus.ACTIVE
        assert battle.current_round == 1 and battle.total_rounds == 1
        assert battle.get_participant("bob").roster.captain_id == "qb1"
        assert len(battle.rounds[0].matchups) == 1

    def test_full_flow_to_completion(self, service, feed, clock, rewards, social, published):
        feed.set_points("qb2", 30.0)

        async def play():
            battle = await start_quick(service)
            await service.update_battle_scores(battle.id)
            clock.past_round_end()
            return await service.update_battle_scores(battle.id)

        battle = asyncio.run(play())

        assert battle.status == BattleStatus.COMPLETED
        assert battle.winner == "alice"
        assert battle.get_participant("alice").score == pytest.approx(60)
        assert [p.rank for p in battle.participants] == [1, 2]
        assert battle.rounds[0].matchups[0].winner_id == "alice"

        assert rewards.balance("alice")["gems"] == 10
        assert rewards.balance("alice")["xp"] == 100
        assert rewards.balance("bob") == {"gems": 0, "xp": 100, "badges": [], "titles": [], "items": []}

        challenge = f"battle_{battle.id}"
        assert sorted(social.updates) == [
            (challenge, "alice", "h2h_battle", 1),
            (challenge, "bob", "h2h_battle", 1),
        ]

        kinds = types_of(published)
        assert kinds[0] == DomainEventType.BATTLE_CREATED
        assert kinds.index(DomainEventType.BATTLE_STARTED) < kinds.index(DomainEventType.ROUND_COMPLETED)
        assert kinds[-1] == DomainEventType.BATTLE_COMPLETED
        assert DomainEventType.LADDER_UPDATED not in kinds

    def test_third_join_rejected(self, service):
        async def play():
            battle = await start_quick(service)
            await service.join_battle(battle.id, "carol")

        with pytest.raises(AlreadyStartedError) as exc_info:
            asyncio.run(play())
        assert isinstance(exc_info.value, InvalidStateError)

    def test_draw_has_no_matchup_winner(self, service, clock):
        async def play():
            battle = await service.create_battle("alice", "quick", "classic")
            await service.join_battle(battle.id, "bob")
            clock.past_round_end()
            return await service.update_battle_scores(battle.id)

        battle = asyncio.run(play())
        matchup = battle.rounds[0].matchups[0]

        assert matchup.winner_id is None and matchup.is_draw
        assert battle.rounds[0].has_event(BattleEventType.DRAW)
        assert battle.winner == "alice"

    def test_round_not_over_keeps_active(self, service, feed):
        feed.set_points("qb2", 30.0)

        async def play():
            battle = await start_quick(service)
            return await service.update_battle_scores(battle.id)

        battle = asyncio.run(play())
        assert battle.status == BattleStatus.ACTIVE
        assert battle.rounds[0].matchups[0].player1_score == pytest.approx(60)

    def test_feed_outage_defers_completion(self, service, feed, clock):
        async def play():
            battle = await start_quick(service)
            clock.past_round_end()
            feed.available = False
            deferred = await service.update_battle_scores(battle.id)
            feed.available = True
            return deferred, await service.update_battle_scores(battle.id)

        deferred, finished = asyncio.run(play())
        assert deferred.status == BattleStatus.ACTIVE
        assert finished.status == BattleStatus.COMPLETED

    def test_history(self, service, clock):
        async def play():
            battle = await start_quick(service)
            clock.past_round_end()
            await service.update_battle_scores(battle.id)
            return (await service.get_battle_history("bob"),
                    await service.get_battle_history("bob", battle_type="ladder"))

        history, ladder_only = asyncio.run(play())
        assert len(history) == 1
        assert ladder_only == []


class TestLadderBattle:

    def test_two_player_ladder_updates_ratings(self, service, feed, clock, published):
        feed.set_points("qb2", 30.0)

        async def play():
            battle = await start_quick(service, "ladder", BattleSettings(max_participants=2))
            clock.past_round_end()
            await service.update_battle_scores(battle.id)
            return await service.get_ladder_rank("alice"), await service.get_ladder_rank("bob")

        alice, bob = asyncio.run(play())
        assert alice.rating > 1200 > bob.rating
        assert alice.rating + bob.rating == 2400
        assert alice.wins == 1 and bob.losses == 1
        assert DomainEventType.LADDER_UPDATED in types_of(published)

    def test_default_rosters_can_decide_a_ladder_battle(self, service, feed, clock, published):
        feed.set_points("qb2", 40.0)

        async def play():
            battle = await service.create_battle("alice", "ladder", "classic",
                                                 settings=BattleSettings(max_participants=2))
            started = await service.join_battle(battle.id, "bob")
            clock.past_round_end()
            finished = await service.update_battle_scores(battle.id)
            return started, finished, await service.get_ladder_rank("bob")

        started, finished, bob = asyncio.run(play())
        alice_ids = {p.id for p in started.get_participant("alice").roster.players}
        bob_ids = {p.id for p in started.get_participant("bob").roster.players}
        assert alice_ids != bob_ids
        assert started.get_participant("bob").roster.captain_id == "qb2"
        assert finished.winner == "bob"
        assert finished.rounds[0].matchups[0].winner_id == "bob"
        assert bob.rating > 1200 and bob.wins == 1
        assert DomainEventType.LADDER_UPDATED in types_of(published)

    def test_ladder_capacity_too_large(self, service):
        with pytest.raises(CapacityExceededError):
            asyncio.run(service.create_battle("alice", "ladder", "classic",
                                              settings=BattleSettings(max_participants=5)))


class TestMembership:

    def test_custom_battle_waits_below_capacity(self, service):
        async def play():
            battle = await service.create_battle("alice", "custom", "classic")
            await service.join_battle(battle.id, "bob")
            return await service.join_battle(battle.id, "carol")

        battle = asyncio.run(play())
        assert battle.status == BattleStatus.WAITING
        assert [p.user_id for p in battle.participants] == ["alice", "bob", "carol"]

    def test_start_needs_two(self, service):
        async def play():
            battle = await service.create_battle("alice", "custom", "classic")
            await service.start_battle(battle.id)

        with pytest.raises(InvalidStateError):
            asyncio.run(play())

    def test_start_is_idempotent(self, service):
        async def play():
            battle = await service.create_battle("alice", "custom", "classic")
            await service.join_battle(battle.id, "bob")
            first = await service.start_battle(battle.id)
            second = await service.start_battle(battle.id)
            return first, second

        first, second = asyncio.run(play())
        assert first.status == second.status == BattleStatus.ACTIVE
        assert first.started_at == second.started_at
        assert len(second.rounds) == 1

    def test_creator_leaving_hands_over(self, service):
        async def play():
            battle = await service.create_battle("alice", "custom", "classic")
            await service.join_battle(battle.id, "bob")
            return await service.leave_battle(battle.id, "alice")

        battle = asyncio.run(play())
        assert battle.creator_id == "bob"
        assert [p.user_id for p in battle.participants] == ["bob"]

    def test_last_leave_deletes(self, service):
        async def play():
            battle = await service.create_battle("alice", "custom", "classic")
            assert await service.leave_battle(battle.id, "alice") is None
            await service.get_battle(battle.id)

        with pytest.raises(BattleNotFoundError):
            asyncio.run(play())

    def test_leave_rules(self, service):
        async def leave_started():
            battle = await start_quick(service)
            await service.leave_battle(battle.id, "bob")

        async def leave_stranger():
            battle = await service.create_battle("alice", "custom", "classic")
            await service.leave_battle(battle.id, "mallory")

        with pytest.raises(AlreadyStartedError):
            asyncio.run(leave_started())
        with pytest.raises(NotParticipantError):
            asyncio.run(leave_stranger())

    def test_invites_publish(self, service, published):
        asyncio.run(service.create_battle("alice", "custom", "classic", invitees=["bob", "alice", "carol"]))
        invites = [e for e in published if e.event_type == DomainEventType.BATTLE_INVITE]
        assert [e.user_ids for e in invites] == [("bob",), ("carol",)]


class TestDraft:

    def test_draft_opens_after_every_roster(self, service):
        settings = BattleSettings(max_participants=2)

        async def play():
            battle = await service.create_battle("alice", "custom", "draft", settings=settings)
            drafting = await service.join_battle(battle.id, "bob")
            after_one = await service.submit_roster(battle.id, "alice", alternate_roster())
            after_two = await service.submit_roster(
                battle.id, "bob", make_roster(ALTERNATE_LINEUP, captain_id="wr4"))
            return drafting, after_one, after_two

        drafting, after_one, after_two = asyncio.run(play())
        assert drafting.status == BattleStatus.DRAFTING
        assert after_one.status == BattleStatus.DRAFTING
        assert after_two.status == BattleStatus.ACTIVE
        assert after_two.total_rounds == 3

    def test_no_roster_changes_once_active(self, service):
        async def play():
            battle = await start_quick(service)
            await service.submit_roster(battle.id, "bob", alternate_roster())

        with pytest.raises(AlreadyStartedError):
            asyncio.run(play())


class TestPowerUpsInBattle:

    def test_use_on_waiting_battle(self, service):
        async def play():
            battle = await service.create_battle("alice", "custom", "classic")
            await service.use_power_up(battle.id, "alice", "boost_captain")

        with pytest.raises(NotActiveError):
            asyncio.run(play())

    def test_disabled(self, service):
        async def play():
            battle = await start_quick(service, settings=BattleSettings(power_ups_enabled=False))
            await service.use_power_up(battle.id, "alice", "boost_captain")

        with pytest.raises(PowerUpsDisabledError):
            asyncio.run(play())

    def test_not_participant(self, service):
        async def play():
            battle = await start_quick(service)
            await service.use_power_up(battle.id, "mallory", "boost_captain")

        with pytest.raises(NotParticipantError):
            asyncio.run(play())

    def test_boost_changes_score_and_cooldown_persists(self, service, feed, published):
        feed.set_points("qb2", 10.0)

        async def play():
            battle = await start_quick(service)
            effect = await service.use_power_up(battle.id, "alice", "boost_captain")
            updated = await service.update_battle_scores(battle.id)
            try:
                await service.use_power_up(battle.id, "alice", "boost_captain")
            except OnCooldownError as e:
                return effect, updated, e
            return effect, updated, None

        effect, battle, cooldown = asyncio.run(play())
        assert effect.target_player_id == "qb2"
        assert battle.get_participant("alice").round_score(1) == pytest.approx(60)
        assert cooldown is not None and cooldown.rounds_remaining == 3
        assert DomainEventType.POWER_UP_USED in types_of(published)


class TestSubstitutions:

    def test_one_swap_per_round(self, service):
        async def play():
            battle = await service.create_battle("alice", "quick", "classic")
            await service.join_battle(battle.id, "bob")
            await service.substitute_player(battle.id, "alice", "rb1", "rb4")
            await service.substitute_player(battle.id, "alice", "rb2", "rb5")

        with pytest.raises(SwapLimitExceededError):
            asyncio.run(play())

    def test_wildcard_lifts_limit(self, service):
        async def play():
            battle = await service.create_battle("alice", "quick", "classic")
            await service.join_battle(battle.id, "bob")
            await service.use_power_up(battle.id, "alice", "wildcard_sub")
            await service.substitute_player(battle.id, "alice", "rb1", "rb4")
            return await service.substitute_player(battle.id, "alice", "rb2", "rb5")

        battle = asyncio.run(play())
        roster = battle.get_participant("alice").roster
        assert {"rb4", "rb5"} <= {p.id for p in roster.players}
        assert battle.get_participant("alice").swaps_used == {1: 2}


class TestMultiRound:

    def test_rounds_advance_until_total(self, service, clock):
        settings = BattleSettings(max_participants=3)

        async def play():
            battle = await service.create_battle("alice", "custom", "classic", settings=settings)
            await service.join_battle(battle.id, "bob")
            started = await service.join_battle(battle.id, "carol")
            snapshots = [started.status]
            for _ in range(3):
                clock.past_round_end()
                battle = await service.update_battle_scores(battle.id)
                snapshots.append(battle.status)
            return battle, snapshots

        battle, snapshots = asyncio.run(play())
        assert snapshots == [BattleStatus.ACTIVE, BattleStatus.ACTIVE, BattleStatus.ACTIVE,
                             BattleStatus.COMPLETED]
        assert len(battle.rounds) == 3
        assert all(len(r.matchups) == 1 for r in battle.rounds)
        assert battle.rounds[1].start_date > battle.rounds[0].start_date

    def test_check_active_battles(self, service, clock):
        async def play():
            first = await start_quick(service)
            second = await service.create_battle("carol", "quick", "classic")
            await service.join_battle(second.id, "dave")
            clock.past_round_end()
            checked = await service.check_active_battles()
            return checked, await service.list_battles(BattleStatus.COMPLETED)

        checked, completed = asyncio.run(play())
        assert checked == 2
        assert len(completed) == 2

    def test_completion_hook_runs_once(self, service, clock):
        seen = []

        async def hook(battle):
            seen.append(battle.id)

        service.battle_ops.completion_hooks.append(hook)

        async def play():
            battle = await start_quick(service)
            clock.past_round_end()
            await service.update_battle_scores(battle.id)
            await service.update_battle_scores(battle.id)
            return battle.id

        battle_id = asyncio.run(play())
        assert seen == [battle_id]


class FailingCompletionStore(MemoryStore):
    """Refuses the first write of a completed battle"""

    def __init__(self):
        super().__init__()
        self.refused = 0

    async def put(self, key, value):
        if value.status == BattleStatus.COMPLETED and self.refused == 0:
            self.refused += 1
            raise ConnectionError("battle store unavailable")
        await super().put(key, value)


class TestCompletionAtomicity:

    def test_lost_completion_write_never_pays_twice(self, feed, pool, social, rewards, clock):
        store = FailingCompletionStore()
        service = BattleService(feed, pool, social, rewards, battles=store, clock=clock)
        feed.set_points("qb2", 30.0)
        published = []
        service.event_bus.subscribe(published.append)

        async def play():
            battle = await start_quick(service, "ladder", BattleSettings(max_participants=2))
            clock.past_round_end()
            try:
                await service.update_battle_scores(battle.id)
            except ConnectionError:
                pass
            after_failure = await service.get_battle(battle.id)
            finished = await service.update_battle_scores(battle.id)
            return (after_failure, finished,
                    await service.prize_distributor.get_grants(source_id=battle.id),
                    await service.get_rating_history("alice"),
                    await service.get_ladder_rank("alice"))

        after_failure, finished, grants, history, alice = asyncio.run(play())
        assert store.refused == 1
        assert after_failure.status == BattleStatus.ACTIVE
        assert finished.status == BattleStatus.COMPLETED
        assert sorted((g.user_id, g.rank) for g in grants) == [("alice", 1)]
        assert rewards.balance("alice")["gems"] == 25
        assert len(history) == 1 and alice.wins == 1
        assert types_of(published).count(DomainEventType.BATTLE_COMPLETED) == 1
        assert len(social.updates) == 2

    def test_ladder_failure_leaves_battle_active(self, service, feed, clock, monkeypatch):
        feed.set_points("qb2", 30.0)

        async def broken(*args, **kwargs):
            raise ConnectionError("ladder store unavailable")

        async def play():
            battle = await start_quick(service, "ladder", BattleSettings(max_participants=2))
            clock.past_round_end()
            monkeypatch.setattr(service.ladder, "record_result", broken)
            with pytest.raises(ConnectionError):
                await service.update_battle_scores(battle.id)
            monkeypatch.undo()
            stuck = await service.get_battle(battle.id)
            return stuck, await service.update_battle_scores(battle.id)

        stuck, finished = asyncio.run(play())
        assert stuck.status == BattleStatus.ACTIVE
        assert finished.status == BattleStatus.COMPLETED
        assert finished.winner == "alice"


class TestPowerUpAtomicity:

    def test_concurrent_use_spends_once(self, service):
        async def play():
            battle = await start_quick(service)
            results = await asyncio.gather(
                service.use_power_up(battle.id, "alice", "boost_captain"),
                service.use_power_up(battle.id, "alice", "boost_captain"),
                return_exceptions=True,
            )
            return results, await service.get_battle(battle.id)

        results, stored = asyncio.run(play())
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1 and isinstance(errors[0], OnCooldownError)
        assert len(stored.get_participant("alice").power_ups_used) == 1
