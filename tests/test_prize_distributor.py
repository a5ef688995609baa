"""Tests for prize tables and reward delivery."""

import asyncio

import pytest

from arena.data_models.battle import BattleType
from arena.data_models.rewards import PrizeTableEntry, RewardBundle
from arena.database.store import MemoryStore
from arena.operations.prize_distributor import PrizeDistributor
from arena.services.collaborators import LedgerRewardsSink, RewardsSink
from arena.utils.exceptions import ArenaError


class FlakySink(RewardsSink):
    """Fails until ``failures`` grants have been refused"""

    def __init__(self, failures):
        self.failures = failures
        self.ledger = LedgerRewardsSink()

    async def grant(self, user_id, bundle):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("rewards service down")
        await self.ledger.grant(user_id, bundle)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def instant(_delay):
        return None
    monkeypatch.setattr("arena.services.base.asyncio.sleep", instant)


class TestPrizeTableEntry:

    @pytest.mark.parametrize("position,covered,uncovered", [
        (1, [1], [2]),
        ("2", [2], [1, 3]),
        ("top8", [1, 8], [9]),
        ("3-4", [3, 4], [2, 5]),
        ("all", [1, 50], []),
    ])
    def test_covers(self, position, covered, uncovered):
        entry = PrizeTableEntry(position, RewardBundle(xp=1))
        assert all(entry.covers(rank) for rank in covered)
        assert not any(entry.covers(rank) for rank in uncovered)

    @pytest.mark.parametrize("position", ["5-3", "best", "top"])
    def test_invalid_positions(self, position):
        with pytest.raises(ValueError):
            PrizeTableEntry(position, RewardBundle()).rank_range()


class TestAward:

    def test_first_matching_entry_only(self):
        sink = LedgerRewardsSink()
        distributor = PrizeDistributor(MemoryStore(), sink)
        table = distributor.battle_prize_table(BattleType.QUICK)

        grants = asyncio.run(distributor.award("battle_1", [("alice", 1), ("bob", 2)], table))

        assert [(g.user_id, g.rank) for g in grants] == [("alice", 1), ("bob", 2)]
        assert sink.balance("alice")["gems"] == 10 and sink.balance("alice")["xp"] == 100
        assert sink.balance("bob")["gems"] == 0 and sink.balance("bob")["xp"] == 100

    def test_unmatched_ranks_get_nothing(self):
        sink = LedgerRewardsSink()
        distributor = PrizeDistributor(MemoryStore(), sink)
        table = distributor.battle_prize_table(BattleType.LADDER)

        grants = asyncio.run(distributor.award("battle_1", [("alice", 1), ("bob", 2)], table))
        assert [g.user_id for g in grants] == ["alice"]
        assert sink.balance("bob")["xp"] == 0

    def test_transient_failure_is_retried(self):
        sink = FlakySink(failures=2)
        distributor = PrizeDistributor(MemoryStore(), sink)
        table = [PrizeTableEntry(1, RewardBundle(gems=5))]

        grants = asyncio.run(distributor.award("battle_1", [("alice", 1)], table))
        assert grants[0].delivered
        assert sink.ledger.balance("alice")["gems"] == 5

    def test_undelivered_grant_stays_pending(self):
        sink = FlakySink(failures=3)
        distributor = PrizeDistributor(MemoryStore(), sink)
        table = [PrizeTableEntry(1, RewardBundle(gems=5))]

        async def play():
            grants = await distributor.award("battle_1", [("alice", 1)], table)
            redelivered = await distributor.retry_pending()
            again = await distributor.retry_pending()
            return grants, redelivered, again, await distributor.get_grants(user_id="alice")

        grants, redelivered, again, stored = asyncio.run(play())
        assert grants[0].delivered is False
        assert (redelivered, again) == (1, 0)
        assert stored[0].delivered is True
        assert sink.ledger.balance("alice")["gems"] == 5

    def test_get_grants_filters(self):
        distributor = PrizeDistributor(MemoryStore(), LedgerRewardsSink())
        table = [PrizeTableEntry("all", RewardBundle(xp=10))]

        async def play():
            await distributor.award("battle_1", [("alice", 1), ("bob", 2)], table)
            await distributor.award("battle_2", [("alice", 1)], table)
            return (await distributor.get_grants(user_id="alice"),
                    await distributor.get_grants(source_id="battle_1"))

        by_user, by_source = asyncio.run(play())
        assert len(by_user) == 2
        assert {g.user_id for g in by_source} == {"alice", "bob"}


class RejectingSink(RewardsSink):
    def __init__(self):
        self.calls = 0

    async def grant(self, user_id, bundle):
        self.calls += 1
        raise ArenaError(f"{user_id} is banned from rewards")


def test_domain_errors_are_not_retried():
    sink = RejectingSink()
    distributor = PrizeDistributor(MemoryStore(), sink)

    grants = asyncio.run(distributor.award("battle_1", [("alice", 1)],
                                           [PrizeTableEntry(1, RewardBundle(gems=5))]))
    assert grants[0].delivered is False
    assert sink.calls == 1


def test_awarding_a_source_twice_grants_once():
    sink = LedgerRewardsSink()
    distributor = PrizeDistributor(MemoryStore(), sink)
    table = distributor.battle_prize_table(BattleType.QUICK)

    async def play():
        first = await distributor.award("battle_1", [("alice", 1), ("bob", 2)], table)
        second = await distributor.award("battle_1", [("alice", 1), ("bob", 2)], table)
        return first, second, await distributor.get_grants(source_id="battle_1")

    first, second, stored = asyncio.run(play())
    assert [g.id for g in second] == [g.id for g in first]
    assert len(stored) == 2
    assert sink.balance("alice")["gems"] == 10
    assert sink.balance("bob")["xp"] == 100
