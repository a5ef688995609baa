"""Tests for the memory and SQL document stores."""

import asyncio

import pytest

from arena.data_models.battle import Battle, BattleFormat, BattleStatus, BattleType
from arena.data_models.ladder import LadderRank
from arena.data_models.rewards import RewardBundle, RewardGrant
from arena.database.database import Database, to_async_url
from arena.database.store import (
    MemoryStore, battle_store, ladder_store, rating_history_store, reward_grant_store,
    tournament_store
)
from arena.services.battle_service import BattleService
from arena.services.collaborators import LedgerRewardsSink, StaticPlayerPool, StaticScoringFeed

from conftest import RecordingSocialSink, make_pool_players


def test_to_async_url():
    assert to_async_url("sqlite:///arena.db") == "sqlite+aiosqlite:///arena.db"
    assert to_async_url("postgresql+asyncpg://db/arena") == "postgresql+asyncpg://db/arena"


class TestMemoryStore:

    def test_values_are_copied(self):
        store = MemoryStore()
        battle = Battle(battle_type=BattleType.QUICK, battle_format=BattleFormat.CLASSIC, creator_id="alice")

        async def play():
            await store.put(battle.id, battle)
            battle.status = BattleStatus.ACTIVE
            stored = await store.get(battle.id)
            stored.creator_id = "mallory"
            return await store.get(battle.id)

        stored = asyncio.run(play())
        assert stored.status == BattleStatus.WAITING
        assert stored.creator_id == "alice"

    def test_delete(self):
        store = MemoryStore()

        async def play():
            await store.put("k", LadderRank(user_id="k"))
            return await store.delete("k"), await store.delete("k"), await store.list_all()

        assert asyncio.run(play()) == (True, False, [])


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'arena.db'}"


class TestSqlStore:

    def test_battle_document_round_trip(self, database_url):
        async def play():
            db = Database(database_url)
            await db.initialize()
            try:
                store = battle_store(db.async_session)
                battle = Battle(battle_type=BattleType.LADDER, battle_format=BattleFormat.DRAFT,
                                creator_id="alice", tournament_id=None)
                await store.put(battle.id, battle)
                battle.status = BattleStatus.DRAFTING
                await store.put(battle.id, battle)
                loaded = await store.get(battle.id)
                everything = await store.list_all()
                missing = await store.get("battle_missing")
                deleted = await store.delete(battle.id)
                return battle, loaded, everything, missing, deleted, await store.list_all()
            finally:
                await db.close()

        battle, loaded, everything, missing, deleted, after = asyncio.run(play())
        assert loaded.to_dict() == battle.to_dict()
        assert loaded.status == BattleStatus.DRAFTING
        assert len(everything) == 1
        assert missing is None
        assert deleted is True
        assert after == []

    def test_grants_and_ranks(self, database_url):
        async def play():
            db = Database(database_url)
            await db.initialize()
            try:
                grants = reward_grant_store(db.async_session)
                ranks = ladder_store(db.async_session)
                grant = RewardGrant(user_id="alice", rank=1, rewards=RewardBundle(gems=10, badges=["x"]),
                                    source_id="battle_1")
                await grants.put(grant.id, grant)
                await ranks.put("alice", LadderRank(user_id="alice", rating=1250))
                return grant, await grants.get(grant.id), await ranks.get("alice")
            finally:
                await db.close()

        grant, loaded_grant, rank = asyncio.run(play())
        assert loaded_grant.rewards.badges == ["x"]
        assert loaded_grant.created_at == grant.created_at
        assert rank.rating == 1250

    def test_service_over_sql_stores(self, database_url, clock):
        feed = StaticScoringFeed({"qb2": 12.0})
        rewards = LedgerRewardsSink()

        async def play():
            db = Database(database_url)
            await db.initialize()
            try:
                factory = db.async_session
                service = BattleService(
                    feed, StaticPlayerPool(make_pool_players()), RecordingSocialSink(), rewards,
                    battles=battle_store(factory),
                    tournaments=tournament_store(factory),
                    ladder_ranks=ladder_store(factory),
                    rating_history=rating_history_store(factory),
                    reward_grants=reward_grant_store(factory),
                    clock=clock,
                )
                battle = await service.create_battle("alice", "quick", "classic")
                await service.join_battle(battle.id, "bob")
                await service.use_power_up(battle.id, "bob", "boost_captain")
                clock.past_round_end()
                await service.check_active_battles()

                # A fresh store over the same database sees the finished battle
                reloaded = await battle_store(factory).get(battle.id)
                grants = await service.get_reward_grants(source_id=battle.id)
                return reloaded, grants
            finally:
                await db.close()

        battle, grants = asyncio.run(play())
        assert battle.status == BattleStatus.COMPLETED
        assert battle.winner == "bob"
        assert battle.get_participant("bob").round_scores == {1: pytest.approx(72.0)}
        assert {g.user_id for g in grants} == {"alice", "bob"}
        assert all(g.delivered for g in grants)
        assert rewards.balance("bob")["gems"] == 10


def test_database_lifecycle(database_url):
    async def play():
        db = Database(database_url)
        await db.initialize()
        engine = db.engine
        await db.initialize()
        same_engine = db.engine is engine
        await db.close()
        await db.close()
        return same_engine, db.is_initialized

    assert asyncio.run(play()) == (True, False)
    assert Database("postgresql+asyncpg://arena:secret@db/arena").safe_url == \
        "postgresql+asyncpg://arena:***@db/arena"
