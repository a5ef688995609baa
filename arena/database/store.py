"""
Keyed document stores for domain objects.

Business logic only talks to the ``Store`` interface; ``MemoryStore`` backs
tests and single-process runs, ``SqlStore`` persists JSON documents through
the async SQLAlchemy session factory. Stores do not lock: per-battle and
per-user atomicity is provided by the callers' keyed locks.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select

from arena.data_models.battle import Battle
from arena.data_models.ladder import LadderRank, RatingChange
from arena.data_models.rewards import RewardGrant
from arena.data_models.tournament import Tournament
from arena.database.models import (
    BattleRecord, TournamentRecord, LadderRankRecord, RatingHistoryRecord, RewardGrantRecord
)
from arena.services.base import BaseService

T = TypeVar('T')


class Store(ABC, Generic[T]):
    """get/put/delete keyed by id"""

    @abstractmethod
    async def get(self, key: str) -> Optional[T]:
        ...

    @abstractmethod
    async def put(self, key: str, value: T) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def list_all(self) -> List[T]:
        ...


class MemoryStore(Store[T]):
    """
    In-process store.

    Values are deep-copied on the way in and out so a half-finished
    transition on a caller's copy is never visible to other readers.
    """

    def __init__(self):
        self._items: Dict[str, T] = {}

    async def get(self, key: str) -> Optional[T]:
        value = self._items.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, key: str, value: T) -> None:
        self._items[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    async def list_all(self) -> List[T]:
        return [copy.deepcopy(value) for value in self._items.values()]

    def __len__(self):
        return len(self._items)


class SqlStore(BaseService, Store[T]):
    """
    Store over one table of ``(id, payload JSON, indexed columns...)`` rows.

    Args:
        session_factory: Async session factory from Database
        record_class: Declarative model with ``id`` and ``payload`` columns
        from_dict: Rebuilds the domain object from its payload
        columns: Maps a domain object to the extra scalar columns of its row
    """

    def __init__(self, session_factory, record_class: Type, from_dict: Callable[[Dict[str, Any]], T],
                 columns: Callable[[T], Dict[str, Any]] = None):
        super().__init__(session_factory)
        self.record_class = record_class
        self.from_dict = from_dict
        self.columns = columns or (lambda value: {})

    async def get(self, key: str) -> Optional[T]:
        async with self.get_session() as session:
            record = await session.get(self.record_class, key)
            return self.from_dict(record.payload) if record else None

    async def put(self, key: str, value: T) -> None:
        async def _put():
            async with self.get_session() as session:
                await session.merge(
                    self.record_class(id=key, payload=value.to_dict(), **self.columns(value))
                )
        await self.execute_with_retry(_put)

    async def delete(self, key: str) -> bool:
        async with self.get_session() as session:
            record = await session.get(self.record_class, key)
            if record is None:
                return False
            await session.delete(record)
            return True

    async def list_all(self) -> List[T]:
        async with self.get_session() as session:
            result = await session.execute(select(self.record_class))
            return [self.from_dict(record.payload) for record in result.scalars().all()]


def _naive(value):
    # SQLite DateTime columns drop tzinfo
    return value.replace(tzinfo=None) if value else None


def battle_store(session_factory) -> SqlStore:
    return SqlStore(
        session_factory, BattleRecord, Battle.from_dict,
        lambda battle: {
            "battle_type": battle.battle_type.value,
            "status": battle.status.value,
            "creator_id": battle.creator_id,
            "tournament_id": battle.tournament_id,
            "created_at": _naive(battle.created_at),
            "completed_at": _naive(battle.completed_at),
        },
    )


def tournament_store(session_factory) -> SqlStore:
    return SqlStore(
        session_factory, TournamentRecord, Tournament.from_dict,
        lambda tournament: {
            "name": tournament.name,
            "tournament_format": tournament.tournament_format.value,
            "status": tournament.status.value,
            "size": tournament.size,
            "created_at": _naive(tournament.created_at),
        },
    )


def ladder_store(session_factory) -> SqlStore:
    return SqlStore(
        session_factory, LadderRankRecord, LadderRank.from_dict,
        lambda rank: {
            "rating": rank.rating,
            "tier": rank.tier.value,
            "wins": rank.wins,
            "losses": rank.losses,
            "updated_at": _naive(rank.updated_at),
        },
    )


def rating_history_store(session_factory) -> SqlStore:
    return SqlStore(
        session_factory, RatingHistoryRecord, RatingChange.from_dict,
        lambda change: {
            "winner_id": change.winner_id,
            "loser_id": change.loser_id,
            "battle_id": change.battle_id,
            "delta": change.delta,
            "k_factor": change.k_factor,
            "recorded_at": _naive(change.recorded_at),
        },
    )


def reward_grant_store(session_factory) -> SqlStore:
    return SqlStore(
        session_factory, RewardGrantRecord, RewardGrant.from_dict,
        lambda grant: {
            "user_id": grant.user_id,
            "source_id": grant.source_id,
            "rank": grant.rank,
            "delivered": grant.delivered,
            "created_at": _naive(grant.created_at),
        },
    )
