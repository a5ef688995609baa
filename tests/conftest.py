"""Shared fixtures: a fixed clock, deterministic collaborators and a wired service."""

import os

os.environ.setdefault("LOG_TO_FILE", "false")

from datetime import datetime, timedelta, timezone

import pytest

from arena.config import Config
from arena.data_models.battle import BattlePlayer, BattleRoster, PlayerStatus
from arena.services.battle_service import BattleService
from arena.services.collaborators import (
    LedgerRewardsSink, PoolPlayer, SocialSink, StaticPlayerPool, StaticScoringFeed
)

START = datetime(2025, 9, 7, 17, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)

    def past_round_end(self):
        self.advance(hours=Config.ROUND_DURATION_HOURS + 1)


class RecordingSocialSink(SocialSink):
    def __init__(self):
        self.updates = []

    async def update_challenge_progress(self, challenge_key, user_id, event_type, increment):
        self.updates.append((challenge_key, user_id, event_type, increment))


# (position, count, best projection); projections fall by one per depth chart spot
POOL_LAYOUT = (
    ("QB", 3, 25.0),
    ("RB", 5, 20.0),
    ("WR", 6, 18.0),
    ("TE", 2, 12.0),
    ("DST", 2, 9.0),
    ("K", 2, 8.0),
)


def make_pool_players():
    players = []
    for position, count, best in POOL_LAYOUT:
        for depth in range(1, count + 1):
            players.append(PoolPlayer(
                id=f"{position.lower()}{depth}",
                name=f"{position} Player {depth}",
                position=position,
                team=f"T{depth}",
                salary=int(best * 300) - depth * 100,
                projected_points=best - depth + 1,
            ))
    return players


def make_roster(lineup, bench=(), captain_id=None, vice_captain_id=None):
    """
    Roster from ``(player_id, position, slot)`` tuples; salaries come from the
    fixture pool.
    """
    salaries = {p.id: p.salary for p in make_pool_players()}
    players = [
        BattlePlayer(id=pid, name=pid.upper(), position=position, slot=slot, salary=salaries.get(pid, 1000))
        for pid, position, slot in lineup
    ]
    bench_players = [
        BattlePlayer(id=pid, name=pid.upper(), position=position, slot="BENCH",
                     salary=salaries.get(pid, 1000), status=PlayerStatus.BENCHED)
        for pid, position in bench
    ]
    roster = BattleRoster(players=players, bench_players=bench_players,
                          captain_id=captain_id, vice_captain_id=vice_captain_id)
    roster.recalculate_salary()
    return roster


STANDARD_LINEUP = (
    ("qb1", "QB", "QB"),
    ("rb1", "RB", "RB"),
    ("rb2", "RB", "RB"),
    ("wr1", "WR", "WR"),
    ("wr2", "WR", "WR"),
    ("wr3", "WR", "WR"),
    ("te1", "TE", "TE"),
    ("rb3", "RB", "FLEX"),
    ("dst1", "DST", "DST"),
    ("k1", "K", "K"),
)

ALTERNATE_LINEUP = (
    ("qb2", "QB", "QB"),
    ("rb4", "RB", "RB"),
    ("rb5", "RB", "RB"),
    ("wr4", "WR", "WR"),
    ("wr5", "WR", "WR"),
    ("wr6", "WR", "WR"),
    ("te2", "TE", "TE"),
    ("rb3", "RB", "FLEX"),
    ("dst2", "DST", "DST"),
    ("k2", "K", "K"),
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def feed():
    return StaticScoringFeed()


@pytest.fixture
def pool():
    return StaticPlayerPool(make_pool_players())


@pytest.fixture
def social():
    return RecordingSocialSink()


@pytest.fixture
def rewards():
    return LedgerRewardsSink()


@pytest.fixture
def service(feed, pool, social, rewards, clock):
    return BattleService(feed, pool, social, rewards, clock=clock)


@pytest.fixture
def published(service):
    """Every domain event the service publishes, in order"""
    events = []
    service.event_bus.subscribe(events.append)
    return events
