"""
External collaborators consumed by the battle engine.

Each collaborator is a small ABC with one or two production implementations
and (for the scoring feed) a deterministic in-memory one:

- ScoringFeed: live per-player fantasy points
- PlayerPool: players available for default rosters
- SocialSink: cross-feature challenge progress notifications
- RewardsSink: delivery of prize grants
"""

import csv
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import aiohttp

from arena.data_models.rewards import RewardBundle
from arena.utils.exceptions import ScoringFeedUnavailableError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Scoring feed
# ---------------------------------------------------------------------------

class ScoringFeed(ABC):
    @abstractmethod
    async def get_player_points(self, player_id: str) -> float:
        """Current fantasy points for a real-world player"""


class StaticScoringFeed(ScoringFeed):
    """Points served from a mutable mapping; unknown players score 0."""

    def __init__(self, points: Dict[str, float] = None):
        self.points: Dict[str, float] = dict(points or {})
        self.available = True
        self.calls = 0

    def set_points(self, player_id: str, points: float):
        self.points[player_id] = points

    async def get_player_points(self, player_id: str) -> float:
        self.calls += 1
        if not self.available:
            raise ScoringFeedUnavailableError(player_id, "feed marked unavailable")
        return float(self.points.get(player_id, 0.0))


class HttpScoringFeed(ScoringFeed):
    """
    Reads ``GET {base_url}/players/{player_id}/points`` returning
    ``{"points": <number>}``.

    Transport errors and malformed bodies surface as
    ScoringFeedUnavailableError so callers can defer advancement.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def get_player_points(self, player_id: str) -> float:
        url = f"{self.base_url}/players/{player_id}/points"
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                response.raise_for_status()
                data = await response.json()
                return float(data["points"])
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ScoringFeedUnavailableError(player_id, str(e)) from e
        except (KeyError, TypeError, ValueError) as e:
            raise ScoringFeedUnavailableError(player_id, f"malformed response: {e}") from e

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()


# ---------------------------------------------------------------------------
# Player pool
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PoolPlayer:
    """A real-world player available for rostering."""
    id: str
    name: str
    position: str
    team: str
    salary: int
    projected_points: float


class PlayerPool(ABC):
    @abstractmethod
    async def get_available_players(self) -> List[PoolPlayer]:
        ...


class StaticPlayerPool(PlayerPool):
    def __init__(self, players: List[PoolPlayer]):
        self.players = list(players)

    async def get_available_players(self) -> List[PoolPlayer]:
        return list(self.players)


class CsvPlayerPool(PlayerPool):
    """
    Loads players from a CSV with columns
    ``id,name,position,team,salary,projected_points``.

    Rows with a missing id or position are skipped with a warning. The file
    is read once and cached.
    """

    def __init__(self, csv_path: str):
        self.csv_path = Path(csv_path)
        self._players: Optional[List[PoolPlayer]] = None

    def _load(self) -> List[PoolPlayer]:
        players = []
        with open(self.csv_path, 'r', encoding='utf-8', newline='') as f:
            reader = csv.DictReader(f)
            for row_num, row in enumerate(reader, start=2):  # Header is line 1
                player_id = (row.get('id') or '').strip()
                position = (row.get('position') or '').strip().upper()
                if not player_id or not position:
                    logger.warning(f"Skipping player row {row_num} in {self.csv_path}: missing id or position")
                    continue
                try:
                    players.append(PoolPlayer(
                        id=player_id,
                        name=(row.get('name') or player_id).strip(),
                        position=position,
                        team=(row.get('team') or '').strip(),
                        salary=int(row.get('salary') or 0),
                        projected_points=float(row.get('projected_points') or 0.0),
                    ))
                except ValueError as e:
                    logger.warning(f"Skipping player row {row_num} in {self.csv_path}: {e}")
        logger.info(f"Loaded {len(players)} players from {self.csv_path}")
        return players

    async def get_available_players(self) -> List[PoolPlayer]:
        if self._players is None:
            self._players = self._load()
        return list(self._players)


# ---------------------------------------------------------------------------
# Social sink
# ---------------------------------------------------------------------------

class SocialSink(ABC):
    @abstractmethod
    async def update_challenge_progress(self, challenge_key: str, user_id: str,
                                        event_type: str, increment: int) -> None:
        ...


class LoggingSocialSink(SocialSink):
    async def update_challenge_progress(self, challenge_key: str, user_id: str,
                                        event_type: str, increment: int) -> None:
        logger.info(f"Challenge progress {challenge_key}: user {user_id} {event_type} +{increment}")


# ---------------------------------------------------------------------------
# Rewards sink
# ---------------------------------------------------------------------------

class RewardsSink(ABC):
    @abstractmethod
    async def grant(self, user_id: str, bundle: RewardBundle) -> None:
        ...


class LoggingRewardsSink(RewardsSink):
    async def grant(self, user_id: str, bundle: RewardBundle) -> None:
        logger.info(f"Granted {bundle.to_dict()} to user {user_id}")


class LedgerRewardsSink(RewardsSink):
    """Accumulates per-user balances: gems, xp, badges, titles and items."""

    def __init__(self):
        self.gems: Dict[str, int] = defaultdict(int)
        self.xp: Dict[str, int] = defaultdict(int)
        self.badges: Dict[str, List[str]] = defaultdict(list)
        self.titles: Dict[str, List[str]] = defaultdict(list)
        self.items: Dict[str, List[str]] = defaultdict(list)
        self.grants: List[tuple] = []

    async def grant(self, user_id: str, bundle: RewardBundle) -> None:
        self.gems[user_id] += bundle.gems
        self.xp[user_id] += bundle.xp
        self.badges[user_id].extend(bundle.badges)
        if bundle.title:
            self.titles[user_id].append(bundle.title)
        self.items[user_id].extend(bundle.items)
        self.grants.append((user_id, bundle))

    def balance(self, user_id: str) -> Dict[str, object]:
        return {
            "gems": self.gems[user_id],
            "xp": self.xp[user_id],
            "badges": list(self.badges[user_id]),
            "titles": list(self.titles[user_id]),
            "items": list(self.items[user_id]),
        }
