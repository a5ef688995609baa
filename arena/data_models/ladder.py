"""
Ladder data models for the persistent skill rating.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from arena.config import Config
from arena.data_models.codec import dump_datetime, load_datetime, utcnow


class LadderTier(Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"
    MASTER = "master"


@dataclass
class Streak:
    """Consecutive same-outcome results: ``type`` is 'W' or 'L'."""
    type: str = "W"
    count: int = 0

    def __str__(self) -> str:
        return f"{self.type}{self.count}" if self.count else "-"


@dataclass
class LadderRank:
    """A user's standing on the rating ladder."""
    user_id: str
    username: str = ""
    rating: int = field(default_factory=lambda: Config.STARTING_RATING)
    tier: LadderTier = LadderTier.BRONZE
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    streak: Streak = field(default_factory=Streak)
    next_tier_progress: float = 0.0
    rank: int = 0  # Ladder position, filled on read
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def matches_played(self) -> int:
        return self.wins + self.losses

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "rating": self.rating,
            "tier": self.tier.value,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "streak": {"type": self.streak.type, "count": self.streak.count},
            "next_tier_progress": self.next_tier_progress,
            "rank": self.rank,
            "updated_at": dump_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LadderRank":
        streak = data.get("streak") or {}
        return cls(
            user_id=data["user_id"],
            username=data.get("username", ""),
            rating=data["rating"],
            tier=LadderTier(data.get("tier", "bronze")),
            wins=data.get("wins", 0),
            losses=data.get("losses", 0),
            win_rate=data.get("win_rate", 0.0),
            streak=Streak(type=streak.get("type", "W"), count=streak.get("count", 0)),
            next_tier_progress=data.get("next_tier_progress", 0.0),
            rank=data.get("rank", 0),
            updated_at=load_datetime(data.get("updated_at")) or utcnow(),
        )


@dataclass
class RatingChange:
    """Audit row for one ladder update."""
    winner_id: str
    loser_id: str
    winner_old_rating: int
    winner_new_rating: int
    loser_old_rating: int
    loser_new_rating: int
    delta: int
    k_factor: float
    expected_win: float
    winner_score: float
    loser_score: float
    battle_id: Optional[str] = None
    id: str = field(default_factory=lambda: f"rating_{uuid.uuid4().hex[:12]}")
    recorded_at: datetime = field(default_factory=utcnow)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.winner_id, self.loser_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "winner_id": self.winner_id,
            "loser_id": self.loser_id,
            "winner_old_rating": self.winner_old_rating,
            "winner_new_rating": self.winner_new_rating,
            "loser_old_rating": self.loser_old_rating,
            "loser_new_rating": self.loser_new_rating,
            "delta": self.delta,
            "k_factor": self.k_factor,
            "expected_win": self.expected_win,
            "winner_score": self.winner_score,
            "loser_score": self.loser_score,
            "battle_id": self.battle_id,
            "recorded_at": dump_datetime(self.recorded_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingChange":
        return cls(
            id=data["id"],
            winner_id=data["winner_id"],
            loser_id=data["loser_id"],
            winner_old_rating=data["winner_old_rating"],
            winner_new_rating=data["winner_new_rating"],
            loser_old_rating=data["loser_old_rating"],
            loser_new_rating=data["loser_new_rating"],
            delta=data["delta"],
            k_factor=data["k_factor"],
            expected_win=data["expected_win"],
            winner_score=data["winner_score"],
            loser_score=data["loser_score"],
            battle_id=data.get("battle_id"),
            recorded_at=load_datetime(data.get("recorded_at")) or utcnow(),
        )
