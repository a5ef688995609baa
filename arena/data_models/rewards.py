"""
Reward data models: reward bundles, prize tables and grant records.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from arena.data_models.codec import dump_datetime, load_datetime, utcnow

_TOP_BAND = re.compile(r'^top\s*(\d+)$')
_RANGE_BAND = re.compile(r'^(\d+)\s*-\s*(\d+)$')


@dataclass
class RewardBundle:
    """Points, currency and collectibles granted for a final position."""
    gems: int = 0
    xp: int = 0
    badges: List[str] = field(default_factory=list)
    title: Optional[str] = None
    items: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.gems or self.xp or self.badges or self.title or self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gems": self.gems,
            "xp": self.xp,
            "badges": list(self.badges),
            "title": self.title,
            "items": list(self.items),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardBundle":
        return cls(
            gems=data.get("gems", 0),
            xp=data.get("xp", 0),
            badges=list(data.get("badges") or []),
            title=data.get("title"),
            items=list(data.get("items") or []),
        )


@dataclass
class PrizeTableEntry:
    """
    One row of a prize table.

    ``position`` is either an exact final rank (``1``) or a named band:
    ``"top8"`` (ranks 1-8), ``"3-4"`` (ranks 3 to 4) or ``"all"``.
    """
    position: Union[int, str]
    rewards: RewardBundle
    description: str = ""

    def rank_range(self) -> Tuple[int, Optional[int]]:
        """Inclusive (low, high) ranks covered; ``high`` is None for unbounded."""
        if isinstance(self.position, int):
            return self.position, self.position

        band = str(self.position).strip().lower().replace("_", "")
        if band.isdigit():
            return int(band), int(band)
        if band == "all":
            return 1, None
        match = _TOP_BAND.match(band)
        if match:
            return 1, int(match.group(1))
        match = _RANGE_BAND.match(band)
        if match:
            low, high = int(match.group(1)), int(match.group(2))
            if low > high:
                raise ValueError(f"Invalid prize band '{self.position}'")
            return low, high
        raise ValueError(f"Invalid prize position '{self.position}'")

    def covers(self, rank: int) -> bool:
        low, high = self.rank_range()
        return rank >= low and (high is None or rank <= high)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "rewards": self.rewards.to_dict(),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrizeTableEntry":
        return cls(
            position=data["position"],
            rewards=RewardBundle.from_dict(data.get("rewards") or {}),
            description=data.get("description", ""),
        )


@dataclass
class RewardGrant:
    """A reward bundle granted to one user for one final rank."""
    user_id: str
    rank: int
    rewards: RewardBundle
    source_id: str  # battle or tournament id
    id: str = field(default_factory=lambda: f"grant_{uuid.uuid4().hex[:12]}")
    delivered: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "rank": self.rank,
            "rewards": self.rewards.to_dict(),
            "source_id": self.source_id,
            "delivered": self.delivered,
            "created_at": dump_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardGrant":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            rank=data["rank"],
            rewards=RewardBundle.from_dict(data.get("rewards") or {}),
            source_id=data["source_id"],
            delivered=data.get("delivered", False),
            created_at=load_datetime(data.get("created_at")) or utcnow(),
        )
