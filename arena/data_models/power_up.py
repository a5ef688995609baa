"""
Power-up data models: immutable catalog entries and the effects they install.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class PowerUpType(Enum):
    BOOST = "boost"
    SHIELD = "shield"
    SWAP = "swap"
    WILDCARD = "wildcard"


class Rarity(Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class EffectTarget(Enum):
    SELF = "self"
    OPPONENT = "opponent"
    PLAYER = "player"
    POSITION = "position"


@dataclass(frozen=True)
class PowerUpEffect:
    """What a power-up does and for how many rounds."""
    target: EffectTarget
    duration: int  # Rounds
    multiplier: Optional[float] = None
    protection: bool = False
    swap_limit: Optional[int] = None


@dataclass(frozen=True)
class PowerUp:
    """Immutable catalog entry; usage is tracked on the participant."""
    id: str
    name: str
    description: str
    icon: str
    power_up_type: PowerUpType
    rarity: Rarity
    effect: PowerUpEffect
    cooldown: int  # Rounds before reuse
    cost: Optional[int] = None


@dataclass
class ActiveEffect:
    """
    A power-up effect installed on a battle for a span of rounds.

    Exactly one of ``target_user_id``, ``target_player_id`` or
    ``target_position`` names the scope, matching ``target``; for
    ``player``/``position`` targets the scope is limited to the owner's
    roster.
    """
    power_up_id: str
    owner_id: str
    target: EffectTarget
    start_round: int
    end_round: int
    target_user_id: Optional[str] = None
    target_player_id: Optional[str] = None
    target_position: Optional[str] = None
    multiplier: Optional[float] = None
    protection: bool = False
    swap_limit: Optional[int] = None

    def is_active(self, round_number: int) -> bool:
        return self.start_round <= round_number <= self.end_round

    def to_dict(self) -> Dict[str, Any]:
        return {
            "power_up_id": self.power_up_id,
            "owner_id": self.owner_id,
            "target": self.target.value,
            "start_round": self.start_round,
            "end_round": self.end_round,
            "target_user_id": self.target_user_id,
            "target_player_id": self.target_player_id,
            "target_position": self.target_position,
            "multiplier": self.multiplier,
            "protection": self.protection,
            "swap_limit": self.swap_limit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActiveEffect":
        return cls(
            power_up_id=data["power_up_id"],
            owner_id=data["owner_id"],
            target=EffectTarget(data["target"]),
            start_round=data["start_round"],
            end_round=data["end_round"],
            target_user_id=data.get("target_user_id"),
            target_player_id=data.get("target_player_id"),
            target_position=data.get("target_position"),
            multiplier=data.get("multiplier"),
            protection=data.get("protection", False),
            swap_limit=data.get("swap_limit"),
        )
