"""
Tournament data models: brackets, schedules, entry requirements and standings.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from arena.data_models.codec import dump_datetime, load_datetime, utcnow
from arena.data_models.rewards import PrizeTableEntry


class TournamentFormat(Enum):
    SINGLE_ELIMINATION = "single_elimination"
    DOUBLE_ELIMINATION = "double_elimination"
    ROUND_ROBIN = "round_robin"
    SWISS = "swiss"


class TournamentStatus(Enum):
    REGISTRATION = "registration"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class BracketSlot:
    """A seeded competitor occupying one side of a bracket match."""
    user_id: str
    seed: int

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "seed": self.seed}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["BracketSlot"]:
        if not data:
            return None
        return cls(user_id=data["user_id"], seed=data["seed"])


@dataclass
class BracketMatch:
    """
    One pairing in a tournament round.

    A slot is None while it waits on an earlier result. A match with only
    ``slot1`` filled and ``is_bye`` set advances that competitor unplayed.
    """
    id: str
    round_number: int
    position: int
    slot1: Optional[BracketSlot] = None
    slot2: Optional[BracketSlot] = None
    winner_id: Optional[str] = None
    score1: Optional[float] = None
    score2: Optional[float] = None
    battle_id: Optional[str] = None
    is_bye: bool = False

    @property
    def is_decided(self) -> bool:
        return self.winner_id is not None

    @property
    def is_ready(self) -> bool:
        """Both competitors known and no result yet"""
        return self.slot1 is not None and self.slot2 is not None and not self.is_decided

    @property
    def user_ids(self) -> List[str]:
        return [slot.user_id for slot in (self.slot1, self.slot2) if slot is not None]

    def loser_id(self) -> Optional[str]:
        if not self.is_decided or self.is_bye:
            return None
        for user_id in self.user_ids:
            if user_id != self.winner_id:
                return user_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "round_number": self.round_number,
            "position": self.position,
            "slot1": self.slot1.to_dict() if self.slot1 else None,
            "slot2": self.slot2.to_dict() if self.slot2 else None,
            "winner_id": self.winner_id,
            "score1": self.score1,
            "score2": self.score2,
            "battle_id": self.battle_id,
            "is_bye": self.is_bye,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BracketMatch":
        return cls(
            id=data["id"],
            round_number=data["round_number"],
            position=data["position"],
            slot1=BracketSlot.from_dict(data.get("slot1")),
            slot2=BracketSlot.from_dict(data.get("slot2")),
            winner_id=data.get("winner_id"),
            score1=data.get("score1"),
            score2=data.get("score2"),
            battle_id=data.get("battle_id"),
            is_bye=data.get("is_bye", False),
        )


@dataclass
class BracketRound:
    round_number: int
    matches: List[BracketMatch] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return bool(self.matches) and all(match.is_decided for match in self.matches)

    def to_dict(self) -> Dict[str, Any]:
        return {"round_number": self.round_number, "matches": [m.to_dict() for m in self.matches]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BracketRound":
        return cls(
            round_number=data["round_number"],
            matches=[BracketMatch.from_dict(m) for m in data.get("matches", [])],
        )


@dataclass
class DateRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"start": dump_datetime(self.start), "end": dump_datetime(self.end)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DateRange":
        return cls(start=load_datetime(data["start"]), end=load_datetime(data["end"]))


@dataclass
class TournamentSchedule:
    registration: DateRange
    rounds: List[DateRange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "registration": self.registration.to_dict(),
            "rounds": [r.to_dict() for r in self.rounds],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TournamentSchedule":
        return cls(
            registration=DateRange.from_dict(data["registration"]),
            rounds=[DateRange.from_dict(r) for r in data.get("rounds", [])],
        )


@dataclass
class EntryRequirements:
    min_rating: Optional[int] = None
    invite_only: bool = False
    invited_user_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_rating": self.min_rating,
            "invite_only": self.invite_only,
            "invited_user_ids": list(self.invited_user_ids),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EntryRequirements":
        data = data or {}
        return cls(
            min_rating=data.get("min_rating"),
            invite_only=data.get("invite_only", False),
            invited_user_ids=list(data.get("invited_user_ids", [])),
        )


@dataclass
class Registration:
    user_id: str
    rating: Optional[int] = None  # Ladder rating at registration, used for seeding
    registered_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "rating": self.rating,
            "registered_at": dump_datetime(self.registered_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registration":
        return cls(
            user_id=data["user_id"],
            rating=data.get("rating"),
            registered_at=load_datetime(data.get("registered_at")) or utcnow(),
        )


@dataclass
class TournamentStanding:
    user_id: str
    rank: int
    wins: int = 0
    losses: int = 0
    points_for: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "rank": self.rank,
            "wins": self.wins,
            "losses": self.losses,
            "points_for": self.points_for,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TournamentStanding":
        return cls(
            user_id=data["user_id"],
            rank=data["rank"],
            wins=data.get("wins", 0),
            losses=data.get("losses", 0),
            points_for=data.get("points_for", 0.0),
        )


def generate_tournament_id() -> str:
    return f"tournament_{uuid.uuid4().hex[:16]}"


@dataclass
class Tournament:
    """A fixed-size competition that drives many battles through a bracket."""
    name: str
    tournament_format: TournamentFormat
    size: int
    schedule: TournamentSchedule
    total_rounds: int
    description: str = ""
    id: str = field(default_factory=generate_tournament_id)
    status: TournamentStatus = TournamentStatus.REGISTRATION
    bracket: List[BracketRound] = field(default_factory=list)
    prizes: List[PrizeTableEntry] = field(default_factory=list)
    entry_requirements: EntryRequirements = field(default_factory=EntryRequirements)
    registrations: List[Registration] = field(default_factory=list)
    standings: List[TournamentStanding] = field(default_factory=list)
    winner: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def entrant_ids(self) -> List[str]:
        return [registration.user_id for registration in self.registrations]

    def is_registered(self, user_id: str) -> bool:
        return user_id in self.entrant_ids

    @property
    def is_full(self) -> bool:
        return len(self.registrations) >= self.size

    def get_round(self, round_number: int) -> Optional[BracketRound]:
        for bracket_round in self.bracket:
            if bracket_round.round_number == round_number:
                return bracket_round
        return None

    def find_match(self, match_id: str) -> Optional[BracketMatch]:
        for bracket_round in self.bracket:
            for match in bracket_round.matches:
                if match.id == match_id:
                    return match
        return None

    @property
    def current_round(self) -> Optional[BracketRound]:
        """Earliest bracket round that still has undecided matches"""
        for bracket_round in self.bracket:
            if not bracket_round.is_complete:
                return bracket_round
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tournament_format": self.tournament_format.value,
            "size": self.size,
            "schedule": self.schedule.to_dict(),
            "total_rounds": self.total_rounds,
            "status": self.status.value,
            "bracket": [r.to_dict() for r in self.bracket],
            "prizes": [p.to_dict() for p in self.prizes],
            "entry_requirements": self.entry_requirements.to_dict(),
            "registrations": [r.to_dict() for r in self.registrations],
            "standings": [s.to_dict() for s in self.standings],
            "winner": self.winner,
            "created_at": dump_datetime(self.created_at),
            "started_at": dump_datetime(self.started_at),
            "completed_at": dump_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tournament":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            tournament_format=TournamentFormat(data["tournament_format"]),
            size=data["size"],
            schedule=TournamentSchedule.from_dict(data["schedule"]),
            total_rounds=data["total_rounds"],
            status=TournamentStatus(data["status"]),
            bracket=[BracketRound.from_dict(r) for r in data.get("bracket", [])],
            prizes=[PrizeTableEntry.from_dict(p) for p in data.get("prizes", [])],
            entry_requirements=EntryRequirements.from_dict(data.get("entry_requirements")),
            registrations=[Registration.from_dict(r) for r in data.get("registrations", [])],
            standings=[TournamentStanding.from_dict(s) for s in data.get("standings", [])],
            winner=data.get("winner"),
            created_at=load_datetime(data.get("created_at")) or utcnow(),
            started_at=load_datetime(data.get("started_at")),
            completed_at=load_datetime(data.get("completed_at")),
        )
