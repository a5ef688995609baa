"""
Battle data models: battles, participants, rosters, rounds and matchups.

A Battle exclusively owns its participants, rounds and installed power-up
effects. All models round-trip through ``to_dict`` / ``from_dict`` so any
document store can hold them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from arena.constants import RosterConstants
from arena.data_models.codec import (
    dump_datetime, dump_int_keys, load_datetime, load_int_keys, utcnow
)
from arena.data_models.power_up import ActiveEffect
from arena.data_models.rewards import PrizeTableEntry


class BattleType(Enum):
    QUICK = "quick"
    TOURNAMENT = "tournament"
    LADDER = "ladder"
    CUSTOM = "custom"


class BattleFormat(Enum):
    CLASSIC = "classic"
    DRAFT = "draft"
    BEST_BALL = "best_ball"
    SURVIVOR = "survivor"


class BattleStatus(Enum):
    """Lifecycle of a battle; ``order`` only ever increases."""
    WAITING = "waiting"
    DRAFTING = "drafting"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return _STATUS_ORDER[self]


_STATUS_ORDER = {
    BattleStatus.WAITING: 0,
    BattleStatus.DRAFTING: 1,
    BattleStatus.ACTIVE: 2,
    BattleStatus.COMPLETED: 3,
}


class PlayerStatus(Enum):
    ACTIVE = "active"
    BENCHED = "benched"
    INJURED = "injured"
    BYE = "bye"


class BattleEventType(Enum):
    BIG_PLAY = "big_play"
    INJURY = "injury"
    MILESTONE = "milestone"
    COMEBACK = "comeback"
    UPSET = "upset"
    POWER_UP = "power_up"
    DRAW = "draw"


@dataclass
class RosterRequirements:
    """Slot counts a roster must fill exactly (bench is an upper bound)."""
    qb: int = 1
    rb: int = 2
    wr: int = 3
    te: int = 1
    flex: int = 1
    dst: int = 1
    k: int = 1
    bench: int = 6

    def slot_counts(self) -> Dict[str, int]:
        """Active slot counts keyed by upper-case slot name, in slot order"""
        return {slot: getattr(self, slot.lower()) for slot in RosterConstants.SLOT_ORDER}

    @property
    def active_slots(self) -> int:
        return sum(self.slot_counts().values())

    def to_dict(self) -> Dict[str, int]:
        return {"qb": self.qb, "rb": self.rb, "wr": self.wr, "te": self.te,
                "flex": self.flex, "dst": self.dst, "k": self.k, "bench": self.bench}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, int]]) -> "RosterRequirements":
        values = dict(RosterConstants.DEFAULT_REQUIREMENTS)
        values.update({key.lower(): value for key, value in (data or {}).items()})
        return cls(**values)


@dataclass
class BattleSettings:
    roster_requirements: RosterRequirements = field(default_factory=RosterRequirements)
    salary_cap: Optional[int] = None
    scoring_system: str = "standard"  # standard, ppr, custom
    power_ups_enabled: bool = True
    max_participants: Optional[int] = None
    round_duration_hours: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roster_requirements": self.roster_requirements.to_dict(),
            "salary_cap": self.salary_cap,
            "scoring_system": self.scoring_system,
            "power_ups_enabled": self.power_ups_enabled,
            "max_participants": self.max_participants,
            "round_duration_hours": self.round_duration_hours,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BattleSettings":
        data = data or {}
        return cls(
            roster_requirements=RosterRequirements.from_dict(data.get("roster_requirements")),
            salary_cap=data.get("salary_cap"),
            scoring_system=data.get("scoring_system", "standard"),
            power_ups_enabled=data.get("power_ups_enabled", True),
            max_participants=data.get("max_participants"),
            round_duration_hours=data.get("round_duration_hours"),
        )


@dataclass
class BattlePlayer:
    """A real-world player on a fantasy roster."""
    id: str
    name: str
    position: str
    slot: str  # Roster slot filled: QB, RB, WR, TE, FLEX, DST, K or BENCH
    team: str = ""
    salary: int = 0
    projected_points: float = 0.0
    actual_points: Optional[float] = None
    multiplier: float = 1.0  # Captain = 2x, Vice = 1.5x
    status: PlayerStatus = PlayerStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "slot": self.slot,
            "team": self.team,
            "salary": self.salary,
            "projected_points": self.projected_points,
            "actual_points": self.actual_points,
            "multiplier": self.multiplier,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BattlePlayer":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            position=data["position"],
            slot=data.get("slot", data["position"]),
            team=data.get("team", ""),
            salary=data.get("salary", 0),
            projected_points=data.get("projected_points", 0.0),
            actual_points=data.get("actual_points"),
            multiplier=data.get("multiplier", 1.0),
            status=PlayerStatus(data.get("status", "active")),
        )


@dataclass
class BattleRoster:
    players: List[BattlePlayer] = field(default_factory=list)
    bench_players: List[BattlePlayer] = field(default_factory=list)
    salary: int = 0
    formation: str = RosterConstants.DEFAULT_FORMATION
    captain_id: Optional[str] = None
    vice_captain_id: Optional[str] = None

    @property
    def all_players(self) -> List[BattlePlayer]:
        return self.players + self.bench_players

    def find_player(self, player_id: str) -> Optional[BattlePlayer]:
        for player in self.all_players:
            if player.id == player_id:
                return player
        return None

    def recalculate_salary(self) -> int:
        self.salary = sum(player.salary for player in self.all_players)
        return self.salary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "players": [p.to_dict() for p in self.players],
            "bench_players": [p.to_dict() for p in self.bench_players],
            "salary": self.salary,
            "formation": self.formation,
            "captain_id": self.captain_id,
            "vice_captain_id": self.vice_captain_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BattleRoster":
        return cls(
            players=[BattlePlayer.from_dict(p) for p in data.get("players", [])],
            bench_players=[BattlePlayer.from_dict(p) for p in data.get("bench_players", [])],
            salary=data.get("salary", 0),
            formation=data.get("formation", RosterConstants.DEFAULT_FORMATION),
            captain_id=data.get("captain_id"),
            vice_captain_id=data.get("vice_captain_id"),
        )


@dataclass
class ParticipantStats:
    rounds_won: int = 0
    perfect_lineups: int = 0
    comebacks: int = 0
    highest_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rounds_won": self.rounds_won,
            "perfect_lineups": self.perfect_lineups,
            "comebacks": self.comebacks,
            "highest_score": self.highest_score,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ParticipantStats":
        data = data or {}
        return cls(
            rounds_won=data.get("rounds_won", 0),
            perfect_lineups=data.get("perfect_lineups", 0),
            comebacks=data.get("comebacks", 0),
            highest_score=data.get("highest_score", 0.0),
        )


@dataclass
class PowerUpUsage:
    """Round-stamped power-up usage, consulted for cooldown checks."""
    power_up_id: str
    round_number: int
    target: Optional[str] = None
    used_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "power_up_id": self.power_up_id,
            "round_number": self.round_number,
            "target": self.target,
            "used_at": dump_datetime(self.used_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PowerUpUsage":
        return cls(
            power_up_id=data["power_up_id"],
            round_number=data["round_number"],
            target=data.get("target"),
            used_at=load_datetime(data.get("used_at")) or utcnow(),
        )


@dataclass
class BattleParticipant:
    user_id: str
    username: str = ""
    roster: Optional[BattleRoster] = None
    round_scores: Dict[int, float] = field(default_factory=dict)
    rank: Optional[int] = None
    power_ups_used: List[PowerUpUsage] = field(default_factory=list)
    stats: ParticipantStats = field(default_factory=ParticipantStats)
    swaps_used: Dict[int, int] = field(default_factory=dict)
    joined_at: datetime = field(default_factory=utcnow)

    @property
    def score(self) -> float:
        """Cumulative score across all rounds played so far"""
        return sum(self.round_scores.values())

    def round_score(self, round_number: int) -> float:
        return self.round_scores.get(round_number, 0.0)

    def last_use_round(self, power_up_id: str) -> Optional[int]:
        rounds = [u.round_number for u in self.power_ups_used if u.power_up_id == power_up_id]
        return max(rounds) if rounds else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "roster": self.roster.to_dict() if self.roster else None,
            "round_scores": dump_int_keys(self.round_scores),
            "rank": self.rank,
            "power_ups_used": [u.to_dict() for u in self.power_ups_used],
            "stats": self.stats.to_dict(),
            "swaps_used": dump_int_keys(self.swaps_used),
            "joined_at": dump_datetime(self.joined_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BattleParticipant":
        roster = data.get("roster")
        return cls(
            user_id=data["user_id"],
            username=data.get("username", ""),
            roster=BattleRoster.from_dict(roster) if roster else None,
            round_scores=load_int_keys(data.get("round_scores")),
            rank=data.get("rank"),
            power_ups_used=[PowerUpUsage.from_dict(u) for u in data.get("power_ups_used", [])],
            stats=ParticipantStats.from_dict(data.get("stats")),
            swaps_used=load_int_keys(data.get("swaps_used")),
            joined_at=load_datetime(data.get("joined_at")) or utcnow(),
        )


@dataclass
class Matchup:
    id: str
    player1_id: str
    player2_id: str
    player1_score: float = 0.0
    player2_score: float = 0.0
    winner_id: Optional[str] = None
    margin: Optional[float] = None
    highlights: List[str] = field(default_factory=list)
    trailing_user_ids: List[str] = field(default_factory=list)  # Users that trailed at any update

    def involves(self, user_id: str) -> bool:
        return user_id in (self.player1_id, self.player2_id)

    def opponent_of(self, user_id: str) -> Optional[str]:
        if user_id == self.player1_id:
            return self.player2_id
        if user_id == self.player2_id:
            return self.player1_id
        return None

    @property
    def is_decided(self) -> bool:
        return self.margin is not None

    @property
    def is_draw(self) -> bool:
        return self.is_decided and self.winner_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "player1_id": self.player1_id,
            "player2_id": self.player2_id,
            "player1_score": self.player1_score,
            "player2_score": self.player2_score,
            "winner_id": self.winner_id,
            "margin": self.margin,
            "highlights": list(self.highlights),
            "trailing_user_ids": list(self.trailing_user_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Matchup":
        return cls(
            id=data["id"],
            player1_id=data["player1_id"],
            player2_id=data["player2_id"],
            player1_score=data.get("player1_score", 0.0),
            player2_score=data.get("player2_score", 0.0),
            winner_id=data.get("winner_id"),
            margin=data.get("margin"),
            highlights=list(data.get("highlights", [])),
            trailing_user_ids=list(data.get("trailing_user_ids", [])),
        )


@dataclass
class LeaderboardEntry:
    user_id: str
    score: float
    rank: int
    movement: int = 0  # Position change from last round

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "score": self.score, "rank": self.rank, "movement": self.movement}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeaderboardEntry":
        return cls(user_id=data["user_id"], score=data["score"], rank=data["rank"],
                   movement=data.get("movement", 0))


@dataclass
class RoundLeaderboard:
    entries: List[LeaderboardEntry] = field(default_factory=list)
    average_score: float = 0.0
    highest_score: float = 0.0

    def rank_of(self, user_id: str) -> Optional[int]:
        for entry in self.entries:
            if entry.user_id == user_id:
                return entry.rank
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "average_score": self.average_score,
            "highest_score": self.highest_score,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RoundLeaderboard":
        data = data or {}
        return cls(
            entries=[LeaderboardEntry.from_dict(e) for e in data.get("entries", [])],
            average_score=data.get("average_score", 0.0),
            highest_score=data.get("highest_score", 0.0),
        )


@dataclass(frozen=True)
class BattleEvent:
    """Append-only round event; never mutated after insertion."""
    event_type: BattleEventType
    description: str
    timestamp: datetime = field(default_factory=utcnow)
    player_id: Optional[str] = None
    fantasy_impact: float = 0.0
    affected_users: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "description": self.description,
            "timestamp": dump_datetime(self.timestamp),
            "player_id": self.player_id,
            "fantasy_impact": self.fantasy_impact,
            "affected_users": list(self.affected_users),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BattleEvent":
        return cls(
            event_type=BattleEventType(data["event_type"]),
            description=data["description"],
            timestamp=load_datetime(data.get("timestamp")) or utcnow(),
            player_id=data.get("player_id"),
            fantasy_impact=data.get("fantasy_impact", 0.0),
            affected_users=tuple(data.get("affected_users", [])),
        )


@dataclass
class BattleRound:
    round_number: int
    start_date: datetime
    end_date: datetime
    matchups: List[Matchup] = field(default_factory=list)
    leaderboard: RoundLeaderboard = field(default_factory=RoundLeaderboard)
    events: List[BattleEvent] = field(default_factory=list)
    completed: bool = False

    def matchup_for(self, user_id: str) -> Optional[Matchup]:
        for matchup in self.matchups:
            if matchup.involves(user_id):
                return matchup
        return None

    def has_event(self, event_type: BattleEventType, user_id: str = None, player_id: str = None) -> bool:
        for event in self.events:
            if event.event_type != event_type:
                continue
            if user_id is not None and user_id not in event.affected_users:
                continue
            if player_id is not None and event.player_id != player_id:
                continue
            return True
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_number": self.round_number,
            "start_date": dump_datetime(self.start_date),
            "end_date": dump_datetime(self.end_date),
            "matchups": [m.to_dict() for m in self.matchups],
            "leaderboard": self.leaderboard.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BattleRound":
        return cls(
            round_number=data["round_number"],
            start_date=load_datetime(data["start_date"]),
            end_date=load_datetime(data["end_date"]),
            matchups=[Matchup.from_dict(m) for m in data.get("matchups", [])],
            leaderboard=RoundLeaderboard.from_dict(data.get("leaderboard")),
            events=[BattleEvent.from_dict(e) for e in data.get("events", [])],
            completed=data.get("completed", False),
        )


def generate_battle_id() -> str:
    return f"battle_{uuid.uuid4().hex[:16]}"


@dataclass
class Battle:
    """
    A timed, scored contest between fantasy rosters.

    ``current_round`` is set once play opens (status active) and kept after
    completion; ``status`` only moves forward (see ``BattleStatus.order``).
    """
    battle_type: BattleType
    battle_format: BattleFormat
    creator_id: str
    settings: BattleSettings = field(default_factory=BattleSettings)
    id: str = field(default_factory=generate_battle_id)
    participants: List[BattleParticipant] = field(default_factory=list)
    status: BattleStatus = BattleStatus.WAITING
    rounds: List[BattleRound] = field(default_factory=list)
    current_round: Optional[int] = None
    total_rounds: Optional[int] = None
    winner: Optional[str] = None
    prizes: List[PrizeTableEntry] = field(default_factory=list)
    active_effects: List[ActiveEffect] = field(default_factory=list)
    invited_user_ids: List[str] = field(default_factory=list)
    is_public: bool = False
    tournament_id: Optional[str] = None
    bracket_match_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def get_participant(self, user_id: str) -> Optional[BattleParticipant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def has_participant(self, user_id: str) -> bool:
        return self.get_participant(user_id) is not None

    @property
    def current(self) -> Optional[BattleRound]:
        """The round currently in play (or the last one once completed)"""
        if not self.current_round or self.current_round > len(self.rounds):
            return None
        return self.rounds[self.current_round - 1]

    @property
    def is_completed(self) -> bool:
        return self.status == BattleStatus.COMPLETED

    def effects_for_round(self, round_number: int) -> List[ActiveEffect]:
        return [effect for effect in self.active_effects if effect.is_active(round_number)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "battle_type": self.battle_type.value,
            "battle_format": self.battle_format.value,
            "creator_id": self.creator_id,
            "settings": self.settings.to_dict(),
            "participants": [p.to_dict() for p in self.participants],
            "status": self.status.value,
            "rounds": [r.to_dict() for r in self.rounds],
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
            "winner": self.winner,
            "prizes": [p.to_dict() for p in self.prizes],
            "active_effects": [e.to_dict() for e in self.active_effects],
            "invited_user_ids": list(self.invited_user_ids),
            "is_public": self.is_public,
            "tournament_id": self.tournament_id,
            "bracket_match_id": self.bracket_match_id,
            "created_at": dump_datetime(self.created_at),
            "started_at": dump_datetime(self.started_at),
            "completed_at": dump_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Battle":
        return cls(
            id=data["id"],
            battle_type=BattleType(data["battle_type"]),
            battle_format=BattleFormat(data["battle_format"]),
            creator_id=data["creator_id"],
            settings=BattleSettings.from_dict(data.get("settings")),
            participants=[BattleParticipant.from_dict(p) for p in data.get("participants", [])],
            status=BattleStatus(data["status"]),
            rounds=[BattleRound.from_dict(r) for r in data.get("rounds", [])],
            current_round=data.get("current_round"),
            total_rounds=data.get("total_rounds"),
            winner=data.get("winner"),
            prizes=[PrizeTableEntry.from_dict(p) for p in data.get("prizes", [])],
            active_effects=[ActiveEffect.from_dict(e) for e in data.get("active_effects", [])],
            invited_user_ids=list(data.get("invited_user_ids", [])),
            is_public=data.get("is_public", False),
            tournament_id=data.get("tournament_id"),
            bracket_match_id=data.get("bracket_match_id"),
            created_at=load_datetime(data.get("created_at")) or utcnow(),
            started_at=load_datetime(data.get("started_at")),
            completed_at=load_datetime(data.get("completed_at")),
        )
