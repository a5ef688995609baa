"""
Error kinds for the battle arena with user-friendly error messages.

Every rejected operation raises a specific subclass so a client can show an
actionable message (``user_message``) instead of a blanket failure.
"""

class ArenaError(Exception):
    """Base exception for arena errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------

class NotFoundError(ArenaError):
    """Raised when a battle, tournament, power-up or player id is unknown."""

class BattleNotFoundError(NotFoundError):
    def __init__(self, battle_id: str):
        super().__init__(
            f"Battle '{battle_id}' not found",
            "❌ That battle does not exist!"
        )
        self.battle_id = battle_id

class TournamentNotFoundError(NotFoundError):
    def __init__(self, tournament_id: str):
        super().__init__(
            f"Tournament '{tournament_id}' not found",
            "❌ That tournament does not exist!"
        )
        self.tournament_id = tournament_id

class UnknownPowerUpError(NotFoundError):
    def __init__(self, power_up_id: str):
        super().__init__(
            f"Power-up '{power_up_id}' is not in the catalog",
            f"❌ Unknown power-up '{power_up_id}'."
        )
        self.power_up_id = power_up_id

class PlayerNotFoundError(NotFoundError):
    def __init__(self, player_id: str, reason: str = "not on this roster"):
        super().__init__(
            f"Player '{player_id}' {reason}",
            f"❌ Player '{player_id}' is {reason}."
        )
        self.player_id = player_id

# ---------------------------------------------------------------------------
# InvalidState
# ---------------------------------------------------------------------------

class InvalidStateError(ArenaError):
    """Raised when an operation is not valid for the current lifecycle state."""

class AlreadyStartedError(InvalidStateError):
    def __init__(self, battle_id: str, status: str):
        super().__init__(
            f"Battle '{battle_id}' already started (status={status})",
            "❌ This battle has already started!"
        )
        self.battle_id = battle_id

class NotActiveError(InvalidStateError):
    def __init__(self, battle_id: str, status: str):
        super().__init__(
            f"Battle '{battle_id}' is not active (status={status})",
            "❌ This battle is not in progress."
        )
        self.battle_id = battle_id

class BattleFullError(InvalidStateError):
    def __init__(self, battle_id: str, capacity: int):
        super().__init__(
            f"Battle '{battle_id}' is full ({capacity} participants)",
            "❌ This battle is already full!"
        )
        self.battle_id = battle_id
        self.capacity = capacity

class AlreadyJoinedError(InvalidStateError):
    def __init__(self, user_id: str, target_id: str):
        super().__init__(
            f"User '{user_id}' already joined '{target_id}'",
            "❌ You have already joined!"
        )

class RegistrationClosedError(InvalidStateError):
    def __init__(self, tournament_id: str):
        super().__init__(
            f"Registration for tournament '{tournament_id}' is closed",
            "❌ Registration for this tournament is closed."
        )
        self.tournament_id = tournament_id

class PowerUpsDisabledError(InvalidStateError):
    def __init__(self, battle_id: str):
        super().__init__(
            f"Power-ups are disabled for battle '{battle_id}'",
            "❌ Power-ups are disabled in this battle."
        )

# ---------------------------------------------------------------------------
# Participation, cooldown and capacity
# ---------------------------------------------------------------------------

class NotParticipantError(ArenaError):
    def __init__(self, user_id: str, battle_id: str):
        super().__init__(
            f"User '{user_id}' is not a participant of battle '{battle_id}'",
            "❌ You are not part of this battle."
        )
        self.user_id = user_id

class OnCooldownError(ArenaError):
    def __init__(self, power_up_id: str, rounds_remaining: int):
        plural = "round" if rounds_remaining == 1 else "rounds"
        super().__init__(
            f"Power-up '{power_up_id}' on cooldown, {rounds_remaining} {plural} remaining",
            f"⏳ Power-up on cooldown for {rounds_remaining} more {plural}."
        )
        self.power_up_id = power_up_id
        self.rounds_remaining = rounds_remaining

class CapacityExceededError(ArenaError):
    """Raised when roster, salary or position limits are violated."""

class SalaryCapExceededError(CapacityExceededError):
    def __init__(self, salary: int, salary_cap: int):
        super().__init__(
            f"Roster salary {salary} exceeds cap {salary_cap}",
            f"❌ Your roster costs {salary:,}, over the {salary_cap:,} salary cap."
        )
        self.salary = salary
        self.salary_cap = salary_cap

class RosterRequirementsError(CapacityExceededError):
    def __init__(self, reason: str):
        super().__init__(
            f"Roster does not satisfy requirements: {reason}",
            f"❌ Invalid roster: {reason}."
        )

class SwapLimitExceededError(CapacityExceededError):
    def __init__(self, swaps_allowed: int):
        super().__init__(
            f"Swap limit of {swaps_allowed} reached for this round",
            f"❌ You can only make {swaps_allowed} substitution(s) this round."
        )

class RequirementsNotMetError(ArenaError):
    """Raised when a tournament entry gate fails."""
    def __init__(self, reason: str):
        super().__init__(
            f"Entry requirements not met: {reason}",
            f"❌ You do not meet the entry requirements: {reason}."
        )

class TournamentFullError(RequirementsNotMetError):
    def __init__(self, tournament_id: str, size: int):
        super().__init__(f"tournament '{tournament_id}' already has {size} entrants")
        self.tournament_id = tournament_id

# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------

class ScoringFeedUnavailableError(ArenaError):
    """Raised by the scoring engine when the live feed cannot be reached."""
    def __init__(self, player_id: str, details: str = None):
        super().__init__(
            f"Scoring feed unavailable for player '{player_id}': {details}",
            "❌ Live scoring is temporarily unavailable."
        )
        self.player_id = player_id
