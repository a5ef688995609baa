"""
Roster Operations

Builds and validates participants' rosters against a battle's slot
requirements and salary cap. Submitted rosters are validated as-is; missing
rosters are filled greedily from the player pool by projected points while
keeping enough budget to fill every remaining slot. Players already starting
for an opponent are picked only when nobody else can fill the slot.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Set

from arena.constants import BattleConstants, RosterConstants
from arena.data_models.battle import (
    BattlePlayer, BattleRoster, BattleSettings, PlayerStatus
)
from arena.services.collaborators import PlayerPool, PoolPlayer
from arena.utils.exceptions import (
    RosterRequirementsError, SalaryCapExceededError, PlayerNotFoundError
)
from arena.utils.logger import setup_logger

BENCH_SLOT = "BENCH"


def is_eligible(position: str, slot: str) -> bool:
    """Whether a player of ``position`` may fill ``slot``"""
    if slot == "FLEX":
        return position in RosterConstants.FLEX_ELIGIBLE
    if slot == BENCH_SLOT:
        return True
    return position == slot


class RosterInitializer:
    """Builds, validates and edits battle rosters"""

    def __init__(self, player_pool: PlayerPool):
        self.player_pool = player_pool
        self.logger = setup_logger(f"{__name__}.RosterInitializer")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_roster(self, roster: BattleRoster, settings: BattleSettings) -> None:
        """
        Check slot counts, eligibility, bench size and salary.

        Raises:
            RosterRequirementsError: If slots or captaincy are invalid
            SalaryCapExceededError: If total salary exceeds the cap
        """
        requirements = settings.roster_requirements
        expected = requirements.slot_counts()

        seen: Set[str] = set()
        for player in roster.all_players:
            if player.id in seen:
                raise RosterRequirementsError(f"player '{player.id}' is rostered twice")
            seen.add(player.id)

        filled = Counter(player.slot for player in roster.players)
        for slot, count in expected.items():
            if filled.get(slot, 0) != count:
                raise RosterRequirementsError(f"{slot} needs {count} player(s), got {filled.get(slot, 0)}")
        unknown = set(filled) - set(expected)
        if unknown:
            raise RosterRequirementsError(f"unknown slot(s) {', '.join(sorted(unknown))}")

        for player in roster.players:
            if not is_eligible(player.position, player.slot):
                raise RosterRequirementsError(f"{player.position} '{player.id}' cannot fill {player.slot}")

        if len(roster.bench_players) > requirements.bench:
            raise RosterRequirementsError(
                f"bench holds at most {requirements.bench} player(s), got {len(roster.bench_players)}"
            )

        for role, player_id in (("captain", roster.captain_id), ("vice-captain", roster.vice_captain_id)):
            if player_id is not None and all(p.id != player_id for p in roster.players):
                raise RosterRequirementsError(f"{role} must be in the active lineup")
        if roster.captain_id is not None and roster.captain_id == roster.vice_captain_id:
            raise RosterRequirementsError("captain and vice-captain must differ")

        salary = roster.recalculate_salary()
        if settings.salary_cap is not None and salary > settings.salary_cap:
            raise SalaryCapExceededError(salary, settings.salary_cap)

    @staticmethod
    def assign_captaincy(roster: BattleRoster) -> None:
        """Apply captain/vice multipliers; everyone else resets to 1.0"""
        for player in roster.all_players:
            if player.id == roster.captain_id:
                player.multiplier = BattleConstants.CAPTAIN_MULTIPLIER
            elif player.id == roster.vice_captain_id:
                player.multiplier = BattleConstants.VICE_CAPTAIN_MULTIPLIER
            else:
                player.multiplier = 1.0
        for player in roster.bench_players:
            player.slot = BENCH_SLOT
            if player.status == PlayerStatus.ACTIVE:
                player.status = PlayerStatus.BENCHED

    def prepare_submitted(self, roster: BattleRoster, settings: BattleSettings) -> BattleRoster:
        """Validate a user-submitted roster and apply captaincy"""
        self.validate_roster(roster, settings)
        self.assign_captaincy(roster)
        return roster

    # ------------------------------------------------------------------
    # Default rosters
    # ------------------------------------------------------------------

    @staticmethod
    def _required_slots(settings: BattleSettings) -> List[str]:
        # Specific positions first so FLEX picks from what is left
        slots = []
        for slot, count in settings.roster_requirements.slot_counts().items():
            if slot != "FLEX":
                slots.extend([slot] * count)
        slots.extend(["FLEX"] * settings.roster_requirements.flex)
        return slots

    @staticmethod
    def _min_cost(slots: List[str], candidates: List[PoolPlayer], used: Set[str]) -> Optional[int]:
        """Cheapest salary that fills ``slots`` from unused players, or None if impossible"""
        taken = set(used)
        total = 0
        by_salary = sorted(candidates, key=lambda p: p.salary)
        for slot in slots:
            pick = next((p for p in by_salary if p.id not in taken and is_eligible(p.position, slot)), None)
            if pick is None:
                return None
            taken.add(pick.id)
            total += pick.salary
        return total

    @staticmethod
    def _to_battle_player(player: PoolPlayer, slot: str) -> BattlePlayer:
        return BattlePlayer(
            id=player.id,
            name=player.name,
            position=player.position,
            slot=slot,
            team=player.team,
            salary=player.salary,
            projected_points=player.projected_points,
            status=PlayerStatus.BENCHED if slot == BENCH_SLOT else PlayerStatus.ACTIVE,
        )

    async def build_default_roster(self, settings: BattleSettings,
                                   avoid: Iterable[str] = ()) -> BattleRoster:
        """
        Greedy salary-cap roster from the player pool.

        Args:
            settings: Battle settings carrying slot requirements and cap
            avoid: Player ids other participants start; ranked after every
                other candidate so opposing lineups differ where the pool allows

        Raises:
            RosterRequirementsError: If the pool cannot fill every slot
                within the salary cap
        """
        pool = await self.player_pool.get_available_players()
        if not pool:
            raise RosterRequirementsError("player pool is empty")

        cap = settings.salary_cap
        avoided = set(avoid)
        ranked = sorted(pool, key=lambda p: (p.id in avoided, -p.projected_points, p.salary, p.id))
        slots = self._required_slots(settings)
        used: Set[str] = set()
        spent = 0
        lineup: List[BattlePlayer] = []

        for index, slot in enumerate(slots):
            remaining = slots[index + 1:]
            choice = None
            for candidate in ranked:
                if candidate.id in used or not is_eligible(candidate.position, slot):
                    continue
                if cap is not None:
                    reserve = self._min_cost(remaining, pool, used | {candidate.id})
                    if reserve is None or spent + candidate.salary + reserve > cap:
                        continue
                elif self._min_cost(remaining, pool, used | {candidate.id}) is None:
                    continue
                choice = candidate
                break
            if choice is None:
                raise RosterRequirementsError(f"no affordable player available for {slot}")
            used.add(choice.id)
            spent += choice.salary
            lineup.append(self._to_battle_player(choice, slot))

        bench: List[BattlePlayer] = []
        for candidate in ranked:
            if len(bench) >= settings.roster_requirements.bench:
                break
            if candidate.id in used:
                continue
            if cap is not None and spent + candidate.salary > cap:
                continue
            used.add(candidate.id)
            spent += candidate.salary
            bench.append(self._to_battle_player(candidate, BENCH_SLOT))

        # Keep slot order stable for display
        order = {slot: i for i, slot in enumerate(RosterConstants.SLOT_ORDER)}
        lineup.sort(key=lambda p: order[p.slot])

        by_projection = sorted(lineup, key=lambda p: -p.projected_points)
        roster = BattleRoster(
            players=lineup,
            bench_players=bench,
            captain_id=by_projection[0].id if by_projection else None,
            vice_captain_id=by_projection[1].id if len(by_projection) > 1 else None,
        )
        roster.recalculate_salary()
        self.assign_captaincy(roster)
        self.validate_roster(roster, settings)
        self.logger.debug(f"Built default roster: {len(lineup)} active, {len(bench)} bench, salary {roster.salary}")
        return roster

    # ------------------------------------------------------------------
    # Substitutions
    # ------------------------------------------------------------------

    def substitute(self, roster: BattleRoster, out_player_id: str, in_player_id: str,
                   settings: BattleSettings) -> Dict[str, BattlePlayer]:
        """
        Swap an active player for a bench player in the same slot.

        Raises:
            PlayerNotFoundError: If either player is not where expected
            RosterRequirementsError: If the bench player cannot fill the slot
        """
        outgoing = next((p for p in roster.players if p.id == out_player_id), None)
        if outgoing is None:
            raise PlayerNotFoundError(out_player_id, "not in the active lineup")
        incoming = next((p for p in roster.bench_players if p.id == in_player_id), None)
        if incoming is None:
            raise PlayerNotFoundError(in_player_id, "not on the bench")
        if not is_eligible(incoming.position, outgoing.slot):
            raise RosterRequirementsError(f"{incoming.position} '{incoming.id}' cannot fill {outgoing.slot}")

        slot = outgoing.slot
        roster.players[roster.players.index(outgoing)] = incoming
        roster.bench_players[roster.bench_players.index(incoming)] = outgoing
        incoming.slot = slot
        if incoming.status == PlayerStatus.BENCHED:
            incoming.status = PlayerStatus.ACTIVE

        # Captaincy does not follow a player to the bench
        if roster.captain_id == outgoing.id:
            roster.captain_id = None
        if roster.vice_captain_id == outgoing.id:
            roster.vice_captain_id = None
        self.assign_captaincy(roster)
        self.validate_roster(roster, settings)
        return {"out": outgoing, "in": incoming}
