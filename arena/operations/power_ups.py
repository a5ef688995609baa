"""
Power-up catalog and cooldown enforcement.

Catalog entries are immutable. Usage is tracked on each participant as a
round-stamped history, and effects are installed on the battle as
``ActiveEffect`` records consulted by the scoring engine.
"""

from typing import Dict, List, Optional

from arena.data_models.battle import (
    Battle, BattleEvent, BattleEventType, BattleParticipant, PowerUpUsage
)
from arena.data_models.power_up import (
    ActiveEffect, EffectTarget, PowerUp, PowerUpEffect, PowerUpType, Rarity
)
from arena.utils.exceptions import (
    OnCooldownError, PlayerNotFoundError, UnknownPowerUpError, NotParticipantError
)
from arena.utils.logger import setup_logger

DEFAULT_BOOST_POSITION = "RB"

DEFAULT_POWER_UPS = (
    PowerUp(
        id="boost_captain",
        name="Captain Boost",
        description="Triple points for your captain this round",
        icon="⚡",
        power_up_type=PowerUpType.BOOST,
        rarity=Rarity.RARE,
        effect=PowerUpEffect(target=EffectTarget.PLAYER, duration=1, multiplier=3.0),
        cooldown=3,
    ),
    PowerUp(
        id="shield_injuries",
        name="Injury Shield",
        description="Protect your team from injury impacts for 2 rounds",
        icon="🛡️",
        power_up_type=PowerUpType.SHIELD,
        rarity=Rarity.EPIC,
        effect=PowerUpEffect(target=EffectTarget.SELF, duration=2, protection=True),
        cooldown=5,
    ),
    PowerUp(
        id="wildcard_sub",
        name="Wildcard Substitution",
        description="Make unlimited substitutions this round",
        icon="🔄",
        power_up_type=PowerUpType.WILDCARD,
        rarity=Rarity.LEGENDARY,
        effect=PowerUpEffect(target=EffectTarget.SELF, duration=1, swap_limit=99),
        cooldown=7,
    ),
    PowerUp(
        id="position_boost",
        name="Position Power",
        description="All RBs get 1.5x points this round",
        icon="💪",
        power_up_type=PowerUpType.BOOST,
        rarity=Rarity.COMMON,
        effect=PowerUpEffect(target=EffectTarget.POSITION, duration=1, multiplier=1.5),
        cooldown=2,
    ),
)


class PowerUpCatalog:
    """Static registry of power-ups plus the rules for applying them."""

    def __init__(self, power_ups=DEFAULT_POWER_UPS):
        self._power_ups: Dict[str, PowerUp] = {p.id: p for p in power_ups}
        self.logger = setup_logger(f"{__name__}.PowerUpCatalog")

    def get(self, power_up_id: str) -> PowerUp:
        """
        Raises:
            UnknownPowerUpError: If the id is not in the catalog
        """
        power_up = self._power_ups.get(power_up_id)
        if power_up is None:
            raise UnknownPowerUpError(power_up_id)
        return power_up

    def list_power_ups(self) -> List[PowerUp]:
        return list(self._power_ups.values())

    @staticmethod
    def rounds_remaining(participant: BattleParticipant, power_up: PowerUp, round_number: int) -> int:
        """Rounds until ``power_up`` may be used again; 0 when available now"""
        last_use = participant.last_use_round(power_up.id)
        if last_use is None:
            return 0
        return max(0, last_use + power_up.cooldown - round_number)

    def check_cooldown(self, participant: BattleParticipant, power_up: PowerUp, round_number: int):
        """
        Raises:
            OnCooldownError: If the last use was later than round - cooldown
        """
        remaining = self.rounds_remaining(participant, power_up, round_number)
        if remaining > 0:
            raise OnCooldownError(power_up.id, remaining)

    def _resolve_target(self, battle: Battle, participant: BattleParticipant,
                        power_up: PowerUp, target: Optional[str]) -> Dict[str, Optional[str]]:
        effect_target = power_up.effect.target

        if effect_target == EffectTarget.SELF:
            return {"target_user_id": participant.user_id}

        if effect_target == EffectTarget.OPPONENT:
            if target is None:
                matchup = battle.current.matchup_for(participant.user_id) if battle.current else None
                target = matchup.opponent_of(participant.user_id) if matchup else None
            if target is None or target == participant.user_id or not battle.has_participant(target):
                raise NotParticipantError(str(target), battle.id)
            return {"target_user_id": target}

        if effect_target == EffectTarget.PLAYER:
            roster = participant.roster
            player_id = target or (roster.captain_id if roster else None)
            if player_id is None:
                raise PlayerNotFoundError("captain", "not designated")
            if roster is None or roster.find_player(player_id) is None:
                raise PlayerNotFoundError(player_id)
            return {"target_player_id": player_id}

        # Position targets apply to the owner's roster only
        return {"target_position": (target or DEFAULT_BOOST_POSITION).upper()}

    def apply(self, battle: Battle, participant: BattleParticipant, power_up_id: str,
              round_number: int, target: Optional[str] = None, now=None) -> ActiveEffect:
        """
        Validate cooldown, install the effect and record the usage.

        The caller holds the battle lock and has already checked that the
        battle is active and the user is a participant.

        Returns:
            The installed ActiveEffect
        """
        power_up = self.get(power_up_id)
        self.check_cooldown(participant, power_up, round_number)
        scope = self._resolve_target(battle, participant, power_up, target)

        effect = ActiveEffect(
            power_up_id=power_up.id,
            owner_id=participant.user_id,
            target=power_up.effect.target,
            start_round=round_number,
            end_round=round_number + power_up.effect.duration - 1,
            multiplier=power_up.effect.multiplier,
            protection=power_up.effect.protection,
            swap_limit=power_up.effect.swap_limit,
            **scope,
        )
        battle.active_effects.append(effect)

        resolved = scope.get("target_user_id") or scope.get("target_player_id") or scope.get("target_position")
        usage = PowerUpUsage(power_up_id=power_up.id, round_number=round_number, target=resolved)
        if now is not None:
            usage.used_at = now
        participant.power_ups_used.append(usage)

        if battle.current is not None:
            battle.current.events.append(BattleEvent(
                event_type=BattleEventType.POWER_UP,
                description=f"{participant.username or participant.user_id} used {power_up.name}!",
                timestamp=usage.used_at,
                player_id=scope.get("target_player_id"),
                affected_users=(participant.user_id,) + (
                    (scope["target_user_id"],)
                    if scope.get("target_user_id") and scope["target_user_id"] != participant.user_id else ()
                ),
            ))

        self.logger.info(
            f"{participant.user_id} used {power_up.id} in battle {battle.id} round {round_number} "
            f"(rounds {effect.start_round}-{effect.end_round}, target={resolved})"
        )
        return effect

    @staticmethod
    def swap_allowance(battle: Battle, user_id: str, round_number: int, base: int) -> int:
        """Substitutions allowed this round: base plus any active swap effects"""
        bonus = sum(
            effect.swap_limit or 0
            for effect in battle.effects_for_round(round_number)
            if effect.swap_limit and effect.owner_id == user_id
        )
        return base + bonus

