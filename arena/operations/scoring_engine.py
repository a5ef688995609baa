"""
Scoring Engine

Computes participants' round scores from live per-player points, roster
multipliers and active power-up effects, then refreshes the round's matchup
scores, leaderboard and highlight events.
"""

from datetime import datetime
from typing import Callable, Dict, List, Tuple

from arena.constants import BattleConstants
from arena.data_models.battle import (
    Battle, BattleEvent, BattleEventType, BattleParticipant, BattlePlayer,
    BattleRound, LeaderboardEntry, PlayerStatus, RoundLeaderboard
)
from arena.data_models.codec import utcnow
from arena.data_models.power_up import ActiveEffect, EffectTarget
from arena.services.collaborators import ScoringFeed
from arena.utils.logger import setup_logger

_UNSCORED_STATUSES = (PlayerStatus.INJURED, PlayerStatus.BYE)


class ScoringEngine:
    """Pure scoring over an injected live feed"""

    def __init__(self, feed: ScoringFeed, clock: Callable[[], datetime] = utcnow):
        self.feed = feed
        self.clock = clock
        self.logger = setup_logger(f"{__name__}.ScoringEngine")

    @staticmethod
    def effect_multiplier(effects: List[ActiveEffect], participant: BattleParticipant,
                          player: BattlePlayer) -> float:
        """Product of active effect multipliers covering this player"""
        multiplier = 1.0
        for effect in effects:
            if not effect.multiplier:
                continue
            if effect.target in (EffectTarget.SELF, EffectTarget.OPPONENT):
                applies = effect.target_user_id == participant.user_id
            elif effect.target == EffectTarget.PLAYER:
                applies = effect.owner_id == participant.user_id and effect.target_player_id == player.id
            else:
                applies = effect.owner_id == participant.user_id and effect.target_position == player.position
            if applies:
                multiplier *= effect.multiplier
        return multiplier

    @staticmethod
    def is_protected(effects: List[ActiveEffect], participant: BattleParticipant) -> bool:
        return any(e.protection and e.target_user_id == participant.user_id for e in effects)

    async def compute_participant(self, battle: Battle, participant: BattleParticipant,
                                  round_number: int) -> Tuple[float, Dict[str, float]]:
        """
        Round score for one participant without mutating anything.

        Returns:
            Tuple of (round_score, player_id -> scored points)

        Raises:
            ScoringFeedUnavailableError: If the feed cannot serve a player
        """
        if participant.roster is None:
            return 0.0, {}

        effects = battle.effects_for_round(round_number)
        protected = self.is_protected(effects, participant)
        scored: Dict[str, float] = {}

        for player in participant.roster.players:
            if player.status == PlayerStatus.BENCHED:
                continue
            if player.status in _UNSCORED_STATUSES and not protected:
                scored[player.id] = 0.0
                continue
            base = await self.feed.get_player_points(player.id)
            scored[player.id] = base * player.multiplier * self.effect_multiplier(effects, participant, player)

        return sum(scored.values()), scored

    async def update_scores(self, battle: Battle) -> List[BattleEvent]:
        """
        Recompute every participant's score for the current round.

        All feed reads happen before any state changes so a feed failure
        leaves the battle untouched.

        Returns:
            BattleEvents appended to the round by this update

        Raises:
            ScoringFeedUnavailableError: If the feed cannot serve a player
        """
        current = battle.current
        if current is None:
            return []
        round_number = current.round_number

        results = {}
        for participant in battle.participants:
            results[participant.user_id] = await self.compute_participant(battle, participant, round_number)

        for participant in battle.participants:
            round_score, scored = results[participant.user_id]
            participant.round_scores[round_number] = round_score
            participant.stats.highest_score = max(participant.stats.highest_score, round_score)
            if participant.roster is not None:
                for player in participant.roster.players:
                    if player.id in scored:
                        player.actual_points = scored[player.id]

        self._update_matchups(battle, current)
        self._update_leaderboard(battle, current)
        new_events = self._detect_events(battle, current, results)
        current.events.extend(new_events)

        self.logger.debug(
            f"Scores updated for battle {battle.id} round {round_number}: "
            + ", ".join(f"{p.user_id}={p.round_score(round_number):.1f}" for p in battle.participants)
        )
        return new_events

    @staticmethod
    def _update_matchups(battle: Battle, current: BattleRound):
        round_number = current.round_number
        for matchup in current.matchups:
            p1 = battle.get_participant(matchup.player1_id)
            p2 = battle.get_participant(matchup.player2_id)
            if p1 is None or p2 is None:
                continue
            matchup.player1_score = p1.round_score(round_number)
            matchup.player2_score = p2.round_score(round_number)
            trailing = None
            if matchup.player1_score < matchup.player2_score:
                trailing = matchup.player1_id
            elif matchup.player2_score < matchup.player1_score:
                trailing = matchup.player2_id
            if trailing and trailing not in matchup.trailing_user_ids:
                matchup.trailing_user_ids.append(trailing)

    @staticmethod
    def _update_leaderboard(battle: Battle, current: BattleRound):
        previous = {entry.user_id: entry.rank for entry in current.leaderboard.entries}
        if not previous and current.round_number > 1:
            prior_round = battle.rounds[current.round_number - 2]
            previous = {entry.user_id: entry.rank for entry in prior_round.leaderboard.entries}

        # Stable sort keeps join order among equal scores
        ordered = sorted(battle.participants, key=lambda p: -p.score)
        entries = []
        for rank, participant in enumerate(ordered, start=1):
            old_rank = previous.get(participant.user_id)
            entries.append(LeaderboardEntry(
                user_id=participant.user_id,
                score=participant.score,
                rank=rank,
                movement=(old_rank - rank) if old_rank else 0,
            ))

        scores = [participant.round_score(current.round_number) for participant in battle.participants]
        current.leaderboard = RoundLeaderboard(
            entries=entries,
            average_score=sum(scores) / len(scores) if scores else 0.0,
            highest_score=max(scores) if scores else 0.0,
        )

    def _detect_events(self, battle: Battle, current: BattleRound,
                       results: Dict[str, Tuple[float, Dict[str, float]]]) -> List[BattleEvent]:
        now = self.clock()
        events: List[BattleEvent] = []

        def already(event_type, user_id, player_id=None):
            if current.has_event(event_type, user_id=user_id, player_id=player_id):
                return True
            return any(
                e.event_type == event_type and user_id in e.affected_users
                and (player_id is None or e.player_id == player_id)
                for e in events
            )

        for participant in battle.participants:
            name = participant.username or participant.user_id
            round_score, scored = results[participant.user_id]

            if round_score >= BattleConstants.MILESTONE_SCORE and not already(
                    BattleEventType.MILESTONE, participant.user_id):
                events.append(BattleEvent(
                    event_type=BattleEventType.MILESTONE,
                    description=f"{name} scored {BattleConstants.MILESTONE_SCORE}+ points!",
                    timestamp=now,
                    fantasy_impact=round_score,
                    affected_users=(participant.user_id,),
                ))

            if participant.roster is None:
                continue
            protected = self.is_protected(battle.effects_for_round(current.round_number), participant)
            for player in participant.roster.players:
                points = scored.get(player.id, 0.0)
                if points >= BattleConstants.BIG_PLAY_POINTS and not already(
                        BattleEventType.BIG_PLAY, participant.user_id, player.id):
                    events.append(BattleEvent(
                        event_type=BattleEventType.BIG_PLAY,
                        description=f"{player.name} put up {points:.1f} points for {name}",
                        timestamp=now,
                        player_id=player.id,
                        fantasy_impact=points,
                        affected_users=(participant.user_id,),
                    ))
                if player.status == PlayerStatus.INJURED and not protected and not already(
                        BattleEventType.INJURY, participant.user_id, player.id):
                    events.append(BattleEvent(
                        event_type=BattleEventType.INJURY,
                        description=f"{player.name} is injured and will not score for {name}",
                        timestamp=now,
                        player_id=player.id,
                        fantasy_impact=-player.projected_points,
                        affected_users=(participant.user_id,),
                    ))
        return events
