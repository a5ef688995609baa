"""
Embed builders for arena notifications.

Turns domain events into Discord embeds so every notification channel
renders battles, ladder changes and tournaments the same way.
"""

import discord
from typing import Optional

from arena.constants import UIConstants
from arena.services.event_bus import DomainEvent, DomainEventType

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}

NOTIFIED_EVENT_TYPES = (
    DomainEventType.BATTLE_STARTED,
    DomainEventType.ROUND_COMPLETED,
    DomainEventType.BATTLE_COMPLETED,
    DomainEventType.LADDER_UPDATED,
    DomainEventType.TOURNAMENT_STARTED,
    DomainEventType.TOURNAMENT_COMPLETED,
)


def _format_standings(standings, limit: int = 10) -> str:
    lines = []
    for entry in standings[:limit]:
        medal = MEDALS.get(entry["rank"], f"#{entry['rank']}")
        score = entry.get("score", entry.get("points_for"))
        suffix = f" ({score:.1f} pts)" if score is not None else ""
        lines.append(f"{medal} <@{entry['user_id']}>{suffix}")
    return "\n".join(lines) or "No standings."


def build_battle_started_embed(event: DomainEvent) -> discord.Embed:
    embed = discord.Embed(
        title=f"{UIConstants.SWORDS_EMOJI} Battle Started",
        description=" vs ".join(f"<@{user_id}>" for user_id in event.user_ids),
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.add_field(name="Rounds", value=str(event.payload.get("total_rounds", "?")), inline=True)
    if event.payload.get("round_end"):
        embed.add_field(name="Round 1 Ends", value=event.payload["round_end"][:16].replace("T", " "), inline=True)
    embed.set_footer(text=f"Battle {event.battle_id}")
    return embed


def build_round_completed_embed(event: DomainEvent) -> discord.Embed:
    embed = discord.Embed(
        title=f"{UIConstants.BOLT_EMOJI} Round {event.payload.get('round_number')} Complete",
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    lines = []
    for result in event.payload.get("results", []):
        if result.get("winner_id"):
            lines.append(f"<@{result['winner_id']}> won by {result.get('margin', 0):.1f}")
        else:
            lines.append("Draw")
    embed.description = "\n".join(lines) or "No matchups this round."
    embed.set_footer(text=f"Battle {event.battle_id}")
    return embed


def build_battle_completed_embed(event: DomainEvent) -> discord.Embed:
    """
    Final standings for a finished battle.

    Args:
        event: A battle_completed event carrying ``winner`` and ``standings``

    Returns:
        Gold embed naming the winner
    """
    winner = event.payload.get("winner")
    embed = discord.Embed(
        title=f"{UIConstants.TROPHY_EMOJI} Battle Complete",
        description=f"Winner: <@{winner}>" if winner else "No winner.",
        color=UIConstants.GOLD_COLOR
    )
    embed.add_field(
        name="Final Standings",
        value=_format_standings(event.payload.get("standings", [])),
        inline=False
    )
    embed.set_footer(text=f"Battle {event.battle_id}")
    return embed


def build_ladder_updated_embed(event: DomainEvent) -> discord.Embed:
    winner_id, loser_id = event.user_ids[:2]
    delta = event.payload.get("delta", 0)
    embed = discord.Embed(
        title="📈 Ladder Updated",
        color=UIConstants.SUCCESS_COLOR
    )
    embed.add_field(
        name="Winner",
        value=f"<@{winner_id}> {event.payload.get('winner_rating')} (+{delta}) "
              f"{event.payload.get('winner_tier', '').title()}",
        inline=False
    )
    embed.add_field(
        name="Loser",
        value=f"<@{loser_id}> {event.payload.get('loser_rating')} "
              f"{event.payload.get('loser_tier', '').title()}",
        inline=False
    )
    return embed


def build_tournament_embed(event: DomainEvent) -> discord.Embed:
    if event.event_type == DomainEventType.TOURNAMENT_COMPLETED:
        winner = event.payload.get("winner")
        embed = discord.Embed(
            title=f"{UIConstants.TROPHY_EMOJI} Tournament Complete",
            description=f"Champion: <@{winner}>" if winner else "No champion.",
            color=UIConstants.GOLD_COLOR
        )
        embed.add_field(
            name="Standings",
            value=_format_standings(event.payload.get("standings", [])),
            inline=False
        )
    else:
        embed = discord.Embed(
            title=f"{UIConstants.SWORDS_EMOJI} Tournament Started",
            description=f"{len(event.user_ids)} entrants, {event.payload.get('total_rounds', '?')} rounds",
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        seeds = event.payload.get("seeds", [])
        if seeds:
            embed.add_field(
                name="Seeds",
                value="\n".join(f"{i}. <@{user_id}>" for i, user_id in enumerate(seeds[:16], start=1)),
                inline=False
            )
    embed.set_footer(text=f"Tournament {event.tournament_id}")
    return embed


def build_event_embed(event: DomainEvent) -> Optional[discord.Embed]:
    """Embed for a notified event type, or None when the type is not announced"""
    if event.event_type == DomainEventType.BATTLE_STARTED:
        return build_battle_started_embed(event)
    if event.event_type == DomainEventType.ROUND_COMPLETED:
        return build_round_completed_embed(event)
    if event.event_type == DomainEventType.BATTLE_COMPLETED:
        return build_battle_completed_embed(event)
    if event.event_type == DomainEventType.LADDER_UPDATED:
        return build_ladder_updated_embed(event)
    if event.event_type in (DomainEventType.TOURNAMENT_STARTED, DomainEventType.TOURNAMENT_COMPLETED):
        return build_tournament_embed(event)
    return None
