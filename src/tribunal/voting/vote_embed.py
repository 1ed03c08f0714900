"""
Embed builders for vote messages.

Three renderings exist: the live tally shown while a vote is active, the
terminal result once it completes, and the cancelled notice. All of them
are built from a :class:`Vote` whose tally has just been loaded from the
store.
"""

import datetime
from typing import Sequence

import discord

from tribunal.datatypes.vote_datatypes import ReactionKind, SanctionThreshold, Vote, VoteOutcome, VoteResult
from tribunal.util.format_utils import format_duration, truncate
from tribunal.voting.sanctions import next_threshold, resolve_threshold

# Embed field values are capped at 1024 characters by Discord.
FIELD_LIMIT = 1024

VOTE_FOOTER = (
    f"React with {ReactionKind.APPROVE.emoji} to approve, {ReactionKind.REJECT.emoji} to reject, "
    f"or {ReactionKind.ABSTAIN.emoji} to abstain (abstaining earns you a timeout)"
)


def _timestamp(value: float) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)


def _add_header_fields(embed: discord.Embed, vote: Vote) -> None:
    embed.add_field(name="User", value=vote.target_id.mention(), inline=True)
    embed.add_field(name="Started by", value=vote.initiator_id.mention(), inline=True)
    embed.add_field(name="Reason", value=truncate(vote.reason, FIELD_LIMIT), inline=False)


def build_vote_embed(
    vote: Vote,
    thresholds: Sequence[SanctionThreshold],
    duration_seconds: float,
    now: float,
) -> discord.Embed:
    """Live tally rendering: counts, current sanction preview and time left."""
    tally = vote.tally
    net = tally.net_votes
    current = resolve_threshold(net, thresholds)

    embed = discord.Embed(
        title="⚖️ Timeout Vote",
        color=discord.Color.red() if current is not None else discord.Color.orange(),
        timestamp=_timestamp(vote.started_at),
    )
    _add_header_fields(embed, vote)

    embed.add_field(
        name="Votes",
        value=(
            f"{ReactionKind.APPROVE.emoji} {tally.approve_weight}  |  "
            f"{ReactionKind.REJECT.emoji} {tally.reject_weight}  |  "
            f"Net: **{net}**"
        ),
        inline=False,
    )

    if current is not None:
        sanction = current.label
    else:
        upcoming = next_threshold(net, thresholds)
        sanction = f"None (needs {upcoming.min_votes} net votes)" if upcoming else "None"
    embed.add_field(name="Current sanction", value=sanction, inline=True)
    embed.add_field(
        name="Time remaining",
        value=f"{vote.minutes_remaining(duration_seconds, now)} minute(s)",
        inline=True,
    )
    embed.add_field(name="Vote ID", value=f"`{vote.vote_id}`", inline=False)
    embed.set_footer(text=VOTE_FOOTER)
    return embed


def build_result_embed(vote: Vote, result: VoteResult) -> discord.Embed:
    """Terminal rendering for an expired vote."""
    final_votes = (
        f"{ReactionKind.APPROVE.emoji} {result.up_votes}  |  "
        f"{ReactionKind.REJECT.emoji} {result.down_votes}  ({result.net_votes} net)"
    )

    if result.outcome is VoteOutcome.SANCTIONED:
        embed = discord.Embed(title="✅ Timeout Applied", color=discord.Color.green())
    elif result.outcome is VoteOutcome.FAILED:
        embed = discord.Embed(title="❌ Failed to Apply Timeout", color=discord.Color.dark_red())
    else:
        embed = discord.Embed(title="❌ Vote Rejected", color=discord.Color.light_grey())
    embed.timestamp = datetime.datetime.now(datetime.timezone.utc)

    _add_header_fields(embed, vote)
    embed.add_field(name="Final votes", value=final_votes, inline=False)

    if result.outcome is VoteOutcome.SANCTIONED:
        embed.add_field(
            name="Sanction",
            value=f"{result.sanction_label} ({format_duration(result.sanction_seconds)})",
            inline=False,
        )
        embed.add_field(name="Applied by", value="Community vote", inline=False)
    elif result.outcome is VoteOutcome.FAILED:
        detail = result.error or "The timeout could not be applied."
        embed.add_field(name="Error", value=truncate(detail, FIELD_LIMIT), inline=False)
        embed.add_field(name="Action needed", value="A moderator should follow up manually.", inline=False)
    else:
        embed.add_field(name="Result", value="Not enough net votes to apply a sanction.", inline=False)

    embed.set_footer(text=f"Vote ID: {vote.vote_id}")
    return embed


def build_cancelled_embed(vote: Vote, result: VoteResult) -> discord.Embed:
    """Terminal rendering for a vote closed by an administrator."""
    embed = discord.Embed(
        title="🛑 Vote Cancelled by an Administrator",
        color=discord.Color.light_grey(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    _add_header_fields(embed, vote)
    if result.cancelled_by is not None:
        embed.add_field(name="Cancelled by", value=result.cancelled_by.mention(), inline=False)
    embed.set_footer(text=f"Vote ID: {vote.vote_id}")
    return embed
