"""
Vote commands cog: community timeout votes.

Slash commands:
- /vote-timeout: start a vote against a member
- /cancel-vote: close an active vote without a sanction (administrators only)
- /vote-stats: counters over every vote the bot has run

Replies are ephemeral; the vote itself is posted in the moderation channel.
"""

import discord
from discord import Option
from discord.ext import commands

from tribunal.datatypes.discord_datatypes import GuildID, UserID
from tribunal.util.format_utils import format_duration
from tribunal.util.logger import get_logger
from tribunal.voting.errors import VoteError
from tribunal.voting.vote_lifecycle import VoteLifecycle

logger = get_logger("vote_commands")


class VoteCog(commands.Cog):
    """Slash commands that drive the vote lifecycle."""

    def __init__(self, discord_bot_instance, lifecycle: VoteLifecycle):
        self.discord_bot_instance = discord_bot_instance
        self.lifecycle = lifecycle
        logger.info("[VOTE CMDS] Vote cog loaded")

    async def _ensure_guild_context(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        return True

    def _is_administrator(self, ctx: discord.ApplicationContext) -> bool:
        if not isinstance(ctx.user, discord.Member):
            return False
        return ctx.user.guild_permissions.administrator

    @commands.slash_command(name="vote-timeout", description="Start a community vote to time out a member.")
    async def vote_timeout(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to put to a vote.", required=True),  # type: ignore
        reason: Option(str, "Why this member should be timed out.", required=True),  # type: ignore
    ) -> None:
        if not await self._ensure_guild_context(ctx):
            return

        await ctx.defer(ephemeral=True)
        try:
            vote = await self.lifecycle.start_vote(
                GuildID(ctx.guild_id),
                UserID(ctx.user.id),
                UserID(user.id),
                reason,
            )
        except VoteError as exc:
            await ctx.send_followup(f"❌ {exc.user_message}", ephemeral=True)
            return

        duration = format_duration(int(self.lifecycle.settings.vote_duration_seconds))
        await ctx.send_followup(
            f"✅ Vote started against {user.mention}. It closes in {duration}.\nVote ID: `{vote.vote_id}`",
            ephemeral=True,
        )

    @commands.slash_command(name="cancel-vote", description="Cancel an active vote (administrators only).")
    async def cancel_vote(
        self,
        ctx: discord.ApplicationContext,
        vote_id: Option(str, "ID shown on the vote message.", required=True),  # type: ignore
    ) -> None:
        if not await self._ensure_guild_context(ctx):
            return
        if not self._is_administrator(ctx):
            await ctx.respond("❌ Only administrators can cancel votes.", ephemeral=True)
            return

        await ctx.defer(ephemeral=True)
        try:
            await self.lifecycle.cancel_vote(vote_id.strip(), UserID(ctx.user.id), GuildID(ctx.guild_id))
        except VoteError as exc:
            await ctx.send_followup(f"❌ {exc.user_message}", ephemeral=True)
            return

        await ctx.send_followup("✅ The vote was cancelled.", ephemeral=True)

    @commands.slash_command(name="vote-stats", description="Show community vote statistics.")
    async def vote_stats(self, ctx: discord.ApplicationContext) -> None:
        if not await self._ensure_guild_context(ctx):
            return
        stats = await self.lifecycle.get_stats(GuildID(ctx.guild_id))

        embed = discord.Embed(title="📊 Vote Statistics", color=discord.Color.blurple())
        embed.add_field(name="Active votes", value=str(stats.active_votes), inline=True)
        embed.add_field(name="Completed votes", value=str(stats.completed_votes), inline=True)
        embed.add_field(name="Sanctions applied", value=str(stats.sanctioned_votes), inline=True)
        embed.add_field(name="Users on record for cooldowns", value=str(stats.tracked_cooldowns), inline=True)
        await ctx.respond(embed=embed, ephemeral=True)


def setup(discord_bot_instance, lifecycle: VoteLifecycle):
    discord_bot_instance.add_cog(VoteCog(discord_bot_instance, lifecycle))
