"""Event listener Cog for Tribunal.

This cog has exactly ONE responsibility: handle bot lifecycle events
(on_ready, on_guild_join, on_guild_remove). Votes are stored per guild, so
joining or leaving a guild needs no setup; the events are only logged.
"""

import discord
from discord.ext import commands

from tribunal.util.logger import get_logger

logger = get_logger("events_listener")


class EventsListenerCog(commands.Cog):
    """Handles Discord bot lifecycle events."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Set bot presence once the gateway session is up."""
        if not self.bot.user:
            logger.warning("[EVENTS LISTENER] Bot partially connected, user info not yet available.")
            return

        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="the community vote"),
        )
        logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info("[EVENTS LISTENER] Joined guild: %s (ID: %s)", guild.name, guild.id)

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        # Vote history is kept; it is audit data.
        logger.info("[EVENTS LISTENER] Removed from guild: %s (ID: %s)", guild.name, guild.id)


def setup(bot: discord.Bot) -> None:
    """Register the EventsListenerCog with the bot."""
    bot.add_cog(EventsListenerCog(bot))
