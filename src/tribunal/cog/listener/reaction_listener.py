"""Reaction listener cog: forwards raw reaction events to the vote lifecycle.

Raw events are used so reactions on messages that fell out of the message
cache (for example after a restart) are still seen.
"""

import discord
from discord.ext import commands

from tribunal.datatypes.discord_datatypes import MessageID, UserID
from tribunal.util.logger import get_logger
from tribunal.voting.vote_lifecycle import VoteLifecycle

logger = get_logger("reaction_listener")


class ReactionListenerCog(commands.Cog):
    """Routes reaction add/remove events on vote messages."""

    def __init__(self, bot: discord.Bot, lifecycle: VoteLifecycle) -> None:
        self.bot = bot
        self.lifecycle = lifecycle
        logger.info("[REACTION LISTENER] Reaction listener cog loaded")

    def _is_own_or_bot(self, payload: discord.RawReactionActionEvent) -> bool:
        if self.bot.user is not None and payload.user_id == self.bot.user.id:
            return True
        member = payload.member
        return bool(member is not None and member.bot)

    @commands.Cog.listener(name="on_raw_reaction_add")
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id is None or self._is_own_or_bot(payload):
            return
        try:
            await self.lifecycle.handle_reaction_add(
                MessageID(payload.message_id), UserID(payload.user_id), str(payload.emoji)
            )
        except Exception:
            logger.exception("[REACTION LISTENER] Failed to handle reaction add on %s", payload.message_id)

    @commands.Cog.listener(name="on_raw_reaction_remove")
    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        # payload.member is not populated for removals
        if payload.guild_id is None:
            return
        if self.bot.user is not None and payload.user_id == self.bot.user.id:
            return
        try:
            await self.lifecycle.handle_reaction_remove(
                MessageID(payload.message_id), UserID(payload.user_id), str(payload.emoji)
            )
        except Exception:
            logger.exception("[REACTION LISTENER] Failed to handle reaction remove on %s", payload.message_id)


def setup(bot: discord.Bot, lifecycle: VoteLifecycle) -> None:
    """Register the ReactionListenerCog with the bot."""
    bot.add_cog(ReactionListenerCog(bot, lifecycle))
