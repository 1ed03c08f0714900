"""
Chat platform adapter used by the vote lifecycle.

The lifecycle only talks to :class:`ModerationPlatform`, a structural
protocol; :class:`DiscordModerationPlatform` implements it on top of a
py-cord ``discord.Bot``. Tests substitute an in-memory fake.

Calls that fail on the Discord side raise ``discord.HTTPException`` (or a
subclass); the lifecycle decides per call whether such a failure is fatal.
"""

from __future__ import annotations

import datetime
from typing import Any, Optional, Protocol

import discord

from tribunal.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from tribunal.util.logger import get_logger

logger = get_logger("platform")


class ModerationPlatform(Protocol):
    """Operations the vote engine needs from the chat platform."""

    async def fetch_member(self, guild_id: GuildID, user_id: UserID) -> Optional[Any]: ...

    def guild_name(self, guild_id: GuildID) -> str: ...

    def has_role(self, member: Any, role_name: str) -> bool: ...

    def is_administrator(self, member: Any) -> bool: ...

    async def timeout(self, member: Any, seconds: int, reason: str) -> None: ...

    async def find_text_channel(self, guild_id: GuildID, name: str) -> Optional[ChannelID]: ...

    async def send_embed(self, channel_id: ChannelID, embed: discord.Embed) -> MessageID: ...

    async def send_message(self, channel_id: ChannelID, content: str) -> None: ...

    async def edit_embed(self, channel_id: ChannelID, message_id: MessageID, embed: discord.Embed) -> None: ...

    async def add_reaction(self, channel_id: ChannelID, message_id: MessageID, emoji: str) -> None: ...

    async def remove_reaction(
        self, channel_id: ChannelID, message_id: MessageID, emoji: str, user_id: UserID
    ) -> None: ...

    async def send_dm(self, user_id: UserID, content: str) -> bool: ...


class DiscordModerationPlatform:
    """:class:`ModerationPlatform` backed by a live py-cord bot."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def fetch_member(self, guild_id: GuildID, user_id: UserID) -> Optional[discord.Member]:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            logger.warning("[PLATFORM] Guild %s is not cached", guild_id)
            return None

        member = guild.get_member(user_id.to_int())
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id.to_int())
        except discord.NotFound:
            return None

    def guild_name(self, guild_id: GuildID) -> str:
        guild = self.bot.get_guild(guild_id.to_int())
        return guild.name if guild is not None else "the server"

    def has_role(self, member: discord.Member, role_name: str) -> bool:
        return any(role.name == role_name for role in getattr(member, "roles", ()))

    def is_administrator(self, member: discord.Member) -> bool:
        perms = getattr(member, "guild_permissions", None)
        return bool(perms and perms.administrator)

    async def timeout(self, member: discord.Member, seconds: int, reason: str) -> None:
        until = discord.utils.utcnow() + datetime.timedelta(seconds=seconds)
        await member.timeout(until, reason=reason)
        logger.debug("[PLATFORM] Timed out %s for %ss", member.id, seconds)

    # ------------------------------------------------------------------
    # Channels and messages
    # ------------------------------------------------------------------

    async def find_text_channel(self, guild_id: GuildID, name: str) -> Optional[ChannelID]:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            return None
        channel = discord.utils.get(guild.text_channels, name=name)
        return ChannelID(channel.id) if channel is not None else None

    async def _resolve_channel(self, channel_id: ChannelID) -> discord.abc.Messageable:
        channel = self.bot.get_channel(channel_id.to_int())
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id.to_int())
        return channel  # type: ignore[return-value]

    async def send_embed(self, channel_id: ChannelID, embed: discord.Embed) -> MessageID:
        channel = await self._resolve_channel(channel_id)
        message = await channel.send(embed=embed)
        return MessageID(message.id)

    async def send_message(self, channel_id: ChannelID, content: str) -> None:
        channel = await self._resolve_channel(channel_id)
        await channel.send(content)

    async def edit_embed(self, channel_id: ChannelID, message_id: MessageID, embed: discord.Embed) -> None:
        channel = await self._resolve_channel(channel_id)
        await channel.get_partial_message(message_id.to_int()).edit(embed=embed)  # type: ignore[attr-defined]

    async def add_reaction(self, channel_id: ChannelID, message_id: MessageID, emoji: str) -> None:
        channel = await self._resolve_channel(channel_id)
        await channel.get_partial_message(message_id.to_int()).add_reaction(emoji)  # type: ignore[attr-defined]

    async def remove_reaction(
        self, channel_id: ChannelID, message_id: MessageID, emoji: str, user_id: UserID
    ) -> None:
        channel = await self._resolve_channel(channel_id)
        partial = channel.get_partial_message(message_id.to_int())  # type: ignore[attr-defined]
        await partial.remove_reaction(emoji, discord.Object(id=user_id.to_int()))

    # ------------------------------------------------------------------
    # Direct messages
    # ------------------------------------------------------------------

    async def send_dm(self, user_id: UserID, content: str) -> bool:
        """DM a user. Returns False instead of raising when delivery fails."""
        try:
            user = self.bot.get_user(user_id.to_int()) or await self.bot.fetch_user(user_id.to_int())
            await user.send(content)
            return True
        except discord.HTTPException as exc:
            logger.debug("[PLATFORM] Could not DM %s: %s", user_id, exc)
            return False
