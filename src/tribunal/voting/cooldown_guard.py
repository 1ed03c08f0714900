"""Per-initiator cooldown between vote starts."""

from __future__ import annotations

import math
import time

from tribunal.datatypes.discord_datatypes import GuildID, UserID
from tribunal.datatypes.vote_datatypes import CooldownStatus
from tribunal.voting.vote_store import VoteStore


class CooldownGuard:
    """Answers "may this user start a vote now?" from the persisted last-start time.

    A user is on cooldown while ``now - last_start < window``; the boundary
    instant itself is allowed.
    """

    def __init__(self, store: VoteStore, window_seconds: float) -> None:
        self.store = store
        self.window_seconds = window_seconds

    async def check(self, guild_id: GuildID, user_id: UserID, now: float | None = None) -> CooldownStatus:
        now = time.time() if now is None else now
        last_start = await self.store.get_cooldown(guild_id, user_id)
        if last_start is None:
            return CooldownStatus(on_cooldown=False)

        remaining = self.window_seconds - (now - last_start)
        if remaining <= 0:
            return CooldownStatus(on_cooldown=False)
        return CooldownStatus(on_cooldown=True, remaining_minutes=max(1, math.ceil(remaining / 60)))

    async def record(self, guild_id: GuildID, user_id: UserID, now: float | None = None) -> None:
        await self.store.set_cooldown(guild_id, user_id, time.time() if now is None else now)
