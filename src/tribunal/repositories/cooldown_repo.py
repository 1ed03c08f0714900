"""Persistent storage for vote-initiation cooldowns."""

from __future__ import annotations

import aiosqlite

from tribunal.datatypes.discord_datatypes import GuildID, UserID


class CooldownRepo:
    """CRUD for the ``vote_cooldowns`` table (primary key = guild_id + user_id)."""

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> float | None:
        """Return the unix timestamp of the user's last vote initiation, if any."""
        cursor = await conn.execute(
            "SELECT last_vote_at FROM vote_cooldowns WHERE guild_id = ? AND user_id = ?",
            (guild_id.to_int(), user_id.to_int()),
        )
        row = await cursor.fetchone()
        return float(row[0]) if row is not None else None

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID, last_vote_at: float) -> None:
        await conn.execute(
            """
            INSERT INTO vote_cooldowns (guild_id, user_id, last_vote_at)
            VALUES (?, ?, ?)
            ON CONFLICT(guild_id, user_id) DO UPDATE SET
                last_vote_at = excluded.last_vote_at
            """,
            (guild_id.to_int(), user_id.to_int(), last_vote_at),
        )

    @staticmethod
    async def count(conn: aiosqlite.Connection, guild_id: GuildID) -> int:
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM vote_cooldowns WHERE guild_id = ?", (guild_id.to_int(),)
        )
        row = await cursor.fetchone()
        return int(row[0])


# Module-level singleton
cooldown_repo = CooldownRepo()
