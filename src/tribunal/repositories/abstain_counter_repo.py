"""
Persistent storage for lifetime abstain counters.

The counter only ever grows. It is independent of the per-vote reaction
rows, so clearing a user's abstain reaction on a vote leaves it untouched.
"""

from __future__ import annotations

import aiosqlite

from tribunal.datatypes.discord_datatypes import GuildID, UserID


class AbstainCounterRepo:
    """CRUD for the ``abstain_counters`` table."""

    @staticmethod
    async def increment(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID, now: float) -> int:
        """Add one to the user's counter and return the new value.

        Must run inside a write transaction so the read-back sees this
        increment and no other.
        """
        await conn.execute(
            """
            INSERT INTO abstain_counters (guild_id, user_id, abstain_count, last_abstain_at)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(guild_id, user_id) DO UPDATE SET
                abstain_count   = abstain_count + 1,
                last_abstain_at = excluded.last_abstain_at
            """,
            (guild_id.to_int(), user_id.to_int(), now),
        )
        return await AbstainCounterRepo.get(conn, guild_id, user_id)

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> int:
        cursor = await conn.execute(
            "SELECT abstain_count FROM abstain_counters WHERE guild_id = ? AND user_id = ?",
            (guild_id.to_int(), user_id.to_int()),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0


# Module-level singleton
abstain_counter_repo = AbstainCounterRepo()
