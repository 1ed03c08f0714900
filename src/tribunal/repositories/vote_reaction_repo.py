"""
Persistent storage for per-user vote reactions.

The primary key is ``(vote_id, user_id)``: a user has at most one row per
vote, and writing a new kind replaces the old one.
"""

from __future__ import annotations

import aiosqlite

from tribunal.datatypes.discord_datatypes import UserID
from tribunal.datatypes.vote_datatypes import ReactionKind, VoteTally


class VoteReactionRepo:
    """Low-level CRUD for the ``vote_reactions`` table."""

    @staticmethod
    async def upsert(
        conn: aiosqlite.Connection,
        vote_id: str,
        user_id: UserID,
        kind: ReactionKind,
        weight: int,
    ) -> None:
        """Set the user's reaction for a vote, replacing any previous kind."""
        await conn.execute(
            """
            INSERT INTO vote_reactions (vote_id, user_id, kind, weight)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(vote_id, user_id) DO UPDATE SET
                kind       = excluded.kind,
                weight     = excluded.weight,
                updated_at = CURRENT_TIMESTAMP
            """,
            (vote_id, user_id.to_int(), kind.value, weight),
        )

    @staticmethod
    async def delete(
        conn: aiosqlite.Connection,
        vote_id: str,
        user_id: UserID,
        kind: ReactionKind,
    ) -> bool:
        """Remove the user's reaction if it is still of ``kind``. Returns True if a row went away."""
        cursor = await conn.execute(
            "DELETE FROM vote_reactions WHERE vote_id = ? AND user_id = ? AND kind = ?",
            (vote_id, user_id.to_int(), kind.value),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def load_tally(conn: aiosqlite.Connection, vote_id: str) -> VoteTally:
        cursor = await conn.execute(
            "SELECT user_id, kind, weight FROM vote_reactions WHERE vote_id = ?",
            (vote_id,),
        )
        rows = await cursor.fetchall()

        tally = VoteTally()
        for user_id, kind, weight in rows:
            tally.bucket(ReactionKind(kind))[UserID(user_id)] = weight
        return tally


# Module-level singleton
vote_reaction_repo = VoteReactionRepo()
