"""
Low-level storage for the ``votes`` table.

Every method takes an open connection; callers decide whether they run
inside a write transaction. Timestamps are REAL unix seconds.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from tribunal.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from tribunal.datatypes.vote_datatypes import Vote, VoteOutcome, VoteResult
from tribunal.util.logger import get_logger

logger = get_logger("vote_repo")

_COLUMNS = (
    "vote_id, guild_id, target_user_id, initiator_id, reason, started_at, channel_id, "
    "message_id, completed, ended_at, outcome, final_up_votes, final_down_votes, "
    "final_net_votes, sanction_label, sanction_seconds, error, cancelled_by"
)


def _row_to_vote(row: aiosqlite.Row) -> Vote:
    result = None
    if row["outcome"] is not None:
        result = VoteResult(
            up_votes=row["final_up_votes"] or 0,
            down_votes=row["final_down_votes"] or 0,
            net_votes=row["final_net_votes"] or 0,
            outcome=VoteOutcome(row["outcome"]),
            sanction_label=row["sanction_label"],
            sanction_seconds=row["sanction_seconds"] or 0,
            error=row["error"],
            cancelled_by=UserID(row["cancelled_by"]) if row["cancelled_by"] is not None else None,
        )

    return Vote(
        vote_id=row["vote_id"],
        guild_id=GuildID(row["guild_id"]),
        target_id=UserID(row["target_user_id"]),
        initiator_id=UserID(row["initiator_id"]),
        reason=row["reason"],
        started_at=row["started_at"],
        channel_id=ChannelID(row["channel_id"]),
        message_id=MessageID(row["message_id"]) if row["message_id"] is not None else None,
        completed=bool(row["completed"]),
        ended_at=row["ended_at"],
        result=result,
    )


class VoteRepo:
    """CRUD for the ``votes`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(conn: aiosqlite.Connection, vote: Vote) -> None:
        """Insert a new active vote.

        Raises:
            sqlite3.IntegrityError: if the target already has an active vote
                in this guild (partial unique index).
        """
        await conn.execute(
            """
            INSERT INTO votes (
                vote_id, guild_id, target_user_id, initiator_id, reason,
                started_at, channel_id, message_id, completed
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
            """,
            (
                vote.vote_id,
                vote.guild_id.to_int(),
                vote.target_id.to_int(),
                vote.initiator_id.to_int(),
                vote.reason,
                vote.started_at,
                vote.channel_id.to_int(),
                vote.message_id.to_int() if vote.message_id is not None else None,
            ),
        )

    @staticmethod
    async def set_message(conn: aiosqlite.Connection, vote_id: str, message_id: MessageID) -> None:
        await conn.execute(
            "UPDATE votes SET message_id = ? WHERE vote_id = ?",
            (message_id.to_int(), vote_id),
        )

    @staticmethod
    async def claim_completion(conn: aiosqlite.Connection, vote_id: str, ended_at: float) -> bool:
        """Flip ``completed`` from 0 to 1. Returns True only for the caller that flipped it."""
        cursor = await conn.execute(
            "UPDATE votes SET completed = 1, ended_at = ? WHERE vote_id = ? AND completed = 0",
            (ended_at, vote_id),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def record_result(conn: aiosqlite.Connection, vote_id: str, result: VoteResult) -> None:
        await conn.execute(
            """
            UPDATE votes SET
                outcome          = ?,
                final_up_votes   = ?,
                final_down_votes = ?,
                final_net_votes  = ?,
                sanction_applied = ?,
                sanction_label   = ?,
                sanction_seconds = ?,
                error            = ?,
                cancelled_by     = ?
            WHERE vote_id = ?
            """,
            (
                result.outcome.value,
                result.up_votes,
                result.down_votes,
                result.net_votes,
                int(result.sanction_applied),
                result.sanction_label,
                result.sanction_seconds,
                result.error,
                result.cancelled_by.to_int() if result.cancelled_by is not None else None,
                vote_id,
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, vote_id: str) -> Vote | None:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM votes WHERE vote_id = ?", (vote_id,))
        row = await cursor.fetchone()
        return _row_to_vote(row) if row is not None else None

    @staticmethod
    async def get_by_message(conn: aiosqlite.Connection, message_id: MessageID) -> Vote | None:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM votes WHERE message_id = ?", (message_id.to_int(),)
        )
        row = await cursor.fetchone()
        return _row_to_vote(row) if row is not None else None

    @staticmethod
    async def list_active(conn: aiosqlite.Connection) -> List[Vote]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM votes WHERE completed = 0 ORDER BY started_at"
        )
        rows = await cursor.fetchall()
        return [_row_to_vote(row) for row in rows]

    @staticmethod
    async def is_active(conn: aiosqlite.Connection, vote_id: str) -> bool:
        cursor = await conn.execute(
            "SELECT 1 FROM votes WHERE vote_id = ? AND completed = 0 LIMIT 1", (vote_id,)
        )
        return await cursor.fetchone() is not None

    @staticmethod
    async def has_active_against(conn: aiosqlite.Connection, guild_id: GuildID, target_id: UserID) -> bool:
        cursor = await conn.execute(
            "SELECT 1 FROM votes WHERE guild_id = ? AND target_user_id = ? AND completed = 0 LIMIT 1",
            (guild_id.to_int(), target_id.to_int()),
        )
        return await cursor.fetchone() is not None

    @staticmethod
    async def count_by_state(conn: aiosqlite.Connection, guild_id: GuildID) -> tuple[int, int, int]:
        """Return ``(active, completed, sanctioned)`` vote counts for one guild."""
        cursor = await conn.execute(
            """
            SELECT
                COALESCE(SUM(CASE WHEN completed = 0 THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN completed = 1 THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(sanction_applied), 0)
            FROM votes
            WHERE guild_id = ?
            """,
            (guild_id.to_int(),),
        )
        row = await cursor.fetchone()
        return int(row[0]), int(row[1]), int(row[2])


# Module-level singleton
vote_repo = VoteRepo()
