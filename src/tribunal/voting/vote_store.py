"""
VoteStore: the durable source of truth for votes, reactions and cooldowns.

This module coordinates the table repositories behind one object so the
lifecycle code never touches SQL. Every multi-step write runs inside a
single :meth:`ConnectionManager.transaction`, which is what gives the
lifecycle its atomic primitives:

- ``create`` relies on the partial unique index to reject a second active
  vote against the same target.
- ``claim_completion`` is a conditional UPDATE; exactly one caller wins.
- ``set_reaction`` checks the vote is still active and writes the reaction
  in the same transaction, so no reaction can land after a claim.
  ``record_abstain`` does the same for the abstain counter.
"""

from __future__ import annotations

import sqlite3
import time
from typing import List

from tribunal.database.db_connection import ConnectionManager, db_connection
from tribunal.datatypes.discord_datatypes import GuildID, MessageID, UserID
from tribunal.datatypes.vote_datatypes import ReactionKind, Vote, VoteResult, VoteStats
from tribunal.repositories.abstain_counter_repo import abstain_counter_repo
from tribunal.repositories.cooldown_repo import cooldown_repo
from tribunal.repositories.vote_reaction_repo import vote_reaction_repo
from tribunal.repositories.vote_repo import vote_repo
from tribunal.util.logger import get_logger
from tribunal.voting.errors import DuplicateActiveVote

logger = get_logger("vote_store")


class VoteStore:
    """Async facade over the vote tables.

    Args:
        connection: Connection manager to use; defaults to the process-wide one.
    """

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._db = connection

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    async def create(self, vote: Vote) -> Vote:
        """Persist a new active vote.

        Raises:
            DuplicateActiveVote: another active vote already targets the same member.
        """
        try:
            async with self._db.transaction() as conn:
                await vote_repo.insert(conn, vote)
        except sqlite3.IntegrityError as exc:
            logger.debug("[VOTE STORE] Insert for %s rejected: %s", vote.target_id, exc)
            raise DuplicateActiveVote() from exc

        logger.debug("[VOTE STORE] Created vote %s against %s", vote.vote_id, vote.target_id)
        return vote

    async def attach_message(self, vote_id: str, message_id: MessageID) -> None:
        async with self._db.transaction() as conn:
            await vote_repo.set_message(conn, vote_id, message_id)

    async def get_by_id(self, vote_id: str) -> Vote | None:
        """Load a vote together with its current tally."""
        async with self._db.read() as conn:
            vote = await vote_repo.get(conn, vote_id)
            if vote is not None:
                vote.tally = await vote_reaction_repo.load_tally(conn, vote_id)
        return vote

    async def get_by_message_id(self, message_id: MessageID) -> Vote | None:
        async with self._db.read() as conn:
            vote = await vote_repo.get_by_message(conn, message_id)
            if vote is not None:
                vote.tally = await vote_reaction_repo.load_tally(conn, vote.vote_id)
        return vote

    async def list_active(self) -> List[Vote]:
        async with self._db.read() as conn:
            votes = await vote_repo.list_active(conn)
            for vote in votes:
                vote.tally = await vote_reaction_repo.load_tally(conn, vote.vote_id)
        return votes

    async def has_active_against(self, guild_id: GuildID, target_id: UserID) -> bool:
        async with self._db.read() as conn:
            return await vote_repo.has_active_against(conn, guild_id, target_id)

    async def claim_completion(self, vote_id: str, ended_at: float | None = None) -> bool:
        """Atomically mark a vote completed.

        Returns:
            True for the single caller that performed the transition, False
            for everyone who found it already completed (or missing).
        """
        async with self._db.transaction() as conn:
            claimed = await vote_repo.claim_completion(conn, vote_id, ended_at if ended_at is not None else time.time())

        if claimed:
            logger.debug("[VOTE STORE] Claimed completion of vote %s", vote_id)
        return claimed

    async def record_result(self, vote_id: str, result: VoteResult) -> None:
        async with self._db.transaction() as conn:
            await vote_repo.record_result(conn, vote_id, result)

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    async def set_reaction(self, vote_id: str, user_id: UserID, kind: ReactionKind, weight: int) -> bool:
        """Put the user in ``kind``'s bucket, clearing the other two.

        Returns:
            False (and writes nothing) when the vote is no longer active.
        """
        async with self._db.transaction() as conn:
            if not await vote_repo.is_active(conn, vote_id):
                return False
            await vote_reaction_repo.upsert(conn, vote_id, user_id, kind, weight)
        return True

    async def delete_reaction(self, vote_id: str, user_id: UserID, kind: ReactionKind) -> bool:
        """Remove the user's ``kind`` reaction while the vote is active.

        Returns:
            True if a row was removed.
        """
        async with self._db.transaction() as conn:
            if not await vote_repo.is_active(conn, vote_id):
                return False
            return await vote_reaction_repo.delete(conn, vote_id, user_id, kind)

    # ------------------------------------------------------------------
    # Abstain counters
    # ------------------------------------------------------------------

    async def record_abstain(
        self, vote_id: str, guild_id: GuildID, user_id: UserID, now: float | None = None
    ) -> int | None:
        """Count an abstain and put the user in the ABSTAIN bucket with that weight.

        Both writes share one transaction with the activity check, so an
        abstain that lands after completion leaves the counter untouched.

        Returns:
            The new lifetime count, or None when the vote is no longer active.
        """
        async with self._db.transaction() as conn:
            if not await vote_repo.is_active(conn, vote_id):
                return None
            count = await abstain_counter_repo.increment(
                conn, guild_id, user_id, now if now is not None else time.time()
            )
            await vote_reaction_repo.upsert(conn, vote_id, user_id, ReactionKind.ABSTAIN, count)
        return count

    async def get_abstain_count(self, guild_id: GuildID, user_id: UserID) -> int:
        async with self._db.read() as conn:
            return await abstain_counter_repo.get(conn, guild_id, user_id)

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------

    async def get_cooldown(self, guild_id: GuildID, user_id: UserID) -> float | None:
        async with self._db.read() as conn:
            return await cooldown_repo.get(conn, guild_id, user_id)

    async def set_cooldown(self, guild_id: GuildID, user_id: UserID, timestamp: float) -> None:
        async with self._db.transaction() as conn:
            await cooldown_repo.upsert(conn, guild_id, user_id, timestamp)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_stats(self, guild_id: GuildID) -> VoteStats:
        async with self._db.read() as conn:
            active, completed, sanctioned = await vote_repo.count_by_state(conn, guild_id)
            cooldowns = await cooldown_repo.count(conn, guild_id)
        return VoteStats(
            active_votes=active,
            completed_votes=completed,
            sanctioned_votes=sanctioned,
            tracked_cooldowns=cooldowns,
        )
