"""
VoteLifecycle: the state machine behind community timeout votes.

A vote goes ``Active -> Completed`` exactly once, either when its duration
expires (``complete_vote``) or when an administrator cancels it
(``cancel_vote``). Both paths start with the store's atomic completion claim,
so concurrent or repeated calls finalize a vote at most once.

Nothing about a vote is cached between awaits. Every render and every
completion re-reads the vote and its tally from :class:`VoteStore`.

Platform failures never abort a lifecycle step. They are logged, and the
one that matters to users (the sanction timeout) is recorded on the result
as :attr:`VoteOutcome.FAILED`. Store failures propagate.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from tribunal.configuration.voting_settings import VotingSettings
from tribunal.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from tribunal.datatypes.vote_datatypes import ReactionKind, Vote, VoteOutcome, VoteResult, VoteStats
from tribunal.util.format_utils import format_duration
from tribunal.util.logger import get_logger
from tribunal.voting import vote_embed
from tribunal.voting.cooldown_guard import CooldownGuard
from tribunal.voting.errors import (
    AlreadyCompleted,
    ChannelNotFound,
    CooldownActive,
    DuplicateActiveVote,
    ReasonTooLong,
    RoleRequired,
    TargetIsAdmin,
    TargetNotMember,
    VoteNotFound,
    VotePostFailed,
)
from tribunal.voting.platform import ModerationPlatform
from tribunal.voting.sanctions import abstain_penalty_seconds, clamp_timeout, resolve_threshold
from tribunal.voting.vote_store import VoteStore
from tribunal.voting.weight_policy import WeightPolicy

if TYPE_CHECKING:
    from tribunal.scheduler.completion_scheduler import CompletionScheduler

logger = get_logger("vote_lifecycle")


class VoteLifecycle:
    """Start, tally, complete and cancel timeout votes.

    Args:
        store: Durable vote storage.
        platform: Chat platform adapter.
        settings: Voting configuration.
        clock: Returns the current unix time; injectable for tests.
    """

    def __init__(
        self,
        store: VoteStore,
        platform: ModerationPlatform,
        settings: VotingSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.platform = platform
        self.settings = settings
        self.clock = clock
        self.weights = WeightPolicy(platform, settings.booster_role_name)
        self.cooldowns = CooldownGuard(store, settings.cooldown_seconds)
        self.scheduler: Optional["CompletionScheduler"] = None

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start_vote(
        self,
        guild_id: GuildID,
        initiator_id: UserID,
        target_id: UserID,
        reason: str,
    ) -> Vote:
        """Open a new vote against ``target_id``.

        Raises:
            ReasonTooLong, RoleRequired, TargetNotMember, TargetIsAdmin,
            CooldownActive, DuplicateActiveVote, ChannelNotFound: a precondition
                failed; nothing was written.
            VotePostFailed: the tally message could not be posted; the vote
                was recorded and immediately closed as failed.
        """
        now = self.clock()
        reason = reason.strip()
        if len(reason) > self.settings.reason_max_length:
            raise ReasonTooLong(self.settings.reason_max_length)

        initiator = await self._fetch_member(guild_id, initiator_id)
        if initiator is None or not self.platform.has_role(initiator, self.settings.required_role_name):
            raise RoleRequired(self.settings.required_role_name)

        target = await self._fetch_member(guild_id, target_id)
        if target is None:
            raise TargetNotMember()
        if self.platform.is_administrator(target):
            raise TargetIsAdmin()

        status = await self.cooldowns.check(guild_id, initiator_id, now)
        if status.on_cooldown:
            raise CooldownActive(status.remaining_minutes)

        if await self.store.has_active_against(guild_id, target_id):
            raise DuplicateActiveVote()

        channel_id = await self.platform.find_text_channel(guild_id, self.settings.moderation_channel_name)
        if channel_id is None:
            raise ChannelNotFound(self.settings.moderation_channel_name)

        vote = Vote(
            vote_id=uuid.uuid4().hex,
            guild_id=guild_id,
            target_id=target_id,
            initiator_id=initiator_id,
            reason=reason,
            started_at=now,
            channel_id=channel_id,
        )
        await self.store.create(vote)

        try:
            message_id = await self.platform.send_embed(channel_id, self._render_active(vote, now))
        except Exception as exc:
            logger.error("[VOTE LIFECYCLE] Failed to post vote %s: %s", vote.vote_id, exc)
            await self._close_unposted(vote, str(exc))
            raise VotePostFailed() from exc

        vote.message_id = message_id
        await self.store.attach_message(vote.vote_id, message_id)

        for kind in ReactionKind:
            try:
                await self.platform.add_reaction(channel_id, message_id, kind.emoji)
            except Exception as exc:
                logger.warning("[VOTE LIFECYCLE] Could not add %s to vote %s: %s", kind.emoji, vote.vote_id, exc)

        await self.cooldowns.record(guild_id, initiator_id, now)

        if self.scheduler is not None:
            await self.scheduler.schedule(vote.vote_id, self.settings.vote_duration_seconds)

        await self.platform.send_dm(
            target_id,
            f"⚖️ A timeout vote has been started against you in **{self.platform.guild_name(guild_id)}**.\n"
            f"**Reason:** {reason}\n"
            f"**Started by:** {initiator_id.mention()}\n"
            f"The vote closes in {format_duration(int(self.settings.vote_duration_seconds))}.",
        )

        logger.info(
            "[VOTE LIFECYCLE] Vote %s started by %s against %s in guild %s",
            vote.vote_id, initiator_id, target_id, guild_id,
        )
        return vote

    async def _close_unposted(self, vote: Vote, error: str) -> None:
        result = VoteResult(up_votes=0, down_votes=0, net_votes=0, outcome=VoteOutcome.FAILED, error=error)
        if await self.store.claim_completion(vote.vote_id, self.clock()):
            await self.store.record_result(vote.vote_id, result)

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    async def handle_reaction_add(self, message_id: MessageID, user_id: UserID, emoji: str) -> None:
        """Apply a reaction added to a message.

        Messages that are not vote messages are ignored. On a vote message,
        foreign emojis and any reaction on a completed vote are stripped.
        """
        vote = await self.store.get_by_message_id(message_id)
        if vote is None:
            return

        kind = ReactionKind.from_emoji(emoji)
        if kind is None:
            await self._strip(vote, emoji, user_id)
            return

        if vote.completed:
            logger.debug("[VOTE LIFECYCLE] Stripping late %s reaction on vote %s", kind, vote.vote_id)
            await self._strip(vote, emoji, user_id)
            return

        if kind is ReactionKind.ABSTAIN:
            await self._handle_abstain(vote, user_id)
            return

        member = await self._fetch_member(vote.guild_id, user_id)
        weight = self.weights.weight_of(member)
        previous = vote.tally.kind_of(user_id)

        if not await self.store.set_reaction(vote.vote_id, user_id, kind, weight):
            # Completion was claimed while we were looking up the weight.
            await self._strip(vote, emoji, user_id)
            return

        if previous is not None and previous is not kind and previous is not ReactionKind.ABSTAIN:
            await self._strip(vote, previous.emoji, user_id)

        logger.debug("[VOTE LIFECYCLE] %s cast %s (weight %d) on vote %s", user_id, kind, weight, vote.vote_id)
        await self.refresh_message(vote.vote_id)

    async def handle_reaction_remove(self, message_id: MessageID, user_id: UserID, emoji: str) -> None:
        """Apply a removed approve or reject reaction. Other removals are ignored."""
        kind = ReactionKind.from_emoji(emoji)
        if kind not in (ReactionKind.APPROVE, ReactionKind.REJECT):
            return

        vote = await self.store.get_by_message_id(message_id)
        if vote is None or vote.completed:
            return

        # Conditional on kind, so the removal caused by switching sides is a no-op.
        if await self.store.delete_reaction(vote.vote_id, user_id, kind):
            await self.refresh_message(vote.vote_id)

    async def _handle_abstain(self, vote: Vote, user_id: UserID) -> None:
        try:
            previous = vote.tally.kind_of(user_id)
            count = await self.store.record_abstain(vote.vote_id, vote.guild_id, user_id, self.clock())
            if count is None:
                logger.debug("[VOTE LIFECYCLE] Ignoring late abstain from %s on vote %s", user_id, vote.vote_id)
                return
            if previous in (ReactionKind.APPROVE, ReactionKind.REJECT):
                await self._strip(vote, previous.emoji, user_id)
                await self.refresh_message(vote.vote_id)

            member = await self._fetch_member(vote.guild_id, user_id)
            if member is None:
                logger.warning("[VOTE LIFECYCLE] Abstaining user %s is not a member; no timeout applied", user_id)
                return
            if self.settings.exempt_administrators and self.platform.is_administrator(member):
                logger.info("[VOTE LIFECYCLE] Administrator %s abstained (count=%d); exempt", user_id, count)
                return

            seconds = abstain_penalty_seconds(count, self.settings.abstain_base_penalty_seconds)
            try:
                await self.platform.timeout(member, seconds, f"Abstained on a community vote ({count} time(s))")
            except Exception as exc:
                logger.warning("[VOTE LIFECYCLE] Abstain timeout for %s failed: %s", user_id, exc)
                return

            logger.info("[VOTE LIFECYCLE] %s timed out for %ss after abstain #%d", user_id, seconds, count)
            await self._notify_channel(
                vote.channel_id,
                f"{user_id.mention()} received a {format_duration(seconds)} timeout for abstaining "
                f"({count} time(s)).",
            )
        finally:
            await self._strip(vote, ReactionKind.ABSTAIN.emoji, user_id)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render_active(self, vote: Vote, now: float):
        return vote_embed.build_vote_embed(
            vote, self.settings.thresholds, self.settings.vote_duration_seconds, now
        )

    async def refresh_message(self, vote_id: str) -> None:
        """Re-render an active vote's tally message from the stored state."""
        vote = await self.store.get_by_id(vote_id)
        if vote is None or vote.completed or vote.message_id is None:
            return
        try:
            await self.platform.edit_embed(vote.channel_id, vote.message_id, self._render_active(vote, self.clock()))
        except Exception as exc:
            logger.warning("[VOTE LIFECYCLE] Could not refresh message for vote %s: %s", vote_id, exc)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete_vote(self, vote_id: str) -> Optional[VoteResult]:
        """Finalize an expired vote.

        Safe to call any number of times, concurrently. Only the caller that
        wins the completion claim applies a sanction; every other call
        returns None.
        """
        if not await self.store.claim_completion(vote_id, self.clock()):
            logger.debug("[VOTE LIFECYCLE] Vote %s already completed; skipping", vote_id)
            return None

        vote = await self.store.get_by_id(vote_id)
        if vote is None:
            return None

        tally = vote.tally
        net = tally.net_votes
        threshold = resolve_threshold(net, self.settings.thresholds)

        if threshold is not None:
            result = await self._apply_sanction(vote, threshold.duration_seconds, threshold.label)
        else:
            result = VoteResult(
                up_votes=tally.approve_weight,
                down_votes=tally.reject_weight,
                net_votes=net,
                outcome=VoteOutcome.REJECTED,
            )
            await self._penalize_initiator(vote)

        await self.store.record_result(vote.vote_id, result)
        vote.result = result

        await self._edit_terminal(vote, vote_embed.build_result_embed(vote, result))
        await self.platform.send_dm(vote.target_id, self._completion_dm(vote, result))
        if self.scheduler is not None:
            await self.scheduler.cancel(vote.vote_id)

        logger.info(
            "[VOTE LIFECYCLE] Vote %s completed: %s (net=%d)", vote.vote_id, result.outcome, result.net_votes
        )
        return result

    async def _apply_sanction(self, vote: Vote, duration_seconds: int, label: str) -> VoteResult:
        tally = vote.tally
        result = VoteResult(
            up_votes=tally.approve_weight,
            down_votes=tally.reject_weight,
            net_votes=tally.net_votes,
            outcome=VoteOutcome.SANCTIONED,
            sanction_label=label,
            sanction_seconds=clamp_timeout(duration_seconds),
        )

        member = await self._fetch_member(vote.guild_id, vote.target_id)
        if member is None:
            result.outcome = VoteOutcome.FAILED
            result.error = "The target is no longer a member of the server."
            logger.warning("[VOTE LIFECYCLE] Vote %s target %s left; no timeout applied", vote.vote_id, vote.target_id)
            return result

        try:
            await self.platform.timeout(member, result.sanction_seconds, f"Community vote: {vote.reason}")
        except Exception as exc:
            result.outcome = VoteOutcome.FAILED
            result.error = str(exc) or type(exc).__name__
            logger.error("[VOTE LIFECYCLE] Timeout for vote %s failed: %s", vote.vote_id, exc)
        return result

    async def _penalize_initiator(self, vote: Vote) -> None:
        member = await self._fetch_member(vote.guild_id, vote.initiator_id)
        if member is None:
            logger.warning("[VOTE LIFECYCLE] Initiator %s of vote %s not found; no penalty", vote.initiator_id, vote.vote_id)
            return
        if self.settings.exempt_administrators and self.platform.is_administrator(member):
            logger.debug("[VOTE LIFECYCLE] Initiator %s is an administrator; no penalty", vote.initiator_id)
            return
        try:
            await self.platform.timeout(
                member,
                clamp_timeout(self.settings.rejection_penalty_seconds),
                "Vote rejected: penalty for a failed vote",
            )
        except Exception as exc:
            logger.warning("[VOTE LIFECYCLE] Initiator penalty for vote %s failed: %s", vote.vote_id, exc)

    def _completion_dm(self, vote: Vote, result: VoteResult) -> str:
        guild_name = self.platform.guild_name(vote.guild_id)
        counts = (
            f"**Votes:** {ReactionKind.APPROVE.emoji} {result.up_votes} | "
            f"{ReactionKind.REJECT.emoji} {result.down_votes} ({result.net_votes} net)"
        )
        if result.outcome is VoteOutcome.SANCTIONED:
            return (
                f"⚠️ You have been timed out for **{format_duration(result.sanction_seconds)}** in **{guild_name}**.\n"
                f"**Reason:** {vote.reason}\n{counts}"
            )
        if result.outcome is VoteOutcome.FAILED:
            return f"⚖️ The timeout vote against you in **{guild_name}** has closed.\n{counts}"
        return f"✅ The timeout vote against you in **{guild_name}** was rejected.\n{counts}"

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_vote(
        self, vote_id: str, cancelled_by: UserID, guild_id: Optional[GuildID] = None
    ) -> VoteResult:
        """Close an active vote without any sanction.

        When ``guild_id`` is given, a vote from another guild is treated as
        unknown.

        Raises:
            VoteNotFound: no vote has this id (in ``guild_id``).
            AlreadyCompleted: the vote was already completed, or completed
                while this call was in flight.
        """
        vote = await self.store.get_by_id(vote_id)
        if vote is None or (guild_id is not None and vote.guild_id != guild_id):
            raise VoteNotFound()
        if vote.completed:
            raise AlreadyCompleted()
        if not await self.store.claim_completion(vote_id, self.clock()):
            raise AlreadyCompleted()

        vote = await self.store.get_by_id(vote_id) or vote
        tally = vote.tally
        result = VoteResult(
            up_votes=tally.approve_weight,
            down_votes=tally.reject_weight,
            net_votes=tally.net_votes,
            outcome=VoteOutcome.CANCELLED,
            cancelled_by=cancelled_by,
        )
        await self.store.record_result(vote_id, result)
        vote.result = result

        await self._edit_terminal(vote, vote_embed.build_cancelled_embed(vote, result))
        await self.platform.send_dm(
            vote.target_id,
            f"✅ The timeout vote against you in **{self.platform.guild_name(vote.guild_id)}** "
            f"was cancelled by an administrator.",
        )
        if self.scheduler is not None:
            await self.scheduler.cancel(vote_id)

        logger.info("[VOTE LIFECYCLE] Vote %s cancelled by %s", vote_id, cancelled_by)
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_active_votes(self) -> List[Vote]:
        return await self.store.list_active()

    async def get_stats(self, guild_id: GuildID) -> VoteStats:
        return await self.store.get_stats(guild_id)

    # ------------------------------------------------------------------
    # Platform helpers
    # ------------------------------------------------------------------

    async def _fetch_member(self, guild_id: GuildID, user_id: UserID) -> Optional[Any]:
        try:
            return await self.platform.fetch_member(guild_id, user_id)
        except Exception as exc:
            logger.warning("[VOTE LIFECYCLE] Member lookup for %s failed: %s", user_id, exc)
            return None

    async def _strip(self, vote: Vote, emoji: str, user_id: UserID) -> None:
        if vote.message_id is None:
            return
        try:
            await self.platform.remove_reaction(vote.channel_id, vote.message_id, emoji, user_id)
        except Exception as exc:
            logger.warning("[VOTE LIFECYCLE] Could not remove %s from %s on vote %s: %s", emoji, user_id, vote.vote_id, exc)

    async def _edit_terminal(self, vote: Vote, embed) -> None:
        if vote.message_id is None:
            return
        try:
            await self.platform.edit_embed(vote.channel_id, vote.message_id, embed)
        except Exception as exc:
            logger.warning("[VOTE LIFECYCLE] Could not update final message for vote %s: %s", vote.vote_id, exc)

    async def _notify_channel(self, channel_id: ChannelID, content: str) -> None:
        try:
            await self.platform.send_message(channel_id, content)
        except Exception as exc:
            logger.warning("[VOTE LIFECYCLE] Could not post notice to channel %s: %s", channel_id, exc)
