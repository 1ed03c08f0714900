import asyncio
from unittest.mock import AsyncMock

import pytest

from tribunal.configuration.voting_settings import VotingSettings
from tribunal.datatypes.discord_datatypes import GuildID, MessageID, UserID
from tribunal.datatypes.vote_datatypes import VoteOutcome
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
from tribunal.voting.vote_lifecycle import VoteLifecycle

GUILD = GuildID(1)
INITIATOR = UserID(10)
TARGET = UserID(20)
ADMIN = UserID(30)

APPROVE, REJECT, ABSTAIN = "👍", "👎", "⬜"


async def _start(lifecycle, initiator=INITIATOR, target=TARGET):
    return await lifecycle.start_vote(GUILD, initiator, target, "spamming the general channel")


async def _react(lifecycle, vote, emoji, *user_ids):
    for user_id in user_ids:
        await lifecycle.handle_reaction_add(vote.message_id, UserID(user_id), emoji)


# ----------------------------------------------------------------------
# Start
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_vote_posts_message_and_records_state(lifecycle, platform, store, clock):
    vote = await _start(lifecycle)

    stored = await store.get_by_id(vote.vote_id)
    assert stored.completed is False
    assert stored.message_id == vote.message_id
    assert stored.reason == "spamming the general channel"

    assert len(platform.sent_embeds) == 1
    assert platform.reactions_added == [(vote.message_id, APPROVE), (vote.message_id, REJECT), (vote.message_id, ABSTAIN)]
    assert await store.get_cooldown(GUILD, INITIATOR) == clock.now
    assert platform.dms and platform.dms[0][0] == TARGET.to_int()
    assert await store.has_active_against(GUILD, TARGET) is True


@pytest.mark.asyncio
async def test_initiator_without_role_is_rejected(lifecycle, platform):
    outsider = UserID(11)
    platform.add_member(outsider)

    with pytest.raises(RoleRequired):
        await _start(lifecycle, initiator=outsider)
    with pytest.raises(RoleRequired):
        await _start(lifecycle, initiator=UserID(12345))


@pytest.mark.asyncio
async def test_administrators_cannot_be_targeted(lifecycle, store, platform):
    with pytest.raises(TargetIsAdmin):
        await _start(lifecycle, target=ADMIN)

    stats = await store.get_stats(GUILD)
    assert stats.active_votes == 0
    assert await store.get_cooldown(GUILD, INITIATOR) is None
    assert platform.sent_embeds == []


@pytest.mark.asyncio
async def test_target_must_be_a_member(lifecycle):
    with pytest.raises(TargetNotMember):
        await _start(lifecycle, target=UserID(999))


@pytest.mark.asyncio
async def test_cooldown_blocks_rapid_second_vote(lifecycle, platform, clock):
    other = UserID(21)
    platform.add_member(other)
    await _start(lifecycle)

    clock.advance(60)
    with pytest.raises(CooldownActive) as excinfo:
        await _start(lifecycle, target=other)
    assert excinfo.value.remaining_minutes == 14

    clock.advance(900 - 60 + 0.001)
    vote = await _start(lifecycle, target=other)
    assert vote.target_id == other


@pytest.mark.asyncio
async def test_duplicate_active_vote_is_rejected(lifecycle, platform):
    second_initiator = UserID(12)
    platform.add_member(second_initiator, "One Of Us")
    await _start(lifecycle)

    with pytest.raises(DuplicateActiveVote):
        await _start(lifecycle, initiator=second_initiator)


@pytest.mark.asyncio
async def test_missing_moderation_channel(lifecycle, platform):
    platform.channels.clear()
    with pytest.raises(ChannelNotFound):
        await _start(lifecycle)


@pytest.mark.asyncio
async def test_reason_length_is_bounded(store, platform, clock):
    lifecycle = VoteLifecycle(store, platform, VotingSettings({"reason_max_length": 5}), clock=clock)
    with pytest.raises(ReasonTooLong):
        await _start(lifecycle)


@pytest.mark.asyncio
async def test_failed_post_closes_the_vote(lifecycle, platform, store):
    platform.fail_send = True

    with pytest.raises(VotePostFailed):
        await _start(lifecycle)

    assert await store.has_active_against(GUILD, TARGET) is False
    assert await store.get_cooldown(GUILD, INITIATOR) is None
    stats = await store.get_stats(GUILD)
    assert stats.completed_votes == 1


# ----------------------------------------------------------------------
# Reactions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_booster_reaction_counts_double(lifecycle, platform, store):
    booster = UserID(41)
    platform.add_member(booster, "Server Booster")
    vote = await _start(lifecycle)

    await _react(lifecycle, vote, APPROVE, 41, 42)

    tally = (await store.get_by_id(vote.vote_id)).tally
    assert tally.approvals == {booster: 2, UserID(42): 1}
    assert tally.net_votes == 3
    assert platform.edits


@pytest.mark.asyncio
async def test_switching_sides_keeps_only_latest_reaction(lifecycle, platform, store):
    vote = await _start(lifecycle)

    await _react(lifecycle, vote, APPROVE, 41)
    await _react(lifecycle, vote, REJECT, 41)
    assert (vote.message_id, APPROVE, 41) in platform.reactions_removed

    # The platform then reports the stripped approve as a removal
    await lifecycle.handle_reaction_remove(vote.message_id, UserID(41), APPROVE)

    tally = (await store.get_by_id(vote.vote_id)).tally
    assert tally.approvals == {}
    assert tally.rejections == {UserID(41): 1}


@pytest.mark.asyncio
async def test_removing_a_reaction_untallies_it(lifecycle, store):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, 41)

    await lifecycle.handle_reaction_remove(vote.message_id, UserID(41), APPROVE)

    assert (await store.get_by_id(vote.vote_id)).tally.net_votes == 0


@pytest.mark.asyncio
async def test_foreign_emoji_is_stripped(lifecycle, platform, store):
    vote = await _start(lifecycle)

    await _react(lifecycle, vote, "🎉", 41)

    assert (vote.message_id, "🎉", 41) in platform.reactions_removed
    tally = (await store.get_by_id(vote.vote_id)).tally
    assert tally.kind_of(UserID(41)) is None


@pytest.mark.asyncio
async def test_reactions_on_other_messages_are_ignored(lifecycle, platform):
    await _start(lifecycle)

    await lifecycle.handle_reaction_add(MessageID(1), UserID(41), "🎉")
    await lifecycle.handle_reaction_add(MessageID(1), UserID(41), ABSTAIN)

    assert platform.reactions_removed == []
    assert platform.timeouts == []


@pytest.mark.asyncio
async def test_late_reactions_are_stripped_and_not_tallied(lifecycle, platform, store):
    vote = await _start(lifecycle)
    await lifecycle.complete_vote(vote.vote_id)

    await _react(lifecycle, vote, APPROVE, 41)
    await _react(lifecycle, vote, ABSTAIN, 42)

    assert (vote.message_id, APPROVE, 41) in platform.reactions_removed
    assert (vote.message_id, ABSTAIN, 42) in platform.reactions_removed
    assert (await store.get_by_id(vote.vote_id)).tally.approvals == {}
    assert platform.timeouts_for(UserID(42)) == []


@pytest.mark.asyncio
async def test_abstain_racing_completion_is_not_punished(lifecycle, platform, store, monkeypatch):
    abstainer = UserID(41)
    platform.add_member(abstainer)
    vote = await _start(lifecycle)

    # The handler read the vote while it was still active; completion lands before the abstain is written.
    snapshot = await store.get_by_message_id(vote.message_id)
    await lifecycle.complete_vote(vote.vote_id)
    monkeypatch.setattr(store, "get_by_message_id", AsyncMock(return_value=snapshot))

    await _react(lifecycle, vote, ABSTAIN, abstainer.to_int())

    assert platform.timeouts_for(abstainer) == []
    assert await store.get_abstain_count(GUILD, abstainer) == 0
    assert platform.messages == []
    assert (vote.message_id, ABSTAIN, abstainer.to_int()) in platform.reactions_removed


@pytest.mark.asyncio
async def test_abstain_penalty_escalates_across_votes(lifecycle, platform, store, clock):
    abstainer = UserID(41)
    platform.add_member(abstainer, "One Of Us")

    for round_number in range(3):
        target = UserID(200 + round_number)
        platform.add_member(target)
        vote = await _start(lifecycle, target=target)
        await _react(lifecycle, vote, ABSTAIN, 41)
        assert (vote.message_id, ABSTAIN, 41) in platform.reactions_removed
        assert (await store.get_by_id(vote.vote_id)).tally.net_votes == 0
        clock.advance(1000)

    assert platform.timeouts_for(abstainer) == [60, 600, 6000]
    notices = [content for _, content in platform.messages]
    assert len(notices) == 3
    assert "1 min" in notices[0]
    assert "10 mins" in notices[1]
    assert "1 hour" in notices[2]


@pytest.mark.asyncio
async def test_abstain_clears_an_earlier_approve(lifecycle, platform, store):
    platform.add_member(UserID(41))
    vote = await _start(lifecycle)

    await _react(lifecycle, vote, APPROVE, 41)
    await _react(lifecycle, vote, ABSTAIN, 41)

    tally = (await store.get_by_id(vote.vote_id)).tally
    assert tally.approvals == {}
    assert tally.net_votes == 0
    assert (vote.message_id, APPROVE, 41) in platform.reactions_removed


@pytest.mark.asyncio
async def test_admin_abstain_counts_but_is_not_punished(lifecycle, platform, store):
    vote = await _start(lifecycle)

    await _react(lifecycle, vote, ABSTAIN, ADMIN.to_int())

    assert platform.timeouts_for(ADMIN) == []
    assert platform.messages == []
    assert await store.get_abstain_count(GUILD, ADMIN) == 1
    assert (vote.message_id, ABSTAIN, ADMIN.to_int()) in platform.reactions_removed


@pytest.mark.asyncio
async def test_abstain_reaction_is_stripped_even_when_timeout_fails(lifecycle, platform, store):
    platform.add_member(UserID(41))
    platform.fail_timeout_for.add(41)
    vote = await _start(lifecycle)

    await _react(lifecycle, vote, ABSTAIN, 41)

    assert (vote.message_id, ABSTAIN, 41) in platform.reactions_removed
    assert platform.messages == []
    assert await store.get_abstain_count(GUILD, UserID(41)) == 1


# ----------------------------------------------------------------------
# Completion
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_seven_net_votes_apply_the_lowest_tier(lifecycle, platform, store):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 108))
    await _react(lifecycle, vote, REJECT, 200)

    result = await lifecycle.complete_vote(vote.vote_id)

    assert result.outcome is VoteOutcome.SANCTIONED
    assert result.net_votes == 7
    assert platform.timeouts_for(TARGET) == [300]
    assert platform.timeouts_for(INITIATOR) == []

    stored = await store.get_by_id(vote.vote_id)
    assert stored.completed is True
    assert stored.result.outcome is VoteOutcome.SANCTIONED
    assert stored.result.sanction_label == "Light Warning (5 min)"


@pytest.mark.asyncio
async def test_twenty_five_net_votes_apply_the_highest_tier(lifecycle, platform):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 125))

    result = await lifecycle.complete_vote(vote.vote_id)

    assert result.sanction_seconds == 24 * 60 * 60
    assert platform.timeouts_for(TARGET) == [24 * 60 * 60]


@pytest.mark.asyncio
async def test_rejected_vote_penalizes_the_initiator(lifecycle, platform, store):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 104))

    result = await lifecycle.complete_vote(vote.vote_id)

    assert result.outcome is VoteOutcome.REJECTED
    assert result.net_votes == 4
    assert platform.timeouts_for(TARGET) == []
    assert platform.timeouts_for(INITIATOR) == [300]
    assert (await store.get_by_id(vote.vote_id)).result.outcome is VoteOutcome.REJECTED


@pytest.mark.asyncio
async def test_admin_initiator_is_not_penalized(lifecycle, platform):
    vote = await _start(lifecycle, initiator=ADMIN)

    result = await lifecycle.complete_vote(vote.vote_id)

    assert result.outcome is VoteOutcome.REJECTED
    assert platform.timeouts == []


@pytest.mark.asyncio
async def test_failed_sanction_is_recorded_not_retried(lifecycle, platform, store):
    platform.fail_timeout_for.add(TARGET.to_int())
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 106))

    result = await lifecycle.complete_vote(vote.vote_id)

    assert result.outcome is VoteOutcome.FAILED
    assert "Missing Permissions" in result.error
    assert platform.timeouts_for(INITIATOR) == []
    stored = await store.get_by_id(vote.vote_id)
    assert stored.completed is True
    assert stored.result.error == result.error


@pytest.mark.asyncio
async def test_concurrent_completion_sanctions_once(lifecycle, platform):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 105))

    results = await asyncio.gather(*(lifecycle.complete_vote(vote.vote_id) for _ in range(4)))

    assert sum(result is not None for result in results) == 1
    assert platform.timeouts_for(TARGET) == [300]


@pytest.mark.asyncio
async def test_completion_updates_message_and_notifies_target(lifecycle, platform):
    vote = await _start(lifecycle)
    platform.edits.clear()
    platform.dms.clear()

    await lifecycle.complete_vote(vote.vote_id)

    assert [message_id for message_id, _ in platform.edits] == [vote.message_id]
    assert platform.dms[0][0] == TARGET.to_int()
    assert "rejected" in platform.dms[0][1]


# ----------------------------------------------------------------------
# Cancellation
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancel_closes_without_sanction(lifecycle, platform, store):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 110))

    result = await lifecycle.cancel_vote(vote.vote_id, ADMIN)

    assert result.outcome is VoteOutcome.CANCELLED
    assert result.cancelled_by == ADMIN
    assert platform.timeouts == []
    assert (await store.get_by_id(vote.vote_id)).completed is True

    # Expiry after cancellation is a no-op
    assert await lifecycle.complete_vote(vote.vote_id) is None
    assert platform.timeouts == []


@pytest.mark.asyncio
async def test_cancel_completed_vote_fails(lifecycle, platform):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 105))
    await lifecycle.complete_vote(vote.vote_id)

    with pytest.raises(AlreadyCompleted):
        await lifecycle.cancel_vote(vote.vote_id, ADMIN)
    assert platform.timeouts_for(TARGET) == [300]


@pytest.mark.asyncio
async def test_cancel_unknown_vote(lifecycle):
    with pytest.raises(VoteNotFound):
        await lifecycle.cancel_vote("does-not-exist", ADMIN)


@pytest.mark.asyncio
async def test_cancel_from_another_guild_is_not_found(lifecycle, platform, store):
    vote = await _start(lifecycle)

    with pytest.raises(VoteNotFound):
        await lifecycle.cancel_vote(vote.vote_id, UserID(999), GuildID(2))

    assert (await store.get_by_id(vote.vote_id)).completed is False
    result = await lifecycle.cancel_vote(vote.vote_id, ADMIN, GUILD)
    assert result.outcome is VoteOutcome.CANCELLED


@pytest.mark.asyncio
async def test_cancel_racing_expiry_has_one_winner(lifecycle, platform, store):
    vote = await _start(lifecycle)
    await _react(lifecycle, vote, APPROVE, *range(100, 105))

    cancelled, completed = await asyncio.gather(
        lifecycle.cancel_vote(vote.vote_id, ADMIN, GUILD),
        lifecycle.complete_vote(vote.vote_id),
        return_exceptions=True,
    )

    cancel_won = not isinstance(cancelled, BaseException)
    complete_won = completed is not None and not isinstance(completed, BaseException)
    assert cancel_won != complete_won
    if cancel_won:
        assert completed is None
        assert platform.timeouts_for(TARGET) == []
    else:
        assert isinstance(cancelled, AlreadyCompleted)
        assert platform.timeouts_for(TARGET) == [300]

    stored = await store.get_by_id(vote.vote_id)
    assert stored.completed is True
    expected = VoteOutcome.CANCELLED if cancel_won else VoteOutcome.SANCTIONED
    assert stored.result.outcome is expected
