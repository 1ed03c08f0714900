"""
Data structures for community timeout votes.

A vote is a time-boxed poll against a single member. Reactions on the vote
message land in one of three buckets (approve, reject, abstain); the
weighted difference between approvals and rejections decides which
sanction tier, if any, is applied when the vote closes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from tribunal.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID


class ReactionKind(Enum):
    """The three reaction buckets of a vote."""

    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"

    def __str__(self) -> str:
        return self.value

    @property
    def emoji(self) -> str:
        return VOTE_EMOJIS[self]

    @classmethod
    def from_emoji(cls, emoji: str | None) -> Optional["ReactionKind"]:
        """Map a reaction emoji to its bucket, or None for any other emoji."""
        for kind, symbol in VOTE_EMOJIS.items():
            if emoji == symbol:
                return kind
        return None


VOTE_EMOJIS: Dict[ReactionKind, str] = {
    ReactionKind.APPROVE: "👍",
    ReactionKind.REJECT: "👎",
    ReactionKind.ABSTAIN: "⬜",
}


class VoteOutcome(Enum):
    """Terminal state recorded once a vote has been finalized."""

    SANCTIONED = "sanctioned"   # threshold reached and the timeout was applied
    FAILED = "failed"           # threshold reached but the timeout call failed
    REJECTED = "rejected"       # no threshold reached
    CANCELLED = "cancelled"     # closed by an administrator

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class SanctionThreshold:
    """Minimum net votes required for a timeout of ``duration_seconds``."""

    min_votes: int
    duration_seconds: int
    label: str


@dataclass(slots=True)
class VoteTally:
    """Per-user reaction weights for one vote, split by bucket.

    The abstain bucket stores the user's lifetime abstain count at the time
    of the reaction instead of a vote weight; it never counts toward the net.
    """

    approvals: Dict[UserID, int] = field(default_factory=dict)
    rejections: Dict[UserID, int] = field(default_factory=dict)
    abstentions: Dict[UserID, int] = field(default_factory=dict)

    def bucket(self, kind: ReactionKind) -> Dict[UserID, int]:
        if kind is ReactionKind.APPROVE:
            return self.approvals
        if kind is ReactionKind.REJECT:
            return self.rejections
        return self.abstentions

    def kind_of(self, user_id: UserID) -> ReactionKind | None:
        """Return the bucket the user currently sits in, if any."""
        for kind in ReactionKind:
            if user_id in self.bucket(kind):
                return kind
        return None

    @property
    def approve_weight(self) -> int:
        return sum(self.approvals.values())

    @property
    def reject_weight(self) -> int:
        return sum(self.rejections.values())

    @property
    def net_votes(self) -> int:
        return self.approve_weight - self.reject_weight


@dataclass(slots=True)
class VoteResult:
    """Final tallies and sanction outcome persisted when a vote closes."""

    up_votes: int
    down_votes: int
    net_votes: int
    outcome: VoteOutcome
    sanction_label: str | None = None
    sanction_seconds: int = 0
    error: str | None = None
    cancelled_by: UserID | None = None

    @property
    def sanction_applied(self) -> bool:
        return self.outcome is VoteOutcome.SANCTIONED


@dataclass(slots=True)
class Vote:
    """A single timeout vote as stored in the ``votes`` table.

    Attributes:
        vote_id: Opaque unique id (uuid4 hex string).
        guild_id: Guild the vote runs in.
        target_id: Member the vote would sanction.
        initiator_id: Member who started the vote.
        reason: Free-text reason given by the initiator.
        started_at: Unix timestamp (seconds, fractional) of creation.
        channel_id: Channel holding the tally message.
        message_id: Tally message, None until it has been posted.
        completed: True once completion has been claimed.
        ended_at: Unix timestamp of the completion claim.
        result: Final tallies, None until finalized.
        tally: Current reaction buckets, loaded from the store.
    """

    vote_id: str
    guild_id: GuildID
    target_id: UserID
    initiator_id: UserID
    reason: str
    started_at: float
    channel_id: ChannelID
    message_id: MessageID | None = None
    completed: bool = False
    ended_at: float | None = None
    result: VoteResult | None = None
    tally: VoteTally = field(default_factory=VoteTally)

    def deadline(self, duration_seconds: float) -> float:
        return self.started_at + duration_seconds

    def is_due(self, duration_seconds: float, now: float) -> bool:
        return now >= self.deadline(duration_seconds)

    def seconds_remaining(self, duration_seconds: float, now: float) -> float:
        return max(0.0, self.deadline(duration_seconds) - now)

    def minutes_remaining(self, duration_seconds: float, now: float) -> int:
        return math.ceil(self.seconds_remaining(duration_seconds, now) / 60)


@dataclass(slots=True)
class CooldownStatus:
    """Result of a cooldown check for a would-be initiator."""

    on_cooldown: bool
    remaining_minutes: int = 0


@dataclass(slots=True)
class VoteStats:
    """Aggregate counters over the vote tables."""

    active_votes: int = 0
    completed_votes: int = 0
    sanctioned_votes: int = 0
    tracked_cooldowns: int = 0
