"""
Pure sanction arithmetic: threshold resolution and abstain penalties.

Nothing here touches Discord or the database so the rules can be unit tested
in isolation.
"""

from __future__ import annotations

from typing import Iterable, Optional

from tribunal.datatypes.vote_datatypes import SanctionThreshold

# Discord rejects communication timeouts longer than 28 days.
MAX_TIMEOUT_SECONDS = 28 * 24 * 60 * 60


def clamp_timeout(seconds: int) -> int:
    """Clamp a timeout duration into ``[0, MAX_TIMEOUT_SECONDS]``."""
    return max(0, min(int(seconds), MAX_TIMEOUT_SECONDS))


def resolve_threshold(net_votes: int, thresholds: Iterable[SanctionThreshold]) -> Optional[SanctionThreshold]:
    """Return the highest tier whose ``min_votes`` is at most ``net_votes``.

    ``thresholds`` may be in any order. Returns None when no tier is reached,
    including for zero or negative net votes.
    """
    best: Optional[SanctionThreshold] = None
    for threshold in thresholds:
        if net_votes >= threshold.min_votes and (best is None or threshold.min_votes > best.min_votes):
            best = threshold
    return best


def next_threshold(net_votes: int, thresholds: Iterable[SanctionThreshold]) -> Optional[SanctionThreshold]:
    """Return the lowest tier not yet reached, or None once every tier is reached."""
    pending = [threshold for threshold in thresholds if threshold.min_votes > net_votes]
    if not pending:
        return None
    return min(pending, key=lambda threshold: threshold.min_votes)


def abstain_penalty_seconds(abstain_count: int, base_seconds: int = 60) -> int:
    """Timeout for a user's ``abstain_count``-th abstain: ``base * 10^(n-1)``.

    The first abstain costs ``base_seconds``, the second ten times that, and
    so on. The result is clamped to the platform maximum.
    """
    if abstain_count < 1:
        return 0
    # Past this exponent the value is far beyond the clamp anyway.
    exponent = min(abstain_count - 1, 12)
    return clamp_timeout(base_seconds * (10 ** exponent))
