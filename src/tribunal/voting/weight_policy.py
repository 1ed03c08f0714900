"""Vote weight lookup: members holding the booster role count double."""

from __future__ import annotations

from typing import Any

from tribunal.util.logger import get_logger
from tribunal.voting.platform import ModerationPlatform

logger = get_logger("weight_policy")

BOOSTER_WEIGHT = 2
DEFAULT_WEIGHT = 1


class WeightPolicy:
    """Computes a voter's weight from their current roles.

    Weights are looked up on every reaction, never cached, so a role change
    takes effect on the voter's next reaction.
    """

    def __init__(self, platform: ModerationPlatform, booster_role_name: str) -> None:
        self.platform = platform
        self.booster_role_name = booster_role_name

    def weight_of(self, member: Any) -> int:
        """Return 2 for boosters, 1 otherwise (including unknown members or lookup errors)."""
        if member is None:
            return DEFAULT_WEIGHT
        try:
            if self.platform.has_role(member, self.booster_role_name):
                return BOOSTER_WEIGHT
        except Exception as exc:
            logger.warning("[WEIGHT POLICY] Role lookup failed, using default weight: %s", exc)
        return DEFAULT_WEIGHT
