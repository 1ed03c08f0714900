from typing import Any, Dict, List

from tribunal.datatypes.vote_datatypes import SanctionThreshold
from tribunal.util.logger import get_logger

logger = get_logger("voting_settings")


DEFAULT_THRESHOLDS: List[SanctionThreshold] = [
    SanctionThreshold(5, 5 * 60, "Light Warning (5 min)"),
    SanctionThreshold(8, 30 * 60, "Light Sanction (30 min)"),
    SanctionThreshold(12, 2 * 60 * 60, "Moderate Violation (2 hours)"),
    SanctionThreshold(15, 8 * 60 * 60, "Serious Misconduct (8 hours)"),
    SanctionThreshold(21, 12 * 60 * 60, "Severe Misconduct (12 hours)"),
    SanctionThreshold(25, 24 * 60 * 60, "Severe Misconduct (24 hours)"),
]


class VotingSettings:
    """Typed accessors over the ``voting`` section of the app config.

    Every property falls back to a default when the key is missing, so an
    empty mapping yields a fully working configuration.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    @property
    def vote_duration_seconds(self) -> float:
        return float(self.data.get("vote_duration_seconds", 300))

    @property
    def cooldown_seconds(self) -> float:
        return float(self.data.get("cooldown_seconds", 900))

    @property
    def required_role_name(self) -> str:
        return str(self.data.get("required_role_name", "One Of Us"))

    @property
    def booster_role_name(self) -> str:
        return str(self.data.get("booster_role_name", "Server Booster"))

    @property
    def moderation_channel_name(self) -> str:
        return str(self.data.get("moderation_channel_name", "🧑‍⚖️︱moderación"))

    @property
    def abstain_base_penalty_seconds(self) -> int:
        return int(self.data.get("abstain_base_penalty_seconds", 60))

    @property
    def rejection_penalty_seconds(self) -> int:
        return int(self.data.get("rejection_penalty_seconds", 300))

    @property
    def exempt_administrators(self) -> bool:
        return bool(self.data.get("exempt_administrators", True))

    @property
    def sweep_interval_seconds(self) -> float:
        return float(self.data.get("sweep_interval_seconds", 30))

    @property
    def reason_max_length(self) -> int:
        return int(self.data.get("reason_max_length", 512))

    @property
    def thresholds(self) -> List[SanctionThreshold]:
        """Sanction tiers sorted ascending by minimum net votes.

        Entries need ``votes``, ``duration_seconds`` and ``label`` keys;
        malformed entries are skipped. A missing or empty list falls back to
        :data:`DEFAULT_THRESHOLDS`.
        """
        raw = self.data.get("thresholds")
        if not isinstance(raw, list) or not raw:
            return list(DEFAULT_THRESHOLDS)

        parsed: List[SanctionThreshold] = []
        for entry in raw:
            try:
                parsed.append(
                    SanctionThreshold(
                        min_votes=int(entry["votes"]),
                        duration_seconds=int(entry["duration_seconds"]),
                        label=str(entry.get("label") or f"{entry['votes']}+ votes"),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("[VOTING SETTINGS] Skipping malformed threshold %r: %s", entry, exc)

        if not parsed:
            return list(DEFAULT_THRESHOLDS)
        return sorted(parsed, key=lambda threshold: threshold.min_votes)
