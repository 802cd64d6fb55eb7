"""Configuration objects for the matchmaking engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TEAM_SIZE = 3  # Players per team, humans plus synthetic fill.
LOBBY_CAPACITY = 3
MATCH_SIZE = TEAM_SIZE * 2


@dataclass(frozen=True)
class MatchmakingConfig:
    """Runtime tunables describing how lobbies are consolidated.

    Instances are immutable; the engine swaps in a new validated copy when
    a setting changes at runtime.

    Attributes
    ----------
    allow_class_mix:
        When ``True`` lobbies of different classes may share a team.  When
        ``False`` every lobby on a team must carry the same ``class_id``.
    ai_eligible_time_ms:
        Continuous queue time after which a lobby is flagged AI-eligible and
        may be combined with other long-waiting lobbies ahead of fresher
        ones.
    ai_ready_threshold_ms:
        Queue time after which an AI-eligible lobby forces a match, filling
        the missing seats with synthetic players.
    max_lobbies_per_search:
        Only the oldest N queued lobbies are considered by the search.
    max_matches_per_tick:
        Upper bound on the number of matches finalised by a single tick.
    class_count:
        Number of distinct classes lobbies cycle through.
    tick_interval_seconds:
        Cadence of the background scheduler driving ``tick()``.
    """

    allow_class_mix: bool = False
    ai_eligible_time_ms: int = 5_000
    ai_ready_threshold_ms: int = 15_000
    max_lobbies_per_search: int = 150
    max_matches_per_tick: int = 5
    class_count: int = 3
    tick_interval_seconds: float = 1.0

    def validate(self) -> None:
        if self.ai_eligible_time_ms < 0 or self.ai_ready_threshold_ms < 0:
            raise ValueError("AI time thresholds cannot be negative")
        if self.max_lobbies_per_search <= 0:
            raise ValueError("max_lobbies_per_search must be positive")
        if self.max_matches_per_tick <= 0:
            raise ValueError("max_matches_per_tick must be positive")
        if self.class_count <= 0:
            raise ValueError("class_count must be positive")
        if self.tick_interval_seconds <= 0:
            raise ValueError("Tick interval must be positive")
        if self.ai_ready_threshold_ms < self.ai_eligible_time_ms:
            logger.warning(
                "ai_ready_threshold_ms (%d) is below ai_eligible_time_ms (%d); "
                "AI fill will trigger as soon as lobbies become eligible",
                self.ai_ready_threshold_ms,
                self.ai_eligible_time_ms,
            )

    def serialise(self) -> dict[str, object]:
        return {
            "allow_class_mix": self.allow_class_mix,
            "ai_eligible_time_ms": self.ai_eligible_time_ms,
            "ai_ready_threshold_ms": self.ai_ready_threshold_ms,
            "max_lobbies_per_search": self.max_lobbies_per_search,
            "max_matches_per_tick": self.max_matches_per_tick,
            "class_count": self.class_count,
            "tick_interval_seconds": self.tick_interval_seconds,
        }
