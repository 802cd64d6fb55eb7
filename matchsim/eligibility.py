"""Wait-time driven promotion of queued lobbies."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List

from .config import MatchmakingConfig
from .entities import Lobby

logger = logging.getLogger(__name__)


class QueueStatus(str, Enum):
    """How far a queued lobby has escalated, as shown on the queue display."""

    NO_AI = "no_ai"
    AI_ELIGIBLE = "ai_eligible"
    AI_READY = "ai_ready"


def waited_ms(lobby: Lobby, now: int) -> int:
    if lobby.time_joined is None:
        return 0
    return max(0, now - lobby.time_joined)


def is_ai_ready(lobby: Lobby, now: int, config: MatchmakingConfig) -> bool:
    """True once an AI-eligible lobby has waited long enough to force AI fill."""

    return lobby.ai_eligible and waited_ms(lobby, now) >= config.ai_ready_threshold_ms


def classify(lobby: Lobby, now: int, config: MatchmakingConfig) -> QueueStatus:
    if is_ai_ready(lobby, now, config):
        return QueueStatus.AI_READY
    if lobby.ai_eligible:
        return QueueStatus.AI_ELIGIBLE
    return QueueStatus.NO_AI


class EligibilityClock:
    """Stamps ``ai_eligible`` on lobbies that have queued long enough.

    The flag only ever goes from ``False`` to ``True`` here; the queue is
    the one place that clears it, when a lobby leaves.
    """

    def __init__(self, config: MatchmakingConfig):
        self.config = config

    def update(self, lobbies: Iterable[Lobby], now: int) -> List[Lobby]:
        promoted = []
        for lobby in lobbies:
            if lobby.ai_eligible or lobby.time_joined is None:
                continue
            if now - lobby.time_joined >= self.config.ai_eligible_time_ms:
                lobby.ai_eligible = True
                promoted.append(lobby)
                logger.debug("Lobby %d is now AI eligible", lobby.id)
        return promoted
