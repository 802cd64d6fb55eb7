"""Turns a found match into queue removals and outgoing events."""

from __future__ import annotations

import logging
from typing import Callable, List

from .events import EngineEvent, LobbyConsumed, MatchCreated
from .queue import LobbyQueue
from .search import MatchResult

logger = logging.getLogger(__name__)


class MatchFinalizer:
    """Pulls every matched lobby out of the queue and reports the match.

    Matched lobbies never return to the queue; a ``LobbyConsumed`` event is
    emitted for each so the owner can delete it.  The ``MatchCreated`` event
    follows once all lobbies are gone.
    """

    def __init__(self, queue: LobbyQueue, emit: Callable[[EngineEvent], None]):
        self._queue = queue
        self._emit = emit

    def finalize(self, result: MatchResult, now: int) -> MatchCreated:
        lobbies = result.lobbies
        if len({id(lobby) for lobby in lobbies}) != len(lobbies):
            raise ValueError("A lobby cannot be placed on both teams")
        match = MatchCreated.from_result(result, created_at=now)
        for lobby in lobbies:
            self._queue.remove(lobby)
        consumed: List[EngineEvent] = [LobbyConsumed(lobby.id) for lobby in lobbies]
        logger.info(
            "Match %s: team1=%s team2=%s ai=%d (tier %d)",
            match.match_id,
            [lobby.id for lobby in result.team1],
            [lobby.id for lobby in result.team2],
            result.synthetic_fill_count,
            result.tier,
        )
        for event in consumed:
            self._emit(event)
        self._emit(match)
        return match
