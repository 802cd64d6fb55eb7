"""Tick driven matchmaking engine."""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import MatchmakingConfig
from .eligibility import EligibilityClock, QueueStatus, classify, waited_ms
from .entities import Lobby
from .events import EngineEvent, EventListener, ListenerError, MatchCreated
from .finalizer import MatchFinalizer
from .queue import LobbyQueue
from .search import MatchSearch

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class QueueEntry:
    """One row of the queue display."""

    lobby_id: int
    player_count: int
    class_id: int
    waited_ms: int
    status: QueueStatus

    def serialise(self) -> dict[str, object]:
        return {
            "lobby_id": self.lobby_id,
            "player_count": self.player_count,
            "class_id": self.class_id,
            "waited_ms": self.waited_ms,
            "status": self.status.value,
        }


class MatchmakingEngine:
    """Owns the queue and advances matchmaking one tick at a time.

    Callers mutate queue membership between ticks, either directly through
    ``add_lobby``/``remove_lobby`` or by wiring ``on_ready_changed`` into the
    lobbies they create.  ``tick`` is synchronous and must not be re-entered.
    """

    def __init__(self, config: Optional[MatchmakingConfig] = None, clock: Optional[Clock] = None):
        self._config = config or MatchmakingConfig()
        self._config.validate()
        self.clock = clock or monotonic_ms
        self.queue = LobbyQueue()
        self.eligibility = EligibilityClock(self._config)
        self.search = MatchSearch(self._config)
        self.finalizer = MatchFinalizer(self.queue, self._emit)
        self.ticks_elapsed = 0
        self._listeners: List[EventListener] = []
        self._listener_errors: List[Exception] = []
        self._in_tick = False

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    @property
    def config(self) -> MatchmakingConfig:
        return self._config

    def configure(self, **changes) -> MatchmakingConfig:
        """Apply runtime setting changes, rejecting invalid combinations."""

        updated = dataclasses.replace(self._config, **changes)
        updated.validate()
        self._config = updated
        self.eligibility.config = updated
        self.search.config = updated
        logger.info("Matchmaking settings updated: %s", changes)
        return updated

    # ------------------------------------------------------------------
    # Queue membership
    # ------------------------------------------------------------------
    def add_lobby(self, lobby: Lobby) -> None:
        if self.queue.add(lobby, self.clock()):
            logger.info("Lobby %d joined the queue with %d players", lobby.id, lobby.player_count)

    def remove_lobby(self, lobby: Lobby) -> None:
        if self.queue.remove(lobby):
            logger.info("Lobby %d left the queue", lobby.id)

    def is_queued(self, lobby: Lobby) -> bool:
        return lobby in self.queue

    def on_ready_changed(self, lobby: Lobby, all_ready: bool) -> None:
        if all_ready and not self.is_queued(lobby):
            self.add_lobby(lobby)
        elif not all_ready and self.is_queued(lobby):
            self.remove_lobby(lobby)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: EngineEvent) -> None:
        """Deliver ``event`` to every listener.

        A failing listener does not stop delivery to the others; the failure
        is logged and re-raised from ``tick`` once the tick has finished.
        """

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.exception("Listener %r failed on %s", listener, type(event).__name__)
                self._listener_errors.append(exc)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def tick(self) -> List[MatchCreated]:
        """Run one matchmaking pass and return the matches it created.

        Raises ``ListenerError``, carrying those matches, when a listener
        failed along the way.
        """

        if self._in_tick:
            raise RuntimeError("tick() is already running")
        self._in_tick = True
        self._listener_errors = []
        try:
            matches = self._tick()
        finally:
            self._in_tick = False
        if self._listener_errors:
            errors, self._listener_errors = self._listener_errors, []
            raise ListenerError(matches, errors) from errors[0]
        return matches

    def _tick(self) -> List[MatchCreated]:
        started = time.perf_counter()
        now = self.clock()
        self.ticks_elapsed += 1
        self.eligibility.update(self.queue, now)
        matches: List[MatchCreated] = []
        while len(matches) < self._config.max_matches_per_tick and len(self.queue):
            result = self.search.find_match(self.queue.lobbies(), now)
            if result is None:
                break
            matches.append(self.finalizer.finalize(result, now))
        logger.debug(
            "Tick %d took %.2f ms (%d matches)",
            self.ticks_elapsed,
            (time.perf_counter() - started) * 1000,
            len(matches),
        )
        return matches

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------
    def queue_view(self) -> List[QueueEntry]:
        now = self.clock()
        return [
            QueueEntry(
                lobby_id=lobby.id,
                player_count=lobby.player_count,
                class_id=lobby.class_id,
                waited_ms=waited_ms(lobby, now),
                status=classify(lobby, now, self._config),
            )
            for lobby in self.queue
        ]
