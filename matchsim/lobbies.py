"""Registry that owns every lobby a user has created."""

from __future__ import annotations

import itertools
import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from .engine import MatchmakingEngine
from .entities import Lobby, LobbyNotFound, Player
from .events import EngineEvent, LobbyConsumed, MatchCreated

logger = logging.getLogger(__name__)


class LobbyRegistry:
    """Creates, looks up and deletes lobbies on behalf of the front end.

    Each lobby is wired to the engine so ready-state transitions enqueue or
    dequeue it straight away.  Lobbies consumed by a match are deleted when
    the engine reports them.  The last ``history_size`` matches are kept in
    memory for display only.
    """

    def __init__(self, engine: MatchmakingEngine, history_size: int = 50):
        self.engine = engine
        self._lobbies: Dict[int, Lobby] = {}
        self._ids = itertools.count(1)
        self.recent_matches: Deque[MatchCreated] = deque(maxlen=history_size)
        engine.subscribe(self._handle_event)

    def create_lobby(self, class_id: int = 0) -> Lobby:
        lobby = Lobby(
            id=next(self._ids),
            class_id=class_id % self.engine.config.class_count,
            on_ready_changed=self.engine.on_ready_changed,
        )
        self._lobbies[lobby.id] = lobby
        return lobby

    def get(self, lobby_id: int) -> Lobby:
        try:
            return self._lobbies[lobby_id]
        except KeyError:
            raise LobbyNotFound(f"lobby {lobby_id} does not exist") from None

    def delete_lobby(self, lobby_id: int) -> Lobby:
        lobby = self.get(lobby_id)
        self.engine.remove_lobby(lobby)
        del self._lobbies[lobby_id]
        return lobby

    def lobbies(self) -> List[Lobby]:
        return list(self._lobbies.values())

    # Thin wrappers so callers only deal in ids.
    def add_player(self, lobby_id: int, name: Optional[str] = None) -> Optional[int]:
        player = Player(name=name) if name else None
        return self.get(lobby_id).add_player(player)

    def remove_player(self, lobby_id: int, slot: int) -> None:
        self.get(lobby_id).remove_player(slot)

    def click_slot(self, lobby_id: int, slot: int) -> None:
        self.get(lobby_id).click_slot(slot)

    def toggle_ready(self, lobby_id: int) -> None:
        self.get(lobby_id).toggle_ready()

    def cycle_class(self, lobby_id: int) -> int:
        return self.get(lobby_id).cycle_class(self.engine.config.class_count)

    def _handle_event(self, event: EngineEvent) -> None:
        if isinstance(event, LobbyConsumed):
            if self._lobbies.pop(event.lobby_id, None) is not None:
                logger.debug("Deleted lobby %d after match", event.lobby_id)
        elif isinstance(event, MatchCreated):
            # Consumed lobbies are dropped here too in case an earlier
            # LobbyConsumed never reached us.
            for lobby_id in event.lobby_ids:
                self._lobbies.pop(lobby_id, None)
            self.recent_matches.appendleft(event)

    def __len__(self) -> int:
        return len(self._lobbies)
