"""Queue of lobbies waiting for a match."""

from __future__ import annotations

from typing import Iterator, List, Optional

from .entities import Lobby


class LobbyQueue:
    """Lobbies whose members are all ready, oldest first.

    Membership changes are idempotent: adding a queued lobby or removing an
    absent one does nothing.  The queue owns ``time_joined`` and
    ``ai_eligible`` on its members.
    """

    def __init__(self) -> None:
        self._lobbies: List[Lobby] = []

    def add(self, lobby: Lobby, now: int) -> bool:
        if lobby in self:
            return False
        lobby.time_joined = now
        lobby.ai_eligible = False
        self._lobbies.append(lobby)
        return True

    def remove(self, lobby: Lobby) -> bool:
        for index, entry in enumerate(self._lobbies):
            if entry is lobby:
                self._lobbies.pop(index)
                lobby.time_joined = None
                lobby.ai_eligible = False
                return True
        return False

    def lobbies(self) -> List[Lobby]:
        """Snapshot of the queue ordered by ``time_joined`` ascending."""

        # sorted() is stable, so lobbies stamped in the same millisecond keep
        # their insertion order.
        return sorted(self._lobbies, key=lambda lobby: lobby.time_joined or 0)

    def oldest(self, limit: Optional[int] = None) -> List[Lobby]:
        ordered = self.lobbies()
        return ordered if limit is None else ordered[:limit]

    def __contains__(self, lobby: object) -> bool:
        return any(entry is lobby for entry in self._lobbies)

    def __iter__(self) -> Iterator[Lobby]:
        return iter(self.lobbies())

    def __len__(self) -> int:
        return len(self._lobbies)
