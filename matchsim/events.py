"""Events the engine hands to its collaborators."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Union

from .entities import Lobby
from .search import MatchResult, MatchTier


def _serialise_team(team: List[Lobby]) -> dict[str, object]:
    return {
        "lobbies": [
            {
                "id": lobby.id,
                "class_id": lobby.class_id,
                "players": [player.name for player in lobby.players],
            }
            for lobby in team
        ],
        "synthetic_players": MatchResult.fill_for(team),
    }


@dataclass
class LobbyConsumed:
    """A lobby left matchmaking for good; its owner should delete it."""

    lobby_id: int

    def serialise(self) -> dict[str, object]:
        return {"type": "lobby_consumed", "lobby_id": self.lobby_id}


@dataclass
class MatchCreated:
    """Two teams formed by a single search."""

    team1: List[Lobby]
    team2: List[Lobby]
    synthetic_fill_count: int
    tier: MatchTier
    created_at: int
    match_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_result(cls, result: MatchResult, created_at: int) -> "MatchCreated":
        return cls(
            team1=list(result.team1),
            team2=list(result.team2),
            synthetic_fill_count=result.synthetic_fill_count,
            tier=result.tier,
            created_at=created_at,
        )

    @property
    def lobby_ids(self) -> List[int]:
        return [lobby.id for lobby in (*self.team1, *self.team2)]

    def serialise(self) -> dict[str, object]:
        return {
            "type": "match_created",
            "match_id": self.match_id,
            "tier": self.tier.name.lower(),
            "created_at": self.created_at,
            "synthetic_fill_count": self.synthetic_fill_count,
            "team1": _serialise_team(self.team1),
            "team2": _serialise_team(self.team2),
        }


EngineEvent = Union[MatchCreated, LobbyConsumed]
EventListener = Callable[[EngineEvent], None]


class ListenerError(RuntimeError):
    """One or more listeners raised while a tick was delivering events.

    Every event of the tick was still delivered to every listener, so the
    queue and its owners agree on which lobbies were matched.  ``matches``
    holds everything the tick created and ``errors`` the listener failures
    in the order they happened.
    """

    def __init__(self, matches: List[MatchCreated], errors: List[Exception]):
        super().__init__(f"{len(errors)} event listener(s) failed during tick")
        self.matches = matches
        self.errors = errors
