"""Core package for the lobby matchmaking simulator.

Small groups of one to three players queue as lobbies and the engine
consolidates them into 3v3 matches, falling back to long-waiting lobbies
and finally to synthetic fill as queue time grows.  Everything here is
synchronous and free of I/O so it can be driven by a test, a demo loop or
the web server alike.
"""

from .config import MatchmakingConfig
from .engine import MatchmakingEngine, QueueEntry
from .entities import InvalidSlot, Lobby, LobbyError, LobbyNotFound, Player
from .events import ListenerError, LobbyConsumed, MatchCreated
from .lobbies import LobbyRegistry
from .search import MatchResult, MatchSearch, MatchTier

__all__ = [
    "InvalidSlot",
    "Lobby",
    "LobbyConsumed",
    "LobbyError",
    "LobbyNotFound",
    "ListenerError",
    "LobbyRegistry",
    "MatchCreated",
    "MatchResult",
    "MatchSearch",
    "MatchTier",
    "MatchmakingConfig",
    "MatchmakingEngine",
    "Player",
    "QueueEntry",
]
