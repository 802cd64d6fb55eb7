"""Domain entities used by the matchmaking engine."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import LOBBY_CAPACITY

ReadyListener = Callable[["Lobby", bool], None]


class LobbyError(RuntimeError):
    """Base class for lobby related failures."""


class LobbyNotFound(LobbyError):
    """Raised when an operation targets a lobby that does not exist."""


class InvalidSlot(LobbyError):
    """Raised when a slot index falls outside the lobby."""


def random_player_name() -> str:
    return f"Player{random.randint(0, 999)}"


@dataclass
class Player:
    """A single member sitting in one of the lobby slots."""

    name: str = field(default_factory=random_player_name)
    ready: bool = False

    def serialise(self) -> dict[str, object]:
        return {"name": self.name, "ready": self.ready}


@dataclass(eq=False)
class Lobby:
    """A group of up to three players queueing together.

    Lobbies compare by identity: two lobbies holding the same players are
    still different queue entries.  ``time_joined`` and ``ai_eligible`` are
    owned by the queue and only carry meaning while the lobby is queued.

    Every mutation that flips ``all_ready`` calls ``on_ready_changed`` with
    the new value, which is how the engine learns it should enqueue or
    drop the lobby.
    """

    id: int
    class_id: int = 0
    slots: List[Optional[Player]] = field(default_factory=lambda: [None] * LOBBY_CAPACITY)
    time_joined: Optional[int] = None
    ai_eligible: bool = False
    on_ready_changed: Optional[ReadyListener] = field(default=None, repr=False)
    _previous_all_ready: bool = field(default=False, init=False, repr=False)

    @property
    def player_count(self) -> int:
        return sum(1 for slot in self.slots if slot is not None)

    @property
    def players(self) -> List[Player]:
        return [slot for slot in self.slots if slot is not None]

    @property
    def all_ready(self) -> bool:
        players = self.players
        return bool(players) and all(player.ready for player in players)

    @property
    def is_full(self) -> bool:
        return self.player_count >= LOBBY_CAPACITY

    def add_player(self, player: Optional[Player] = None) -> Optional[int]:
        """Seat ``player`` in the first empty slot and return its index.

        Returns ``None`` when the lobby is already full.
        """

        for index, slot in enumerate(self.slots):
            if slot is None:
                self.slots[index] = player if player is not None else Player()
                self._sync_ready_state()
                return index
        return None

    def remove_player(self, slot: int) -> None:
        self._check_slot(slot)
        if self.slots[slot] is None:
            return
        self.slots[slot] = None
        # Losing a member resets the ready check for everyone left.
        self.set_all_ready(False)

    def click_slot(self, slot: int) -> None:
        """Seat a new player in an empty slot, or toggle an occupied one."""

        self._check_slot(slot)
        player = self.slots[slot]
        if player is None:
            self.slots[slot] = Player()
        else:
            player.ready = not player.ready
        self._sync_ready_state()

    def toggle_ready(self) -> None:
        currently_ready = all(player.ready for player in self.players)
        self.set_all_ready(not currently_ready)

    def set_all_ready(self, ready: bool) -> None:
        for player in self.players:
            player.ready = ready
        self._sync_ready_state()

    def cycle_class(self, class_count: int) -> int:
        self.class_id = (self.class_id + 1) % class_count
        return self.class_id

    def _check_slot(self, slot: int) -> None:
        if not 0 <= slot < len(self.slots):
            raise InvalidSlot(f"slot {slot} is outside lobby {self.id}")

    def _sync_ready_state(self) -> None:
        current = self.all_ready
        if current == self._previous_all_ready:
            return
        self._previous_all_ready = current
        if self.on_ready_changed is not None:
            self.on_ready_changed(self, current)

    def serialise(self) -> dict[str, object]:
        return {
            "id": self.id,
            "class_id": self.class_id,
            "slots": [slot.serialise() if slot else None for slot in self.slots],
            "player_count": self.player_count,
            "all_ready": self.all_ready,
            "time_joined": self.time_joined,
            "ai_eligible": self.ai_eligible,
        }
