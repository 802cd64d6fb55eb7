from __future__ import annotations

import pytest

from matchsim.entities import InvalidSlot, Lobby, Player


def _recording_lobby() -> tuple[Lobby, list[bool]]:
    transitions: list[bool] = []
    lobby = Lobby(id=1, on_ready_changed=lambda _lobby, ready: transitions.append(ready))
    return lobby, transitions


def test_empty_lobby_is_never_ready():
    lobby = Lobby(id=1)
    assert lobby.player_count == 0
    assert not lobby.all_ready


def test_all_ready_requires_every_occupied_slot():
    lobby = Lobby(id=1)
    lobby.add_player(Player(name="a", ready=True))
    lobby.add_player(Player(name="b"))
    assert lobby.player_count == 2
    assert not lobby.all_ready
    lobby.click_slot(1)
    assert lobby.all_ready


def test_add_player_fills_first_empty_slot_until_full():
    lobby = Lobby(id=1)
    assert [lobby.add_player() for _ in range(3)] == [0, 1, 2]
    assert lobby.is_full
    assert lobby.add_player() is None
    assert lobby.player_count == 3


def test_ready_listener_only_fires_on_transitions():
    lobby, transitions = _recording_lobby()
    lobby.add_player()
    lobby.add_player()
    assert transitions == []
    lobby.set_all_ready(True)
    lobby.set_all_ready(True)
    assert transitions == [True]
    lobby.click_slot(0)
    assert transitions == [True, False]


def test_adding_unready_player_breaks_ready_state():
    lobby, transitions = _recording_lobby()
    lobby.add_player()
    lobby.toggle_ready()
    lobby.add_player()
    assert transitions == [True, False]


def test_removing_player_unreadies_the_rest():
    lobby, transitions = _recording_lobby()
    for _ in range(3):
        lobby.add_player()
    lobby.set_all_ready(True)
    lobby.remove_player(2)
    assert lobby.player_count == 2
    assert not any(player.ready for player in lobby.players)
    assert transitions == [True, False]


def test_removing_from_empty_slot_keeps_lobby_ready():
    lobby, transitions = _recording_lobby()
    lobby.add_player()
    lobby.add_player()
    lobby.set_all_ready(True)
    lobby.remove_player(2)
    assert lobby.player_count == 2
    assert lobby.all_ready
    assert transitions == [True]


def test_toggle_ready_flips_whole_lobby():
    lobby = Lobby(id=1)
    lobby.add_player(Player(ready=True))
    lobby.add_player()
    lobby.toggle_ready()
    assert lobby.all_ready
    lobby.toggle_ready()
    assert not any(player.ready for player in lobby.players)


def test_click_slot_on_empty_slot_seats_unready_player():
    lobby = Lobby(id=1)
    lobby.click_slot(2)
    assert lobby.slots[2] is not None
    assert lobby.slots[2].name.startswith("Player")
    assert not lobby.slots[2].ready


def test_slot_index_is_validated():
    lobby = Lobby(id=1)
    with pytest.raises(InvalidSlot):
        lobby.click_slot(3)
    with pytest.raises(InvalidSlot):
        lobby.remove_player(-1)


def test_cycle_class_wraps_around():
    lobby = Lobby(id=1, class_id=1)
    assert [lobby.cycle_class(3) for _ in range(3)] == [2, 0, 1]


def test_lobbies_compare_by_identity():
    assert Lobby(id=1) != Lobby(id=1)
