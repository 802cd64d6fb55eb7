from __future__ import annotations

import pytest

from matchsim import (
    ListenerError,
    LobbyConsumed,
    LobbyNotFound,
    LobbyRegistry,
    MatchCreated,
    MatchmakingConfig,
    MatchmakingEngine,
    MatchTier,
)
from matchsim.eligibility import QueueStatus


class FakeClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(clock: FakeClock) -> MatchmakingEngine:
    config = MatchmakingConfig(ai_eligible_time_ms=5_000, ai_ready_threshold_ms=15_000)
    return MatchmakingEngine(config, clock=clock)


@pytest.fixture()
def registry(engine: MatchmakingEngine) -> LobbyRegistry:
    return LobbyRegistry(engine)


def _queue_lobby(registry: LobbyRegistry, players: int, class_id: int = 0):
    lobby = registry.create_lobby(class_id=class_id)
    for _ in range(players):
        lobby.add_player()
    lobby.set_all_ready(True)
    return lobby


def test_ready_lobby_joins_and_leaves_queue(engine, registry, clock):
    clock.now = 250
    lobby = _queue_lobby(registry, 2)
    assert engine.is_queued(lobby)
    assert lobby.time_joined == 250
    lobby.click_slot(0)
    assert not engine.is_queued(lobby)
    assert lobby.time_joined is None


def test_add_and_remove_are_idempotent(engine, registry, clock):
    lobby = _queue_lobby(registry, 1)
    clock.now = 900
    engine.add_lobby(lobby)
    assert len(engine.queue) == 1
    assert lobby.time_joined == 0
    engine.remove_lobby(lobby)
    engine.remove_lobby(lobby)
    assert len(engine.queue) == 0


def test_lone_full_lobby_waits(engine, registry):
    lobby = _queue_lobby(registry, 3)
    assert engine.tick() == []
    assert engine.is_queued(lobby)


def test_two_full_lobbies_are_matched_and_consumed(engine, registry):
    first = _queue_lobby(registry, 3)
    second = _queue_lobby(registry, 3)
    events = []
    engine.subscribe(events.append)

    matches = engine.tick()

    assert len(matches) == 1
    match = matches[0]
    assert match.lobby_ids == [first.id, second.id]
    assert match.synthetic_fill_count == 0
    assert match.tier is MatchTier.HUMAN_ONLY
    assert len(engine.queue) == 0
    assert first.time_joined is None and second.time_joined is None
    assert events == [LobbyConsumed(first.id), LobbyConsumed(second.id), match]
    assert len(registry) == 0
    assert list(registry.recent_matches) == [match]


def test_tick_without_combination_leaves_queue_untouched(engine, registry, clock):
    lobbies = [_queue_lobby(registry, 3), _queue_lobby(registry, 2)]
    before = [(lobby.id, lobby.time_joined, lobby.player_count) for lobby in engine.queue]
    clock.now = 1_000
    assert engine.tick() == []
    assert [(lobby.id, lobby.time_joined, lobby.player_count) for lobby in engine.queue] == before
    assert all(engine.is_queued(lobby) for lobby in lobbies)


def test_eligibility_sticks_until_lobby_leaves(engine, registry, clock):
    lobby = _queue_lobby(registry, 3)
    clock.now = 5_000
    engine.tick()
    assert lobby.ai_eligible
    for step in range(3):
        clock.now = 6_000 + step
        engine.tick()
        assert lobby.ai_eligible
    lobby.toggle_ready()
    assert not lobby.ai_eligible
    lobby.toggle_ready()
    assert not lobby.ai_eligible
    assert lobby.time_joined == clock.now


def test_waiting_pair_gets_ai_fill_after_threshold(engine, registry, clock):
    lobby = _queue_lobby(registry, 2)
    clock.now = 5_000
    assert engine.tick() == []
    assert lobby.ai_eligible
    clock.now = 14_999
    assert engine.tick() == []
    clock.now = 15_000
    matches = engine.tick()
    assert len(matches) == 1
    assert matches[0].tier is MatchTier.AI_ASSISTED
    assert matches[0].synthetic_fill_count == 4
    assert matches[0].team1 == [lobby]
    assert matches[0].team2 == []


def test_no_lobby_is_booked_twice_in_one_tick(engine, registry):
    lobbies = [_queue_lobby(registry, 3) for _ in range(5)]
    matches = engine.tick()
    assert len(matches) == 2
    booked = [lobby_id for match in matches for lobby_id in match.lobby_ids]
    assert len(booked) == len(set(booked)) == 4
    leftover = [lobby for lobby in lobbies if lobby.id not in booked]
    assert len(leftover) == 1
    assert engine.is_queued(leftover[0])


def test_match_count_per_tick_is_capped(engine, registry):
    engine.configure(max_matches_per_tick=1)
    for _ in range(4):
        _queue_lobby(registry, 3)
    assert len(engine.tick()) == 1
    assert len(engine.tick()) == 1
    assert len(engine.queue) == 0


def test_class_mix_setting_applies_to_next_tick(engine, registry):
    _queue_lobby(registry, 1, class_id=0)
    _queue_lobby(registry, 2, class_id=1)
    _queue_lobby(registry, 3, class_id=0)
    assert engine.tick() == []
    engine.configure(allow_class_mix=True)
    assert len(engine.tick()) == 1


def test_invalid_configuration_is_rejected(engine):
    with pytest.raises(ValueError):
        engine.configure(ai_eligible_time_ms=-1)
    assert engine.config.ai_eligible_time_ms == 5_000
    with pytest.raises(ValueError):
        MatchmakingEngine(MatchmakingConfig(max_matches_per_tick=0))


def test_tick_cannot_be_reentered(engine, registry):
    _queue_lobby(registry, 3)
    _queue_lobby(registry, 3)

    def nested(event):
        if isinstance(event, MatchCreated):
            engine.tick()

    engine.subscribe(nested)
    with pytest.raises(RuntimeError) as excinfo:
        engine.tick()
    assert isinstance(excinfo.value, ListenerError)
    assert "already running" in str(excinfo.value.errors[0])
    assert len(excinfo.value.matches) == 1
    engine.unsubscribe(nested)
    assert engine.tick() == []


def test_queue_view_reports_status(engine, registry, clock):
    fresh = _queue_lobby(registry, 1)
    clock.now = 5_000
    newer = _queue_lobby(registry, 1, class_id=1)
    engine.eligibility.update(engine.queue, clock.now)
    view = {entry.lobby_id: entry for entry in engine.queue_view()}
    assert view[fresh.id].status is QueueStatus.AI_ELIGIBLE
    assert view[fresh.id].waited_ms == 5_000
    assert view[newer.id].status is QueueStatus.NO_AI
    clock.now = 15_000
    view = {entry.lobby_id: entry for entry in engine.queue_view()}
    assert view[fresh.id].status is QueueStatus.AI_READY
    assert view[fresh.id].serialise()["status"] == "ai_ready"


def test_registry_assigns_ids_and_deletes(engine, registry):
    first = registry.create_lobby()
    second = _queue_lobby(registry, 2, class_id=4)
    assert second.id == first.id + 1
    assert second.class_id == 1
    assert registry.cycle_class(second.id) == 2
    registry.delete_lobby(second.id)
    assert not engine.is_queued(second)
    with pytest.raises(LobbyNotFound):
        registry.get(second.id)
    assert registry.lobbies() == [first]


def test_failing_listener_does_not_strand_matched_lobbies(engine, clock):
    def explode(event):
        if isinstance(event, LobbyConsumed):
            raise KeyError(event.lobby_id)

    engine.subscribe(explode)
    registry = LobbyRegistry(engine)
    first = _queue_lobby(registry, 3)
    second = _queue_lobby(registry, 3)

    with pytest.raises(ListenerError) as excinfo:
        engine.tick()

    error = excinfo.value
    assert [match.lobby_ids for match in error.matches] == [[first.id, second.id]]
    assert [type(exc) for exc in error.errors] == [KeyError, KeyError]
    assert len(engine.queue) == 0
    assert len(registry) == 0
    assert list(registry.recent_matches) == error.matches

    engine.unsubscribe(explode)
    third = _queue_lobby(registry, 3)
    clock.now = 100
    assert engine.tick() == []
    assert engine.is_queued(third)
    assert registry.lobbies() == [third]


def test_registry_drops_matched_lobbies_without_consumed_events(engine, registry):
    first = _queue_lobby(registry, 3)
    second = _queue_lobby(registry, 3)
    engine.remove_lobby(first)
    engine.remove_lobby(second)
    match = MatchCreated(
        team1=[first], team2=[second], synthetic_fill_count=0, tier=MatchTier.HUMAN_ONLY, created_at=0
    )
    registry._handle_event(match)
    assert len(registry) == 0
    assert list(registry.recent_matches) == [match]
