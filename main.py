"""Text based driver showcasing the matchmaking flow."""

from __future__ import annotations

import argparse
import logging
import random

import uvicorn

from matchsim import LobbyRegistry, MatchCreated, MatchmakingConfig, MatchmakingEngine


class SimulatedClock:
    """Millisecond clock advanced by hand, one tick per simulated second."""

    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def _spawn_lobby(registry: LobbyRegistry, class_count: int) -> None:
    lobby = registry.create_lobby(class_id=random.randrange(class_count))
    for _ in range(random.randint(1, 3)):
        lobby.add_player()
    lobby.set_all_ready(True)


def _describe(match: MatchCreated) -> str:
    def team(lobbies) -> str:
        groups = [
            f"#{lobby.id}(c{lobby.class_id}: {' | '.join(p.name for p in lobby.players)})"
            for lobby in lobbies
        ]
        bots = 3 - sum(lobby.player_count for lobby in lobbies)
        groups.extend(["AI"] * bots)
        return ", ".join(groups)

    return f"[{match.tier.name}] {team(match.team1)}  vs  {team(match.team2)}"


def run_demo(seconds: int = 60, spawn_chance: float = 0.5, allow_class_mix: bool = False) -> None:
    clock = SimulatedClock()
    config = MatchmakingConfig(allow_class_mix=allow_class_mix)
    engine = MatchmakingEngine(config, clock=clock)
    registry = LobbyRegistry(engine)
    total = 0
    print(f"[Matchmaking] Simulating {seconds}s, class mix {'on' if allow_class_mix else 'off'}...")
    for second in range(seconds):
        if random.random() < spawn_chance:
            _spawn_lobby(registry, config.class_count)
        for match in engine.tick():
            total += 1
            print(f"{second:>4}s {_describe(match)}")
        clock.advance(1000)
    print(f"[Matchmaking] {total} matches, {len(engine.queue)} lobbies still queued.")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seconds", type=int, default=60)
    parser.add_argument("--spawn-chance", type=float, default=0.5)
    parser.add_argument("--class-mix", action="store_true")
    parser.add_argument("--serve", action="store_true", help="run the web control surface instead")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    if args.serve:
        uvicorn.run("matchsim_web.server:app", host=args.host, port=args.port)
        return
    run_demo(args.seconds, args.spawn_chance, args.class_mix)


if __name__ == "__main__":
    main()
