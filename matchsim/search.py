"""Subset search that turns queued lobbies into two teams of three.

The search runs three tiers and stops at the first that succeeds:

1. *Human-only*: any lobbies in the queue whose player counts add up to six
   and split into two teams of exactly three.
2. *AI-eligible-only*: the same search restricted to lobbies flagged
   ``ai_eligible``, so long-waiting groups can pair up even when fresher
   lobbies sit ahead of them.
3. *AI-assisted*: once an eligible lobby has waited past
   ``ai_ready_threshold_ms``, the largest group of eligible humans that fits
   in two teams is taken and the missing seats are filled synthetically.

Subsets are enumerated by include/exclude backtracking in queue order and the
first valid combination wins; nothing is scored or ranked.  When class mixing
is disabled every team must consist of lobbies sharing one ``class_id``.
Branches that can no longer be split into two such teams are cut early, so
queues with many near misses stay cheap to search.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .config import LOBBY_CAPACITY, MATCH_SIZE, TEAM_SIZE, MatchmakingConfig
from .eligibility import is_ai_ready
from .entities import Lobby

logger = logging.getLogger(__name__)

ClassPredicate = Callable[[Sequence[Lobby]], bool]
Teams = Tuple[List[Lobby], List[Lobby]]
TeamState = Tuple[int, Optional[int]]
Split = Tuple[TeamState, TeamState]


class MatchTier(IntEnum):
    HUMAN_ONLY = 1
    AI_ELIGIBLE = 2
    AI_ASSISTED = 3


def human_count(lobbies: Sequence[Lobby]) -> int:
    return sum(lobby.player_count for lobby in lobbies)


def any_class(lobbies: Sequence[Lobby]) -> bool:
    return True


def single_class(lobbies: Sequence[Lobby]) -> bool:
    """Teams of zero or one lobby are always compatible."""

    return len({lobby.class_id for lobby in lobbies}) <= 1


@dataclass
class MatchResult:
    team1: List[Lobby]
    team2: List[Lobby]
    synthetic_fill_count: int = 0
    tier: MatchTier = MatchTier.HUMAN_ONLY

    @property
    def lobbies(self) -> List[Lobby]:
        return [*self.team1, *self.team2]

    @property
    def human_count(self) -> int:
        return human_count(self.team1) + human_count(self.team2)

    @staticmethod
    def fill_for(team: Sequence[Lobby]) -> int:
        return TEAM_SIZE - human_count(team)


def _reachable_sums(counts: Sequence[int], target: int) -> List[Set[int]]:
    """``reachable[i]`` holds every total up to ``target`` that some subset of
    ``counts[i:]`` adds up to."""

    reachable: List[Set[int]] = [set() for _ in range(len(counts) + 1)]
    reachable[-1].add(0)
    for index in range(len(counts) - 1, -1, -1):
        following = reachable[index + 1]
        current = set(following)
        for total in following:
            if total + counts[index] <= target:
                current.add(total + counts[index])
        reachable[index] = current
    return reachable


def subsets_summing_to(
    lobbies: Sequence[Lobby], target: int, max_classes: Optional[int] = None
) -> Iterator[List[Lobby]]:
    """Yield every subset of ``lobbies`` whose player counts sum to ``target``.

    Lobbies keep their relative order inside each subset and subsets come
    out in include-before-exclude order.  Branches that overshoot the target,
    or can no longer reach it from the remaining lobbies, are cut.  With
    ``max_classes`` a lobby is only taken if the subset stays within that
    many distinct classes.
    """

    counts = [lobby.player_count for lobby in lobbies]
    reachable = _reachable_sums(counts, target)
    chosen: List[Lobby] = []
    classes: Counter = Counter()

    def fits_classes(lobby: Lobby) -> bool:
        if max_classes is None or lobby.class_id in classes:
            return True
        return len(classes) < max_classes

    def backtrack(index: int, remaining: int) -> Iterator[List[Lobby]]:
        if remaining == 0:
            yield list(chosen)
            return
        if remaining not in reachable[index]:
            return
        lobby = lobbies[index]
        count = counts[index]
        if count <= remaining and fits_classes(lobby):
            chosen.append(lobby)
            classes[lobby.class_id] += 1
            yield from backtrack(index + 1, remaining - count)
            classes[lobby.class_id] -= 1
            if not classes[lobby.class_id]:
                del classes[lobby.class_id]
            chosen.pop()
        yield from backtrack(index + 1, remaining)

    yield from backtrack(0, target)


def subsets_within(lobbies: Sequence[Lobby], limit: int) -> Iterator[List[Lobby]]:
    """Yield every subset of ``lobbies`` with at most ``limit`` players,
    the empty subset last."""

    chosen: List[Lobby] = []

    def backtrack(index: int, total: int) -> Iterator[List[Lobby]]:
        if index == len(lobbies):
            yield list(chosen)
            return
        count = lobbies[index].player_count
        if total + count <= limit:
            chosen.append(lobbies[index])
            yield from backtrack(index + 1, total + count)
            chosen.pop()
        yield from backtrack(index + 1, total)

    yield from backtrack(0, 0)


def _remainder(lobbies: Sequence[Lobby], taken: Sequence[Lobby]) -> List[Lobby]:
    taken_ids = {id(lobby) for lobby in taken}
    return [lobby for lobby in lobbies if id(lobby) not in taken_ids]


class _SplitOracle:
    """Tells whether a partial two-team split can still be completed.

    A split is a pair of ``(seated, class_id)`` team states.  ``class_id`` is
    the class every lobby on that team shares, or ``None`` while the team is
    empty or when classes may mix.  A split is complete once both teams
    together seat ``humans`` players with no team above ``TEAM_SIZE``.
    """

    def __init__(self, lobbies: Sequence[Lobby], humans: int, allow_class_mix: bool):
        self.lobbies = lobbies
        self.humans = humans
        self.allow_class_mix = allow_class_mix
        self._memo: Dict[Tuple[int, Split], bool] = {}

    def seat(self, team: TeamState, lobby: Lobby) -> Optional[TeamState]:
        seated, class_id = team
        if seated + lobby.player_count > TEAM_SIZE:
            return None
        if self.allow_class_mix:
            return seated + lobby.player_count, None
        if class_id is not None and class_id != lobby.class_id:
            return None
        return seated + lobby.player_count, lobby.class_id

    def extend(self, split: Split, lobby: Lobby) -> List[Split]:
        team1, team2 = split
        extended = []
        seated = self.seat(team1, lobby)
        if seated is not None:
            extended.append((seated, team2))
        seated = self.seat(team2, lobby)
        if seated is not None:
            extended.append((team1, seated))
        return extended

    def completable(self, index: int, split: Split) -> bool:
        key = (index, split)
        if key in self._memo:
            return self._memo[key]
        total = split[0][0] + split[1][0]
        if total == self.humans:
            result = True
        elif total > self.humans or index == len(self.lobbies):
            result = False
        else:
            result = self.completable(index + 1, split) or any(
                self.completable(index + 1, extended)
                for extended in self.extend(split, self.lobbies[index])
            )
        self._memo[key] = result
        return result


def splittable_subsets(
    lobbies: Sequence[Lobby], humans: int, allow_class_mix: bool
) -> Iterator[List[Lobby]]:
    """Yield the subsets of ``lobbies`` seating exactly ``humans`` players
    that can be split into two compatible teams.

    Subsets come out in the same include-before-exclude order as
    ``subsets_summing_to``.  Each partial subset carries every way its
    lobbies can already be split, and a branch is cut once none of those
    splits can be completed from the lobbies still ahead.
    """

    oracle = _SplitOracle(lobbies, humans, allow_class_mix)
    chosen: List[Lobby] = []

    def backtrack(index: int, total: int, splits: Set[Split]) -> Iterator[List[Lobby]]:
        if not any(oracle.completable(index, split) for split in splits):
            return
        if total == humans:
            yield list(chosen)
            return
        lobby = lobbies[index]
        included = {extended for split in splits for extended in oracle.extend(split, lobby)}
        if included:
            chosen.append(lobby)
            yield from backtrack(index + 1, total + lobby.player_count, included)
            chosen.pop()
        yield from backtrack(index + 1, total, splits)

    yield from backtrack(0, 0, {((0, None), (0, None))})


class MatchSearch:
    """Finds one match in a snapshot of the queue.

    A single strategy serves both class modes; ``config.allow_class_mix``
    only swaps the team compatibility predicate.
    """

    def __init__(self, config: MatchmakingConfig):
        self.config = config

    @property
    def class_compatible(self) -> ClassPredicate:
        return any_class if self.config.allow_class_mix else single_class

    def class_limit(self, teams: int) -> Optional[int]:
        """Most distinct classes a subset filling ``teams`` teams may hold."""

        return None if self.config.allow_class_mix else teams

    def find_match(self, lobbies: Sequence[Lobby], now: int) -> Optional[MatchResult]:
        candidates = self.searchable(lobbies)
        if not candidates:
            return None

        teams = self.find_full_match(candidates)
        if teams:
            return MatchResult(*teams, tier=MatchTier.HUMAN_ONLY)

        # Tier 1 already tried every subset of these lobbies, so this pass
        # never finds a match on its own; it stays as a separate stage.
        eligible = [lobby for lobby in candidates if lobby.ai_eligible]
        if not eligible:
            return None
        teams = self.find_full_match(eligible)
        if teams:
            return MatchResult(*teams, tier=MatchTier.AI_ELIGIBLE)

        if not any(is_ai_ready(lobby, now, self.config) for lobby in eligible):
            return None
        return self.find_ai_assisted_match(eligible)

    def searchable(self, lobbies: Sequence[Lobby]) -> List[Lobby]:
        """Drop lobbies that should never have been queued, oldest N kept."""

        valid = []
        for lobby in lobbies:
            if not 0 < lobby.player_count <= LOBBY_CAPACITY or not lobby.all_ready:
                logger.warning(
                    "Skipping lobby %d in queue: %d players, all_ready=%s",
                    lobby.id,
                    lobby.player_count,
                    lobby.all_ready,
                )
                continue
            valid.append(lobby)
        return valid[: self.config.max_lobbies_per_search]

    def find_full_match(self, lobbies: Sequence[Lobby]) -> Optional[Teams]:
        """Six humans split into two teams of exactly three."""

        for subset in splittable_subsets(lobbies, MATCH_SIZE, self.config.allow_class_mix):
            teams = self.split_even(subset)
            if teams:
                return teams
        return None

    def split_even(self, lobbies: Sequence[Lobby]) -> Optional[Teams]:
        compatible = self.class_compatible
        for team1 in subsets_summing_to(lobbies, TEAM_SIZE, self.class_limit(1)):
            team2 = _remainder(lobbies, team1)
            if human_count(team2) != TEAM_SIZE:
                continue
            if compatible(team1) and compatible(team2):
                return team1, team2
        return None

    def find_ai_assisted_match(self, lobbies: Sequence[Lobby]) -> Optional[MatchResult]:
        """Largest human group first, so synthetic fill is kept to a minimum."""

        for humans in range(min(MATCH_SIZE, human_count(lobbies)), 0, -1):
            needed_fill = MATCH_SIZE - humans
            for subset in splittable_subsets(lobbies, humans, self.config.allow_class_mix):
                teams = self.split_with_fill(subset, needed_fill)
                if teams:
                    return MatchResult(*teams, synthetic_fill_count=needed_fill, tier=MatchTier.AI_ASSISTED)
        return None

    def split_with_fill(self, lobbies: Sequence[Lobby], needed_fill: int) -> Optional[Teams]:
        compatible = self.class_compatible
        for team1 in subsets_within(lobbies, TEAM_SIZE):
            team2 = _remainder(lobbies, team1)
            if human_count(team2) > TEAM_SIZE:
                continue
            if MatchResult.fill_for(team1) + MatchResult.fill_for(team2) != needed_fill:
                continue
            if compatible(team1) and compatible(team2):
                return team1, team2
        return None
