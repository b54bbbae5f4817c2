from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Set

from .grid import Difficulty, Grid, neighbors


BOUNDED = "bounded"
FLOOD = "flood"


@dataclass(frozen=True)
class RevealOutcome:
    hit_bomb: bool
    cleared: int


class RevealStrategy:
    """Expands a freshly revealed Empty cell into its neighbourhood."""

    def expand(self, grid: Grid, size: int, origin: int) -> int:
        raise NotImplementedError


class BoundedDepth(RevealStrategy):
    """Reveal neighbours of any kind up to ``depth`` hops from the origin.

    Every cell revealed lies within Chebyshev distance ``depth`` of the
    origin. Expansion continues only through Empty cells: a numbered cell
    is always adjacent to a bomb, so a bomb is never uncovered by the
    spread and the win count stays exact.
    """

    def __init__(self, depth: int) -> None:
        if depth < 0:
            raise ValueError("depth must be non-negative")
        self.depth = depth

    def expand(self, grid: Grid, size: int, origin: int) -> int:
        cleared = 0
        visited: Set[int] = {origin}
        q = deque([(origin, 0)])
        while q:
            i, hops = q.popleft()
            if hops >= self.depth:
                continue
            for j in neighbors(i, size):
                if j in visited:
                    continue
                visited.add(j)
                cell = grid[j]
                if cell.revealed or cell.flagged:
                    continue
                cell.revealed = True
                cleared += 1
                if cell.is_empty:
                    q.append((j, hops + 1))
        return cleared

    def __repr__(self) -> str:
        return f"BoundedDepth({self.depth})"


class FloodFill(RevealStrategy):
    """Unbounded reveal of the connected Empty region plus its numbered border."""

    def expand(self, grid: Grid, size: int, origin: int) -> int:
        cleared = 0
        visited: Set[int] = {origin}
        q = deque(neighbors(origin, size))
        visited.update(q)
        while q:
            i = q.popleft()
            cell = grid[i]
            if cell.revealed or cell.flagged:
                continue
            cell.revealed = True
            cleared += 1
            if not cell.is_empty:
                continue
            for j in neighbors(i, size):
                if j not in visited:
                    visited.add(j)
                    q.append(j)
        return cleared

    def __repr__(self) -> str:
        return "FloodFill()"


def strategy_for(mode: str, difficulty: Difficulty) -> RevealStrategy:
    if mode == BOUNDED:
        return BoundedDepth(difficulty.flood_depth)
    if mode == FLOOD:
        return FloodFill()
    raise ValueError(f"unknown reveal mode: {mode}")


def reveal_all_bombs(grid: Grid) -> None:
    for cell in grid:
        if cell.is_bomb:
            cell.revealed = True


def reveal_cell(grid: Grid, size: int, idx: int, strategy: RevealStrategy) -> RevealOutcome:
    """Reveal ``grid[idx]`` in place.

    A bomb uncovers every bomb on the board and skips any expansion. A number
    reveals only itself. An Empty cell is handed to ``strategy``. Cells that
    are already revealed or flagged are left alone.
    """
    cell = grid[idx]
    if cell.revealed or cell.flagged:
        return RevealOutcome(False, 0)
    if cell.is_bomb:
        cell.revealed = True
        reveal_all_bombs(grid)
        return RevealOutcome(True, 1)
    cell.revealed = True
    cleared = 1
    if cell.is_empty:
        cleared += strategy.expand(grid, size, idx)
    return RevealOutcome(False, cleared)
