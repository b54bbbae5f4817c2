from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterator, List, Optional, Tuple
import math
import random


class CellKind(IntEnum):
    EMPTY = 0
    BOMB = 1
    NUMBER = 2


@dataclass
class Cell:
    kind: CellKind = CellKind.EMPTY
    value: int = 0
    revealed: bool = False
    flagged: bool = False

    @property
    def is_bomb(self) -> bool:
        return self.kind == CellKind.BOMB

    @property
    def is_empty(self) -> bool:
        return self.kind == CellKind.EMPTY


@dataclass(frozen=True)
class DifficultySettings:
    name: str
    bomb_rate: float
    flood_depth: int
    multiplier: float


class Difficulty(Enum):
    EASY = DifficultySettings("Easy", 0.1, 2, 1)
    MEDIUM = DifficultySettings("Medium", 0.15, 1, 1.5)
    HARD = DifficultySettings("Hard", 0.2, 1, 2)

    @property
    def label(self) -> str:
        return self.value.name

    @property
    def bomb_rate(self) -> float:
        return self.value.bomb_rate

    @property
    def flood_depth(self) -> int:
        return self.value.flood_depth

    @property
    def multiplier(self) -> float:
        return self.value.multiplier

    @classmethod
    def parse(cls, name: str) -> "Difficulty":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown difficulty: {name}") from None


Grid = List[Cell]


def index(row: int, col: int, size: int) -> int:
    return row * size + col


def coords(idx: int, size: int) -> Tuple[int, int]:
    return divmod(idx, size)


def in_bounds(row: int, col: int, size: int) -> bool:
    return 0 <= row < size and 0 <= col < size


def neighbors(idx: int, size: int) -> Iterator[int]:
    r, c = coords(idx, size)
    for nr in range(max(0, r - 1), min(size, r + 2)):
        for nc in range(max(0, c - 1), min(size, c + 2)):
            if nr == r and nc == c:
                continue
            yield index(nr, nc, size)


def bomb_count_for(size: int, bomb_rate: float) -> int:
    return math.floor(size * size * bomb_rate)


def generate_grid(size: int, bomb_rate: float, rng: Optional[random.Random] = None) -> Grid:
    """Build a fresh board with ``floor(size**2 * bomb_rate)`` bombs.

    Bombs are placed by rejection sampling over cell indices, then every
    non-bomb cell is numbered with its count of adjacent bombs.
    """
    if size < 1:
        raise ValueError("invalid grid size")
    if not 0 <= bomb_rate < 1:
        raise ValueError("bomb rate must be in [0, 1)")
    rng = rng or random.Random()
    n = size * size
    grid = [Cell() for _ in range(n)]
    to_place = bomb_count_for(size, bomb_rate)
    placed = 0
    while placed < to_place:
        i = rng.randrange(n)
        if grid[i].kind != CellKind.BOMB:
            grid[i].kind = CellKind.BOMB
            placed += 1
    for i, cell in enumerate(grid):
        if cell.is_bomb:
            continue
        adjacent = sum(1 for j in neighbors(i, size) if grid[j].is_bomb)
        if adjacent > 0:
            cell.kind = CellKind.NUMBER
            cell.value = adjacent
    return grid


def count_bombs(grid: Grid) -> int:
    return sum(1 for cell in grid if cell.is_bomb)


def count_revealed(grid: Grid) -> int:
    return sum(1 for cell in grid if cell.revealed)


def count_flagged(grid: Grid) -> int:
    return sum(1 for cell in grid if cell.flagged)


def to_client_view(grid: Grid, size: int) -> List[List[str]]:
    board: List[List[str]] = []
    for r in range(size):
        row: List[str] = []
        for c in range(size):
            cell = grid[index(r, c, size)]
            if cell.revealed:
                ch = "B" if cell.is_bomb else str(cell.value)
            else:
                ch = "F" if cell.flagged else "H"
            row.append(ch)
        board.append(row)
    return board
