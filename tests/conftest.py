import pytest

from crossmines.grid import Cell, CellKind, Difficulty
from crossmines.state import GAME, GameDocument, SharedGameState


def build_grid(rows):
    """Rows of '*' (bomb) and '.' (safe); numbers are derived."""
    size = len(rows)
    bombs = {(r, c) for r, line in enumerate(rows) for c, ch in enumerate(line) if ch == "*"}
    grid = []
    for r in range(size):
        for c in range(size):
            if (r, c) in bombs:
                grid.append(Cell(CellKind.BOMB, 0))
                continue
            n = sum(
                1
                for dr in (-1, 0, 1)
                for dc in (-1, 0, 1)
                if (dr or dc) and (r + dr, c + dc) in bombs
            )
            grid.append(Cell(CellKind.NUMBER if n else CellKind.EMPTY, n))
    return grid


@pytest.fixture
def grid_from_rows():
    return build_grid


@pytest.fixture
def game_in_progress():
    def _make(rows, difficulty=Difficulty.MEDIUM, start_time=1_000_000):
        grid = build_grid(rows)
        shared = SharedGameState(
            page=GAME,
            grid=grid,
            grid_size=len(rows),
            difficulty=difficulty,
            bomb_count=sum(1 for c in grid if c.is_bomb),
            start_time=start_time,
        )
        return GameDocument(shared=shared)

    return _make
