from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple
import random

from .grid import (
    Difficulty,
    bomb_count_for,
    count_flagged,
    count_revealed,
    generate_grid,
    in_bounds,
    index,
)
from .reveal import FLOOD, reveal_cell, strategy_for
from .scoring import compute_score
from .state import PlayerProfile, PlayerSession


COMMAND_GRID_SIZE = 8

NO_SESSION = "no_session"
GAME_OVER = "game_over"
OUT_OF_BOUNDS = "out_of_bounds"
ALREADY_REVEALED = "already_revealed"
FLAGGED = "flagged"


@dataclass
class PlayerMove:
    """Outcome of one command against a player's own board."""

    status: str
    rejected: Optional[str] = None
    cleared: int = 0
    elapsed: int = 0
    score: int = 0


def start_play(
    profile: PlayerProfile,
    difficulty: Difficulty,
    rng: Optional[random.Random],
    now: int,
    size: int = COMMAND_GRID_SIZE,
) -> PlayerSession:
    grid = generate_grid(size, difficulty.bomb_rate, rng)
    profile.session = PlayerSession(
        grid=grid,
        grid_size=size,
        difficulty=difficulty,
        bomb_count=bomb_count_for(size, difficulty.bomb_rate),
        start_time=now,
    )
    profile.total_games_played += 1
    return profile.session


def _check_playable(profile: PlayerProfile, row: int, col: int) -> Tuple[Optional[PlayerSession], Optional[str]]:
    s = profile.session
    if s is None:
        return None, NO_SESSION
    if s.game_over:
        return None, GAME_OVER
    if not in_bounds(row, col, s.grid_size):
        return None, OUT_OF_BOUNDS
    return s, None


def reveal(profile: PlayerProfile, row: int, col: int, now: int) -> PlayerMove:
    s, reason = _check_playable(profile, row, col)
    if s is None:
        return PlayerMove("rejected", rejected=reason)
    i = index(row, col, s.grid_size)
    if s.grid[i].revealed:
        return PlayerMove("rejected", rejected=ALREADY_REVEALED)
    if s.grid[i].flagged:
        return PlayerMove("rejected", rejected=FLAGGED)
    outcome = reveal_cell(s.grid, s.grid_size, i, strategy_for(FLOOD, s.difficulty))
    s.move_count += 1
    elapsed = max(0, (now - s.start_time) // 1000)
    if outcome.hit_bomb:
        s.game_over = True
        return PlayerMove("lost", cleared=outcome.cleared, elapsed=elapsed)
    s.revealed_count = count_revealed(s.grid)
    if s.revealed_count != s.total_safe_cells:
        return PlayerMove("revealed", cleared=outcome.cleared, elapsed=elapsed)
    s.game_over = True
    score = compute_score(s.total_safe_cells, elapsed, s.difficulty)
    profile.total_games_won += 1
    profile.score += score
    return PlayerMove("won", cleared=outcome.cleared, elapsed=elapsed, score=score)


def toggle_flag(profile: PlayerProfile, row: int, col: int) -> PlayerMove:
    s, reason = _check_playable(profile, row, col)
    if s is None:
        return PlayerMove("rejected", rejected=reason)
    cell = s.grid[index(row, col, s.grid_size)]
    if cell.revealed:
        return PlayerMove("rejected", rejected=ALREADY_REVEALED)
    cell.flagged = not cell.flagged
    s.flag_count = count_flagged(s.grid)
    s.move_count += 1
    return PlayerMove("flagged" if cell.flagged else "unflagged")
