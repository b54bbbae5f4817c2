from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
import logging
import random

from .grid import (
    Difficulty,
    count_bombs,
    count_flagged,
    count_revealed,
    generate_grid,
    in_bounds,
    index,
)
from .messages import victory_text, welcome_text
from .persistence import GameRepository
from .reveal import BOUNDED, reveal_cell, strategy_for
from .scoring import compute_score, update_best_score
from .state import (
    GAME,
    GRID_SIZES,
    HOME,
    LEADERBOARD,
    LOSE,
    SETUP,
    WIN,
    GameDocument,
    PlayerProfile,
    now_ms,
)

logger = logging.getLogger(__name__)

HINT_CELLS = 3

# page -> pages reachable by explicit navigation
_NAVIGATION = {
    HOME: {SETUP},
    SETUP: {HOME},
}
_ALWAYS_REACHABLE = {HOME, LEADERBOARD}
_STARTABLE_FROM = {SETUP, WIN, LOSE}


@dataclass
class ActionResult:
    game: GameDocument
    changed: bool = True
    rejected: Optional[str] = None
    hit_bomb: bool = False
    cleared: int = 0
    score_awarded: int = 0
    new_best: bool = False
    announcement: Optional[str] = None


def _noop(game: GameDocument, reason: Optional[str] = None) -> ActionResult:
    return ActionResult(game, changed=False, rejected=reason)


def _elapsed_seconds(start_ms: int, now: int) -> int:
    return max(0, (now - start_ms) // 1000)


def can_navigate(current: str, target: str) -> bool:
    if target in _ALWAYS_REACHABLE:
        return True
    return target in _NAVIGATION.get(current, set())


def navigate(game: GameDocument, page: str) -> ActionResult:
    s = game.shared
    if s.page == page:
        return _noop(game)
    if not can_navigate(s.page, page):
        return _noop(game, "invalid_transition")
    s.page = page
    return ActionResult(game)


def configure(game: GameDocument, difficulty: Difficulty, grid_size: int) -> ActionResult:
    if grid_size not in GRID_SIZES:
        raise ValueError("invalid grid size")
    s = game.shared
    if s.page not in (HOME, SETUP):
        return _noop(game, "invalid_transition")
    s.difficulty = difficulty
    s.grid_size = grid_size
    s.page = SETUP
    return ActionResult(game)


def start_game(game: GameDocument, rng: random.Random, now: int) -> ActionResult:
    s = game.shared
    if s.page not in _STARTABLE_FROM:
        return _noop(game, "invalid_transition")
    s.grid = generate_grid(s.grid_size, s.difficulty.bomb_rate, rng)
    s.bomb_count = count_bombs(s.grid)
    s.flag_count = 0
    s.revealed_count = 0
    s.move_count = 0
    s.game_over = False
    s.time_elapsed = 0
    s.start_time = now
    s.page = GAME
    return ActionResult(game)


def _enter_lose(game: GameDocument, player: Optional[PlayerProfile], now: int) -> None:
    s = game.shared
    s.game_over = True
    s.page = LOSE
    s.streak_count = 0
    s.time_elapsed = _elapsed_seconds(s.start_time, now)
    if player is not None:
        player.total_games_played += 1


def _check_win(game: GameDocument, player: Optional[PlayerProfile], now: int, result: ActionResult) -> None:
    s = game.shared
    if s.revealed_count != s.total_safe_cells:
        return
    final_time = _elapsed_seconds(s.start_time, now)
    s.game_over = True
    s.page = WIN
    s.streak_count += 1
    s.time_elapsed = final_time
    s.best_score, result.new_best = update_best_score(s.best_score, s.difficulty, final_time, s.revealed_count)
    if player is None:
        return
    score = compute_score(s.total_safe_cells, final_time, s.difficulty)
    player.total_games_played += 1
    player.total_games_won += 1
    player.score += score
    result.score_awarded = score
    result.announcement = victory_text(player.username, s.difficulty, final_time, s.move_count, score)
    logger.info(f"[crossmines] win player={player.id} difficulty={s.difficulty.name} time={final_time} score={score}")


def _playable(game: GameDocument) -> bool:
    s = game.shared
    return s.page == GAME and not s.game_over and bool(s.grid)


def _cell_index(game: GameDocument, row: int, col: int) -> int:
    size = game.shared.grid_size
    if not in_bounds(row, col, size):
        raise ValueError("out of bounds")
    return index(row, col, size)


def reveal(game: GameDocument, row: int, col: int, user_id: Optional[str], now: int) -> ActionResult:
    if not _playable(game):
        return _noop(game, "game_over" if game.shared.game_over else None)
    s = game.shared
    i = _cell_index(game, row, col)
    if s.grid[i].revealed or s.grid[i].flagged:
        return _noop(game)
    outcome = reveal_cell(s.grid, s.grid_size, i, strategy_for(BOUNDED, s.difficulty))
    s.move_count += 1
    result = ActionResult(game, hit_bomb=outcome.hit_bomb, cleared=outcome.cleared)
    player = game.player(user_id)
    if outcome.hit_bomb:
        _enter_lose(game, player, now)
        return result
    s.revealed_count = count_revealed(s.grid)
    _check_win(game, player, now, result)
    return result


def flag(game: GameDocument, row: int, col: int) -> ActionResult:
    if not _playable(game):
        return _noop(game, "game_over" if game.shared.game_over else None)
    s = game.shared
    i = _cell_index(game, row, col)
    cell = s.grid[i]
    if cell.revealed:
        return _noop(game, "cell_revealed")
    cell.flagged = not cell.flagged
    s.flag_count = count_flagged(s.grid)
    s.move_count += 1
    return ActionResult(game)


def hint(game: GameDocument, rng: random.Random, user_id: Optional[str], now: int) -> ActionResult:
    if not _playable(game):
        return _noop(game, "game_over" if game.shared.game_over else None)
    s = game.shared
    candidates = [i for i, c in enumerate(s.grid) if not c.revealed and not c.flagged and not c.is_bomb]
    if not candidates:
        return _noop(game)
    picked = rng.sample(candidates, min(HINT_CELLS, len(candidates)))
    strategy = strategy_for(BOUNDED, s.difficulty)
    result = ActionResult(game)
    for i in picked:
        result.cleared += reveal_cell(s.grid, s.grid_size, i, strategy).cleared
    s.move_count += len(picked)
    s.revealed_count = count_revealed(s.grid)
    _check_win(game, game.player(user_id), now, result)
    return result


def tick(game: GameDocument, now: int) -> ActionResult:
    s = game.shared
    if s.page != GAME or s.game_over or s.start_time <= 0:
        return _noop(game)
    elapsed = _elapsed_seconds(s.start_time, now)
    if elapsed == s.time_elapsed:
        return _noop(game)
    s.time_elapsed = elapsed
    return ActionResult(game)


def join(game: GameDocument, user_id: str, username: str) -> ActionResult:
    if user_id in game.players:
        return _noop(game, "already_joined")
    game.add_player(user_id, username)
    logger.info(f"[crossmines] player joined id={user_id} username={username}")
    return ActionResult(game, announcement=welcome_text(username))


class GameSessionService:
    """The shared interactive board of a game instance, backed by the store."""

    def __init__(
        self,
        repo: GameRepository,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.repo = repo
        self.rng = rng or random.Random()
        self.clock = clock

    def poll(self, instance_id: str) -> GameDocument:
        return self.repo.load_or_create(instance_id)

    def navigate(self, instance_id: str, page: str) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: navigate(g, page))

    def configure(self, instance_id: str, difficulty: Difficulty, grid_size: int) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: configure(g, difficulty, grid_size))

    def start(self, instance_id: str) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: start_game(g, self.rng, self.clock()))

    def reveal(self, instance_id: str, row: int, col: int, user_id: Optional[str] = None) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: reveal(g, row, col, user_id, self.clock()))

    def flag(self, instance_id: str, row: int, col: int) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: flag(g, row, col))

    def hint(self, instance_id: str, user_id: Optional[str] = None) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: hint(g, self.rng, user_id, self.clock()))

    def tick(self, instance_id: str) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: tick(g, self.clock()))

    def join(self, instance_id: str, user_id: str, username: str) -> Optional[ActionResult]:
        return self.repo.mutate(instance_id, lambda g: join(g, user_id, username))
