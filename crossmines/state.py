from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from .grid import Difficulty, Grid
from .scoring import BestScores, empty_best_scores


HOME = "home"
SETUP = "setup"
GAME = "game"
WIN = "win"
LOSE = "lose"
LEADERBOARD = "leaderboard"

PAGES = (HOME, SETUP, GAME, WIN, LOSE, LEADERBOARD)

DEFAULT_GRID_SIZE = 10
GRID_SIZES = (6, 8, 10, 12)


@dataclass
class SharedGameState:
    page: str = HOME
    grid: Grid = field(default_factory=list)
    grid_size: int = DEFAULT_GRID_SIZE
    difficulty: Difficulty = Difficulty.MEDIUM
    bomb_count: int = 0
    flag_count: int = 0
    revealed_count: int = 0
    move_count: int = 0
    game_over: bool = False
    start_time: int = 0
    time_elapsed: int = 0
    streak_count: int = 0
    best_score: BestScores = field(default_factory=empty_best_scores)

    @property
    def total_safe_cells(self) -> int:
        return len(self.grid) - self.bomb_count


@dataclass
class PlayerSession:
    grid: Grid
    grid_size: int
    difficulty: Difficulty
    bomb_count: int
    flag_count: int = 0
    revealed_count: int = 0
    move_count: int = 0
    game_over: bool = False
    start_time: int = 0

    @property
    def total_safe_cells(self) -> int:
        return len(self.grid) - self.bomb_count


@dataclass
class PlayerProfile:
    id: str
    username: str
    score: int = 0
    total_games_played: int = 0
    total_games_won: int = 0
    session: Optional[PlayerSession] = None

    @property
    def win_rate(self) -> float:
        if self.total_games_played <= 0:
            return 0.0
        return self.total_games_won / self.total_games_played


@dataclass
class GameDocument:
    """The single stored record of a game instance.

    ``shared`` belongs to the interactive display flow, ``players`` to the
    command path. Both live behind one storage key.
    """

    shared: SharedGameState = field(default_factory=SharedGameState)
    players: Dict[str, PlayerProfile] = field(default_factory=dict)

    def player(self, user_id: Optional[str]) -> Optional[PlayerProfile]:
        if not user_id:
            return None
        return self.players.get(user_id)

    def add_player(self, user_id: str, username: str) -> PlayerProfile:
        profile = PlayerProfile(id=user_id, username=username)
        self.players[user_id] = profile
        return profile


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
