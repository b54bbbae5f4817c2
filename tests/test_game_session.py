import random

import pytest

from crossmines import game_session as gs
from crossmines.grid import Difficulty, count_bombs, index
from crossmines.scoring import BestScore, compute_score
from crossmines.state import GAME, HOME, LEADERBOARD, LOSE, SETUP, WIN, GameDocument

# one bomb in the corner; EASY clears it in one reveal from (0, 0)
CORNER = [
    "...",
    "...",
    "..*",
]

T0 = 1_000_000


def test_configure_then_start_generates_board():
    game = GameDocument()
    assert gs.start_game(game, random.Random(1), T0).rejected == "invalid_transition"
    gs.configure(game, Difficulty.MEDIUM, 8)
    assert game.shared.page == SETUP
    gs.start_game(game, random.Random(1), T0)
    s = game.shared
    assert s.page == GAME
    assert len(s.grid) == 64
    assert s.bomb_count == count_bombs(s.grid) == 9
    assert (s.move_count, s.revealed_count, s.flag_count, s.game_over) == (0, 0, 0, False)
    assert s.start_time == T0


def test_configure_rejects_unknown_grid_size():
    with pytest.raises(ValueError):
        gs.configure(GameDocument(), Difficulty.EASY, 7)


def test_navigation_rules():
    game = GameDocument()
    assert gs.navigate(game, LEADERBOARD).changed
    assert gs.navigate(game, HOME).changed
    assert gs.navigate(game, GAME).rejected == "invalid_transition"
    assert gs.navigate(game, SETUP).changed
    assert gs.navigate(game, HOME).changed
    assert game.shared.page == HOME


def test_reveal_bomb_loses_and_resets_streak(game_in_progress):
    game = game_in_progress(CORNER)
    game.shared.streak_count = 4
    game.add_player("u1", "alice")
    result = gs.reveal(game, 2, 2, "u1", T0 + 5000)
    s = game.shared
    assert result.hit_bomb
    assert s.page == LOSE and s.game_over
    assert s.streak_count == 0
    assert all(c.revealed for c in s.grid if c.is_bomb)
    p = game.players["u1"]
    assert (p.total_games_played, p.total_games_won, p.score) == (1, 0, 0)

    after = gs.reveal(game, 0, 0, "u1", T0 + 6000)
    assert after.changed is False
    assert not s.grid[0].revealed


def test_easy_wins_in_one_reveal(game_in_progress):
    game = game_in_progress(CORNER, difficulty=Difficulty.EASY)
    game.add_player("u1", "alice")
    result = gs.reveal(game, 0, 0, "u1", T0 + 30_000)
    s = game.shared
    assert s.revealed_count == 8
    assert s.page == WIN and s.game_over
    assert s.streak_count == 1
    assert s.best_score["EASY"] == BestScore(30, 8)
    assert result.new_best
    expected = compute_score(8, 30, Difficulty.EASY)
    p = game.players["u1"]
    assert (p.total_games_played, p.total_games_won, p.score) == (1, 1, expected)
    assert result.score_awarded == expected
    assert "Victory" in result.announcement


def test_medium_win_only_when_all_safe_cells_revealed(game_in_progress):
    game = game_in_progress(CORNER, difficulty=Difficulty.MEDIUM)
    gs.reveal(game, 0, 0, None, T0)
    assert game.shared.revealed_count == 4
    assert game.shared.page == GAME
    gs.reveal(game, 0, 2, None, T0)
    assert game.shared.revealed_count == 6
    assert not game.shared.game_over
    gs.reveal(game, 2, 0, None, T0)
    assert game.shared.revealed_count == 8
    assert game.shared.page == WIN
    assert game.shared.move_count == 3


def test_equal_time_with_more_revealed_updates_best(game_in_progress):
    game = game_in_progress(CORNER, difficulty=Difficulty.EASY)
    game.shared.best_score["EASY"] = BestScore(42, 6)
    result = gs.reveal(game, 0, 0, None, T0 + 42_000)
    assert result.new_best
    assert game.shared.best_score["EASY"] == BestScore(42, 8)


def test_flag_revealed_cell_is_rejected(game_in_progress):
    game = game_in_progress(CORNER)
    gs.reveal(game, 0, 0, None, T0)
    moves = game.shared.move_count
    result = gs.flag(game, 0, 0)
    assert result.rejected == "cell_revealed"
    assert not game.shared.grid[0].flagged
    assert game.shared.move_count == moves


def test_flag_toggles_and_blocks_reveal(game_in_progress):
    game = game_in_progress(CORNER)
    gs.flag(game, 2, 2)
    assert game.shared.flag_count == 1
    assert gs.reveal(game, 2, 2, None, T0).changed is False
    assert not game.shared.game_over
    gs.flag(game, 2, 2)
    assert game.shared.flag_count == 0
    assert game.shared.move_count == 2


def test_out_of_bounds_raises_without_mutation(game_in_progress):
    game = game_in_progress(CORNER)
    with pytest.raises(ValueError):
        gs.reveal(game, 3, 0, None, T0)
    with pytest.raises(ValueError):
        gs.flag(game, 0, 3)
    assert game.shared.move_count == 0


def test_hint_reveals_safe_cells_and_counts_each(game_in_progress):
    game = game_in_progress(
        [
            "......",
            "......",
            "..*...",
            "......",
            "....*.",
            "......",
        ]
    )
    result = gs.hint(game, random.Random(5), None, T0)
    s = game.shared
    assert result.changed
    assert s.move_count == 3
    assert s.revealed_count >= 3
    assert not any(c.revealed for c in s.grid if c.is_bomb)


def test_hint_can_win(game_in_progress):
    game = game_in_progress(["..", ".*"], difficulty=Difficulty.HARD)
    gs.hint(game, random.Random(0), None, T0)
    assert game.shared.page == WIN
    assert game.shared.move_count == 3


def test_tick_tracks_elapsed_time_while_playing(game_in_progress):
    game = game_in_progress(CORNER)
    assert gs.tick(game, T0 + 12_500).changed
    assert game.shared.time_elapsed == 12
    assert gs.tick(game, T0 + 12_900).changed is False
    game.shared.game_over = True
    assert gs.tick(game, T0 + 60_000).changed is False
    assert game.shared.time_elapsed == 12


def test_play_again_from_lose(game_in_progress):
    game = game_in_progress(CORNER)
    gs.reveal(game, 2, 2, None, T0)
    gs.start_game(game, random.Random(2), T0 + 1000)
    assert game.shared.page == GAME
    assert not game.shared.game_over
    assert not any(c.revealed for c in game.shared.grid)


def test_join_once():
    game = GameDocument()
    first = gs.join(game, "u1", "alice")
    assert first.changed and "alice" in first.announcement
    assert gs.join(game, "u1", "alice").rejected == "already_joined"
    assert list(game.players) == ["u1"]


def test_bomb_reveal_only_marks_bombs(game_in_progress):
    game = game_in_progress(["*..", "...", "..*"])
    gs.reveal(game, 0, 0, None, T0)
    revealed = [i for i, c in enumerate(game.shared.grid) if c.revealed]
    assert revealed == [index(0, 0, 3), index(2, 2, 3)]
