from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple
import logging
import random
import re

from .grid import Difficulty, Grid, index
from .leaderboard import render_leaderboard
from .messages import HELP_TEXT
from .persistence import GameRepository
from .player_session import (
    ALREADY_REVEALED,
    FLAGGED,
    GAME_OVER,
    NO_SESSION,
    OUT_OF_BOUNDS,
    reveal,
    start_play,
    toggle_flag,
)
from .scoring import format_time
from .state import GameDocument, now_ms

logger = logging.getLogger(__name__)

COMMAND_RE = re.compile(r"^/(\w+)(?: (.+))?$", re.IGNORECASE)
COORDS_RE = re.compile(r"(\d+)\s+(\d+)")

VERBS = ("join", "play", "reveal", "flag", "leaderboard", "help")

UNREVEALED = " ▢ "
FLAG = " 🚩 "
BOMB = " 💣 "
BLANK = "   "


@dataclass(frozen=True)
class Command:
    verb: str
    args: str = ""


@dataclass
class CommandReply:
    text: str
    changed: bool = False


def parse_command(body: str) -> Optional[Command]:
    """Split a comment into a lower-cased verb and its raw argument string.

    Returns None for lines that are not commands or name an unknown verb.
    """
    m = COMMAND_RE.match((body or "").strip())
    if not m:
        return None
    verb = m.group(1).lower()
    if verb not in VERBS:
        return None
    return Command(verb, m.group(2) or "")


def parse_coords(args: str) -> Optional[Tuple[int, int]]:
    m = COORDS_RE.fullmatch(args.strip())
    if not m:
        return None
    return int(m.group(1)) - 1, int(m.group(2)) - 1


def render_ascii_grid(grid: Grid, size: int, reveal_all: bool = False) -> str:
    out = "```\n   "
    for col in range(size):
        out += f" {col + 1:>2} "
    out += "\n   "
    out += "---" * size
    out += "\n"
    for row in range(size):
        out += f"{row + 1:>2} |"
        for col in range(size):
            cell = grid[index(row, col, size)]
            if cell.flagged and not reveal_all:
                out += FLAG
            elif not cell.revealed and not reveal_all:
                out += UNREVEALED
            elif cell.is_bomb:
                out += BOMB
            elif cell.value > 0:
                out += f" {cell.value} "
            else:
                out += BLANK
        out += "\n"
    out += "```"
    return out


class CommandHandler:
    """Runs text commands against per-player boards in the shared document."""

    def __init__(
        self,
        repo: GameRepository,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.repo = repo
        self.rng = rng or random.Random()
        self.clock = clock

    def handle(self, instance_id: str, author_id: str, username: str, body: str) -> Optional[str]:
        cmd = parse_command(body)
        if cmd is None:
            return None
        handler = getattr(self, f"_{cmd.verb}")
        reply = self.repo.mutate(instance_id, lambda g: handler(g, author_id, username, cmd.args))
        if reply is None:
            return None
        logger.info(f"[crossmines] command verb={cmd.verb} user={author_id} changed={int(reply.changed)}")
        return reply.text

    def _join(self, game: GameDocument, user_id: str, username: str, args: str) -> CommandReply:
        if user_id in game.players:
            return CommandReply(f"@{username} You're already playing!")
        game.add_player(user_id, username)
        return CommandReply(f"@{username} has joined the game! Use /play to start a new game.", changed=True)

    def _play(self, game: GameDocument, user_id: str, username: str, args: str) -> CommandReply:
        profile = game.player(user_id)
        if profile is None:
            return CommandReply(f"@{username} Please use /join first to join the game.")
        try:
            difficulty = Difficulty.parse(args) if args.strip() else Difficulty.MEDIUM
        except ValueError:
            difficulty = Difficulty.MEDIUM
        session = start_play(profile, difficulty, self.rng, self.clock())
        grid_text = render_ascii_grid(session.grid, session.grid_size)
        return CommandReply(
            f"@{username} started a new {difficulty.name} game!\n\n"
            f"Bombs: {session.bomb_count}\n\n{grid_text}\n\n"
            "Use /reveal row col to reveal a cell (e.g., /reveal 3 4)\n"
            "Use /flag row col to flag a cell",
            changed=True,
        )

    def _rejection(self, username: str, verb: str, reason: str, row: int, col: int, size: int) -> str:
        if reason == NO_SESSION:
            return f"@{username} Please start a game first with /play."
        if reason == GAME_OVER:
            return f"@{username} Your game is over. Start a new game with /play."
        if reason == OUT_OF_BOUNDS:
            return f"@{username} Coordinates out of bounds. Grid size is {size}x{size}."
        if reason == FLAGGED:
            return f"@{username} This cell is flagged. Remove the flag first with /flag {row + 1} {col + 1}."
        if reason == ALREADY_REVEALED and verb == "flag":
            return f"@{username} This cell is already revealed. You can't flag it."
        return f"@{username} This cell is already revealed."

    def _board_command(self, game: GameDocument, user_id: str, username: str, args: str, verb: str):
        profile = game.player(user_id)
        if profile is None:
            return None, CommandReply(f"@{username} Please use /join first to join the game.")
        if profile.session is None:
            return None, CommandReply(self._rejection(username, verb, NO_SESSION, 0, 0, 0))
        if profile.session.game_over:
            return None, CommandReply(self._rejection(username, verb, GAME_OVER, 0, 0, 0))
        coords = parse_coords(args)
        if coords is None:
            return None, CommandReply(
                f"@{username} Invalid coordinates. Use format: /{verb} row col (e.g., /{verb} 3 4)"
            )
        return (profile, coords), None

    def _reveal(self, game: GameDocument, user_id: str, username: str, args: str) -> CommandReply:
        target, early = self._board_command(game, user_id, username, args, "reveal")
        if early is not None:
            return early
        profile, (row, col) = target
        move = reveal(profile, row, col, self.clock())
        s = profile.session
        if move.rejected:
            return CommandReply(self._rejection(username, "reveal", move.rejected, row, col, s.grid_size))
        if move.status == "lost":
            return CommandReply(
                f"@{username} BOOM! You hit a bomb at {row + 1},{col + 1}!\n\n"
                f"{render_ascii_grid(s.grid, s.grid_size, True)}\n\n"
                "Game Over. Use /play to start a new game.",
                changed=True,
            )
        if move.status == "won":
            return CommandReply(
                f"@{username} YOU WIN! All safe cells revealed!\n\n"
                f"{render_ascii_grid(s.grid, s.grid_size, True)}\n\n"
                f"Time: {format_time(move.elapsed)}\nMoves: {s.move_count}\nScore: +{move.score}\n\n"
                "Use /play to start a new game.",
                changed=True,
            )
        return CommandReply(
            f"@{username} revealed {row + 1},{col + 1}\n\n"
            f"{render_ascii_grid(s.grid, s.grid_size)}\n\n"
            f"Safe cells: {s.revealed_count}/{s.total_safe_cells}\nMoves: {s.move_count}",
            changed=True,
        )

    def _flag(self, game: GameDocument, user_id: str, username: str, args: str) -> CommandReply:
        target, early = self._board_command(game, user_id, username, args, "flag")
        if early is not None:
            return early
        profile, (row, col) = target
        move = toggle_flag(profile, row, col)
        s = profile.session
        if move.rejected:
            return CommandReply(self._rejection(username, "flag", move.rejected, row, col, s.grid_size))
        return CommandReply(
            f"@{username} {move.status} {row + 1},{col + 1}\n\n"
            f"{render_ascii_grid(s.grid, s.grid_size)}\n\n"
            f"Flags: {s.flag_count}/{s.bomb_count}\nMoves: {s.move_count}",
            changed=True,
        )

    def _leaderboard(self, game: GameDocument, user_id: str, username: str, args: str) -> CommandReply:
        return CommandReply(render_leaderboard(game.players.values()))

    def _help(self, game: GameDocument, user_id: str, username: str, args: str) -> CommandReply:
        return CommandReply(HELP_TEXT)
