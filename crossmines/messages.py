from __future__ import annotations

from .grid import Difficulty
from .scoring import format_time


HELP_TEXT = """# Crossmines Commands

- `/join` - Join the game
- `/play [difficulty]` - Start a new game (EASY, MEDIUM, or HARD)
- `/reveal row col` - Reveal a cell (e.g., /reveal 3 4)
- `/flag row col` - Toggle flag on a cell
- `/leaderboard` - Show player rankings
- `/help` - Show this help message

## How to Play
1. The goal is to reveal all cells that don't contain bombs
2. Numbers show how many bombs are adjacent to that cell
3. Use flags to mark where you think bombs are located
4. Be careful - one wrong move and BOOM!"""


def welcome_text(username: str) -> str:
    return (
        f"Welcome to Crossmines, {username}!\n\n"
        "Use the in-game controls to play, or try these commands in comments:\n"
        "- `/play [difficulty]` - Start a new game\n"
        "- `/reveal row col` - Reveal a cell\n"
        "- `/flag row col` - Flag a cell\n"
        "- `/leaderboard` - Show rankings"
    )


def victory_text(username: str, difficulty: Difficulty, seconds: int, moves: int, score: int) -> str:
    return (
        f"# Victory! 🎉\n\n"
        f"{username} cleared a {difficulty.name} difficulty board!\n\n"
        f"Time: {format_time(seconds)}\n"
        f"Moves: {moves}\n"
        f"Score: +{score}"
    )
