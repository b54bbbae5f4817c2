from __future__ import annotations

from typing import Any, Dict, Iterable, List
import math

from .grid import Difficulty
from .scoring import BestScores, format_time
from .state import PlayerProfile


def rank_players(players: Iterable[PlayerProfile]) -> List[PlayerProfile]:
    return sorted(players, key=lambda p: p.score, reverse=True)


def win_rate_percent(player: PlayerProfile) -> int:
    # half-up rounding
    return math.floor(player.win_rate * 100 + 0.5)


def leaderboard_rows(players: Iterable[PlayerProfile]) -> List[Dict[str, Any]]:
    return [
        {
            "rank": rank,
            "id": p.id,
            "username": p.username,
            "score": p.score,
            "games": p.total_games_played,
            "wins": p.total_games_won,
            "winRate": win_rate_percent(p),
        }
        for rank, p in enumerate(rank_players(players), start=1)
    ]


def render_leaderboard(players: Iterable[PlayerProfile]) -> str:
    text = "# Crossmines Leaderboard\n\n"
    text += "Rank | Player | Score | Games | Wins | Win Rate\n"
    text += "-----|--------|-------|-------|------|--------\n"
    rows = leaderboard_rows(players)
    for row in rows:
        text += (
            f"{row['rank']} | {row['username']} | {row['score']} | "
            f"{row['games']} | {row['wins']} | {row['winRate']}%\n"
        )
    if not rows:
        text += "No players yet!"
    return text


def best_times(best: BestScores) -> List[Dict[str, Any]]:
    out = []
    for d in Difficulty:
        entry = best.get(d.name)
        has_record = entry is not None and entry.has_record
        out.append(
            {
                "difficulty": d.name,
                "label": d.label,
                "time": entry.time if has_record else None,
                "revealed": entry.revealed if has_record else 0,
                "display": format_time(entry.time) if has_record else "No record yet",
            }
        )
    return out
