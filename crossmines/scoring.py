from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple
import math

from .grid import Difficulty


@dataclass(frozen=True)
class BestScore:
    time: float = math.inf
    revealed: int = 0

    @property
    def has_record(self) -> bool:
        return self.time != math.inf


BestScores = Dict[str, BestScore]


def empty_best_scores() -> BestScores:
    return {d.name: BestScore() for d in Difficulty}


def compute_score(total_safe_cells: int, elapsed_seconds: float, difficulty: Difficulty) -> int:
    elapsed_minutes = elapsed_seconds / 60
    return math.floor(total_safe_cells * 10 * difficulty.multiplier / (elapsed_minutes + 1))


def is_better(current: BestScore, time: float, revealed: int) -> bool:
    if not current.has_record:
        return True
    if time < current.time:
        return True
    return time == current.time and revealed > current.revealed


def update_best_score(
    best: BestScores, difficulty: Difficulty, time: float, revealed: int
) -> Tuple[BestScores, bool]:
    current = best.get(difficulty.name, BestScore())
    if not is_better(current, time, revealed):
        return best, False
    updated = dict(best)
    updated[difficulty.name] = BestScore(time, revealed)
    return updated, True


def format_time(seconds: float) -> str:
    seconds = int(seconds)
    mins, secs = divmod(seconds, 60)
    return f"{mins}:{secs:02d}"
