from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
import json
import logging
import math
import os

try:
    from google.cloud import firestore  # type: ignore
except Exception:  # pragma: no cover
    firestore = None  # type: ignore

from .grid import Cell, CellKind, Difficulty, Grid
from .scoring import BestScore, BestScores, empty_best_scores
from .state import (
    DEFAULT_GRID_SIZE,
    HOME,
    GameDocument,
    PlayerProfile,
    PlayerSession,
    SharedGameState,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_WRITE_ATTEMPTS = 3


class WriteConflict(Exception):
    """The stored document changed since it was read."""


def storage_key(instance_id: str) -> str:
    return f"crossmines_{instance_id}"


def _difficulty(name: Optional[str]) -> Difficulty:
    try:
        return Difficulty[name or "MEDIUM"]
    except KeyError:
        return Difficulty.MEDIUM


def _cell_to_doc(cell: Cell) -> Dict[str, Any]:
    return {
        "type": int(cell.kind),
        "value": cell.value,
        "revealed": cell.revealed,
        "flagged": cell.flagged,
    }


def _cell_from_doc(doc: Dict[str, Any]) -> Cell:
    return Cell(
        kind=CellKind(int(doc.get("type", 0))),
        value=int(doc.get("value", 0)),
        revealed=bool(doc.get("revealed", False)),
        flagged=bool(doc.get("flagged", False)),
    )


def _grid_to_doc(grid: Grid) -> List[Dict[str, Any]]:
    return [_cell_to_doc(c) for c in grid]


def _grid_from_doc(cells: Optional[List[Dict[str, Any]]]) -> Grid:
    return [_cell_from_doc(c) for c in (cells or [])]


def _best_to_doc(best: BestScores) -> Dict[str, Any]:
    # JSON has no Infinity; a missing record is stored as null
    return {
        name: {"time": None if not entry.has_record else entry.time, "revealed": entry.revealed}
        for name, entry in best.items()
    }


def _best_from_doc(doc: Optional[Dict[str, Any]]) -> BestScores:
    best = empty_best_scores()
    for name, entry in (doc or {}).items():
        t = entry.get("time")
        best[name] = BestScore(
            time=math.inf if t is None else t,
            revealed=int(entry.get("revealed", 0)),
        )
    return best


def _session_to_doc(s: PlayerSession) -> Dict[str, Any]:
    return {
        "currentGrid": _grid_to_doc(s.grid),
        "currentGridSize": s.grid_size,
        "currentDifficulty": s.difficulty.name,
        "currentBombCount": s.bomb_count,
        "currentFlagCount": s.flag_count,
        "currentRevealedCount": s.revealed_count,
        "currentMoveCount": s.move_count,
        "currentGameOver": s.game_over,
        "startTime": s.start_time,
    }


def _session_from_doc(doc: Dict[str, Any]) -> Optional[PlayerSession]:
    if not doc.get("currentGrid"):
        return None
    return PlayerSession(
        grid=_grid_from_doc(doc["currentGrid"]),
        grid_size=int(doc.get("currentGridSize", 8)),
        difficulty=_difficulty(doc.get("currentDifficulty")),
        bomb_count=int(doc.get("currentBombCount", 0)),
        flag_count=int(doc.get("currentFlagCount", 0)),
        revealed_count=int(doc.get("currentRevealedCount", 0)),
        move_count=int(doc.get("currentMoveCount", 0)),
        game_over=bool(doc.get("currentGameOver", False)),
        start_time=int(doc.get("startTime", 0)),
    )


def _player_to_doc(p: PlayerProfile) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "id": p.id,
        "username": p.username,
        "score": p.score,
        "totalGamesPlayed": p.total_games_played,
        "totalGamesWon": p.total_games_won,
    }
    if p.session is not None:
        doc.update(_session_to_doc(p.session))
    return doc


def _player_from_doc(doc: Dict[str, Any]) -> PlayerProfile:
    return PlayerProfile(
        id=str(doc["id"]),
        username=doc.get("username", ""),
        score=int(doc.get("score", 0) or 0),
        total_games_played=int(doc.get("totalGamesPlayed", 0) or 0),
        total_games_won=int(doc.get("totalGamesWon", 0) or 0),
        session=_session_from_doc(doc),
    )


def to_document(game: GameDocument) -> Dict[str, Any]:
    s = game.shared
    return {
        "currentPage": s.page,
        "grid": _grid_to_doc(s.grid),
        "gridSize": s.grid_size,
        "difficulty": s.difficulty.name,
        "bombCount": s.bomb_count,
        "flagCount": s.flag_count,
        "revealedCount": s.revealed_count,
        "gameOver": s.game_over,
        "moveCount": s.move_count,
        "timeElapsed": s.time_elapsed,
        "gameStartTime": s.start_time,
        "streakCount": s.streak_count,
        "bestScore": _best_to_doc(s.best_score),
        "players": [_player_to_doc(p) for p in game.players.values()],
    }


def from_document(doc: Dict[str, Any]) -> GameDocument:
    shared = SharedGameState(
        page=doc.get("currentPage") or HOME,
        grid=_grid_from_doc(doc.get("grid")),
        grid_size=int(doc.get("gridSize") or DEFAULT_GRID_SIZE),
        difficulty=_difficulty(doc.get("difficulty")),
        bomb_count=int(doc.get("bombCount", 0) or 0),
        flag_count=int(doc.get("flagCount", 0) or 0),
        revealed_count=int(doc.get("revealedCount", 0) or 0),
        move_count=int(doc.get("moveCount", 0) or 0),
        game_over=bool(doc.get("gameOver", False)),
        start_time=int(doc.get("gameStartTime", 0) or 0),
        time_elapsed=int(doc.get("timeElapsed", 0) or 0),
        streak_count=int(doc.get("streakCount", 0) or 0),
        best_score=_best_from_doc(doc.get("bestScore")),
    )
    players: Dict[str, PlayerProfile] = {}
    for entry in doc.get("players") or []:
        p = _player_from_doc(entry)
        players[p.id] = p
    return GameDocument(shared=shared, players=players)


class InMemoryPersistence:
    """Simple in-memory key/value store for tests and local dev.

    Values are kept as JSON text so every write is checked for
    serializability and readers never share objects with writers.
    """

    def __init__(self) -> None:
        self.docs: Dict[str, str] = {}
        self.versions: Dict[str, int] = {}

    def read(self, key: str) -> Tuple[Optional[Dict[str, Any]], int]:
        raw = self.docs.get(key)
        if raw is None:
            return None, 0
        return json.loads(raw), self.versions.get(key, 0)

    def write(self, key: str, doc: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        current = self.versions.get(key, 0)
        if expected_version is not None and current != expected_version:
            raise WriteConflict(key)
        self.docs[key] = json.dumps(doc, allow_nan=False)
        self.versions[key] = current + 1
        return current + 1


class FirestorePersistence:
    """Firestore-backed store using Native mode.

    Uses FIRESTORE_EMULATOR_HOST if present; otherwise connects to production.
    """

    def __init__(self, client: Optional[Any] = None) -> None:
        if client is not None:
            self.client = client
        else:
            if firestore is None:
                raise RuntimeError("google-cloud-firestore not available")
            self.client = firestore.Client(project=os.environ.get("GOOGLE_CLOUD_PROJECT"))

    def _game_ref(self, key: str):
        return self.client.collection("crossminesGames").document(key)

    def read(self, key: str) -> Tuple[Optional[Dict[str, Any]], int]:
        snap = self._game_ref(key).get()
        if not snap.exists:
            return None, 0
        data = snap.to_dict() or {}
        version = int(data.pop("version", 0) or 0)
        return data, version

    def write(self, key: str, doc: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        if firestore is None:
            raise RuntimeError("google-cloud-firestore not available")

        @firestore.transactional  # type: ignore
        def _tx(tx):
            gref = self._game_ref(key)
            snap = gref.get(transaction=tx)
            current = 0
            if snap.exists:
                current = int((snap.to_dict() or {}).get("version", 0) or 0)
            if expected_version is not None and current != expected_version:
                raise WriteConflict(key)
            tx.set(gref, dict(doc, version=current + 1))
            return current + 1

        return _tx(self.client.transaction())


class GameRepository:
    """Read-modify-write access to game documents.

    Writes are last-writer-wins unless ``optimistic`` is set, in which case a
    write that lost a race is retried from a fresh read.
    """

    def __init__(self, store: Any, optimistic: bool = False) -> None:
        self.store = store
        self.optimistic = optimistic

    def load(self, instance_id: str) -> Tuple[Optional[GameDocument], int]:
        try:
            raw, version = self.store.read(storage_key(instance_id))
        except Exception:
            logger.exception(f"[crossmines] read failed instance={instance_id}")
            return None, 0
        if raw is None:
            return None, version
        return from_document(raw), version

    def save(self, instance_id: str, game: GameDocument, version: Optional[int] = None) -> bool:
        expected = version if self.optimistic else None
        try:
            self.store.write(storage_key(instance_id), to_document(game), expected_version=expected)
        except WriteConflict:
            raise
        except Exception:
            logger.exception(f"[crossmines] write failed instance={instance_id}")
            return False
        return True

    def load_or_create(self, instance_id: str) -> GameDocument:
        try:
            raw, version = self.store.read(storage_key(instance_id))
        except Exception:
            # never overwrite a document we failed to read
            logger.exception(f"[crossmines] read failed instance={instance_id}")
            return GameDocument()
        if raw is not None:
            return from_document(raw)
        game = GameDocument()
        try:
            self.save(instance_id, game, version)
        except WriteConflict:
            # another writer created it first
            existing, _ = self.load(instance_id)
            if existing is not None:
                return existing
        return game

    def mutate(self, instance_id: str, fn: Callable[[GameDocument], T]) -> Optional[T]:
        """Apply ``fn`` to the stored document and write it back.

        Returns None without calling ``fn`` when the instance has no document.
        ``fn`` may return a result with a ``changed`` attribute set to False to
        skip the write.
        """
        result: Optional[T] = None
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            game, version = self.load(instance_id)
            if game is None:
                return None
            result = fn(game)
            if not getattr(result, "changed", True):
                return result
            try:
                self.save(instance_id, game, version)
                return result
            except WriteConflict:
                logger.info(f"[crossmines] write conflict instance={instance_id} attempt={attempt}")
        logger.warning(f"[crossmines] giving up after {MAX_WRITE_ATTEMPTS} conflicting writes instance={instance_id}")
        return result
