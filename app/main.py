import os
import logging
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from crossmines.commands import CommandHandler
from crossmines.game_session import GameSessionService
from crossmines.grid import Difficulty, to_client_view
from crossmines.leaderboard import best_times, leaderboard_rows
from crossmines.persistence import FirestorePersistence, GameRepository, InMemoryPersistence
from crossmines.state import PAGES, GameDocument

load_dotenv(dotenv_path=Path('.env.local'))

API_BASE = "/api/crossmines/{instance_id}"


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def choose_persistence():
    if _env_flag("USE_INMEMORY"):
        return InMemoryPersistence()
    try:
        return FirestorePersistence()
    except Exception:
        # Fallback to in-memory if firestore client not available
        return InMemoryPersistence()


class ConfigureBody(BaseModel):
    difficulty: str = Field("MEDIUM", min_length=1)
    grid_size: int = Field(10, ge=1, le=40)


class NavigateBody(BaseModel):
    page: str


class MoveBody(BaseModel):
    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)


class JoinBody(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class CommentBody(BaseModel):
    author_id: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    body: str


def to_client(game: GameDocument) -> dict:
    s = game.shared
    return {
        "page": s.page,
        "board": to_client_view(s.grid, s.grid_size) if s.grid else [],
        "grid_size": s.grid_size,
        "difficulty": s.difficulty.name,
        "bomb_count": s.bomb_count,
        "flag_count": s.flag_count,
        "revealed_count": s.revealed_count,
        "total_safe_cells": s.total_safe_cells,
        "move_count": s.move_count,
        "game_over": s.game_over,
        "time_elapsed": s.time_elapsed,
        "streak_count": s.streak_count,
        "best_times": best_times(s.best_score),
        "players": leaderboard_rows(game.players.values()),
    }


def create_app(persistence=None, rng=None, clock=None) -> FastAPI:
    app = FastAPI(title="Crossmines Service", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    app.state.persistence = persistence or choose_persistence()
    repo = GameRepository(app.state.persistence, optimistic=_env_flag("CROSSMINES_OPTIMISTIC_WRITES"))
    extra = {"clock": clock} if clock is not None else {}
    app.state.sessions = GameSessionService(repo, rng=rng, **extra)
    app.state.commands = CommandHandler(repo, rng=rng, **extra)

    @app.on_event("startup")
    async def _log_persistence():
        klass = app.state.persistence.__class__.__name__
        emulator = os.getenv("FIRESTORE_EMULATOR_HOST")
        project = os.getenv("GOOGLE_CLOUD_PROJECT")
        logging.getLogger("uvicorn.error").info(
            f"[crossmines] Persistence={klass} USE_INMEMORY={int(_env_flag('USE_INMEMORY'))} "
            f"OPTIMISTIC_WRITES={int(repo.optimistic)} FIRESTORE_EMULATOR_HOST={emulator or '-'} "
            f"GOOGLE_CLOUD_PROJECT={project or '-'}"
        )

    def get_user_id(req: Request) -> str:
        # Detect Cloud Run to set safer defaults in production
        is_cloud_run = bool(os.getenv("K_SERVICE") or os.getenv("K_REVISION") or os.getenv("K_CONFIGURATION"))
        trust_x_user_id = _env_flag("TRUST_X_USER_ID", "0" if is_cloud_run else "1")
        allow_anon = _env_flag("ALLOW_ANON", "0" if is_cloud_run else "1")
        default_uid = os.getenv("DEFAULT_USER_ID", "local-user")
        logger = logging.getLogger("uvicorn.error")

        iap_email = (
            req.headers.get("X-Goog-Authenticated-User-Email")
            or req.headers.get("X-Authenticated-User-Email")
            or req.headers.get("X-Forwarded-Email")
        )
        if iap_email:
            # Format often: "accounts.google.com:email@example.com"
            if ":" in iap_email:
                iap_email = iap_email.split(":", 1)[1]
            return iap_email
        forwarded_user = req.headers.get("X-Forwarded-User")
        if forwarded_user:
            return forwarded_user

        uid = req.headers.get("X-User-Id")
        if uid and trust_x_user_id:
            return uid

        if allow_anon:
            logger.info(f"[crossmines] get_user_id via=anon-fallback user_id={default_uid}")
            return default_uid

        logger.warning(
            f"[crossmines] get_user_id missing user id is_cloud_run={int(is_cloud_run)} "
            f"trust_x_user_id={int(trust_x_user_id)} allow_anon={int(allow_anon)}"
        )
        raise HTTPException(status_code=401, detail="missing user id")

    def respond(result, instance_id: str) -> dict:
        if result is None:
            raise HTTPException(status_code=404, detail="no game")
        resp = to_client(result.game) | {"game_id": instance_id}
        resp["last_action"] = {
            "changed": result.changed,
            "rejected": result.rejected,
            "hit_bomb": result.hit_bomb,
            "cleared": result.cleared,
            "score_awarded": result.score_awarded,
            "new_best": result.new_best,
        }
        if result.announcement:
            resp["announcement"] = result.announcement
        return resp

    def parse_difficulty(name: str) -> Difficulty:
        try:
            return Difficulty.parse(name)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get(API_BASE + "/state")
    def get_state(instance_id: str):
        game = app.state.sessions.poll(instance_id)
        return to_client(game) | {"game_id": instance_id}

    @app.post(API_BASE + "/configure")
    def configure(instance_id: str, body: ConfigureBody):
        difficulty = parse_difficulty(body.difficulty)
        try:
            result = app.state.sessions.configure(instance_id, difficulty, body.grid_size)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if result is not None and result.rejected:
            raise HTTPException(status_code=400, detail=result.rejected)
        return respond(result, instance_id)

    @app.post(API_BASE + "/navigate")
    def navigate(instance_id: str, body: NavigateBody):
        if body.page not in PAGES:
            raise HTTPException(status_code=400, detail="unknown page")
        result = app.state.sessions.navigate(instance_id, body.page)
        if result is not None and result.rejected:
            raise HTTPException(status_code=400, detail=result.rejected)
        return respond(result, instance_id)

    @app.post(API_BASE + "/start")
    def start(instance_id: str):
        result = app.state.sessions.start(instance_id)
        if result is not None and result.rejected:
            raise HTTPException(status_code=400, detail=result.rejected)
        return respond(result, instance_id)

    @app.post(API_BASE + "/reveal")
    def reveal(instance_id: str, body: MoveBody, user_id: str = Depends(get_user_id)):
        try:
            result = app.state.sessions.reveal(instance_id, body.row, body.col, user_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return respond(result, instance_id)

    @app.post(API_BASE + "/flag")
    def flag(instance_id: str, body: MoveBody):
        try:
            result = app.state.sessions.flag(instance_id, body.row, body.col)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return respond(result, instance_id)

    @app.post(API_BASE + "/hint")
    def hint(instance_id: str, user_id: str = Depends(get_user_id)):
        return respond(app.state.sessions.hint(instance_id, user_id), instance_id)

    @app.post(API_BASE + "/join")
    def join(instance_id: str, body: JoinBody, user_id: str = Depends(get_user_id)):
        return respond(app.state.sessions.join(instance_id, user_id, body.username), instance_id)

    @app.post(API_BASE + "/tick")
    def tick(instance_id: str):
        return respond(app.state.sessions.tick(instance_id), instance_id)

    @app.get(API_BASE + "/leaderboard")
    def leaderboard(instance_id: str):
        game = app.state.sessions.poll(instance_id)
        return {
            "players": leaderboard_rows(game.players.values()),
            "best_times": best_times(game.shared.best_score),
        }

    @app.post(API_BASE + "/comments")
    def comment(instance_id: str, body: CommentBody):
        reply: Optional[str] = app.state.commands.handle(instance_id, body.author_id, body.username, body.body)
        return {"reply": reply}

    return app


app = create_app()
