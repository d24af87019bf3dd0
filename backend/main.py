from fastapi import FastAPI, WebSocket, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, StrictInt, field_validator
from typing import Optional
from contextlib import asynccontextmanager
import re
import uvicorn
import logging
import socket as socketlib

import config
config.setup_logging()

from auth import token_registry, require_identity
from fanout import ranking_broadcaster
from ledger import score_ledger
import leaderboard

logger = logging.getLogger(__name__)

score_ledger.add_listener(ranking_broadcaster.notify)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting picture quiz score server")
    await score_ledger.store.open()
    yield
    await ranking_broadcaster.drain()
    await score_ledger.store.close()
    logger.info("Shutting down picture quiz score server")


app = FastAPI(title="Picture Quiz Score Server", lifespan=lifespan)


def get_local_ip():
    try:
        s = socketlib.socket(socketlib.AF_INET, socketlib.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


class EnterGameRequest(BaseModel):
    username: str

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        # Strip control characters and HTML tags
        v = re.sub(r'[\x00-\x1f\x7f]', '', v)
        v = re.sub(r'<[^>]+>', '', v)
        v = v.strip()
        if not (config.MIN_USERNAME_LENGTH <= len(v) <= config.MAX_USERNAME_LENGTH):
            raise ValueError(
                f'Username must be {config.MIN_USERNAME_LENGTH}-{config.MAX_USERNAME_LENGTH} characters'
            )
        return v


class ScoreSubmitRequest(BaseModel):
    score: StrictInt
    correct_streak: StrictInt
    best_streak: StrictInt

    @field_validator('score', 'correct_streak', 'best_streak')
    @classmethod
    def validate_range(cls, v: int) -> int:
        if v < 0 or v > config.MAX_SCORE_VALUE:
            raise ValueError(f'Value must be between 0 and {config.MAX_SCORE_VALUE}')
        return v


@app.post("/api/enter-game")
async def enter_game(request: EnterGameRequest):
    try:
        token = token_registry.register(request.username)
    except ValueError:
        raise HTTPException(status_code=400, detail="Username already taken, please choose another")
    logger.info("Player entered game: %s", request.username)
    return {"message": "Welcome to the game!", "token": token, "username": request.username}


@app.post("/api/scores")
async def submit_score(request: ScoreSubmitRequest, identity: str = Depends(require_identity)):
    try:
        record = await score_ledger.upsert_score(
            identity, request.score, request.correct_streak, request.best_streak
        )
    except ValueError as e:
        logger.warning("Rejected score submission for %s: %s", identity, e)
        raise HTTPException(status_code=422, detail=str(e))
    return {"message": "Score updated successfully", **record}


@app.get("/api/player/me")
async def get_player_state(identity: str = Depends(require_identity)):
    return await score_ledger.get_score(identity)


@app.get("/api/leaderboard")
async def get_leaderboard(sort_by: Optional[str] = None, identity: str = Depends(require_identity)):
    return leaderboard.get_leaderboard(await score_ledger.records(), sort_by, viewer_identity=identity)


@app.websocket("/ws/leaderboard")
async def leaderboard_updates(websocket: WebSocket):
    await ranking_broadcaster.connect(websocket)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
else:
    local_ip = get_local_ip()
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        f"http://{local_ip}:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)
ranking_broadcaster.allowed_origins = origins


@app.get("/")
async def root():
    return {"message": "Picture Quiz API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "players": await score_ledger.store.count()}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
