"""Centralized configuration: all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- Storage ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./scores.db")

# --- Round ---
ROUND_DURATION_SECONDS = int(os.getenv("ROUND_DURATION_SECONDS", "30"))
REVEAL_BUDGET = int(os.getenv("REVEAL_BUDGET", "3"))
TILE_COUNT = 25  # 5x5 grid
CLOCK_TICK_SECONDS = 1.0

# --- Scoring ---
BASE_CORRECT_POINTS = 100
STREAK_STEP = 0.1  # multiplier = 1 + STREAK_STEP * streak
TIME_BONUS_THRESHOLDS = {10: 1.05, 20: 1.1}  # seconds_remaining -> multiplier
INCORRECT_PENALTY = 100
TIMEOUT_PENALTY = 100
REVEAL_PENALTY = 25  # base points lost per reveal used

# --- Leaderboard ---
LEADERBOARD_SIZE = 10
VALID_SORT_KEYS = ("score", "best_streak")
DEFAULT_SORT_KEY = "score"

# --- Auth ---
TOKEN_TTL_SECONDS = int(os.getenv("TOKEN_TTL_SECONDS", "86400"))  # 24 hours
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 12
MAX_SCORE_VALUE = 10 ** 9

# --- Fan-out ---
MAX_LEADERBOARD_SUBSCRIBERS = 500

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
