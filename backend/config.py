"""Centralized configuration — all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = int(os.getenv("WS_RATE_LIMIT_PER_SEC", "10"))  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes

# --- Sessions ---
PIN_LENGTH = 4
MAX_PIN_ATTEMPTS = int(os.getenv("MAX_PIN_ATTEMPTS", "20"))
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "500"))
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "1800"))  # 0 disables idle expiry
CLEANUP_INTERVAL_SECONDS = 60

# --- Players ---
MAX_NICKNAME_LENGTH = 20
MAX_PLAYERS_PER_SESSION = int(os.getenv("MAX_PLAYERS_PER_SESSION", "200"))

# --- Scoring ---
MAX_POINTS = 1000
ANSWER_TIME_CAP_MS = 10000  # correct answers at or beyond the cap earn 0

# --- Quiz storage ---
MAX_QUIZZES = 1000
MAX_QUIZ_TITLE_LENGTH = 200
MAX_QUESTION_TEXT_LENGTH = 2000
MAX_OPTION_LENGTH = 500

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
