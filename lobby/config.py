"""Centralized configuration: all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Client ---
SERVER_URL = os.getenv("SERVER_URL", "http://localhost:8000")
IDENTITY_FILE = os.getenv(
    "IDENTITY_FILE", os.path.join(os.path.expanduser("~"), ".party-lobby", "identity.json")
)
JOIN_PATH = os.getenv("JOIN_PATH", "/join")
HOST_READY_DELAY_SECONDS = float(os.getenv("HOST_READY_DELAY_SECONDS", "2.0"))
RECONNECTION_DELAY_SECONDS = float(os.getenv("RECONNECTION_DELAY_SECONDS", "1.0"))
CATALOG_TIMEOUT = int(os.getenv("CATALOG_TIMEOUT", "10"))

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")
CATALOG_FILE = os.getenv("CATALOG_FILE", "")

# --- Storage Limits ---
MAX_ROOMS = 50
CLEANUP_INTERVAL_SECONDS = 60

# --- Lobby ---
MAX_NAME_LENGTH = 20
ROOM_CODE_LENGTH = 4
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", "1800"))
MAX_ROOM_CODE_ATTEMPTS = 10

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
