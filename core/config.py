# core/config.py
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def normalize_database_url(raw: str) -> str:
    """Map the usual hosted Postgres URLs onto the asyncpg driver."""
    url = raw.strip()
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://"):]
    elif url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


DEFAULT_SECRET_KEY = "your-secret-key"

DATABASE_URL = normalize_database_url(
    os.environ.get("DATABASE_URL", "") or "sqlite+aiosqlite:///./mathgame.db"
)
SECRET_KEY = os.environ.get("JWT_SECRET", "") or DEFAULT_SECRET_KEY
ACCESS_TOKEN_EXPIRE_DAYS = int(os.environ.get("ACCESS_TOKEN_EXPIRE_DAYS", "30"))
PORT = int(os.environ.get("PORT", "3000"))

# NODE_ENV is kept so existing deployment configs keep working
APP_ENV = (os.environ.get("APP_ENV") or os.environ.get("NODE_ENV") or "development").strip().lower()
IS_PRODUCTION = APP_ENV == "production"

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("ALLOWED_ORIGINS", "*").split(",")
    if origin.strip()
] or ["*"]


def parse_log_level(raw: str) -> str:
    level = raw.strip().upper()
    # getLevelName maps known names to their number and anything else to a string
    if isinstance(logging.getLevelName(level), int):
        return level
    return "INFO"


LOG_LEVEL = parse_log_level(os.environ.get("LOG_LEVEL", "INFO"))

# /api/users used to dump password hashes; off unless a legacy client needs it
EXPOSE_LEGACY_PASSWORD_HASHES = _as_bool(os.environ.get("EXPOSE_LEGACY_PASSWORD_HASHES", "false"))
