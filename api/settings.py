from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os

from dotenv import load_dotenv

# Load local .env if present
PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(PROJECT_ROOT / ".env", override=False)


@dataclass(frozen=True)
class Settings:
    # Runtime
    ENV: str = os.getenv("ENV", "local")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Store
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'data' / 'books.db'}")

    # Scrape target
    SOURCE_BASE_URL: str = os.getenv("SOURCE_BASE_URL", "https://www.royalroad.com")
    USER_AGENT: str = os.getenv("USER_AGENT", "")
    SCRAPE_MAX_PAGES: int = int(os.getenv("SCRAPE_MAX_PAGES", "5"))
    MIN_FOLLOWERS: int = int(os.getenv("MIN_FOLLOWERS", "0"))

    # Query defaults
    DEFAULT_LIMIT: int = int(os.getenv("DEFAULT_LIMIT", "50"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings (cheap, deterministic)."""
    return Settings()


# Singleton-style convenience
settings = get_settings()
