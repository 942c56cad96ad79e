"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{BASE / 'app.db'}"

# Async drivers the engine can be created with.
ASYNC_DRIVERS = ("+aiosqlite", "+asyncpg", "+psycopg", "+aiomysql", "+asyncmy")


class Settings:
    ENV: str
    DATABASE_URL: str
    DB_ECHO: bool
    LOG_LEVEL: str
    SEED_DEMO_DATA: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "false").lower() == "true"
        self._validate()

    def _validate(self):
        scheme = self.DATABASE_URL.split("://", 1)[0]
        if not any(scheme.endswith(driver) for driver in ASYNC_DRIVERS):
            raise RuntimeError(f"DATABASE_URL must use an async driver, got scheme {scheme!r}")
        if self.ENV != "dev" and self.DATABASE_URL == DEFAULT_DATABASE_URL:
            raise RuntimeError("DATABASE_URL must be set explicitly in non-dev environments")


settings = Settings()
