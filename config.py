"""
config.py
Application settings (environment / .env) + logging setup.
"""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Remote object store; leave unset to run on the local cache only
    BLOB_BASE_URL: str | None = None
    BLOB_TOKEN: str | None = None
    BLOB_TIMEOUT: float = 8.0

    CACHE_FILE: str = "visits_cache.db"

    HISTORY_LIMIT: int = 50

    BCRYPT_ROUNDS: int = 12
    MIN_PASSWORD_LENGTH: int = 6
    DEFAULT_ADMIN_EMAIL: str = "admin@sistema.com"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()

_logging_configured = False


def configure_logging(level: str | None = None) -> None:
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logging_configured = True
