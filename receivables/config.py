# receivables/config.py

from __future__ import annotations

from dataclasses import dataclass
import os


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    timezone: str
    sql_echo: bool
    log_level: str
    suggestion_limit: int
    lock_timeout: float


def load_settings() -> Settings:
    return Settings(
        # file in project root
        database_url=os.getenv("RECEIVABLES_DATABASE_URL", "sqlite:///db.sqlite"),
        timezone=os.getenv("RECEIVABLES_TIMEZONE", "America/New_York"),
        sql_echo=_parse_bool(os.getenv("RECEIVABLES_SQL_ECHO"), False),
        log_level=os.getenv("RECEIVABLES_LOG_LEVEL", "INFO").upper(),
        suggestion_limit=int(os.getenv("RECEIVABLES_SUGGESTION_LIMIT", "5")),
        # seconds a SQLite writer waits for the database lock
        lock_timeout=float(os.getenv("RECEIVABLES_LOCK_TIMEOUT", "15")),
    )


settings = load_settings()
