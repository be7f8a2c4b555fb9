from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/collab_todo.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - UNDO_WINDOW_SECONDS: how long a deleted task can be restored (default: 600)
    - PURGE_INTERVAL_SECONDS: period of the expired-task sweep, 0 disables it (default: 60)
    - USER_SEARCH_LIMIT: default maximum number of user search results (default: 5)
    - PASSWORD_HASH_ITERATIONS: PBKDF2 iteration count for stored secrets (default: 100000)
    - LOG_LEVEL: root log level (default: INFO)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    undo_window_seconds: int
    purge_interval_seconds: int
    user_search_limit: int
    password_hash_iterations: int
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/collab_todo.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        log_level = "INFO"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        undo_window_seconds=_parse_int(_get_env("UNDO_WINDOW_SECONDS", "600"), 600, minimum=1),
        purge_interval_seconds=_parse_int(_get_env("PURGE_INTERVAL_SECONDS", "60"), 60),
        user_search_limit=_parse_int(_get_env("USER_SEARCH_LIMIT", "5"), 5, minimum=1),
        password_hash_iterations=_parse_int(
            _get_env("PASSWORD_HASH_ITERATIONS", "100000"), 100000, minimum=1
        ),
        log_level=log_level,
    )
