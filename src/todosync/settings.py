from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Service settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite' for the todos repository
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todos.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - ENABLE_BASIC_AUTH: 'true' to identify callers by HTTP Basic Auth (default: false,
      callers send an X-User-Id header instead)
    - BASIC_AUTH_USERNAME / BASIC_AUTH_PASSWORD: credentials when basic auth is enabled
    - LOG_LEVEL: logging level name, default 'INFO'
    - SYNC_REMOTE_BACKEND: 'local' (default, sync into the todos repository) or
      'postgrest' (sync into a hosted PostgREST/Supabase table)
    - POSTGREST_URL / POSTGREST_API_KEY / POSTGREST_TIMEOUT_SECONDS: hosted store access
    - SYNC_DEBOUNCE_SECONDS: minimum gap between two pass starts (1.0)
    - SYNC_MAX_ATTEMPTS: failed passes before the user is notified (3)
    - SYNC_RETRY_DELAY_SECONDS: constant delay before a retry (2.0)
    - SYNC_INTERVAL_SECONDS: periodic pass interval, <= 0 disables it (5.0)
    - SYNC_INITIAL_DELAY_SECONDS: delay of the first pass after a session opens,
      negative disables it (0.1)
    - NOTIFICATION_BUFFER_SIZE: notifications kept per session (50)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    enable_basic_auth: bool
    basic_auth_username: Optional[str]
    basic_auth_password: Optional[str]
    log_level: str = "INFO"
    sync_remote_backend: str = "local"
    postgrest_url: Optional[str] = None
    postgrest_api_key: Optional[str] = None
    postgrest_timeout_seconds: float = 10.0
    sync_debounce_seconds: float = 1.0
    sync_max_attempts: int = 3
    sync_retry_delay_seconds: float = 2.0
    sync_interval_seconds: float = 5.0
    sync_initial_delay_seconds: float = 0.1
    notification_buffer_size: int = 50


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_float(value: str, default: float) -> float:
    try:
        return float(value.strip())
    except ValueError:
        return default


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        # Star will be handled in main via allow_origins=["*"]
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return service settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    remote = _get_env("SYNC_REMOTE_BACKEND", "local").strip().lower()
    if remote not in {"local", "postgrest"}:
        remote = "local"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/todos.db").strip()
    cors_raw = _get_env("CORS_ALLOW_ORIGINS", "*")
    origins = _parse_origins(cors_raw)

    enable_basic_auth = _parse_bool(_get_env("ENABLE_BASIC_AUTH", "false"), False)
    basic_user = os.getenv("BASIC_AUTH_USERNAME") if enable_basic_auth else None
    basic_pass = os.getenv("BASIC_AUTH_PASSWORD") if enable_basic_auth else None

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        enable_basic_auth=enable_basic_auth,
        basic_auth_username=basic_user,
        basic_auth_password=basic_pass,
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        sync_remote_backend=remote,
        postgrest_url=os.getenv("POSTGREST_URL") or None,
        postgrest_api_key=os.getenv("POSTGREST_API_KEY") or None,
        postgrest_timeout_seconds=_parse_float(_get_env("POSTGREST_TIMEOUT_SECONDS", "10"), 10.0),
        sync_debounce_seconds=_parse_float(_get_env("SYNC_DEBOUNCE_SECONDS", "1.0"), 1.0),
        sync_max_attempts=max(_parse_int(_get_env("SYNC_MAX_ATTEMPTS", "3"), 3), 1),
        sync_retry_delay_seconds=_parse_float(_get_env("SYNC_RETRY_DELAY_SECONDS", "2.0"), 2.0),
        sync_interval_seconds=_parse_float(_get_env("SYNC_INTERVAL_SECONDS", "5.0"), 5.0),
        sync_initial_delay_seconds=_parse_float(_get_env("SYNC_INITIAL_DELAY_SECONDS", "0.1"), 0.1),
        notification_buffer_size=max(_parse_int(_get_env("NOTIFICATION_BUFFER_SIZE", "50"), 50), 1),
    )
