from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

DEV_SESSION_SECRET = "dev-only-session-secret-change-me"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so casting and validation live in one place
    return os.environ.get(name, default).strip()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    api_base_url: str
    api_timeout_seconds: float
    redis_url: str | None
    session_secret: str
    session_ttl_days: int
    cache_ttl_seconds: int
    progress_completion_threshold: float
    progress_debounce_seconds: float
    lecture_view_idle_seconds: float

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    log_json = _parse_bool("LOG_JSON", _getenv("LOG_JSON", "false"))
    port = _parse_int("PORT", _getenv("PORT", "8000"))

    api_base_url = _getenv("API_BASE_URL", "http://localhost:3005/api").rstrip("/")
    if not api_base_url:
        raise ValueError("API_BASE_URL must not be empty")

    api_timeout = _parse_float(
        "API_TIMEOUT_SECONDS", _getenv("API_TIMEOUT_SECONDS", "10")
    )
    if api_timeout <= 0:
        raise ValueError(f"API_TIMEOUT_SECONDS must be > 0 (got {api_timeout!r})")

    redis_url = _getenv("REDIS_URL", "") or None

    session_secret = _getenv("SESSION_SECRET", DEV_SESSION_SECRET)
    if app_env_raw == "prod" and session_secret == DEV_SESSION_SECRET:
        raise ValueError("SESSION_SECRET must be set when APP_ENV=prod")

    session_ttl_days = _parse_int("SESSION_TTL_DAYS", _getenv("SESSION_TTL_DAYS", "7"))
    if session_ttl_days <= 0:
        raise ValueError(f"SESSION_TTL_DAYS must be > 0 (got {session_ttl_days!r})")

    cache_ttl = _parse_int("CACHE_TTL_SECONDS", _getenv("CACHE_TTL_SECONDS", "30"))
    if cache_ttl < 0:
        raise ValueError(f"CACHE_TTL_SECONDS must be >= 0 (got {cache_ttl!r})")

    threshold = _parse_float(
        "PROGRESS_COMPLETION_THRESHOLD",
        _getenv("PROGRESS_COMPLETION_THRESHOLD", "90"),
    )
    if not 0 < threshold <= 100:
        raise ValueError(
            f"PROGRESS_COMPLETION_THRESHOLD must be in (0, 100] (got {threshold!r})"
        )

    debounce = _parse_float(
        "PROGRESS_DEBOUNCE_SECONDS", _getenv("PROGRESS_DEBOUNCE_SECONDS", "2.0")
    )
    if debounce <= 0:
        raise ValueError(f"PROGRESS_DEBOUNCE_SECONDS must be > 0 (got {debounce!r})")

    idle_seconds = _parse_float(
        "LECTURE_VIEW_IDLE_SECONDS", _getenv("LECTURE_VIEW_IDLE_SECONDS", "1800")
    )
    if idle_seconds <= 0:
        raise ValueError(f"LECTURE_VIEW_IDLE_SECONDS must be > 0 (got {idle_seconds!r})")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        api_base_url=api_base_url,
        api_timeout_seconds=api_timeout,
        redis_url=redis_url,
        session_secret=session_secret,
        session_ttl_days=session_ttl_days,
        cache_ttl_seconds=cache_ttl,
        progress_completion_threshold=threshold,
        progress_debounce_seconds=debounce,
        lecture_view_idle_seconds=idle_seconds,
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
