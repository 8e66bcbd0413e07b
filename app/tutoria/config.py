import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    token_max_ttl_days: int
    token_issue_max_attempts: int
    professor_course_limit: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///tutoria.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        token_max_ttl_days=_getenv_int("TOKEN_MAX_TTL_DAYS", 3650),
        token_issue_max_attempts=_getenv_int("TOKEN_ISSUE_MAX_ATTEMPTS", 5),
        professor_course_limit=_getenv_int("PROFESSOR_COURSE_LIMIT", 1000),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        # capability tokens
        "TOKEN_MAX_TTL_DAYS": s.token_max_ttl_days,
        "TOKEN_ISSUE_MAX_ATTEMPTS": s.token_issue_max_attempts,
        # tenant scoping
        "PROFESSOR_COURSE_LIMIT": s.professor_course_limit,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "JSON_SORT_KEYS": False,
    }
