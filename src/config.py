"""Application configuration helpers."""

from __future__ import annotations

import os

from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from redis import Redis


load_dotenv()


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    """Central application configuration."""

    database_url: str
    redis_url: Optional[str]
    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    app_port: int = 5002
    sqlalchemy_echo: bool = False
    flask_secret: str = "dev"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    jwt_secret: str = "change_me"
    jwt_algorithm: str = "HS256"
    jwt_ttl_minutes: int = 60
    csrf_secret: str = "change_me_csrf"
    csrf_max_age_seconds: int = 3600
    audit_window_minutes: int = 60
    failed_login_threshold: int = 5
    failed_login_high_threshold: int = 10
    payment_failure_threshold: int = 3
    payment_amount_threshold: float = 1000
    query_max_limit: int = 200
    retention_days: int = 90
    fallback_log_path: Optional[str] = None
    housekeeping_enabled: bool = False
    housekeeping_interval_seconds: int = 3600
    admin_rate_limit_requests: int = 100
    admin_rate_limit_window_seconds: int = 900
    ingest_rate_limit_requests: int = 600
    ingest_rate_limit_window_seconds: int = 60
    database_ssl_mode: Optional[str] = None
    trusted_proxy_count: int = 0

    @cached_property
    def redis(self) -> Optional[Redis]:
        """Create a Redis client if a URL is configured."""

        if not self.redis_url:
            return None
        return Redis.from_url(self.redis_url, decode_responses=True)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Return the singleton configuration instance."""

    default_db = "sqlite+pysqlite:///:memory:"
    return Config(
        database_url=os.getenv("DATABASE_URL", default_db),
        redis_url=os.getenv("REDIS_URL"),
        pool_size=_parse_int(os.getenv("DB_POOL_SIZE"), 5),
        max_overflow=_parse_int(os.getenv("DB_MAX_OVERFLOW"), 5),
        pool_timeout=_parse_int(os.getenv("DB_POOL_TIMEOUT"), 30),
        pool_recycle=_parse_int(os.getenv("DB_POOL_RECYCLE"), 1800),
        app_port=_parse_int(os.getenv("APP_PORT"), 5002),
        sqlalchemy_echo=_parse_bool(os.getenv("SQLALCHEMY_ECHO")),
        flask_secret=os.getenv("FLASK_SECRET", "dev"),
        cors_origins=_parse_origins(os.getenv("CORS_ORIGINS")),
        jwt_secret=os.getenv("JWT_SECRET", "change_me"),
        jwt_algorithm=os.getenv("JWT_ALGO", "HS256"),
        jwt_ttl_minutes=_parse_int(os.getenv("JWT_TTL_MIN"), 60),
        csrf_secret=os.getenv("CSRF_SECRET", "change_me_csrf"),
        csrf_max_age_seconds=_parse_int(
            os.getenv("CSRF_MAX_AGE_SECONDS"), 3600
        ),
        audit_window_minutes=_parse_int(
            os.getenv("AUDIT_WINDOW_MINUTES"), 60
        ),
        failed_login_threshold=_parse_int(
            os.getenv("AUDIT_FAILED_LOGIN_THRESHOLD"), 5
        ),
        failed_login_high_threshold=_parse_int(
            os.getenv("AUDIT_FAILED_LOGIN_HIGH_THRESHOLD"), 10
        ),
        payment_failure_threshold=_parse_int(
            os.getenv("AUDIT_PAYMENT_FAILURE_THRESHOLD"), 3
        ),
        payment_amount_threshold=_parse_float(
            os.getenv("AUDIT_PAYMENT_AMOUNT_THRESHOLD"), 1000
        ),
        query_max_limit=_parse_int(os.getenv("AUDIT_QUERY_MAX_LIMIT"), 200),
        retention_days=_parse_int(os.getenv("AUDIT_RETENTION_DAYS"), 90),
        fallback_log_path=os.getenv("AUDIT_FALLBACK_LOG") or None,
        housekeeping_enabled=_parse_bool(os.getenv("HOUSEKEEPING_ENABLED")),
        housekeeping_interval_seconds=_parse_int(
            os.getenv("HOUSEKEEPING_INTERVAL_SECONDS"), 3600
        ),
        admin_rate_limit_requests=_parse_int(
            os.getenv("ADMIN_RATE_LIMIT_REQUESTS"), 100
        ),
        admin_rate_limit_window_seconds=_parse_int(
            os.getenv("ADMIN_RATE_LIMIT_WINDOW_SECONDS"), 900
        ),
        ingest_rate_limit_requests=_parse_int(
            os.getenv("INGEST_RATE_LIMIT_REQUESTS"), 600
        ),
        ingest_rate_limit_window_seconds=_parse_int(
            os.getenv("INGEST_RATE_LIMIT_WINDOW_SECONDS"), 60
        ),
        database_ssl_mode=os.getenv("DATABASE_SSL_MODE"),
        trusted_proxy_count=_parse_int(os.getenv("TRUSTED_PROXY_COUNT"), 0),
    )


def reset_config(
    overrides: Optional[dict[str, Optional[str]]] = None,
) -> Config:
    """Reset cached configuration and optionally override env vars."""

    if overrides:
        for key, value in overrides.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
    get_config.cache_clear()
    return get_config()
