"""Configuration module for the LeadDesk application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from leaddesk.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    JWT_SECRET: str
    JWT_ACCESS_TTL_MINUTES: int
    JWT_REFRESH_TTL_DAYS: int
    JWT_PERMISSIONS_VERSION: int
    REDIS_URL: str
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    API_HOST: str
    API_PORT: int
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str
    FILTER_DEBOUNCE_MS: int
    FILTER_STATE_PATH: str
    DEFAULT_PAGE_SIZE: int
    MAX_PAGE_SIZE: int
    QUERY_TIMEOUT_SECONDS: float
    COUNT_CACHE_TTL_SECONDS: float
    UNIQUE_VALUES_CACHE_TTL_SECONDS: float
    LIST_CACHE_TTL_SECONDS: float
    READ_MAX_RETRIES: int
    READ_RETRY_BACKOFF_SECONDS: float
    BULK_MAX_IDS: int
    BULK_ID_FETCH_PAGE_SIZE: int
    BULK_DELETE_BATCH_SIZE: int
    BULK_SERVER_SIDE_BATCH_FACTOR: int
    MAX_REPORTED_ERRORS: int
    IMPORT_BATCH_SIZE: int
    JOB_POLL_INTERVAL_SECONDS: float

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def server_side_delete_threshold(self) -> int:
        """Explicit id lists above this size use the server-side delete path."""
        return self.BULK_DELETE_BATCH_SIZE * self.BULK_SERVER_SIDE_BATCH_FACTOR


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))

    config = Config(
        APP_NAME="LeadDesk",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./leaddesk.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(
            os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")
        ),
        JWT_SECRET=os.getenv("JWT_SECRET", "change_me_jwt_secret"),
        JWT_ACCESS_TTL_MINUTES=int(os.getenv("JWT_ACCESS_TTL_MINUTES", "15")),
        JWT_REFRESH_TTL_DAYS=int(os.getenv("JWT_REFRESH_TTL_DAYS", "14")),
        JWT_PERMISSIONS_VERSION=int(os.getenv("JWT_PERMISSIONS_VERSION", "1")),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0")),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", os.getenv("REDIS_URL", "redis://localhost:6379/0")),
        API_HOST=os.getenv("API_HOST", "0.0.0.0"),
        API_PORT=int(os.getenv("API_PORT", "8000")),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", "leaddesk.log"),
        FILTER_DEBOUNCE_MS=int(os.getenv("FILTER_DEBOUNCE_MS", "800")),
        FILTER_STATE_PATH=os.getenv("FILTER_STATE_PATH", "./.leaddesk/filter_state.json"),
        DEFAULT_PAGE_SIZE=int(os.getenv("DEFAULT_PAGE_SIZE", "100")),
        MAX_PAGE_SIZE=int(os.getenv("MAX_PAGE_SIZE", "1000")),
        QUERY_TIMEOUT_SECONDS=float(os.getenv("QUERY_TIMEOUT_SECONDS", "15")),
        COUNT_CACHE_TTL_SECONDS=float(os.getenv("COUNT_CACHE_TTL_SECONDS", "1")),
        UNIQUE_VALUES_CACHE_TTL_SECONDS=float(os.getenv("UNIQUE_VALUES_CACHE_TTL_SECONDS", "5")),
        LIST_CACHE_TTL_SECONDS=float(os.getenv("LIST_CACHE_TTL_SECONDS", "10")),
        READ_MAX_RETRIES=int(os.getenv("READ_MAX_RETRIES", "2")),
        READ_RETRY_BACKOFF_SECONDS=float(os.getenv("READ_RETRY_BACKOFF_SECONDS", "0.25")),
        BULK_MAX_IDS=int(os.getenv("BULK_MAX_IDS", "10000")),
        BULK_ID_FETCH_PAGE_SIZE=int(os.getenv("BULK_ID_FETCH_PAGE_SIZE", "1000")),
        BULK_DELETE_BATCH_SIZE=int(os.getenv("BULK_DELETE_BATCH_SIZE", "50")),
        BULK_SERVER_SIDE_BATCH_FACTOR=int(os.getenv("BULK_SERVER_SIDE_BATCH_FACTOR", "20")),
        MAX_REPORTED_ERRORS=int(os.getenv("MAX_REPORTED_ERRORS", "100")),
        IMPORT_BATCH_SIZE=int(os.getenv("IMPORT_BATCH_SIZE", "100")),
        JOB_POLL_INTERVAL_SECONDS=float(os.getenv("JOB_POLL_INTERVAL_SECONDS", "2")),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.JWT_ACCESS_TTL_MINUTES < 1:
        raise ConfigurationError("JWT_ACCESS_TTL_MINUTES must be >= 1.")
    if config.JWT_REFRESH_TTL_DAYS < 1:
        raise ConfigurationError("JWT_REFRESH_TTL_DAYS must be >= 1.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.FILTER_DEBOUNCE_MS < 0:
        raise ConfigurationError("FILTER_DEBOUNCE_MS must be >= 0.")
    if not 1 <= config.DEFAULT_PAGE_SIZE <= config.MAX_PAGE_SIZE:
        raise ConfigurationError("DEFAULT_PAGE_SIZE must be between 1 and MAX_PAGE_SIZE.")
    if config.QUERY_TIMEOUT_SECONDS <= 0:
        raise ConfigurationError("QUERY_TIMEOUT_SECONDS must be > 0.")
    if config.READ_MAX_RETRIES < 0 or config.READ_MAX_RETRIES > 3:
        raise ConfigurationError("READ_MAX_RETRIES must be between 0 and 3.")
    if config.BULK_MAX_IDS < 1:
        raise ConfigurationError("BULK_MAX_IDS must be >= 1.")
    if config.BULK_ID_FETCH_PAGE_SIZE < 1 or config.BULK_DELETE_BATCH_SIZE < 1:
        raise ConfigurationError("Bulk batch sizes must be >= 1.")
    if config.BULK_SERVER_SIDE_BATCH_FACTOR < 1:
        raise ConfigurationError("BULK_SERVER_SIDE_BATCH_FACTOR must be >= 1.")
    if config.MAX_REPORTED_ERRORS < 1:
        raise ConfigurationError("MAX_REPORTED_ERRORS must be >= 1.")
    if config.JOB_POLL_INTERVAL_SECONDS <= 0:
        raise ConfigurationError("JOB_POLL_INTERVAL_SECONDS must be > 0.")
    if config.is_production and "change_me" in config.JWT_SECRET:
        raise ConfigurationError("Production JWT_SECRET uses a placeholder value.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
