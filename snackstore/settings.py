"""Configuration loading and construction of the logger, Redis client and database."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import redis
from dotenv import dotenv_values
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

_log = logging.getLogger(__name__)

_DEFAULTS: dict[str, Any] = {
    "APP_NAME": "snack-store-api",
    "PORT": 8080,
    "LOG_LEVEL": "info",
    "DB_HOST": "localhost",
    "DB_PORT": 5432,
    "DB_NAME": "snack_store",
    "DB_POOL_IDLE": 10,
    "DB_POOL_MAX": 100,
    "DB_POOL_LIFETIME": 300,
    "REDIS_HOST": "localhost",
    "REDIS_PORT": 6379,
    "REDIS_PASSWORD": "",
    "REDIS_DB": 0,
    "RATE_LIMIT": "60-M",
}

_TRACE_LEVEL = 5
logging.addLevelName(_TRACE_LEVEL, "TRACE")

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": _TRACE_LEVEL,
}

_SLOW_QUERY_SECONDS = 5.0
_OCTAL = re.compile(r"[+-]?0[0-7]+")
_ZERO_DECIMAL = re.compile(r"^([+-]?[0-9]+)\.0+$")


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    match = _ZERO_DECIMAL.match(text)
    if match:
        text = match.group(1)
    try:
        return int(text, 0)
    except ValueError:
        pass
    if _OCTAL.fullmatch(text):
        return int(text, 8)
    return 0


class Settings:
    """Layered configuration: environment over file values over defaults.

    Keys are case-insensitive; empty environment variables are ignored.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._values = {key.upper(): value for key, value in _DEFAULTS.items()}
        self._values.update({key.upper(): value for key, value in (values or {}).items()})
        self._environ = os.environ if environ is None else environ

    def _lookup(self, key: str) -> Any:
        name = key.upper()
        env_value = self._environ.get(name)
        if env_value:
            return env_value
        return self._values.get(name)

    def get(self, key: str, default: str = "") -> str:
        """Value of a key as text, or the default when it is not set."""
        value = self._lookup(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_int(self, key: str) -> int:
        """Value of a key as an integer; 0 when unset or not a number."""
        return _to_int(self._lookup(key))


def load_settings(
    env_file: str | os.PathLike = ".env",
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Read defaults, then the env file if present, with the environment on top."""
    path = Path(env_file)
    file_values: dict[str, str] = {}
    if not path.is_file():
        _log.info("No .env file found in root directory")
    else:
        try:
            file_values = {
                key: value for key, value in dotenv_values(path).items() if value is not None
            }
        except (OSError, UnicodeDecodeError) as exc:
            _log.warning("Error reading .env file: %s", exc)
        else:
            _log.info("Successfully loaded configuration from .env")
    return Settings(file_values, os.environ if environ is None else environ)


def _level_name(levelno: int) -> str:
    if levelno >= logging.CRITICAL:
        return "fatal"
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    if levelno >= logging.DEBUG:
        return "debug"
    return "trace"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = dict(getattr(record, "fields", None) or {})
        entry["level"] = _level_name(record.levelno)
        entry["msg"] = record.getMessage()
        entry["time"] = (
            datetime.fromtimestamp(record.created, timezone.utc)
            .astimezone()
            .isoformat(timespec="seconds")
        )
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def new_logger(settings: Settings) -> logging.Logger:
    """JSON logger writing to stderr at the configured LOG_LEVEL (info if unknown)."""
    level = _LEVELS.get(settings.get("LOG_LEVEL").strip().lower(), logging.INFO)
    logger = logging.Logger(settings.get("APP_NAME") or "snackstore", level)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    logger.addHandler(handler)
    return logger


def new_redis(settings: Settings) -> redis.Redis:
    """Redis client for the configured host, port, password and database."""
    return redis.Redis(
        host=settings.get("REDIS_HOST"),
        port=settings.get_int("REDIS_PORT"),
        password=settings.get("REDIS_PASSWORD") or None,
        db=settings.get_int("REDIS_DB"),
    )


def database_url(settings: Settings) -> URL:
    """Database URL: DATABASE_URL if set, else a PostgreSQL URL from the DB_* keys."""
    explicit = settings.get("DATABASE_URL")
    if explicit:
        return make_url(explicit)
    return URL.create(
        "postgresql",
        username=settings.get("DB_USERNAME") or None,
        password=settings.get("DB_PASSWORD") or None,
        host=settings.get("DB_HOST"),
        port=settings.get_int("DB_PORT"),
        database=settings.get("DB_NAME"),
        query={"sslmode": "disable"},
    )


def _attach_query_logger(engine: Engine, logger: logging.Logger) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def _started(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("_query_started", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _finished(conn, cursor, statement, parameters, context, executemany):
        started = conn.info["_query_started"].pop()
        elapsed = time.perf_counter() - started
        prefix = "SLOW SQL >= 5s " if elapsed >= _SLOW_QUERY_SECONDS else ""
        logger.log(_TRACE_LEVEL, "%s[%.3fms] %s", prefix, elapsed * 1000, statement)


def new_database(settings: Settings, logger: logging.Logger) -> Engine:
    """Create the engine, size its pool and check that it connects."""
    url = database_url(settings)
    options: dict[str, Any] = {}
    if url.get_backend_name() != "sqlite":
        idle = settings.get_int("DB_POOL_IDLE")
        max_open = settings.get_int("DB_POOL_MAX")
        lifetime = settings.get_int("DB_POOL_LIFETIME")
        options.update(
            pool_size=idle,
            max_overflow=max(0, max_open - idle),
            pool_recycle=lifetime if lifetime > 0 else -1,
        )
    engine = create_engine(url, **options)
    _attach_query_logger(engine, logger)
    try:
        with engine.connect():
            pass
    except SQLAlchemyError as exc:
        logger.critical("failed to connect database: %s", exc)
        raise
    return engine