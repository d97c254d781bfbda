import json
import logging

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from snackstore.settings import (
    Settings,
    database_url,
    load_settings,
    new_database,
    new_logger,
    new_redis,
)


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=1)
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


def test_defaults_are_available():
    settings = Settings(environ={})
    assert settings.get_int("PORT") == 8080
    assert settings.get("RATE_LIMIT") == "60-M"
    assert settings.get("APP_NAME") == "snack-store-api"


def test_environment_overrides_values_and_keys_ignore_case():
    settings = Settings({"PORT": "7000"}, environ={"PORT": "9090"})
    assert settings.get_int("port") == 9090


def test_empty_environment_value_is_ignored():
    settings = Settings({"DB_HOST": "db.internal"}, environ={"DB_HOST": ""})
    assert settings.get("DB_HOST") == "db.internal"


def test_missing_key_returns_default_and_zero():
    settings = Settings(environ={})
    assert settings.get("NOT_SET", "fallback") == "fallback"
    assert settings.get_int("NOT_SET") == 0


def test_non_numeric_int_is_zero():
    settings = Settings({"PORT": "eighty"}, environ={})
    assert settings.get_int("PORT") == 0


def test_load_settings_reads_env_file_under_environment(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DB_HOST=db.internal\nREDIS_DB=3\nPORT=7000\n")
    settings = load_settings(env_file, environ={"PORT": "9090"})
    assert settings.get("DB_HOST") == "db.internal"
    assert settings.get_int("REDIS_DB") == 3
    assert settings.get_int("PORT") == 9090


def test_load_settings_without_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path / ".env", environ={})
    assert settings.get_int("DB_PORT") == 5432


@pytest.mark.parametrize(
    "value, expected",
    [("debug", logging.DEBUG), (" WARN ", logging.WARNING), ("bogus", logging.INFO)],
)
def test_new_logger_level(value, expected):
    logger = new_logger(Settings({"LOG_LEVEL": value}, environ={}))
    assert logger.level == expected


def test_new_logger_writes_json(capsys):
    logger = new_logger(Settings(environ={}))
    logger.info("hello %s", "world")
    line = capsys.readouterr().err.strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["msg"] == "hello world"
    assert entry["level"] == "info"
    assert "time" in entry


def test_new_redis_uses_settings():
    client = new_redis(Settings({"REDIS_HOST": "cache.internal", "REDIS_DB": 2}, environ={}))
    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cache.internal"
    assert kwargs["port"] == 6379
    assert kwargs["db"] == 2
    assert kwargs["password"] is None


def test_database_url_from_parts():
    settings = Settings(
        {"DB_USERNAME": "user", "DB_PASSWORD": "password", "DB_HOST": "db.internal"},
        environ={},
    )
    url = database_url(settings)
    assert url.get_backend_name() == "postgresql"
    assert url.username == "user"
    assert url.password == "password"
    assert url.host == "db.internal"
    assert url.port == 5432
    assert url.database == "snack_store"
    assert url.query["sslmode"] == "disable"


def test_database_url_override(tmp_path):
    target = tmp_path / "store.db"
    url = database_url(Settings({"DATABASE_URL": f"sqlite:///{target}"}, environ={}))
    assert url.get_backend_name() == "sqlite"
    assert url.database == str(target)


def test_new_database_connects_and_logs_queries(tmp_path):
    logger = logging.Logger("test", level=1)
    handler = ListHandler()
    logger.addHandler(handler)
    settings = Settings({"DATABASE_URL": f"sqlite:///{tmp_path / 'store.db'}"}, environ={})
    engine = new_database(settings, logger)
    with engine.connect() as conn:
        assert conn.execute(text("SELECT 1")).scalar() == 1
    assert any("SELECT 1" in message for message in handler.messages)
    engine.dispose()


def test_new_database_failure_is_raised(tmp_path):
    logger = logging.Logger("test", level=1)
    handler = ListHandler()
    logger.addHandler(handler)
    missing = tmp_path / "absent" / "store.db"
    settings = Settings({"DATABASE_URL": f"sqlite:///{missing}"}, environ={})
    with pytest.raises(SQLAlchemyError):
        new_database(settings, logger)
    assert any("failed to connect database" in message for message in handler.messages)