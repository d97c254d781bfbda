"""Schema creation and seeding from JSON files."""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import Date, DateTime, Integer, String, Uuid, func, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snackstore.entities import Base, Customer, Product, Redemption, Transaction

DEFAULT_SEED_DIR = Path("migrations") / "json"

_SEED_FILES = (
    ("customers.json", Customer),
    ("products.json", Product),
    ("transactions.json", Transaction),
    ("redemptions.json", Redemption),
)


def migrate(engine: Engine) -> None:
    """Create every table, index and constraint that does not exist yet."""
    Base.metadata.create_all(engine)


def seed(
    engine: Engine,
    logger: logging.Logger,
    seed_dir: str | os.PathLike = DEFAULT_SEED_DIR,
) -> dict[str, int]:
    """Fill empty tables from the JSON files in seed_dir.

    Problems with a file are logged as warnings and that file is skipped.
    Returns the number of rows inserted per table.
    """
    logger.info("Seeding database...")
    directory = Path(seed_dir)
    return {
        model.__tablename__: _seed_from_json(directory / name, model, engine, logger)
        for name, model in _SEED_FILES
    }


def _seed_from_json(path: Path, model: type[Base], engine: Engine, logger: logging.Logger) -> int:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        logger.warning("Seed file not found: %s", path)
        return 0

    try:
        records = [_build(model, item) for item in _parse_records(text)]
    except (ValueError, TypeError) as exc:
        logger.warning("Failed to parse JSON for %s: %s", path, exc)
        return 0

    with Session(engine) as session:
        try:
            count = session.scalar(select(func.count()).select_from(model)) or 0
        except SQLAlchemyError as exc:
            logger.warning("Failed to count records for %s: %s", path, exc)
            return 0

        if count:
            logger.info("Skipping insert for %s: table not empty", path)
            return 0

        session.add_all(records)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Insert failed for %s: %s", path, exc)
            return 0

    logger.info("Inserted seed data from %s", path)
    return len(records)


def _parse_records(text: str) -> list[dict[str, Any]]:
    data = json.loads(text)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of objects")
    for item in data:
        if not isinstance(item, dict):
            raise ValueError("expected a JSON array of objects")
    return data


def _fold(key: str) -> str:
    return key.replace("_", "").lower()


def _build(model: type[Base], item: dict[str, Any]) -> Base:
    """Create an entity from a JSON object; keys match fields ignoring case and '_'."""
    attrs = {_fold(attr.key): attr for attr in inspect(model).column_attrs}
    values: dict[str, Any] = {}
    for key, value in item.items():
        attr = attrs.get(_fold(key))
        if attr is None or value is None:
            continue
        values[attr.key] = _convert(attr.columns[0], value, key)

    for attr in attrs.values():
        column = attr.columns[0]
        if attr.key in values or column.default is not None or column.primary_key:
            continue
        if isinstance(column.type, Integer):
            values[attr.key] = 0
        elif isinstance(column.type, String):
            values[attr.key] = ""
    return model(**values)


def _convert(column: Any, value: Any, key: str) -> Any:
    kind = column.type
    if isinstance(kind, Uuid):
        return uuid.UUID(_expect_str(value, key))
    if isinstance(kind, Integer):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"field {key!r} must be an integer")
        return value
    if isinstance(kind, DateTime):
        return _parse_datetime(_expect_str(value, key))
    if isinstance(kind, Date):
        text = _expect_str(value, key)
        if len(text) == len("2006-01-02"):
            return date.fromisoformat(text)
        return _parse_datetime(text).date()
    if isinstance(kind, String):
        return _expect_str(value, key)
    return value


def _expect_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _parse_datetime(text: str) -> datetime:
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)