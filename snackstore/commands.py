"""Start-up commands: dropping tables, migrating and seeding."""

from __future__ import annotations

import logging
import os
import sys
from typing import Callable, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from snackstore.migrations import DEFAULT_SEED_DIR, migrate, seed
from snackstore.settings import Settings


class CommandError(RuntimeError):
    """A start-up command failed and the program must stop."""


class CommandExecutor:
    """Runs the command-line flags given at start-up."""

    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        seed_dir: str | os.PathLike = DEFAULT_SEED_DIR,
    ):
        self.settings = settings
        self.engine = engine
        self.seed_dir = seed_dir

    def execute(self, logger: logging.Logger, args: Sequence[str] | None = None) -> bool:
        """Run the flags in order; return whether the server should start.

        With no flags the server starts; otherwise only when --run is given.
        Raises CommandError when a command fails.
        """
        argv = list(sys.argv[1:] if args is None else args)
        if not argv:
            return True

        handlers: dict[str, Callable[[logging.Logger], None]] = {
            "--drop-table": self._drop_tables,
            "--migrate": self._migrate,
            "--seed": self._seed,
        }
        run = False
        for arg in argv:
            if arg == "--run":
                run = True
            elif (handler := handlers.get(arg)) is not None:
                handler(logger)
        return run

    @staticmethod
    def _fatal(logger: logging.Logger, message: str) -> CommandError:
        logger.critical(message)
        return CommandError(message)

    def _migrate(self, logger: logging.Logger) -> None:
        try:
            migrate(self.engine)
        except SQLAlchemyError as exc:
            raise self._fatal(logger, f"Migration failed: {exc}") from exc
        logger.info("Migration completed")

    def _seed(self, logger: logging.Logger) -> None:
        try:
            seed(self.engine, logger, self.seed_dir)
        except SQLAlchemyError as exc:
            raise self._fatal(logger, f"Seeder failed: {exc}") from exc
        logger.info("Seeder completed")

    def _drop_tables(self, logger: logging.Logger) -> None:
        tables = self.settings.get("DROP_TABLE_NAMES")
        if not tables:
            raise self._fatal(logger, "DROP_TABLE_NAMES is not set in env")

        preparer = self.engine.dialect.identifier_preparer
        cascade = "" if self.engine.dialect.name == "sqlite" else " CASCADE"
        for table in (name.strip() for name in tables.split(",")):
            if not table:
                continue
            statement = text(
                f"DROP TABLE IF EXISTS {preparer.quote_identifier(table)}{cascade}"
            )
            try:
                with self.engine.begin() as connection:
                    connection.execute(statement)
            except SQLAlchemyError as exc:
                raise self._fatal(
                    logger, f"Failed to drop table '{table}': {exc}"
                ) from exc
            logger.info("Table '%s' dropped", table)