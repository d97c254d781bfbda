"""Application wiring and the command that starts the server."""

from __future__ import annotations

import logging
import os
import sys
from datetime import timedelta
from typing import Sequence

from flask import Flask
from sqlalchemy.engine import Engine

from snackstore import constants
from snackstore.cache import Cache, RedisCache
from snackstore.catalog import CustomerUseCase, ProductUseCase, ReportUseCase
from snackstore.commands import CommandError, CommandExecutor
from snackstore.middleware import (
    RateLimiter,
    RedisRateStore,
    install_request_logger,
    parse_rate,
)
from snackstore.repositories import (
    CustomerRepository,
    ProductRepository,
    RedemptionRepository,
    ReportRepository,
    TransactionRepository,
)
from snackstore.sales import RedemptionUseCase, TransactionUseCase
from snackstore.settings import load_settings, new_database, new_logger, new_redis
from snackstore.web import create_app

SLOW_REQUEST_THRESHOLD = timedelta(seconds=2)


def bootstrap(
    engine: Engine,
    logger: logging.Logger,
    cache: Cache | None = None,
    rate_limiter: RateLimiter | None = None,
) -> Flask:
    """Wire repositories, use cases and routes into a ready application."""
    customer_repository = CustomerRepository(logger)
    product_repository = ProductRepository(logger)
    transaction_repository = TransactionRepository(logger)
    redemption_repository = RedemptionRepository(logger)
    report_repository = ReportRepository(logger)

    app = create_app(
        CustomerUseCase(engine, logger, customer_repository),
        ProductUseCase(engine, logger, product_repository, cache),
        TransactionUseCase(
            engine,
            logger,
            customer_repository,
            product_repository,
            transaction_repository,
            cache,
        ),
        RedemptionUseCase(
            engine,
            logger,
            customer_repository,
            product_repository,
            redemption_repository,
            cache,
        ),
        ReportUseCase(engine, logger, report_repository, cache),
        rate_limiter,
        logger,
    )
    install_request_logger(app, logger, SLOW_REQUEST_THRESHOLD)
    return app


def main(argv: Sequence[str] | None = None) -> int:
    """Run the start-up flags, then serve the API when asked to."""
    settings = load_settings(".env", os.environ)
    logger = new_logger(settings)
    engine = new_database(settings, logger)
    redis_client = new_redis(settings)
    limiter = RateLimiter(
        RedisRateStore(redis_client),
        parse_rate(settings.get("RATE_LIMIT", constants.DEFAULT_RATE_LIMIT)),
    )
    app = bootstrap(engine, logger, RedisCache(redis_client), limiter)

    executor = CommandExecutor(settings, engine)
    try:
        run = executor.execute(logger, list(sys.argv[1:] if argv is None else argv))
    except CommandError:
        return 1
    if not run:
        return 0

    port = settings.get_int("PORT")
    try:
        app.run(host="0.0.0.0", port=port)
    except OSError as exc:
        logger.critical("Failed to start server: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())