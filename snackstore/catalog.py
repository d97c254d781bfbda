"""Use cases for listing customers, managing products and reporting transactions."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, timedelta
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snackstore import constants
from snackstore.cache import Cache
from snackstore.converters import (
    customer_to_response,
    product_to_response,
    transaction_to_response,
)
from snackstore.entities import Product, Transaction
from snackstore.pagination import PageMetadata, build_page_metadata
from snackstore.repositories import (
    CustomerRepository,
    ProductRepository,
    ReportRepository,
)
from snackstore.responses import AppError
from snackstore.schemas import (
    CreateProductRequest,
    CustomerResponse,
    GetCustomerRequest,
    GetProductRequest,
    ProductResponse,
    ReportBestSeller,
    ReportTransactionItem,
    ReportTransactionsRequest,
    ReportTransactionsResponse,
)

_DATE_SHAPE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_DECODE_ERRORS = (ValueError, TypeError, AttributeError, KeyError)


def product_cache_key(date: str) -> str:
    """Cache key for the products made on a day."""
    return constants.PRODUCT_CACHE_KEY_PREFIX + date


def report_cache_key(start_date: str, end_date: str) -> str:
    """Cache key for the transaction report over a date range."""
    return f"{constants.REPORT_CACHE_KEY_PREFIX}{start_date}:{end_date}"


def map_report_transaction(transaction: Transaction) -> ReportTransactionItem:
    """Report line for a transaction with its customer and product loaded."""
    base = transaction_to_response(transaction)
    joined = transaction.customer.created_at
    sold = transaction.transaction_at
    return ReportTransactionItem(
        id=base.id,
        customer_name=base.customer_name,
        product_name=base.product_name,
        size=base.size,
        flavor=base.flavor,
        qty=base.qty,
        unit_price=base.unit_price,
        total_price=base.total_price,
        points_earned=base.points_earned,
        transaction_at=base.transaction_at,
        is_new_customer=joined.year == sold.year and joined.month == sold.month,
    )


def _parse_date(text: str, logger: logging.Logger, what: str) -> date:
    try:
        if not _DATE_SHAPE.fullmatch(text):
            raise ValueError(f"date {text!r} is not in YYYY-MM-DD form")
        return date.fromisoformat(text)
    except ValueError as exc:
        logger.warning("Invalid %s : %s", what, exc)
        raise AppError(constants.FAILED_INPUT_FORMAT, 400, exc) from exc


def _internal(logger: logging.Logger, what: str, exc: BaseException) -> AppError:
    logger.warning("Failed to %s : %s", what, exc)
    return AppError(constants.INTERNAL_SERVER_ERROR, 500, exc)


class _CacheAccess:
    """Cache operations whose failures are logged and never interrupt a request."""

    def __init__(self, cache: Cache | None, logger: logging.Logger, label: str):
        self.cache = cache
        self.log = logger
        self.label = label

    def get(self, key: str) -> str | None:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except Exception as exc:  # cache trouble only costs a database query
            self.log.warning("Failed to get %s cache : %s", self.label, exc)
            return None

    def set(self, key: str, payload: Any, ttl: timedelta) -> None:
        if self.cache is None:
            return
        try:
            text = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            self.log.warning("Failed to encode %s cache : %s", self.label, exc)
            return
        try:
            self.cache.set(key, text, ttl)
        except Exception as exc:
            self.log.warning("Failed to set %s cache : %s", self.label, exc)

    def delete(self, key: str) -> None:
        if self.cache is None:
            return
        try:
            self.cache.delete(key)
        except Exception as exc:
            self.log.warning("Failed to invalidate %s cache : %s", self.label, exc)


class CustomerUseCase:
    """Paged listing of customers."""

    def __init__(
        self,
        engine: Engine,
        logger: logging.Logger,
        customer_repository: CustomerRepository,
    ):
        self.engine = engine
        self.log = logger
        self.customer_repository = customer_repository

    def list(
        self, request: GetCustomerRequest
    ) -> tuple[list[CustomerResponse], PageMetadata]:
        """One page of customers, newest first, with paging metadata."""
        with Session(self.engine) as session:
            try:
                total_item = self.customer_repository.count_all(session)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "count customers", exc) from exc

            offset = (request.page - 1) * request.page_size
            try:
                customers = self.customer_repository.find_all(
                    session, request.page_size, offset
                )
            except SQLAlchemyError as exc:
                raise _internal(self.log, "query customers", exc) from exc

            responses = [customer_to_response(customer) for customer in customers]
        return responses, build_page_metadata(request.page, request.page_size, total_item)


class ProductUseCase:
    """Listing products by manufacturing day and creating products."""

    def __init__(
        self,
        engine: Engine,
        logger: logging.Logger,
        product_repository: ProductRepository,
        cache: Cache | None = None,
    ):
        self.engine = engine
        self.log = logger
        self.product_repository = product_repository
        self.cache = cache
        self._cache = _CacheAccess(cache, logger, "product")

    def list_by_date(self, request: GetProductRequest) -> list[ProductResponse]:
        """Products made on the requested day, served from cache when possible."""
        manufactured_date = _parse_date(request.date, self.log, "manufactured_date format")

        key = product_cache_key(request.date)
        cached = self._cache.get(key)
        if cached is not None:
            try:
                data = json.loads(cached)
                if data is None:
                    return []
                if not isinstance(data, list):
                    raise ValueError("cached products are not a list")
                return [ProductResponse.from_dict(item) for item in data]
            except _DECODE_ERRORS:
                self.log.warning("Failed to decode product cache")

        try:
            with Session(self.engine) as session:
                products = self.product_repository.find_by_manufactured_date(
                    session, manufactured_date
                )
                responses = [product_to_response(product) for product in products]
        except SQLAlchemyError as exc:
            raise _internal(self.log, "query products", exc) from exc

        self._cache.set(
            key, [response.to_dict() for response in responses], constants.PRODUCT_CACHE_TTL
        )
        return responses

    def create(self, request: CreateProductRequest) -> ProductResponse:
        """Store a new product and drop the cached list for its day."""
        manufactured_date = _parse_date(
            request.manufactured_date, self.log, "manufactured_date format"
        )
        product = Product(
            name=request.name,
            type=request.type,
            flavor=request.flavor,
            size=request.size,
            price=request.price,
            stock_qty=request.stock_qty,
            manufactured_date=manufactured_date,
        )
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                self.product_repository.create(session, product)
                session.commit()
        except SQLAlchemyError as exc:
            self.log.warning("Failed to create product : %s", exc)
            raise AppError(constants.ERR_CREATE_PRODUCT, 500, exc) from exc

        self._cache.delete(product_cache_key(request.manufactured_date))
        return product_to_response(product)


class ReportUseCase:
    """Sales report over an inclusive range of days."""

    def __init__(
        self,
        engine: Engine,
        logger: logging.Logger,
        report_repository: ReportRepository,
        cache: Cache | None = None,
    ):
        self.engine = engine
        self.log = logger
        self.report_repository = report_repository
        self.cache = cache
        self._cache = _CacheAccess(cache, logger, "report")

    def transactions(self, request: ReportTransactionsRequest) -> ReportTransactionsResponse:
        """Totals, best seller and latest transactions between start and end."""
        start_text = request.start.strip()
        end_text = request.end.strip()
        start_date = _parse_date(start_text, self.log, "start date")
        end_date = _parse_date(end_text, self.log, "end date")
        if end_date < start_date:
            raise AppError(constants.INVALID_REQUEST_DATA, 400)

        key = report_cache_key(start_text, end_text)
        cached = self._cache.get(key)
        if cached is not None:
            try:
                data = json.loads(cached)
                if not isinstance(data, dict):
                    raise ValueError("cached report is not an object")
                return ReportTransactionsResponse.from_dict(data)
            except _DECODE_ERRORS:
                self.log.warning("Failed to decode report cache")

        end_date += timedelta(days=1)
        repo = self.report_repository
        with Session(self.engine) as session:
            try:
                total_customer = repo.get_total_customer(session, start_date, end_date)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "get total customer", exc) from exc
            try:
                has_new_customer = repo.has_new_customer(session, start_date, end_date)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "check new customer", exc) from exc
            try:
                total_income = repo.get_total_income(session, start_date, end_date)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "get total income", exc) from exc
            try:
                total_products_sold = repo.get_total_products_sold(
                    session, start_date, end_date
                )
            except SQLAlchemyError as exc:
                raise _internal(self.log, "get total products sold", exc) from exc
            try:
                best_seller = repo.get_best_seller(session, start_date, end_date)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "get best seller", exc) from exc
            try:
                last_transactions = repo.get_last_transactions(
                    session, start_date, end_date, constants.REPORT_LAST_TRANSACTION_LIMIT
                )
            except SQLAlchemyError as exc:
                raise _internal(self.log, "get last transactions", exc) from exc
            items = [map_report_transaction(item) for item in last_transactions]

        response = ReportTransactionsResponse(
            total_customer=total_customer,
            has_new_customer=has_new_customer,
            total_income=total_income,
            total_products_sold=total_products_sold,
            last_transactions=items,
        )
        if best_seller is not None:
            response.best_seller = ReportBestSeller(
                product_name=best_seller.product_name,
                size=best_seller.size,
                flavor=best_seller.flavor,
                total_qty=best_seller.total_qty,
            )

        self._cache.set(key, response.to_dict(), constants.REPORT_CACHE_TTL)
        return response