"""Use cases for recording purchases and redeeming loyalty points."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snackstore import constants
from snackstore.cache import Cache
from snackstore.converters import redemption_to_response, transaction_to_response
from snackstore.entities import (
    Customer,
    Product,
    Redemption,
    Transaction,
    points_cost,
    points_earned,
)
from snackstore.pagination import PageMetadata, build_page_metadata
from snackstore.repositories import (
    CustomerRepository,
    ProductRepository,
    RedemptionRepository,
    TransactionRepository,
)
from snackstore.responses import AppError
from snackstore.schemas import (
    CreateRedemptionRequest,
    CreateTransactionRequest,
    GetTransactionRequest,
    RedemptionResponse,
    TransactionResponse,
)

_DATE_SHAPE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})"
)


def _parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp, keeping its offset."""
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise ValueError(f"timestamp {text!r} is not in RFC 3339 form")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "").ljust(6, "0")[:6])
    if zone == "Z":
        tz = timezone.utc
    else:
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(f"time zone offset {zone!r} is out of range")
        offset = timedelta(hours=hours, minutes=minutes)
        tz = timezone(offset if zone[0] == "+" else -offset)
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )


def _parse_day(text: str, logger: logging.Logger, what: str) -> date:
    try:
        if not _DATE_SHAPE.fullmatch(text):
            raise ValueError(f"date {text!r} is not in YYYY-MM-DD form")
        return date.fromisoformat(text)
    except ValueError as exc:
        logger.warning("Invalid %s : %s", what, exc)
        raise AppError(constants.FAILED_INPUT_FORMAT, 400, exc) from exc


def _parse_product_id(text: str, logger: logging.Logger) -> uuid.UUID:
    try:
        return uuid.UUID(text.strip())
    except ValueError as exc:
        logger.warning("Invalid product_id : %s", exc)
        raise AppError(constants.ERR_INVALID_ID_FORMAT, 400, exc) from exc


def _parse_moment(text: str, logger: logging.Logger, what: str) -> datetime:
    try:
        return _parse_timestamp(text.strip())
    except ValueError as exc:
        logger.warning("Invalid %s format : %s", what, exc)
        raise AppError(constants.FAILED_INPUT_FORMAT, 400, exc) from exc


def _internal(logger: logging.Logger, what: str, exc: BaseException | None) -> AppError:
    logger.warning("Failed to %s : %s", what, exc)
    return AppError(constants.INTERNAL_SERVER_ERROR, 500, exc)


def _locked(session: Session, model: Any, *conditions: Any) -> Any:
    stmt = select(model).where(*conditions).with_for_update().limit(1)
    return session.execute(stmt).scalar_one_or_none()


def _lock_product(session: Session, product_id: uuid.UUID, logger: logging.Logger) -> Product:
    try:
        product = _locked(session, Product, Product.id == product_id)
    except SQLAlchemyError as exc:
        raise _internal(logger, "lock product", exc) from exc
    if product is None:
        raise AppError(constants.STATUS_NOT_FOUND, 404)
    return product


def _by_name(name: str) -> Any:
    return func.lower(Customer.name) == name.strip().lower()


def _day_text(value: date | datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _invalidate_caches(cache: Cache | None, logger: logging.Logger, product: Product | None) -> None:
    """Drop the product list of the product's day and every cached report."""
    if cache is None or product is None:
        return
    key = constants.PRODUCT_CACHE_KEY_PREFIX + _day_text(product.manufactured_date)
    try:
        cache.delete(key)
    except Exception as exc:  # a stale cache entry expires on its own
        logger.warning("Failed to invalidate product cache : %s", exc)
    try:
        cache.delete_by_prefix(constants.REPORT_CACHE_KEY_PREFIX)
    except Exception as exc:
        logger.warning("Failed to invalidate report cache : %s", exc)


class TransactionUseCase:
    """Recording purchases and listing them by date."""

    def __init__(
        self,
        engine: Engine,
        logger: logging.Logger,
        customer_repository: CustomerRepository,
        product_repository: ProductRepository,
        transaction_repository: TransactionRepository,
        cache: Cache | None = None,
    ):
        self.engine = engine
        self.log = logger
        self.customer_repository = customer_repository
        self.product_repository = product_repository
        self.transaction_repository = transaction_repository
        self.cache = cache

    def create(self, request: CreateTransactionRequest) -> TransactionResponse:
        """Sell a product: reduce stock, award points and store the transaction."""
        product_id = _parse_product_id(request.product_id, self.log)
        transaction_at = _parse_moment(request.transaction_at, self.log, "transaction_at")
        customer_name = request.customer_name.strip()
        if not customer_name:
            raise AppError(constants.FAILED_VALIDATION_OCCURRED, 400)

        with Session(self.engine, expire_on_commit=False) as session:
            product = _lock_product(session, product_id, self.log)
            if product.stock_qty < request.qty:
                raise AppError(constants.ERR_INSUFFICIENT_STOCK, 409)

            customer = self._find_or_create_customer(session, customer_name)

            unit_price = product.price
            total_price = unit_price * request.qty
            earned = points_earned(total_price)

            product.stock_qty -= request.qty
            customer.points += earned

            try:
                product = self.product_repository.update(session, product)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "update product stock", exc) from exc
            try:
                customer = self.customer_repository.update(session, customer)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "update customer points", exc) from exc

            transaction = Transaction(
                id=uuid.uuid4(),
                customer_id=customer.id,
                customer=customer,
                product_id=product.id,
                product=product,
                qty=request.qty,
                unit_price=unit_price,
                total_price=total_price,
                points_earned=earned,
                transaction_at=transaction_at,
            )
            try:
                self.transaction_repository.create(session, transaction)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "create transaction", exc) from exc
            try:
                session.commit()
            except SQLAlchemyError as exc:
                raise _internal(self.log, "commit transaction", exc) from exc

        _invalidate_caches(self.cache, self.log, product)
        return transaction_to_response(transaction)

    def list(
        self, request: GetTransactionRequest
    ) -> tuple[list[TransactionResponse], PageMetadata]:
        """One page of transactions between two days inclusive, latest first."""
        start_date = _parse_day(request.start.strip(), self.log, "start date")
        end_date = _parse_day(request.end.strip(), self.log, "end date")
        if end_date < start_date:
            raise AppError(constants.INVALID_REQUEST_DATA, 400)
        end_date += timedelta(days=1)

        with Session(self.engine) as session:
            try:
                total_item = self.transaction_repository.count_by_date_range(
                    session, start_date, end_date
                )
            except SQLAlchemyError as exc:
                raise _internal(self.log, "count transactions", exc) from exc

            offset = (request.page - 1) * request.page_size
            try:
                transactions = self.transaction_repository.find_by_date_range(
                    session, start_date, end_date, request.page_size, offset
                )
            except SQLAlchemyError as exc:
                raise _internal(self.log, "query transactions", exc) from exc
            responses = [transaction_to_response(item) for item in transactions]

        return responses, build_page_metadata(request.page, request.page_size, total_item)

    def _find_or_create_customer(self, session: Session, name: str) -> Customer:
        """Customer with this name, ignoring case; created with no points if absent."""
        try:
            customer = _locked(session, Customer, _by_name(name))
        except SQLAlchemyError as exc:
            raise _internal(self.log, "find customer", exc) from exc
        if customer is not None:
            return customer

        customer = Customer(id=uuid.uuid4(), name=name, points=0)
        try:
            with session.begin_nested():
                session.add(customer)
            return customer
        except SQLAlchemyError:
            pass  # another request created the customer first

        try:
            customer = _locked(session, Customer, _by_name(name))
        except SQLAlchemyError as exc:
            raise _internal(self.log, "refetch customer", exc) from exc
        if customer is None:
            raise _internal(self.log, "refetch customer", None)
        return customer


class RedemptionUseCase:
    """Exchanging loyalty points for products."""

    def __init__(
        self,
        engine: Engine,
        logger: logging.Logger,
        customer_repository: CustomerRepository,
        product_repository: ProductRepository,
        redemption_repository: RedemptionRepository,
        cache: Cache | None = None,
    ):
        self.engine = engine
        self.log = logger
        self.customer_repository = customer_repository
        self.product_repository = product_repository
        self.redemption_repository = redemption_repository
        self.cache = cache

    def create(self, request: CreateRedemptionRequest) -> RedemptionResponse:
        """Spend a customer's points on a product and store the redemption."""
        product_id = _parse_product_id(request.product_id, self.log)
        redeem_at = _parse_moment(request.redeem_at, self.log, "redeem_at")
        customer_name = request.customer_name.strip()
        if not customer_name:
            raise AppError(constants.FAILED_VALIDATION_OCCURRED, 400)

        with Session(self.engine, expire_on_commit=False) as session:
            try:
                customer = _locked(session, Customer, _by_name(customer_name))
            except SQLAlchemyError as exc:
                raise _internal(self.log, "lock customer", exc) from exc
            if customer is None:
                raise AppError(constants.STATUS_NOT_FOUND, 404)

            product = _lock_product(session, product_id, self.log)

            cost = points_cost(product.size)
            if cost == 0:
                raise AppError(constants.INVALID_REQUEST_DATA, 400)

            total_points = cost * request.qty
            if customer.points < total_points:
                raise AppError(constants.ERR_INSUFFICIENT_POINTS, 409)
            if product.stock_qty < request.qty:
                raise AppError(constants.ERR_INSUFFICIENT_STOCK, 409)

            customer.points -= total_points
            product.stock_qty -= request.qty

            try:
                customer = self.customer_repository.update(session, customer)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "update customer points", exc) from exc
            try:
                product = self.product_repository.update(session, product)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "update product stock", exc) from exc

            redemption = Redemption(
                id=uuid.uuid4(),
                customer_id=customer.id,
                customer=customer,
                product_id=product.id,
                product=product,
                qty=request.qty,
                points_spent=total_points,
                redeem_at=redeem_at,
            )
            try:
                self.redemption_repository.create(session, redemption)
            except SQLAlchemyError as exc:
                raise _internal(self.log, "create redemption", exc) from exc
            try:
                session.commit()
            except SQLAlchemyError as exc:
                raise _internal(self.log, "commit transaction", exc) from exc

        _invalidate_caches(self.cache, self.log, product)
        return redemption_to_response(redemption)