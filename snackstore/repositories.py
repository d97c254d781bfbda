"""Data access for customers, products, transactions, redemptions and reports."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, delete, distinct, exists, extract, func, select
from sqlalchemy.orm import Session, selectinload

from snackstore.entities import Base, Customer, Product, Redemption, Transaction

E = TypeVar("E", bound=Base)


def _as_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value).strip())


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _in_range(column: Any, start: date | datetime, end: date | datetime) -> Any:
    """Half-open range: start inclusive, end exclusive."""
    return and_(column >= _as_datetime(start), column < _as_datetime(end))


class Repository(Generic[E]):
    """Common create, update, delete, count and lookup operations for one entity."""

    model: type[E]

    def __init__(self, logger: logging.Logger | None = None, model: type[E] | None = None):
        if model is not None:
            self.model = model
        self.log = logger if logger is not None else logging.getLogger(__name__)

    def create(self, session: Session, entity: E) -> E:
        session.add(entity)
        session.flush()
        return entity

    def update(self, session: Session, entity: E) -> E:
        """Save every field of the entity, inserting it when it is not stored yet."""
        merged = session.merge(entity)
        session.flush()
        return merged

    def delete(self, session: Session, entity: E) -> None:
        if entity in session:
            session.delete(entity)
        else:
            session.execute(delete(self.model).where(self.model.id == entity.id))
        session.flush()

    def count_by_id(self, session: Session, id_: Any) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.id == _as_uuid(id_))
        )
        return int(session.scalar(stmt) or 0)

    def count_by_condition(self, session: Session, *args: Any) -> int:
        stmt = select(func.count()).select_from(self.model).where(*args)
        return int(session.scalar(stmt) or 0)

    def find_by_id(self, session: Session, id_: Any) -> E:
        """Return the entity with this id; raises sqlalchemy.exc.NoResultFound."""
        return self._take(session, self.model.id == _as_uuid(id_))

    def find_by_condition(self, session: Session, *args: Any) -> E:
        """Return the first entity matching the conditions; raises NoResultFound."""
        return self._take(session, *args)

    def _take(self, session: Session, *conditions: Any) -> E:
        stmt = select(self.model).where(*conditions).limit(1)
        return session.execute(stmt).scalar_one()


class CustomerRepository(Repository[Customer]):
    model = Customer

    def find_all(self, session: Session, limit: int, offset: int) -> list[Customer]:
        """Customers, newest first."""
        stmt = (
            select(Customer)
            .order_by(Customer.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(session.scalars(stmt).all())

    def count_all(self, session: Session) -> int:
        return int(session.scalar(select(func.count()).select_from(Customer)) or 0)


class ProductRepository(Repository[Product]):
    model = Product

    def find_by_manufactured_date(
        self, session: Session, manufactured_date: date | datetime
    ) -> list[Product]:
        """Products made on the given day, newest first."""
        stmt = (
            select(Product)
            .where(Product.manufactured_date == _as_date(manufactured_date))
            .order_by(Product.created_at.desc())
        )
        return list(session.scalars(stmt).all())


_WITH_PARTIES = (selectinload(Transaction.customer), selectinload(Transaction.product))


class TransactionRepository(Repository[Transaction]):
    model = Transaction

    def find_by_date_range(
        self,
        session: Session,
        start_date: date | datetime,
        end_date: date | datetime,
        limit: int,
        offset: int,
    ) -> list[Transaction]:
        """Transactions in [start, end), latest first, with customer and product loaded."""
        stmt = (
            select(Transaction)
            .options(*_WITH_PARTIES)
            .where(_in_range(Transaction.transaction_at, start_date, end_date))
            .order_by(Transaction.transaction_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(session.scalars(stmt).all())

    def count_by_date_range(
        self, session: Session, start_date: date | datetime, end_date: date | datetime
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(Transaction)
            .where(_in_range(Transaction.transaction_at, start_date, end_date))
        )
        return int(session.scalar(stmt) or 0)


class RedemptionRepository(Repository[Redemption]):
    model = Redemption


@dataclass(frozen=True)
class BestSellerRow:
    product_name: str
    size: str
    flavor: str
    total_qty: int


class ReportRepository:
    """Aggregate queries over transactions in a half-open date range."""

    def __init__(self, logger: logging.Logger | None = None):
        self.log = logger if logger is not None else logging.getLogger(__name__)

    def get_total_customer(
        self, session: Session, start_date: date | datetime, end_date: date | datetime
    ) -> int:
        stmt = select(func.count(distinct(Transaction.customer_id))).where(
            _in_range(Transaction.transaction_at, start_date, end_date)
        )
        return int(session.scalar(stmt) or 0)

    def has_new_customer(
        self, session: Session, start_date: date | datetime, end_date: date | datetime
    ) -> bool:
        """Whether any buyer in the range joined in the month of their purchase."""
        condition = exists().where(
            Customer.id == Transaction.customer_id,
            _in_range(Transaction.transaction_at, start_date, end_date),
            extract("year", Customer.created_at) == extract("year", Transaction.transaction_at),
            extract("month", Customer.created_at)
            == extract("month", Transaction.transaction_at),
        )
        return bool(session.scalar(select(condition)))

    def get_total_income(
        self, session: Session, start_date: date | datetime, end_date: date | datetime
    ) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.total_price), 0)).where(
            _in_range(Transaction.transaction_at, start_date, end_date)
        )
        return int(session.scalar(stmt) or 0)

    def get_total_products_sold(
        self, session: Session, start_date: date | datetime, end_date: date | datetime
    ) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.qty), 0)).where(
            _in_range(Transaction.transaction_at, start_date, end_date)
        )
        return int(session.scalar(stmt) or 0)

    def get_best_seller(
        self, session: Session, start_date: date | datetime, end_date: date | datetime
    ) -> BestSellerRow | None:
        """The product sold in the largest quantity, or None without sales."""
        total_qty = func.sum(Transaction.qty).label("total_qty")
        stmt = (
            select(Product.name, Product.size, Product.flavor, total_qty)
            .select_from(Transaction)
            .join(Product, Product.id == Transaction.product_id)
            .where(_in_range(Transaction.transaction_at, start_date, end_date))
            .group_by(Product.id, Product.name, Product.size, Product.flavor)
            .order_by(total_qty.desc())
            .limit(1)
        )
        row = session.execute(stmt).first()
        if row is None:
            return None
        name, size, flavor, qty = row
        if not name and not qty:
            return None
        return BestSellerRow(
            product_name=name, size=size, flavor=flavor, total_qty=int(qty or 0)
        )

    def get_last_transactions(
        self,
        session: Session,
        start_date: date | datetime,
        end_date: date | datetime,
        limit: int,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(*_WITH_PARTIES)
            .where(_in_range(Transaction.transaction_at, start_date, end_date))
            .order_by(Transaction.transaction_at.desc())
            .limit(limit)
        )
        return list(session.scalars(stmt).all())