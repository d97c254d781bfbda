"""Database entities and the loyalty point rules."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SIZE_SMALL = "Small"
SIZE_MEDIUM = "Medium"
SIZE_LARGE = "Large"
SIZES = (SIZE_SMALL, SIZE_MEDIUM, SIZE_LARGE)

FLAVORS = (
    "Jagung Bakar",
    "Rumput Laut",
    "Original",
    "Jagung Manis",
    "Keju Asin",
    "Keju Manis",
    "Pedas",
)

_POINTS_COST = {SIZE_SMALL: 200, SIZE_MEDIUM: 300, SIZE_LARGE: 500}


def points_earned(total_price: int) -> int:
    """Points earned for a purchase: one point per full 1000 spent."""
    quotient = abs(total_price) // 1000
    return -quotient if total_price < 0 else quotient


def points_cost(size: str) -> int:
    """Points needed to redeem one product of the given size, 0 if unknown."""
    return _POINTS_COST.get(size.strip(), 0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join("'" + value.replace("'", "''") + "'" for value in values)
    return f"{column} IN ({quoted})"


class Base(DeclarativeBase):
    """Declarative base for all entities."""


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint("length(trim(name)) > 0", name="customers_name_check"),
        CheckConstraint("points >= 0", name="customers_points_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    points: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("length(trim(name)) > 0", name="products_name_check"),
        CheckConstraint("length(trim(type)) > 0", name="products_type_check"),
        CheckConstraint(_in_list("flavor", FLAVORS), name="products_flavor_check"),
        CheckConstraint(_in_list("size", SIZES), name="products_size_check"),
        CheckConstraint("price >= 0", name="products_price_check"),
        CheckConstraint("stock_qty >= 0", name="products_stock_qty_check"),
        Index("products_type_idx", "type"),
        Index("products_flavor_idx", "flavor"),
        Index("products_size_idx", "size"),
        Index("products_manufactured_date_idx", "manufactured_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column("type", String, nullable=False)
    flavor: Mapped[str] = mapped_column(String, nullable=False)
    size: Mapped[str] = mapped_column(String(10), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_qty: Mapped[int] = mapped_column("stock_qty", Integer, nullable=False)
    manufactured_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("qty > 0", name="transactions_qty_check"),
        CheckConstraint("unit_price >= 0", name="transactions_unit_price_check"),
        CheckConstraint("total_price >= 0", name="transactions_total_price_check"),
        CheckConstraint("points_earned >= 0", name="transactions_points_earned_check"),
        Index("transactions_customer_id_idx", "customer_id"),
        Index("transactions_product_id_idx", "product_id"),
        Index("transactions_transaction_at_idx", "transaction_at"),
        Index("transactions_product_time_idx", "product_id", "transaction_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", onupdate="RESTRICT", ondelete="RESTRICT"),
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", onupdate="RESTRICT", ondelete="RESTRICT"),
        nullable=False,
    )
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    customer: Mapped[Customer] = relationship()
    product: Mapped[Product] = relationship()


class Redemption(Base):
    __tablename__ = "redemptions"
    __table_args__ = (
        CheckConstraint("qty > 0", name="redemptions_qty_check"),
        CheckConstraint("points_spent >= 0", name="redemptions_points_spent_check"),
        Index("redemptions_customer_id_idx", "customer_id"),
        Index("redemptions_product_id_idx", "product_id"),
        Index("redemptions_redeem_at_idx", "redeem_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", onupdate="RESTRICT", ondelete="RESTRICT"),
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", onupdate="RESTRICT", ondelete="RESTRICT"),
        nullable=False,
    )
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    redeem_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    customer: Mapped[Customer] = relationship()
    product: Mapped[Product] = relationship()