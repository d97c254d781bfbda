"""Conversion of database entities into response schemas."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from snackstore.entities import Customer, Product, Redemption, Transaction
from snackstore.schemas import (
    CustomerResponse,
    ProductResponse,
    RedemptionResponse,
    TransactionResponse,
)


def _format_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _format_datetime(value: datetime) -> str:
    """Format as RFC 3339 with second precision; naive values are taken as UTC."""
    stamp = (
        f"{_format_date(value)}T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    offset = value.utcoffset() if value.tzinfo is not None else None
    if offset is None or offset == timedelta(0):
        return stamp + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    total = abs(total)
    return f"{stamp}{sign}{total // 3600:02d}:{total % 3600 // 60:02d}"


def customer_to_response(customer: Customer) -> CustomerResponse:
    return CustomerResponse(name=customer.name, points=customer.points)


def product_to_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        type=product.type,
        flavor=product.flavor,
        size=product.size,
        price=product.price,
        stock_qty=product.stock_qty,
        manufactured_date=_format_date(product.manufactured_date),
    )


def redemption_to_response(redemption: Redemption) -> RedemptionResponse:
    return RedemptionResponse(
        id=redemption.id,
        customer_name=redemption.customer.name,
        product_name=redemption.product.name,
        size=redemption.product.size,
        qty=redemption.qty,
        points_spent=redemption.points_spent,
        redeem_at=_format_datetime(redemption.redeem_at),
    )


def transaction_to_response(transaction: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        customer_name=transaction.customer.name,
        product_name=transaction.product.name,
        size=transaction.product.size,
        flavor=transaction.product.flavor,
        qty=transaction.qty,
        unit_price=transaction.unit_price,
        total_price=transaction.total_price,
        points_earned=transaction.points_earned,
        transaction_at=_format_datetime(transaction.transaction_at),
    )