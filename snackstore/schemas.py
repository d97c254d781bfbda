"""Request and response schemas with their validation rules."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional

from snackstore import constants
from snackstore.responses import join_messages

_DATE_PARAM = "2006-01-02"
_DATE_SHAPE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_FLAVOR_PARAM = (
    "'Jagung Bakar' 'Rumput Laut' 'Original' 'Jagung Manis' "
    "'Keju Asin' 'Keju Manis' 'Pedas'"
)
_FLAVOR_OPTIONS = (
    "Jagung Bakar",
    "Rumput Laut",
    "Original",
    "Jagung Manis",
    "Keju Asin",
    "Keju Manis",
    "Pedas",
)
_SIZE_PARAM = "Small Medium Large"
_SIZE_OPTIONS = ("Small", "Medium", "Large")


class ValidationError(Exception):
    """Raised when a request breaks its rules; maps "Struct.Field" to a message."""

    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        super().__init__(join_messages(self.errors))

    @property
    def message(self) -> str:
        return str(self)


_Rule = Callable[[str, Any], Optional[str]]


def _parse_date(text: str) -> date:
    if not _DATE_SHAPE.fullmatch(text):
        raise ValueError(f"date {text!r} does not match {_DATE_PARAM}")
    return date.fromisoformat(text)


def _required(name: str, value: Any) -> str | None:
    if value is None or value == "" or (value == 0 and not isinstance(value, str)):
        return f"{name} is a required field"
    return None


def _gte(limit: int) -> _Rule:
    def rule(name: str, value: Any) -> str | None:
        return None if value >= limit else f"{name} must be {limit} or greater"

    return rule


def _gt(limit: int) -> _Rule:
    def rule(name: str, value: Any) -> str | None:
        return None if value > limit else f"{name} must be greater than {limit}"

    return rule


def _one_of(options: Iterable[str], param: str) -> _Rule:
    allowed = frozenset(options)

    def rule(name: str, value: Any) -> str | None:
        return None if value in allowed else f"{name} must be one of [{param}]"

    return rule


def _date_format(name: str, value: Any) -> str | None:
    try:
        _parse_date(value)
    except ValueError:
        return f"{name} does not match the {_DATE_PARAM} format"
    return None


def _validate(struct: str, checks: Iterable[tuple[str, Any, tuple[_Rule, ...]]]) -> None:
    errors: dict[str, str] = {}
    for name, value, rules in checks:
        for rule in rules:
            message = rule(name, value)
            if message:
                errors[f"{struct}.{name}"] = message
                break
    if errors:
        raise ValidationError(errors)


def _mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("request body must be a JSON object")
    return data


def _str_field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _int_field(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _omit_empty(pairs: Iterable[tuple[str, Any]]) -> dict:
    return {key: value for key, value in pairs if value is not None and value != "" and value != 0}


def _uuid_or_none(value: Any) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def _id_text(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


@dataclass
class GetCustomerRequest:
    page: int = constants.DEFAULT_PAGE
    page_size: int = constants.DEFAULT_PAGE_SIZE

    def validate(self) -> None:
        _validate(
            "GetCustomerRequest",
            [
                ("Page", self.page, (_gte(1),)),
                ("PageSize", self.page_size, (_gte(1),)),
            ],
        )


@dataclass
class CustomerResponse:
    name: str = ""
    points: int = 0

    def to_dict(self) -> dict:
        return _omit_empty([("name", self.name), ("points", self.points)])


@dataclass
class GetProductRequest:
    date: str = ""

    def validate(self) -> None:
        _validate("GetProductRequest", [("Date", self.date, (_required, _date_format))])


@dataclass
class CreateProductRequest:
    name: str = ""
    type: str = ""
    flavor: str = ""
    size: str = ""
    price: int = 0
    stock_qty: int = 0
    manufactured_date: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "CreateProductRequest":
        body = _mapping(data)
        return cls(
            name=_str_field(body, "name"),
            type=_str_field(body, "type"),
            flavor=_str_field(body, "flavor"),
            size=_str_field(body, "size"),
            price=_int_field(body, "price"),
            stock_qty=_int_field(body, "stock_qty"),
            manufactured_date=_str_field(body, "manufactured_date"),
        )

    def validate(self) -> None:
        _validate(
            "CreateProductRequest",
            [
                ("Name", self.name, (_required,)),
                ("Type", self.type, (_required,)),
                ("Flavor", self.flavor, (_required, _one_of(_FLAVOR_OPTIONS, _FLAVOR_PARAM))),
                ("Size", self.size, (_required, _one_of(_SIZE_OPTIONS, _SIZE_PARAM))),
                ("Price", self.price, (_required, _gte(0))),
                ("StockQty", self.stock_qty, (_required, _gte(0))),
                ("ManufacturedDate", self.manufactured_date, (_required, _date_format)),
            ],
        )


@dataclass
class ProductResponse:
    id: uuid.UUID | None = None
    name: str = ""
    type: str = ""
    flavor: str = ""
    size: str = ""
    price: int = 0
    stock_qty: int = 0
    manufactured_date: str = ""

    def to_dict(self) -> dict:
        return _omit_empty(
            [
                ("id", _id_text(self.id)),
                ("name", self.name),
                ("type", self.type),
                ("flavor", self.flavor),
                ("size", self.size),
                ("price", self.price),
                ("stock_qty", self.stock_qty),
                ("manufactured_date", self.manufactured_date),
            ]
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductResponse":
        return cls(
            id=_uuid_or_none(data.get("id")),
            name=data.get("name", ""),
            type=data.get("type", ""),
            flavor=data.get("flavor", ""),
            size=data.get("size", ""),
            price=data.get("price", 0),
            stock_qty=data.get("stock_qty", 0),
            manufactured_date=data.get("manufactured_date", ""),
        )


@dataclass
class CreateRedemptionRequest:
    customer_name: str = ""
    product_id: str = ""
    qty: int = 0
    redeem_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "CreateRedemptionRequest":
        body = _mapping(data)
        return cls(
            customer_name=_str_field(body, "customer_name"),
            product_id=_str_field(body, "product_id"),
            qty=_int_field(body, "qty"),
            redeem_at=_str_field(body, "redeem_at"),
        )

    def validate(self) -> None:
        _validate(
            "CreateRedemptionRequest",
            [
                ("CustomerName", self.customer_name, (_required,)),
                ("ProductID", self.product_id, (_required,)),
                ("Qty", self.qty, (_required, _gt(0))),
                ("RedeemAt", self.redeem_at, (_required,)),
            ],
        )


@dataclass
class RedemptionResponse:
    id: uuid.UUID | None = None
    customer_name: str = ""
    product_name: str = ""
    size: str = ""
    qty: int = 0
    points_spent: int = 0
    redeem_at: str = ""

    def to_dict(self) -> dict:
        return _omit_empty(
            [
                ("redemption_id", _id_text(self.id)),
                ("customer_name", self.customer_name),
                ("product_name", self.product_name),
                ("size", self.size),
                ("qty", self.qty),
                ("points_spent", self.points_spent),
                ("redeem_at", self.redeem_at),
            ]
        )


@dataclass
class ReportTransactionsRequest:
    start: str = ""
    end: str = ""

    def validate(self) -> None:
        _validate(
            "ReportTransactionsRequest",
            [
                ("Start", self.start, (_required, _date_format)),
                ("End", self.end, (_required, _date_format)),
            ],
        )


@dataclass
class ReportBestSeller:
    product_name: str = ""
    size: str = ""
    flavor: str = ""
    total_qty: int = 0

    def to_dict(self) -> dict:
        return _omit_empty(
            [
                ("product_name", self.product_name),
                ("size", self.size),
                ("flavor", self.flavor),
                ("total_qty", self.total_qty),
            ]
        )


@dataclass
class ReportTransactionItem:
    id: uuid.UUID | None = None
    customer_name: str = ""
    product_name: str = ""
    size: str = ""
    flavor: str = ""
    qty: int = 0
    unit_price: int = 0
    total_price: int = 0
    points_earned: int = 0
    transaction_at: str = ""
    is_new_customer: bool = False

    def to_dict(self) -> dict:
        body = _omit_empty(
            [
                ("transaction_id", _id_text(self.id)),
                ("customer_name", self.customer_name),
                ("product_name", self.product_name),
                ("size", self.size),
                ("flavor", self.flavor),
                ("qty", self.qty),
                ("unit_price", self.unit_price),
                ("total_price", self.total_price),
                ("points_earned", self.points_earned),
                ("transaction_at", self.transaction_at),
            ]
        )
        body["is_new_customer"] = self.is_new_customer
        return body


def _best_seller_from_dict(data: Mapping[str, Any]) -> ReportBestSeller:
    return ReportBestSeller(
        product_name=data.get("product_name", ""),
        size=data.get("size", ""),
        flavor=data.get("flavor", ""),
        total_qty=data.get("total_qty", 0),
    )


def _item_from_dict(data: Mapping[str, Any]) -> ReportTransactionItem:
    return ReportTransactionItem(
        id=_uuid_or_none(data.get("transaction_id")),
        customer_name=data.get("customer_name", ""),
        product_name=data.get("product_name", ""),
        size=data.get("size", ""),
        flavor=data.get("flavor", ""),
        qty=data.get("qty", 0),
        unit_price=data.get("unit_price", 0),
        total_price=data.get("total_price", 0),
        points_earned=data.get("points_earned", 0),
        transaction_at=data.get("transaction_at", ""),
        is_new_customer=bool(data.get("is_new_customer", False)),
    )


@dataclass
class ReportTransactionsResponse:
    total_customer: int = 0
    has_new_customer: bool = False
    total_income: int = 0
    best_seller: ReportBestSeller | None = None
    total_products_sold: int = 0
    last_transactions: list[ReportTransactionItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        body: dict = {
            "total_customer": self.total_customer,
            "has_new_customer": self.has_new_customer,
            "total_income": self.total_income,
        }
        if self.best_seller is not None:
            body["best_seller"] = self.best_seller.to_dict()
        body["total_products_sold"] = self.total_products_sold
        if self.last_transactions:
            body["last_transactions"] = [item.to_dict() for item in self.last_transactions]
        return body

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReportTransactionsResponse":
        best = data.get("best_seller")
        return cls(
            total_customer=data.get("total_customer", 0),
            has_new_customer=bool(data.get("has_new_customer", False)),
            total_income=data.get("total_income", 0),
            best_seller=_best_seller_from_dict(best) if best is not None else None,
            total_products_sold=data.get("total_products_sold", 0),
            last_transactions=[
                _item_from_dict(item) for item in data.get("last_transactions") or []
            ],
        )


@dataclass
class CreateTransactionRequest:
    customer_name: str = ""
    product_id: str = ""
    qty: int = 0
    transaction_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "CreateTransactionRequest":
        body = _mapping(data)
        return cls(
            customer_name=_str_field(body, "customer_name"),
            product_id=_str_field(body, "product_id"),
            qty=_int_field(body, "qty"),
            transaction_at=_str_field(body, "transaction_at"),
        )

    def validate(self) -> None:
        _validate(
            "CreateTransactionRequest",
            [
                ("CustomerName", self.customer_name, (_required,)),
                ("ProductID", self.product_id, (_required,)),
                ("Qty", self.qty, (_required, _gt(0))),
                ("TransactionAt", self.transaction_at, (_required,)),
            ],
        )


@dataclass
class GetTransactionRequest:
    start: str = ""
    end: str = ""
    page: int = constants.DEFAULT_PAGE
    page_size: int = constants.DEFAULT_PAGE_SIZE

    def validate(self) -> None:
        _validate(
            "GetTransactionRequest",
            [
                ("Start", self.start, (_required, _date_format)),
                ("End", self.end, (_required, _date_format)),
                ("Page", self.page, (_gte(1),)),
                ("PageSize", self.page_size, (_gte(1),)),
            ],
        )


@dataclass
class TransactionResponse:
    id: uuid.UUID | None = None
    customer_name: str = ""
    product_name: str = ""
    size: str = ""
    flavor: str = ""
    qty: int = 0
    unit_price: int = 0
    total_price: int = 0
    points_earned: int = 0
    transaction_at: str = ""

    def to_dict(self) -> dict:
        return _omit_empty(
            [
                ("transaction_id", _id_text(self.id)),
                ("customer_name", self.customer_name),
                ("product_name", self.product_name),
                ("size", self.size),
                ("flavor", self.flavor),
                ("qty", self.qty),
                ("unit_price", self.unit_price),
                ("total_price", self.total_price),
                ("points_earned", self.points_earned),
                ("transaction_at", self.transaction_at),
            ]
        )