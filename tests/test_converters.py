import uuid
from datetime import date, datetime, timedelta, timezone

from snackstore.converters import (
    customer_to_response,
    product_to_response,
    redemption_to_response,
    transaction_to_response,
)
from snackstore.entities import Customer, Product, Redemption, Transaction


def _customer():
    return Customer(id=uuid.uuid4(), name="Budi", points=450)


def _product():
    return Product(
        id=uuid.uuid4(),
        name="Chips",
        type="Keripik",
        flavor="Keju Asin",
        size="Medium",
        price=12000,
        stock_qty=8,
        manufactured_date=date(2024, 1, 5),
    )


def test_customer_to_response_copies_name_and_points():
    customer = _customer()
    response = customer_to_response(customer)
    assert response.name == customer.name
    assert response.points == customer.points


def test_product_to_response_formats_date():
    product = _product()
    response = product_to_response(product)
    assert response.id == product.id
    assert response.flavor == product.flavor
    assert response.stock_qty == product.stock_qty
    assert response.manufactured_date == "2024-01-05"


def test_transaction_to_response_uses_related_entities():
    customer, product = _customer(), _product()
    at = datetime(2024, 1, 5, 10, 30, tzinfo=timezone.utc)
    transaction = Transaction(
        id=uuid.uuid4(),
        customer=customer,
        product=product,
        qty=2,
        unit_price=product.price,
        total_price=product.price * 2,
        points_earned=24,
        transaction_at=at,
    )
    response = transaction_to_response(transaction)
    assert response.id == transaction.id
    assert response.customer_name == customer.name
    assert response.product_name == product.name
    assert response.size == product.size
    assert response.flavor == product.flavor
    assert response.total_price == transaction.total_price
    assert response.transaction_at == "2024-01-05T10:30:00Z"


def test_redemption_keeps_offset_and_round_trips():
    offset = timezone(timedelta(hours=7))
    at = datetime(2024, 3, 1, 8, 15, 9, 500000, tzinfo=offset)
    redemption = Redemption(
        id=uuid.uuid4(),
        customer=_customer(),
        product=_product(),
        qty=1,
        points_spent=300,
        redeem_at=at,
    )
    response = redemption_to_response(redemption)
    assert response.redeem_at.endswith("+07:00")
    parsed = datetime.fromisoformat(response.redeem_at)
    assert parsed == at.replace(microsecond=0)
    assert response.points_spent == redemption.points_spent


def test_naive_datetime_is_treated_as_utc():
    transaction = Transaction(
        id=uuid.uuid4(),
        customer=_customer(),
        product=_product(),
        qty=1,
        unit_price=1,
        total_price=1,
        points_earned=0,
        transaction_at=datetime(2024, 6, 1, 0, 0, 0),
    )
    stamp = transaction_to_response(transaction).transaction_at
    assert stamp.endswith("Z")
    parsed = datetime.fromisoformat(stamp[:-1] + "+00:00")
    assert parsed == datetime(2024, 6, 1, tzinfo=timezone.utc)