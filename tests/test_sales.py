import logging
import uuid
from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from snackstore import constants
from snackstore.cache import MemoryCache
from snackstore.entities import Customer, Product, points_cost, points_earned
from snackstore.migrations import migrate
from snackstore.repositories import (
    CustomerRepository,
    ProductRepository,
    RedemptionRepository,
    TransactionRepository,
)
from snackstore.responses import AppError
from snackstore.sales import RedemptionUseCase, TransactionUseCase
from snackstore.schemas import (
    CreateRedemptionRequest,
    CreateTransactionRequest,
    GetTransactionRequest,
)

LOG = logging.getLogger("sales-test")


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    migrate(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def cache():
    return MemoryCache()


def _add(engine, *objects):
    with Session(engine, expire_on_commit=False) as session:
        session.add_all(objects)
        session.commit()


def _product(engine, size="Small", price=1500, stock=10):
    product = Product(
        id=uuid.uuid4(),
        name="Keripik",
        type="Chips",
        flavor="Original",
        size=size,
        price=price,
        stock_qty=stock,
        manufactured_date=date(2024, 1, 5),
    )
    _add(engine, product)
    return product


def _customer(engine, name="Budi", points=1000):
    customer = Customer(id=uuid.uuid4(), name=name, points=points)
    _add(engine, customer)
    return customer


def _stock(engine, product_id):
    with Session(engine) as session:
        return session.get(Product, product_id).stock_qty


def _points(engine, customer_id):
    with Session(engine) as session:
        return session.get(Customer, customer_id).points


def _customer_count(engine):
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(Customer))


def _transactions(engine, cache=None):
    return TransactionUseCase(
        engine,
        LOG,
        CustomerRepository(LOG),
        ProductRepository(LOG),
        TransactionRepository(LOG),
        cache,
    )


def _redemptions(engine, cache=None):
    return RedemptionUseCase(
        engine,
        LOG,
        CustomerRepository(LOG),
        ProductRepository(LOG),
        RedemptionRepository(LOG),
        cache,
    )


def _buy(product, name="Budi", qty=1, at="2024-01-05T10:30:00Z"):
    return CreateTransactionRequest(
        customer_name=name, product_id=str(product.id), qty=qty, transaction_at=at
    )


def test_create_transaction_for_new_customer(engine):
    product = _product(engine)
    response = _transactions(engine).create(_buy(product, name="Sari", qty=3))

    assert response.customer_name == "Sari"
    assert response.product_name == product.name
    assert response.qty == 3
    assert response.unit_price == product.price
    assert response.points_earned == points_earned(response.total_price)
    assert _stock(engine, product.id) == product.stock_qty - 3
    assert _customer_count(engine) == 1


def test_create_transaction_reuses_customer_ignoring_case(engine):
    product = _product(engine)
    customer = _customer(engine)
    response = _transactions(engine).create(_buy(product, name="  bUdI ", qty=2))

    assert response.customer_name == "Budi"
    assert _customer_count(engine) == 1
    assert _points(engine, customer.id) == customer.points + response.points_earned


def test_transaction_timestamp_keeps_offset(engine):
    product = _product(engine)
    response = _transactions(engine).create(_buy(product, at="2024-01-05T10:30:00+07:00"))
    assert response.transaction_at == "2024-01-05T10:30:00+07:00"


def test_transaction_timestamp_drops_fraction(engine):
    product = _product(engine)
    response = _transactions(engine).create(_buy(product, at="2024-01-05T10:30:00.123Z"))
    assert response.transaction_at == "2024-01-05T10:30:00Z"


def test_insufficient_stock_leaves_stock_untouched(engine):
    product = _product(engine, stock=2)
    with pytest.raises(AppError) as caught:
        _transactions(engine).create(_buy(product, qty=3))
    assert str(caught.value) == constants.ERR_INSUFFICIENT_STOCK
    assert _stock(engine, product.id) == 2
    assert _customer_count(engine) == 0


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"product_id": "not-a-uuid"}, constants.ERR_INVALID_ID_FORMAT),
        ({"transaction_at": "2024-01-05 10:30"}, constants.FAILED_INPUT_FORMAT),
        ({"customer_name": "   "}, constants.FAILED_VALIDATION_OCCURRED),
        ({"product_id": str(uuid.UUID(int=7))}, constants.STATUS_NOT_FOUND),
    ],
)
def test_create_transaction_rejects_bad_requests(engine, changes, message):
    product = _product(engine)
    request = _buy(product)
    for key, value in changes.items():
        setattr(request, key, value)
    with pytest.raises(AppError) as caught:
        _transactions(engine).create(request)
    assert str(caught.value) == message


def test_create_transaction_invalidates_caches(engine, cache):
    product = _product(engine)
    product_key = constants.PRODUCT_CACHE_KEY_PREFIX + "2024-01-05"
    report_key = constants.REPORT_CACHE_KEY_PREFIX + "2024-01-01:2024-01-31"
    cache.set(product_key, "[]", None)
    cache.set(report_key, "{}", None)
    cache.set("unrelated", "kept", None)

    _transactions(engine, cache).create(_buy(product))

    assert cache.get(product_key) is None
    assert cache.get(report_key) is None
    assert cache.get("unrelated") == "kept"


def test_list_transactions_in_inclusive_range(engine):
    product = _product(engine, stock=50)
    use_case = _transactions(engine)
    for moment in ("2024-01-05T10:00:00Z", "2024-01-31T23:00:00Z", "2024-02-01T10:00:00Z"):
        use_case.create(_buy(product, at=moment))

    items, paging = use_case.list(
        GetTransactionRequest(start="2024-01-01", end="2024-01-31", page=1, page_size=1)
    )
    meta = paging.to_dict()

    assert [item.transaction_at for item in items] == ["2024-01-31T23:00:00Z"]
    assert meta["total_item"] == 2
    assert meta["has_next"] is True
    assert meta["has_previous"] is False


def test_list_second_page(engine):
    product = _product(engine, stock=50)
    use_case = _transactions(engine)
    for moment in ("2024-01-05T10:00:00Z", "2024-01-06T10:00:00Z"):
        use_case.create(_buy(product, at=moment))

    items, paging = use_case.list(
        GetTransactionRequest(start="2024-01-01", end="2024-01-31", page=2, page_size=1)
    )
    assert [item.transaction_at for item in items] == ["2024-01-05T10:00:00Z"]
    assert paging.to_dict()["has_previous"] is True


@pytest.mark.parametrize(
    "start, end, message",
    [
        ("2024-02-01", "2024-01-01", constants.INVALID_REQUEST_DATA),
        ("2024/01/01", "2024-01-31", constants.FAILED_INPUT_FORMAT),
        ("2024-01-01", "2024-13-01", constants.FAILED_INPUT_FORMAT),
    ],
)
def test_list_rejects_bad_ranges(engine, start, end, message):
    with pytest.raises(AppError) as caught:
        _transactions(engine).list(GetTransactionRequest(start=start, end=end))
    assert str(caught.value) == message


def _redeem(product, name="Budi", qty=1, at="2024-01-10T08:00:00Z"):
    return CreateRedemptionRequest(
        customer_name=name, product_id=str(product.id), qty=qty, redeem_at=at
    )


def test_redeem_spends_points_and_stock(engine, cache):
    product = _product(engine, size="Medium", stock=5)
    customer = _customer(engine, points=1000)
    cache.set(constants.REPORT_CACHE_KEY_PREFIX + "x", "{}", None)

    response = _redemptions(engine, cache).create(_redeem(product, name="budi", qty=2))

    assert response.points_spent == points_cost("Medium") * 2
    assert response.customer_name == "Budi"
    assert response.size == "Medium"
    assert response.redeem_at == "2024-01-10T08:00:00Z"
    assert _points(engine, customer.id) == customer.points - response.points_spent
    assert _stock(engine, product.id) == product.stock_qty - 2
    assert cache.get(constants.REPORT_CACHE_KEY_PREFIX + "x") is None


def test_redeem_insufficient_points(engine):
    product = _product(engine, size="Medium", stock=10)
    customer = _customer(engine, points=1000)
    with pytest.raises(AppError) as caught:
        _redemptions(engine).create(_redeem(product, qty=4))
    assert str(caught.value) == constants.ERR_INSUFFICIENT_POINTS
    assert _points(engine, customer.id) == 1000


def test_redeem_insufficient_stock(engine):
    product = _product(engine, size="Medium", stock=3)
    _customer(engine, points=5000)
    with pytest.raises(AppError) as caught:
        _redemptions(engine).create(_redeem(product, qty=5))
    assert str(caught.value) == constants.ERR_INSUFFICIENT_STOCK
    assert _stock(engine, product.id) == 3


def test_redeem_unknown_customer(engine):
    product = _product(engine)
    with pytest.raises(AppError) as caught:
        _redemptions(engine).create(_redeem(product, name="Nobody"))
    assert str(caught.value) == constants.STATUS_NOT_FOUND


def test_redeem_bad_timestamp(engine):
    product = _product(engine)
    _customer(engine)
    with pytest.raises(AppError) as caught:
        _redemptions(engine).create(_redeem(product, at="yesterday"))
    assert str(caught.value) == constants.FAILED_INPUT_FORMAT