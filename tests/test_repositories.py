from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session

from snackstore.entities import Base, Customer, Product, Redemption, Transaction
from snackstore.repositories import (
    CustomerRepository,
    ProductRepository,
    RedemptionRepository,
    ReportRepository,
    TransactionRepository,
)

UTC = timezone.utc


@pytest.fixture
def session(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(engine)
    with Session(engine) as db:
        yield db
    engine.dispose()


def _at(day, hour=12, month=3):
    return datetime(2024, month, day, hour, tzinfo=UTC)


def _customer(session, name, points=0, created=None):
    customer = Customer(name=name, points=points, created_at=created or _at(1))
    return CustomerRepository().create(session, customer)


def _product(session, name="Chips", size="Small", flavor="Original",
             made=date(2024, 3, 1), price=5000, stock=10, created=None):
    product = Product(
        name=name, type="Keripik", flavor=flavor, size=size, price=price,
        stock_qty=stock, manufactured_date=made, created_at=created or _at(1),
    )
    return ProductRepository().create(session, product)


def _transaction(session, customer, product, qty, when):
    tx = Transaction(
        customer_id=customer.id, product_id=product.id, qty=qty,
        unit_price=product.price, total_price=product.price * qty,
        points_earned=0, transaction_at=when,
    )
    return TransactionRepository().create(session, tx)


def test_create_and_find_by_id(session):
    customer = _customer(session, "Budi", points=300)
    found = CustomerRepository().find_by_id(session, customer.id)
    assert found.name == "Budi"
    assert found.points == 300


def test_find_by_id_accepts_string(session):
    customer = _customer(session, "Budi")
    found = CustomerRepository().find_by_id(session, str(customer.id))
    assert found.id == customer.id


def test_find_by_id_missing_raises(session):
    _customer(session, "Budi")
    with pytest.raises(NoResultFound):
        CustomerRepository().find_by_id(session, "00000000-0000-0000-0000-000000000000")


def test_count_by_id(session):
    customer = _customer(session, "Budi")
    repo = CustomerRepository()
    assert repo.count_by_id(session, str(customer.id)) == 1
    assert repo.count_by_id(session, "00000000-0000-0000-0000-000000000000") == 0


def test_count_and_find_by_condition(session):
    _customer(session, "Budi", points=500)
    _customer(session, "Sari", points=100)
    repo = CustomerRepository()
    assert repo.count_by_condition(session, Customer.points >= 500) == 1
    found = repo.find_by_condition(session, Customer.name == "Sari")
    assert found.points == 100
    with pytest.raises(NoResultFound):
        repo.find_by_condition(session, Customer.name == "Nobody")


def test_update_persists_changes(session):
    customer = _customer(session, "Budi", points=10)
    customer.points = 250
    repo = CustomerRepository()
    repo.update(session, customer)
    assert repo.count_by_condition(session, Customer.points == 250) == 1


def test_update_of_detached_copy(session):
    customer = _customer(session, "Budi", points=10)
    customer_id = customer.id
    session.expunge_all()
    copy = Customer(id=customer_id, name="Budi", points=999,
                    created_at=_at(1), updated_at=_at(1))
    merged = CustomerRepository().update(session, copy)
    assert merged.id == customer_id
    assert CustomerRepository().find_by_id(session, customer_id).points == 999
    assert CustomerRepository().count_all(session) == 1


def test_delete(session):
    customer = _customer(session, "Budi")
    repo = CustomerRepository()
    repo.delete(session, customer)
    assert repo.count_by_id(session, customer.id) == 0


def test_customer_find_all_newest_first_with_paging(session):
    for day, name in ((1, "a"), (2, "b"), (3, "c")):
        _customer(session, name, created=_at(day))
    repo = CustomerRepository()
    assert [c.name for c in repo.find_all(session, 2, 0)] == ["c", "b"]
    assert [c.name for c in repo.find_all(session, 2, 2)] == ["a"]
    assert repo.count_all(session) == len("abc")


def test_find_by_manufactured_date(session):
    first = _product(session, name="Old", made=date(2024, 3, 1), created=_at(1))
    second = _product(session, name="New", made=date(2024, 3, 1), created=_at(2))
    _product(session, name="Other", made=date(2024, 3, 2))
    repo = ProductRepository()
    found = repo.find_by_manufactured_date(session, date(2024, 3, 1))
    assert [p.id for p in found] == [second.id, first.id]
    from_datetime = repo.find_by_manufactured_date(session, datetime(2024, 3, 2, tzinfo=UTC))
    assert [p.name for p in from_datetime] == ["Other"]


def test_transactions_by_date_range(session):
    buyer = _customer(session, "Budi")
    product = _product(session)
    early = _transaction(session, buyer, product, 1, _at(2))
    late = _transaction(session, buyer, product, 2, _at(5))
    _transaction(session, buyer, product, 3, _at(10, hour=0))
    _transaction(session, buyer, product, 4, _at(1, month=2))
    early_id, late_id = early.id, late.id
    session.expunge_all()

    repo = TransactionRepository()
    found = repo.find_by_date_range(session, date(2024, 3, 1), date(2024, 3, 10), 10, 0)
    assert [t.id for t in found] == [late_id, early_id]
    assert {t.customer.name for t in found} == {"Budi"}
    assert {t.product.name for t in found} == {"Chips"}
    assert repo.count_by_date_range(session, date(2024, 3, 1), date(2024, 3, 10)) == len(found)

    paged = repo.find_by_date_range(session, date(2024, 3, 1), date(2024, 3, 10), 1, 1)
    assert [t.id for t in paged] == [early_id]


def test_redemption_repository_create(session):
    buyer = _customer(session, "Budi", points=1000)
    product = _product(session)
    redemption = Redemption(customer_id=buyer.id, product_id=product.id, qty=1,
                            points_spent=200, redeem_at=_at(3))
    repo = RedemptionRepository()
    repo.create(session, redemption)
    assert repo.count_by_condition(session, Redemption.customer_id == buyer.id) == 1


def test_report_aggregates(session):
    budi = _customer(session, "Budi", created=_at(1, month=1))
    sari = _customer(session, "Sari", created=_at(1, month=1))
    chips = _product(session, name="Chips", size="Small", flavor="Pedas", price=5000)
    corn = _product(session, name="Corn", size="Large", flavor="Original", price=8000)
    inside = [
        _transaction(session, budi, chips, 3, _at(2)),
        _transaction(session, sari, chips, 2, _at(3)),
        _transaction(session, budi, corn, 4, _at(4)),
    ]
    _transaction(session, sari, corn, 9, _at(20))

    repo = ReportRepository()
    start, end = date(2024, 3, 1), date(2024, 3, 10)
    assert repo.get_total_customer(session, start, end) == len({t.customer_id for t in inside})
    assert repo.get_total_income(session, start, end) == sum(t.total_price for t in inside)
    assert repo.get_total_products_sold(session, start, end) == sum(t.qty for t in inside)

    best = repo.get_best_seller(session, start, end)
    assert best.product_name == "Chips"
    assert best.size == "Small"
    assert best.flavor == "Pedas"
    assert best.total_qty == 3 + 2


def test_report_empty_range(session):
    repo = ReportRepository()
    start, end = date(2024, 3, 1), date(2024, 3, 10)
    assert repo.get_best_seller(session, start, end) is None
    assert repo.get_total_income(session, start, end) == 0
    assert repo.get_total_products_sold(session, start, end) == 0
    assert repo.get_total_customer(session, start, end) == 0
    assert repo.has_new_customer(session, start, end) is False
    assert repo.get_last_transactions(session, start, end, 10) == []


def test_has_new_customer_true_when_joined_same_month(session):
    buyer = _customer(session, "Budi", created=_at(1))
    _transaction(session, buyer, _product(session), 1, _at(5))
    assert ReportRepository().has_new_customer(session, date(2024, 3, 1), date(2024, 3, 10)) is True


def test_has_new_customer_false_for_older_customers(session):
    buyer = _customer(session, "Budi", created=_at(10, month=1))
    _transaction(session, buyer, _product(session), 1, _at(5))
    assert ReportRepository().has_new_customer(session, date(2024, 3, 1), date(2024, 3, 10)) is False


def test_last_transactions_limited_and_ordered(session):
    buyer = _customer(session, "Budi")
    product = _product(session)
    made = [_transaction(session, buyer, product, 1, _at(day)) for day in (2, 3, 4, 5)]
    expected = [t.id for t in reversed(made)][:2]
    session.expunge_all()
    found = ReportRepository().get_last_transactions(
        session, date(2024, 3, 1), date(2024, 3, 10), 2
    )
    assert [t.id for t in found] == expected
    assert found[0].customer.name == "Budi"