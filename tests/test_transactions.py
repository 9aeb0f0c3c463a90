from datetime import date
from decimal import Decimal

import pytest

from models import Category, TransactionType
from periods import Period, resolve_period
from schemas import TransactionIn, TransactionUpdate
from services import (
    MetricsService,
    NotFoundError,
    TransactionFilters,
    TransactionService,
    local_today,
)


def _create(service, kind, category, amount, day, description=None):
    return service.create(
        TransactionIn(
            type=TransactionType(kind),
            category=Category(category),
            amount=Decimal(amount),
            description=description,
            date=day,
        )
    )


def test_created_transaction_round_trips_exact_amount(session, make_user) -> None:
    user = make_user()
    service = TransactionService(session, user.id)
    txn = _create(
        service, "expense", "shopping", "19999.99", date(2025, 3, 2), "Sepatu"
    )

    session.expunge_all()
    fetched = service.get(txn.id)

    assert fetched.amount == Decimal("19999.99")
    assert str(fetched.amount) == "19999.99"
    assert fetched.amount_cents == 1_999_999
    assert fetched.type == TransactionType.expense
    assert fetched.category == Category.shopping
    assert fetched.description == "Sepatu"
    assert fetched.date == date(2025, 3, 2)


def test_missing_date_defaults_to_today(session, make_user) -> None:
    user = make_user()
    txn = TransactionService(session, user.id).create(
        TransactionIn(
            type=TransactionType.income,
            category=Category.salary,
            amount=Decimal("100"),
        )
    )
    assert txn.date == local_today()


def test_partial_update_keeps_untouched_fields(session, make_user) -> None:
    user = make_user()
    service = TransactionService(session, user.id)
    txn = _create(service, "expense", "food", "25000", date(2025, 1, 5), "Makan siang")

    updated = service.update(
        txn.id, TransactionUpdate(amount=Decimal("27500.50"), description=None)
    )

    assert updated.amount == Decimal("27500.50")
    assert updated.description is None
    assert updated.category == Category.food
    assert updated.date == date(2025, 1, 5)


def test_other_users_transaction_is_not_found(session, make_user) -> None:
    owner = make_user()
    intruder = make_user("eve", "eve@dompet.id")
    txn = _create(
        TransactionService(session, owner.id), "expense", "bills", "50", date.today()
    )
    foreign = TransactionService(session, intruder.id)

    with pytest.raises(NotFoundError):
        foreign.get(txn.id)
    with pytest.raises(NotFoundError):
        foreign.update(txn.id, TransactionUpdate(amount=Decimal("1")))
    with pytest.raises(NotFoundError):
        foreign.delete(txn.id)

    assert TransactionService(session, owner.id).get(txn.id).amount == Decimal("50.00")
    assert foreign.list() == []


def test_delete_removes_row(session, make_user) -> None:
    user = make_user()
    service = TransactionService(session, user.id)
    txn = _create(service, "expense", "other", "10", date(2025, 2, 1))

    service.delete(txn.id)

    with pytest.raises(NotFoundError):
        service.get(txn.id)


def test_list_filters_by_period_category_and_type(session, make_user) -> None:
    user = make_user()
    service = TransactionService(session, user.id)
    _create(service, "expense", "food", "10", date(2025, 1, 31))
    _create(service, "expense", "food", "20", date(2025, 2, 1))
    _create(service, "expense", "transport", "30", date(2025, 2, 14))
    _create(service, "income", "salary", "40", date(2025, 2, 28))

    february = Period("custom", date(2025, 2, 1), date(2025, 2, 28))

    in_feb = service.list(february)
    assert [t.amount for t in in_feb] == [
        Decimal("40.00"),
        Decimal("30.00"),
        Decimal("20.00"),
    ]

    food = service.list(february, TransactionFilters(category=Category.food))
    assert [t.amount for t in food] == [Decimal("20.00")]

    income = service.list(None, TransactionFilters(type=TransactionType.income))
    assert [t.category for t in income] == [Category.salary]


def test_metrics_service_derives_views_from_one_ledger(session, make_user) -> None:
    user = make_user()
    service = TransactionService(session, user.id)
    _create(service, "expense", "food", "50000", date(2025, 5, 10))
    _create(service, "expense", "food", "20000", date(2025, 6, 3))
    _create(service, "expense", "transport", "10000", date(2025, 5, 21))
    _create(service, "income", "salary", "500000", date(2025, 6, 1))

    metrics = MetricsService(session, user.id)
    summary = metrics.summary()
    breakdown = metrics.category_breakdown()
    series = metrics.monthly_series(date(2025, 6, 15))

    assert summary.income == Decimal("500000")
    assert summary.expense == Decimal("80000")
    assert summary.balance == Decimal("420000")
    assert [(b.category, b.total) for b in breakdown] == [
        ("food", Decimal("70000")),
        ("transport", Decimal("10000")),
    ]
    touched = [b.label for b in series if b.income or b.expense]
    assert touched == ["2025-05", "2025-06"]
    assert len(series) == 6


def test_resolve_period_variants() -> None:
    today = date(2025, 1, 15)

    assert resolve_period(None, None, None, today=today).slug == "all"

    this_month = resolve_period("this_month", None, None, today=today)
    assert (this_month.start, this_month.end) == (date(2025, 1, 1), date(2025, 1, 31))

    last_month = resolve_period("last_month", None, None, today=today)
    assert (last_month.start, last_month.end) == (
        date(2024, 12, 1),
        date(2024, 12, 31),
    )

    six = resolve_period("last_6_months", None, None, today=today)
    assert (six.start, six.end) == (date(2024, 8, 1), date(2025, 1, 31))
    assert six.contains(date(2024, 8, 1))
    assert not six.contains(date(2024, 7, 31))

    custom = resolve_period("custom", "2025-01-01", "2025-01-10", today=today)
    assert (custom.start, custom.end) == (date(2025, 1, 1), date(2025, 1, 10))


@pytest.mark.parametrize(
    "slug,start,end",
    [
        ("custom", None, "2025-01-10"),
        ("custom", "2025-02-01", "2025-01-10"),
        ("fortnight", None, None),
    ],
)
def test_resolve_period_rejects_bad_input(slug, start, end) -> None:
    with pytest.raises(ValueError):
        resolve_period(slug, start, end, today=date(2025, 1, 15))
