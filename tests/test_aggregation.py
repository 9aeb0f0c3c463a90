from datetime import date
from decimal import Decimal
from itertools import permutations
from types import SimpleNamespace

import pytest

from aggregation import (
    adjust_goal_amount,
    category_breakdown,
    goal_progress,
    monthly_series,
    totals,
)
from models import Category, TransactionType


def _txn(kind: str, category: str, amount: str, day: date = date(2025, 1, 15)):
    return SimpleNamespace(
        type=TransactionType(kind),
        category=Category(category),
        amount=Decimal(amount),
        date=day,
        description=None,
    )


def test_totals_are_exact_decimal_sums() -> None:
    txns = [
        _txn("income", "salary", "0.10"),
        _txn("income", "other", "0.20"),
        _txn("expense", "food", "0.30"),
    ]

    result = totals(txns)

    assert result.income == Decimal("0.30")
    assert result.expense == Decimal("0.30")
    assert result.balance == Decimal("0.00")
    assert result.balance == result.income - result.expense


def test_totals_are_order_invariant() -> None:
    txns = [
        _txn("income", "salary", "500000.00"),
        _txn("expense", "food", "19999.99"),
        _txn("expense", "bills", "0.01"),
        _txn("income", "investment", "1234.56"),
    ]
    expected = totals(txns)

    for ordering in permutations(txns):
        assert totals(ordering) == expected


def test_totals_of_empty_ledger_are_zero() -> None:
    result = totals([])
    assert (result.income, result.expense, result.balance) == (0, 0, 0)


def test_category_breakdown_sums_expenses_and_sorts_descending() -> None:
    txns = [
        _txn("expense", "transport", "10000"),
        _txn("expense", "food", "50000"),
        _txn("income", "salary", "500000"),
        _txn("expense", "food", "20000"),
    ]

    breakdown = category_breakdown(txns)

    assert [(item.category, item.total) for item in breakdown] == [
        ("food", Decimal("70000")),
        ("transport", Decimal("10000")),
    ]
    assert breakdown[0].percent == Decimal("87.50")
    assert breakdown[1].percent == Decimal("12.50")


def test_category_breakdown_keeps_first_seen_order_on_ties() -> None:
    txns = [
        _txn("expense", "shopping", "100"),
        _txn("expense", "bills", "100"),
        _txn("expense", "food", "100"),
        _txn("expense", "health", "250"),
    ]

    names = [item.category for item in category_breakdown(txns)]

    assert names == ["health", "shopping", "bills", "food"]


def test_category_breakdown_is_truncated_to_top_eight() -> None:
    txns = [
        _txn("expense", category.value, str(100 + index))
        for index, category in enumerate(Category)
    ]

    breakdown = category_breakdown(txns)

    assert len(breakdown) == 8
    assert "food" not in [item.category for item in breakdown]
    totals_seen = [item.total for item in breakdown]
    assert totals_seen == sorted(totals_seen, reverse=True)


def test_category_breakdown_without_expenses_is_empty() -> None:
    assert category_breakdown([_txn("income", "salary", "100")]) == []


def test_monthly_series_is_dense_and_oldest_first() -> None:
    txns = [
        _txn("expense", "food", "50000", date(2025, 5, 10)),
        _txn("income", "salary", "500000", date(2025, 6, 1)),
        _txn("expense", "food", "20000", date(2025, 6, 30)),
    ]

    series = monthly_series(txns, date(2025, 6, 20))

    assert [bucket.label for bucket in series] == [
        "2025-01",
        "2025-02",
        "2025-03",
        "2025-04",
        "2025-05",
        "2025-06",
    ]
    assert series[4].expense == Decimal("50000")
    assert series[5].income == Decimal("500000")
    assert series[5].expense == Decimal("20000")
    assert series[5].net == Decimal("480000")
    assert all(b.income == 0 and b.expense == 0 for b in series[:4])


def test_monthly_series_crosses_year_boundary() -> None:
    series = monthly_series([], date(2025, 2, 28))

    assert [(b.year, b.month) for b in series] == [
        (2024, 9),
        (2024, 10),
        (2024, 11),
        (2024, 12),
        (2025, 1),
        (2025, 2),
    ]


def test_monthly_series_uses_calendar_months_not_rolling_windows() -> None:
    txns = [
        _txn("expense", "food", "10", date(2025, 3, 31)),
        _txn("expense", "food", "20", date(2025, 4, 1)),
        _txn("expense", "food", "30", date(2024, 4, 15)),
    ]

    series = monthly_series(txns, date(2025, 4, 2), month_count=2)

    assert [(b.label, b.expense) for b in series] == [
        ("2025-03", Decimal("10")),
        ("2025-04", Decimal("20")),
    ]


def test_monthly_series_rejects_non_positive_month_count() -> None:
    with pytest.raises(ValueError):
        monthly_series([], date(2025, 1, 1), month_count=0)


def test_goal_progress_half_way() -> None:
    progress = goal_progress(Decimal("1000"), Decimal("500"))
    assert progress.percent == Decimal("50")
    assert progress.remaining == Decimal("500")


def test_goal_progress_caps_percent_but_not_remaining() -> None:
    progress = goal_progress(Decimal("1000"), Decimal("1200"))
    assert progress.percent == Decimal("100")
    assert progress.remaining == Decimal("-200")


def test_goal_progress_rounds_percent_to_two_places() -> None:
    progress = goal_progress(Decimal("3"), Decimal("1"))
    assert progress.percent == Decimal("33.33")


def test_goal_progress_zero_target_has_defined_value() -> None:
    progress = goal_progress(Decimal("0"), Decimal("0"))
    assert progress.percent == Decimal("100")
    assert progress.remaining == Decimal("0")

    negative = goal_progress(Decimal("0"), Decimal("-1"))
    assert negative.percent is None


def test_adjust_goal_amount_clamps_at_zero() -> None:
    assert adjust_goal_amount(Decimal("100"), Decimal("-30")) == Decimal("70")
    assert adjust_goal_amount(Decimal("20"), Decimal("-50")) == Decimal("0")


def test_adjust_goal_amount_is_order_independent_without_clamping() -> None:
    deltas = [Decimal("100"), Decimal("-30"), Decimal("50")]
    for ordering in permutations(deltas):
        current = Decimal("0")
        running = [sum(ordering[: i + 1]) for i in range(len(ordering))]
        for delta in ordering:
            current = adjust_goal_amount(current, delta)
        if all(value >= 0 for value in running):
            assert current == Decimal("120")
        else:
            assert current == Decimal("150")
