"""Derived views over a user's ledger.

Every function here is pure: it takes already-fetched transactions or goal
amounts and returns plain dataclasses. Money is ``Decimal`` throughout.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol

from models import Category, TransactionType

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_PLACES = Decimal("0.01")

# Chart slots for the expense donut; anything past this is not shown.
CATEGORY_BREAKDOWN_LIMIT = 8


class LedgerEntry(Protocol):
    type: TransactionType
    category: Category
    date: date

    @property
    def amount(self) -> Decimal: ...


@dataclass(frozen=True)
class Totals:
    income: Decimal
    expense: Decimal
    balance: Decimal


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: Decimal
    percent: Decimal


@dataclass(frozen=True)
class MonthBucket:
    year: int
    month: int
    label: str
    income: Decimal
    expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


@dataclass(frozen=True)
class GoalProgress:
    percent: Optional[Decimal]
    remaining: Decimal


def _category_key(value: object) -> str:
    return value.value if isinstance(value, Category) else str(value)


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return (part / whole * HUNDRED).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def totals(transactions: Iterable[LedgerEntry]) -> Totals:
    income = ZERO
    expense = ZERO
    for txn in transactions:
        if txn.type == TransactionType.income:
            income += txn.amount
        elif txn.type == TransactionType.expense:
            expense += txn.amount
    return Totals(income=income, expense=expense, balance=income - expense)


def category_breakdown(
    transactions: Iterable[LedgerEntry], limit: int = CATEGORY_BREAKDOWN_LIMIT
) -> list[CategoryTotal]:
    """Expense totals per category, largest first, cut to ``limit`` entries.

    Ties keep the order in which the categories first appear in the input.
    Percentages are shares of the whole expense, including categories that
    were cut off.
    """
    sums: dict[str, Decimal] = {}
    for txn in transactions:
        if txn.type != TransactionType.expense:
            continue
        key = _category_key(txn.category)
        sums[key] = sums.get(key, ZERO) + txn.amount

    grand_total = sum(sums.values(), ZERO)
    ranked = sorted(sums.items(), key=lambda item: item[1], reverse=True)
    out: list[CategoryTotal] = []
    for name, total in ranked[:limit]:
        percent = _percent(total, grand_total) if grand_total else ZERO
        out.append(CategoryTotal(category=name, total=total, percent=percent))
    return out


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def monthly_series(
    transactions: Iterable[LedgerEntry], reference_date: date, month_count: int = 6
) -> list[MonthBucket]:
    """Dense calendar-month income/expense buckets ending at ``reference_date``.

    Exactly ``month_count`` buckets are returned, oldest first; months
    without transactions are present with zero values.
    """
    if month_count < 1:
        raise ValueError("month_count must be at least 1")

    last_month = reference_date.replace(day=1)
    months = [
        add_months(last_month, -offset) for offset in range(month_count - 1, -1, -1)
    ]

    income: dict[tuple[int, int], Decimal] = {}
    expense: dict[tuple[int, int], Decimal] = {}
    wanted = {(m.year, m.month) for m in months}
    for txn in transactions:
        key = (txn.date.year, txn.date.month)
        if key not in wanted:
            continue
        if txn.type == TransactionType.income:
            income[key] = income.get(key, ZERO) + txn.amount
        elif txn.type == TransactionType.expense:
            expense[key] = expense.get(key, ZERO) + txn.amount

    out: list[MonthBucket] = []
    for month in months:
        key = (month.year, month.month)
        out.append(
            MonthBucket(
                year=month.year,
                month=month.month,
                label=f"{month.year:04d}-{month.month:02d}",
                income=income.get(key, ZERO),
                expense=expense.get(key, ZERO),
            )
        )
    return out


def goal_progress(target_amount: Decimal, current_amount: Decimal) -> GoalProgress:
    """Display progress of a savings goal.

    ``percent`` is capped at 100 while ``remaining`` is not clamped, so an
    over-funded goal reports a negative remainder. A non-positive target
    counts as reached (100) when the current amount is non-negative and
    yields ``percent=None`` otherwise.
    """
    remaining = target_amount - current_amount
    if target_amount <= ZERO:
        percent = HUNDRED if current_amount >= ZERO else None
        return GoalProgress(percent=percent, remaining=remaining)
    percent = min(HUNDRED, _percent(current_amount, target_amount))
    return GoalProgress(percent=percent, remaining=remaining)


def adjust_goal_amount(current_amount: Decimal, delta: Decimal) -> Decimal:
    return max(ZERO, current_amount + delta)
