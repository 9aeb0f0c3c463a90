from dataclasses import dataclass
from datetime import date
from typing import Optional

from aggregation import add_months

PERIOD_SLUGS = ("all", "this_month", "last_month", "last_6_months", "custom")


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end


def _month_end(first: date) -> date:
    return add_months(first, 1) - date.resolution


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: date,
) -> Period:
    if not period or period == "all":
        return Period("all", date.min, date.max)
    if period == "this_month":
        first = today.replace(day=1)
        return Period("this_month", first, _month_end(first))
    if period == "last_month":
        first = add_months(today, -1)
        return Period("last_month", first, _month_end(first))
    if period == "last_6_months":
        first = add_months(today, -5)
        return Period("last_6_months", first, _month_end(today.replace(day=1)))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    raise ValueError(
        f"Unknown period '{period}'; expected one of {', '.join(PERIOD_SLUGS)}"
    )
