from __future__ import annotations

from datetime import date, timedelta
import calendar

PAY_LATER_TOMORROW = "tomorrow"
PAY_LATER_ONE_MONTH = "1_month"


def add_months(start: date, months: int) -> date:
    # Calendar months, clamped to the end of short months (Jan 31 + 1 -> Feb 28/29).
    idx = start.month - 1 + months
    year = start.year + idx // 12
    month = idx % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last))


def resolve_pay_later_date(raw: str | None, today: date | None = None) -> str | None:
    """
    Turn the pay-later picker value into an ISO date.

    "tomorrow" and "1_month" are relative to `today`; anything that already looks like a
    literal date ("20..") is passed through untouched. Everything else resolves to None.
    """
    today = today or date.today()
    value = (raw or "").strip()
    if value == PAY_LATER_TOMORROW:
        return (today + timedelta(days=1)).isoformat()
    if value == PAY_LATER_ONE_MONTH:
        return add_months(today, 1).isoformat()
    if value.startswith("20"):
        return raw
    return None


def emi_due_dates(periods: int, today: date | None = None) -> list[date]:
    # First installment one period out; each offset is taken from `today`, not chained.
    today = today or date.today()
    return [add_months(today, n) for n in range(1, int(periods) + 1)]
