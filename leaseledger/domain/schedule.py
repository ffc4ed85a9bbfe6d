# leaseledger/domain/schedule.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..errors import ValidationError


def add_months(anchor: date, months: int) -> date:
    """
    Same day-of-month as `anchor`, `months` later, clamped to month length.
    Always computed from the anchor, so Jan 31 -> Feb 29 -> Mar 31.
    """
    idx = anchor.month - 1 + int(months)
    y = anchor.year + idx // 12
    m = idx % 12 + 1
    last_day = calendar.monthrange(y, m)[1]
    return date(y, m, min(anchor.day, last_day))


def term_months(start_date: date, end_date: date) -> int:
    """
    Billing periods in [start_date, end_date): whole months plus one for a
    partial trailing period (ceiling).
    """
    if not start_date < end_date:
        raise ValidationError("InvalidDateRange", "start_date must be before end_date")

    n = (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month)
    # n may overshoot by one when end's day is before start's day
    while n > 0 and add_months(start_date, n) > end_date:
        n -= 1
    if add_months(start_date, n) < end_date:
        n += 1
    return n


@dataclass(frozen=True)
class ScheduledPayment:
    period: int
    due_date: date
    amount: Decimal


def build_payment_schedule(start_date: date, end_date: date, monthly_rent: Decimal) -> list[ScheduledPayment]:
    """
    One payment per billing period, due on start_date's day-of-month.

    2024-01-15 .. 2025-01-15 -> 12 rows, the 15th of Jan 2024 .. Dec 2024.
    """
    if monthly_rent is None or Decimal(monthly_rent) <= 0:
        raise ValidationError("InvalidAmount", "monthly_rent must be greater than zero")

    n = term_months(start_date, end_date)
    return [
        ScheduledPayment(period=i + 1, due_date=add_months(start_date, i), amount=Decimal(monthly_rent))
        for i in range(n)
    ]
