# tests/test_payment_schedule.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from leaseledger.domain.schedule import add_months, build_payment_schedule, term_months
from leaseledger.errors import ValidationError


def test_one_year_lease_has_twelve_payments_on_the_15th():
    rows = build_payment_schedule(date(2024, 1, 15), date(2025, 1, 15), Decimal("1200.00"))
    assert len(rows) == 12
    assert all(r.due_date.day == 15 for r in rows)
    assert rows[0].due_date == date(2024, 1, 15)
    assert rows[-1].due_date == date(2024, 12, 15)
    assert {r.amount for r in rows} == {Decimal("1200.00")}
    assert [r.period for r in rows] == list(range(1, 13))


def test_day_of_month_is_clamped_but_not_drifting():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 1, 31), 2) == date(2024, 3, 31)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)

    rows = build_payment_schedule(date(2024, 1, 31), date(2024, 4, 30), Decimal("900"))
    assert [r.due_date for r in rows] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]


def test_partial_trailing_month_counts_as_a_period():
    assert term_months(date(2024, 1, 15), date(2024, 3, 20)) == 3
    assert term_months(date(2024, 1, 15), date(2024, 3, 15)) == 2
    assert term_months(date(2024, 1, 15), date(2024, 2, 10)) == 1
    assert term_months(date(2024, 1, 15), date(2024, 1, 16)) == 1


def test_rejects_inverted_or_empty_range():
    with pytest.raises(ValidationError) as ei:
        term_months(date(2024, 2, 1), date(2024, 2, 1))
    assert ei.value.code == "InvalidDateRange"

    with pytest.raises(ValidationError):
        build_payment_schedule(date(2024, 3, 1), date(2024, 2, 1), Decimal("100"))


def test_rejects_non_positive_rent():
    with pytest.raises(ValidationError) as ei:
        build_payment_schedule(date(2024, 1, 1), date(2024, 6, 1), Decimal("0"))
    assert ei.value.code == "InvalidAmount"
