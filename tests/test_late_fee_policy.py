# tests/test_late_fee_policy.py
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from leaseledger.domain.late_fees import LateFeePolicy, calculate_late_fee, days_overdue, to_money, today_utc
from leaseledger.errors import ValidationError


def test_within_grace_is_free():
    due = today_utc() - timedelta(days=5)
    assert calculate_late_fee(due, 1000) == Decimal("0.00")


def test_past_grace_is_five_percent():
    due = today_utc() - timedelta(days=10)
    assert calculate_late_fee(due, 1000) == Decimal("50.00")


def test_same_inputs_same_fee():
    due = date(2024, 1, 15)
    as_of = date(2024, 2, 1)
    fees = {calculate_late_fee(due, "1234.56", as_of=as_of) for _ in range(20)}
    assert fees == {Decimal("61.73")}


def test_grace_boundary_is_inclusive():
    due = date(2024, 3, 1)
    assert calculate_late_fee(due, 1000, as_of=date(2024, 3, 6)) == Decimal("0.00")
    assert calculate_late_fee(due, 1000, as_of=date(2024, 3, 7)) == Decimal("50.00")


def test_fee_does_not_grow_with_lateness():
    due = date(2024, 1, 1)
    assert calculate_late_fee(due, 800, as_of=date(2024, 1, 10)) == calculate_late_fee(
        due, 800, as_of=date(2024, 12, 31)
    )


def test_paying_early_is_free():
    assert calculate_late_fee(date(2024, 6, 1), 1000, as_of=date(2024, 5, 20)) == Decimal("0.00")


def test_rounds_half_up_to_cents():
    # 10.10 * 0.05 = 0.505 -> 0.51
    assert calculate_late_fee(date(2024, 1, 1), "10.10", as_of=date(2024, 2, 1)) == Decimal("0.51")


def test_policy_is_configurable():
    pol = LateFeePolicy(grace_days=0, rate=Decimal("0.10"))
    assert calculate_late_fee(date(2024, 1, 1), 1000, as_of=date(2024, 1, 2), policy=pol) == Decimal("100.00")


@pytest.mark.parametrize("amount", [0, -5, "abc", True])
def test_rejects_bad_amounts(amount):
    with pytest.raises(ValidationError) as ei:
        calculate_late_fee(date(2024, 1, 1), amount, as_of=date(2024, 2, 1))
    assert ei.value.code == "InvalidAmount"


def test_days_overdue_and_money_helpers():
    assert days_overdue("2024-01-15", "2024-01-25") == 10
    assert days_overdue(date(2024, 1, 25), date(2024, 1, 15)) == -10
    assert to_money(0.1) == Decimal("0.10")
    assert to_money("2.345") == Decimal("2.35")
