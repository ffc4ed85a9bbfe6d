# tests/test_payment_posting.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import fetch, fetch_all
from leaseledger.errors import ConflictError, NotFoundError, ValidationError
from leaseledger.models import Payment, PAYMENT_FAILED, PAYMENT_PAID, PAYMENT_PENDING, PAYMENT_REFUNDED
from leaseledger.services.payments import post_payment, process_overdue_payments, set_payment_status


def _payments(lease_id: str) -> list[Payment]:
    return fetch_all(select(Payment).where(Payment.lease_id == lease_id).order_by(Payment.due_date))


def test_on_time_payment_has_no_fee(db, leased):
    first = _payments(leased.lease_id)[0]  # due 2024-01-15
    res = post_payment(db, payment_id=first.id, amount="1000.00", method="card", now=datetime(2024, 1, 18, 10, 0))

    assert res.status == PAYMENT_PAID
    assert res.late_fee == Decimal("0.00")

    row = fetch(Payment, first.id)
    assert row.status == PAYMENT_PAID
    assert row.method == "card"
    assert row.amount == Decimal("1000.00")
    assert row.paid_at == datetime(2024, 1, 18, 10, 0)


def test_late_payment_carries_fee_on_posted_amount(db, leased):
    first = _payments(leased.lease_id)[0]
    res = post_payment(db, payment_id=first.id, amount=1000, method="online", now=datetime(2024, 1, 25, 8, 0))

    assert res.late_fee == Decimal("50.00")
    assert fetch(Payment, first.id).late_fee == Decimal("50.00")


def test_posting_twice_is_rejected_and_row_unchanged(db, leased):
    first = _payments(leased.lease_id)[0]
    post_payment(db, payment_id=first.id, amount="1000.00", method="cash", now=datetime(2024, 1, 15, 9, 0))
    before = fetch(Payment, first.id)

    with pytest.raises(ConflictError) as ei:
        post_payment(db, payment_id=first.id, amount="999.00", method="card", now=datetime(2024, 3, 1, 9, 0))
    assert ei.value.code == "PaymentAlreadyPosted"

    after = fetch(Payment, first.id)
    assert (after.amount, after.method, after.late_fee, after.paid_at, after.status) == (
        before.amount,
        before.method,
        before.late_fee,
        before.paid_at,
        before.status,
    )


@pytest.mark.parametrize("amount", [0, "-10", "lots"])
def test_invalid_amount(db, leased, amount):
    first = _payments(leased.lease_id)[0]
    with pytest.raises(ValidationError) as ei:
        post_payment(db, payment_id=first.id, amount=amount, method="cash")
    assert ei.value.code == "InvalidAmount"
    assert fetch(Payment, first.id).status == PAYMENT_PENDING


def test_invalid_method(db, leased):
    first = _payments(leased.lease_id)[0]
    with pytest.raises(ValidationError) as ei:
        post_payment(db, payment_id=first.id, amount=1000, method="bitcoin")
    assert ei.value.code == "InvalidPaymentMethod"


def test_unknown_payment(db):
    with pytest.raises(NotFoundError) as ei:
        post_payment(db, payment_id="nope", amount=10, method="cash")
    assert ei.value.code == "PaymentNotFound"


def test_overdue_processing_assesses_fees_once(db, leased):
    out = process_overdue_payments(db, now=datetime(2024, 3, 1, 0, 0))

    # Jan 15 and Feb 15 are past the 5 day grace on Mar 1; nothing later is due yet
    assert [r["status"] for r in out] == [PAYMENT_PENDING, PAYMENT_PENDING]
    assert {r["late_fee"] for r in out} == {"50.00"}

    rows = _payments(leased.lease_id)
    assert [p.late_fee for p in rows[:3]] == [Decimal("50.00"), Decimal("50.00"), Decimal("0.00")]
    assert all(p.status == PAYMENT_PENDING for p in rows)

    assert process_overdue_payments(db, now=datetime(2024, 3, 1, 0, 0)) == []


def test_overdue_processing_skips_paid(db, leased):
    first = _payments(leased.lease_id)[0]
    post_payment(db, payment_id=first.id, amount=1000, method="cash", now=datetime(2024, 1, 16))

    out = process_overdue_payments(db, now=datetime(2024, 2, 25))
    assert [r["payment_id"] for r in out] == [_payments(leased.lease_id)[1].id]


def test_admin_status_transitions(db, leased):
    rows = _payments(leased.lease_id)

    out = set_payment_status(db, payment_id=rows[0].id, status=PAYMENT_FAILED, notes="card declined")
    assert out == {"payment_id": rows[0].id, "previous_status": PAYMENT_PENDING, "status": PAYMENT_FAILED}
    assert fetch(Payment, rows[0].id).notes == "card declined"

    post_payment(db, payment_id=rows[1].id, amount=1000, method="check", now=datetime(2024, 2, 15))
    set_payment_status(db, payment_id=rows[1].id, status=PAYMENT_REFUNDED)
    assert fetch(Payment, rows[1].id).status == PAYMENT_REFUNDED


@pytest.mark.parametrize("target", [PAYMENT_REFUNDED, PAYMENT_PAID, PAYMENT_PENDING])
def test_disallowed_status_transitions(db, leased, target):
    pending = _payments(leased.lease_id)[0]
    with pytest.raises(ConflictError) as ei:
        set_payment_status(db, payment_id=pending.id, status=target)
    assert ei.value.code == "InvalidPaymentTransition"


def test_unknown_status(db, leased):
    pending = _payments(leased.lease_id)[0]
    with pytest.raises(ValidationError):
        set_payment_status(db, payment_id=pending.id, status="lost")
