from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator, require_owner
from ..db import get_db
from ..domain.late_fees import calculate_late_fee, days_overdue, today_utc
from ..schemas import (
    LateFeeQuoteOut,
    OverdueResultRow,
    PaymentPostOut,
    PaymentPostRequest,
    PaymentStatusRequest,
)
from ..services.payments import post_payment, process_overdue_payments, set_payment_status

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/late-fee", response_model=LateFeeQuoteOut)
def late_fee_quote(
    due_date: date = Query(...),
    amount: Decimal = Query(...),
    as_of: Optional[date] = Query(default=None),
    p=Depends(get_principal),
):
    when = as_of or today_utc()
    return {
        "due_date": due_date,
        "amount": amount,
        "as_of": when,
        "days_overdue": max(0, days_overdue(due_date, when)),
        "late_fee": calculate_late_fee(due_date, amount, as_of=when),
    }


@router.post("/process-overdue", response_model=list[OverdueResultRow])
def process_overdue(db: Session = Depends(get_db), p=Depends(require_operator)):
    return process_overdue_payments(db, actor=p.email)


@router.post("/{payment_id}/post", response_model=PaymentPostOut)
def post(payment_id: str, payload: PaymentPostRequest, db: Session = Depends(get_db), p=Depends(get_principal)):
    res = post_payment(db, payment_id=payment_id, amount=payload.amount, method=payload.method, actor=p.email)
    return res.as_dict()


@router.post("/{payment_id}/status")
def change_status(
    payment_id: str,
    payload: PaymentStatusRequest,
    db: Session = Depends(get_db),
    p=Depends(require_owner),
):
    return set_payment_status(db, payment_id=payment_id, status=payload.status, notes=payload.notes, actor=p.email)
