# leaseledger/services/payments.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.late_fees import LateFeePolicy, calculate_late_fee, to_money
from ..errors import ConflictError, LedgerError, NotFoundError, ValidationError
from ..models import (
    Payment,
    PAYMENT_FAILED,
    PAYMENT_METHODS,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    PAYMENT_STATUSES,
)
from .procedure import ProcedureContext, run_procedure

log = logging.getLogger("leaseledger.payments")

# administrative overrides; pending -> paid only goes through post_payment
STATUS_TRANSITIONS: dict[str, set[str]] = {
    PAYMENT_PENDING: {PAYMENT_FAILED},
    PAYMENT_PAID: {PAYMENT_REFUNDED},
    PAYMENT_FAILED: set(),
    PAYMENT_REFUNDED: set(),
}


@dataclass(frozen=True)
class PostingResult:
    payment_id: str
    amount: Decimal
    method: str
    late_fee: Decimal
    status: str
    paid_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "amount": str(self.amount),
            "method": self.method,
            "late_fee": str(self.late_fee),
            "status": self.status,
            "paid_at": self.paid_at.isoformat(),
        }


def _lock_payment(ctx: ProcedureContext, payment_id: str) -> Payment:
    p = ctx.db.scalar(select(Payment).where(Payment.id == str(payment_id)).with_for_update())
    if p is None:
        raise NotFoundError("PaymentNotFound", f"payment {payment_id} not found")
    return p


def post_payment(
    db: Session,
    *,
    payment_id: str,
    amount: Any,
    method: str,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> PostingResult:
    """
    pending payment -> paid, with the late fee settled at posting time.

    The fee is computed on the posted amount against the procedure clock, so
    the same (due_date, now, amount) always produces the same fee.
    """
    with run_procedure(
        db,
        scope="payment",
        op="post_payment",
        object_type="payment",
        object_id=payment_id,
        actor=actor,
        params={"payment_id": payment_id, "amount": str(amount), "method": method},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        policy = LateFeePolicy.from_settings()
        amt = to_money(amount, places=policy.places)
        if amt <= 0:
            raise ValidationError("InvalidAmount", "amount must be greater than zero")
        if method not in PAYMENT_METHODS:
            raise ValidationError("InvalidPaymentMethod", f"method must be one of {', '.join(PAYMENT_METHODS)}")

        payment = _lock_payment(ctx, payment_id)
        if payment.status != PAYMENT_PENDING:
            raise ConflictError("PaymentAlreadyPosted", f"payment {payment.id} is {payment.status}")

        fee = calculate_late_fee(payment.due_date, amt, as_of=ctx.now.date(), policy=policy)

        res = ctx.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == PAYMENT_PENDING)
            .values(
                status=PAYMENT_PAID,
                amount=amt,
                method=method,
                late_fee=fee,
                paid_at=ctx.now,
                updated_at=ctx.now,
            )
            .execution_options(synchronize_session="fetch")
        )
        if int(res.rowcount or 0) != 1:
            raise ConflictError("PaymentAlreadyPosted", f"payment {payment.id} was posted concurrently")

        out = PostingResult(
            payment_id=payment.id,
            amount=amt,
            method=method,
            late_fee=fee,
            status=PAYMENT_PAID,
            paid_at=ctx.now,
        )
        ctx.result = out.as_dict()
        ctx.stage("payment.posted", {**ctx.result, "lease_id": payment.lease_id})

    return out


def process_overdue_payments(
    db: Session,
    *,
    now: Optional[datetime] = None,
    actor: Optional[str] = "system",
    correlation_id: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Assess the late fee on every pending payment past its grace period.

    Status stays pending. Rows that already carry a fee are skipped, so
    re-running is harmless. Each row goes through its own SAVEPOINT: a row
    that fails is reported with status "error" and the rest carry on.
    """
    with run_procedure(
        db,
        scope="payment",
        op="process_overdue_payments",
        object_type="payment",
        actor=actor,
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        policy = LateFeePolicy.from_settings()
        as_of = ctx.now.date()
        cutoff = as_of - timedelta(days=int(policy.grace_days))

        candidates = db.scalars(
            select(Payment)
            .where(
                Payment.status == PAYMENT_PENDING,
                Payment.due_date < cutoff,
                Payment.late_fee == 0,
            )
            .order_by(Payment.due_date.asc(), Payment.id.asc())
            .with_for_update()
        ).all()

        out: list[dict[str, Any]] = []
        for p in candidates:
            try:
                with db.begin_nested():
                    fee = calculate_late_fee(p.due_date, p.amount, as_of=as_of, policy=policy)
                    ctx.execute(
                        update(Payment)
                        .where(Payment.id == p.id, Payment.status == PAYMENT_PENDING, Payment.late_fee == 0)
                        .values(late_fee=fee, updated_at=ctx.now)
                        .execution_options(synchronize_session=False)
                    )
                out.append({"payment_id": p.id, "late_fee": str(fee), "status": PAYMENT_PENDING})
            except (LedgerError, SQLAlchemyError) as e:
                log.warning(
                    "overdue assessment failed",
                    extra={"payment_id": p.id, "correlation_id": ctx.correlation_id},
                )
                out.append({"payment_id": p.id, "late_fee": None, "status": "error", "error": str(e)})

        assessed = [r for r in out if r["status"] != "error"]
        ctx.result = {"assessed": len(assessed), "failed": len(out) - len(assessed)}
        if assessed:
            ctx.stage("payment.overdue_processed", {"payments": assessed})

    return out


def set_payment_status(
    db: Session,
    *,
    payment_id: str,
    status: str,
    notes: Optional[str] = None,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> dict[str, Any]:
    """Administrative pending -> failed / paid -> refunded."""
    with run_procedure(
        db,
        scope="payment",
        op="set_payment_status",
        object_type="payment",
        object_id=payment_id,
        actor=actor,
        params={"payment_id": payment_id, "status": status},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        if status not in PAYMENT_STATUSES:
            raise ValidationError("InvalidPaymentStatus", f"status must be one of {', '.join(PAYMENT_STATUSES)}")

        payment = _lock_payment(ctx, payment_id)
        current = payment.status
        if status not in STATUS_TRANSITIONS.get(current, set()):
            raise ConflictError("InvalidPaymentTransition", f"payment {payment.id} cannot go {current} -> {status}")

        values: dict[str, Any] = {"status": status, "updated_at": ctx.now}
        if notes is not None:
            values["notes"] = notes
        res = ctx.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == current)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if int(res.rowcount or 0) != 1:
            raise ConflictError("InvalidPaymentTransition", f"payment {payment.id} changed concurrently")

        ctx.result = {"payment_id": payment.id, "previous_status": current, "status": status}

    return ctx.result
