# leaseledger/domain/late_fees.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

from ..config import settings
from ..errors import ValidationError


@dataclass(frozen=True)
class LateFeePolicy:
    grace_days: int = 5
    rate: Decimal = Decimal("0.05")
    places: int = 2

    @classmethod
    def from_settings(cls) -> "LateFeePolicy":
        return cls(
            grace_days=int(settings.late_fee_grace_days),
            rate=to_money(settings.late_fee_rate, places=6),
            places=int(settings.currency_places),
        )

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-int(self.places))


def to_money(v: Any, *, places: int = 2) -> Decimal:
    """
    Decimal from int/float/str/Decimal, rounded half-up.
    Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(v, bool):
        raise ValidationError("InvalidAmount", "amount must be a number")
    try:
        d = v if isinstance(v, Decimal) else Decimal(str(v))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("InvalidAmount", f"not a number: {v!r}")
    if not d.is_finite():
        raise ValidationError("InvalidAmount", f"not a finite number: {v!r}")
    return d.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def _as_date(v: Any) -> date:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v))
    except ValueError:
        raise ValidationError("InvalidDate", f"not an ISO date: {v!r}")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def days_overdue(due_date: Any, as_of: Any) -> int:
    return (_as_date(as_of) - _as_date(due_date)).days


def calculate_late_fee(
    due_date: Any,
    amount: Any,
    *,
    as_of: Optional[Any] = None,
    policy: Optional[LateFeePolicy] = None,
) -> Decimal:
    """
    Late fee owed on `amount` for a payment due on `due_date`, settled on `as_of`.

    Zero while as_of <= due_date + grace_days; after that a flat
    amount * rate, rounded half-up to currency precision. The fee does not
    grow with further lateness.

    Pure: same (due_date, as_of, amount, policy) always gives the same fee.
    `as_of` defaults to today's UTC date.
    """
    pol = policy or LateFeePolicy.from_settings()
    amt = to_money(amount, places=pol.places)
    if amt <= 0:
        raise ValidationError("InvalidAmount", "amount must be greater than zero")

    when = _as_date(as_of) if as_of is not None else today_utc()
    if days_overdue(due_date, when) <= int(pol.grace_days):
        return Decimal(0).quantize(pol.quantum)

    return (amt * Decimal(pol.rate)).quantize(pol.quantum, rounding=ROUND_HALF_UP)
