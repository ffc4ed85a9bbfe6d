# leaseledger/services/leases.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.late_fees import to_money
from ..domain.schedule import build_payment_schedule
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    Hold,
    Lease,
    Payment,
    Tenant,
    Unit,
    LEASE_ACTIVE,
    LEASE_DRAFT,
    LEASE_TERMINATED,
    PAYMENT_PENDING,
    UNIT_AVAILABLE,
    UNIT_INACTIVE,
    UNIT_LEASED,
)
from .holds import lock_unit, release_stale_hold, set_unit_status
from .procedure import ProcedureContext, run_procedure

log = logging.getLogger("leaseledger.leases")


@dataclass(frozen=True)
class LeaseConfirmation:
    lease_id: str
    unit_id: str
    payments_created: int
    monthly_rent: Decimal
    deposit: Decimal
    first_due_date: date
    last_due_date: date


def _as_date(v: Any, field: str) -> date:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v))
    except ValueError:
        raise ValidationError("InvalidDateRange", f"{field} is not an ISO date: {v!r}")


def validate_lease_terms(start_date: Any, end_date: Any, monthly_rent: Any) -> tuple[date, date, Decimal]:
    """
    The checks the old BEFORE INSERT trigger enforced: end after start and
    a positive rent. Raised before anything is written.
    """
    s = _as_date(start_date, "start_date")
    e = _as_date(end_date, "end_date")
    if not s < e:
        raise ValidationError("InvalidDateRange", "start_date must be before end_date")

    rent = to_money(monthly_rent)
    if rent <= 0:
        raise ValidationError("InvalidAmount", "monthly_rent must be greater than zero")
    return s, e, rent


def _must_get_tenant(ctx: ProcedureContext, tenant_id: str) -> Tenant:
    t = ctx.db.scalar(select(Tenant).where(Tenant.id == str(tenant_id)))
    if t is None:
        raise NotFoundError("TenantNotFound", f"tenant {tenant_id} not found")
    return t


def _active_lease_for_unit(ctx: ProcedureContext, unit_id: str) -> Optional[Lease]:
    return ctx.db.scalar(
        select(Lease).where(Lease.unit_id == str(unit_id), Lease.status == LEASE_ACTIVE).with_for_update()
    )


def confirm_lease(
    db: Session,
    *,
    unit_id: str,
    tenant_id: str,
    start_date: Any,
    end_date: Any,
    deposit: Any = None,
    requester_id: Optional[str] = None,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> LeaseConfirmation:
    """
    AVAILABLE (or held by `requester_id`) unit -> active lease + full
    monthly payment schedule, all in one transaction.

    Re-confirming against a unit that is already LEASED is a Conflict, so a
    retried call after a successful commit never produces a second lease.
    """
    with run_procedure(
        db,
        scope="lease",
        op="confirm_lease",
        object_type="unit",
        object_id=unit_id,
        actor=actor or requester_id,
        params={
            "unit_id": unit_id,
            "tenant_id": tenant_id,
            "start_date": str(start_date),
            "end_date": str(end_date),
            "deposit": None if deposit is None else str(deposit),
            "requester_id": requester_id,
        },
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        s = _as_date(start_date, "start_date")
        e = _as_date(end_date, "end_date")
        if not s < e:
            raise ValidationError("InvalidDateRange", "start_date must be before end_date")

        unit = lock_unit(ctx, unit_id)
        _must_get_tenant(ctx, tenant_id)

        live = release_stale_hold(ctx, unit)
        if unit.status in (UNIT_LEASED, UNIT_INACTIVE):
            raise ConflictError("UnitUnavailable", f"unit {unit.id} is {unit.status}")
        if live is not None and (requester_id is None or live.user_id != str(requester_id)):
            raise ConflictError("UnitUnavailable", f"unit {unit.id} is held by another party")

        existing = _active_lease_for_unit(ctx, unit.id)
        if existing is not None:
            raise ConflictError("DuplicateActiveLease", f"unit {unit.id} already has active lease {existing.id}")

        _, _, rent = validate_lease_terms(s, e, unit.rent_amount)
        dep = rent if deposit is None else to_money(deposit)
        if dep < 0:
            raise ValidationError("InvalidAmount", "deposit cannot be negative")

        schedule = build_payment_schedule(s, e, rent)

        lease = Lease(
            unit_id=unit.id,
            tenant_id=str(tenant_id),
            start_date=s,
            end_date=e,
            monthly_rent=rent,
            deposit=dep,
            status=LEASE_ACTIVE,
            created_at=ctx.now,
            updated_at=ctx.now,
        )
        db.add(lease)
        try:
            db.flush()
        except IntegrityError as exc:
            # uq_leases_one_active_per_unit: another confirmation won
            raise ConflictError("UnitUnavailable", f"unit {unit.id} was leased concurrently") from exc
        ctx.record("INSERT INTO leases (id, unit_id, tenant_id, start_date, end_date, monthly_rent, deposit, status)", 1)

        set_unit_status(ctx, unit, expected=unit.status, target=UNIT_LEASED, conflict_code="UnitUnavailable")
        ctx.execute(delete(Hold).where(Hold.unit_id == unit.id))

        db.add_all(
            [
                Payment(
                    lease_id=lease.id,
                    amount=p.amount,
                    due_date=p.due_date,
                    status=PAYMENT_PENDING,
                    late_fee=Decimal("0.00"),
                    created_at=ctx.now,
                    updated_at=ctx.now,
                )
                for p in schedule
            ]
        )
        db.flush()
        ctx.record("INSERT INTO payments (id, lease_id, amount, due_date, status, late_fee)", len(schedule))

        out = LeaseConfirmation(
            lease_id=lease.id,
            unit_id=unit.id,
            payments_created=len(schedule),
            monthly_rent=rent,
            deposit=dep,
            first_due_date=schedule[0].due_date,
            last_due_date=schedule[-1].due_date,
        )
        ctx.object_type, ctx.object_id = "lease", lease.id
        ctx.result = {"lease_id": lease.id, "unit_id": unit.id, "payments_created": len(schedule)}
        ctx.stage("lease.confirmed", {**ctx.result, "tenant_id": str(tenant_id)})

    return out


def terminate_lease(
    db: Session,
    *,
    lease_id: str,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> dict:
    """
    active lease -> terminated, and its unit back to AVAILABLE in the same
    transaction. INACTIVE units keep their administrative status. Pending
    payments are left as they are.
    """
    with run_procedure(
        db,
        scope="lease",
        op="terminate_lease",
        object_type="lease",
        object_id=lease_id,
        actor=actor,
        params={"lease_id": lease_id},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        lease = db.scalar(select(Lease).where(Lease.id == str(lease_id)).with_for_update())
        if lease is None:
            raise NotFoundError("LeaseNotFound", f"lease {lease_id} not found")
        if lease.status != LEASE_ACTIVE:
            raise ConflictError("LeaseNotActive", f"lease {lease.id} is {lease.status}")

        unit = lock_unit(ctx, lease.unit_id)
        ctx.execute(
            update(Lease)
            .where(Lease.id == lease.id, Lease.status == LEASE_ACTIVE)
            .values(status=LEASE_TERMINATED, updated_at=ctx.now)
            .execution_options(synchronize_session="fetch")
        )
        if unit.status != UNIT_INACTIVE and unit.status != UNIT_AVAILABLE:
            set_unit_status(ctx, unit, expected=unit.status, target=UNIT_AVAILABLE, conflict_code="UnitUnavailable")

        ctx.result = {"lease_id": lease.id, "unit_id": unit.id, "status": LEASE_TERMINATED, "unit_status": unit.status}
        ctx.stage("lease.terminated", ctx.result)

    return ctx.result


def create_draft_lease(
    db: Session,
    *,
    unit_id: str,
    tenant_id: str,
    start_date: Any,
    end_date: Any,
    deposit: Any = None,
    terms: Optional[str] = None,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> Lease:
    """Saved for later: no unit status change, no payment schedule."""
    with run_procedure(
        db,
        scope="lease",
        op="create_draft_lease",
        object_type="unit",
        object_id=unit_id,
        actor=actor,
        params={"unit_id": unit_id, "tenant_id": tenant_id, "start_date": str(start_date), "end_date": str(end_date)},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        unit = db.scalar(select(Unit).where(Unit.id == str(unit_id)))
        if unit is None:
            raise NotFoundError("UnitNotFound", f"unit {unit_id} not found")
        _must_get_tenant(ctx, tenant_id)

        s, e, rent = validate_lease_terms(start_date, end_date, unit.rent_amount)
        dep = rent if deposit is None else to_money(deposit)
        if dep < 0:
            raise ValidationError("InvalidAmount", "deposit cannot be negative")

        lease = Lease(
            unit_id=unit.id,
            tenant_id=str(tenant_id),
            start_date=s,
            end_date=e,
            monthly_rent=rent,
            deposit=dep,
            status=LEASE_DRAFT,
            terms=terms,
            created_at=ctx.now,
            updated_at=ctx.now,
        )
        db.add(lease)
        db.flush()
        ctx.record("INSERT INTO leases (id, unit_id, tenant_id, start_date, end_date, monthly_rent, deposit, status)", 1)
        ctx.object_type, ctx.object_id = "lease", lease.id
        ctx.result = {"lease_id": lease.id, "status": LEASE_DRAFT}

    return lease
