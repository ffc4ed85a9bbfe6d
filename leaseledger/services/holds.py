# leaseledger/services/holds.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Hold, Unit, UNIT_AVAILABLE, UNIT_HOLD
from .procedure import ProcedureContext, run_procedure

PRIVILEGED_ROLES = {"admin", "ops"}


@dataclass(frozen=True)
class HoldResult:
    hold_id: str
    unit_id: str
    user_id: str
    expires_at: datetime
    renewed: bool = False

    def as_dict(self) -> dict:
        return {
            "hold_id": self.hold_id,
            "unit_id": self.unit_id,
            "user_id": self.user_id,
            "expires_at": self.expires_at.isoformat(),
            "renewed": self.renewed,
        }


def lock_unit(ctx: ProcedureContext, unit_id: str) -> Unit:
    """SELECT ... FOR UPDATE on the unit row (no-op on SQLite, which serializes writers)."""
    unit = ctx.db.scalar(select(Unit).where(Unit.id == str(unit_id)).with_for_update())
    if unit is None:
        raise NotFoundError("UnitNotFound", f"unit {unit_id} not found")
    return unit


def set_unit_status(ctx: ProcedureContext, unit: Unit, *, expected: str, target: str, conflict_code: str) -> None:
    """
    Compare-and-set on units.status. Zero rows means someone else moved the
    unit between our read and our write.
    """
    res = ctx.execute(
        update(Unit)
        .where(Unit.id == unit.id, Unit.status == expected)
        .values(status=target, updated_at=ctx.now)
        .execution_options(synchronize_session="fetch")
    )
    if int(res.rowcount or 0) != 1:
        raise ConflictError(conflict_code, f"unit {unit.id} is no longer {expected}")


def current_hold(ctx: ProcedureContext, unit_id: str) -> Optional[Hold]:
    return ctx.db.scalar(select(Hold).where(Hold.unit_id == str(unit_id)).with_for_update())


def release_stale_hold(ctx: ProcedureContext, unit: Unit) -> Optional[Hold]:
    """
    Lazy expiry. Returns the hold that is still live, or None. A hold is
    live up to and including its expires_at instant.

    An expired hold row is deleted; a unit sitting in HOLD without a live hold
    goes back to AVAILABLE before the caller looks at its status.
    """
    hold = current_hold(ctx, unit.id)
    if hold is not None and hold.expires_at < ctx.now:
        ctx.execute(delete(Hold).where(Hold.id == hold.id))
        ctx.db.expire(unit, ["hold"])
        ctx.stage("hold.released", {"hold_id": hold.id, "unit_id": unit.id, "reason": "expired"})
        hold = None

    if hold is None and unit.status == UNIT_HOLD:
        set_unit_status(ctx, unit, expected=UNIT_HOLD, target=UNIT_AVAILABLE, conflict_code="AlreadyHeld")

    return hold


def _minutes(minutes: Optional[int]) -> int:
    m = settings.hold_default_minutes if minutes is None else minutes
    try:
        m = int(m)
    except (TypeError, ValueError):
        raise ValidationError("InvalidHoldDuration", f"minutes must be an integer, got {minutes!r}")
    if m <= 0 or m > int(settings.hold_max_minutes):
        raise ValidationError(
            "InvalidHoldDuration",
            f"minutes must be within 1..{int(settings.hold_max_minutes)}",
        )
    return m


def place_hold(
    db: Session,
    *,
    unit_id: str,
    requester_id: str,
    minutes: Optional[int] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> HoldResult:
    """
    Exclusive, time-boxed reservation of an AVAILABLE unit.

    - the same requester calling again renews its own live hold
    - anybody else gets AlreadyHeld until the hold expires
    - LEASED/INACTIVE units give UnitNotAvailable
    """
    with run_procedure(
        db,
        scope="hold",
        op="place_hold",
        object_type="unit",
        object_id=unit_id,
        actor=requester_id,
        params={"unit_id": unit_id, "user_id": requester_id, "minutes": minutes},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        mins = _minutes(minutes)
        if not requester_id:
            raise ValidationError("InvalidRequester", "requester_id is required")

        unit = lock_unit(ctx, unit_id)
        live = release_stale_hold(ctx, unit)
        expires_at = ctx.now + timedelta(minutes=mins)

        if live is not None:
            if live.user_id != str(requester_id):
                raise ConflictError("AlreadyHeld", f"unit {unit.id} is held until {live.expires_at.isoformat()}")

            ctx.execute(update(Hold).where(Hold.id == live.id).values(expires_at=expires_at))
            result = HoldResult(
                hold_id=live.id, unit_id=unit.id, user_id=live.user_id, expires_at=expires_at, renewed=True
            )
        else:
            if unit.status != UNIT_AVAILABLE:
                raise ConflictError("UnitNotAvailable", f"unit {unit.id} is {unit.status}")

            set_unit_status(ctx, unit, expected=UNIT_AVAILABLE, target=UNIT_HOLD, conflict_code="AlreadyHeld")

            hold = Hold(unit_id=unit.id, user_id=str(requester_id), expires_at=expires_at, created_at=ctx.now)
            db.add(hold)
            try:
                db.flush()
            except IntegrityError as e:
                # lost the race on uq_holds_unit
                raise ConflictError("AlreadyHeld", f"unit {unit.id} was held concurrently") from e
            ctx.record("INSERT INTO holds (id, unit_id, user_id, expires_at, created_at)", 1)
            result = HoldResult(hold_id=hold.id, unit_id=unit.id, user_id=hold.user_id, expires_at=expires_at)

        ctx.result = result.as_dict()
        ctx.stage("hold.placed", ctx.result)

    return result


def release_hold(
    db: Session,
    *,
    hold_id: str,
    requester_id: str,
    requester_role: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> dict:
    with run_procedure(
        db,
        scope="hold",
        op="release_hold",
        object_type="hold",
        object_id=hold_id,
        actor=requester_id,
        params={"hold_id": hold_id},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        hold = ctx.db.scalar(select(Hold).where(Hold.id == str(hold_id)).with_for_update())
        if hold is None:
            raise NotFoundError("HoldNotFound", f"hold {hold_id} not found")
        if hold.user_id != str(requester_id) and (requester_role or "") not in PRIVILEGED_ROLES:
            raise ConflictError("HoldOwnedByAnother", "only the holder can release this hold")

        unit = lock_unit(ctx, hold.unit_id)
        ctx.execute(delete(Hold).where(Hold.id == hold.id))
        if unit.status == UNIT_HOLD:
            set_unit_status(ctx, unit, expected=UNIT_HOLD, target=UNIT_AVAILABLE, conflict_code="UnitNotAvailable")

        ctx.result = {"hold_id": hold.id, "unit_id": unit.id, "unit_status": unit.status}
        ctx.stage("hold.released", {"hold_id": hold.id, "unit_id": unit.id, "reason": "released"})

    return ctx.result


def expire_stale_holds(
    db: Session,
    *,
    now: Optional[datetime] = None,
    actor: Optional[str] = "system",
    correlation_id: Optional[str] = None,
) -> dict:
    """
    Sweep: drop every expired hold and return HOLD units that have no live
    hold left to AVAILABLE. Safe to run at any cadence.
    """
    with run_procedure(
        db,
        scope="hold",
        op="expire_stale_holds",
        object_type="unit",
        actor=actor,
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        expired = ctx.execute(delete(Hold).where(Hold.expires_at < ctx.now))
        live_units = select(Hold.unit_id).where(Hold.expires_at >= ctx.now)
        freed = ctx.execute(
            update(Unit)
            .where(Unit.status == UNIT_HOLD, Unit.id.not_in(live_units))
            .values(status=UNIT_AVAILABLE, updated_at=ctx.now)
            .execution_options(synchronize_session=False)
        )
        ctx.result = {
            "holds_deleted": int(expired.rowcount or 0),
            "units_released": int(freed.rowcount or 0),
        }
        if ctx.result["holds_deleted"] or ctx.result["units_released"]:
            ctx.stage("hold.swept", ctx.result)

    return ctx.result
