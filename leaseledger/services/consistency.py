# leaseledger/services/consistency.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import and_, exists, literal, null, select, text, union_all, update
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session

from ..domain.unit_status import (
    ISSUE_LEASE_ACTIVE_UNIT_NOT_LEASED,
    ISSUE_UNIT_LEASED_NO_ACTIVE_LEASE,
    derived_unit_status,
)
from ..models import Hold, Lease, Unit, LEASE_ACTIVE, UNIT_LEASED, utcnow
from .procedure import run_procedure

log = logging.getLogger("leaseledger.consistency")


@dataclass(frozen=True)
class MismatchRow:
    lease_id: Optional[str]
    unit_id: str
    unit_name: str
    lease_status: Optional[str]
    unit_status: str
    issue_type: str
    start_date: Optional[date]
    end_date: Optional[date]

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["start_date"] = self.start_date.isoformat() if self.start_date else None
        d["end_date"] = self.end_date.isoformat() if self.end_date else None
        return d


def mismatch_query():
    """
    SELECT behind lease_unit_status_mismatches.

    Same shape as the SQL view the migration installs, so callers get the
    same rows whether they read the view or call this.
    """
    active_lease_for_unit = exists().where(Lease.unit_id == Unit.id, Lease.status == LEASE_ACTIVE)

    lease_side = (
        select(
            Lease.id.label("lease_id"),
            Unit.id.label("unit_id"),
            Unit.name.label("unit_name"),
            Lease.status.label("lease_status"),
            Unit.status.label("unit_status"),
            literal(ISSUE_LEASE_ACTIVE_UNIT_NOT_LEASED).label("issue_type"),
            Lease.start_date.label("start_date"),
            Lease.end_date.label("end_date"),
        )
        .join(Unit, Unit.id == Lease.unit_id)
        .where(Lease.status == LEASE_ACTIVE, Unit.status != UNIT_LEASED)
    )
    unit_side = select(
        null().label("lease_id"),
        Unit.id.label("unit_id"),
        Unit.name.label("unit_name"),
        null().label("lease_status"),
        Unit.status.label("unit_status"),
        literal(ISSUE_UNIT_LEASED_NO_ACTIVE_LEASE).label("issue_type"),
        null().label("start_date"),
        null().label("end_date"),
    ).where(Unit.status == UNIT_LEASED, ~active_lease_for_unit)

    return union_all(lease_side, unit_side)


MISMATCH_VIEW_NAME = "lease_unit_status_mismatches"


def create_mismatch_view(conn: Connection) -> None:
    """Install the view for direct SQL readers (reporting, psql)."""
    body = mismatch_query().compile(dialect=conn.dialect, compile_kwargs={"literal_binds": True})
    if conn.dialect.name == "postgresql":
        conn.execute(text(f"CREATE OR REPLACE VIEW {MISMATCH_VIEW_NAME} AS {body}"))
    else:
        conn.execute(text(f"CREATE VIEW IF NOT EXISTS {MISMATCH_VIEW_NAME} AS {body}"))


def _date_or_none(v: Any) -> Optional[date]:
    if v is None or isinstance(v, date):
        return v
    # null() columns in a UNION come back untyped on SQLite
    return date.fromisoformat(str(v))


def lease_unit_status_mismatches(db: Session) -> list[MismatchRow]:
    rows = db.execute(mismatch_query()).mappings().all()
    out = [
        MismatchRow(
            lease_id=r["lease_id"],
            unit_id=r["unit_id"],
            unit_name=r["unit_name"],
            lease_status=r["lease_status"],
            unit_status=r["unit_status"],
            issue_type=r["issue_type"],
            start_date=_date_or_none(r["start_date"]),
            end_date=_date_or_none(r["end_date"]),
        )
        for r in rows
    ]
    return sorted(out, key=lambda m: (m.unit_name, m.unit_id, m.issue_type))


def repair_unit_statuses(
    db: Session,
    *,
    actor: Optional[str] = "system",
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Full re-derivation of units.status from current lease/hold membership.

    Not a patch over the mismatch rows: every unit is recomputed, which is
    what makes it idempotent and safe to run next to confirmations. Each
    write is a compare-and-set on the status we read, so a unit that moved
    under us is left for the next pass.
    """
    with run_procedure(
        db,
        scope="consistency",
        op="repair_unit_statuses",
        object_type="unit",
        actor=actor,
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        has_active = exists().where(Lease.unit_id == Unit.id, Lease.status == LEASE_ACTIVE)
        has_live_hold = exists().where(Hold.unit_id == Unit.id, Hold.expires_at >= ctx.now)

        rows = db.execute(
            select(Unit.id, Unit.status, has_active.label("has_active"), has_live_hold.label("has_live_hold"))
            .order_by(Unit.id)
            .with_for_update(of=Unit)
        ).all()

        changed: list[dict[str, str]] = []
        for unit_id, current, active, live in rows:
            target = derived_unit_status(current, has_active_lease=bool(active), has_live_hold=bool(live))
            if target is None or target == current:
                continue
            res = ctx.execute(
                update(Unit)
                .where(and_(Unit.id == unit_id, Unit.status == current))
                .values(status=target, updated_at=ctx.now)
                .execution_options(synchronize_session=False)
            )
            if int(res.rowcount or 0) == 1:
                changed.append({"unit_id": unit_id, "from": current, "to": target})

        ctx.result = {"units_scanned": len(rows), "units_updated": len(changed)}
        if changed:
            ctx.stage("units.repaired", {"units": changed})
            log.info("repaired unit statuses", extra={"op": "repair_unit_statuses", "correlation_id": ctx.correlation_id})

    return {**ctx.result, "changes": changed}


def run_integrity_check(db: Session, *, auto_fix: bool = False, actor: Optional[str] = "system") -> dict[str, Any]:
    """
    Report drift between leases and units; with auto_fix, repair it.

    `mismatches` are the rows found before any fix was applied.
    """
    found = lease_unit_status_mismatches(db)
    fixed = 0
    if auto_fix and found:
        fixed = int(repair_unit_statuses(db, actor=actor)["units_updated"])

    return {
        "issues_found": len(found),
        "auto_fixed": fixed,
        "mismatches": [m.as_dict() for m in found],
        "timestamp": utcnow().isoformat(),
    }
