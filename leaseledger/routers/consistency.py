from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..schemas import IntegrityCheckOut, MismatchOut, RepairOut
from ..services.consistency import lease_unit_status_mismatches, repair_unit_statuses, run_integrity_check

router = APIRouter(prefix="/consistency", tags=["consistency"])


@router.get("/mismatches", response_model=list[MismatchOut])
def mismatches(db: Session = Depends(get_db), p=Depends(get_principal)):
    return [m.as_dict() for m in lease_unit_status_mismatches(db)]


@router.post("/repair", response_model=RepairOut)
def repair(db: Session = Depends(get_db), p=Depends(require_operator)):
    return repair_unit_statuses(db, actor=p.email)


@router.post("/check", response_model=IntegrityCheckOut)
def check(
    auto_fix: bool = Query(default=False),
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return run_integrity_check(db, auto_fix=auto_fix, actor=p.email)
