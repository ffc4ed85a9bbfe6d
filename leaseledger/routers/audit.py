from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..schemas import AuditEntryOut, AuditFeedOut
from ..services.audit_log import list_audit_entries, recent_audit_entries

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditEntryOut])
def list_audit(
    object_type: str | None = Query(default=None),
    object_id: str | None = Query(default=None),
    status: str | None = Query(default=None),
    op: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    rows = recent_audit_entries(db, object_type=object_type, object_id=object_id, status=status, op=op, limit=limit)
    return [asdict(r) for r in rows]


@router.get("/feed", response_model=AuditFeedOut)
def audit_feed(
    after_id: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    rows = list_audit_entries(db, after_id=after_id, limit=limit)
    return {
        "entries": [asdict(r) for r in rows],
        "next_after_id": rows[-1].id if rows else after_id,
    }
