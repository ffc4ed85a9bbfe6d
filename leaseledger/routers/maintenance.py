from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import MaintenanceRequest
from ..schemas import MaintenanceCreate, MaintenanceOut, MaintenanceStatusUpdate
from ..services.maintenance import create_request, update_status
from ..services.ownership import must_get_maintenance, must_get_unit

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("", response_model=MaintenanceOut, status_code=201)
def create(payload: MaintenanceCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    return create_request(db, **payload.model_dump(), actor=p.email)


@router.get("", response_model=list[MaintenanceOut])
def list_requests(
    unit_id: str | None = Query(default=None),
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    # 1 = critical
    q = select(MaintenanceRequest).order_by(MaintenanceRequest.priority, desc(MaintenanceRequest.created_at))
    if unit_id:
        must_get_unit(db, unit_id=unit_id)
        q = q.where(MaintenanceRequest.unit_id == unit_id)
    if status:
        q = q.where(MaintenanceRequest.status == status)
    return list(db.scalars(q.limit(limit)).all())


@router.get("/{request_id}", response_model=MaintenanceOut)
def get_request(request_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return must_get_maintenance(db, request_id=request_id)


@router.post("/{request_id}/status", response_model=MaintenanceOut)
def change_status(
    request_id: str,
    payload: MaintenanceStatusUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return update_status(db, request_id=request_id, **payload.model_dump(), actor=p.email)
