from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..schemas import LeaseConfirmOut, LeaseConfirmRequest, LeaseDraftRequest, LeaseOut, LeaseTerminateOut
from ..services.leases import confirm_lease, create_draft_lease, terminate_lease
from ..services.ownership import must_get_lease

router = APIRouter(prefix="/leases", tags=["leases"])


@router.post("/confirm", response_model=LeaseConfirmOut, status_code=201)
def confirm(payload: LeaseConfirmRequest, db: Session = Depends(get_db), p=Depends(get_principal)):
    res = confirm_lease(
        db,
        unit_id=payload.unit_id,
        tenant_id=payload.tenant_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        deposit=payload.deposit,
        requester_id=p.user_id,
        actor=p.email,
    )
    return asdict(res)


@router.post("/drafts", response_model=LeaseOut, status_code=201)
def create_draft(payload: LeaseDraftRequest, db: Session = Depends(get_db), p=Depends(get_principal)):
    return create_draft_lease(
        db,
        unit_id=payload.unit_id,
        tenant_id=payload.tenant_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        deposit=payload.deposit,
        terms=payload.terms,
        actor=p.email,
    )


@router.post("/{lease_id}/terminate", response_model=LeaseTerminateOut)
def terminate(lease_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return terminate_lease(db, lease_id=lease_id, actor=p.email)


@router.get("/{lease_id}", response_model=LeaseOut)
def get_lease(lease_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return must_get_lease(db, lease_id=lease_id)
