from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..schemas import HoldOut, HoldRequest
from ..services.holds import place_hold, release_hold

router = APIRouter(prefix="/holds", tags=["holds"])


@router.post("", response_model=HoldOut, status_code=201)
def create_hold(payload: HoldRequest, db: Session = Depends(get_db), p=Depends(get_principal)):
    res = place_hold(db, unit_id=payload.unit_id, requester_id=p.user_id, minutes=payload.minutes)
    return res.as_dict()


@router.delete("/{hold_id}")
def delete_hold(hold_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return release_hold(db, hold_id=hold_id, requester_id=p.user_id, requester_role=p.role)
