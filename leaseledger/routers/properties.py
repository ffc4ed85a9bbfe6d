# leaseledger/routers/properties.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..errors import ValidationError
from ..models import Property, Unit, PROPERTY_STATUSES, PROPERTY_TYPES, UNIT_AVAILABLE, UNIT_INACTIVE
from ..schemas import PropertyCreate, PropertyOut, UnitCreate, UnitOut
from ..services.audit_log import log_operation
from ..services.ownership import must_get_property

router = APIRouter(prefix="/properties", tags=["properties"])


@router.post("", response_model=PropertyOut, status_code=201)
def create_property(payload: PropertyCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    if payload.type not in PROPERTY_TYPES:
        raise ValidationError("InvalidPropertyType", f"type must be one of {', '.join(PROPERTY_TYPES)}")
    if payload.status not in PROPERTY_STATUSES:
        raise ValidationError("InvalidPropertyStatus", f"status must be one of {', '.join(PROPERTY_STATUSES)}")

    row = Property(**payload.model_dump(), owner_id=p.user_id)
    db.add(row)
    db.flush()

    log_operation(
        db,
        scope="property",
        op="create_property",
        object_type="property",
        object_id=row.id,
        params=payload.model_dump(),
        rows_affected=1,
        actor=p.email,
        commit=True,
    )
    return row


@router.get("", response_model=list[PropertyOut])
def list_properties(
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(Property).order_by(desc(Property.created_at)).limit(limit)
    if p.role not in ("admin", "ops"):
        q = q.where(Property.owner_id == p.user_id)
    return list(db.scalars(q).all())


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(property_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return must_get_property(db, property_id=property_id, principal=p)


@router.delete("/{property_id}")
def delete_property(property_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = must_get_property(db, property_id=property_id, principal=p)
    db.delete(row)
    db.flush()

    # units, leases, payments, holds and maintenance go with it (ON DELETE CASCADE)
    log_operation(
        db,
        scope="property",
        op="delete_property",
        object_type="property",
        object_id=property_id,
        rows_affected=1,
        actor=p.email,
        commit=True,
    )
    return {"ok": True, "property_id": property_id}


@router.post("/{property_id}/units", response_model=UnitOut, status_code=201)
def create_unit(property_id: str, payload: UnitCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    prop = must_get_property(db, property_id=property_id, principal=p)
    # HOLD and LEASED are only ever reached through the procedures
    if payload.status not in (UNIT_AVAILABLE, UNIT_INACTIVE):
        raise ValidationError("InvalidUnitStatus", "new units start AVAILABLE or INACTIVE")

    row = Unit(**payload.model_dump(), property_id=prop.id)
    db.add(row)
    db.flush()

    log_operation(
        db,
        scope="property",
        op="create_unit",
        object_type="unit",
        object_id=row.id,
        params={**payload.model_dump(), "property_id": prop.id},
        rows_affected=1,
        actor=p.email,
        commit=True,
    )
    return row


@router.get("/{property_id}/units", response_model=list[UnitOut])
def list_units(property_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    prop = must_get_property(db, property_id=property_id, principal=p)
    return list(db.scalars(select(Unit).where(Unit.property_id == prop.id).order_by(Unit.name)).all())
