# leaseledger/routers/tenants.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import Tenant
from ..schemas import TenantCreate, TenantOut
from ..services.audit_log import log_operation
from ..services.ownership import must_get_tenant

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=TenantOut, status_code=201)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = Tenant(**payload.model_dump())
    db.add(row)
    db.flush()

    log_operation(
        db,
        scope="tenant",
        op="create_tenant",
        object_type="tenant",
        object_id=row.id,
        params={"full_name": row.full_name, "email": row.email},
        rows_affected=1,
        actor=p.email,
        commit=True,
    )
    return row


@router.get("", response_model=list[TenantOut])
def list_tenants(
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(Tenant).order_by(desc(Tenant.created_at)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{tenant_id}", response_model=TenantOut)
def get_tenant(tenant_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return must_get_tenant(db, tenant_id=tenant_id)


@router.patch("/{tenant_id}", response_model=TenantOut)
def update_tenant(
    tenant_id: str,
    payload: TenantCreate,  # full-update for simplicity
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_tenant(db, tenant_id=tenant_id)
    for k, v in payload.model_dump().items():
        setattr(row, k, v)
    db.flush()

    log_operation(
        db,
        scope="tenant",
        op="update_tenant",
        object_type="tenant",
        object_id=row.id,
        params=payload.model_dump(),
        rows_affected=1,
        actor=p.email,
        commit=True,
    )
    return row
