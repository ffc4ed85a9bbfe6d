# leaseledger/services/ownership.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..errors import NotFoundError
from ..models import Lease, MaintenanceRequest, Property, Tenant, Unit

# roles that see every property, not just their own
_SEE_ALL = {"admin", "ops"}


def must_get_property(db: Session, *, property_id: str, principal: Principal | None = None) -> Property:
    q = select(Property).where(Property.id == property_id)
    if principal is not None and principal.role not in _SEE_ALL:
        q = q.where(Property.owner_id == principal.user_id)
    row = db.scalar(q)
    if not row:
        raise NotFoundError("PropertyNotFound", f"property {property_id} not found")
    return row


def must_get_unit(db: Session, *, unit_id: str) -> Unit:
    row = db.scalar(select(Unit).where(Unit.id == unit_id))
    if not row:
        raise NotFoundError("UnitNotFound", f"unit {unit_id} not found")
    return row


def must_get_tenant(db: Session, *, tenant_id: str) -> Tenant:
    row = db.scalar(select(Tenant).where(Tenant.id == tenant_id))
    if not row:
        raise NotFoundError("TenantNotFound", f"tenant {tenant_id} not found")
    return row


def must_get_lease(db: Session, *, lease_id: str) -> Lease:
    row = db.scalar(select(Lease).where(Lease.id == lease_id))
    if not row:
        raise NotFoundError("LeaseNotFound", f"lease {lease_id} not found")
    return row


def must_get_maintenance(db: Session, *, request_id: str) -> MaintenanceRequest:
    row = db.scalar(select(MaintenanceRequest).where(MaintenanceRequest.id == request_id))
    if not row:
        raise NotFoundError("MaintenanceRequestNotFound", f"maintenance request {request_id} not found")
    return row
