# leaseledger/services/maintenance.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..domain.late_fees import to_money
from ..domain.unit_status import can_transition_maintenance
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    MaintenanceRequest,
    Tenant,
    Unit,
    MAINTENANCE_CATEGORIES,
    MAINTENANCE_STATUSES,
)
from .procedure import run_procedure


def create_request(
    db: Session,
    *,
    unit_id: str,
    description: str,
    category: str = "general",
    priority: int = 3,
    tenant_id: Optional[str] = None,
    estimated_cost: Any = None,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> MaintenanceRequest:
    with run_procedure(
        db,
        scope="maintenance",
        op="create_maintenance_request",
        object_type="unit",
        object_id=unit_id,
        actor=actor,
        params={"unit_id": unit_id, "category": category, "priority": priority, "tenant_id": tenant_id},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        if category not in MAINTENANCE_CATEGORIES:
            raise ValidationError("InvalidCategory", f"category must be one of {', '.join(MAINTENANCE_CATEGORIES)}")
        if not (1 <= int(priority) <= 5):
            raise ValidationError("InvalidPriority", "priority must be between 1 and 5")
        if not (description or "").strip():
            raise ValidationError("InvalidDescription", "description is required")

        if db.scalar(select(Unit.id).where(Unit.id == str(unit_id))) is None:
            raise NotFoundError("UnitNotFound", f"unit {unit_id} not found")
        if tenant_id is not None and db.scalar(select(Tenant.id).where(Tenant.id == str(tenant_id))) is None:
            raise NotFoundError("TenantNotFound", f"tenant {tenant_id} not found")

        req = MaintenanceRequest(
            unit_id=str(unit_id),
            tenant_id=str(tenant_id) if tenant_id is not None else None,
            category=category,
            priority=int(priority),
            description=description.strip(),
            status="open",
            estimated_cost=to_money(estimated_cost) if estimated_cost is not None else None,
            created_at=ctx.now,
            updated_at=ctx.now,
        )
        db.add(req)
        db.flush()
        ctx.record("INSERT INTO maintenance_requests (id, unit_id, tenant_id, category, priority, description)", 1)

        ctx.object_type, ctx.object_id = "maintenance_request", req.id
        ctx.result = {"request_id": req.id, "unit_id": req.unit_id, "priority": req.priority}
        ctx.stage("maintenance.created", {**ctx.result, "category": category, "tenant_id": req.tenant_id})

    return req


def update_status(
    db: Session,
    *,
    request_id: str,
    status: str,
    assigned_to: Optional[str] = None,
    actual_cost: Any = None,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> MaintenanceRequest:
    """open -> assigned -> in_progress -> resolved; anything not finished -> cancelled."""
    with run_procedure(
        db,
        scope="maintenance",
        op="update_maintenance_status",
        object_type="maintenance_request",
        object_id=request_id,
        actor=actor,
        params={"request_id": request_id, "status": status, "assigned_to": assigned_to},
        correlation_id=correlation_id,
        now=now,
    ) as ctx:
        if status not in MAINTENANCE_STATUSES:
            raise ValidationError("InvalidStatus", f"status must be one of {', '.join(MAINTENANCE_STATUSES)}")

        req = db.scalar(
            select(MaintenanceRequest).where(MaintenanceRequest.id == str(request_id)).with_for_update()
        )
        if req is None:
            raise NotFoundError("MaintenanceRequestNotFound", f"maintenance request {request_id} not found")

        previous = req.status
        if not can_transition_maintenance(previous, status):
            raise ConflictError("InvalidStatusTransition", f"cannot go {previous} -> {status}")

        values: dict[str, Any] = {"status": status, "updated_at": ctx.now}
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
        if actual_cost is not None:
            values["actual_cost"] = to_money(actual_cost)
        if status == "resolved":
            values["completed_at"] = ctx.now

        ctx.execute(
            update(MaintenanceRequest)
            .where(MaintenanceRequest.id == req.id, MaintenanceRequest.status == previous)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )

        ctx.result = {"request_id": req.id, "previous_status": previous, "status": status}
        ctx.stage("maintenance.status_changed", ctx.result)

    return req
