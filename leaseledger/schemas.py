# leaseledger/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field


# -------------------- Properties / Units / Tenants --------------------

class PropertyCreate(BaseModel):
    address: str
    city: str
    state: str = Field(min_length=2, max_length=2)
    zip_code: str
    type: str = "residential"
    status: str = "active"
    description: Optional[str] = None


class UnitCreate(BaseModel):
    name: str
    rent_amount: Decimal = Field(gt=0)
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    square_feet: Optional[int] = None
    status: str = "AVAILABLE"


class UnitOut(UnitCreate):
    id: str
    property_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PropertyOut(PropertyCreate):
    id: str
    owner_id: Optional[str] = None
    created_at: datetime
    units: List[UnitOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TenantCreate(BaseModel):
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    occupation: Optional[str] = None
    annual_income: Optional[Decimal] = None
    credit_score: Optional[int] = Field(default=None, ge=300, le=850)
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None


class TenantOut(TenantCreate):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------- Holds --------------------

class HoldRequest(BaseModel):
    unit_id: str
    minutes: Optional[int] = None


class HoldOut(BaseModel):
    hold_id: str
    unit_id: str
    user_id: str
    expires_at: datetime
    renewed: bool = False


# -------------------- Leases --------------------

class LeaseConfirmRequest(BaseModel):
    unit_id: str
    tenant_id: str
    start_date: date
    end_date: date
    deposit: Optional[Decimal] = None


class LeaseConfirmOut(BaseModel):
    lease_id: str
    unit_id: str
    payments_created: int
    monthly_rent: Decimal
    deposit: Decimal
    first_due_date: date
    last_due_date: date


class LeaseDraftRequest(LeaseConfirmRequest):
    terms: Optional[str] = None


class PaymentOut(BaseModel):
    id: str
    lease_id: str
    amount: Decimal
    due_date: date
    status: str
    method: Optional[str] = None
    late_fee: Decimal
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LeaseOut(BaseModel):
    id: str
    unit_id: str
    tenant_id: str
    start_date: date
    end_date: date
    monthly_rent: Decimal
    deposit: Optional[Decimal] = None
    status: str
    terms: Optional[str] = None
    created_at: datetime
    payments: List[PaymentOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class LeaseTerminateOut(BaseModel):
    lease_id: str
    unit_id: str
    status: str
    unit_status: str


# -------------------- Payments --------------------

class PaymentPostRequest(BaseModel):
    amount: Decimal
    method: str


class PaymentPostOut(BaseModel):
    payment_id: str
    amount: Decimal
    method: str
    late_fee: Decimal
    status: str
    paid_at: datetime


class PaymentStatusRequest(BaseModel):
    status: str
    notes: Optional[str] = None


class OverdueResultRow(BaseModel):
    payment_id: str
    late_fee: Optional[Decimal] = None
    status: str
    error: Optional[str] = None


class LateFeeQuoteOut(BaseModel):
    due_date: date
    amount: Decimal
    as_of: date
    days_overdue: int
    late_fee: Decimal


# -------------------- Consistency --------------------

class MismatchOut(BaseModel):
    lease_id: Optional[str] = None
    unit_id: str
    unit_name: str
    lease_status: Optional[str] = None
    unit_status: str
    issue_type: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RepairOut(BaseModel):
    units_scanned: int
    units_updated: int
    changes: List[dict[str, str]] = Field(default_factory=list)


class IntegrityCheckOut(BaseModel):
    issues_found: int
    auto_fixed: int
    mismatches: List[MismatchOut] = Field(default_factory=list)
    timestamp: datetime


# -------------------- Maintenance --------------------

class MaintenanceCreate(BaseModel):
    unit_id: str
    description: str
    category: str = "general"
    priority: int = Field(default=3, ge=1, le=5)
    tenant_id: Optional[str] = None
    estimated_cost: Optional[Decimal] = None


class MaintenanceStatusUpdate(BaseModel):
    status: str
    assigned_to: Optional[str] = None
    actual_cost: Optional[Decimal] = None


class MaintenanceOut(BaseModel):
    id: str
    unit_id: str
    tenant_id: Optional[str] = None
    category: str
    priority: int
    description: str
    status: str
    assigned_to: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------- Audit --------------------

class AuditEntryOut(BaseModel):
    """
    DB stores params as JSON text; AuditEntry has already decoded it.
    """

    id: int
    created_at: datetime
    actor: Optional[str] = None
    scope: str
    op: str
    object_type: str
    object_id: Optional[str] = None
    correlation_id: Optional[str] = None
    sql_statement: Optional[str] = None
    params: Optional[dict[str, Any]] = None
    rows_affected: Optional[int] = None
    duration_ms: Optional[int] = None
    status: str
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AuditFeedOut(BaseModel):
    entries: List[AuditEntryOut]
    next_after_id: int
