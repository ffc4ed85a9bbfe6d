# leaseledger/models.py
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Vocabularies
# -----------------------------
APP_ROLES = ("admin", "owner", "tenant", "ops")

PROPERTY_TYPES = ("residential", "commercial", "industrial")
PROPERTY_STATUSES = ("active", "inactive", "maintenance")

UNIT_AVAILABLE = "AVAILABLE"
UNIT_HOLD = "HOLD"
UNIT_LEASED = "LEASED"
UNIT_INACTIVE = "INACTIVE"
UNIT_STATUSES = (UNIT_AVAILABLE, UNIT_HOLD, UNIT_LEASED, UNIT_INACTIVE)

LEASE_DRAFT = "draft"
LEASE_ACTIVE = "active"
LEASE_ENDED = "ended"
LEASE_TERMINATED = "terminated"
LEASE_STATUSES = (LEASE_DRAFT, LEASE_ACTIVE, LEASE_ENDED, LEASE_TERMINATED)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED, PAYMENT_REFUNDED)
PAYMENT_METHODS = ("cash", "card", "online", "check")

MAINTENANCE_CATEGORIES = ("plumbing", "electrical", "hvac", "general")
MAINTENANCE_STATUSES = ("open", "assigned", "in_progress", "resolved", "cancelled")

AUDIT_SUCCESS = "success"
AUDIT_ERROR = "error"


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # naive UTC everywhere; the columns are timezone-less
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


# -----------------------------
# Identity
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    roles: Mapped[List["UserRole"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        CheckConstraint(_in("role", APP_ROLES), name="ck_user_roles_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped["AppUser"] = relationship(back_populates="roles")


# -----------------------------
# Core domain: Property / Unit
# -----------------------------
class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint(_in("type", PROPERTY_TYPES), name="ck_properties_type"),
        CheckConstraint(_in("status", PROPERTY_STATUSES), name="ck_properties_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(10), nullable=False)

    type: Mapped[str] = mapped_column(String(20), nullable=False, default="residential")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    units: Mapped[List["Unit"]] = relationship(
        back_populates="property", cascade="all, delete-orphan", passive_deletes=True
    )


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (
        CheckConstraint(_in("status", UNIT_STATUSES), name="ck_units_status"),
        CheckConstraint("rent_amount > 0", name="ck_units_rent_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    property_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(80), nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    square_feet: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UNIT_AVAILABLE, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    property: Mapped["Property"] = relationship(back_populates="units")
    leases: Mapped[List["Lease"]] = relationship(
        back_populates="unit", cascade="all, delete-orphan", passive_deletes=True
    )
    hold: Mapped[Optional["Hold"]] = relationship(
        back_populates="unit", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    maintenance_requests: Mapped[List["MaintenanceRequest"]] = relationship(
        back_populates="unit", cascade="all, delete-orphan", passive_deletes=True
    )


class Hold(Base):
    __tablename__ = "holds"
    # one hold row per unit; a stale row is deleted before a new one goes in
    __table_args__ = (UniqueConstraint("unit_id", name="uq_holds_unit"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    unit: Mapped["Unit"] = relationship(back_populates="hold")


# -----------------------------
# Tenants / Leases / Payments
# -----------------------------
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    profile_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    occupation: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    annual_income: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    credit_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    emergency_contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    emergency_contact_phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    leases: Mapped[List["Lease"]] = relationship(
        back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True
    )


class Lease(Base):
    __tablename__ = "leases"
    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_leases_date_order"),
        CheckConstraint("monthly_rent > 0", name="ck_leases_rent_positive"),
        CheckConstraint(_in("status", LEASE_STATUSES), name="ck_leases_status"),
        # at most one active lease per unit
        Index(
            "uq_leases_one_active_per_unit",
            "unit_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deposit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=LEASE_DRAFT, index=True)
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    unit: Mapped["Unit"] = relationship(back_populates="leases")
    tenant: Mapped["Tenant"] = relationship(back_populates="leases")
    payments: Mapped[List["Payment"]] = relationship(
        back_populates="lease",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Payment.due_date",
    )


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint("late_fee >= 0", name="ck_payments_late_fee_nonnegative"),
        CheckConstraint(_in("status", PAYMENT_STATUSES), name="ck_payments_status"),
        CheckConstraint(f"method IS NULL OR {_in('method', PAYMENT_METHODS)}", name="ck_payments_method"),
        UniqueConstraint("lease_id", "due_date", name="uq_payments_lease_due_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    lease_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PAYMENT_PENDING, index=True)
    method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    late_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    lease: Mapped["Lease"] = relationship(back_populates="payments")


class MaintenanceRequest(Base):
    __tablename__ = "maintenance_requests"
    __table_args__ = (
        CheckConstraint(_in("category", MAINTENANCE_CATEGORIES), name="ck_maintenance_category"),
        CheckConstraint(_in("status", MAINTENANCE_STATUSES), name="ck_maintenance_status"),
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_maintenance_priority"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True
    )

    category: Mapped[str] = mapped_column(String(20), nullable=False, default="general")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open", index=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    actual_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    unit: Mapped["Unit"] = relationship(back_populates="maintenance_requests")


# -----------------------------
# Audit / operation log
# -----------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"
    __table_args__ = (
        CheckConstraint(_in("status", (AUDIT_SUCCESS, AUDIT_ERROR)), name="ck_audit_log_status"),
        Index("ix_audit_log_object", "object_type", "object_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    actor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    scope: Mapped[str] = mapped_column(String(40), nullable=False)
    op: Mapped[str] = mapped_column(String(60), nullable=False, index=True)
    object_type: Mapped[str] = mapped_column(String(60), nullable=False)
    object_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)

    sql_statement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    params: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rows_affected: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AUDIT_SUCCESS)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
