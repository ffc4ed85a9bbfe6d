# leaseledger/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..models import AppUser, Property, Tenant, Unit, UserRole


@dataclass(frozen=True)
class SeedResult:
    owner_email: str
    property_id: str
    unit_ids: list[str]
    tenant_id: str


def _get_or_create_user(db: Session, email: str, full_name: str, role: str) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row is None:
        row = AppUser(email=email, full_name=full_name)
        db.add(row)
        db.flush()
    has_role = db.query(UserRole).filter(UserRole.user_id == row.id, UserRole.role == role).one_or_none()
    if has_role is None:
        db.add(UserRole(user_id=row.id, role=role))
    db.commit()
    return row


def _get_or_create_property(db: Session, owner: AppUser, address: str) -> Property:
    row = db.query(Property).filter(Property.address == address, Property.owner_id == owner.id).one_or_none()
    if row:
        return row
    row = Property(
        owner_id=owner.id,
        address=address,
        city="Springfield",
        state="IL",
        zip_code="62701",
        type="residential",
        status="active",
        description="Demo building",
    )
    db.add(row)
    db.commit()
    return row


def _ensure_unit(db: Session, prop: Property, name: str, rent: Decimal, bedrooms: int) -> Unit:
    row = db.query(Unit).filter(Unit.property_id == prop.id, Unit.name == name).one_or_none()
    if row:
        return row
    row = Unit(property_id=prop.id, name=name, rent_amount=rent, bedrooms=bedrooms, bathrooms=1)
    db.add(row)
    db.commit()
    return row


def _get_or_create_tenant(db: Session, email: str, full_name: str) -> Tenant:
    row = db.query(Tenant).filter(Tenant.email == email).one_or_none()
    if row:
        return row
    row = Tenant(full_name=full_name, email=email, occupation="Engineer", annual_income=Decimal("72000"), credit_score=710)
    db.add(row)
    db.commit()
    return row


def seed_demo(
    *,
    owner_email: str = "owner@demo.local",
    owner_name: str = "Demo Owner",
    tenant_email: str = "tenant@demo.local",
    tenant_name: str = "Demo Tenant",
    units: Optional[int] = 3,
) -> SeedResult:
    """Idempotent: re-running finds the same rows instead of duplicating them."""
    db = SessionLocal()
    try:
        owner = _get_or_create_user(db, owner_email, owner_name, role="owner")
        prop = _get_or_create_property(db, owner, "100 Demo Street")
        made = [
            _ensure_unit(db, prop, f"Unit {i + 1}", Decimal("1000.00") + Decimal(150 * i), bedrooms=1 + i % 3)
            for i in range(int(units or 0))
        ]
        tenant = _get_or_create_tenant(db, tenant_email, tenant_name)
        return SeedResult(
            owner_email=owner.email,
            property_id=prop.id,
            unit_ids=[u.id for u in made],
            tenant_id=tenant.id,
        )
    finally:
        db.close()
