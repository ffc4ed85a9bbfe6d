# tests/conftest.py
from __future__ import annotations

import os
import tempfile
import uuid
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# must happen before leaseledger is imported: settings and the engine are
# built at import time
_TMP = Path(tempfile.mkdtemp(prefix="leaseledger-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("AUTH_MODE", "dev")

from leaseledger.db import Base, SessionLocal, engine, init_db  # noqa: E402
from leaseledger.models import Property, Tenant, Unit, UNIT_AVAILABLE  # noqa: E402
from leaseledger.services.event_bus import bus  # noqa: E402

init_db()


@pytest.fixture(autouse=True)
def _clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    bus.clear()
    yield
    bus.clear()


@pytest.fixture()
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


def fetch(model, pk):
    """Fresh read in its own short session (SQLite holds the write lock for any open transaction)."""
    s = SessionLocal()
    try:
        return s.get(model, pk)
    finally:
        s.close()


def fetch_all(stmt):
    s = SessionLocal()
    try:
        return list(s.scalars(stmt).all())
    finally:
        s.close()


@pytest.fixture()
def make_unit():
    def _make(rent: str = "1000.00", status: str = UNIT_AVAILABLE, name: str | None = None) -> str:
        s = SessionLocal()
        try:
            prop = Property(address="1 Test St", city="Springfield", state="IL", zip_code="62701")
            s.add(prop)
            s.flush()
            u = Unit(
                property_id=prop.id,
                name=name or f"U-{uuid.uuid4().hex[:6]}",
                rent_amount=Decimal(rent),
                status=status,
            )
            s.add(u)
            s.commit()
            return u.id
        finally:
            s.close()

    return _make


@pytest.fixture()
def make_tenant():
    def _make(full_name: str = "Test Tenant") -> str:
        s = SessionLocal()
        try:
            t = Tenant(full_name=full_name, email=f"{uuid.uuid4().hex[:8]}@t.local")
            s.add(t)
            s.commit()
            return t.id
        finally:
            s.close()

    return _make


@pytest.fixture()
def leased(db, make_unit, make_tenant):
    """A confirmed 2024-01-15 .. 2025-01-15 lease at 1000.00/month."""
    from leaseledger.services.leases import confirm_lease

    unit_id = make_unit(rent="1000.00")
    tenant_id = make_tenant()
    res = confirm_lease(
        db,
        unit_id=unit_id,
        tenant_id=tenant_id,
        start_date=date(2024, 1, 15),
        end_date=date(2025, 1, 15),
    )
    return res
