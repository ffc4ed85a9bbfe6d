# tests/test_events.py
from __future__ import annotations

import pytest

from leaseledger.errors import ConflictError
from leaseledger.services.event_bus import WILDCARD, bus
from leaseledger.services.holds import place_hold
from leaseledger.services.leases import confirm_lease


def test_events_delivered_after_commit(db, make_unit, make_tenant):
    got = []
    bus.subscribe("lease.confirmed", got.append)

    res = confirm_lease(db, unit_id=make_unit(), tenant_id=make_tenant(), start_date="2024-01-01", end_date="2024-04-01")

    assert len(got) == 1
    assert got[0].payload["lease_id"] == res.lease_id
    assert got[0].payload["payments_created"] == 3
    assert got[0].correlation_id


def test_failed_procedure_delivers_only_its_audit_entry(db, make_unit):
    unit_id = make_unit()
    place_hold(db, unit_id=unit_id, requester_id="alice")

    got = []
    bus.subscribe(WILDCARD, got.append)
    with pytest.raises(ConflictError):
        place_hold(db, unit_id=unit_id, requester_id="bob")

    assert [e.event_type for e in got] == ["audit.appended"]


def test_failing_handler_does_not_undo_procedure(db, make_unit):
    def boom(ev):
        raise RuntimeError("handler down")

    after = []
    bus.subscribe("hold.placed", boom)
    bus.subscribe("hold.placed", after.append)

    res = place_hold(db, unit_id=make_unit(), requester_id="alice")
    assert res.hold_id
    assert len(after) == 1


def test_unsubscribe_stops_delivery(db, make_unit):
    got = []
    off = bus.subscribe("hold.placed", got.append)
    off()
    place_hold(db, unit_id=make_unit(), requester_id="alice")
    assert got == []
