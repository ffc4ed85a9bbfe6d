# leaseledger/domain/unit_status.py
from __future__ import annotations

from typing import Optional

from ..models import (
    UNIT_AVAILABLE,
    UNIT_HOLD,
    UNIT_INACTIVE,
    UNIT_LEASED,
)

ISSUE_LEASE_ACTIVE_UNIT_NOT_LEASED = "lease_active_unit_not_leased"
ISSUE_UNIT_LEASED_NO_ACTIVE_LEASE = "unit_leased_no_active_lease"


def derived_unit_status(current: str, *, has_active_lease: bool, has_live_hold: bool) -> Optional[str]:
    """
    Status a unit should carry given current lease/hold membership, or None
    when the repair pass must leave it alone.

    - INACTIVE is administrative and never touched
    - an active lease wins over everything else
    - a unit legitimately mid-hold stays HOLD
    """
    if current == UNIT_INACTIVE:
        return None
    if has_active_lease:
        return UNIT_LEASED
    if current == UNIT_HOLD and has_live_hold:
        return None
    return UNIT_AVAILABLE


# maintenance lifecycle: open -> assigned -> in_progress -> resolved,
# any non-terminal state -> cancelled
MAINTENANCE_TRANSITIONS: dict[str, set[str]] = {
    "open": {"assigned", "in_progress", "cancelled"},
    "assigned": {"in_progress", "cancelled"},
    "in_progress": {"resolved", "cancelled"},
    "resolved": set(),
    "cancelled": set(),
}


def can_transition_maintenance(current: str, target: str) -> bool:
    return target in MAINTENANCE_TRANSITIONS.get(current, set())
