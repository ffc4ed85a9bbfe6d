from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ..models import utcnow

log = logging.getLogger("leaseledger.events")

_STAGED_KEY = "leaseledger.staged_events"

WILDCARD = "*"


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    payload: dict[str, Any]
    correlation_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)


Handler = Callable[[DomainEvent], None]


class EventBus:
    """
    In-process publish/subscribe for things that used to be database
    triggers ("after insert on maintenance_requests, notify").

    Procedures never publish directly: they stage events on their session and
    the bus delivers them once the transaction has committed. A rolled back
    transaction delivers nothing.

    Handlers run synchronously on the committing thread; a failing handler is
    logged and skipped so it can never undo a committed procedure.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers.get(event_type, []):
                    self._handlers[event_type].remove(handler)

        return _unsubscribe

    def publish(self, event: DomainEvent) -> int:
        with self._lock:
            targets = list(self._handlers.get(event.event_type, [])) + list(self._handlers.get(WILDCARD, []))

        delivered = 0
        for h in targets:
            try:
                h(event)
                delivered += 1
            except Exception:
                log.exception(
                    "event handler failed",
                    extra={"op": event.event_type, "correlation_id": event.correlation_id},
                )
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


bus = EventBus()


def stage_event(
    db: Session,
    event_type: str,
    payload: dict[str, Any] | None = None,
    *,
    correlation_id: Optional[str] = None,
) -> DomainEvent:
    if not event_type:
        raise ValueError("event_type required")
    ev = DomainEvent(event_type=str(event_type), payload=dict(payload or {}), correlation_id=correlation_id)
    db.info.setdefault(_STAGED_KEY, []).append(ev)
    return ev


def discard_staged(db: Session) -> None:
    db.info.pop(_STAGED_KEY, None)


def publish_staged(db: Session) -> int:
    """Call only after a successful commit."""
    events: list[DomainEvent] = db.info.pop(_STAGED_KEY, [])
    return sum(bus.publish(ev) for ev in events)
