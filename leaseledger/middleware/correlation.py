# leaseledger/middleware/correlation.py
from __future__ import annotations

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# ids end up in audit rows and log lines; keep them short and printable
_VALID_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")

INBOUND_HEADERS = ("X-Request-ID", "X-Correlation-ID")


def get_correlation_id() -> str | None:
    return correlation_id_ctx.get()


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def _clean(candidate: Optional[str]) -> Optional[str]:
    if not candidate:
        return None
    candidate = candidate.strip()
    return candidate if _VALID_ID.match(candidate) else None


@contextmanager
def bind_correlation_id(cid: Optional[str] = None) -> Iterator[str]:
    """
    Correlation id for code that runs outside a request (celery tasks, the
    CLI). Every procedure started inside the block stamps its audit row with
    this id.
    """
    value = _clean(cid) or new_correlation_id()
    token = correlation_id_ctx.set(value)
    try:
        yield value
    finally:
        correlation_id_ctx.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    One correlation id per HTTP request.

    Taken from X-Request-ID / X-Correlation-ID when the caller sends a sane
    one, generated otherwise. Echoed back on X-Request-ID, stored on
    request.state for the access log line.
    """

    header_out = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        inbound = next((request.headers.get(h) for h in INBOUND_HEADERS if request.headers.get(h)), None)
        with bind_correlation_id(inbound) as cid:
            request.state.request_id = cid
            resp = await call_next(request)
            resp.headers[self.header_out] = cid
            return resp
