# leaseledger/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("leaseledger.request")


def _level_for(status_code: int) -> int:
    if status_code >= 500 and status_code != 503:
        return logging.ERROR
    # 503 is lock contention the client retries; 409 is a lost hold/lease race
    if status_code in (409, 503):
        return logging.WARNING
    return logging.INFO


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One access line per request: correlation id, caller, method, path,
    status and duration. Contention answers (409/503) log at WARNING so a
    hot unit shows up without turning on debug logging.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()

        # Identity headers are good enough for the request line; the
        # principal itself is resolved inside the handlers.
        user_email = request.headers.get(settings.dev_header_user_email)
        user_role = request.headers.get(settings.dev_header_user_role)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            request_id: Optional[str] = getattr(request.state, "request_id", None)

            log.log(
                _level_for(status_code),
                "%s %s -> %s",
                request.method,
                request.url.path,
                status_code,
                extra={
                    "event": "http_request",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    "user_email": user_email,
                    "user_role": user_role,
                },
            )
