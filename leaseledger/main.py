# leaseledger/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .errors import register_error_handlers
from .logging_config import configure_logging

from .middleware.correlation import CorrelationIdMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router

from .routers.properties import router as properties_router
from .routers.tenants import router as tenants_router
from .routers.maintenance import router as maintenance_router

from .routers.holds import router as holds_router
from .routers.leases import router as leases_router
from .routers.payments import router as payments_router
from .routers.consistency import router as consistency_router
from .routers.audit import router as audit_router

API_PREFIX = "/api"


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Lease Ledger", version=settings.app_version)

    # added last runs first: correlation id must be set before the request line is logged
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Core
    app.include_router(health_router, prefix=API_PREFIX)

    # Glue CRUD
    app.include_router(properties_router, prefix=API_PREFIX)
    app.include_router(tenants_router, prefix=API_PREFIX)
    app.include_router(maintenance_router, prefix=API_PREFIX)

    # Lease / payment procedures
    app.include_router(holds_router, prefix=API_PREFIX)
    app.include_router(leases_router, prefix=API_PREFIX)
    app.include_router(payments_router, prefix=API_PREFIX)
    app.include_router(consistency_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    return app


app = create_app()
