"""Route registration for the TenantLoop API."""

from fastapi import FastAPI

from .health import router as health_router
from .inbound import router as inbound_router
from .scheduled import router as scheduled_router
from .tenants import router as tenants_router


def register_routes(app: FastAPI):
    app.include_router(health_router)
    app.include_router(inbound_router)
    app.include_router(scheduled_router)
    app.include_router(tenants_router)
