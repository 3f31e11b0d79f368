"""FastAPI app creation, global state, and request guards."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request

from ..app import TenantLoop

logger = logging.getLogger(__name__)

_config_path = os.getenv("TENANTLOOP_CONFIG", "config.yaml")

_app: Optional[TenantLoop] = None

# None means "not set", which disables the service-key endpoints entirely
_SERVICE_KEY = os.getenv("TENANTLOOP_SERVICE_KEY")


def _try_load_app():
    """Attempt to load TenantLoop from config. Silent if config missing."""
    global _app
    try:
        if os.path.exists(_config_path):
            _app = TenantLoop(_config_path)
            logger.info(f"TenantLoop loaded from {_config_path}")
        else:
            logger.warning(f"Config not found: {_config_path}")
    except Exception as e:
        logger.warning(f"Failed to load config: {e}")
        _app = None


def require_app() -> TenantLoop:
    """Raise 503 if app is not configured. Lazy-loads on first call."""
    global _app
    if _app is None:
        _try_load_app()
    if _app is None:
        raise HTTPException(503, "Not configured")
    return _app


def verify_service_key(request: Request):
    """Verify X-Service-Key header for trusted upstream callers."""
    if _SERVICE_KEY is None:
        raise HTTPException(
            500,
            "TENANTLOOP_SERVICE_KEY is not configured. "
            "Set the TENANTLOOP_SERVICE_KEY environment variable to enable internal endpoints.",
        )
    key = request.headers.get("x-service-key", "")
    if key != _SERVICE_KEY:
        raise HTTPException(403, "Invalid service key")


def bearer_token(request: Request) -> Optional[str]:
    """Identity token from ``Authorization: Bearer <token>``, if any."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def set_app(new_app: Optional[TenantLoop]):
    """Set the global _app instance."""
    global _app
    _app = new_app


def get_app_instance() -> Optional[TenantLoop]:
    """Get the current global _app instance (may be None)."""
    return _app


@asynccontextmanager
async def _lifespan(api: FastAPI):
    # The in-process timer loop only runs once the app is initialized.
    current = _app
    if current is None:
        _try_load_app()
        current = _app
    if current is not None:
        try:
            await current.initialize()
        except Exception as e:
            logger.error(f"TenantLoop initialization failed: {type(e).__name__}: {e}")
    yield
    if _app is not None:
        await _app.shutdown()


def _create_api() -> FastAPI:
    """Create and configure the FastAPI app with routes."""
    _api = FastAPI(title="TenantLoop", version="0.1.0", lifespan=_lifespan)

    if _SERVICE_KEY is None:
        logger.warning(
            "TENANTLOOP_SERVICE_KEY is not set. /inbound, /scheduled and /tenants "
            "will reject every request."
        )

    from .routes import register_routes
    register_routes(_api)
    return _api


api = _create_api()
