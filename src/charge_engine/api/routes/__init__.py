"""API routes."""

from charge_engine.api.routes.charges import router as charges_router
from charge_engine.api.routes.health import router as health_router
from charge_engine.api.routes.notify import router as notify_router
from charge_engine.api.routes.refunds import router as refunds_router

__all__ = ["charges_router", "health_router", "notify_router", "refunds_router"]
