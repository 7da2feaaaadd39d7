"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from charge_engine.api.routes import charges_router, health_router, notify_router, refunds_router
from charge_engine.config import Settings, get_settings
from charge_engine.database import init_db
from charge_engine.trade.channels.sandbox import SandboxPlatform
from charge_engine.trade.config import create_sandbox_config
from charge_engine.trade.errors import (
    ChannelNotConfigured,
    ChannelRejected,
    ChannelTransportError,
    ChargeNotFound,
    ChargeNotRefundable,
    ConcurrentModification,
    OrderAlreadyPaid,
    RefundNotFound,
    TradeError,
    UnverifiedNotification,
    ValidationError,
)
from charge_engine.trade.gateway import TradeGateway
from charge_engine.trade.repositories import InMemoryTradeRepository, SqlAlchemyTradeRepository
from charge_engine.trade.scheduler import InMemoryScheduler

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[TradeError], int] = {
    ValidationError: 422,
    ChannelNotConfigured: 422,
    ChargeNotFound: 404,
    RefundNotFound: 404,
    OrderAlreadyPaid: 409,
    ChargeNotRefundable: 409,
    ConcurrentModification: 409,
    ChannelRejected: 502,
    ChannelTransportError: 504,
    UnverifiedNotification: 400,
}


def status_for(exc: TradeError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


def build_sandbox_gateway(settings: Settings, app: FastAPI) -> TradeGateway:
    """Wire a gateway against the sandbox platform.

    Storage is SQL when DATABASE_URL is set, process memory otherwise.
    """
    sandbox = SandboxPlatform(secret=settings.sandbox_secret)
    if settings.uses_database:
        _, session_factory = init_db(settings.database_url)
        app.state.session_factory = session_factory
        repository = SqlAlchemyTradeRepository(session_factory)
    else:
        repository = InMemoryTradeRepository()

    app.state.sandbox = sandbox
    return TradeGateway.build(
        config=create_sandbox_config(settings.sandbox_secret, settings.notify_base_url),
        repository=repository,
        scheduler=InMemoryScheduler(),
        client_for=lambda platform: sandbox,
    )


async def poll_scheduler(gateway: TradeGateway, scheduler: InMemoryScheduler, interval: float) -> None:
    """Fire due timeout closes until cancelled."""
    while True:
        await asyncio.sleep(interval)
        fired = await run_in_threadpool(scheduler.run_due, gateway)
        if fired:
            logger.info("Fired %d timeout close(s)", fired)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    gateway: TradeGateway = app.state.gateway
    interval: float = app.state.scheduler_poll_seconds
    task = None
    if isinstance(gateway.scheduler, InMemoryScheduler) and interval > 0:
        task = asyncio.create_task(poll_scheduler(gateway, gateway.scheduler, interval))
    yield
    # Shutdown
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


def create_app(gateway: TradeGateway | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        gateway: Pre-built gateway (tests inject their own); built against
            the sandbox platform when omitted
        settings: Defaults to settings from the environment
    """
    settings = settings or get_settings()
    app = FastAPI(
        title="Charge Engine API",
        description="Payment charge and refund reconciliation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.gateway = gateway or build_sandbox_gateway(settings, app)
    app.state.scheduler_poll_seconds = settings.scheduler_poll_seconds

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(TradeError)
    async def trade_exception_handler(request: Request, exc: TradeError) -> JSONResponse:
        """Translate domain errors into their HTTP status."""
        code = status_for(exc)
        if code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(charges_router, prefix="/api/v1")
    app.include_router(refunds_router, prefix="/api/v1")
    app.include_router(notify_router)

    return app
