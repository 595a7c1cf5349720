"""
Sentinel - Autonomous pay-per-check price monitoring

Main FastAPI application entry point. The application hosts the
payment-gated price-check endpoint and the scheduler that runs every active
sentinel's monitoring loop.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from sentinel.api import router as api_router
from sentinel.core.config import settings
from sentinel.core.database import close_db, init_db
from sentinel.core.errors import (
    PersistenceFailed,
    SentinelError,
    general_exception_handler,
    http_exception_handler,
    sentinel_error_handler,
)
from sentinel.middleware.metrics import metrics_middleware
from sentinel.services.activity_recorder import ActivityRecorder
from sentinel.services.balance_service import BalanceService
from sentinel.services.custody import KeyringCustody
from sentinel.services.monitoring_service import MonitoringService
from sentinel.services.notifications import WebhookNotifier
from sentinel.services.payment_executor import PaymentExecutor
from sentinel.services.payment_verifier import OnChainPaymentVerifier
from sentinel.services.price_check_service import PriceCheckService
from sentinel.services.price_oracle import MarketPriceOracle
from sentinel.services.sentinel_store import SentinelStore
from sentinel.services.x402_service import X402PriceCheckClient

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format=settings.log_format,
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI) -> None:
    """Build the long-lived services and attach them to ``app.state``."""
    store = SentinelStore()
    notifier = WebhookNotifier()
    balance_service = BalanceService()
    executor = PaymentExecutor(balance_service=balance_service)

    app.state.sentinel_store = store
    app.state.notifier = notifier
    app.state.balance_service = balance_service
    app.state.price_oracle = MarketPriceOracle()
    app.state.price_check_service = PriceCheckService(
        oracle=app.state.price_oracle,
        verifier=OnChainPaymentVerifier(),
        notifier=notifier,
    )
    app.state.price_check_client = X402PriceCheckClient(executor=executor)
    app.state.monitoring_service = MonitoringService(
        client=app.state.price_check_client,
        recorder=ActivityRecorder(store),
        store=store,
        notifier=notifier,
        custody=KeyringCustody(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Network: {settings.sentinel_network}, monitoring mode: {settings.monitoring_mode}")

    logger.info("Initializing database...")
    await init_db()

    build_services(app)

    if settings.monitoring_autostart:
        try:
            await app.state.monitoring_service.start_active()
        except PersistenceFailed as e:
            logger.warning(f"Could not start active sentinels: {e.message}")

    yield

    logger.info("Shutting down...")
    await app.state.monitoring_service.stop_all()
    await app.state.price_check_client.close()
    await app.state.price_oracle.close()
    await app.state.notifier.close()
    await close_db()
    logger.info("All connections closed")


app = FastAPI(
    title=settings.app_name,
    description="""
## Autonomous pay-per-check price monitoring

Sentinels are wallet-holding monitors. Every cycle a sentinel pays a small
stablecoin fee to the price-check endpoint over the x402 protocol, compares
the released price against its threshold, and notifies its owner when the
condition is met. A sentinel whose wallet runs dry pauses itself.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Payment-Required"],
)

app.middleware("http")(metrics_middleware)

# Global exception handlers
app.add_exception_handler(SentinelError, sentinel_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get(
    "/health",
    tags=["Health"],
    summary="Health check",
    response_description="Application health status",
)
async def health_check() -> dict[str, Any]:
    """
    Check application health status.

    Returns basic health information including version, environment and
    the number of running monitoring loops.
    """
    monitoring = getattr(app.state, "monitoring_service", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "network": settings.sentinel_network,
        "active_loops": monitoring.monitoring_count() if monitoring else 0,
    }


app.include_router(api_router, prefix="/api/v1")


@app.get("/", tags=["Root"], summary="API root", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sentinel.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
