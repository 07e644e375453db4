"""
Ghostli Billing - crypto subscription payments.

Main FastAPI application entry point with OpenAPI documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api import router as api_router
from src.core.cache import close_cache, init_cache
from src.core.config import settings
from src.core.database import async_session_maker, close_db, init_db
from src.core.errors import (
    SafeException,
    general_exception_handler,
    http_exception_handler,
    safe_exception_handler,
    validation_exception_handler,
)
from src.core.security import configure_secure_logging
from src.services.blockchain_service import close_blockchain_service, get_blockchain_service
from src.services.price_service import close_price_service
from src.services.transaction_monitor import TransactionMonitor

# Configure logging
configure_secure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    # Initialize database
    logger.info("Initializing database...")
    await init_db()
    logger.info("✓ Database initialized successfully")

    # Initialize Redis cache
    logger.info("Initializing Redis cache...")
    if await init_cache():
        logger.info("✓ Redis cache initialized successfully")
    else:
        logger.warning("⚠ Redis unavailable, price cache disabled")

    monitor = None
    if settings.transaction_monitor_enabled:
        monitor = TransactionMonitor(async_session_maker, get_blockchain_service())
        monitor.start()
    app.state.transaction_monitor = monitor

    yield

    # Shutdown
    logger.info("Shutting down...")
    if monitor is not None:
        await monitor.stop()
    await close_blockchain_service()
    await close_price_service()
    await close_db()
    await close_cache()
    logger.info("All connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
## Crypto subscription billing

Pay for subscription plans with Bitcoin, Solana, USDT on Ethereum (ERC20)
or USDT on Tron (TRC20).

### Key Features

- **Per-user HD wallets**: one deterministic deposit wallet per chain
- **Quoted payments**: plan prices converted at stored exchange rates plus a 5% buffer
- **On-chain verification**: confirmation thresholds per chain before a payment completes
- **Webhook**: external chain monitors can report payments

### Authentication

Most endpoints require JWT authentication. Include the token in the Authorization header:
```
Authorization: Bearer <your-token>
```
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
app.add_exception_handler(SafeException, safe_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


# Health check endpoint
@app.get(
    "/health",
    tags=["Health"],
    summary="Health check",
    response_description="Application health status",
)
async def health_check() -> dict[str, Any]:
    """
    Check application health status.

    Returns basic health information including version and environment.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# Include API routes
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get(
    "/",
    tags=["Root"],
    summary="API root",
    include_in_schema=False,
)
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
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
