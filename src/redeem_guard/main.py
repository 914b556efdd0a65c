# src/redeem_guard/main.py
"""Main entry point for the Redeem Guard application."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from redeem_guard.api.errors import register_exception_handlers
from redeem_guard.api.v1 import admin_router, redemptions_router, system_router, webhooks_router
from redeem_guard.core.logging import configure_logging
from redeem_guard.core.settings import settings
from redeem_guard.services.guard import get_fraud_guard
from redeem_guard.services.sweeper import CacheSweepWorker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the alert dispatcher and the cache sweeper for the app's lifetime."""
    configure_logging()
    guard = get_fraud_guard()
    await guard.dispatcher.start()
    sweeper = CacheSweepWorker(guard)
    await sweeper.start()
    app.state.sweeper = sweeper
    try:
        yield
    finally:
        await sweeper.stop()
        await guard.dispatcher.stop()


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Fraud guard for gift-card redemptions",
    version=settings.app_version,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Rewrite the client address from X-Forwarded-For only for trusted proxies
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.forwarded_allow_ips)

register_exception_handlers(app)

# Include API routers
app.include_router(redemptions_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "redeem_guard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        forwarded_allow_ips=settings.forwarded_allow_ips,
    )
