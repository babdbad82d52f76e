"""Elverra API — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from elverra.api.affiliates import router as affiliates_router
from elverra.api.client import router as client_router
from elverra.api.payments import router as payments_router
from elverra.api.secours import router as secours_router
from elverra.api.subscriptions import router as subscriptions_router
from elverra.config import settings
from elverra.errors import register_exception_handlers

# Configure root logger so all elverra.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    yield
    # Shutdown: dispose engine connections
    from elverra.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Client-card back office: memberships, Ô Secours tokens, affiliates and mobile-money callbacks.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(payments_router)
app.include_router(subscriptions_router)
app.include_router(secours_router)
app.include_router(affiliates_router)
app.include_router(client_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
