"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from warden.core.config import settings
from warden.core.middleware import setup_middleware
from warden.core.exceptions import (
    WardenError, InvalidCredentialError, UnauthorizedError, ForbiddenError,
    ResourceNotFoundError, ResourceConflictError, ValidationError, InfrastructureError,
)
from warden.db.session import engine

from warden.api.auth import router as auth_router
from warden.api.menu import router as menu_router
from warden.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("warden")

# First match wins, so subclasses come before their bases
ERROR_STATUS = [
    (UnauthorizedError, 401),
    (InvalidCredentialError, 401),
    (ForbiddenError, 403),
    (ResourceNotFoundError, 404),
    (ResourceConflictError, 409),
    (ValidationError, 422),
    (InfrastructureError, 503),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s API", settings.APP_NAME)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database reachable")
    except Exception as e:
        logger.warning("Database not available: %s", e)

    yield

    logger.info("Shutting down %s API", settings.APP_NAME)


app = FastAPI(
    title="Warden API",
    description="Session and menu permission service",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(WardenError)
async def warden_exception_handler(request: Request, exc: WardenError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 400)
    detail = exc.message
    headers = None

    if isinstance(exc, UnauthorizedError):
        # Reuse detection must not be distinguishable from a bad token
        detail = "Not authenticated"
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, InfrastructureError):
        logger.error("Infrastructure failure on %s: %s", request.url.path, exc.message,
                     exc_info=exc.__cause__)
        detail = "Service temporarily unavailable"

    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(menu_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
