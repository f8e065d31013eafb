"""
Placement Pipeline API - FastAPI Application

Main entry point for the API server.
Run with: uvicorn placement_api.main:app --reload
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from placement_api.config.settings import settings
from placement_api.config.database import init_db
from placement_api.endpoints import api_router
from placement_api.middleware.auth import AuthMiddleware
from placement_api.middleware.error_handler import setup_exception_handlers
from placement_api.middleware.logging import LoggingMiddleware, configure_logging
from placement_api.services.audit import AuditLogger, get_audit_logger

# Configure structured logging
configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(
        "Starting Placement Pipeline API",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
    )

    # Initialize database tables (in dev mode)
    if settings.DEBUG:
        logger.info("Initializing database tables (DEBUG mode)")
        try:
            init_db()
        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))

    yield

    # Shutdown: last attempt at parked audit entries
    audit = get_audit_logger()
    if audit.pending_count:
        audit.flush_pending()
        if audit.pending_count:
            logger.error("Audit entries lost on shutdown", pending=audit.pending_count)
    logger.info("Shutting down Placement Pipeline API")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Stage-based recruitment pipeline for campus placement drives",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Setup exception handlers
setup_exception_handlers(app)

# Last added runs outermost: CORS wraps logging, which wraps auth
app.add_middleware(AuthMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


# Root health endpoint (for load balancer)
@app.get("/health")
async def root_health(audit: AuditLogger = Depends(get_audit_logger)):
    """Simple health check for load balancer."""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "auditOutbox": audit.pending_count,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs" if settings.DEBUG else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "placement_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
