"""
Clinic Queue - walk-in clinic queue sessions, tickets and history.

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import Database
from .errors import QueueError, ValidationError
from .routers import (
    auth_router,
    entries_router,
    session_router,
    history_router
)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    await Database.connect()

    yield

    # Shutdown
    await Database.disconnect()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"]
)


# Trace Middleware
@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    logger.debug("INCOMING %s %s", request.method, request.url.path)
    response = await call_next(request)
    logger.debug("OUTGOING %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError):
    """Domain errors carry their own status and stable code."""
    logger.info("%s %s: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query strings render like any other validation error."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    error = ValidationError(problems or None)
    logger.info("%s %s: %s (%s)", request.method, request.url.path, error.code, error.message)
    return JSONResponse(status_code=error.status_code, content=error.to_response())


# Global error handler with CORS headers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)

    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error"}
    )
    # Force CORS headers
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "*"
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None)
    )
    # Force CORS headers
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


# Include routers
app.include_router(auth_router)
app.include_router(entries_router)
app.include_router(session_router)
app.include_router(history_router)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - health check."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected" if Database.client else "disconnected",
        "version": settings.APP_VERSION
    }


# Entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinic_queue.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
