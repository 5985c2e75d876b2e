# reengine/main.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reengine.core.config import settings
from reengine.core.exceptions import BaseEngineError
from reengine.core.logging import configure_structlog, get_structlog_logger
from reengine.db.session import get_store
from reengine.middleware.request_id import RequestIdMiddleware
from reengine.routes import approvals, dnc, health, leads, router
from reengine.routes.health import VERSION


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables and check existing headers before serving."""
    logger = get_structlog_logger(__name__)
    logger.info("application.starting", environment=settings.environment, data_dir=settings.data_dir)

    # A header mismatch is fatal: refuse to serve a corrupt data directory
    await get_store().initialize()

    logger.info("application.started")
    yield
    logger.info("application.shutdown_complete")


configure_structlog()
logger = get_structlog_logger(__name__)

app = FastAPI(
    title="Re-engagement Engine API",
    version=VERSION,
    description="Approval-gated outreach dispatch for real-estate leads",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(BaseEngineError)
async def engine_exception_handler(request: Request, exc: BaseEngineError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "api.exception",
        status_code=exc.status_code,
        code=exc.code,
        error=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "loc": list(error.get("loc", [])),
            "msg": error.get("msg", "Validation error"),
            "type": error.get("type", "value_error"),
        }
        for error in exc.errors()
    ]
    logger.warning("validation.error", path=request.url.path, method=request.method, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "validation_error",
            "message": "Request validation failed",
            "details": {"errors": errors},
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_id = f"err_{uuid.uuid4().hex[:12]}"
    logger.error(
        "unhandled.exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    message = f"Internal server error: {exc}" if settings.is_development else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"code": "internal_error", "message": message, "details": {"error_id": error_id}},
        headers={"X-Error-ID": error_id},
    )


app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(approvals.router, prefix=settings.api_prefix, tags=["approvals"])
app.include_router(leads.router, prefix=settings.api_prefix, tags=["leads"])
app.include_router(router.router, prefix=settings.api_prefix, tags=["router"])
app.include_router(dnc.router, prefix=settings.api_prefix, tags=["dnc"])


@app.get("/")
async def root():
    return {
        "name": "Re-engagement Engine API",
        "version": app.version,
        "environment": settings.environment,
        "docs": "/docs" if settings.is_development else None,
        "health": f"{settings.api_prefix}/health",
    }


logger.info("application.configured", environment=settings.environment)
