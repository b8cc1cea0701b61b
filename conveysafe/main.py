"""Main FastAPI application for ConveySafe"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from conveysafe.api import health, jobs, payments
from conveysafe.config import Settings, settings as default_settings
from conveysafe.container import build_container
from conveysafe.middleware.logging import LoggingMiddleware
from conveysafe.middleware.request_id import RequestIDMiddleware
from conveysafe.services.errors import ConveySafeError
from conveysafe.utils.clock import SystemClock
from conveysafe.utils.ids import IdGenerator
from conveysafe.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def _validation_code(exc: RequestValidationError) -> str:
    """Collapse pydantic's error list into one machine readable code"""
    error_types = {error.get("type") for error in exc.errors()}
    if "json_invalid" in error_types:
        return "invalid_json"
    if error_types & {"missing", "string_too_short"}:
        return "missing_required_fields"
    fields = {error.get("loc", ())[-1] for error in exc.errors() if error.get("loc")}
    if "amount_cents" in fields:
        return "invalid_amount"
    if "service_fee_rate" in fields:
        return "invalid_service_fee_rate"
    if fields & {"tax_rate", "line_tax_rate", "service_fee_tax_rate"}:
        return "invalid_tax_rate"
    return "invalid_request"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    config: Settings = app.state.container.settings
    logger.info("Starting ConveySafe payments service...", extra={"app_env": config.app_env})

    issues = config.validate_configuration()
    for error in issues["errors"]:
        logger.error("Configuration error", extra={"issue": error})
    for warning in issues["warnings"]:
        logger.warning("Configuration warning", extra={"issue": warning})

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down ConveySafe payments service...")
    logger.info("Application shutdown complete")


def create_app(
    config: Settings | None = None,
    id_generator: IdGenerator | None = None,
    clock: SystemClock | None = None,
) -> FastAPI:
    """Build an application with its own fresh set of stores"""
    config = config or default_settings
    setup_logging(config)

    app = FastAPI(
        title="ConveySafe Payments API",
        description="""
    ## Escrow payments for property conveyancing

    Holds milestone funds in escrow, releases or refunds them, records trust
    account payouts and invoices, applies loyalty-tiered service fees, and
    guards buyer/seller/conveyancer contact details behind an unlock token.
    """,
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if config.app_debug else None,
        redoc_url="/redoc" if config.app_debug else None,
    )
    app.state.container = build_container(config, id_generator=id_generator, clock=clock)

    # Configure middleware (order matters - last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/status", response_class=JSONResponse)
    async def api_status() -> dict[str, Any]:
        """API status endpoint for programmatic access"""
        return {
            "name": "ConveySafe Payments API",
            "version": "0.1.0",
            "status": "operational",
            "docs": "/docs" if config.app_debug else None,
        }

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(payments.router, prefix="/payments", tags=["payments"])
    app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])

    @app.exception_handler(ConveySafeError)
    async def conveysafe_error_handler(request: Request, exc: ConveySafeError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "Request rejected",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "path": request.url.path,
                "error": exc.code,
                "status_code": exc.status_code,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "detail": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        code = _validation_code(exc)
        logger.warning(
            "Request body failed validation",
            extra={"path": request.url.path, "error": code},
        )
        return JSONResponse(
            status_code=400,
            content={"error": code, "detail": "Request body failed validation"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": str(exc) if config.app_debug else "An error occurred",
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "conveysafe.main:app",
        host=default_settings.app_host,
        port=default_settings.app_port,
        reload=default_settings.app_debug,
        log_level=default_settings.log_level.lower(),
    )
