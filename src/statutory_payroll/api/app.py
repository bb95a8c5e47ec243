"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from statutory_payroll import __version__
from statutory_payroll.api.dependencies import get_event_emitter, get_registry
from statutory_payroll.api.routes import (
    approvals_router,
    health_router,
    jurisdictions_router,
    pay_items_router,
    pay_runs_router,
)
from statutory_payroll.database import dispose_db, init_db
from statutory_payroll.errors import (
    AlreadyActionedError,
    ConfigurationError,
    InvalidChainConfigError,
    InvalidInputError,
    NotCurrentStepError,
    PayrollError,
    PayRunLockedError,
    StepNotFoundError,
)
from statutory_payroll.services.events import DomainEvent

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS: list[tuple[type[PayrollError], int, str]] = [
    (StepNotFoundError, status.HTTP_404_NOT_FOUND, "STEP_NOT_FOUND"),
    (NotCurrentStepError, status.HTTP_409_CONFLICT, "NOT_CURRENT_STEP"),
    (AlreadyActionedError, status.HTTP_409_CONFLICT, "ALREADY_ACTIONED"),
    (PayRunLockedError, status.HTTP_409_CONFLICT, "PAY_RUN_LOCKED"),
    (InvalidInputError, 422, "INVALID_INPUT"),
    (InvalidChainConfigError, status.HTTP_400_BAD_REQUEST, "INVALID_CHAIN_CONFIG"),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST, "CONFIGURATION_ERROR"),
]


def error_status(exc: PayrollError) -> tuple[int, str]:
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_400_BAD_REQUEST, "PAYROLL_ERROR"


def log_event(event: DomainEvent) -> None:
    """Audit trail of approval events."""
    logger.info("event %s", event.to_json())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup: fail fast on invalid jurisdiction tables
    registry = get_registry()
    logger.info("Loaded deduction tables for %s", ", ".join(registry.codes))
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Statutory Payroll API",
        description="Statutory deductions and payrun approval workflow",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    emitter = get_event_emitter()
    emitter.off(log_event)
    emitter.on_all(log_event)

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_exception_handler(request: Request, exc: PayrollError) -> JSONResponse:
        status_code, code = error_status(exc)
        if status_code == status.HTTP_409_CONFLICT:
            logger.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})

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
    app.include_router(jurisdictions_router, prefix="/api/v1")
    app.include_router(pay_items_router, prefix="/api/v1")
    app.include_router(pay_runs_router, prefix="/api/v1")
    app.include_router(approvals_router, prefix="/api/v1")

    return app
