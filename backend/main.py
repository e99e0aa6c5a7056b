"""
Commission Ledger - Main Application Entry Point

Commission calculation, approval and payout tracking for recruitment sales teams.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import get_settings
from backend.db.session import engine
from backend.routers.v1 import calculations, commissions, plans
from engines.exceptions import NotFoundError, ValidationError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error monitoring
if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"commission-ledger@{settings.app_version}",
        traces_sample_rate=0.1 if settings.environment == "production" else 1.0,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    # Database connection pool is lazy-initialized by SQLAlchemy
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description=(
        "Calculates commission entries from placements and timesheets against "
        "tiered plans, with overrides, kickers, clawbacks and an approval workflow."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    openapi_url="/api/openapi.json" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


# Health check endpoints
@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "commission-ledger-api"}


@app.get("/health/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    return {
        "status": "ready",
        "service": "commission-ledger-api",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# API v1 routes
app.include_router(
    commissions.router,
    prefix=f"{settings.api_v1_prefix}/commissions",
    tags=["Commissions"],
)
app.include_router(
    plans.router,
    prefix=f"{settings.api_v1_prefix}/plans",
    tags=["Plans"],
)
app.include_router(
    calculations.router,
    prefix=f"{settings.api_v1_prefix}/calculations",
    tags=["Calculations"],
)
