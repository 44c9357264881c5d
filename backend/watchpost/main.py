"""
Main Application Entry Point
============================

Responsibilities:
- Build the service container (store, security services, monitor)
- Configure middleware stack
- Register API routers
- Set up exception handlers
- Provide the liveness endpoint

IMPORTANT:
    Production schemas are managed via Alembic migrations.
    Set WATCHPOST_AUTO_CREATE_TABLES=false outside local development.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from watchpost import __version__
from watchpost.core.config import get_settings
from watchpost.core.exceptions import WatchpostException
from watchpost.core.logging import configure_logging, get_logger
from watchpost.db.session import create_all_tables
from watchpost.db.store import SQLAlchemyEventStore
from watchpost.middleware.request_middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from watchpost.routes import admin_routes, auth_routes, monitoring_routes, report_routes
from watchpost.services.container import ServiceContainer, build_container

logger = get_logger(__name__)


# =====================================
# Application Lifespan Handler
# =====================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    - Build the container unless one was injected
    - Create tables and seed default alert rules when configured
    - Start monitoring when configured

    Shutdown:
    - Stop monitoring and release the database engine
    """
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container()
    container: ServiceContainer = app.state.container
    settings = container.settings

    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    if settings.AUTO_CREATE_TABLES and isinstance(container.store, SQLAlchemyEventStore):
        await create_all_tables(container.store.engine)
    if settings.SEED_DEFAULT_RULES:
        await container.alerting.initialize()
    if settings.MONITOR_AUTOSTART:
        await container.monitor.start_monitoring()

    try:
        yield
    except asyncio.CancelledError:
        logger.debug("application_shutdown_cancelled")
        raise
    finally:
        await container.close()
        logger.info("application_shutdown_complete")


# =====================================
# Exception Handlers
# =====================================

async def watchpost_exception_handler(request: Request, exc: WatchpostException) -> JSONResponse:
    """Convert application exceptions to ``{message, error_code, details}``."""
    logger.warning(
        "watchpost_exception",
        exception_type=type(exc).__name__,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "message": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("request_validation_error", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "message": "Validation error",
            "error_code": "VALIDATION_ERROR",
            "details": {"errors": errors},
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        exception_type=type(exc).__name__,
        message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    container = getattr(request.app.state, "container", None)
    settings = container.settings if container is not None else get_settings()
    if settings.is_production:
        content = {"message": "An unexpected error occurred", "error_code": "INTERNAL_ERROR", "details": {}}
    else:
        content = {"message": str(exc), "error_code": "INTERNAL_ERROR", "details": {"type": type(exc).__name__}}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# =====================================
# Application Factory
# =====================================

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        container: Pre-built services (tests inject one over an in-memory store)
    """
    settings = container.settings if container is not None else get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
    Watchpost - Security Monitoring API

    ## Features

    * **Login tracking**: account lockout after repeated failures
    * **Multi-factor authentication**: TOTP with hashed single-use backup codes
    * **Alerting**: threshold, pattern and anomaly rules with multi-channel notifications
    * **Monitoring**: recurring health checks, security and performance metrics
    * **Reports**: activity, incident and health reports

    ## Authentication

    Send a JWT in the `Authorization` header as `Bearer <token>`.
    Admin endpoints require one of the configured admin roles.
    """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
    )
    app.state.container = container

    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(WatchpostException, watchpost_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(auth_routes.router)
    app.include_router(admin_routes.router)
    app.include_router(monitoring_routes.router)
    app.include_router(report_routes.router)

    @app.get("/health", tags=["Health"], summary="Liveness Check")
    async def health_check() -> dict:
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": __version__,
            "environment": settings.ENVIRONMENT,
        }

    return app


app = create_app()
