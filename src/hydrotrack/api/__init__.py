"""Hydrotrack API service.

FastAPI application providing:
- Test package CRUD and drawing/component assignment
- Certificate drafting, final submission and numbering
- Seven-stage acceptance workflow with sign-offs and edit history
- Consistent JSON errors and request ID correlation

This module provides the app factory pattern for creating configured
FastAPI instances suitable for testing and production deployment.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hydrotrack.api.middleware import (
    ErrorHandlerMiddleware,
    GatewayIdentityMiddleware,
    RequestIDMiddleware,
    register_exception_handlers,
)
from hydrotrack.api.routers import (
    assignments_router,
    certificates_router,
    packages_router,
    workflow_router,
)
from hydrotrack.core.logging import configure_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from hydrotrack.core.config import Settings

logger = logging.getLogger(__name__)

API_TITLE = "Hydrotrack API"
API_DESCRIPTION = """
Test package lifecycle for construction QA.

## Areas

- **/api/projects/{project_id}/packages** - package creation and listing
- **/api/packages/{package_id}** - package details, assignments, certificate, workflow

Requests are authenticated upstream; the gateway passes the caller in the
X-Actor-Id, X-Actor-Name and X-Actor-Roles headers.

## Documentation

- OpenAPI spec: `/api/openapi.json`
- Swagger UI: `/api/docs`
"""


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    from hydrotrack.db import close_engine

    await close_engine()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. If not provided, routes load
            settings from the environment on first use.

    Returns:
        Configured FastAPI application ready to serve requests.

    Example:
        app = create_app()

        # For testing
        app = create_app(Settings(environment="dev", debug=True))
    """
    version = settings.app_version if settings else "0.1.0"
    configure_logging(settings.log_level if settings else "INFO")

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )

    # Store settings in app state for access in routes
    app.state.settings = settings

    register_exception_handlers(app)
    _add_middleware(app, settings)
    _include_routers(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for container orchestration."""
        return {"status": "healthy"}

    logger.info("Hydrotrack API application created (version=%s)", version)
    return app


def _add_middleware(app: FastAPI, settings: Settings | None) -> None:
    """Add middleware to the application.

    Starlette wraps each added middleware around the previous ones, so the
    last one added runs first. Request IDs are bound before identity and
    error handling run so error bodies carry the request ID.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(GatewayIdentityMiddleware)
    app.add_middleware(RequestIDMiddleware)

    allowed_origins = ["http://localhost:3000", "http://localhost:8000"]
    if settings and settings.is_production:
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def _include_routers(app: FastAPI) -> None:
    app.include_router(packages_router, prefix="/api")
    app.include_router(assignments_router, prefix="/api")
    app.include_router(certificates_router, prefix="/api")
    app.include_router(workflow_router, prefix="/api")
