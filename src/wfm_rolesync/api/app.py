"""
wfm_rolesync.api.app

FastAPI app factory for the role synchronization service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/exception handlers.
- Validate directory configuration before serving traffic.
- Initialize and dispose shared infrastructure (DB engine, HTTP client, presence tasks).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from wfm_rolesync import __version__
from wfm_rolesync.api.routers.audit import router as audit_router
from wfm_rolesync.api.routers.dev_auth import router as dev_auth_router
from wfm_rolesync.api.routers.health import router as health_router
from wfm_rolesync.api.routers.roles import router as roles_router
from wfm_rolesync.db.init_db import init_db
from wfm_rolesync.db.session import create_engine, create_sessionmaker
from wfm_rolesync.directory.client import DirectoryClient
from wfm_rolesync.errors import ConfigurationError, DirectoryUnavailable, PrincipalNotFound
from wfm_rolesync.observability.logging import configure_logging, get_logger
from wfm_rolesync.observability.middleware import RequestContextMiddleware
from wfm_rolesync.services.presence import PresenceInvalidator
from wfm_rolesync.settings import Settings
from wfm_rolesync.sync.locks import KeyedLock

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    directory_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
        json_logs=settings.env != "dev",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        # Fail fast: raises ConfigurationError naming every missing variable.
        directory_config = settings.directory_config()

        engine = create_engine(settings)
        sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Prod runs the Alembic migrations instead.
            await init_db(engine)

        http = httpx.AsyncClient(transport=directory_transport)
        presence = PresenceInvalidator(
            sessionmaker, timeout_seconds=settings.presence_timeout_seconds
        )

        app.state.engine = engine
        app.state.sessionmaker = sessionmaker
        app.state.directory_config = directory_config
        app.state.directory = DirectoryClient(config=directory_config, http=http)
        app.state.presence = presence
        app.state.locks = KeyedLock()
        try:
            yield
        finally:
            await presence.drain()
            await http.aclose()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="WFM Role Synchronization Service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(roles_router)
    app.include_router(audit_router)

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(_: Request, exc: ConfigurationError) -> JSONResponse:
        log.error("configuration_error", error=str(exc))
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)}
        )

    @app.exception_handler(PrincipalNotFound)
    async def _principal_not_found(_: Request, exc: PrincipalNotFound) -> JSONResponse:
        return JSONResponse(status_code=HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(DirectoryUnavailable)
    async def _directory_unavailable(_: Request, exc: DirectoryUnavailable) -> JSONResponse:
        return JSONResponse(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Identity directory unavailable"},
        )

    return app


# --- Module Notes -----------------------------------------------------------
# `directory_transport` lets tests and local runs point the directory client at an
# in-process transport instead of the real identity provider.
