"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mcprouter import __version__
from mcprouter.config.logging import setup_logging
from mcprouter.config.settings import Settings, get_settings
from mcprouter.exceptions import EmailNotVerified, MCPRouterError, ResendCooldownActive
from mcprouter.storage.database import init_db
from mcprouter.web.auth.session import VERIFY_REQUEST_PATH
from mcprouter.web.dependencies import Services, build_services, get_services
from mcprouter.web.health import check_health
from mcprouter.web.middleware import RateLimitMiddleware, RequestIDMiddleware
from mcprouter.web.routes.auth import router as auth_router
from mcprouter.web.routes.keys import router as keys_router
from mcprouter.web.routes.mcp_session import router as mcp_session_router
from mcprouter.web.routes.webauthn import router as webauthn_router

if TYPE_CHECKING:
    from starlette.types import Lifespan

logger = structlog.get_logger(__name__)

RATE_LIMITED_PREFIXES = ("/api/auth/", "/api/webauthn/")
# MCP servers call the session exchange once per end-user request
RATE_LIMIT_EXEMPT_PREFIXES = ("/api/auth/mcp/",)


def _lifespan(services: Services) -> Lifespan[FastAPI]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services.settings.create_tables:
            await init_db(services.engine)
            logger.info("tables_created")
        yield
        close = getattr(services.kv, "close", None)
        if close is not None:
            await close()

    return lifespan


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MCPRouterError)
    async def mcprouter_error_handler(request: Request, exc: MCPRouterError) -> JSONResponse:
        content: dict[str, object] = {"error": exc.message}
        headers: dict[str, str] = {}
        if isinstance(exc, EmailNotVerified):
            content["redirect"] = VERIFY_REQUEST_PATH
        if isinstance(exc, ResendCooldownActive):
            headers["Retry-After"] = str(exc.remaining_seconds)
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=type(exc).__name__)
        else:
            logger.info("request_rejected", path=request.url.path, error=type(exc).__name__)
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)
    services = services or build_services(settings)

    app = FastAPI(
        title="MCP Router",
        description="Passkey authentication and API-key session resolution for MCP servers",
        version=__version__,
        lifespan=_lifespan(services),
    )
    app.state.services = services

    _install_error_handlers(app)

    # Middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "X-API-Key", "X-Request-ID"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=60,
        prefixes=RATE_LIMITED_PREFIXES,
        exempt_prefixes=RATE_LIMIT_EXEMPT_PREFIXES,
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(webauthn_router)
    app.include_router(auth_router)
    app.include_router(mcp_session_router)
    app.include_router(keys_router)

    @app.get("/api/health")
    async def health_check(services: Services = Depends(get_services)) -> dict[str, object]:
        return await check_health(services)

    logger.info("app_created", kv_backend=settings.kv_backend)
    return app
