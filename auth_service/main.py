"""FastAPI application wiring for the auth service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.routes import router as api_router
from .config import Settings, get_settings
from .domain.errors import AuthServiceError, InternalError, ValidationError
from .domain.service import AuthService
from .repository import AccountRepository, build_repository

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Install the process-wide log format once at startup."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _error_body(exc: AuthServiceError) -> dict[str, object]:
    return {"success": False, "message": exc.message, "error": exc.code}


def create_app(
    settings: Settings | None = None,
    repository: AccountRepository | None = None,
) -> FastAPI:
    """Build the application; an injected repository replaces the configured backend."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the credential store and service, closing the store on shutdown."""
        store = repository if repository is not None else build_repository(settings)
        app.state.repository = store
        app.state.auth_service = AuthService(store, settings)
        try:
            yield
        finally:
            logger.info("closing credential store")
            store.close()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    @app.exception_handler(AuthServiceError)
    async def handle_auth_error(request: Request, exc: AuthServiceError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("rejected malformed body on %s: %s", request.url.path, exc.errors())
        error = ValidationError("invalid_request")
        return JSONResponse(status_code=error.status_code, content=_error_body(error))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unsupported methods on known paths are reported like unknown paths.
        if exc.status_code in (404, 405):
            return JSONResponse(
                status_code=404,
                content={"success": False, "message": "Endpoint not found"},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(InternalError()))

    app.include_router(api_router)

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)
