import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware

from app.api.main import api_router
from app.core.config import settings
from app.core.errors import ConsoleError
from app.core.pool import PoolRegistry
from app.core.session_cookie import apply_no_cache

_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """One PoolRegistry per process; every session pool is closed on shutdown."""
    app.state.registry = PoolRegistry()
    try:
        yield
    finally:
        await app.state.registry.destroy_all()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: standardized error response format
# ---------------------------------------------------------------------------


@app.exception_handler(ConsoleError)
async def console_error_handler(request: Request, exc: ConsoleError) -> JSONResponse:
    """Render core errors as { success: false, message, error } with no-cache headers."""
    _logger.warning(
        "%s on %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc.error or exc.message,
    )
    response = JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": exc.error},
    )
    return apply_no_cache(response)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with a human-readable message instead of raw Pydantic errors."""
    errors = exc.errors()
    messages = []
    for err in errors:
        loc = " → ".join(str(l) for l in err.get("loc", []) if l != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    response = JSONResponse(
        status_code=422,
        content={"success": False, "message": "; ".join(messages), "error": None},
    )
    return apply_no_cache(response)


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions; log and return 500 with safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    error = None
    if settings.ENVIRONMENT == "local":
        error = str(exc)
    response = JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": error},
    )
    return apply_no_cache(response)


# Set all CORS enabled origins
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
