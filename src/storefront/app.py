"""
Storefront - FastAPI Application
HTTP layer

This module implements the FastAPI application for the Bookstore inventory
service. Startup waits for the store (bounded retry) and connects the cache
best-effort; a missing cache only disables caching.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from ..shared.caching import CacheConfig, CacheInvalidator, RedisCache
from ..shared.config import Settings, get_config_summary, get_settings
from ..shared.errors import BookValidationError, InternalError, InventoryError
from ..shared.logging_config import initialize_logging
from ..shared.schemas import REQUIRED_BOOK_FIELDS
from ..stockroom.database import DatabaseManager
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware, SecurityHeadersMiddleware
from .routers import books, health

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    """Collapse pydantic errors into the single message the API returns."""
    errors = exc.errors()
    for error in errors:
        if error.get("type") == "json_invalid":
            return "Invalid JSON body"
        loc = error.get("loc", ())
        if loc == ("body",) or (len(loc) > 1 and loc[0] == "body" and loc[-1] in REQUIRED_BOOK_FIELDS):
            return BookValidationError.default_message

    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return f"Invalid {field}: {message}" if field else message


def create_app(
    settings: Optional[Settings] = None,
    db_manager: Optional[DatabaseManager] = None,
    cache: Optional[RedisCache] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (read from the environment when omitted)
        db_manager: Store connection manager to use instead of building one
        cache: Cache client to use instead of building one

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.
        Handles startup and shutdown events for the FastAPI application.
        """
        logger.info("Starting Bookstore inventory service...", extra={"config": get_config_summary(settings)})

        app.state.start_time = time.monotonic()
        app.state.db_manager = db_manager or DatabaseManager(settings.database)
        app.state.cache = cache or RedisCache(CacheConfig.from_settings(settings.redis))

        try:
            # Startup is aborted if the store never answers
            await app.state.db_manager.connect_with_retry()
            if settings.database.db_create_schema:
                await app.state.db_manager.create_schema()
            if settings.database.db_seed_sample_data:
                await app.state.db_manager.seed_sample_books()
            logger.info("Database initialized successfully")

            if await app.state.cache.connect():
                logger.info("Cache connected successfully")
            else:
                logger.warning("Cache unavailable, serving from the database only")
            app.state.invalidator = CacheInvalidator(app.state.cache)

            logger.info("Bookstore inventory service startup completed")

            yield

        except Exception as e:
            logger.error(f"Failed to start Bookstore inventory service: {e}")
            raise

        finally:
            logger.info("Shutting down Bookstore inventory service...")

            try:
                await app.state.cache.disconnect()
                logger.info("Cache connection closed")

                await app.state.db_manager.close()
                logger.info("Database connections closed")

            except Exception as e:
                logger.error(f"Error during shutdown: {e}")

            logger.info("Bookstore inventory service shutdown completed")

    app = FastAPI(
        title=settings.api.api_title,
        description=settings.api.api_description,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )
    app.state.settings = settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600
    )

    # Add custom middleware (order matters - last added is executed first)
    app.add_middleware(ErrorHandlingMiddleware)
    if settings.api.security_headers:
        app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(LoggingMiddleware)

    # Include routers, at the root and again under the API prefix
    for prefix in ("", settings.api.api_prefix):
        app.include_router(health.router, prefix=prefix, tags=["Health"], include_in_schema=not prefix)
        app.include_router(books.router, prefix=prefix, tags=["Books"], include_in_schema=not prefix)

    @app.exception_handler(InventoryError)
    async def inventory_exception_handler(request: Request, exc: InventoryError):
        """Map domain errors to their HTTP status."""
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code}: {exc.message}", extra={"details": exc.details})
        else:
            logger.info(f"{exc.error_code}: {exc.message}")

        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed path IDs are unknown books; malformed bodies are 400s."""
        if any(error.get("loc", ("",))[0] == "path" for error in exc.errors()):
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Book not found"}
            )

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": _validation_message(exc)}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "Endpoint not found"
        elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            message = "Method not allowed"
        else:
            message = str(exc.detail)

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": message},
            headers=getattr(exc, "headers", None)
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        error = InternalError()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    return app


# Create the application instance
app = create_app()


def run_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: bool = False,
    workers: int = 1
):
    """
    Run the FastAPI server with uvicorn.

    Args:
        host: Host to bind to (defaults to HOST)
        port: Port to bind to (defaults to PORT)
        reload: Enable auto-reload for development
        workers: Number of worker processes
    """
    settings = get_settings()

    initialize_logging(
        level=settings.monitoring.log_level.value,
        format_type=settings.monitoring.log_format,
        log_file=settings.monitoring.log_file
    )

    uvicorn.run(
        "src.storefront.app:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
        reload=reload,
        workers=workers if not reload else 1,
        log_config=None,
        access_log=settings.debug
    )


if __name__ == "__main__":
    # Development server
    settings = get_settings()
    run_server(reload=settings.debug)
