"""DealSpotter Backend - Main FastAPI Application

Basket price comparison across Kenyan retailers.

This module creates and configures the FastAPI application, including:
- Long-lived components (basket cache, candidate source, matcher, basket service)
- Middleware (request ID correlation, CORS)
- Exception handlers
- Health and observability endpoints
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from config import settings
from database import SessionLocal, init_db
from common.exceptions import DealSpotterError, NotFoundError, ValidationError

# Observability
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.router import router as observability_router

# Matching core
from matching.cache import BasketCache
from matching.candidate_source import SqlCandidateSource
from matching.pipeline import MatcherConfig, StagedMatcher
from basket.service import BasketComparisonService

# Domain Routers
from basket.router import router as basket_router
from catalog.router import router as catalog_router
from feedback.router import router as feedback_router

APP_VERSION = "0.1.0"

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    content = {"success": False, "error": error, "message": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain and framework errors to JSON error responses."""

    @app.exception_handler(DealSpotterError)
    async def domain_exception_handler(request: Request, exc: DealSpotterError) -> JSONResponse:
        """Handle domain errors.

        ValidationError maps to 400, NotFoundError to 404, anything else to 500.
        """
        if isinstance(exc, ValidationError):
            status_code = status.HTTP_400_BAD_REQUEST
        elif isinstance(exc, NotFoundError):
            status_code = status.HTTP_404_NOT_FOUND
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            logger.error(f"{exc.error_code} on {request.method} {request.url.path}", exc_info=exc)

        if status_code >= 500:
            return _error_response(
                status_code,
                exc.error_code,
                "An unexpected error occurred. Please try again later.",
            )

        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
        return _error_response(
            status_code,
            exc.error_code,
            exc.message,
            details=jsonable_encoder(exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic request validation errors as 400 with field details."""
        logger.warning(f"Validation error on {request.method} {request.url.path}")
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            "validation_error",
            "Request validation failed",
            details=jsonable_encoder(exc.errors()),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Handle database errors.

        Logs the full error but returns a generic message to prevent
        information leakage.
        """
        logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "database_error",
            "A database error occurred. Please try again later.",
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions with a generic 500."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "An unexpected error occurred. Please try again later.",
        )


def create_app(
    session_factory: Optional[sessionmaker] = None,
    create_tables: Optional[bool] = None
) -> FastAPI:
    """Application factory.

    Args:
        session_factory: Session factory for the matcher's candidate source
            (defaults to database.SessionLocal)
        create_tables: Create missing tables on startup
            (defaults to AUTO_CREATE_TABLES)

    Returns:
        Configured FastAPI application
    """
    session_factory = session_factory or SessionLocal
    if create_tables is None:
        create_tables = settings.AUTO_CREATE_TABLES

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build shared components on startup; release the worker pool on shutdown."""
        logger.info("DealSpotter API starting up...")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        if create_tables:
            init_db(bind=session_factory.kw["bind"])

        cache = BasketCache(
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            max_keys=settings.CACHE_MAX_KEYS,
        )
        matcher = StagedMatcher(
            SqlCandidateSource(session_factory),
            config=MatcherConfig.from_settings(settings),
        )
        basket_service = BasketComparisonService(
            matcher,
            cache,
            max_workers=settings.MATCH_MAX_WORKERS,
        )

        app.state.basket_cache = cache
        app.state.matcher = matcher
        app.state.basket_service = basket_service

        yield

        logger.info("DealSpotter API shutting down...")
        basket_service.close()

    docs_enabled = settings.ENVIRONMENT != "production"
    app = FastAPI(
        title="DealSpotter API",
        description="Shopping basket matching and price comparison across retailers",
        version=APP_VERSION,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    # =========================================================================
    # MIDDLEWARE CONFIGURATION
    # =========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Added last so it runs first and every log line carries the request ID
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # =========================================================================
    # ROUTER REGISTRATION
    # =========================================================================

    app.include_router(observability_router)
    app.include_router(basket_router)
    app.include_router(feedback_router)
    app.include_router(catalog_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        """Root endpoint - API information."""
        return {
            "name": "DealSpotter API",
            "version": APP_VERSION,
            "status": "running",
            "docs": "/docs" if docs_enabled else None,
        }

    return app


app = create_app()


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
