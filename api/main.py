"""
FastAPI main application for the Classroom Books API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.config import APIConfig, config as api_config
from api.database import DatabaseManager
from api.errors import APIError, CorruptCredential, InternalFailure, ValidationFailure
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes import auth as auth_routes
from api.routes import books as book_routes
from api.security import TokenService
from utilities.logger import RequestLogContext

logger = structlog.get_logger(__name__)

API_DESCRIPTION = """
A REST API for user accounts and a shared book catalog.

## Features

* **Authentication**: register and log in to receive a JWT bearer token (valid 24 hours)
* **Books**: public browsing with text search, genre/availability filters and pagination
* **Ownership**: only a book's owner or an admin may update or delete it

## Authentication

Protected endpoints expect the token in the Authorization header:

```
Authorization: Bearer your_token_here
```
"""


def _error_body(category: str, message: str, details=None) -> dict:
    return ErrorResponse(error=category, message=message, details=details).model_dump(exclude_none=True)


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def register_exception_handlers(app: FastAPI) -> None:
    """Map every error onto an ErrorResponse body."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        if isinstance(exc, CorruptCredential):
            logger.error("Corrupt credential encountered", path=request.url.path)
        elif isinstance(exc, InternalFailure):
            logger.error("Internal failure", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.category, exc.message, exc.details),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            FieldError(field=_field_name(err.get("loc", ())), message=err.get("msg", "Invalid value"))
            for err in exc.errors()
        ]
        failure = ValidationFailure(details=[d.model_dump() for d in details])
        return JSONResponse(
            status_code=failure.status_code,
            content=_error_body(failure.category, failure.message, failure.details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            category, message = "not_found", "Route not found"
        else:
            category, message = "http_error", str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(category, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=exc)
        settings = getattr(app.state, "settings", None)
        message = str(exc) if settings is not None and settings.debug else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("internal_error", message),
        )


def create_app(settings: APIConfig = api_config) -> FastAPI:
    """
    Build the FastAPI application.

    The token service is built here from ``settings`` and never changes; the
    database connection and stores are attached by the lifespan handler.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Classroom Books API")

        db_manager = DatabaseManager(
            connection_url=settings.mongodb_url,
            database_name=settings.mongodb_database,
            users_collection=settings.users_collection,
            books_collection=settings.books_collection,
        )
        try:
            await db_manager.connect()
        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            raise

        app.state.db_manager = db_manager
        app.state.credential_store = db_manager.credential_store()
        app.state.book_store = db_manager.book_store()

        yield

        logger.info("Shutting down Classroom Books API")
        await db_manager.disconnect()

    app = FastAPI(
        title=settings.api_title,
        description=API_DESCRIPTION,
        version=settings.api_version,
        docs_url="/api-docs",
        openapi_url="/api-docs/openapi.json",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.token_service = TokenService(
        secret=settings.jwt_secret,
        lifetime=settings.token_lifetime,
        algorithm=settings.jwt_algorithm,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        with RequestLogContext(request.method, request.url.path) as ctx:
            response = await call_next(request)
            ctx.log_completed(response.status_code)
            response.headers["X-Request-ID"] = ctx.request_id
            return response

    register_exception_handlers(app)

    app.include_router(auth_routes.router)
    app.include_router(book_routes.router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint."""
        db_status = "unavailable"
        db_manager = getattr(request.app.state, "db_manager", None)
        if db_manager is not None:
            health_info = await db_manager.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="OK" if db_status == "healthy" else "degraded",
            message="Classroom Books API is running",
            timestamp=datetime.now(timezone.utc),
            version=settings.api_version,
            database_status=db_status,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
