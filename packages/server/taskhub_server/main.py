"""
Taskhub API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskhub_server.api.v1 import router as api_v1_router
from taskhub_server.api.v1.auth import router as auth_router
from taskhub_server.core.config import get_settings
from taskhub_server.core.errors import (
    ServiceError,
    http_error_handler,
    service_error_handler,
    validation_error_handler,
)
from taskhub_server.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from taskhub_server.core.redis import close_redis
from taskhub_shared.logging import configure_logging

settings = get_settings()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("taskhub.starting", debug=settings.debug)
    yield
    log.info("taskhub.stopping")
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Taskhub",
        description="Organizations, teams and projects with role-based access.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Auth routes (not org-scoped)
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run("taskhub_server.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
