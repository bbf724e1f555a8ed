"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    uvicorn coachgen.main:app --reload

For production:
    gunicorn coachgen.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import coaching, health
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Runs on startup and shutdown. FastAPI calls this automatically when
    the application starts/stops.
    """
    settings = get_settings()

    logger.info(
        "Coachgen API starting",
        extra={
            "version": __version__,
            "mock_mode": {"snowflake": settings.snowflake_mock_mode},
            "collaborator_enabled": settings.collaborator_enabled,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )
        # Not fatal: /health/ready reports it and keeps traffic away

    yield

    logger.info("Coachgen API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Called once at startup in production, or per test with overridden
    dependencies.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Versioned coaching content for golfers.

        ## Content kinds

        - `plan6m`: six-month theme plan (drafts, activated by an admin)
        - `plan3m`: twelve-week practice plan
        - `sessioncoach`: commentary on one practice session

        ## Authentication

        Provide `X-API-Key`. Admins also send `X-User-Id`; server-to-server
        callers use `X-Coaching-Generate-Secret` instead.

        ## Workflow

        1. **Generate**: `POST /api/v1/coaching/{kind}/generate`
           - Returns cached content when the inputs haven't changed
           - Otherwise writes a new immutable version
        2. **Review**: `GET /api/v1/coaching/{kind}/versions`
        3. **Activate**: `POST /api/v1/coaching/{kind}/activate` (admin)
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        coaching.router,
        prefix=f"/api/{settings.api_version}/coaching",
        tags=["Coaching"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Coachgen API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. We log the full
        error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": __version__,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "coachgen.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
