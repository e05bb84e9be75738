"""FastAPI application factory and configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from synthboard.api.routes import loads, routes, runs
from synthboard.core.config import get_settings
from synthboard.core.exceptions import (
    DuplicatePredictionError,
    MalformedInputError,
    NotFoundError,
)
from synthboard.core.logging import get_logger, setup_logging

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    setup_logging()
    logger.info("application_started", host=settings.api_host, port=settings.api_port)
    yield
    logger.info("application_shutdown")


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "entity": exc.entity},
    )


async def duplicate_prediction_handler(
    request: Request,
    exc: DuplicatePredictionError,
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


async def malformed_input_handler(request: Request, exc: MalformedInputError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="synthboard",
        description="Benchmark tracking for retrosynthesis route prediction",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(DuplicatePredictionError, duplicate_prediction_handler)
    app.add_exception_handler(MalformedInputError, malformed_input_handler)

    app.include_router(runs.router, prefix="/api/v1")
    app.include_router(routes.router, prefix="/api/v1")
    app.include_router(loads.router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
