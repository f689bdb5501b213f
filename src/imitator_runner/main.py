"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from imitator_runner.config import get_settings
from imitator_runner.api.v1 import imitator, stream, health
from imitator_runner.core.database import init_db
from imitator_runner.core.enums import StreamBackend
from imitator_runner.observability.metrics import init_system_info
from imitator_runner.observability.middleware import MetricsMiddleware
from imitator_runner.runner.coordinator import JobCoordinator
from imitator_runner.runner.storage import storage_root
from imitator_runner.streaming.factory import create_sink

settings = get_settings()

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request fields in the usual ``{"error": message}`` shape."""
    problems = []
    for error in exc.errors():
        # Drop the "body"/"query" location prefix
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    message = "Invalid request: " + "; ".join(problems)
    logger.info(f"{request.method} {request.url.path} rejected. {message}")
    return JSONResponse(status_code=400, content={"error": message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create per-process resources on startup and release them on shutdown."""
    storage_root(settings.STORAGE_ROOT).mkdir(parents=True, exist_ok=True)
    init_db()

    sink = create_sink(settings)
    app.state.sink = sink
    app.state.coordinator = JobCoordinator(settings, sink)
    logger.info(
        f"{settings.APP_NAME} {settings.APP_VERSION} ready: tool '{settings.TOOL_COMMAND}', "
        f"storage {storage_root(settings.STORAGE_ROOT)}, stream backend {settings.STREAM_BACKEND}"
    )

    yield

    if settings.STREAM_BACKEND == StreamBackend.REDIS:
        from imitator_runner.core.redis import close_stream_redis

        await close_stream_redis()


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application
    """
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Add middleware
    app.add_middleware(MetricsMiddleware, skip_paths={f"{settings.API_PREFIX}/metrics"})

    # Initialize metrics
    init_system_info(settings.APP_VERSION)

    # Include routers
    app.include_router(imitator.router, prefix=settings.API_PREFIX, tags=["imitator"])
    app.include_router(stream.router, prefix=settings.API_PREFIX, tags=["stream"])
    app.include_router(health.router, prefix=settings.API_PREFIX, tags=["health"])

    return app


# Create app instance
app = create_app()
