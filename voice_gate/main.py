"""FastAPI application hosting the voice embedding and similarity flows."""

from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI

from voice_gate import __version__
from voice_gate.api.voice import router as voice_router
from voice_gate.config import settings
from voice_gate.middleware import RequestLoggingMiddleware
from voice_gate.models.api_models import HealthResponse
from voice_gate.observability import configure_logging, instrument_fastapi_app, setup_observability

configure_logging(settings.log_level)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting voice-gate service", port=settings.port, host=settings.host)

    yield

    logger.info("Shutting down voice-gate service")


app = FastAPI(
    title="Voice Gate",
    description="Voice embedding extraction and similarity scoring for client-side voice authentication",
    version=__version__,
    lifespan=lifespan
)

# Instrumentation adds middleware, so it must run before the app starts
setup_observability(
    service_name="voice-gate",
    service_version=__version__,
    otlp_endpoint=settings.otlp_endpoint,
    enable_console_export=settings.enable_console_export
)
instrument_fastapi_app(app)

app.add_middleware(RequestLoggingMiddleware)
app.include_router(voice_router)


@app.get("/healthz", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        version=__version__
    )


def run() -> None:
    import uvicorn

    uvicorn.run(
        "voice_gate.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False
    )


if __name__ == "__main__":
    run()
