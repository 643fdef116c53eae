"""
Logging, tracing and metrics setup for voice-gate.
"""

import asyncio
import logging
from functools import wraps
from typing import Callable, Optional

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = structlog.get_logger()

# Global tracer and meter
tracer: Optional[trace.Tracer] = None
meter: Optional[metrics.Meter] = None

# Metrics instruments
attempt_duration: Optional[metrics.Histogram] = None
enrollment_counter: Optional[metrics.Counter] = None
login_counter: Optional[metrics.Counter] = None
login_score_histogram: Optional[metrics.Histogram] = None


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Route stdlib logging and structlog through one structured pipeline.

    Args:
        log_level: Root log level name
        json_output: Render JSON lines; otherwise a console-friendly format
    """
    logging.basicConfig(format="%(message)s", level=log_level.upper())

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_observability(
    service_name: str = "voice-gate",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False
) -> None:
    """
    Set up OpenTelemetry tracing and metrics.

    Args:
        service_name: Name of the service for tracing
        service_version: Version of the service
        otlp_endpoint: OTLP endpoint for trace/metric export
        enable_console_export: Whether to print spans and metrics to the console
    """
    global tracer, meter
    global attempt_duration, enrollment_counter, login_counter, login_score_histogram

    logger.info(
        "Setting up observability",
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint
    )

    resource = Resource.create({
        "service.name": service_name,
        "service.version": service_version,
    })

    trace_provider = TracerProvider(resource=resource)
    if otlp_endpoint:
        trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    if enable_console_export:
        trace_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer(__name__)

    metric_readers = []
    if otlp_endpoint:
        metric_readers.append(
            PeriodicExportingMetricReader(
                exporter=OTLPMetricExporter(endpoint=otlp_endpoint),
                export_interval_millis=30000
            )
        )
    if enable_console_export:
        metric_readers.append(
            PeriodicExportingMetricReader(
                exporter=ConsoleMetricExporter(),
                export_interval_millis=60000
            )
        )

    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=metric_readers))
    meter = metrics.get_meter(__name__)

    attempt_duration = meter.create_histogram(
        name="voice_attempt_duration_seconds",
        description="Duration of enrollment and login attempts",
        unit="s"
    )
    enrollment_counter = meter.create_counter(
        name="voice_enrollments_total",
        description="Total number of voice enrollments",
        unit="1"
    )
    login_counter = meter.create_counter(
        name="voice_logins_total",
        description="Total number of voice login attempts",
        unit="1"
    )
    login_score_histogram = meter.create_histogram(
        name="voice_login_similarity_score",
        description="Similarity scores of voice login attempts",
        unit="1"
    )

    logger.info("Observability setup completed")


def instrument_fastapi_app(app) -> None:
    """Instrument a FastAPI application and outgoing httpx calls."""
    if tracer is None:
        logger.warning("Tracer not initialized, call setup_observability() first")
        return

    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()
    logger.info("FastAPI application instrumented with OpenTelemetry")


def trace_function(operation_name: Optional[str] = None):
    """
    Decorator to trace function execution.

    Args:
        operation_name: Optional custom operation name for the span
    """
    def decorator(func: Callable) -> Callable:
        def _span_name() -> str:
            return operation_name or f"{func.__module__}.{func.__name__}"

        def _record_failure(span, e: Exception) -> None:
            span.record_exception(e)
            span.set_attribute("success", False)
            span.set_attribute("error.type", type(e).__name__)

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            if tracer is None:
                return await func(*args, **kwargs)
            with tracer.start_as_current_span(_span_name()) as span:
                span.set_attribute("function.name", func.__name__)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _record_failure(span, e)
                    raise
                span.set_attribute("success", True)
                return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            if tracer is None:
                return func(*args, **kwargs)
            with tracer.start_as_current_span(_span_name()) as span:
                span.set_attribute("function.name", func.__name__)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _record_failure(span, e)
                    raise
                span.set_attribute("success", True)
                return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def record_enrollment_metrics(success: bool, processing_time: float) -> None:
    """Record one enrollment attempt. No-op until setup_observability() runs."""
    if enrollment_counter is None or attempt_duration is None:
        return

    attributes = {"operation": "enrollment", "success": str(success).lower()}
    enrollment_counter.add(1, attributes)
    attempt_duration.record(processing_time, attributes)


def record_login_metrics(success: bool, processing_time: float, similarity_score: Optional[float]) -> None:
    """Record one login attempt. No-op until setup_observability() runs."""
    if login_counter is None or attempt_duration is None:
        return

    attributes = {"operation": "login", "success": str(success).lower()}
    login_counter.add(1, attributes)
    attempt_duration.record(processing_time, attributes)

    if similarity_score is not None and login_score_histogram is not None:
        login_score_histogram.record(similarity_score, {"success": str(success).lower()})
