"""OpenTelemetry tracing for DAG operations.

Spans are emitted around store mutations and registry queries so the
telemetry pipeline can see how long cycle checks and scheduling take per
channel. Tracing is off until :func:`initialize_telemetry` is called.
"""

from typing import Optional, Dict, Any, Callable, Iterator
from contextlib import contextmanager
from functools import wraps
import os

from loguru import logger
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Status, StatusCode, Tracer


class TelemetryConfig:
    """Configuration for OpenTelemetry tracing."""

    def __init__(
        self,
        service_name: str = "taskweave-dag",
        exporter_type: str = "console",  # console, otlp
        otlp_endpoint: Optional[str] = None,
        enabled: bool = True,
        span_exporter: Optional[SpanExporter] = None
    ):
        """Initialize telemetry configuration.

        Args:
            service_name: Name of the service for tracing
            exporter_type: Type of exporter (console, otlp)
            otlp_endpoint: OTLP endpoint URL (e.g., "http://localhost:4317")
            enabled: Whether tracing is enabled
            span_exporter: Explicit exporter; overrides ``exporter_type``
        """
        self.service_name = service_name
        self.exporter_type = exporter_type
        self.otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
        self.enabled = enabled
        self.span_exporter = span_exporter


def setup_telemetry(config: TelemetryConfig) -> Optional[Tracer]:
    """Build a tracer for the configured exporter.

    The provider is kept local rather than installed globally so several
    configurations can coexist in one process.

    Args:
        config: Telemetry configuration

    Returns:
        OpenTelemetry tracer, or None when disabled
    """
    if not config.enabled:
        logger.info("[TELEMETRY] Tracing disabled")
        return None

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: config.service_name}))

    if config.span_exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(config.span_exporter))
    elif config.exporter_type == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint)))
        logger.info(f"[TELEMETRY] Exporting spans to OTLP endpoint {config.otlp_endpoint}")
    elif config.exporter_type == "console":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("[TELEMETRY] Exporting spans to console")
    else:
        raise ValueError(f"Unknown telemetry exporter: {config.exporter_type}")

    return provider.get_tracer("taskweave.dag")


class DagTracer:
    """Thin wrapper around an OpenTelemetry tracer."""

    def __init__(self, tracer: Optional[Tracer] = None):
        self.tracer = tracer

    @property
    def enabled(self) -> bool:
        return self.tracer is not None

    @contextmanager
    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
        """Open a span; yields None when tracing is off."""
        if self.tracer is None:
            yield None
            return

        with self.tracer.start_as_current_span(
            name, record_exception=False, set_status_on_exception=False
        ) as span:
            for key, value in (attributes or {}).items():
                if value is not None:
                    span.set_attribute(key, value)
            try:
                yield span
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            span.set_status(Status(StatusCode.OK))


_global_tracer: Optional[DagTracer] = None


def get_tracer() -> DagTracer:
    """Get the process-wide tracer (a no-op tracer until initialized)."""
    global _global_tracer
    if _global_tracer is None:
        _global_tracer = DagTracer()
    return _global_tracer


def initialize_telemetry(
    service_name: str = "taskweave-dag",
    exporter_type: str = "console",
    otlp_endpoint: Optional[str] = None,
    enabled: bool = True,
    span_exporter: Optional[SpanExporter] = None
) -> DagTracer:
    """Initialize the process-wide tracer.

    Returns:
        The new DagTracer
    """
    global _global_tracer

    config = TelemetryConfig(
        service_name=service_name,
        exporter_type=exporter_type,
        otlp_endpoint=otlp_endpoint,
        enabled=enabled,
        span_exporter=span_exporter
    )
    _global_tracer = DagTracer(setup_telemetry(config))
    return _global_tracer


def trace_method(span_name: str, **span_attributes):
    """Decorator to trace a method.

    The tracer is taken from ``self.tracer`` when set, otherwise the
    process-wide tracer. ``self.channel_id`` is recorded when present.

    Usage:
        @trace_method("dag.add_dependency")
        def add_dependency(self, from_task_id, to_task_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            tracer = getattr(self, "tracer", None) or get_tracer()
            if not tracer.enabled:
                return func(self, *args, **kwargs)

            attributes = dict(span_attributes)
            attributes["dag.channel_id"] = getattr(self, "channel_id", None)
            with tracer.span(span_name, attributes):
                return func(self, *args, **kwargs)

        return wrapper
    return decorator


def initialize_telemetry_from_settings(settings) -> DagTracer:
    """Initialize the process-wide tracer from the ``telemetry_*`` settings fields."""
    return initialize_telemetry(
        service_name=settings.telemetry_service_name,
        exporter_type=settings.telemetry_exporter,
        otlp_endpoint=settings.telemetry_otlp_endpoint,
        enabled=settings.telemetry_enabled
    )
