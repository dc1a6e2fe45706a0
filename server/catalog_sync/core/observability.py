"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "tour-catalog-sync"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Sync metrics
SYNC_RUNS = Counter(
    'tour_sync_runs_total',
    'Catalog sync runs by final status',
    ['status', 'dry_run'],
    registry=REGISTRY
)

SYNC_RUN_DURATION = Histogram(
    'tour_sync_run_duration_seconds',
    'Catalog sync run duration in seconds',
    buckets=(10, 30, 60, 300, 600, 1800, 3600, 7200, 10800),
    registry=REGISTRY
)

SYNC_IN_PROGRESS = Gauge(
    'tour_sync_in_progress',
    'Whether a catalog sync is currently running in this process',
    registry=REGISTRY
)

TOURS_SYNCED = Counter(
    'tour_sync_tours_total',
    'Tours reconciled by brand and outcome',
    ['brand', 'outcome'],
    registry=REGISTRY
)

DEPARTURES_SYNCED = Counter(
    'tour_sync_departures_total',
    'Departures reconciled by brand and outcome',
    ['brand', 'outcome'],
    registry=REGISTRY
)

RECORDS_MARKED_INACTIVE = Counter(
    'tour_sync_marked_inactive_total',
    'Rows soft-deleted by the staleness sweep',
    ['brand', 'entity'],
    registry=REGISTRY
)

SYNC_ERRORS = Counter(
    'tour_sync_errors_total',
    'Errors recorded during catalog sync',
    ['brand', 'error_type'],
    registry=REGISTRY
)

MEDIA_IMPORT_RESULTS = Counter(
    'tour_media_import_items_total',
    'Media batch import items by result',
    ['result'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing, exporting over OTLP when configured."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )
    trace.set_tracer_provider(provider)
    return trace.get_tracer(SERVICE_NAME)


def setup_metrics():
    """Setup OpenTelemetry metrics, exporting over OTLP when configured."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
    return metrics.get_meter(SERVICE_NAME)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for catalog sync business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
        """Record one served HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)

    @staticmethod
    def record_sync_run(status: str, dry_run: bool, duration_seconds: float):
        """Record a finished sync run."""
        SYNC_RUNS.labels(status=status, dry_run=str(dry_run).lower()).inc()
        SYNC_RUN_DURATION.observe(duration_seconds)

    @staticmethod
    def set_sync_in_progress(in_progress: bool):
        """Flag whether a sync is running."""
        SYNC_IN_PROGRESS.set(1 if in_progress else 0)

    @staticmethod
    def record_tours(brand: str, created: int, updated: int):
        """Record reconciled tours for a brand."""
        TOURS_SYNCED.labels(brand=brand, outcome="created").inc(created)
        TOURS_SYNCED.labels(brand=brand, outcome="updated").inc(updated)

    @staticmethod
    def record_departures(brand: str, created: int, updated: int):
        """Record reconciled departures for a brand."""
        DEPARTURES_SYNCED.labels(brand=brand, outcome="created").inc(created)
        DEPARTURES_SYNCED.labels(brand=brand, outcome="updated").inc(updated)

    @staticmethod
    def record_marked_inactive(brand: str, tours: int, departures: int):
        """Record rows soft-deleted by the sweep."""
        RECORDS_MARKED_INACTIVE.labels(brand=brand, entity="tour").inc(tours)
        RECORDS_MARKED_INACTIVE.labels(brand=brand, entity="departure").inc(departures)

    @staticmethod
    def record_sync_error(brand: str, error_type: str):
        """Record one sync error."""
        SYNC_ERRORS.labels(brand=brand, error_type=error_type).inc()

    @staticmethod
    def record_media_import(successful: int, failed: int, skipped: int):
        """Record the outcome of a media batch import."""
        MEDIA_IMPORT_RESULTS.labels(result="successful").inc(successful)
        MEDIA_IMPORT_RESULTS.labels(result="failed").inc(failed)
        MEDIA_IMPORT_RESULTS.labels(result="skipped").inc(skipped)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
