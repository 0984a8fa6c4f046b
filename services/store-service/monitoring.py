"""OpenTelemetry tracing and metrics.

Providers export over OTLP when ``TELEMETRY_ENABLED`` is set. Otherwise the
API keeps its no-op providers and every instrument below silently discards
what is recorded, so callers never need to check the flag.

Histograms recorded inside an active span carry exemplars pointing back to
that span.
"""
import logging

from opentelemetry import metrics, trace
from opentelemetry.sdk.resources import Resource

from config import (
    API_VERSION,
    DEPLOYMENT_ENVIRONMENT,
    OTEL_EXPORTER_OTLP_ENDPOINT,
    SERVICE_NAME,
    TELEMETRY_ENABLED,
)

logger = logging.getLogger(__name__)

RESOURCE = Resource.create({
    "service.name": SERVICE_NAME,
    "service.version": API_VERSION,
    "deployment.environment": DEPLOYMENT_ENVIRONMENT,
})


def init_tracing() -> trace.Tracer:
    if TELEMETRY_ENABLED:
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider = TracerProvider(resource=RESOURCE)
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
        )
        trace.set_tracer_provider(provider)
        logger.info("Span export enabled", extra={"endpoint": OTEL_EXPORTER_OTLP_ENDPOINT})

    return trace.get_tracer(SERVICE_NAME)


def init_metrics() -> metrics.Meter:
    if TELEMETRY_ENABLED:
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True),
            export_interval_millis=5000,
        )
        metrics.set_meter_provider(MeterProvider(resource=RESOURCE, metric_readers=[reader]))
        logger.info("Metric export enabled", extra={"endpoint": OTEL_EXPORTER_OTLP_ENDPOINT})

    return metrics.get_meter(SERVICE_NAME)


tracer = init_tracing()
meter = init_metrics()


def _counter(name: str, description: str) -> metrics.Counter:
    return meter.create_counter(f"store.{name}", description=description, unit="1")


# Orders and inventory
orders_placed_counter = _counter("orders.placed", "Orders committed by customers")
orders_cancelled_counter = _counter("orders.cancelled", "Orders cancelled, by initiator")
order_status_changes_counter = _counter("orders.status_changes", "Administrative status transitions")
stock_rejections_counter = _counter("inventory.rejections", "Placements refused by availability or stock checks")
stock_conflicts_counter = _counter("inventory.conflicts", "Stock or order writes that lost a concurrent update")
order_amount_histogram = meter.create_histogram(
    "store.orders.amount",
    description="Total amount of placed orders",
    unit="USD",
)

# Notifications
notification_failures_counter = _counter("notifications.failures", "Notifications the relay did not accept")

# Security
auth_attempts_counter = _counter("auth.attempts", "Authentication attempts")
auth_failures_counter = _counter("auth.failures", "Rejected authentication attempts")
rate_limit_exceeded_counter = _counter("rate_limit.exceeded", "Requests refused by the rate limiter")
suspicious_activity_counter = _counter("security.suspicious_activity", "Bursts of failed requests from one client")
