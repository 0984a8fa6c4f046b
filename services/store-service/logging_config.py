"""Structured logging configuration."""
import logging
import sys

from pythonjsonlogger.json import JsonFormatter
from opentelemetry import trace

from config import LOG_LEVEL, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME, TELEMETRY_ENABLED

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


class TraceContextFilter(logging.Filter):
    """Stamps each record with the ids of the active span, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace.get_current_span().get_span_context()
        if context.is_valid:
            record.trace_id = f"{context.trace_id:032x}"
            record.span_id = f"{context.span_id:016x}"
        return True


def build_formatter() -> JsonFormatter:
    return JsonFormatter(
        "{asctime}{levelname}{name}{message}",
        style="{",
        rename_fields={"levelname": "level", "message": "msg", "asctime": "time"},
        static_fields={"service": SERVICE_NAME},
    )


def _otlp_log_handler() -> logging.Handler:
    """Handler shipping records to the collector (experimental OpenTelemetry logs SDK)."""
    from opentelemetry._logs import set_logger_provider
    from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
    from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

    from monitoring import RESOURCE

    provider = LoggerProvider(resource=RESOURCE)
    provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
    )
    set_logger_provider(provider)
    return LoggingHandler(level=logging.INFO, logger_provider=provider)


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Route all logging to JSON on stdout, plus OTLP when telemetry is on."""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    stdout = logging.StreamHandler(sys.stdout)
    stdout.addFilter(TraceContextFilter())
    stdout.setFormatter(build_formatter())
    root.addHandler(stdout)

    if TELEMETRY_ENABLED:
        try:
            root.addHandler(_otlp_log_handler())
        except Exception as e:
            root.warning("OTLP log export disabled", extra={"error": str(e)})

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
