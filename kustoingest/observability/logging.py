"""
Structured JSON logging with optional OpenTelemetry log export.

The package logs through `get_logger()` and never touches handlers on its
own. Applications that want the JSON format call `init_logging()`.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv.attributes.service_attributes import SERVICE_NAME

from kustoingest.config import OTELConfig
from kustoingest.observability.otlp_exporter import build_log_exporter

LOGGER_PREFIX: str = "kustoingest"

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


class JsonTraceFormatter(logging.Formatter):
    """
    Single-line JSON formatter with trace correlation.

    Emits level, logger, message, time, trace_id/span_id when a span is
    active, the service name, and every JSON-serializable `extra` field.
    """

    def __init__(self, service: str = LOGGER_PREFIX) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        span = trace.get_current_span()
        span_ctx = span.get_span_context() if span else None

        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "trace_id": (
                f"{span_ctx.trace_id:032x}" if span_ctx and span_ctx.is_valid else None
            ),
            "span_id": (
                f"{span_ctx.span_id:016x}" if span_ctx and span_ctx.is_valid else None
            ),
            "service": self._service,
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key.startswith("_") or key in payload or key in _RESERVED:
                continue
            try:
                json.dumps({key: value})
            except (TypeError, ValueError):
                continue
            payload[key] = value

        return json.dumps(payload, separators=(",", ":"))


def init_logging(
    level: int = logging.INFO,
    otel: Optional[OTELConfig] = None,
) -> None:
    """
    Configure the package logger for JSON output on stdout.

    Args:
        level: Minimum log level for package loggers.
        otel: When given, also export log records over OTLP.
    """
    service = otel.service_name if otel else LOGGER_PREFIX

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(JsonTraceFormatter(service))

    root = logging.getLogger(LOGGER_PREFIX)
    root.handlers.clear()
    root.addHandler(stdout_handler)
    root.setLevel(level)
    root.propagate = False

    if otel is None:
        return

    resource = Resource.create({SERVICE_NAME: otel.service_name, **otel.resource_attrs()})
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(build_log_exporter(otel))
    )
    root.addHandler(LoggingHandler(level=level, logger_provider=logger_provider))


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger under the package namespace.

    Args:
        name: Sub-logger name, e.g. "ingestion" -> "kustoingest.ingestion".
    """
    if not name:
        return logging.getLogger(LOGGER_PREFIX)
    if name == LOGGER_PREFIX or name.startswith(LOGGER_PREFIX + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")
