"""
Observability bootstrap and the ingestion metric instruments.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from opentelemetry.metrics import Counter, Histogram

from kustoingest.config import IngestSettings
from kustoingest.observability.logging import init_logging
from kustoingest.observability.metrics import get_meter, init_metrics
from kustoingest.observability.tracing import init_tracing


def init_observability(settings: IngestSettings | None = None, export: bool = True) -> None:
    """
    Initialize logging, tracing, and metrics for an application using the client.

    Args:
        settings: Settings to read the log level and OTLP config from.
        export: When False, only configure JSON logging on stdout.
    """
    settings = settings or IngestSettings.load()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if not export:
        init_logging(level=level)
        return

    init_logging(level=level, otel=settings.otel)
    init_tracing(settings.otel)
    init_metrics(settings.otel)


@dataclass(frozen=True)
class IngestInstruments:
    streamed: Counter
    stream_failures: Counter
    staged: Counter
    mapping_refreshes: Counter
    stream_bytes: Histogram
    stream_latency_ms: Histogram


@lru_cache(maxsize=1)
def get_ingest_instruments() -> IngestInstruments:
    """
    Create OpenTelemetry instruments for ingestion calls.

    Returns:
        IngestInstruments with:
            streamed: successful streaming writes.
            stream_failures: failed streaming calls.
            staged: requests handed to the staging collaborator.
            mapping_refreshes: management queries issued by the mapping cache.
            stream_bytes: compressed streaming payload size (bytes).
            stream_latency_ms: end-to-end streaming call latency (ms).
    """
    meter = get_meter()

    return IngestInstruments(
        streamed=meter.create_counter(
            name="kusto_ingest_streamed",
            description="Count of successful streaming ingestion writes",
            unit="1",
        ),
        stream_failures=meter.create_counter(
            name="kusto_ingest_stream_failed",
            description="Count of failed streaming ingestion calls",
            unit="1",
        ),
        staged=meter.create_counter(
            name="kusto_ingest_staged",
            description="Count of requests handed to queued ingestion",
            unit="1",
        ),
        mapping_refreshes=meter.create_counter(
            name="kusto_ingest_mapping_refreshes",
            description="Count of ingestion mapping list refreshes",
            unit="1",
        ),
        stream_bytes=meter.create_histogram(
            name="kusto_ingest_stream_compressed_bytes",
            description="Compressed size of streamed payloads",
            unit="By",
        ),
        stream_latency_ms=meter.create_histogram(
            name="kusto_ingest_stream_latency_ms",
            description="Streaming ingestion call latency in milliseconds",
            unit="ms",
        ),
    )
