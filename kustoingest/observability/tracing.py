"""
OpenTelemetry tracing initialization and tracer helper.

Library code only ever calls `get_tracer()`. Spans are no-ops until the
application installs a TracerProvider, either its own or via `init_tracing()`.
"""

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.semconv.attributes.service_attributes import SERVICE_NAME
from opentelemetry.trace import Tracer

from kustoingest.config import OTELConfig
from kustoingest.observability.otlp_exporter import build_trace_exporter

INSTRUMENTATION_SCOPE: str = "kustoingest"


def init_tracing(cfg: OTELConfig) -> None:
    """
    Install a global TracerProvider exporting spans over OTLP.

    Args:
        cfg: OpenTelemetry export settings.
    """
    resource = Resource.create({SERVICE_NAME: cfg.service_name, **cfg.resource_attrs()})

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(build_trace_exporter(cfg)))
    trace.set_tracer_provider(provider)


def get_tracer(name: str | None = None) -> Tracer:
    """
    Get a Tracer for the given instrumentation scope.

    Args:
        name: Scope name. Defaults to the package scope.
    """
    return trace.get_tracer(name or INSTRUMENTATION_SCOPE)
