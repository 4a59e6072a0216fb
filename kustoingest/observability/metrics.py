"""
Metrics initialization and meter helper for OpenTelemetry.

`get_meter()` returns a meter from whatever MeterProvider is installed
globally; without one, instruments are no-ops.
"""

from typing import Optional

from opentelemetry import metrics
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv.attributes.service_attributes import SERVICE_NAME

from kustoingest.config import OTELConfig
from kustoingest.observability.otlp_exporter import build_metric_exporter
from kustoingest.observability.tracing import INSTRUMENTATION_SCOPE

_provider: Optional[MeterProvider] = None


def init_metrics(cfg: OTELConfig) -> None:
    """
    Install a global MeterProvider with a periodic OTLP exporter.

    Idempotent: later calls keep the first provider.
    """
    global _provider

    if _provider is not None:
        return

    resource = Resource.create({SERVICE_NAME: cfg.service_name, **cfg.resource_attrs()})
    reader = PeriodicExportingMetricReader(build_metric_exporter(cfg))
    _provider = MeterProvider(resource=resource, metric_readers=[reader])

    metrics.set_meter_provider(_provider)


def get_meter() -> Meter:
    return metrics.get_meter(INSTRUMENTATION_SCOPE)
