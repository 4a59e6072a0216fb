"""
Factory functions for OTLP gRPC exporters (logs, metrics, traces).
"""

from typing import Dict, Optional

from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

from kustoingest.config import OTELConfig


def _common_kwargs(cfg: OTELConfig) -> Dict[str, object]:
    headers: Optional[Dict[str, str]] = (
        dict(h.split("=", 1) for h in cfg.otlp_headers.split(",") if "=" in h)
        if cfg.otlp_headers
        else None
    )

    return {
        "endpoint": cfg.otlp_endpoint,
        "headers": headers,
        "insecure": cfg.insecure,
    }


def build_trace_exporter(cfg: OTELConfig) -> OTLPSpanExporter:
    return OTLPSpanExporter(**_common_kwargs(cfg))


def build_metric_exporter(cfg: OTELConfig) -> OTLPMetricExporter:
    return OTLPMetricExporter(**_common_kwargs(cfg))


def build_log_exporter(cfg: OTELConfig) -> OTLPLogExporter:
    return OTLPLogExporter(**_common_kwargs(cfg))
