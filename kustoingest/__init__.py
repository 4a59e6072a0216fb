"""
kustoingest: ingestion front-end for a hosted analytical database.

This package contains:
- Ingestion: from_file / from_reader (queued) and stream (low latency)
- composable ingestion options and the typed properties they build
- the mapping-reference cache, resource-manager registry, and streaming
  connection handling
- observability utilities (logging, tracing, metrics)
"""

from kustoingest.context import CallContext
from kustoingest.errors import (
    CanceledError,
    IngestError,
    Kind,
    MappingNotFoundError,
    Op,
    PayloadTooLargeError,
)
from kustoingest.ingestion import Ingestion, is_local_path
from kustoingest.models import (
    DataFormat,
    IngestionProperties,
    ValidationImplication,
    ValidationOption,
    ValPolicy,
)
from kustoingest.options import (
    FileOption,
    delete_source,
    file_format,
    flush_immediately,
    if_not_exists,
    ignore_size_limit,
    ingestion_mapping,
    ingestion_mapping_ref,
    tags,
    validation_policy,
)
from kustoingest.registry import ManagerRegistry
from kustoingest.streaming import MAX_STREAM_SIZE, RestStreamConnection

__all__ = [
    "CallContext",
    "CanceledError",
    "DataFormat",
    "FileOption",
    "IngestError",
    "Ingestion",
    "IngestionProperties",
    "Kind",
    "MAX_STREAM_SIZE",
    "ManagerRegistry",
    "MappingNotFoundError",
    "Op",
    "PayloadTooLargeError",
    "RestStreamConnection",
    "ValPolicy",
    "ValidationImplication",
    "ValidationOption",
    "delete_source",
    "file_format",
    "flush_immediately",
    "if_not_exists",
    "ignore_size_limit",
    "ingestion_mapping",
    "ingestion_mapping_ref",
    "is_local_path",
    "tags",
    "validation_policy",
]
