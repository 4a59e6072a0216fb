"""
Structured errors for the ingestion client.

Every failure raised by this package is an IngestError carrying:
- op: the operation that failed (file ingest, stream, mapping lookup, ...)
- kind: what went wrong (bad client arguments, not found, size limit, ...)
- retryable: whether calling code may retry the same call

Kinds:
- CLIENT_ARGS: invalid options or inputs; fix the call
- NOT_FOUND: unknown mapping reference
- LIMIT: streaming payload over the compressed size limit
- INTERNAL: a bug in this package
- CANCELED: caller context canceled or deadline exceeded
- REMOTE: failure reported by a collaborator (transport, staging, query)
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class Op(str, Enum):
    """Operation tag attached to every error."""

    UNKNOWN = "unknown"
    FILE_INGEST = "file_ingest"
    READER_INGEST = "reader_ingest"
    INGEST_STREAM = "ingest_stream"
    MAPPING_LOOKUP = "mapping_lookup"
    MANAGER = "manager"


class Kind(str, Enum):
    """Error category."""

    OTHER = "other"
    CLIENT_ARGS = "client_args"
    NOT_FOUND = "not_found"
    LIMIT = "limit"
    INTERNAL = "internal"
    CANCELED = "canceled"
    REMOTE = "remote"


class IngestError(Exception):
    """Base exception for ingestion failures."""

    def __init__(
        self,
        op: Op,
        kind: Kind,
        message: str,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.op = op
        self.kind = kind
        self.message = message
        self.retryable = kind is Kind.REMOTE if retryable is None else retryable

    def __str__(self) -> str:
        return f"{self.op.value}: {self.kind.value}: {self.message}"

    def to_dict(self) -> dict:
        """Flatten for structured logging."""
        return {
            "error_op": self.op.value,
            "error_kind": self.kind.value,
            "error_message": self.message,
            "retryable": self.retryable,
        }


class MappingNotFoundError(IngestError):
    """A mapping reference is not registered on the server."""

    def __init__(self, ref: str, op: Op = Op.MAPPING_LOOKUP) -> None:
        super().__init__(
            op,
            Kind.NOT_FOUND,
            f"could not find a mapping reference for {ref!r}",
            retryable=False,
        )
        self.ref = ref


class PayloadTooLargeError(IngestError):
    """Compressed streaming payload exceeds the service limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            Op.INGEST_STREAM,
            Kind.LIMIT,
            f"cannot stream data larger than {limit // (1024 * 1024)}MiB "
            f"compressed (got {size} bytes)",
            retryable=False,
        )
        self.size = size
        self.limit = limit


class CanceledError(IngestError):
    """The caller's context was canceled or its deadline passed."""

    def __init__(self, op: Op, message: str = "context canceled") -> None:
        super().__init__(op, Kind.CANCELED, message, retryable=False)


def client_args(op: Op, message: str) -> IngestError:
    """Build a non-retryable client-argument error."""
    return IngestError(op, Kind.CLIENT_ARGS, message, retryable=False)


def internal(op: Op, message: str) -> IngestError:
    """Build a non-retryable internal (bug) error."""
    return IngestError(op, Kind.INTERNAL, f"bug: {message}", retryable=False)


def wrap_remote(op: Op, exc: BaseException) -> IngestError:
    """
    Attach operation context to a collaborator failure.

    IngestErrors pass through unchanged. Anything else becomes a REMOTE error
    whose retryability is taken from the exception's own ``retryable``
    attribute when it has one.
    """
    if isinstance(exc, IngestError):
        return exc
    retryable = getattr(exc, "retryable", True)
    return IngestError(op, Kind.REMOTE, str(exc) or type(exc).__name__, retryable=bool(retryable))
