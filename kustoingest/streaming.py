"""
Streaming ingestion: payload compression, size enforcement, and connections.

Every streamed payload is gzip-compressed into a pooled buffer and rejected
if the compressed size exceeds MAX_STREAM_SIZE. The service limit applies to
wire size, so the check runs after compression.
"""

from __future__ import annotations

import gzip
import io
import threading
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from kustoingest.collaborators import ConnectionFactory, KustoClient, StreamConnection
from kustoingest.context import CallContext
from kustoingest.errors import IngestError, Kind, Op, PayloadTooLargeError
from kustoingest.models.formats import DataFormat
from kustoingest.observability import get_logger
from kustoingest.registry import LazyOnce

MIB = 1024 * 1024
MAX_STREAM_SIZE = 4 * MIB

logger = get_logger("streaming")


class BufferPool:
    """
    Reusable BytesIO buffers for compression.

    At most `max_size` idle buffers are kept; extra returned buffers are
    dropped.
    """

    def __init__(self, max_size: int = 32) -> None:
        self._max_size = max_size
        self._free: List[io.BytesIO] = []
        self._lock = threading.Lock()

    def get(self) -> io.BytesIO:
        with self._lock:
            if self._free:
                return self._free.pop()
        return io.BytesIO()

    def put(self, buf: io.BytesIO) -> None:
        buf.seek(0)
        buf.truncate(0)
        with self._lock:
            if len(self._free) < self._max_size:
                self._free.append(buf)

    def __len__(self) -> int:
        with self._lock:
            return len(self._free)


def compress_payload(payload: bytes, buf: io.BytesIO) -> int:
    """
    Gzip `payload` into `buf`.

    Returns:
        Compressed size in bytes.

    Raises:
        IngestError: compression failed; not retryable.
    """
    try:
        with gzip.GzipFile(fileobj=buf, mode="wb") as zw:
            zw.write(payload)
    except (OSError, TypeError, ValueError) as exc:
        raise IngestError(
            Op.INGEST_STREAM, Kind.CLIENT_ARGS, f"could not compress payload: {exc}", retryable=False
        ) from exc
    return buf.tell()


def check_stream_size(size: int) -> None:
    """Reject compressed payloads over MAX_STREAM_SIZE (the limit itself is allowed)."""
    if size > MAX_STREAM_SIZE:
        raise PayloadTooLargeError(size, MAX_STREAM_SIZE)


class StreamConnectionHolder:
    """
    The streaming connection of one Ingestion instance.

    Created from the client's endpoint and auth on first use and reused for
    every later call. This layer never closes or recycles it.
    """

    def __init__(self, client: KustoClient, factory: ConnectionFactory) -> None:
        self._client = client
        self._factory = factory
        self._conn: LazyOnce[StreamConnection] = LazyOnce(self._create)

    def _create(self) -> StreamConnection:
        logger.info("Opening streaming connection", extra={"endpoint": self._client.endpoint})
        return self._factory(self._client.endpoint, self._client.auth)

    def get(self) -> StreamConnection:
        return self._conn.get()

    @property
    def created(self) -> bool:
        return self._conn.built


AuthMaterial = Union[str, Callable[[], str]]


class RestStreamConnection:
    """
    Streaming ingestion over the service's REST endpoint.

    POST {endpoint}/v1/rest/ingest/{database}/{table}?streamFormat=..&mappingName=..
    with a gzip body. The underlying requests.Session pools connections and is
    safe to share between threads for independent requests.
    """

    def __init__(
        self,
        endpoint: str,
        auth: Optional[AuthMaterial],
        timeout_sec: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            endpoint: Base URL of the service (e.g. https://mycluster.kusto.windows.net).
            auth: Bearer token, or a callable returning a fresh one per request.
            timeout_sec: Request timeout when the caller context has no deadline.
            session: Optional pre-configured session.
        """
        self._base_url = endpoint.rstrip("/")
        self._auth = auth
        self._timeout = timeout_sec
        self._session = session or requests.Session()

    def _url(self, database: str, table: str) -> str:
        return f"{self._base_url}/v1/rest/ingest/{database}/{table}"

    def _headers(self) -> dict:
        headers = {
            "Content-Encoding": "gzip",
            "Content-Type": "application/octet-stream",
            "Accept": "application/json",
        }
        token = self._auth() if callable(self._auth) else self._auth
        if token:
            headers["Authorization"] = token if token.startswith("Bearer ") else f"Bearer {token}"
        return headers

    def write(
        self,
        ctx: CallContext,
        database: str,
        table: str,
        payload: bytes,
        format: DataFormat,
        mapping_name: str,
    ) -> None:
        """
        Send one compressed payload.

        Raises:
            CanceledError: the context was canceled or its deadline passed.
            IngestError: transport failure or non-2xx response.
        """
        ctx.check(Op.INGEST_STREAM)

        params: Dict[str, Any] = {"streamFormat": DataFormat(format).value}
        if mapping_name:
            params["mappingName"] = mapping_name

        remaining = ctx.remaining()
        timeout = self._timeout if remaining is None else min(self._timeout, remaining)
        url = self._url(database, table)

        try:
            resp = self._session.post(
                url,
                params=params,
                data=payload,
                headers=self._headers(),
                timeout=timeout,
            )
        except requests.RequestException as exc:
            logger.warning(
                "Streaming ingestion request failed",
                extra={"url": url, "error": str(exc)},
            )
            canceled = ctx.interrupted(Op.INGEST_STREAM)
            if canceled is not None:
                raise canceled from exc
            raise IngestError(Op.INGEST_STREAM, Kind.REMOTE, str(exc), retryable=True) from exc

        if 200 <= resp.status_code < 300:
            return

        retryable = resp.status_code >= 500 or resp.status_code == 429
        logger.error(
            "Streaming ingestion rejected",
            extra={"url": url, "status_code": resp.status_code, "body": resp.text[:1024]},
        )
        raise IngestError(
            Op.INGEST_STREAM,
            Kind.REMOTE,
            f"streaming ingestion returned HTTP {resp.status_code}: {resp.text[:256]}",
            retryable=retryable,
        )

    def close(self) -> None:
        self._session.close()
