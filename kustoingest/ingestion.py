"""
Ingestion entry points.

An Ingestion is bound to one (database, table) and one client handle. It
routes each call to one of two paths:
- queued: `from_file()` / `from_reader()` hand data to the staging client,
  which uploads it and queues it for the service to pull
- streaming: `stream()` compresses a small payload and writes it directly
  over the instance's streaming connection

All methods are thread-safe. Validation that needs no network (options,
formats, path kind) runs before any remote call.
"""

from __future__ import annotations

import functools
import gzip
import io
import re
import time
from typing import BinaryIO, Callable, Optional
from urllib.parse import urlparse

from kustoingest.collaborators import (
    ConnectionFactory,
    KustoClient,
    ResourceManager,
    StagingClient,
    StagingFactory,
)
from kustoingest.config import IngestSettings
from kustoingest.context import CallContext, background
from kustoingest.errors import IngestError, Op, client_args
from kustoingest.mapping_cache import MappingCache
from kustoingest.models.formats import DataFormat
from kustoingest.models.properties import IngestionProperties
from kustoingest.observability import get_ingest_instruments, get_logger, get_tracer
from kustoingest.options import FileOption, build_properties, check_consistency
from kustoingest.registry import ManagerRegistry
from kustoingest.streaming import (
    BufferPool,
    RestStreamConnection,
    StreamConnectionHolder,
    check_stream_size,
    compress_payload,
)

logger = get_logger("ingestion")
tracer = get_tracer("kustoingest.ingestion")

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")
_BLOB_HOST_SUFFIX = ".blob.core.windows.net"


def is_local_path(path: str) -> bool:
    """
    Classify a from_file() path.

    Returns:
        True for filesystem paths and file:// URIs, False for blob URIs.

    Raises:
        IngestError: the path is empty or uses an unsupported scheme.
    """
    if not path:
        raise client_args(Op.FILE_INGEST, "path must not be empty")
    if _WINDOWS_DRIVE.match(path):
        return True

    parsed = urlparse(path)
    if parsed.scheme in ("", "file"):
        return True
    if parsed.scheme == "https" and (parsed.hostname or "").endswith(_BLOB_HOST_SUFFIX):
        return False

    raise client_args(
        Op.FILE_INGEST,
        f"path {path!r} is neither a local file nor a blob storage URI",
    )


class GzipReader(io.RawIOBase):
    """
    Read-only stream yielding the gzip-compressed bytes of `source`.

    Compresses lazily, `chunk_size` bytes of input at a time.
    """

    def __init__(self, source: BinaryIO, chunk_size: int = 64 * 1024) -> None:
        super().__init__()
        self._source = source
        self._chunk_size = chunk_size
        self._out = io.BytesIO()
        self._gz = gzip.GzipFile(fileobj=self._out, mode="wb")
        self._pending = bytearray()
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:  # type: ignore[override]
        while len(self._pending) < len(b) and not self._eof:
            chunk = self._source.read(self._chunk_size)
            if not chunk:
                self._gz.close()
                self._eof = True
            else:
                self._gz.write(chunk)
            self._pending += self._out.getvalue()
            self._out.seek(0)
            self._out.truncate(0)

        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        del self._pending[:n]
        return n


class Ingestion:
    """
    Data ingestion into one table.

    Args:
        client: Database connection handle (endpoint, auth, management queries).
        database: Target database.
        table: Target table.
        registry: Application-owned registry supplying the shared resource manager.
        staging_factory: Builds the staging client for (database, table, manager).
        connection_factory: Builds the streaming connection from (endpoint, auth).
            Defaults to RestStreamConnection.
        settings: Runtime settings; defaults to `IngestSettings.load()`.
        clock: Monotonic clock for the mapping cache.
    """

    def __init__(
        self,
        client: KustoClient,
        database: str,
        table: str,
        *,
        registry: ManagerRegistry,
        staging_factory: StagingFactory,
        connection_factory: Optional[ConnectionFactory] = None,
        settings: Optional[IngestSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not database or not table:
            raise client_args(Op.UNKNOWN, "database and table must be provided")

        settings = settings or IngestSettings.load()

        self._client = client
        self._db = database
        self._table = table

        self._mgr: ResourceManager = registry.get(client)
        self._staging: StagingClient = staging_factory(database, table, self._mgr)

        if connection_factory is None:
            connection_factory = functools.partial(
                RestStreamConnection, timeout_sec=settings.stream_timeout_sec
            )
        self._stream_conn = StreamConnectionHolder(client, connection_factory)
        self._buffers = BufferPool(settings.buffer_pool_size)
        self._mappings = MappingCache(
            client, database, ttl=settings.mapping_cache_ttl, clock=clock
        )

        self._instruments = get_ingest_instruments()

    @property
    def database(self) -> str:
        return self._db

    @property
    def table(self) -> str:
        return self._table

    @property
    def mappings(self) -> MappingCache:
        return self._mappings

    def _build(self, op: Op, options: tuple) -> IngestionProperties:
        base = IngestionProperties(database=self._db, table=self._table)
        try:
            return build_properties(base, options)
        except IngestError as exc:
            if exc.op is Op.UNKNOWN:
                exc.op = op
            raise

    def _authorize(
        self, op: Op, props: IngestionProperties, ctx: CallContext
    ) -> IngestionProperties:
        """Stamp fresh authentication context from the resource manager."""
        ctx.check(op)
        try:
            auth = self._mgr.auth_context(ctx)
        except Exception as exc:  # noqa: BLE001
            ctx.fail(op, exc)
        return props.with_changes(auth_context=auth)

    def _stage(self, op: Op, ctx: CallContext, upload: Callable[[], None]) -> None:
        try:
            upload()
        except Exception as exc:  # noqa: BLE001
            ctx.fail(op, exc)
        self._instruments.staged.add(1, {"op": op.value})

    def from_file(
        self,
        path: str,
        *options: FileOption,
        ctx: Optional[CallContext] = None,
    ) -> None:
        """
        Ingest a local file or a blob URI via queued ingestion.

        Args:
            path: Local path, file:// URI, or https://<account>.blob.core.windows.net/... URI.
            options: Ingestion options.
            ctx: Cancellation/deadline context forwarded to remote calls.

        Raises:
            IngestError: invalid options, unknown mapping reference, or a
                staging failure.
        """
        ctx = ctx or background()
        op = Op.FILE_INGEST

        with tracer.start_as_current_span("from_file") as span:
            span.set_attribute("kusto.database", self._db)
            span.set_attribute("kusto.table", self._table)

            props = self._build(op, options)
            local = is_local_path(path)

            if not props.format:
                inferred = DataFormat.from_path(path)
                if inferred:
                    props = props.with_changes(format=inferred)
                    try:
                        check_consistency(props)
                    except IngestError as exc:
                        exc.op = op
                        raise

            self._mappings.ensure_known(props.ingestion_mapping_ref, ctx, op)
            props = self._authorize(op, props, ctx)

            span.set_attribute("kusto.local_source", local)
            logger.info(
                "Queueing file for ingestion",
                extra={
                    "database": self._db,
                    "table": self._table,
                    "local": local,
                    "format": props.format.value,
                },
            )

            ctx.check(op)
            if local:
                self._stage(op, ctx, lambda: self._staging.upload_local(path, props, ctx))
            else:
                self._stage(op, ctx, lambda: self._staging.upload_blob(path, 0, props, ctx))

    def from_reader(
        self,
        reader: BinaryIO,
        *options: FileOption,
        ctx: Optional[CallContext] = None,
    ) -> None:
        """
        Ingest the contents of a binary reader via queued ingestion.

        The content is gzip-compressed by this method, so it must not already
        be compressed. `file_format()` is required since there is no file
        extension to read the format from; `delete_source()` is rejected.
        """
        ctx = ctx or background()
        op = Op.READER_INGEST

        with tracer.start_as_current_span("from_reader") as span:
            span.set_attribute("kusto.database", self._db)
            span.set_attribute("kusto.table", self._table)

            props = self._build(op, options)

            if not props.format:
                raise client_args(op, "must provide option file_format() when using from_reader()")
            if props.delete_local_source:
                raise client_args(op, "cannot use delete_source() with from_reader()")

            self._mappings.ensure_known(props.ingestion_mapping_ref, ctx, op)
            props = self._authorize(op, props, ctx)

            logger.info(
                "Queueing reader for ingestion",
                extra={"database": self._db, "table": self._table, "format": props.format.value},
            )

            ctx.check(op)
            compressed = GzipReader(reader)
            self._stage(op, ctx, lambda: self._staging.upload_stream(compressed, props, ctx))

    def stream(
        self,
        payload: bytes,
        format: DataFormat,
        mapping_name: str = "",
        ctx: Optional[CallContext] = None,
    ) -> None:
        """
        Stream a small, fully formed payload for low-latency ingestion.

        `payload` must be one complete record set encoded as CSV, TSV, SCSV,
        SOHSV, PSV, JSON, MultiJSON or AVRO, and must compress to at most 4MiB.
        JSON and AVRO usually need `mapping_name`, the name of a mapping
        pre-created on the table.

        Raises:
            IngestError: unsupported format, unknown mapping, payload too
                large (PayloadTooLargeError), or a transport failure.
        """
        ctx = ctx or background()
        op = Op.INGEST_STREAM
        start = time.perf_counter()

        with tracer.start_as_current_span("stream") as span:
            span.set_attribute("kusto.database", self._db)
            span.set_attribute("kusto.table", self._table)

            try:
                fmt = self._stream_format(format)
                self._mappings.ensure_known(mapping_name, ctx, op)

                try:
                    conn = self._stream_conn.get()
                except Exception as exc:  # noqa: BLE001
                    ctx.fail(op, exc)

                buf = self._buffers.get()
                try:
                    size = compress_payload(payload, buf)
                    check_stream_size(size)
                    span.set_attribute("kusto.compressed_bytes", size)

                    ctx.check(op)
                    try:
                        conn.write(ctx, self._db, self._table, buf.getvalue(), fmt, mapping_name)
                    except Exception as exc:  # noqa: BLE001
                        ctx.fail(op, exc)
                finally:
                    self._buffers.put(buf)
            except IngestError as exc:
                self._instruments.stream_failures.add(1, {"kind": exc.kind.value})
                logger.warning(
                    "Streaming ingestion failed",
                    extra={"database": self._db, "table": self._table, **exc.to_dict()},
                )
                raise

        self._instruments.streamed.add(1)
        self._instruments.stream_bytes.record(size)
        self._instruments.stream_latency_ms.record((time.perf_counter() - start) * 1000)

    @staticmethod
    def _stream_format(format: DataFormat) -> DataFormat:
        try:
            fmt = DataFormat(format)
        except ValueError:
            fmt = DataFormat.UNKNOWN
        if not fmt.is_streamable():
            raise client_args(
                Op.INGEST_STREAM,
                f"format {format!r} is not supported for streaming ingestion",
            )
        return fmt
