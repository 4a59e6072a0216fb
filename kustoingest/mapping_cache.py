"""
Time-bounded cache of ingestion mappings registered on the server.

Used to fail fast on a bad mapping reference before any data is uploaded.

The whole cache is either fresh (younger than the TTL) or rebuilt on the next
lookup; there is no per-entry expiry:
- fresh + hit   -> ok
- fresh + miss  -> MappingNotFoundError, no refresh
- stale / empty -> run `.show ingestion mappings`, replace everything, re-check

A single lock guards lookups and refreshes, so lookups issued while a refresh
is running wait for it.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from kustoingest.collaborators import KustoClient
from kustoingest.context import CallContext, background
from kustoingest.errors import MappingNotFoundError, Op, internal
from kustoingest.observability import get_ingest_instruments, get_logger, get_tracer

SHOW_MAPPINGS_COMMAND = ".show ingestion mappings"
DEFAULT_TTL = timedelta(minutes=5)

logger = get_logger("mapping_cache")
tracer = get_tracer("kustoingest.mapping_cache")


class MappingEntry(BaseModel):
    """One server-registered mapping, as returned by `.show ingestion mappings`."""

    name: str
    kind: str = ""

    model_config = ConfigDict(frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _lower_keys(cls, data: Any) -> Any:
        # Result columns come back as "Name", "Kind", "Mapping", ...
        if isinstance(data, Mapping):
            return {str(k).lower(): v for k, v in data.items()}
        return data


class MappingCache:
    """
    Mapping names known to the server for one database.

    Args:
        client: Handle used to run the management query.
        database: Database whose mappings are cached.
        ttl: How long a fetched list is trusted.
        clock: Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        client: KustoClient,
        database: str,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._database = database
        self._ttl_sec = ttl.total_seconds()
        self._clock = clock

        self._lock = threading.Lock()
        self._mappings: Dict[str, MappingEntry] = {}
        self._refreshed_at: Optional[float] = None

        self._refreshes = get_ingest_instruments().mapping_refreshes

    def _fresh(self) -> bool:
        return (
            self._refreshed_at is not None
            and self._clock() - self._refreshed_at < self._ttl_sec
        )

    def ensure_known(
        self,
        ref: str,
        ctx: Optional[CallContext] = None,
        op: Op = Op.MAPPING_LOOKUP,
    ) -> None:
        """
        Check that `ref` names a mapping on the server.

        An empty ref is always valid.

        Raises:
            MappingNotFoundError: the mapping does not exist.
            IngestError: the refresh query failed or was canceled.
        """
        if not ref:
            return

        with self._lock:
            if self._fresh():
                if ref in self._mappings:
                    return
                raise MappingNotFoundError(ref, op)

            self._refresh(ctx or background())

            if ref not in self._mappings:
                raise MappingNotFoundError(ref, op)

    def _refresh(self, ctx: CallContext) -> None:
        """Replace the cache with the server's current list. Caller holds the lock."""
        ctx.check(Op.MAPPING_LOOKUP)

        with tracer.start_as_current_span("refresh_ingestion_mappings") as span:
            span.set_attribute("kusto.database", self._database)

            try:
                rows = self._client.mgmt(self._database, SHOW_MAPPINGS_COMMAND, ctx)
                fetched: Dict[str, MappingEntry] = {}
                for row in rows:
                    try:
                        entry = MappingEntry.model_validate(row)
                    except ValidationError as exc:
                        raise internal(
                            Op.MAPPING_LOOKUP,
                            f"problem converting {SHOW_MAPPINGS_COMMAND} row: {exc}",
                        ) from exc
                    fetched[entry.name] = entry
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Ingestion mapping refresh failed",
                    extra={"database": self._database, "error": str(exc)},
                )
                ctx.fail(Op.MAPPING_LOOKUP, exc)

            self._mappings = fetched
            self._refreshed_at = self._clock()
            self._refreshes.add(1, {"database": self._database})
            span.set_attribute("kusto.mapping_count", len(fetched))

        logger.debug(
            "Refreshed ingestion mappings",
            extra={"database": self._database, "count": len(fetched)},
        )

    def invalidate(self) -> None:
        """Force the next lookup to refresh."""
        with self._lock:
            self._refreshed_at = None

    def names(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._mappings)
