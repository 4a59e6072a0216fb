"""
tests/conftest.py

Shared fixtures and fake collaborators for the kustoingest test suite.

Nothing here talks to a real service: the client handle, resource manager,
staging client and streaming connection are in-memory fakes that record
every call so tests can assert on ordering and arguments.
"""

from __future__ import annotations

import threading
from typing import Any, BinaryIO, Dict, List, Mapping, Optional

import pytest

from kustoingest.config import IngestSettings
from kustoingest.context import CallContext
from kustoingest.ingestion import Ingestion
from kustoingest.models.formats import DataFormat
from kustoingest.models.properties import IngestionProperties
from kustoingest.registry import ManagerRegistry


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "concurrency: tests that start several threads against one object",
    )


# ═══════════════════════════════════════════════════════════════════════════
# FAKE COLLABORATORS
# ═══════════════════════════════════════════════════════════════════════════


class ManualClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClient:
    """Client handle whose `.show ingestion mappings` result is settable."""

    def __init__(self, endpoint: str = "https://cluster.example.kusto.windows.net") -> None:
        self.endpoint = endpoint
        self.auth = "client-token"
        self.mappings: List[Dict[str, Any]] = []
        self.mgmt_calls: List[tuple] = []
        self.mgmt_error: Optional[Exception] = None

    def set_mappings(self, *names: str, kind: str = "Json") -> None:
        self.mappings = [{"Name": n, "Kind": kind, "Mapping": "[]"} for n in names]

    def mgmt(self, database: str, command: str, ctx: CallContext) -> List[Mapping[str, Any]]:
        self.mgmt_calls.append((database, command))
        if self.mgmt_error is not None:
            raise self.mgmt_error
        return list(self.mappings)


class FakeManager:
    def __init__(self, client: Any = None) -> None:
        self.client = client
        self.calls = 0
        self.error: Optional[Exception] = None

    def auth_context(self, ctx: CallContext) -> str:
        if self.error is not None:
            raise self.error
        self.calls += 1
        return f"auth-{self.calls}"


class FakeStaging:
    def __init__(self, database: str, table: str, manager: Any) -> None:
        self.database = database
        self.table = table
        self.manager = manager
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    def _record(self, *call: Any) -> None:
        if self.error is not None:
            raise self.error
        self.calls.append(call)

    def upload_local(self, path: str, props: IngestionProperties, ctx: CallContext) -> None:
        self._record("local", path, props)

    def upload_blob(
        self, uri: str, offset: int, props: IngestionProperties, ctx: CallContext
    ) -> None:
        self._record("blob", uri, offset, props)

    def upload_stream(self, stream: BinaryIO, props: IngestionProperties, ctx: CallContext) -> None:
        self._record("stream", stream.read(), props)


class FakeConnection:
    def __init__(self, endpoint: str, auth: Any) -> None:
        self.endpoint = endpoint
        self.auth = auth
        self.writes: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None
        self._lock = threading.Lock()

    def write(
        self,
        ctx: CallContext,
        database: str,
        table: str,
        payload: bytes,
        format: DataFormat,
        mapping_name: str,
    ) -> None:
        if self.error is not None:
            raise self.error
        with self._lock:
            self.writes.append(
                {
                    "database": database,
                    "table": table,
                    "payload": bytes(payload),
                    "format": format,
                    "mapping_name": mapping_name,
                }
            )


class ConnectionFactorySpy:
    """Connection factory that counts how many connections it built."""

    def __init__(self) -> None:
        self.created: List[FakeConnection] = []

    def __call__(self, endpoint: str, auth: Any) -> FakeConnection:
        conn = FakeConnection(endpoint, auth)
        self.created.append(conn)
        return conn


# ═══════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def client() -> FakeClient:
    c = FakeClient()
    c.set_mappings("json_map", "csv_map")
    return c


@pytest.fixture
def settings() -> IngestSettings:
    return IngestSettings(mapping_cache_ttl_sec=300, buffer_pool_size=4)


@pytest.fixture
def registry() -> ManagerRegistry:
    return ManagerRegistry(FakeManager)


@pytest.fixture
def connections() -> ConnectionFactorySpy:
    return ConnectionFactorySpy()


@pytest.fixture
def ingestion(
    client: FakeClient,
    registry: ManagerRegistry,
    connections: ConnectionFactorySpy,
    settings: IngestSettings,
    clock: ManualClock,
) -> Ingestion:
    return Ingestion(
        client,
        "db",
        "events",
        registry=registry,
        staging_factory=FakeStaging,
        connection_factory=connections,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def staging(ingestion: Ingestion) -> FakeStaging:
    return ingestion._staging  # type: ignore[return-value]
