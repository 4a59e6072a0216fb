"""
Interfaces of the external collaborators this package drives.

Implementations live outside this package (staging, resource discovery,
authentication) except for the default streaming transport in
`kustoingest.streaming`.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Callable, Iterable, Mapping, Protocol

from kustoingest.context import CallContext
from kustoingest.models.formats import DataFormat
from kustoingest.models.properties import IngestionProperties


class KustoClient(Protocol):
    """Database connection handle an Ingestion is bound to."""

    @property
    def endpoint(self) -> str: ...

    @property
    def auth(self) -> Any: ...

    def mgmt(
        self, database: str, command: str, ctx: CallContext
    ) -> Iterable[Mapping[str, Any]]:
        """Run a management command and return its primary result rows."""
        ...


class ResourceManager(Protocol):
    """Discovers staging endpoints and refreshes authentication context."""

    def auth_context(self, ctx: CallContext) -> str: ...


class StagingClient(Protocol):
    """Uploads data to intermediate storage and queues it for ingestion."""

    def upload_local(self, path: str, props: IngestionProperties, ctx: CallContext) -> None: ...

    def upload_blob(
        self, uri: str, offset: int, props: IngestionProperties, ctx: CallContext
    ) -> None: ...

    def upload_stream(
        self, stream: BinaryIO, props: IngestionProperties, ctx: CallContext
    ) -> None: ...


class StreamConnection(Protocol):
    """Persistent connection for streaming ingestion."""

    def write(
        self,
        ctx: CallContext,
        database: str,
        table: str,
        payload: bytes,
        format: DataFormat,
        mapping_name: str,
    ) -> None: ...


ManagerFactory = Callable[[KustoClient], ResourceManager]
StagingFactory = Callable[[str, str, ResourceManager], StagingClient]
ConnectionFactory = Callable[[str, Any], StreamConnection]
