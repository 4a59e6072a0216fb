"""
Lazy-once initialization and the resource-manager registry.

A resource manager runs background discovery of staging endpoints and
credential refresh, so an application wants exactly one per service. The
registry is an ordinary object the application creates and passes to every
Ingestion; managers are keyed by service endpoint, so one process can talk to
several services without them sharing a manager.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from kustoingest.collaborators import KustoClient, ManagerFactory, ResourceManager
from kustoingest.errors import IngestError, Op, wrap_remote
from kustoingest.observability import get_logger

T = TypeVar("T")

# Slot value before the factory has run. None is a valid built value.
_UNSET: Any = object()

logger = get_logger("registry")


class LazyOnce(Generic[T]):
    """
    Value built on first use, at most once.

    Reads after construction take no lock. Construction is serialized and
    re-checked under the lock, so concurrent first callers all get the value
    the single winning factory call produced. If the factory raises, nothing is
    stored and the next call tries again.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._value: Any = _UNSET
        self._lock = threading.Lock()

    def get(self) -> T:
        value = self._value
        if value is not _UNSET:
            return value

        with self._lock:
            if self._value is _UNSET:
                self._value = self._factory()
            return self._value

    @property
    def built(self) -> bool:
        return self._value is not _UNSET

    def peek(self) -> Optional[T]:
        """The value if it has been built, without building it."""
        value = self._value
        return None if value is _UNSET else value


class ManagerRegistry:
    """
    One resource manager per service endpoint.

    Args:
        factory: Builds a manager from the first client seen for an endpoint.
            Later clients for the same endpoint reuse that manager.

    Managers are never torn down; they live as long as the registry.
    """

    def __init__(self, factory: ManagerFactory) -> None:
        self._factory = factory
        self._slots: Dict[str, LazyOnce[ResourceManager]] = {}
        self._lock = threading.Lock()

    def _slot(self, client: KustoClient) -> LazyOnce[ResourceManager]:
        key = client.endpoint
        slot = self._slots.get(key)
        if slot is not None:
            return slot

        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = LazyOnce(lambda: self._create(client))
                self._slots[key] = slot
            return slot

    def _create(self, client: KustoClient) -> ResourceManager:
        logger.info("Creating resource manager", extra={"endpoint": client.endpoint})
        try:
            return self._factory(client)
        except IngestError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise wrap_remote(Op.MANAGER, exc) from exc

    def get(self, client: KustoClient) -> ResourceManager:
        """Return the manager for `client.endpoint`, creating it on first use."""
        return self._slot(client).get()

    def __len__(self) -> int:
        with self._lock:
            slots = list(self._slots.values())
        return sum(1 for slot in slots if slot.built)
