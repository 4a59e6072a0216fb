"""
Cancellation and deadline context forwarded into every remote call.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, NoReturn, Optional

from kustoingest.errors import CanceledError, IngestError, Kind, Op, wrap_remote


class CallContext:
    """
    Per-call deadline and cancellation flag.

    Collaborators receive the same context the caller passed in and should use
    `remaining()` as their I/O timeout.
    """

    def __init__(
        self,
        timeout_sec: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = None if timeout_sec is None else clock() + timeout_sec
        self._cancel = cancel_event or threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def canceled(self) -> bool:
        return self._cancel.is_set()

    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def interrupted(self, op: Op) -> Optional[CanceledError]:
        """The CanceledError to report if the call must stop, else None."""
        if self.canceled:
            return CanceledError(op)
        if self.expired():
            return CanceledError(op, "context deadline exceeded")
        return None

    def check(self, op: Op) -> None:
        """Raise CanceledError if the call must not continue."""
        err = self.interrupted(op)
        if err is not None:
            raise err

    def fail(self, op: Op, exc: Exception) -> NoReturn:
        """
        Re-raise a remote-call failure as an IngestError.

        If the context was canceled or its deadline passed while the call was
        running, the call fails with CanceledError whatever the collaborator
        raised. Non-remote IngestErrors propagate unchanged.
        """
        if isinstance(exc, IngestError) and exc.kind is not Kind.REMOTE:
            raise exc
        err = self.interrupted(op) or wrap_remote(op, exc)
        if err is exc:
            raise exc
        raise err from exc


def background() -> CallContext:
    """A context that is never canceled and has no deadline."""
    return CallContext()
