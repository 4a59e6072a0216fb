from __future__ import annotations

import threading

import pytest

from kustoingest.context import CallContext
from kustoingest.errors import (
    CanceledError,
    IngestError,
    Kind,
    MappingNotFoundError,
    Op,
    PayloadTooLargeError,
    client_args,
    internal,
    wrap_remote,
)
from tests.conftest import ManualClock


@pytest.mark.parametrize(
    "kind, retryable",
    [
        (Kind.CLIENT_ARGS, False),
        (Kind.NOT_FOUND, False),
        (Kind.LIMIT, False),
        (Kind.INTERNAL, False),
        (Kind.OTHER, False),
        (Kind.REMOTE, True),
    ],
)
def test_default_retryability_by_kind(kind: Kind, retryable: bool) -> None:
    assert IngestError(Op.UNKNOWN, kind, "x").retryable is retryable


def test_explicit_retryability_overrides_default() -> None:
    assert IngestError(Op.UNKNOWN, Kind.REMOTE, "x", retryable=False).retryable is False


def test_error_string_and_dict() -> None:
    err = client_args(Op.FILE_INGEST, "bad path")
    assert str(err) == "file_ingest: client_args: bad path"
    assert err.to_dict() == {
        "error_op": "file_ingest",
        "error_kind": "client_args",
        "error_message": "bad path",
        "retryable": False,
    }


def test_specialized_errors() -> None:
    assert MappingNotFoundError("m").kind is Kind.NOT_FOUND
    assert "'m'" in MappingNotFoundError("m").message
    assert PayloadTooLargeError(5, 4).kind is Kind.LIMIT
    assert CanceledError(Op.INGEST_STREAM).kind is Kind.CANCELED
    assert internal(Op.UNKNOWN, "oops").message == "bug: oops"
    assert all(
        isinstance(e, IngestError)
        for e in (MappingNotFoundError("m"), PayloadTooLargeError(5, 4), CanceledError(Op.UNKNOWN))
    )


def test_wrap_remote_passes_ingest_errors_through() -> None:
    err = client_args(Op.UNKNOWN, "x")
    assert wrap_remote(Op.FILE_INGEST, err) is err


def test_wrap_remote_respects_collaborator_retryable_flag() -> None:
    class Throttled(Exception):
        retryable = False

    wrapped = wrap_remote(Op.INGEST_STREAM, Throttled("slow down"))
    assert wrapped.kind is Kind.REMOTE
    assert wrapped.op is Op.INGEST_STREAM
    assert wrapped.retryable is False
    assert wrap_remote(Op.INGEST_STREAM, OSError("reset")).retryable is True


# ═══════════════════════════════════════════════════════════════════════════
# CallContext
# ═══════════════════════════════════════════════════════════════════════════


def test_unbounded_context() -> None:
    ctx = CallContext()
    assert ctx.remaining() is None
    ctx.check(Op.UNKNOWN)


def test_deadline(clock: ManualClock) -> None:
    ctx = CallContext(timeout_sec=5, clock=clock)
    assert ctx.remaining() == 5
    clock.advance(5)
    assert ctx.remaining() == 0
    with pytest.raises(CanceledError) as exc_info:
        ctx.check(Op.INGEST_STREAM)
    assert "deadline" in exc_info.value.message


def test_shared_cancel_event() -> None:
    event = threading.Event()
    ctx = CallContext(cancel_event=event)
    event.set()
    assert ctx.canceled
    with pytest.raises(CanceledError):
        ctx.check(Op.FILE_INGEST)


# ═══════════════════════════════════════════════════════════════════════════
# CallContext.fail
# ═══════════════════════════════════════════════════════════════════════════


def test_fail_wraps_collaborator_error_as_remote() -> None:
    with pytest.raises(IngestError) as exc_info:
        CallContext().fail(Op.FILE_INGEST, OSError("reset"))
    assert exc_info.value.kind is Kind.REMOTE
    assert exc_info.value.op is Op.FILE_INGEST
    assert isinstance(exc_info.value.__cause__, OSError)


def test_fail_prefers_cancellation() -> None:
    ctx = CallContext()
    ctx.cancel()
    remote = IngestError(Op.UNKNOWN, Kind.REMOTE, "aborted")
    with pytest.raises(CanceledError) as exc_info:
        ctx.fail(Op.FILE_INGEST, remote)
    assert exc_info.value.retryable is False
    assert exc_info.value.__cause__ is remote


def test_fail_reports_expired_deadline(clock: ManualClock) -> None:
    ctx = CallContext(timeout_sec=1, clock=clock)
    clock.advance(2)
    with pytest.raises(CanceledError) as exc_info:
        ctx.fail(Op.INGEST_STREAM, TimeoutError("timed out"))
    assert "deadline" in exc_info.value.message


def test_fail_keeps_non_remote_errors() -> None:
    ctx = CallContext()
    ctx.cancel()
    err = client_args(Op.FILE_INGEST, "bad")
    with pytest.raises(IngestError) as exc_info:
        ctx.fail(Op.FILE_INGEST, err)
    assert exc_info.value is err


def test_fail_passes_remote_ingest_error_through_when_not_canceled() -> None:
    err = IngestError(Op.INGEST_STREAM, Kind.REMOTE, "throttled")
    with pytest.raises(IngestError) as exc_info:
        CallContext().fail(Op.INGEST_STREAM, err)
    assert exc_info.value is err
    assert exc_info.value.__cause__ is None
