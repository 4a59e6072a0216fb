from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from kustoingest.context import CallContext
from kustoingest.errors import CanceledError, IngestError, Kind, MappingNotFoundError, Op
from kustoingest.mapping_cache import SHOW_MAPPINGS_COMMAND, MappingCache, MappingEntry
from tests.conftest import FakeClient, ManualClock


@pytest.fixture
def cache(client: FakeClient, clock: ManualClock) -> MappingCache:
    return MappingCache(client, "db", ttl=timedelta(minutes=5), clock=clock)


def test_empty_reference_is_always_valid(cache: MappingCache, client: FakeClient) -> None:
    cache.ensure_known("")
    assert client.mgmt_calls == []


def test_first_lookup_refreshes(cache: MappingCache, client: FakeClient) -> None:
    cache.ensure_known("json_map")
    assert client.mgmt_calls == [("db", SHOW_MAPPINGS_COMMAND)]
    assert cache.names() == frozenset({"json_map", "csv_map"})


def test_fresh_hit_does_not_query(cache: MappingCache, client: FakeClient, clock: ManualClock) -> None:
    cache.ensure_known("json_map")
    clock.advance(299)
    cache.ensure_known("csv_map")
    cache.ensure_known("json_map")
    assert len(client.mgmt_calls) == 1


def test_fresh_miss_fails_without_refresh(cache: MappingCache, client: FakeClient) -> None:
    cache.ensure_known("json_map")
    client.set_mappings("json_map", "new_map")

    with pytest.raises(MappingNotFoundError) as exc_info:
        cache.ensure_known("new_map")

    assert len(client.mgmt_calls) == 1
    assert exc_info.value.kind is Kind.NOT_FOUND
    assert exc_info.value.retryable is False


def test_unknown_after_refresh_fails(cache: MappingCache, client: FakeClient) -> None:
    with pytest.raises(MappingNotFoundError):
        cache.ensure_known("nope")
    assert len(client.mgmt_calls) == 1


def test_miss_after_refresh_still_marks_cache_fresh(cache: MappingCache, client: FakeClient) -> None:
    with pytest.raises(MappingNotFoundError):
        cache.ensure_known("nope")
    cache.ensure_known("json_map")
    assert len(client.mgmt_calls) == 1


def test_expiry_triggers_exactly_one_refresh(
    cache: MappingCache, client: FakeClient, clock: ManualClock
) -> None:
    cache.ensure_known("json_map")
    with pytest.raises(MappingNotFoundError):
        cache.ensure_known("missing")

    clock.advance(300)
    cache.ensure_known("json_map")
    cache.ensure_known("csv_map")

    assert len(client.mgmt_calls) == 2


def test_refresh_replaces_cache_wholesale(
    cache: MappingCache, client: FakeClient, clock: ManualClock
) -> None:
    cache.ensure_known("json_map")
    client.set_mappings("other_map")
    clock.advance(301)

    cache.ensure_known("other_map")
    with pytest.raises(MappingNotFoundError):
        cache.ensure_known("json_map")
    assert cache.names() == frozenset({"other_map"})


def test_invalidate_forces_refresh(cache: MappingCache, client: FakeClient) -> None:
    cache.ensure_known("json_map")
    client.set_mappings("json_map", "new_map")
    cache.invalidate()
    cache.ensure_known("new_map")
    assert len(client.mgmt_calls) == 2


def test_not_found_carries_caller_operation(cache: MappingCache) -> None:
    with pytest.raises(MappingNotFoundError) as exc_info:
        cache.ensure_known("nope", op=Op.INGEST_STREAM)
    assert exc_info.value.op is Op.INGEST_STREAM
    assert exc_info.value.ref == "nope"


def test_query_failure_is_wrapped_and_cache_stays_stale(
    cache: MappingCache, client: FakeClient
) -> None:
    client.mgmt_error = ConnectionError("service unavailable")

    with pytest.raises(IngestError) as exc_info:
        cache.ensure_known("json_map")
    assert exc_info.value.kind is Kind.REMOTE
    assert exc_info.value.op is Op.MAPPING_LOOKUP
    assert isinstance(exc_info.value.__cause__, ConnectionError)

    client.mgmt_error = None
    cache.ensure_known("json_map")
    assert len(client.mgmt_calls) == 2


def test_bad_rows_are_internal_errors(cache: MappingCache, client: FakeClient) -> None:
    client.mappings = [{"Kind": "Json"}]
    with pytest.raises(IngestError) as exc_info:
        cache.ensure_known("json_map")
    assert exc_info.value.kind is Kind.INTERNAL


def test_canceled_context_skips_query(cache: MappingCache, client: FakeClient) -> None:
    ctx = CallContext()
    ctx.cancel()
    with pytest.raises(CanceledError):
        cache.ensure_known("json_map", ctx)
    assert client.mgmt_calls == []


def test_mapping_entry_accepts_result_columns() -> None:
    entry = MappingEntry.model_validate(
        {"Name": "m", "Kind": "Csv", "Mapping": "[]", "LastUpdatedOn": "2024-01-01"}
    )
    assert entry == MappingEntry(name="m", kind="Csv")


@pytest.mark.concurrency
def test_concurrent_lookups_wait_for_refresh(client: FakeClient, clock: ManualClock) -> None:
    release = threading.Event()
    entered = threading.Event()
    original = client.mgmt

    def slow_mgmt(database, command, ctx):
        entered.set()
        release.wait(timeout=5)
        return original(database, command, ctx)

    client.mgmt = slow_mgmt  # type: ignore[method-assign]
    cache = MappingCache(client, "db", clock=clock)
    errors = []

    def lookup() -> None:
        try:
            cache.ensure_known("json_map")
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    first = threading.Thread(target=lookup)
    first.start()
    assert entered.wait(timeout=5)

    others = [threading.Thread(target=lookup) for _ in range(4)]
    for t in others:
        t.start()
    release.set()
    for t in [first, *others]:
        t.join(timeout=5)

    assert errors == []
    # Later callers found the cache fresh once the lock was released.
    assert len(client.mgmt_calls) == 1


def test_cancel_during_refresh_is_cancellation(cache: MappingCache, client: FakeClient) -> None:
    ctx = CallContext()
    original = client.mgmt

    def cancel_then_fail(database, command, call_ctx):
        original(database, command, call_ctx)
        ctx.cancel()
        raise ConnectionError("aborted")

    client.mgmt = cancel_then_fail  # type: ignore[method-assign]

    with pytest.raises(CanceledError) as exc_info:
        cache.ensure_known("json_map", ctx)
    assert exc_info.value.retryable is False
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert cache.names() == frozenset()
