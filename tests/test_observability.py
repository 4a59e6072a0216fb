from __future__ import annotations

import json
import logging

from kustoingest.observability import JsonTraceFormatter, get_ingest_instruments, get_logger


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "kustoingest.ingestion", logging.INFO, __file__, 1, "Queued %s", ("file",), None
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    line = JsonTraceFormatter(service="loader").format(
        _record(database="db", count=3, unserializable=object())
    )
    payload = json.loads(line)

    assert payload["message"] == "Queued file"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "kustoingest.ingestion"
    assert payload["service"] == "loader"
    assert payload["database"] == "db"
    assert payload["count"] == 3
    assert payload["trace_id"] is None
    assert "unserializable" not in payload
    assert "lineno" not in payload


def test_get_logger_namespaces_under_package() -> None:
    assert get_logger().name == "kustoingest"
    assert get_logger("ingestion").name == "kustoingest.ingestion"
    assert get_logger("kustoingest.streaming").name == "kustoingest.streaming"


def test_instruments_are_created_once() -> None:
    assert get_ingest_instruments() is get_ingest_instruments()
