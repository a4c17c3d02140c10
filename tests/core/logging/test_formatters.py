"""Tests for JSON and console log formatters."""

import json
import logging
import sys

import pytest

from core.errors.exceptions import UploadError
from core.logging.context import clear_log_context, set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter


def _record(msg="hello", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="kusto_ingest.test",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    clear_log_context()
    yield
    clear_log_context()


class TestJSONFormatter:

    def test_base_fields(self):
        entry = json.loads(JSONFormatter().format(_record("Batch committed")))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "kusto_ingest.test"
        assert entry["message"] == "Batch committed"
        assert entry["ts"].endswith("Z")
        # Source location only for debug/error
        assert "file" not in entry

    def test_source_location_for_errors(self):
        entry = json.loads(JSONFormatter().format(_record(level=logging.ERROR)))
        assert entry["file"].endswith(":10")

    def test_context_injected(self):
        set_log_context(stage="try_write", worker_id="w1", chunk_id="abcd", table="Events")
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["stage"] == "try_write"
        assert entry["worker_id"] == "w1"
        assert entry["chunk_id"] == "abcd"
        assert entry["table"] == "Events"

    def test_extra_fields_and_numeric_coercion(self):
        entry = json.loads(
            JSONFormatter().format(
                _record(row_count="12", duration_ms="1.5", attempt="not-a-number", outcome="verified")
            )
        )
        assert entry["row_count"] == 12
        assert entry["duration_ms"] == 1.5
        assert entry["attempt"] is None
        assert entry["outcome"] == "verified"

    def test_unknown_extra_fields_dropped(self):
        entry = json.loads(JSONFormatter().format(_record(not_a_known_field="x")))
        assert "not_a_known_field" not in entry

    def test_sas_signature_redacted(self):
        uri = "https://acct.blob.core.windows.net/c/blob.json?sv=2020&sig=SECRET123&se=2030"
        entry = json.loads(JSONFormatter().format(_record(blob_uri=uri)))
        assert "SECRET123" not in entry["blob_uri"]
        assert "sig=[REDACTED]" in entry["blob_uri"]
        assert "sv=2020" in entry["blob_uri"]

    def test_exception_included(self):
        try:
            raise UploadError("blob PUT failed")
        except UploadError:
            exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(_record(level=logging.ERROR, exc_info=exc_info)))
        assert entry["exception"]["type"] == "UploadError"
        assert entry["exception"]["message"] == "blob PUT failed"
        assert "Traceback" in entry["exception"]["stacktrace"]


class TestConsoleFormatter:

    def test_plain_message(self):
        output = ConsoleFormatter().format(_record("Fetching ingestion resources"))
        assert output.endswith(" - Fetching ingestion resources")
        assert "INFO" in output

    def test_context_prefix_and_tags(self):
        set_log_context(stage="deferred_commit", worker_id="w1", table="Events")
        output = ConsoleFormatter().format(_record("Committed", chunk_id="0123456789abcdef"))
        assert "[w1]" in output
        assert "[deferred_commit]" in output
        assert "[Events]" in output
        assert "[chunk:0123456789ab]" in output

    def test_exception_appended(self):
        try:
            raise ValueError("bad count")
        except ValueError:
            exc_info = sys.exc_info()
        output = ConsoleFormatter().format(_record("Failed", level=logging.ERROR, exc_info=exc_info))
        assert "ValueError: bad count" in output
