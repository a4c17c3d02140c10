"""Tests for core.logging.context module."""

import threading

from core.logging.context import clear_log_context, get_log_context, set_log_context


class TestLogContext:
    def setup_method(self):
        clear_log_context()

    def teardown_method(self):
        clear_log_context()

    def test_defaults_are_empty(self):
        assert get_log_context() == {"stage": "", "worker_id": "", "chunk_id": "", "table": ""}

    def test_set_all_fields(self):
        set_log_context(stage="write", worker_id="w1", chunk_id="ab12", table="Events")
        assert get_log_context() == {
            "stage": "write",
            "worker_id": "w1",
            "chunk_id": "ab12",
            "table": "Events",
        }

    def test_none_leaves_field_unchanged(self):
        set_log_context(stage="write", chunk_id="ab12")
        set_log_context(stage="try_write")
        ctx = get_log_context()
        assert ctx["stage"] == "try_write"
        assert ctx["chunk_id"] == "ab12"

    def test_clear(self):
        set_log_context(stage="write", worker_id="w1")
        clear_log_context()
        assert get_log_context()["stage"] == ""
        assert get_log_context()["worker_id"] == ""

    def test_context_is_per_thread(self):
        set_log_context(chunk_id="main")
        seen = {}

        def worker():
            seen["chunk_id"] = get_log_context()["chunk_id"]
            set_log_context(chunk_id="worker")

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen["chunk_id"] == ""
        assert get_log_context()["chunk_id"] == "main"
