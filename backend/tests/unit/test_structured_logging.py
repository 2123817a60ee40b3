"""
Unit tests for structured logging and correlation context
"""

import json
import logging
import sys

import pytest

from availarr.services.structured_logging import (
    ContextFilter,
    CorrelationContext,
    JSONLogFormatter,
    LogContext,
    attach_console_logging,
    clear_context,
    current_context,
    set_job_run_id,
    set_request_id,
    setup_job_logging,
)


def make_record(message="hello", exc_info=None):
    return logging.LogRecord(
        name="availarr.test", level=logging.INFO, pathname=__file__, lineno=10,
        msg=message, args=(), exc_info=exc_info,
    )


@pytest.fixture(autouse=True)
def reset_context():
    clear_context()
    set_job_run_id(None)
    yield
    clear_context()
    set_job_run_id(None)


class TestLogContext:

    def test_empty_fields_dropped(self):
        assert LogContext().as_fields() == {}

    def test_extra_nested_under_context(self):
        context = LogContext(job_run_id="ab12", content_id="movie:1", extra={"page": 3})

        assert context.as_fields() == {"job_run_id": "ab12", "content_id": "movie:1", "context": {"page": 3}}

    def test_clear_keeps_run_id(self):
        set_job_run_id("run-1")
        set_request_id("req-1")

        clear_context()

        assert current_context().job_run_id == "run-1"
        assert current_context().request_id is None


class TestCorrelationContext:

    def test_sets_and_restores_content_id(self):
        with CorrelationContext(content_id="movie:550"):
            assert current_context().content_id == "movie:550"
        assert current_context().content_id is None

    def test_nested_contexts(self):
        with CorrelationContext(content_id="tvshow:1399", season=1):
            with CorrelationContext(content_id="tvshow:1399", episode=2):
                assert dict(current_context().extra) == {"season": 1, "episode": 2}
            assert dict(current_context().extra) == {"season": 1}

    def test_restored_on_exception(self):
        with pytest.raises(RuntimeError):
            with CorrelationContext(content_id="movie:1"):
                raise RuntimeError("boom")
        assert current_context().content_id is None


class TestJSONLogFormatter:

    def test_includes_correlation_ids(self):
        set_job_run_id("run-1")
        set_request_id("req-1")

        with CorrelationContext(content_id="movie:550", attempt=2):
            payload = json.loads(JSONLogFormatter().format(make_record()))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "availarr.test"
        assert payload["job_run_id"] == "run-1"
        assert payload["request_id"] == "req-1"
        assert payload["content_id"] == "movie:550"
        assert payload["context"] == {"attempt": 2}
        assert payload["source"].endswith(":10")

    def test_exception_details(self):
        try:
            raise ValueError("bad payload")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())

        payload = json.loads(JSONLogFormatter().format(record))

        assert payload["exception"] == {"type": "ValueError", "message": "bad payload"}

    def test_context_filter_fills_placeholders(self):
        record = make_record()

        assert ContextFilter().filter(record) is True
        assert record.job_run_id == "-"
        assert record.content_id == "-"


class TestHandlers:

    def test_console_handler_uses_json(self):
        root = logging.getLogger()
        handler = attach_console_logging(json_output=True)
        try:
            assert handler in root.handlers
            assert isinstance(handler.formatter, JSONLogFormatter)
        finally:
            root.removeHandler(handler)

    def test_job_logging_creates_run_log_file(self, tmp_path):
        root = logging.getLogger()
        handlers = setup_job_logging("movies", log_dir=str(tmp_path / "logs"))
        try:
            logging.getLogger("availarr.test").info("page 1 done")
            for handler in handlers:
                handler.flush()

            files = list((tmp_path / "logs").glob("movies-*.log"))
            assert len(files) == 1
            assert "page 1 done" in files[0].read_text(encoding="utf-8")
            assert current_context().job_run_id is not None
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            for handler in handlers:
                root.removeHandler(handler)
                handler.close()
