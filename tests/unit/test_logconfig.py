"""
Unit tests for logging setup and formatters.
"""

import io
import json
import logging

import pytest

from dirserve.logconfig import JSONFormatter, TextFormatter, configure_logging, with_fields


def make_record(message: str = "Request", **fields) -> logging.LogRecord:
    record = logging.LogRecord("dirserve.access", logging.INFO, __file__, 1, message, None, None)
    record.fields = fields
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("dirserve").setLevel(logging.NOTSET)


class TestWithFields:

    def test_drops_none(self):
        assert with_fields(a=1, b=None) == {"fields": {"a": 1}}


class TestTextFormatter:

    def test_appends_fields(self):
        line = TextFormatter().format(make_record(method="GET", status=200))
        assert "[INFO] dirserve.access: Request method=GET status=200" in line

    def test_quotes_values_with_spaces(self):
        line = TextFormatter().format(make_record(name="my report.pdf"))
        assert 'name="my report.pdf"' in line


class TestJSONFormatter:

    def test_fields_at_top_level(self):
        entry = json.loads(JSONFormatter().format(make_record(method="POST", size=5)))
        assert entry["message"] == "Request"
        assert entry["level"] == "info"
        assert entry["logger"] == "dirserve.access"
        assert entry["method"] == "POST"
        assert entry["size"] == 5
        assert isinstance(entry["time"], int)


class TestConfigureLogging:

    def test_auto_is_json_when_not_a_terminal(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("INFO", "auto", stream=stream)
        logging.getLogger("dirserve").info("Starting server", extra=with_fields(listen=":8080"))

        entry = json.loads(stream.getvalue().splitlines()[-1])
        assert entry["message"] == "Starting server"
        assert entry["listen"] == ":8080"

    def test_text_format(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("INFO", "text", stream=stream)
        logging.getLogger("dirserve").info("Stopping server")
        assert "[INFO] dirserve: Stopping server" in stream.getvalue()

    def test_level_filters(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("ERROR", "text", stream=stream)
        logging.getLogger("dirserve").warning("ignored")
        assert stream.getvalue() == ""
