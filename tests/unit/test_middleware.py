"""
Unit tests for middleware: pipeline, access logging and prefix stripping.
"""

import pytest

from conftest import make_request
from dirserve.http.response import HTTPStatus, ResponseBuilder, ok_text
from dirserve.middleware import (
    LoggingMiddleware,
    Middleware,
    MiddlewarePipeline,
    ResponseState,
    StripPrefixMiddleware,
)


def echo_path(request):
    return ok_text(request.path)


class Recorder(Middleware):
    def __init__(self, name, calls):
        self.label = name
        self.calls = calls

    def __call__(self, request, next):
        self.calls.append(f"{self.label}:in")
        response = next(request)
        self.calls.append(f"{self.label}:out")
        return response


class TestMiddlewarePipeline:

    def test_order(self):
        calls = []
        pipeline = MiddlewarePipeline().use(Recorder("a", calls), Recorder("b", calls))
        pipeline.wrap(echo_path)(make_request())

        assert calls == ["a:in", "b:in", "b:out", "a:out"]
        assert len(pipeline) == 2

    def test_short_circuit(self):
        class Deny(Middleware):
            def __call__(self, request, next):
                return ResponseBuilder().status(HTTPStatus.FORBIDDEN).build()

        handler = MiddlewarePipeline().add(Deny()).wrap(echo_path)
        assert handler(make_request()).status == HTTPStatus.FORBIDDEN


class TestResponseState:

    def test_first_write_wins(self):
        state = ResponseState()
        state.write_header(404)
        state.write_header(200)
        assert state.status == 404

    def test_defaults_to_200(self):
        assert ResponseState().status == 200


class TestLoggingMiddleware:

    def access_record(self, caplog):
        return next(r for r in caplog.records if r.name == "dirserve.access")

    def test_logs_request(self, caplog):
        handler = MiddlewarePipeline().add(LoggingMiddleware()).wrap(echo_path)

        with caplog.at_level("INFO", logger="dirserve.access"):
            handler(make_request("GET", "/files/docs/"))

        record = self.access_record(caplog)
        assert record.message == "Request"
        fields = record.fields
        assert fields["method"] == "GET"
        assert fields["path"] == "/files/docs/"
        assert fields["status"] == 200
        assert fields["host"] == "localhost:8080"
        assert fields["client"] == "127.0.0.1:50000"
        assert isinstance(fields["ms"], int)

    def test_logs_full_path_before_prefix_stripping(self, caplog):
        handler = MiddlewarePipeline().use(
            LoggingMiddleware(), StripPrefixMiddleware("/files/"),
        ).wrap(echo_path)

        with caplog.at_level("INFO", logger="dirserve.access"):
            response = handler(make_request("GET", "/files/docs/"))

        assert response.body == b"/docs/"
        assert self.access_record(caplog).fields["path"] == "/files/docs/"

    def test_handler_fields_included(self, caplog):
        def upload(request):
            request.log_fields.update(name="a.txt", size=3)
            return ok_text("a.txt uploaded successfully.\n")

        handler = MiddlewarePipeline().use(
            LoggingMiddleware(), StripPrefixMiddleware("/files"),
        ).wrap(upload)

        with caplog.at_level("INFO", logger="dirserve.access"):
            handler(make_request("POST", "/files/"))

        fields = self.access_record(caplog).fields
        assert fields["name"] == "a.txt"
        assert fields["size"] == 3

    def test_exception_logged_as_500(self, caplog):
        def boom(request):
            raise RuntimeError("boom")

        handler = MiddlewarePipeline().add(LoggingMiddleware()).wrap(boom)

        with caplog.at_level("INFO", logger="dirserve.access"):
            with pytest.raises(RuntimeError):
                handler(make_request())

        assert self.access_record(caplog).fields["status"] == 500


class TestStripPrefixMiddleware:

    def test_root_prefix_strips_nothing(self):
        handler = MiddlewarePipeline().add(StripPrefixMiddleware("/")).wrap(echo_path)
        assert handler(make_request(path="/docs/")).body == b"/docs/"

    def test_strips_prefix(self):
        handler = MiddlewarePipeline().add(StripPrefixMiddleware("/files/")).wrap(echo_path)
        assert handler(make_request(path="/files/docs/a.txt")).body == b"/docs/a.txt"

    def test_records_prefix(self):
        seen = []

        def capture(request):
            seen.append(request.prefix)
            return ok_text("")

        MiddlewarePipeline().add(StripPrefixMiddleware("/files/")).wrap(capture)(
            make_request(path="/files/")
        )
        assert seen == ["/files"]

    def test_outside_prefix_not_found(self):
        handler = MiddlewarePipeline().add(StripPrefixMiddleware("/files")).wrap(echo_path)
        response = handler(make_request(path="/other/"))
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Error: page not found\n"
