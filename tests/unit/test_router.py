"""
Unit tests for URL router.
"""

from dirserve.http.router import Router, catch_all_pattern
from dirserve.http.request import HTTPRequest
from dirserve.http.response import HTTPResponse, HTTPStatus, ok_text


def make_request(method: str, path: str, raw_query: str = "") -> HTTPRequest:
    return HTTPRequest(method=method, path=path, raw_query=raw_query)


def echo_path(request: HTTPRequest) -> HTTPResponse:
    return ok_text(request.path_params.get("path", ""))


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        router = Router()
        router.add_route("/files/*path", echo_path, method="get")

        routes = router.routes()
        assert len(routes) == 1
        assert routes[0].path == "/files/*path"
        assert routes[0].method == "GET"

    def test_match_static_path(self):
        router = Router()
        router.add_route("/health", echo_path, method="GET")

        assert router.match("GET", "/health") is not None
        assert router.match("GET", "/other") is None

    def test_match_named_param(self):
        router = Router()
        router.add_route("/users/:id", echo_path, method="GET")

        match = router.match("GET", "/users/123")
        assert match.params == {"id": "123"}

    def test_catch_all_keeps_leading_slash(self):
        router = Router()
        router.add_route("/files/*path", echo_path, method="GET")

        assert router.match("GET", "/files/").params == {"path": "/"}
        assert router.match("GET", "/files/docs/a.txt").params == {"path": "/docs/a.txt"}
        assert router.match("GET", "/files") is None
        assert router.match("GET", "/filesystem") is None

    def test_root_catch_all(self):
        router = Router()
        router.add_route("/*path", echo_path, method="GET")

        assert router.match("GET", "/").params == {"path": "/"}
        assert router.match("GET", "/a/b").params == {"path": "/a/b"}

    def test_match_respects_method(self):
        router = Router()
        router.add_route("/*path", echo_path, method="GET")

        assert router.match("POST", "/") is None

    def test_get_allowed_methods(self):
        router = Router()
        router.add_route("/*path", echo_path, method="GET")
        router.add_route("/*path", echo_path, method="POST")

        assert router.get_allowed_methods("/x") == ["GET", "POST"]

    def test_decorators(self):
        router = Router()

        @router.get("/hello")
        def hello(request):
            return ok_text("Hello!")

        response = router.handle(make_request("GET", "/hello"))
        assert response.body == b"Hello!"


class TestRouterHandle:
    """Tests for Router.handle() fallbacks."""

    def make_router(self) -> Router:
        router = Router()
        router.add_route("/files/*path", echo_path, method="GET")
        router.add_route("/files/*path", echo_path, method="POST")
        return router

    def test_injects_path_params(self):
        response = self.make_router().handle(make_request("GET", "/files/a.txt"))
        assert response.body == b"/a.txt"

    def test_not_found(self):
        response = self.make_router().handle(make_request("GET", "/elsewhere"))
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Error: page not found\n"

    def test_method_not_allowed(self):
        response = self.make_router().handle(make_request("DELETE", "/files/a.txt"))
        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, POST"

    def test_missing_trailing_slash_get(self):
        response = self.make_router().handle(make_request("GET", "/files", "upload"))
        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert response.headers["Location"] == "/files/?upload"

    def test_missing_trailing_slash_post(self):
        response = self.make_router().handle(make_request("POST", "/files"))
        assert response.status == HTTPStatus.TEMPORARY_REDIRECT
        assert response.headers["Location"] == "/files/"


class TestCatchAllPattern:

    def test_root(self):
        assert catch_all_pattern("/") == "/*path"

    def test_prefix_with_and_without_slash(self):
        assert catch_all_pattern("/files") == "/files/*path"
        assert catch_all_pattern("/files/") == "/files/*path"

    def test_nested_prefix(self):
        assert catch_all_pattern("/a/b/") == "/a/b/*path"
