"""
=============================================================================
URL ROUTER
=============================================================================

Method + path routing with three kinds of pattern segments:

    /static        exact match
    /:name         exactly one path segment
    /*name         the rest of the path, leading "/" included

The directory server registers just two routes, both ending in a
catch-all:

    GET   <prefix>/*path
    POST  <prefix>/*path

=============================================================================
MATCHING
=============================================================================

    Pattern:  /files/*path
    Regex:    ^/files(?P<path>/.*)$

    /files/                → {"path": "/"}
    /files/docs/a.txt      → {"path": "/docs/a.txt"}
    /files                 → no match, but "/files/" would
                             → redirect to the slash form
    /other                 → no match → 404

    ┌──────────────────────────────────────────────────────────────────┐
    │  No route for (method, path)?                                    │
    │                                                                  │
    │    path matches a route of another method   → 405 + Allow        │
    │    path + "/" matches a route of this method→ 301 (307 non-GET)  │
    │    otherwise                                → 404                │
    └──────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from .request import HTTPRequest
from .response import HTTPResponse, method_not_allowed, not_found, redirect
from .status_codes import HTTPStatus


# Handler: takes a request, returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A URL pattern bound to a handler for one method."""

    path: str
    method: Optional[str]
    handler: Handler

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router.

    Routes are tried in registration order; the first match wins.

        router = Router()

        @router.get("/files/*path")
        def serve(request):
            return ok_text(request.path_params["path"])   # "/docs/a.txt"
    """

    def __init__(self):
        self._routes: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(self, path: str, handler: Handler, method: Optional[str] = None) -> Route:
        """
        Register a route.

        Args:
            path: URL pattern (e.g. "/files/*path")
            handler: Callable taking the request, returning the response
            method: HTTP method, None for any method
        """
        pattern, param_names = self._compile_pattern(path)
        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=handler,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> Tuple[re.Pattern, List[str]]:
        """
        Compile a path pattern into a regex.

            "/files/:id"     → ^/files/(?P<id>[^/]+)$
            "/files/*path"   → ^/files(?P<path>/.*)$
            "/*path"         → ^(?P<path>/.*)$
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            if segment.startswith(":"):
                name = segment[1:]
                param_names.append(name)
                regex_parts.append(f"/(?P<{name}>[^/]+)")

            elif segment.startswith("*"):
                # Catch-all: keeps its leading slash, must be last
                name = segment[1:] or "wildcard"
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>/.*)")
                break

            else:
                regex_parts.append("/" + re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> str:
        # The trailing slash is significant ("/docs" vs "/docs/").
        return path if path.startswith("/") else "/" + path

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """Find the first route matching method and path."""
        path = self._normalize(path)

        for route in self._routes:
            if route.method and route.method != method.upper():
                continue
            if route._pattern:
                m = route._pattern.match(path)
                if m:
                    return RouteMatch(route=route, params=m.groupdict())

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods that have a route matching `path` (for the Allow header)."""
        path = self._normalize(path)
        methods = set()

        for route in self._routes:
            if route._pattern and route._pattern.match(path):
                if route.method is None:
                    return ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
                methods.add(route.method)

        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request to its handler.

        Path parameters are injected into request.path_params.
        """
        match = self.match(request.method, request.path)

        if match:
            request.path_params = match.params
            return match.route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        if not request.path.endswith("/") and self.match(request.method, request.path + "/"):
            location = quote(request.path + "/")
            if request.raw_query:
                location += "?" + request.raw_query
            status = (HTTPStatus.MOVED_PERMANENTLY if request.method == "GET"
                      else HTTPStatus.TEMPORARY_REDIRECT)
            return redirect(location, status)

        return not_found()

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(self, path: str, method: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "POST")

    def routes(self) -> List[Route]:
        return list(self._routes)


def catch_all_pattern(prefix: str) -> str:
    """
    Route pattern matching everything below a URL prefix.

        >>> catch_all_pattern("/")
        '/*path'
        >>> catch_all_pattern("/files/")
        '/files/*path'
    """
    segments = [s for s in prefix.split("/") if s]
    return "/" + "".join(s + "/" for s in segments) + "*path"
