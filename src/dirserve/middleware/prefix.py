"""
URL prefix stripping.

With the tree exposed under "/files/", handlers should see paths relative
to the served root:

    /files/             →  /
    /files/docs/a.txt   →  /docs/a.txt

The stripped prefix is kept on the request (request.prefix) for handlers
that build absolute links back to the tree.
"""

from dataclasses import replace

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, not_found


class StripPrefixMiddleware(Middleware):
    """
    Remove a URL prefix from request paths.

    The prefix's trailing slashes are ignored, so "/" strips nothing.
    A request whose path does not start with the prefix gets 404.
    """

    def __init__(self, prefix: str):
        self.prefix = prefix.rstrip("/")

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if not self.prefix:
            return next(request)

        if not request.path.startswith(self.prefix):
            return not_found()

        stripped = request.path[len(self.prefix):]
        return next(replace(request, path=stripped or "/", prefix=self.prefix))
