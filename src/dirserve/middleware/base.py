"""
=============================================================================
MIDDLEWARE CONTRACT AND PIPELINE
=============================================================================

Middleware wraps a handler to act before and after it (Chain of
Responsibility). The server composes its route handler like this:

    ┌──────────────────────────────────────────────────────────────────┐
    │  LoggingMiddleware                   times + logs every request  │
    │  ┌────────────────────────────────────────────────────────────┐  │
    │  │  StripPrefixMiddleware            "/files/a.txt" → "/a.txt"│  │
    │  │  ┌──────────────────────────────────────────────────────┐  │  │
    │  │  │  RequestDispatcher.handle                            │  │  │
    │  │  └──────────────────────────────────────────────────────┘  │  │
    │  └────────────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────────────┘

The request flows inward in the order middleware was added; the response
flows back outward.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Base class for middleware.

    Subclasses implement __call__ and either return a response of their
    own (short-circuit) or call `next(request)` to continue:

        class StampMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Stamp", "1")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())        # first added = outermost
        pipeline.add(StripPrefixMiddleware("/files"))
        handler = pipeline.wrap(dispatcher.handle)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap `handler` with every middleware.

        Wrapping happens in reverse so the first-added middleware ends up
        outermost: [A, B] → A(B(handler)).
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    @staticmethod
    def _create_wrapped_handler(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)
