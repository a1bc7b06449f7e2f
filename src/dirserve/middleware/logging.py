"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Emits one "Request" record per handled request on the `dirserve.access`
logger:

    text:  2024-06-10 10:55:36.123 [INFO] dirserve.access: Request
           method=GET path=/files/docs/ status=200 ms=3 host=nas:8080
           client=192.168.1.7:51022

    json:  {"time": 1718016936123, "level": "info",
            "logger": "dirserve.access", "message": "Request",
            "method": "POST", "path": "/files/docs/", "status": 200,
            "ms": 812, "host": "nas:8080", "client": "192.168.1.7:51022",
            "name": "report.pdf", "size": 5242880}

Handlers can contribute fields (the upload handler adds name and size)
through request.log_fields.

The middleware sits outside prefix stripping, so the logged path is the
full path the client asked for.

=============================================================================
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus
from ..logconfig import with_fields


logger = logging.getLogger("dirserve.access")


@dataclass
class ResponseState:
    """
    Status and start time of a request in flight.

    The first status written wins; later writes are ignored. A request
    that never writes a status counts as 200.
    """

    status: int = HTTPStatus.OK
    started: float = field(default_factory=time.monotonic)
    _written: bool = field(default=False, repr=False)

    def write_header(self, status: int) -> None:
        if not self._written:
            self.status = int(status)
            self._written = True

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


@dataclass
class RequestLog:
    """One access log entry."""

    method: str
    path: str
    status: int
    ms: int
    host: str
    client: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_fields(self) -> Dict[str, Any]:
        fields = {
            "method": self.method,
            "path": self.path,
            "status": self.status,
            "ms": self.ms,
            "host": self.host,
            "client": self.client,
        }
        fields.update(self.extra)
        return fields


class LoggingMiddleware(Middleware):
    """
    Request timing and access logging.

    Should be the outermost middleware so every routed request is logged
    with its full processing time. Exceptions escaping the chain are
    logged as status 500 and re-raised.
    """

    def __init__(self, log_level: int = logging.INFO):
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        state = ResponseState()
        method, path = request.method, request.path

        try:
            response = next(request)
        except Exception:
            state.write_header(HTTPStatus.INTERNAL_SERVER_ERROR)
            self._emit(request, method, path, state)
            raise

        state.write_header(response.status)
        self._emit(request, method, path, state)
        return response

    def _emit(self, request: HTTPRequest, method: str, path: str, state: ResponseState) -> None:
        entry = RequestLog(
            method=method,
            path=path,
            status=state.status,
            ms=state.elapsed_ms,
            host=request.host,
            client=request.client,
            extra=dict(request.log_fields),
        )
        logger.log(self.log_level, "Request", extra=with_fields(**entry.to_fields()))
