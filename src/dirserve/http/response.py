"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP responses and serializes their head to bytes.

=============================================================================
RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   HTTP/1.1 200 OK\r\n                         ◄── status line       │
    │   Cache-Control: no-cache, no-store, must-revalidate\r\n            │
    │   Pragma: no-cache\r\n                                               │
    │   Expires: 0\r\n                                                     │
    │   Content-Type: application/pdf\r\n                                  │
    │   Content-Length: 5242880\r\n                 ◄── always present    │
    │   Date: Mon, 10 Jun 2024 10:55:36 GMT\r\n     ◄── auto-added        │
    │   Server: dirserve/1.0.0\r\n                  ◄── auto-added        │
    │   \r\n                                                               │
    │   <body>                                      ◄── bytes OR stream   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Small bodies (listings, forms, error messages) live in memory. File
downloads carry an open file object plus its length instead, and the
connection copies it to the socket in chunks, so a multi-gigabyte file
never has to fit in RAM.

=============================================================================
THE BUILDER
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.NOT_FOUND)
        .no_cache()
        .text("Error: page not found\\n")
        .build())

Every builder method returns the builder, so calls chain; build() returns
the HTTPResponse.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import BinaryIO, Dict, Optional, Union

from .status_codes import HTTPStatus


NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Either `body` holds the full payload, or `stream` is an open binary
    file positioned at the first byte to send and `stream_length` says how
    many bytes to copy from it.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    stream: Optional[BinaryIO] = field(default=None, repr=False)
    stream_length: int = 0

    @property
    def status_line(self) -> str:
        """E.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {HTTPStatus(self.status).phrase}"

    @property
    def content_length(self) -> int:
        return self.stream_length if self.stream is not None else len(self.body)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive lookup of a response header."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def close(self) -> None:
        """Release the body stream, if any."""
        if self.stream is not None:
            self.stream.close()
            self.stream = None

    def head_bytes(self, server_name: str = "dirserve") -> bytes:
        """
        Serialize the status line and headers (including the blank line).

        Content-Length, Date and Server are added when missing.
        Content-Length is omitted for statuses that cannot carry a body
        (1xx, 204, 304).
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers and HTTPStatus(self.status).allows_body:
            response_headers["Content-Length"] = str(self.content_length)

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        # Header values may contain non-ASCII file names; latin-1 with a
        # UTF-8 fallback mirrors what browsers accept.
        text = "\r\n".join(lines) + "\r\n"
        try:
            return text.encode("iso-8859-1")
        except UnicodeEncodeError:
            return text.encode("utf-8")

    def to_bytes(self, server_name: str = "dirserve") -> bytes:
        """
        Serialize a complete in-memory response.

        Streamed responses must be written with head_bytes() followed by the
        stream contents; calling this on one raises ValueError.
        """
        if self.stream is not None:
            raise ValueError("streamed response cannot be serialized in one piece")
        body = self.body if HTTPStatus(self.status).allows_body else b""
        return self.head_bytes(server_name) + body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

    ==========================================================================
    USAGE EXAMPLES
    ==========================================================================

    # Plain text
    ResponseBuilder().text("report.pdf uploaded successfully.\\n").build()

    # Directory redirect
    ResponseBuilder().redirect("docs/", HTTPStatus.MOVED_PERMANENTLY).build()

    # File download
    (ResponseBuilder()
        .content_type("application/pdf")
        .stream(open(path, "rb"), size)
        .build())

    ==========================================================================
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[BinaryIO] = None
        self._stream_length = 0

    # =========================================================================
    # STATUS / HEADERS
    # =========================================================================

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def no_cache(self) -> "ResponseBuilder":
        """
        Forbid caching of the response.

            Cache-Control: no-cache, no-store, must-revalidate   (HTTP/1.1)
            Pragma: no-cache                                      (HTTP/1.0)
            Expires: 0                                            (proxies)

        The served tree can change at any moment (uploads), so nothing the
        server sends may be reused from a cache.
        """
        self._headers.update(NO_CACHE_HEADERS)
        return self

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self._stream = None
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self.body(text)

    def html(self, html: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self.body(html)

    def stream(self, stream: BinaryIO, length: int) -> "ResponseBuilder":
        """
        Send `length` bytes read from `stream` as the body.

        The stream is closed once the response has been written.
        """
        self._stream = stream
        self._stream_length = length
        self._body = b""
        return self

    # =========================================================================
    # REDIRECTS
    # =========================================================================

    def redirect(self, location: str, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        """
        Redirect to `location`.

        301 Moved Permanently    canonical URLs (directory slash)
        307 Temporary Redirect   method preserved (upload form, POST slash)
        """
        self._status = HTTPStatus(status)
        self._headers["Location"] = location
        return self

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
            stream_length=self._stream_length,
        )


# =============================================================================
# DATES
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date: "Wed, 01 Jan 2026 12:00:00 GMT".

    HTTP dates are always GMT; naive datetimes are taken to be UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse an HTTP-date header value.

    Returns an aware UTC datetime, or None if the value is not a date.
    """
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def error_text(status: Union[HTTPStatus, int], message: str) -> HTTPResponse:
    """
    Plain-text error response with body "Error: <message>\\n".

    Example:
        >>> error_text(HTTPStatus.NOT_FOUND, "page not found").body
        b'Error: page not found\\n'
    """
    return (ResponseBuilder()
        .status(status)
        .no_cache()
        .text(f"Error: {message}\n")
        .build())


def ok_text(text: str) -> HTTPResponse:
    """200 OK with a plain-text body."""
    return ResponseBuilder().text(text).build()


def not_found() -> HTTPResponse:
    return error_text(HTTPStatus.NOT_FOUND, "page not found")


def method_not_allowed(allowed_methods) -> HTTPResponse:
    """405 with the Allow header listing the valid methods."""
    response = error_text(HTTPStatus.METHOD_NOT_ALLOWED, "method not allowed")
    response.set_header("Allow", ", ".join(allowed_methods))
    return response


def internal_error() -> HTTPResponse:
    """
    Generic 500 for unexpected failures.

    The body never contains exception details; those go to the log.
    """
    return error_text(HTTPStatus.INTERNAL_SERVER_ERROR, "internal server error")


def redirect(location: str, status: Union[HTTPStatus, int]) -> HTTPResponse:
    return ResponseBuilder().redirect(location, status).build()


def temporary_redirect(location: str) -> HTTPResponse:
    """307 redirect; the client repeats the request with the same method."""
    return redirect(location, HTTPStatus.TEMPORARY_REDIRECT)
