"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses the head of an HTTP/1.1 request (request line + headers) into an
HTTPRequest object. The body is NOT read here: the connection attaches a
stream to the request so uploads of any size can be consumed
incrementally (see core/connection.py).

=============================================================================
REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    POST /files/docs/?upload HTTP/1.1\r\n      ◄── request line      │
    │    ─┬── ───────┬──────────── ────┬───                               │
    │     │          │                 │                                   │
    │   method     target           version                               │
    │               │                                                      │
    │        ┌──────┴──────┐                                               │
    │      path          raw query                                         │
    │   /files/docs/      upload                                           │
    │                                                                      │
    │    Host: nas.local:8080\r\n                   ◄── headers           │
    │    Content-Type: multipart/form-data; boundary=XyZ\r\n              │
    │    Content-Length: 1048576\r\n                                      │
    │    \r\n                                       ◄── end of head       │
    │                                                                      │
    │    --XyZ\r\n ...                              ◄── body (streamed)   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Parse errors carry the status code to answer with:

    400 Bad Request                  malformed request line
    405 Method Not Allowed           unknown method token
    505 HTTP Version Not Supported   anything but HTTP/1.0 and HTTP/1.1

=============================================================================
"""

import io
import re
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit


class HTTPParseError(Exception):
    """
    Raised when a request head cannot be parsed.

    Carries the HTTP status code that should be returned to the client.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         GET, POST, ...
        path:           Percent-decoded path without the query string.
                        After prefix stripping this is relative to the
                        served tree ("/docs/a.txt").
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header dict with LOWERCASE names
        query_params:   Parsed query, blank values kept:
                        "?upload" → {"upload": [""]}
        raw_query:      Query string exactly as sent ("upload&x=1")
        target:         Request target exactly as sent, path and query
                        ("/files/docs/?upload")
        body:           Readable binary stream positioned at the body
        path_params:    Values captured by the router ("path")
        client_address: (ip, port) of the peer
        prefix:         URL prefix that was stripped from `path`
        log_fields:     Extra key/value pairs for the access log record.
                        Handlers add to it, the logging middleware emits it.

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    raw_query: str = ""
    target: str = ""
    body: BinaryIO = field(default_factory=io.BytesIO, repr=False)

    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)

    prefix: str = ""
    log_fields: Dict[str, Any] = field(default_factory=dict, repr=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type media type, lowercase and without parameters."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        """
        Content-Length as an integer.

        Returns 0 if the header is missing or invalid.
        """
        try:
            return max(int(self.headers.get("content-length", 0)), 0)
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def client(self) -> str:
        """Peer address as "ip:port" for log records."""
        ip, port = self.client_address
        return f"{ip}:{port}"

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection may be reused after this request.

            HTTP/1.1   keep-alive unless "Connection: close"
            HTTP/1.0   close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def expects_continue(self) -> bool:
        return self.headers.get("expect", "").lower() == "100-continue"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def has_query(self, name: str) -> bool:
        """True if the parameter appears at all, even without a value."""
        return name in self.query_params


class RequestParser:
    """
    Parses request heads into HTTPRequest objects.

    ==========================================================================
    PARSER STEPS
    ==========================================================================

        head bytes (everything up to and excluding \\r\\n\\r\\n)
              │
              ▼
        1. Decode as ISO-8859-1 (every byte maps to one character)
        2. Request line:  METHOD SP TARGET SP VERSION
              │  no match     → 400
              │  bad method   → 405
              │  bad version  → 505
              ▼
        3. Headers:  "Name: value", names lowercased, repeats joined
        4. Split target into path (decoded) and raw query
              │
              ▼
        HTTPRequest (body attached by the caller)

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*?)\s*$")

    def parse_head(
        self,
        head: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a request head.

        Args:
            head: Request line and header lines, CRLF separated. A trailing
                  blank line is tolerated.
            client_address: Peer (ip, port).

        Raises:
            HTTPParseError: If the head is malformed.
        """
        text = head.decode("iso-8859-1")
        lines = text.replace("\r\n", "\n").split("\n")

        # RFC 9112: ignore at least one empty line before the request line
        while lines and not lines[0]:
            lines.pop(0)
        if not lines:
            raise HTTPParseError("Empty request")

        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        parts = urlsplit(target)
        path = unquote(parts.path) or "/"
        if not path.startswith("/"):
            path = "/" + path

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=parse_qs(parts.query, keep_blank_values=True),
            raw_query=parts.query,
            target=target,
            client_address=client_address,
        )

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a complete request (head and body) held in memory.

        The body is truncated to Content-Length and exposed as a BytesIO.
        """
        head, sep, body = data.partition(b"\r\n\r\n")
        if not sep:
            raise HTTPParseError("Incomplete request: no header terminator")

        request = self.parse_head(head, client_address)
        request.body = io.BytesIO(body[:request.content_length])
        return request

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        return method, target, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Repeated headers are joined with ", ". Obsolete line folding
        (continuation lines starting with whitespace) is unfolded.
        Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.lower()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
    """Parse a complete in-memory request with a default parser."""
    return RequestParser().parse(data, client_address)
