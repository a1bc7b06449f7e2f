"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The subset of RFC 9110 status codes a directory server actually produces.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  1xx   │ 100 Continue          - client may send the upload body  │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  2xx   │ 200 OK                - file, listing, upload result     │
    │        │ 206 Partial Content   - single byte range                │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 301 Moved Permanently - canonical directory URL          │
    │        │ 304 Not Modified      - If-Modified-Since matched        │
    │        │ 307 Temporary Redirect- upload form on a file path       │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 / 403 / 404 / 405 / 408 / 416 / 431                  │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 / 501 / 505                                          │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes with their reason phrases.

    Being an IntEnum, members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    CONTINUE = 100

    OK = 200
    NO_CONTENT = 204
    PARTIAL_CONTENT = 206               # single Range fulfilled

    MOVED_PERMANENTLY = 301             # directory slash canonicalization
    NOT_MODIFIED = 304                  # If-Modified-Since
    TEMPORARY_REDIRECT = 307            # keeps the method (POST stays POST)

    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    RANGE_NOT_SATISFIABLE = 416
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line:

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      └── phrase
                      └───────── status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_informational(self) -> bool:
        return 100 <= self < 200

    @property
    def allows_body(self) -> bool:
        """
        False for statuses that never carry a message body (1xx, 204, 304).
        Responses with these codes get no Content-Length either.
        """
        return not (self.is_informational or self in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED))


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Range Not Satisfiable",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
