"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

Translates bytes from the connection into structured messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       head bytes → HTTPRequest (body attached later)     │
    │ response.py      HTTPResponse + ResponseBuilder, error_text()       │
    │ router.py        (method, path) → handler, 404 / 405 / slash fix    │
    │ multipart.py     multipart/form-data body → MultipartForm           │
    │ status_codes.py  HTTPStatus enum with reason phrases                │
    │ mime_types.py    Content-Type by extension or content sniffing      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error_text,
    internal_error,
    method_not_allowed,
    not_found,
    ok_text,
    redirect,
    temporary_redirect,
)
from .router import Router, Route, catch_all_pattern
from .status_codes import HTTPStatus
from .mime_types import get_content_type
from .multipart import FilePart, MultipartError, MultipartForm, parse_multipart

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    "HTTPResponse",
    "ResponseBuilder",
    "error_text",
    "internal_error",
    "method_not_allowed",
    "not_found",
    "ok_text",
    "redirect",
    "temporary_redirect",

    "Router",
    "Route",
    "catch_all_pattern",

    "HTTPStatus",
    "get_content_type",

    "FilePart",
    "MultipartError",
    "MultipartForm",
    "parse_multipart",
]
