"""
=============================================================================
ERRORS
=============================================================================

Every failure the server knows how to describe is an exception carrying
the HTTP status and the one-line, client-safe message for the response.

    DirserveError
    ├── InvalidAddress            startup: listen address is not host:port
    ├── NoIPv4Address             startup: interface has no IPv4 address
    └── RequestError              per request, rendered as "Error: <msg>\\n"
        ├── InvalidPath              400  invalid URL path
        ├── MissingFileField         400  invalid file
        ├── MultipartParseError      500  cannot parse multipart form
        ├── DestinationCreateError   500  cannot create destination file
        ├── CopyWriteError           500  cannot write file
        └── TemplateRenderError      500  upload page not available

Startup errors end the process. Request errors are caught at the handler
boundary by render_error(); the detailed cause goes to the log only.

=============================================================================
"""

import logging
from typing import Optional

from .http.response import HTTPResponse, error_text
from .http.status_codes import HTTPStatus
from .logconfig import with_fields


logger = logging.getLogger("dirserve")


class DirserveError(Exception):
    """Base class for all dirserve errors."""

    message = "error"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.message = message or self.message
        self.cause = cause
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


# =============================================================================
# STARTUP
# =============================================================================

class InvalidAddress(DirserveError):
    message = "invalid listen address"


class NoIPv4Address(DirserveError):
    message = "interface does not have an IPv4 address"


# =============================================================================
# PER REQUEST
# =============================================================================

class RequestError(DirserveError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class InvalidPath(RequestError):
    status = HTTPStatus.BAD_REQUEST
    message = "invalid URL path"


class MissingFileField(RequestError):
    status = HTTPStatus.BAD_REQUEST
    message = "invalid file"


class MultipartParseError(RequestError):
    message = "cannot parse multipart form"


class DestinationCreateError(RequestError):
    message = "cannot create destination file"


class CopyWriteError(RequestError):
    message = "cannot write file"


class TemplateRenderError(RequestError):
    message = "upload page not available"


def render_error(error: RequestError) -> HTTPResponse:
    """
    Log a request error and turn it into its plain-text response.

    The response body holds only the fixed message; the underlying cause
    is logged alongside it.
    """
    cause = str(error.cause) if error.cause is not None else None
    logger.error(error.message, extra=with_fields(error=cause))
    return error_text(error.status, error.message)
