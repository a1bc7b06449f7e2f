"""
=============================================================================
REQUEST DISPATCH
=============================================================================

Decides what a request is asking for and hands it to the matching
handler:

    ┌──────────────────┬────────┬──────────────┬──────────────────────────┐
    │ uploads enabled  │ method │ ?upload      │ action                   │
    ├──────────────────┼────────┼──────────────┼──────────────────────────┤
    │ no               │ any    │ ignored      │ SERVE (file or listing)  │
    │ yes              │ POST   │ ignored      │ UPLOAD                   │
    │ yes              │ GET    │ present      │ UPLOAD_FORM              │
    │ yes              │ GET    │ absent       │ SERVE                    │
    └──────────────────┴────────┴──────────────┴──────────────────────────┘

Whatever the outcome, the response carries headers that forbid caching:
the tree changes underneath clients whenever someone uploads.

Request errors raised by a handler become "Error: <message>" responses
here; nothing a single request does can take the server down.

=============================================================================
"""

import logging
from enum import Enum
from typing import Dict, List

from ..config import ServerConfig
from ..errors import RequestError, render_error
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, NO_CACHE_HEADERS
from .static import FileTransferHandler
from .upload import UploadHandler
from .upload_page import UploadPageHandler


logger = logging.getLogger(__name__)


class Action(Enum):
    SERVE = "serve"
    UPLOAD_FORM = "upload_form"
    UPLOAD = "upload"


def classify(method: str, query_params: Dict[str, List[str]], enable_upload: bool) -> Action:
    """
    Pick the action for a request.

    With uploads disabled every request is served from the tree, POST
    included; the "upload" query parameter only counts by its presence.
    """
    if not enable_upload:
        return Action.SERVE
    if method == "POST":
        return Action.UPLOAD
    if "upload" in query_params:
        return Action.UPLOAD_FORM
    return Action.SERVE


class RequestDispatcher:
    """
    Entry point for routed requests.

    Usage:
        dispatcher = RequestDispatcher(config)
        router.get("/*path", dispatcher.handle)
        router.post("/*path", dispatcher.handle)
    """

    def __init__(self, config: ServerConfig):
        self.enable_upload = config.enable_upload
        self.files = FileTransferHandler(config.server_root)
        self.upload_page = UploadPageHandler(self.files)
        self.uploads = UploadHandler(config, self.files)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        action = classify(request.method, request.query_params, self.enable_upload)
        logger.debug(f"{request.method} {request.path} → {action.value}")

        try:
            if action is Action.UPLOAD:
                response = self.uploads.handle(request)
            elif action is Action.UPLOAD_FORM:
                response = self.upload_page.handle(request)
            else:
                response = self.files.handle(request)
        except RequestError as e:
            response = render_error(e)

        response.headers.update(NO_CACHE_HEADERS)
        return response
