"""
=============================================================================
UPLOAD HANDLER
=============================================================================

Stores a file posted as multipart/form-data (field "file") into the
directory named by the request path:

    POST /docs/   file=report.txt   →   <server-root>/docs/report.txt

    ┌──────────────────────────────────────────────────────────────────┐
    │ 1. parse the form         file content beyond the buffer size    │
    │                           goes to a temporary file               │
    │ 2. take the "file" part   missing → 400 invalid file             │
    │ 3. create the destination missing directory → 500                │
    │ 4. copy                   failure removes the partial file       │
    │ 5. release temp files     always, success or failure             │
    └──────────────────────────────────────────────────────────────────┘

Destination directories are not created. An existing file with the same
name is overwritten; concurrent uploads to one name are not coordinated,
the last writer wins.

=============================================================================
"""

import logging
import os
import shutil
from typing import Optional

from ..config import ServerConfig
from ..errors import (
    CopyWriteError, DestinationCreateError, MissingFileField, MultipartParseError,
)
from ..http.multipart import FilePart, MultipartError, MultipartForm, parse_multipart
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok_text
from ..logconfig import with_fields
from .static import FileTransferHandler


logger = logging.getLogger("dirserve")


class UploadHandler:
    """
    Accepts file uploads into the served tree.

    Usage:
        uploads = UploadHandler(config, FileTransferHandler(config.server_root))
        response = uploads.handle(request)
    """

    def __init__(self, config: ServerConfig, files: FileTransferHandler):
        self.buffer_size = config.buffer_size
        self.files = files

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Store the uploaded file.

        Raises:
            MultipartParseError: The body is not a well-formed multipart form.
            MissingFileField: The form has no "file" part.
            DestinationCreateError: The destination cannot be opened.
            CopyWriteError: Writing the destination failed.
        """
        try:
            form = parse_multipart(request.body, request.get_header("content-type"), self.buffer_size)
        except MultipartError as e:
            raise MultipartParseError(cause=e) from e

        try:
            upload = form.file("file")
        except KeyError as e:
            self._release(None, None, form)
            raise MissingFileField(cause=e) from e

        reader = None
        try:
            try:
                reader = upload.open()
            except OSError as e:
                raise MissingFileField(cause=e) from e
            size = self._store(request, upload, reader)
        finally:
            self._release(upload, reader, form)

        request.log_fields.update(name=upload.filename, size=size)
        return ok_text(f"{upload.filename} uploaded successfully.\n")

    def destination(self, url_path: str, filename: str) -> str:
        return os.path.normpath(os.path.join(self.files.resolve(url_path), filename))

    def _store(self, request: HTTPRequest, upload: FilePart, reader) -> int:
        path = self.destination(request.path, upload.filename)

        try:
            out = open(path, "wb")
        except (OSError, ValueError) as e:
            raise DestinationCreateError(cause=e) from e

        try:
            with out:
                shutil.copyfileobj(reader, out)
                size = out.tell()
        except OSError as e:
            try:
                os.remove(path)
            except OSError:
                logger.debug(f"Cannot remove partial upload {path}")
            raise CopyWriteError(cause=e) from e

        return size

    @staticmethod
    def _release(upload: Optional[FilePart], reader, form: MultipartForm) -> None:
        name = upload.filename if upload is not None else None
        if reader is not None:
            try:
                reader.close()
            except OSError as e:
                logger.warning(
                    "cannot close upload temp file",
                    extra=with_fields(name=name, error=str(e)),
                )
        try:
            form.remove_all()
        except OSError as e:
            logger.warning(
                "cannot delete upload temp file",
                extra=with_fields(name=name, error=str(e)),
            )
