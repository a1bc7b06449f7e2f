"""
=============================================================================
FILE TRANSFER HANDLER
=============================================================================

Serves the directory tree under server-root: files are streamed from
disk, directories are answered with their index.html or a generated
listing.

    GET /docs/            →  docs/index.html, or a listing of docs/
    GET /docs             →  301 Location: docs/
    GET /docs/index.html  →  301 Location: ./
    GET /docs/a.txt       →  200, body streamed from docs/a.txt
    GET /docs/a.txt/      →  404
    GET /../etc/passwd    →  400 invalid URL path

=============================================================================
DIRECTORY LISTING
=============================================================================

A bare anchor list, one entry per line, sorted by name:

    <pre>
    <a href="photos/">photos/</a>
    <a href="report%20final.pdf">report final.pdf</a>
    </pre>

Links are relative, so the listing works under any URL prefix.

=============================================================================
CONDITIONAL AND RANGE REQUESTS
=============================================================================

    If-Modified-Since: <date>     mtime (whole seconds) <= date  →  304
    Range: bytes=0-99             first 100 bytes                →  206
    Range: bytes=100-             from byte 100 to the end       →  206
    Range: bytes=-100             last 100 bytes                 →  206
    Range: bytes=5000- (size 10)  nothing to send                →  416
    Range: bytes=0-1,5-6          several ranges                 →  200 full

=============================================================================
"""

import errno
import html
import logging
import os
import posixpath
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import quote

from ..errors import InvalidPath
from ..http.mime_types import SNIFF_LENGTH, get_content_type
from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder, HTTPStatus,
    error_text, format_http_date, not_found, parse_http_date, redirect,
)


logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


def has_dot_dot(path: str) -> bool:
    """True if any "/"-separated segment of `path` is "..". """
    if ".." not in path:
        return False
    return any(segment == ".." for segment in path.replace("\\", "/").split("/"))


def parse_range(header: str, size: int) -> Optional[Tuple[int, int]]:
    """
    Parse a single-range Range header.

    Returns:
        (start, length) of the requested bytes, or None if the header
        should be ignored (not a byte range, malformed, or several ranges).

    Raises:
        ValueError: The range cannot be satisfied for a file of `size` bytes.
    """
    unit, sep, ranges = header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    if "," in ranges:
        return None

    first, sep, last = ranges.strip().partition("-")
    if not sep:
        return None
    first, last = first.strip(), last.strip()

    if not first:
        # Suffix range: the last N bytes.
        if not last.isdigit():
            return None
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise ValueError("unsatisfiable range")
        start = max(size - suffix, 0)
        return start, size - start

    if not first.isdigit() or (last and not last.isdigit()):
        return None
    start = int(first)
    end = int(last) if last else size - 1
    if last and end < start:
        return None
    if start >= size:
        raise ValueError("unsatisfiable range")
    end = min(end, size - 1)
    return start, end - start + 1


class FileTransferHandler:
    """
    Download side of the server.

    Usage:
        files = FileTransferHandler("/srv/share")
        response = files.handle(request)   # request.path relative to the tree
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def resolve(self, url_path: str) -> str:
        """
        Filesystem path for a URL path below the root.

        Raises:
            InvalidPath: The path has a ".." segment or a NUL byte.
        """
        if has_dot_dot(url_path) or "\x00" in url_path:
            raise InvalidPath()
        relative = posixpath.normpath("/" + url_path).lstrip("/")
        return os.path.join(self.root, *relative.split("/")) if relative else self.root

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        url_path = request.path
        if url_path.endswith("/" + INDEX_FILE):
            return self._local_redirect(request, "./")

        fs_path = self.resolve(url_path)

        try:
            st = os.stat(fs_path)
        except OSError as e:
            return self._os_error(e)

        if os.path.isdir(fs_path):
            if not url_path.endswith("/"):
                name = posixpath.basename(url_path)
                return self._local_redirect(request, quote(name) + "/")

            index = os.path.join(fs_path, INDEX_FILE)
            try:
                index_st = os.stat(index)
            except FileNotFoundError:
                return self.list_directory(fs_path)
            except OSError as e:
                return self._os_error(e)
            if os.path.isdir(index):
                return self.list_directory(fs_path)
            fs_path, st = index, index_st
        elif url_path.endswith("/"):
            return not_found()

        return self.serve_file(fs_path, st.st_size, st.st_mtime, request)

    # =========================================================================
    # FILES
    # =========================================================================

    def serve_file(self, fs_path: str, size: int, mtime: float, request: HTTPRequest) -> HTTPResponse:
        """
        Stream one file, honoring If-Modified-Since and a single Range.

        The opened file is handed to the response, which closes it once sent.
        """
        modified = datetime.fromtimestamp(int(mtime), tz=timezone.utc)
        last_modified = format_http_date(modified)

        since = parse_http_date(request.get_header("if-modified-since"))
        if since is not None and int(mtime) > 0 and modified <= since:
            return (ResponseBuilder()
                .status(HTTPStatus.NOT_MODIFIED)
                .header("Last-Modified", last_modified)
                .build())

        try:
            stream = open(fs_path, "rb")
        except OSError as e:
            return self._os_error(e)

        try:
            head = stream.read(SNIFF_LENGTH)
            content_type = get_content_type(fs_path, head)

            builder = (ResponseBuilder()
                .content_type(content_type)
                .header("Last-Modified", last_modified)
                .header("Accept-Ranges", "bytes"))

            start, length = 0, size
            range_header = request.get_header("range")
            if range_header:
                try:
                    byte_range = parse_range(range_header, size)
                except ValueError:
                    stream.close()
                    response = error_text(HTTPStatus.RANGE_NOT_SATISFIABLE, "invalid range")
                    response.set_header("Content-Range", f"bytes */{size}")
                    return response
                if byte_range is not None:
                    start, length = byte_range
                    builder.status(HTTPStatus.PARTIAL_CONTENT)
                    builder.header("Content-Range", f"bytes {start}-{start + length - 1}/{size}")

            stream.seek(start)
        except OSError as e:
            stream.close()
            return self._os_error(e)

        return builder.stream(stream, length).build()

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    def list_directory(self, fs_path: str) -> HTTPResponse:
        """HTML anchor list of a directory's entries."""
        try:
            names = self._entry_names(fs_path)
        except OSError as e:
            return self._os_error(e)

        lines = ["<pre>\n"]
        for name in names:
            lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>\n')
        lines.append("</pre>\n")
        return ResponseBuilder().html("".join(lines)).build()

    @staticmethod
    def _entry_names(fs_path: str) -> List[str]:
        names = []
        with os.scandir(fs_path) as entries:
            for entry in entries:
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                names.append(entry.name + "/" if is_dir else entry.name)
        return sorted(names)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _local_redirect(request: HTTPRequest, location: str) -> HTTPResponse:
        if request.raw_query:
            location += "?" + request.raw_query
        return redirect(location, HTTPStatus.MOVED_PERMANENTLY)

    @staticmethod
    def _os_error(error: OSError) -> HTTPResponse:
        if isinstance(error, (FileNotFoundError, NotADirectoryError)) or error.errno in (
            errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG,
        ):
            return not_found()
        if isinstance(error, PermissionError):
            return error_text(HTTPStatus.FORBIDDEN, "forbidden")
        logger.debug(f"Cannot read {error.filename}: {error}")
        return error_text(HTTPStatus.INTERNAL_SERVER_ERROR, "cannot read file")
