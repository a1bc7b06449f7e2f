"""
Upload form page.

GET <dir>/?upload answers with a small HTML form that posts the chosen
file back to the URL the form was fetched from. Asking for the form on
anything that is not a directory redirects (307) to the parent
directory, keeping the query string, so the browser lands on a page that
can take the upload.
"""

import html
import os
import posixpath
from string import Template
from urllib.parse import quote

from ..errors import TemplateRenderError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, temporary_redirect
from .static import FileTransferHandler


UPLOAD_TEMPLATE = Template("""<!DOCTYPE html>
<meta charset="UTF-8">
<title>Upload</title>
<form action="http://$action" enctype="multipart/form-data" method="POST">
  <input type="file" name="file" />
  <input type="submit" value="Upload" />
</form>
""")


def join_url_path(*elements: str) -> str:
    """
    Join non-empty elements with "/" and clean the result.

        >>> join_url_path("nas:8080", "/files/docs/?upload")
        'nas:8080/files/docs/?upload'
        >>> join_url_path("", "/docs/")
        '/docs'
    """
    joined = "/".join(e for e in elements if e)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def parent_path(url_path: str) -> str:
    """Directory containing `url_path`: "/a/b" → "/a", "/a/b/" → "/a/b"."""
    return join_url_path(posixpath.dirname(url_path)) or "/"


class UploadPageHandler:
    """Renders the upload form for directories under the served tree."""

    def __init__(self, files: FileTransferHandler):
        self.files = files

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        target = self.files.resolve(request.path)
        if not os.path.isdir(target):
            location = quote(request.prefix + parent_path(request.path))
            return temporary_redirect(f"{location}?{request.raw_query}")

        action = join_url_path(request.host, request.target)
        try:
            page = UPLOAD_TEMPLATE.substitute(action=html.escape(action, quote=True))
        except (KeyError, ValueError) as e:
            raise TemplateRenderError(cause=e) from e

        return ResponseBuilder().html(page).build()
