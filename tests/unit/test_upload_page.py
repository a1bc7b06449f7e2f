"""
Unit tests for the upload form page.
"""

import pytest

from conftest import make_request
from dirserve.handlers.static import FileTransferHandler
from dirserve.handlers.upload_page import UploadPageHandler, join_url_path, parent_path


@pytest.fixture
def page(server_root) -> UploadPageHandler:
    return UploadPageHandler(FileTransferHandler(str(server_root)))


class TestUrlHelpers:

    @pytest.mark.parametrize("elements, expected", [
        (("nas:8080", "/docs/?upload"), "nas:8080/docs/?upload"),
        (("nas:8080", "/"), "nas:8080"),
        (("", "/docs/"), "/docs"),
        (("", ""), ""),
        (("h", "/a//b/./c"), "h/a/b/c"),
    ])
    def test_join_url_path(self, elements, expected):
        assert join_url_path(*elements) == expected

    @pytest.mark.parametrize("path, expected", [
        ("/missing-dir", "/"),
        ("/a/b", "/a"),
        ("/a/b/", "/a/b"),
        ("/", "/"),
    ])
    def test_parent_path(self, path, expected):
        assert parent_path(path) == expected


class TestUploadPageHandler:
    """Tests for UploadPageHandler.handle()."""

    def test_renders_form(self, page):
        response = page.handle(make_request(path="/docs/", query="upload"))

        assert response.status == 200
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body.decode() == (
            "<!DOCTYPE html>\n"
            '<meta charset="UTF-8">\n'
            "<title>Upload</title>\n"
            '<form action="http://localhost:8080/docs/?upload" enctype="multipart/form-data" method="POST">\n'
            '  <input type="file" name="file" />\n'
            '  <input type="submit" value="Upload" />\n'
            "</form>\n"
        )

    def test_action_escaped(self, page):
        request = make_request(path="/docs/", query='upload&x="y"')
        body = page.handle(request).body.decode()
        assert 'action="http://localhost:8080/docs/?upload&amp;x=&quot;y&quot;"' in body

    def test_missing_directory_redirects_to_parent(self, page):
        response = page.handle(make_request(path="/missing-dir", query="upload"))
        assert response.status == 307
        assert response.headers["Location"] == "/?upload"

    def test_file_redirects_to_parent(self, page):
        response = page.handle(make_request(path="/docs/report.txt", query="upload&lang=en"))
        assert response.status == 307
        assert response.headers["Location"] == "/docs?upload&lang=en"

    def test_redirect_keeps_prefix(self, page):
        request = make_request(path="/missing-dir", query="upload", prefix="/files")
        response = page.handle(request)
        assert response.headers["Location"] == "/files/?upload"

    def test_redirect_location_percent_encoded(self, page):
        response = page.handle(make_request(path="/café/x", query="upload"))
        assert response.status == 307
        assert response.headers["Location"] == "/caf%C3%A9?upload"

    def test_redirect_location_escapes_control_characters(self, page):
        response = page.handle(make_request(path="/a\rb/x", query="upload"))
        assert response.headers["Location"] == "/a%0Db?upload"
