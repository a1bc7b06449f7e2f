"""
pytest configuration and fixtures.
"""

import http.client
import threading
from pathlib import Path
from typing import Callable, Generator

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dirserve import FileServer, ServerConfig
from dirserve.http import HTTPRequest


BOUNDARY = "dirserveTestBoundary"


def multipart_body(fields=None, files=None, boundary: str = BOUNDARY) -> bytes:
    """
    Encode a multipart/form-data body.

    Args:
        fields: {name: value} plain fields.
        files: {name: (filename, content)} file fields.
    """
    out = b""
    for name, value in (fields or {}).items():
        out += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n'
            f"\r\n"
            f"{value}\r\n"
        ).encode()
    for name, (filename, content) in (files or {}).items():
        out += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: application/octet-stream\r\n"
            f"\r\n"
        ).encode() + content + b"\r\n"
    return out + f"--{boundary}--\r\n".encode()


def make_request(method: str = "GET", path: str = "/", query: str = "", **kwargs) -> HTTPRequest:
    """Build a request the way the parser would, without a socket."""
    from urllib.parse import parse_qs

    target = path + ("?" + query if query else "")
    kwargs.setdefault("headers", {"host": "localhost:8080"})
    return HTTPRequest(
        method=method,
        path=path,
        query_params=parse_qs(query, keep_blank_values=True),
        raw_query=query,
        target=target,
        client_address=("127.0.0.1", 50000),
        **kwargs,
    )


@pytest.fixture
def server_root(tmp_path: Path) -> Path:
    """
    A small tree to serve:

        index-less root with docs/, photos/ (with index.html), hello.txt
    """
    (tmp_path / "hello.txt").write_text("hello world\n")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "report.txt").write_text("quarterly numbers\n")
    (tmp_path / "photos").mkdir()
    (tmp_path / "photos" / "index.html").write_text("<html>gallery</html>")
    return tmp_path


@pytest.fixture
def make_config(server_root: Path) -> Callable[..., ServerConfig]:
    """Config factory serving `server_root` on an ephemeral loopback port."""
    def factory(**overrides) -> ServerConfig:
        values = dict(
            server_root=str(server_root),
            listen="127.0.0.1:0",
            log_level="WARNING",
            keep_alive_timeout=1.0,
            header_timeout=2.0,
        )
        values.update(overrides)
        return ServerConfig(**values)
    return factory


class RunningServer:
    """A FileServer serving from a background thread."""

    def __init__(self, server: FileServer):
        self.server = server
        self._thread = threading.Thread(target=server.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self.server.bind()
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        self._thread.join(timeout=5.0)

    def connection(self) -> http.client.HTTPConnection:
        return http.client.HTTPConnection("127.0.0.1", self.port, timeout=5)

    def request(self, method: str, url: str, body: bytes = None, headers: dict = None):
        """Send one request on a fresh connection; returns (response, body)."""
        conn = self.connection()
        try:
            conn.request(method, url, body=body, headers=headers or {})
            response = conn.getresponse()
            return response, response.read()
        finally:
            conn.close()


@pytest.fixture
def start_server(make_config) -> Generator[Callable[..., RunningServer], None, None]:
    """Start a server with config overrides; stopped after the test."""
    running = []

    def start(**overrides) -> RunningServer:
        srv = RunningServer(FileServer(make_config(**overrides)))
        srv.start()
        running.append(srv)
        return srv

    yield start

    for srv in running:
        srv.stop()
