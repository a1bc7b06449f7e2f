"""
=============================================================================
FILE SERVER
=============================================================================

Ties the pieces together into the running server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   SocketServer ──accept──► Connection ──thread──► keep-alive loop   │
    │                                                        │            │
    │                                                        ▼            │
    │   Router   GET  <prefix>/*path ─┐                                   │
    │            POST <prefix>/*path ─┤                                   │
    │                                 ▼                                   │
    │            LoggingMiddleware → StripPrefixMiddleware → dispatcher   │
    │                                                           │         │
    │                     ┌──────────────────┬──────────────────┤         │
    │                     ▼                  ▼                  ▼         │
    │             FileTransferHandler  UploadPageHandler  UploadHandler   │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE (per connection thread)
=============================================================================

    1. read the head                  idle/closed       → end of connection
                                      too large         → 431, close
    2. parse it                       malformed         → 400/405/505, close
    3. attach the body stream         chunked upload    → 501, close
    4. router → middleware → handler  unexpected error  → 500, logged
    5. send the response
    6. drain the unread body          too much left     → close
    7. keep-alive? back to 1

Each connection runs on its own daemon thread; there is no worker pool,
so a slow client only ever holds its own thread.

=============================================================================
"""

import io
import logging
import threading
from typing import Optional, Set, Tuple

from .config import ServerConfig
from .core.connection import Connection, ConnectionState
from .core.socket_server import SocketServer
from .handlers.dispatch import RequestDispatcher
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse, HTTPStatus, NO_CACHE_HEADERS, error_text, internal_error
from .http.router import Router, catch_all_pattern
from .middleware import LoggingMiddleware, MiddlewarePipeline, StripPrefixMiddleware


logger = logging.getLogger(__name__)


class FileServer:
    """
    HTTP server for one directory tree.

    Usage:
        server = FileServer(ServerConfig(server_root="/srv/share", enable_upload=True))
        server.serve_forever()      # blocks until SIGINT/SIGTERM or shutdown()

    The listen address in the config must already be resolved (an
    interface name is not a host; see resolve_listen_address).
    """

    def __init__(self, config: ServerConfig):
        config.validate()
        self.config = config

        self._socket_server = SocketServer(config)
        self._parser = RequestParser()
        self._dispatcher = RequestDispatcher(config)

        # ─────────────────────────────────────────────────────────────────
        # ROUTES
        # ─────────────────────────────────────────────────────────────────
        self._pipeline = MiddlewarePipeline().use(
            LoggingMiddleware(),
            StripPrefixMiddleware(config.prefix),
        )
        handler = self._pipeline.wrap(self._dispatcher.handle)

        self._router = Router()
        pattern = catch_all_pattern(config.prefix)
        self._router.add_route(pattern, handler, "GET")
        self._router.add_route(pattern, handler, "POST")

        self._running = False
        self._threads: Set[threading.Thread] = set()
        self._threads_lock = threading.Lock()

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) being listened on; the real port once bound."""
        return self._socket_server.address

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self) -> Tuple[str, int]:
        """
        Bind the listening socket now, ahead of serve_forever().

        Raises:
            OSError: The address cannot be bound.
        """
        return self._socket_server.bind()

    def serve_forever(self):
        """
        Accept and serve connections until shutdown().

        Raises:
            OSError: The listen address cannot be bound.
        """
        self._running = True
        try:
            self._socket_server.start(self._handle_connection)
        finally:
            self._running = False
            self._join_connections()

    def shutdown(self):
        """Stop accepting connections. Safe to call from any thread."""
        self._running = False
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _join_connections(self):
        with self._threads_lock:
            threads = list(self._threads)
        if threads:
            logger.debug(f"Waiting for {len(threads)} connection(s) to finish")
        for thread in threads:
            thread.join(self.config.keep_alive_timeout + 1)

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        thread = threading.Thread(
            target=self._run_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads.add(thread)
        thread.start()

    def _run_connection(self, conn: Connection):
        try:
            self._process_connection(conn)
        finally:
            with self._threads_lock:
                self._threads.discard(threading.current_thread())

    def _process_connection(self, conn: Connection):
        with conn:
            while self._running:
                try:
                    head = conn.read_head()
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e).lower())
                    break
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "request timeout")
                    break
                except OSError as e:
                    logger.debug(f"[{conn.id}] Read failed: {e}")
                    break

                if head is None:
                    break

                try:
                    request = self._parser.parse_head(head, conn.address)
                    self._check_framing(request)
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e).lower())
                    break

                body = conn.body_reader(request.content_length, request.expects_continue)
                request.body = io.BufferedReader(body, buffer_size=conn.chunk_size)

                conn.state = ConnectionState.PROCESSING
                response = self._dispatch(conn, request)

                keep_alive = self._running and request.is_keep_alive
                if not keep_alive:
                    response.headers["Connection"] = "close"

                if not conn.send_response(response, self.config.server_name):
                    break
                if not keep_alive:
                    break
                if not body.drain():
                    logger.debug(f"[{conn.id}] Unread request body, closing")
                    break

                conn.state = ConnectionState.KEEP_ALIVE

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        try:
            response = self._router.handle(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            response = internal_error()

        for name, value in NO_CACHE_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @staticmethod
    def _check_framing(request: HTTPRequest):
        """
        Reject bodies this server cannot delimit.

        Raises:
            HTTPParseError: 501 for a transfer coding, 400 for a bad length.
        """
        encoding = request.get_header("transfer-encoding").strip().lower()
        if encoding and encoding != "identity":
            raise HTTPParseError(
                "unsupported transfer encoding",
                status_code=HTTPStatus.NOT_IMPLEMENTED,
            )
        length = request.get_header("content-length").strip()
        if length and not length.isdigit():
            raise HTTPParseError("invalid content length")

    def _send_error(self, conn: Connection, status: int, message: str):
        """Error response for failures before a request reaches the router."""
        response = error_text(status, message)
        response.set_header("Connection", "close")
        conn.send_response(response, self.config.server_name)
