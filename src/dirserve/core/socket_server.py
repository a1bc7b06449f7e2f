"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket and the accept loop. Every accepted client is
wrapped in a Connection and handed to a callback; the callback decides
how to run it (the file server starts a thread per connection).

    socket() → setsockopt() → bind(host, port) → listen(backlog)
                                                        │
                          ┌─────────────────────────────┘
                          ▼
                   while running:
                       accept()      ◄── 1 s timeout so shutdown() is seen
                       Connection(client_socket)
                       callback(conn)

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   restart immediately instead of waiting out TIME_WAIT
TCP_NODELAY    no Nagle delay for small writes (response heads)

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (service managers) trigger shutdown(). Python
only allows installing signal handlers from the main thread, so a server
started on any other thread (tests, embedding) leaves signals alone.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .address import split_host_port
from .connection import Connection


logger = logging.getLogger(__name__)

ACCEPT_TIMEOUT = 1.0


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._original_handlers: dict = {}
        self._bound: Optional[Tuple[str, int]] = None

    @property
    def address(self) -> Tuple[str, int]:
        """
        Address actually bound, once listening.

        Before that, the configured address (port 0 means "any").
        """
        if self._bound is not None:
            return self._bound
        return split_host_port(self.config.listen)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(ACCEPT_TIMEOUT)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen without entering the accept loop.

        Returns:
            The bound (host, port).

        Raises:
            OSError: Address in use, permission denied, unknown host...
        """
        host, port = split_host_port(self.config.listen)
        self._socket = self._create_socket()
        try:
            self._socket.bind((host, port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._bound = self._socket.getsockname()[:2]
        return self._bound

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Binds first if bind() was not called already.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._setup_signals()

        host, port = self._bound
        logger.debug(f"Listening on {host}:{port}")
        self._ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                chunk_size=max(self.config.buffer_size, 64 * 1024),
                header_timeout=self.config.header_timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_header_size=self.config.max_header_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop accepting. Safe to call more than once and from any thread."""
        self._running = False

    def _cleanup(self):
        self._restore_signals()
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready.clear()
        logger.debug("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop is running."""
        return self._ready.wait(timeout)
