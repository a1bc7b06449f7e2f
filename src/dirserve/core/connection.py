"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one client socket with what the HTTP layer needs: buffered reading
of request heads, a bounded stream for request bodies, and response
writing that can copy files to the socket chunk by chunk.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever has arrived, not whole messages:

    Client sends:   "GET / HTTP/1.1\\r\\nHost: a\\r\\n\\r\\n"
    recv() #1   →   "GET / HT"
    recv() #2   →   "TP/1.1\\r\\nHost: a\\r\\n\\r\\nPOST /up..."
                                            ▲
                               next request already here (keep-alive)

So the connection keeps a buffer. read_head() accumulates until it sees
the blank line (\\r\\n\\r\\n) and leaves everything after it in the buffer,
where the body reader picks it up first.

=============================================================================
TIMEOUTS
=============================================================================

    ┌──────────────────────────────────────────────────────────────────┐
    │  reading the head of the first request   header_timeout (30 s)   │
    │  waiting for the next keep-alive request keep_alive_timeout (5 s)│
    │  reading the body, writing the response  no deadline             │
    └──────────────────────────────────────────────────────────────────┘

Uploads and downloads of large files may take arbitrarily long, so only
the head is under a deadline.

=============================================================================
"""

import io
import logging
import socket
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.request import HTTPParseError
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

CONTINUE_LINE = b"HTTP/1.1 100 Continue\r\n\r\n"
DRAIN_LIMIT = 256 * 1024


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port).
        id: Short identifier used in debug logs.
        requests_handled: Number of request heads read so far.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    chunk_size: int = 64 * 1024
    header_timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_header_size: int = 1 << 20

    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)

    # =========================================================================
    # READING
    # =========================================================================

    def read_head(self) -> Optional[bytes]:
        """
        Read the next request head (request line and headers).

        Returns:
            The head without its terminating blank line, or None if the
            client closed the connection or stayed idle past the
            keep-alive timeout.

        Raises:
            TimeoutError: The first request's head did not arrive in time.
            HTTPParseError: The head exceeds max_header_size (431).
        """
        self.state = ConnectionState.READING
        keep_alive = self.requests_handled > 0
        self.socket.settimeout(self.keep_alive_timeout if keep_alive else self.header_timeout)

        try:
            search_from = 0
            while True:
                end = self._buffer.find(b"\r\n\r\n", search_from)
                if end != -1:
                    break
                if len(self._buffer) > self.max_header_size:
                    raise HTTPParseError(
                        "Request header fields too large",
                        status_code=HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
                    )
                search_from = max(0, len(self._buffer) - 3)
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk

            if end > self.max_header_size:
                raise HTTPParseError(
                    "Request header fields too large",
                    status_code=HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
                )

            head = bytes(self._buffer[:end])
            del self._buffer[:end + 4]
            self.requests_handled += 1
            return head

        except socket.timeout:
            if keep_alive or not self._buffer:
                logger.debug(f"[{self.id}] Idle timeout")
                return None
            raise TimeoutError("Request header read timeout")

        finally:
            # Body and response transfer have no deadline.
            self.socket.settimeout(None)

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.chunk_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def body_reader(self, length: int, expect_continue: bool = False) -> "BodyReader":
        """Raw stream over the next `length` bytes of request body."""
        return BodyReader(self, length, expect_continue)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send bytes with sendall().

        Returns:
            True if sent, False if the connection is gone.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False
        return True

    def send_response(self, response: HTTPResponse, server_name: str) -> bool:
        """
        Write a response, copying a streamed body in chunks.

        The response's stream is closed afterwards in every case.
        """
        try:
            if response.stream is None:
                return self.send(response.to_bytes(server_name))

            if not self.send(response.head_bytes(server_name)):
                return False

            remaining = response.stream_length
            while remaining > 0:
                chunk = response.stream.read(min(self.chunk_size, remaining))
                if not chunk:
                    # File shrank while being sent; the promised length
                    # can no longer be met.
                    logger.warning(f"[{self.id}] Short read while sending file body")
                    return False
                if not self.send(chunk):
                    return False
                remaining -= len(chunk)
            return True
        finally:
            response.close()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection: FIN to the client, drain briefly, release fd.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class BodyReader(io.RawIOBase):
    """
    Request body as a raw stream of exactly Content-Length bytes.

    Bytes that arrived together with the head are served from the
    connection buffer first. With "Expect: 100-continue" the interim
    response is sent on the first read, so a client whose upload is
    never read does not transmit it.

    Wrap it in io.BufferedReader for readline().
    """

    def __init__(self, connection: Connection, length: int, expect_continue: bool = False):
        super().__init__()
        self.connection = connection
        self.remaining = length
        self.expect_continue = expect_continue
        self.truncated = False
        self._continued = False

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.remaining <= 0 or self.truncated:
            return 0

        if self.expect_continue and not self._continued:
            self._continued = True
            if not self.connection.send(CONTINUE_LINE):
                raise ConnectionError("client went away before sending the body")

        view = memoryview(b).cast("B")
        wanted = min(len(view), self.remaining)
        buffered = self.connection._buffer

        if buffered:
            n = min(wanted, len(buffered))
            view[:n] = buffered[:n]
            del buffered[:n]
        else:
            try:
                n = self.connection.socket.recv_into(view[:wanted])
            except (ConnectionResetError, BrokenPipeError):
                n = 0
            if n == 0:
                # Peer closed before Content-Length bytes arrived.
                self.truncated = True
                raise ConnectionError("client closed connection before end of body")

        self.remaining -= n
        return n

    def drain(self, limit: int = DRAIN_LIMIT) -> bool:
        """
        Discard unread body bytes so the next request can be parsed.

        Returns:
            True if the connection can be reused; False if the remainder
            exceeds `limit`, the body was cut short, or the client is still
            waiting for "100 Continue".
        """
        if self.truncated:
            return False
        if self.remaining == 0:
            return True
        if self.expect_continue and not self._continued:
            return False
        if self.remaining > limit:
            return False

        scratch = bytearray(min(self.connection.chunk_size, self.remaining))
        try:
            while self.remaining > 0:
                if self.readinto(scratch) == 0:
                    return False
        except OSError:
            return False
        return True
