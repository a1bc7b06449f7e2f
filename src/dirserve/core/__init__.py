"""
=============================================================================
CORE NETWORKING COMPONENTS
=============================================================================

The transport layer of the server, below anything HTTP-specific:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ address.py        "eth0:8080" → "192.168.1.20:8080" (psutil)        │
    │ socket_server.py  listening socket, accept loop, signal handling    │
    │ connection.py     one client socket: head reading, body stream,     │
    │                   response writing, keep-alive state                │
    └─────────────────────────────────────────────────────────────────────┘

Concurrency is one thread per connection, started by the file server for
every Connection the accept loop produces. A connection's thread handles
its requests one after another (HTTP/1.1 keep-alive without pipelining).

=============================================================================
"""

from .address import resolve_listen_address, split_host_port
from .connection import BodyReader, Connection, ConnectionState
from .socket_server import SocketServer

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "BodyReader",
    "resolve_listen_address",
    "split_host_port",
]
