"""
=============================================================================
DIRSERVE - Zero-Configuration Directory Server With Optional Uploads
=============================================================================

This package serves a directory tree over HTTP: files are downloaded as-is,
directories get an auto-generated listing, and (when enabled) files can be
uploaded into the same tree from a browser form.

Everything below the request handlers is built from raw Python sockets:
the listener, connection handling, HTTP/1.1 parsing, the response writer,
routing and the middleware chain.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer ──accept──► Connection (one thread per connection)   │
    │                                   │                                  │
    │                                   ▼                                  │
    │                     Router:  GET|POST <prefix>/*path                │
    │                                   │                                  │
    │                                   ▼                                  │
    │                     LoggingMiddleware  (timing + access record)     │
    │                                   │                                  │
    │                                   ▼                                  │
    │                     StripPrefixMiddleware                           │
    │                                   │                                  │
    │                                   ▼                                  │
    │                     RequestDispatcher (no-cache headers + classify) │
    │                      │            │                 │               │
    │                      ▼            ▼                 ▼               │
    │             FileTransfer   UploadPage          UploadHandler        │
    │             (file / dir)   (?upload form)      (POST multipart)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    dirserve/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m dirserve)
    ├── server.py            # FileServer - wires everything together
    ├── config.py            # ServerConfig (frozen dataclass) + CLI/env loading
    ├── errors.py            # Error taxonomy and error responses
    ├── logconfig.py         # Logging setup, text/JSON formatters
    ├── core/                # Low-level components
    │   ├── address.py       # Listen address / interface resolution
    │   ├── socket_server.py # TCP listener and accept loop
    │   └── connection.py    # Client connection + request body stream
    ├── http/                # HTTP protocol components
    │   ├── request.py       # Request head parsing
    │   ├── response.py      # Response building and serialization
    │   ├── router.py        # Method + path routing
    │   ├── multipart.py     # multipart/form-data parser
    │   ├── status_codes.py  # HTTP status enum
    │   └── mime_types.py    # Content-Type detection
    ├── middleware/          # Middleware components
    │   ├── base.py          # Middleware contract and pipeline
    │   ├── logging.py       # Access logging
    │   └── prefix.py        # URL prefix stripping
    └── handlers/            # Request handlers
        ├── dispatch.py      # Request classification
        ├── static.py        # File download and directory listing
        ├── upload_page.py   # Upload form
        └── upload.py        # Multipart upload into the tree

=============================================================================
QUICK START
=============================================================================

    from dirserve import FileServer, ServerConfig

    config = ServerConfig(server_root="/srv/share", listen=":8080",
                          enable_upload=True)
    FileServer(config).serve_forever()

    # or from a shell:
    #   python -m dirserve -d /srv/share -l eth0:8080 -u

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, load_config
from .server import FileServer

__all__ = ["FileServer", "ServerConfig", "load_config", "__version__"]
