"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized, immutable configuration for the directory server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m dirserve --server-root /srv                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── DIRSERVE_SERVER_ROOT=/srv python -m dirserve              │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The resulting ServerConfig is frozen: it is built once at startup and
handed to the server, which never looks at argv or the environment again.
The only "change" after loading is swapping in the resolved listen address,
and that produces a new object (see with_listen()).

=============================================================================
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, replace
from typing import Mapping, Optional, Sequence

from . import __version__
from .logconfig import LOG_FORMATS, LOG_LEVELS, with_fields


logger = logging.getLogger("dirserve")

ENV_PREFIX = "DIRSERVE_"
_TRUE_VALUES = {"1", "true", "yes", "on"}


def normalize_prefix(prefix: str) -> str:
    """
    Ensure the URL prefix begins with '/'.

    A missing leading slash is a common typo ("files" instead of "/files"),
    so it is corrected with a warning rather than rejected.
    """
    if not prefix.startswith("/"):
        logger.warning("Prefix must begin with '/'", extra=with_fields(prefix=prefix))
        prefix = "/" + prefix
    return prefix


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the directory server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SERVING
    - server_root, prefix, enable_upload, buffer_size_kb

    NETWORK
    - listen, backlog, header_timeout, keep_alive_timeout, max_header_size

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVING
    # ─────────────────────────────────────────────────────────────────────

    buffer_size_kb: int = 8
    """
    Kilobytes of each upload kept in memory while parsing the multipart
    body. Anything beyond is spooled to a temporary file.
    """

    server_root: str = "."
    """Directory tree that is served and receives uploads."""

    listen: str = ":8080"
    """
    Bind address as "host:port". The host part may also name a network
    interface ("eth0:8080"), which is resolved to its IPv4 address.
    An empty host binds all interfaces.
    """

    prefix: str = "/"
    """URL prefix under which the tree is exposed. Always starts with '/'."""

    enable_upload: bool = False
    """Accept POST uploads and serve the "?upload" form."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "auto"

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION HANDLING
    # ─────────────────────────────────────────────────────────────────────

    header_timeout: float = 30.0
    """
    Seconds allowed for reading the request line and headers.
    Body transfer has no deadline.
    """

    keep_alive_timeout: float = 5.0
    """Idle seconds to wait for the next request on a kept-alive connection."""

    max_header_size: int = 1 << 20
    """Largest accepted request head (request line + headers) in bytes."""

    backlog: int = 128

    server_name: str = f"dirserve/{__version__}"

    def __post_init__(self):
        object.__setattr__(self, "prefix", normalize_prefix(self.prefix))

    @property
    def buffer_size(self) -> int:
        """In-memory multipart limit in bytes."""
        return self.buffer_size_kb * 1024

    def with_listen(self, listen: str) -> "ServerConfig":
        """Return a copy bound to a different (usually resolved) address."""
        return replace(self, listen=listen)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at server construction so mistakes surface at startup,
        not on the first upload.
        """
        if self.buffer_size_kb < 0:
            raise ValueError(f"buffer_size_kb must be >= 0, got {self.buffer_size_kb}")

        if self.header_timeout <= 0 or self.keep_alive_timeout <= 0:
            raise ValueError("timeouts must be > 0")

        if self.max_header_size < 1024:
            raise ValueError("max_header_size must be >= 1024")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.log_format}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Create configuration from environment variables only.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        DIRSERVE_SERVER_ROOT    Directory to serve (default: .)
        DIRSERVE_LISTEN         Bind address (default: :8080)
        DIRSERVE_PREFIX         URL prefix (default: /)
        DIRSERVE_ENABLE_UPLOAD  Enable uploads (1/true/yes/on)
        DIRSERVE_LOG_LEVEL      Logging level (default: INFO)
        DIRSERVE_LOG_FORMAT     auto, text or json (default: auto)

        =====================================================================
        """
        return load_config([], environ)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ServerConfig":
        """Build a configuration from parsed command-line arguments."""
        return cls(
            buffer_size_kb=args.buffer_size_kb,
            server_root=args.server_root,
            listen=args.listen,
            prefix=args.prefix,
            enable_upload=args.enable_upload,
            log_level=args.log_level,
            log_format=args.log_format,
        )


# =============================================================================
# COMMAND LINE
# =============================================================================

def _env_flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {value}")
    return number


def build_parser(environ: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Environment variables become the argument defaults, so an explicit flag
    always wins over the environment.
    """
    env = os.environ if environ is None else environ

    def from_env(name: str, default: str) -> str:
        return env.get(ENV_PREFIX + name, default)

    parser = argparse.ArgumentParser(
        prog="dirserve",
        description="Serve a directory tree over HTTP, optionally accepting uploads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dirserve                          # Serve the current directory on :8080
  dirserve -d /srv/share -u         # Serve /srv/share and allow uploads
  dirserve -l eth0:8080             # Bind to the IPv4 address of eth0
  dirserve -p /files                # Expose the tree under /files/
        """,
    )

    parser.add_argument(
        "-b", "--client-body-buffer-size",
        dest="buffer_size_kb",
        type=_non_negative_int,
        default=8,
        help="total number of kilobytes stored in memory (per upload)",
    )
    parser.add_argument(
        "-d", "--server-root",
        default=from_env("SERVER_ROOT", "."),
        help="root directory to serve [$DIRSERVE_SERVER_ROOT] (default: .)",
    )
    parser.add_argument(
        "-l", "--listen",
        default=from_env("LISTEN", ":8080"),
        help="host address and port to bind to [$DIRSERVE_LISTEN] (default: :8080)",
    )
    parser.add_argument(
        "-p", "--prefix",
        default=from_env("PREFIX", "/"),
        help="prefix for the HTTP URLs [$DIRSERVE_PREFIX] (default: /)",
    )
    parser.add_argument(
        "-u", "--enable-upload",
        action="store_true",
        default=_env_flag(env.get(ENV_PREFIX + "ENABLE_UPLOAD")),
        help='enable upload of files by adding "?upload" [$DIRSERVE_ENABLE_UPLOAD]',
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=from_env("LOG_LEVEL", "INFO").upper(),
        help="logging level [$DIRSERVE_LOG_LEVEL] (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=from_env("LOG_FORMAT", "auto"),
        help="log output format [$DIRSERVE_LOG_FORMAT] (default: auto)",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"dirserve version {__version__}",
        help="print version information",
    )
    return parser


def parse_args(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> argparse.Namespace:
    """Parse arguments (sys.argv[1:] by default)."""
    parser = build_parser(environ)
    return parser.parse_args(sys.argv[1:] if argv is None else list(argv))


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    """
    Parse the command line (falling back to the environment) into a config.

    Exits the process on --help, --version or invalid arguments, like any
    argparse-based CLI.
    """
    return ServerConfig.from_args(parse_args(argv, environ))
