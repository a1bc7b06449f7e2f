"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m dirserve [-b KB] [-d DIR] [-l ADDR] [-p PREFIX] [-u]
                       [--log-level LEVEL] [--log-format FORMAT]

or, once installed, just `dirserve ...`.

Startup order:

    1. parse flags / environment      bad flags      → usage, exit 2
    2. configure logging
    3. resolve the listen address     bad address    → CRITICAL, exit 1
    4. log "Starting server"
    5. bind and serve                 bind failure   → CRITICAL, exit 1
    6. SIGINT / SIGTERM → log "Stopping server", exit 0

=============================================================================
"""

import logging
import sys
from typing import Optional, Sequence

from .config import ServerConfig, parse_args
from .core.address import resolve_listen_address
from .errors import DirserveError
from .logconfig import configure_logging, with_fields
from .server import FileServer


logger = logging.getLogger("dirserve")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_format)
    # After logging is up, so a prefix correction is logged like the rest.
    config = ServerConfig.from_args(args)

    try:
        listen = resolve_listen_address(config.listen)
    except DirserveError as e:
        logger.critical("Cannot resolve IP", extra=with_fields(error=str(e), listen=config.listen))
        return 1

    logger.info(
        "Starting server",
        extra=with_fields(**{
            "enable-upload": config.enable_upload,
            "listen": listen,
            "client-body-buffer-size": config.buffer_size_kb,
            "prefix": config.prefix,
            "server-root": config.server_root,
        }),
    )

    try:
        server = FileServer(config.with_listen(listen))
        server.serve_forever()
    except (OSError, DirserveError, ValueError) as e:
        logger.critical("Cannot start server", extra=with_fields(error=str(e), listen=listen))
        return 1
    finally:
        logger.info("Stopping server")

    return 0


if __name__ == "__main__":
    sys.exit(main())
