"""
=============================================================================
LISTEN ADDRESS RESOLUTION
=============================================================================

The listen address has the form "<host>:<port>" where <host> may be:

    ""              all interfaces             ":8080"
    an IP address   bind to that address       "127.0.0.1:8080"
    a host name     resolved by the OS         "localhost:8080"
    an INTERFACE    its first IPv4 address     "eth0:8080" → "192.168.1.20:8080"

Interface names are looked up with psutil, which lists the addresses of
every network interface on Linux, macOS, BSD and Windows alike.

    ┌───────────────────────────────────────────────────────────────────┐
    │  split on ":" (at most 3 pieces)                                  │
    │       │                                                           │
    │       ├── not exactly 2 pieces ──────────► InvalidAddress         │
    │       │                                                           │
    │       ├── host is not an interface ──────► unchanged              │
    │       │                                                           │
    │       ├── interface has an IPv4 address ─► "<ipv4>:<port>"        │
    │       │                                                           │
    │       └── interface has none ────────────► NoIPv4Address          │
    └───────────────────────────────────────────────────────────────────┘

Because of the two-piece rule, bracketed IPv6 literals ("[::1]:8080") are
rejected.

=============================================================================
"""

import logging
import socket
from typing import Tuple

import psutil

from ..errors import InvalidAddress, NoIPv4Address
from ..logconfig import with_fields


logger = logging.getLogger("dirserve")


def resolve_listen_address(listen: str) -> str:
    """
    Resolve an interface name in a listen address to its IPv4 address.

    Args:
        listen: "<host-or-interface>:<port>"

    Returns:
        The address to bind to. Unchanged unless the host part names a
        network interface.

    Raises:
        InvalidAddress: The address does not have exactly one ':'.
        NoIPv4Address: The interface exists but has no IPv4 address.
    """
    parts = listen.split(":", 2)
    if len(parts) != 2:
        raise InvalidAddress()

    name, port = parts
    try:
        interfaces = psutil.net_if_addrs()
    except (psutil.Error, OSError) as e:
        logger.debug(f"Cannot list network interfaces: {e}")
        return listen

    if name not in interfaces:
        # Not an interface; an IP or host name is used as given.
        return listen

    for addr in interfaces[name]:
        if addr.family == socket.AF_INET:
            logger.info(
                "Resolving IP for bind address",
                extra=with_fields(IP=addr.address, interface=name),
            )
            return f"{addr.address}:{port}"

    raise NoIPv4Address()


def split_host_port(address: str) -> Tuple[str, int]:
    """
    Split a resolved "host:port" into a bind tuple.

        >>> split_host_port(":8080")
        ('', 8080)
        >>> split_host_port("127.0.0.1:")
        ('127.0.0.1', 0)

    An empty port asks the OS for an ephemeral one. A non-numeric port is
    looked up as a TCP service name ("localhost:http").

    Raises:
        InvalidAddress: Missing ':' or unknown service name.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise InvalidAddress()

    if not port:
        return host, 0

    if port.isdigit():
        number = int(port)
        if number > 65535:
            raise InvalidAddress(f"invalid port {port}")
        return host, number

    try:
        return host, socket.getservbyname(port, "tcp")
    except OSError as e:
        raise InvalidAddress(f"unknown port {port}", cause=e) from e
