"""Generic networking-related utility functions."""

from ipaddress import ip_address, IPv6Address
from typing import Tuple

import platform
import struct
import trio.socket

__all__ = (
    "create_socket",
    "enable_tcp_keepalive",
    "format_socket_address",
    "get_address_family",
    "set_linger",
)


def get_address_family(host: str) -> int:
    """Returns the address family that a socket needs to have in order to be
    bound to the given host.

    Hostnames that are not IP addresses are assumed to be IPv4 hostnames.
    """
    try:
        address = ip_address(host)
    except ValueError:
        return trio.socket.AF_INET

    if isinstance(address, IPv6Address):
        return trio.socket.AF_INET6
    else:
        return trio.socket.AF_INET


def create_socket(
    socket_type, family: int = trio.socket.AF_INET
) -> trio.socket.SocketType:
    """Creates an asynchronous socket with the given type.

    Asynchronous sockets have asynchronous sender and receiver methods so
    you need to use the `await` keyword with them.

    Unlike most server libraries, this function does *not* set
    ``SO_REUSEPORT`` on the socket; two listening sockets bound to the same
    address must fail to coexist. ``SO_REUSEADDR`` is controlled by the
    socket properties of the listener.

    Parameters:
        socket_type: the type of the socket (``socket.SOCK_STREAM`` for
            TCP sockets, ``socket.SOCK_DGRAM`` for UDP sockets)
        family: the address family of the socket

    Returns:
        the newly created socket
    """
    return trio.socket.socket(family, socket_type)


def enable_tcp_keepalive(
    sock, after_idle_sec: int = 1, interval_sec: int = 3, max_fails: int = 5
) -> None:
    """Enables TCP keepalive settings on the given socket.

    Parameters:
        after_idle_sec: number of seconds after which the socket should start
            sending TCP keepalive packets
        interval_sec: number of seconds between consecutive TCP keepalive
            packets
        max_fails: maximum number of failures allowed before terminating the
            TCP connection
    """
    sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_KEEPALIVE, 1)

    if hasattr(trio.socket, "TCP_KEEPIDLE"):
        sock.setsockopt(
            trio.socket.IPPROTO_TCP, trio.socket.TCP_KEEPIDLE, after_idle_sec
        )
    elif platform.system() == "Darwin":
        TCP_KEEPALIVE = 0x10  # scraped from the Darwin headers
        sock.setsockopt(trio.socket.IPPROTO_TCP, TCP_KEEPALIVE, after_idle_sec)

    if hasattr(trio.socket, "TCP_KEEPINTVL"):
        sock.setsockopt(
            trio.socket.IPPROTO_TCP, trio.socket.TCP_KEEPINTVL, interval_sec
        )

    if hasattr(trio.socket, "TCP_KEEPCNT"):
        sock.setsockopt(trio.socket.IPPROTO_TCP, trio.socket.TCP_KEEPCNT, max_fails)


def set_linger(sock, linger_ms: int) -> None:
    """Enables ``SO_LINGER`` on the given socket with the given timeout.

    The OS accepts whole seconds only; the timeout is rounded up so a small
    non-zero value does not turn into an abortive close.
    """
    seconds = -(-linger_ms // 1000)
    sock.setsockopt(
        trio.socket.SOL_SOCKET, trio.socket.SO_LINGER, struct.pack("ii", 1, seconds)
    )


def format_socket_address(
    address: Tuple[str, int], format: str = "{host}:{port}"
) -> str:
    """Formats a socket address in the standard hostname-port format.

    IPv6 hosts are enclosed in brackets.

    Parameters:
        address: the address to format; extra items after the host and the
            port (as returned for IPv6 sockets) are ignored
        format: format string in brace-style that is used by
            ``str.format()``. The tokens ``{host}`` and ``{port}`` will be
            replaced by the hostname and port.
    """
    host, port = address[0], address[1]
    if ":" in host:
        host = f"[{host}]"
    return format.format(host=host, port=port)
