"""Validated value objects describing where a listener binds and how its
sockets are tuned.
"""

import attr

from typing import Optional

from sockserve.errors import ConfigurationError
from sockserve.networking import enable_tcp_keepalive, set_linger

import trio.socket

__all__ = ("SocketConnectionSettings", "TcpServerSocketProperties")


def _is_integer(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _port(instance, attribute, value) -> None:
    if not _is_integer(value) or not 1 <= value <= 65535:
        raise ConfigurationError(
            f"{attribute.name} must be an integer between 1 and 65535, got {value!r}"
        )


def _positive_or_none(instance, attribute, value) -> None:
    if value is None:
        return
    if not _is_integer(value) or value <= 0:
        raise ConfigurationError(
            f"{attribute.name} must be a positive integer, got {value!r}"
        )


def _non_negative(instance, attribute, value) -> None:
    if not _is_integer(value) or value < 0:
        raise ConfigurationError(
            f"{attribute.name} must be a non-negative integer, got {value!r}"
        )


def _non_negative_or_none(instance, attribute, value) -> None:
    if value is not None:
        _non_negative(instance, attribute, value)


def _boolean(instance, attribute, value) -> None:
    if not isinstance(value, bool):
        raise ConfigurationError(f"{attribute.name} must be a boolean, got {value!r}")


@attr.s(frozen=True, kw_only=True)
class SocketConnectionSettings:
    """Address where a listener binds its server socket."""

    host: str = attr.ib(default="0.0.0.0")
    """The IP address or hostname to listen on. ``0.0.0.0`` listens on all
    IPv4 interfaces.
    """

    port: int = attr.ib(validator=_port)
    """The port to listen on."""

    @host.validator
    def _check_host(self, attribute, value) -> None:
        if not isinstance(value, str):
            raise ConfigurationError(f"host must be a string, got {value!r}")

    @property
    def address(self):
        """The address of the listener as a host-port tuple."""
        return self.host, self.port

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@attr.s(frozen=True, kw_only=True)
class TcpServerSocketProperties:
    """Low-level tuning properties of a listening TCP socket and of the client
    sockets that it accepts.

    All timeouts are in milliseconds. Values are validated when the object is
    constructed; invalid values raise ConfigurationError_.
    """

    send_buffer_size: Optional[int] = attr.ib(
        default=None, validator=_positive_or_none
    )
    """Size of the send buffer of the socket (``SO_SNDBUF``), in bytes.
    ``None`` keeps the OS default.
    """

    receive_buffer_size: Optional[int] = attr.ib(
        default=None, validator=_positive_or_none
    )
    """Size of the receive buffer of the socket (``SO_RCVBUF``), in bytes.
    ``None`` keeps the OS default.
    """

    reuse_address: bool = attr.ib(default=True, validator=_boolean)
    """Whether to set ``SO_REUSEADDR`` on the listening socket so that it can
    be rebound while older connections linger in ``TIME_WAIT``.
    """

    receive_backlog: int = attr.ib(default=50, validator=_non_negative)
    """Maximum number of pending connections in the accept queue."""

    keep_alive: bool = attr.ib(default=False, validator=_boolean)
    """Whether to enable TCP keepalive on accepted client sockets."""

    send_tcp_no_delay: bool = attr.ib(default=True, validator=_boolean)
    """Whether to disable Nagle's algorithm on accepted client sockets."""

    linger: Optional[int] = attr.ib(default=None, validator=_non_negative_or_none)
    """``SO_LINGER`` timeout of accepted client sockets; ``None`` keeps the OS
    default.
    """

    client_timeout: Optional[int] = attr.ib(
        default=None, validator=_non_negative_or_none
    )
    """Maximum time to wait for a single message from an accepted client;
    ``None`` or zero waits indefinitely.
    """

    handshake_timeout: int = attr.ib(default=10000, validator=_non_negative)
    """Maximum time that the TLS handshake of an accepted client may take;
    zero waits indefinitely. The handshake happens on the first read or write
    of the client, never inside the accept call of the listener.
    """

    connection_timeout: int = attr.ib(default=30000, validator=_non_negative)
    """Maximum time that binding the listening socket may take; zero waits
    indefinitely.
    """

    @property
    def client_timeout_seconds(self) -> Optional[float]:
        return self.client_timeout / 1000 if self.client_timeout else None

    @property
    def handshake_timeout_seconds(self) -> Optional[float]:
        return self.handshake_timeout / 1000 if self.handshake_timeout else None

    @property
    def connection_timeout_seconds(self) -> Optional[float]:
        return self.connection_timeout / 1000 if self.connection_timeout else None

    def apply_to_server_socket(self, sock) -> None:
        """Applies the properties that concern the listening socket itself.

        Must be called before the socket is bound.
        """
        if self.reuse_address and hasattr(trio.socket, "SO_REUSEADDR"):
            sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_REUSEADDR, 1)
        self._apply_buffer_sizes(sock)

    def apply_to_client_socket(self, sock) -> None:
        """Applies the properties that concern accepted client sockets."""
        self._apply_buffer_sizes(sock)

        sock.setsockopt(
            trio.socket.IPPROTO_TCP, trio.socket.TCP_NODELAY, int(self.send_tcp_no_delay)
        )

        if self.keep_alive:
            enable_tcp_keepalive(sock)

        if self.linger is not None:
            set_linger(sock, self.linger)

    def _apply_buffer_sizes(self, sock) -> None:
        if self.send_buffer_size is not None:
            sock.setsockopt(
                trio.socket.SOL_SOCKET, trio.socket.SO_SNDBUF, self.send_buffer_size
            )
        if self.receive_buffer_size is not None:
            sock.setsockopt(
                trio.socket.SOL_SOCKET, trio.socket.SO_RCVBUF, self.receive_buffer_size
            )
