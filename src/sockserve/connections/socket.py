"""Listening TCP sockets, with or without TLS, and the listener connection
that owns them.
"""

import errno
import logging

from abc import ABCMeta, abstractmethod
from math import inf
from ssl import SSLContext
from trio import (
    ClosedResourceError,
    SocketStream,
    SSLStream,
    TooSlowError,
    fail_after,
)
from trio.abc import Stream
from trio.socket import SOCK_STREAM, SocketType
from typing import Optional, Tuple

from sockserve.errors import (
    ConfigurationError,
    ConnectionError,
    IllegalStateError,
    ListenerClosedError,
)
from sockserve.networking import (
    create_socket,
    format_socket_address,
    get_address_family,
)
from sockserve.protocols import FramingProtocol, SafeProtocol

from .base import ConnectionBase, ConnectionState, ListenerConnection
from .settings import SocketConnectionSettings, TcpServerSocketProperties
from .stream import FramedStreamConnection
from .tls import TlsConfiguration

__all__ = (
    "ServerSocket",
    "ServerSocketFactory",
    "TcpListenerConnection",
    "TcpServerSocketFactory",
    "TlsServerSocket",
    "TlsServerSocketFactory",
)


log = logging.getLogger(__name__.rpartition(".")[0])


_CLIENT_ERRNOS = frozenset(
    getattr(errno, name)
    for name in (
        "ECONNABORTED",
        "ECONNRESET",
        "EPERM",
        "EPROTO",
        "ENETDOWN",
        "ENOPROTOOPT",
        "EHOSTDOWN",
        "ENONET",
        "EHOSTUNREACH",
        "EOPNOTSUPP",
        "ENETUNREACH",
    )
    if hasattr(errno, name)
)
"""Error codes of ``accept()`` that concern a single client that gave up
while waiting in the accept queue, not the listening socket itself.
"""


class ServerSocket:
    """Bound, listening server socket that hands out connected client
    streams.

    The server socket owns the underlying OS socket; closing it releases the
    port and wakes up any task that is blocked in `accept()`.
    """

    def __init__(self, sock: SocketType, properties: TcpServerSocketProperties):
        """Constructor.

        Parameters:
            sock: the bound and listening Trio socket to take ownership of
            properties: the socket properties to apply to accepted clients
        """
        self._socket = sock
        self._properties = properties

    @property
    def address(self):
        """The address that the socket is bound to."""
        return self._socket.getsockname()

    @property
    def is_closed(self) -> bool:
        """Returns whether the socket was closed."""
        return self._socket.fileno() == -1

    @property
    def socket(self) -> SocketType:
        """Returns the socket object itself."""
        return self._socket

    async def accept(self) -> Tuple[Stream, Tuple]:
        """Waits for the next client and returns a stream connected to it,
        along with the address of the client.

        Clients that disappear between the TCP handshake and the end of this
        call are logged and skipped.

        Raises:
            OSError: if the listening socket itself failed or was closed
        """
        while True:
            try:
                client_socket, address = await self._socket.accept()
            except OSError as ex:
                if ex.errno not in _CLIENT_ERRNOS:
                    raise
                log.warning(f"Dropped a client while accepting it: {ex}")
                continue

            try:
                # SocketStream enables TCP_NODELAY; properties are applied after it
                stream = SocketStream(client_socket)
                self._properties.apply_to_client_socket(client_socket)
            except OSError as ex:
                client_socket.close()
                log.warning(
                    "Dropped client {0}: {1}".format(format_socket_address(address), ex)
                )
                continue

            return self._wrap_stream(stream), address

    def close(self) -> None:
        """Closes the socket. No-op if the socket is closed already."""
        self._socket.close()

    def _wrap_stream(self, stream: SocketStream) -> Stream:
        return stream


class TlsServerSocket(ServerSocket):
    """Server socket that wraps every accepted client in a server-side TLS
    stream.

    The handshake is not performed here; it happens on the first read or
    write of the client so a slow or silent client never holds up the
    listener.
    """

    def __init__(
        self,
        sock: SocketType,
        properties: TcpServerSocketProperties,
        context: SSLContext,
    ):
        super().__init__(sock, properties)
        self._context = context

    @property
    def context(self) -> SSLContext:
        return self._context

    def _wrap_stream(self, stream: SocketStream) -> Stream:
        return SSLStream(stream, self._context, server_side=True)


class ServerSocketFactory(metaclass=ABCMeta):
    """Interface specification for objects that create bound, listening server
    sockets.
    """

    is_tls: bool = False
    """Whether the sockets created by the factory use TLS."""

    async def create_server_socket(
        self,
        settings: SocketConnectionSettings,
        properties: TcpServerSocketProperties,
    ) -> ServerSocket:
        """Creates a new server socket, binds it to the address given in the
        settings and starts listening on it.

        The socket is closed if any of these steps fail, so no OS resources
        are leaked.

        Raises:
            OSError: if the socket cannot be bound or cannot listen
        """
        sock = create_socket(SOCK_STREAM, get_address_family(settings.host))
        try:
            properties.apply_to_server_socket(sock)
            await sock.bind(settings.address)
            sock.listen(properties.receive_backlog)
            return self._wrap_socket(sock, properties)
        except BaseException:
            sock.close()
            raise

    @abstractmethod
    def _wrap_socket(
        self, sock: SocketType, properties: TcpServerSocketProperties
    ) -> ServerSocket:
        """Wraps a bound and listening socket in a ServerSocket_ instance."""
        raise NotImplementedError


class TcpServerSocketFactory(ServerSocketFactory):
    """Factory that creates plain TCP server sockets."""

    def _wrap_socket(
        self, sock: SocketType, properties: TcpServerSocketProperties
    ) -> ServerSocket:
        return ServerSocket(sock, properties)


class TlsServerSocketFactory(ServerSocketFactory):
    """Factory that creates TLS-enabled server sockets."""

    is_tls = True

    def __init__(self, tls: TlsConfiguration):
        """Constructor.

        The TLS configuration is initialised eagerly, before any socket is
        opened.

        Parameters:
            tls: the TLS configuration of the server socket. It must have a
                key store.

        Raises:
            ConfigurationError: if the TLS configuration has no key store or
                its certificates cannot be loaded
        """
        if tls is None or not tls.is_key_store_configured:
            raise ConfigurationError("KeyStore must be configured for server side TLS")

        tls.initialise()
        self._tls = tls

    @property
    def tls(self) -> TlsConfiguration:
        return self._tls

    def _wrap_socket(
        self, sock: SocketType, properties: TcpServerSocketProperties
    ) -> ServerSocket:
        return TlsServerSocket(sock, properties, self._tls.create_server_context())


class TcpListenerConnection(
    ConnectionBase, ListenerConnection[FramedStreamConnection]
):
    """Connection object that owns a single listening TCP (or TLS) socket and
    accepts clients on it.

    Connecting the connection binds the socket; disconnecting it closes the
    socket. A disconnected listener cannot be connected again.
    """

    _server_socket: Optional[ServerSocket]

    def __init__(
        self,
        settings: SocketConnectionSettings,
        protocol: Optional[FramingProtocol] = None,
        properties: Optional[TcpServerSocketProperties] = None,
        factory: Optional[ServerSocketFactory] = None,
    ):
        """Constructor.

        Parameters:
            settings: the address to listen on
            protocol: the framing protocol of accepted clients; defaults to
                SafeProtocol_
            properties: tuning properties of the listening socket and the
                accepted client sockets; defaults to the default properties
            factory: the factory that creates the listening socket; defaults
                to a plain TCP socket factory
        """
        super().__init__()

        self._settings = settings
        self._protocol = protocol if protocol is not None else SafeProtocol()
        self._properties = (
            properties if properties is not None else TcpServerSocketProperties()
        )
        self._factory = factory if factory is not None else TcpServerSocketFactory()
        self._server_socket = None

    @property
    def address(self):
        """The address that the listener is bound to. Returns the configured
        address if the listener is not bound.
        """
        if self._server_socket is not None and not self._server_socket.is_closed:
            return self._server_socket.address
        return self._settings.address

    @property
    def factory(self) -> ServerSocketFactory:
        return self._factory

    @property
    def port(self) -> int:
        """The port that the listener is bound to."""
        return self.address[1]

    @property
    def properties(self) -> TcpServerSocketProperties:
        return self._properties

    @property
    def protocol(self) -> FramingProtocol:
        return self._protocol

    @property
    def settings(self) -> SocketConnectionSettings:
        return self._settings

    async def accept(self) -> FramedStreamConnection:
        """Waits for the next client and returns a connection to it that
        reads and writes messages with the framing protocol of the listener.

        Closing the listener from another task wakes up a pending call.
        Clients that fail before they are handed out are logged and skipped.
        TLS clients complete their handshake on their first read or write.

        Raises:
            IllegalStateError: if the listener is not connected
            ListenerClosedError: if the listener was closed while waiting
            ConnectionError: if the listening socket itself failed; the
                listener is still connected and may be closed or retried
        """
        server_socket = self._server_socket
        if self.state is not ConnectionState.CONNECTED or server_socket is None:
            raise IllegalStateError(f"Listener on {self._settings} is not connected")

        try:
            stream, address = await server_socket.accept()
        except ClosedResourceError as ex:
            raise ListenerClosedError(f"Listener on {self._settings} was closed") from ex
        except OSError as ex:
            if server_socket.is_closed:
                raise ListenerClosedError(
                    f"Listener on {self._settings} was closed"
                ) from ex
            raise ConnectionError(
                f"Cannot accept clients on {self._settings}: {ex.strerror or ex}",
                self._settings.address,
            ) from ex

        log.debug("Accepted client from {0}".format(format_socket_address(address)))
        return FramedStreamConnection(
            stream,
            self._protocol,
            remote_address=address,
            read_timeout=self._properties.client_timeout_seconds,
            handshake_timeout=self._properties.handshake_timeout_seconds,
        )

    def is_valid(self) -> bool:
        """Returns whether the listener is connected and its socket is still
        open.
        """
        return (
            self.state is ConnectionState.CONNECTED
            and self._server_socket is not None
            and not self._server_socket.is_closed
        )

    async def _connect(self) -> None:
        address = self._settings.address
        timeout = self._properties.connection_timeout_seconds or inf
        try:
            with fail_after(timeout):
                self._server_socket = await self._factory.create_server_socket(
                    self._settings, self._properties
                )
        except TooSlowError as ex:
            raise ConnectionError(
                f"Timed out while trying to listen on {self._settings}", address
            ) from ex
        except OSError as ex:
            raise ConnectionError(
                f"Cannot listen on {self._settings}: {ex.strerror or ex}", address
            ) from ex

        log.info(
            "Listening on {0}{1}".format(
                format_socket_address(self.address),
                " (TLS)" if self._factory.is_tls else "",
            )
        )

    async def _disconnect(self) -> None:
        server_socket = self._server_socket
        self._server_socket = None
        if server_socket is not None:
            server_socket.close()
            log.info(f"Stopped listening on {self._settings}")
