"""Connection provider that owns and caches the single listening connection
of a socket server.
"""

import attr
import logging

from functools import partial
from trio import Lock
from typing import Any, Optional, Union

from sockserve.errors import (
    ConfigurationError,
    IllegalStateError,
    InitializationError,
    UnknownProviderTypeError,
)
from sockserve.factory import Factory
from sockserve.protocols import FramingProtocol, SafeProtocol, create_protocol

from .settings import SocketConnectionSettings, TcpServerSocketProperties
from .socket import (
    ServerSocketFactory,
    TcpListenerConnection,
    TcpServerSocketFactory,
    TlsServerSocketFactory,
)
from .tls import KeyStore, TlsConfiguration, TrustStore

__all__ = (
    "ConnectionValidationResult",
    "PlainMode",
    "TcpListenerProvider",
    "TlsMode",
    "create_connection_provider",
    "create_connection_provider_factory",
)


log = logging.getLogger(__name__.rpartition(".")[0])


@attr.s(frozen=True)
class ConnectionValidationResult:
    """Outcome of a health check on a listener connection."""

    is_valid: bool = attr.ib()
    failure_reason: Optional[str] = attr.ib(default=None)

    @classmethod
    def success(cls):
        return cls(True)

    @classmethod
    def failure(cls, reason: str):
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.is_valid


@attr.s(frozen=True)
class PlainMode:
    """Listener mode where clients talk plain TCP."""

    def create_factory(self) -> ServerSocketFactory:
        return TcpServerSocketFactory()


@attr.s(frozen=True)
class TlsMode:
    """Listener mode where every client completes a TLS handshake first."""

    tls: TlsConfiguration = attr.ib()

    def create_factory(self) -> ServerSocketFactory:
        return TlsServerSocketFactory(self.tls)


ListenerMode = Union[PlainMode, TlsMode]


class TcpListenerProvider:
    """Provider that creates, caches, validates and tears down the single
    listening connection of a socket server.

    The provider must be initialised with `initialise()` before it is used.
    `connect()` returns the same cached listener to every caller as long as
    the listener is valid; an invalid listener is replaced with a new one on
    the next call. Lifecycle transitions are serialized with a lock so two
    tasks never bind two listeners on the same address.
    """

    _connection: Optional[TcpListenerConnection]
    _factory: Optional[ServerSocketFactory]

    def __init__(
        self,
        settings: SocketConnectionSettings,
        *,
        tls: Optional[TlsConfiguration] = None,
        properties: Optional[TcpServerSocketProperties] = None,
        protocol: Union[FramingProtocol, str, dict, None] = None,
    ):
        """Constructor.

        Parameters:
            settings: the address to listen on
            tls: the TLS configuration of the listener; ``None`` means that
                the listener uses plain TCP
            properties: tuning properties of the listening socket and the
                accepted client sockets
            protocol: the framing protocol of accepted clients. May be a
                protocol instance or a specification that `create_protocol()`
                understands; defaults to SafeProtocol_.
        """
        if isinstance(protocol, (str, dict)):
            protocol = create_protocol(protocol)
        elif protocol is None:
            protocol = SafeProtocol()
        elif not isinstance(protocol, FramingProtocol):
            raise ConfigurationError(f"Invalid framing protocol: {protocol!r}")

        self._settings = settings
        self._mode: ListenerMode = PlainMode() if tls is None else TlsMode(tls)
        self._properties = (
            properties if properties is not None else TcpServerSocketProperties()
        )
        self._protocol = protocol

        self._factory = None
        self._initialisation_failed = False
        self._connection = None
        self._lock = Lock()

    @property
    def cached_connection(self) -> Optional[TcpListenerConnection]:
        """The listener that the provider currently hands out, if any."""
        return self._connection

    @property
    def is_initialised(self) -> bool:
        return self._factory is not None

    @property
    def mode(self) -> ListenerMode:
        return self._mode

    @property
    def properties(self) -> TcpServerSocketProperties:
        return self._properties

    @property
    def protocol(self) -> FramingProtocol:
        return self._protocol

    @property
    def settings(self) -> SocketConnectionSettings:
        return self._settings

    def initialise(self) -> None:
        """Validates the TLS configuration of the provider, loads its
        certificates and selects the server socket factory that listeners of
        this provider will use.

        Calling this function again after a successful initialisation is a
        no-op.

        Raises:
            InitializationError: if the TLS configuration has no key store or
                its certificates cannot be loaded. The provider cannot be used
                after this error.
        """
        if self._initialisation_failed:
            raise IllegalStateError("Provider failed to initialise earlier")
        if self._factory is not None:
            return

        try:
            self._factory = self._mode.create_factory()
        except ConfigurationError as ex:
            self._initialisation_failed = True
            raise InitializationError(str(ex), provider=self) from ex

        log.debug(f"Connection provider for {self._settings} initialised")

    async def connect(self) -> TcpListenerConnection:
        """Returns the cached listener if it is still valid, or creates,
        connects and caches a new one otherwise.

        Raises:
            IllegalStateError: if the provider was not initialised
            ConnectionError: if the new listener cannot bind its socket. The
                cache is left empty in this case.
        """
        factory = self._ensure_initialised()

        async with self._lock:
            connection = self._connection
            if connection is not None and connection.is_valid():
                return connection

            if connection is not None:
                log.info(f"Replacing invalid listener on {self._settings}")
                self._connection = None

            connection = TcpListenerConnection(
                self._settings,
                protocol=self._protocol,
                properties=self._properties,
                factory=factory,
            )
            await connection.connect()
            self._connection = connection
            return connection

    async def disconnect(self, connection: TcpListenerConnection) -> None:
        """Disconnects the given listener.

        The listener stays in the cache; the next call to `connect()` will
        notice that it is not valid any more and replace it.
        """
        self._ensure_initialised()
        async with self._lock:
            await connection.disconnect()

    def evict(self, connection: Optional[TcpListenerConnection] = None) -> None:
        """Removes the cached listener from the cache without disconnecting it.

        Parameters:
            connection: when not ``None``, the listener is evicted only if it
                is the one in the cache
        """
        if connection is None or connection is self._connection:
            self._connection = None

    def validate(self, connection: TcpListenerConnection) -> ConnectionValidationResult:
        """Checks whether the given listener is still usable."""
        self._ensure_initialised()
        if connection.is_valid():
            return ConnectionValidationResult.success()
        else:
            return ConnectionValidationResult.failure(
                f"Listener on {connection.settings} is {connection.state.value.lower()}"
            )

    def _ensure_initialised(self) -> ServerSocketFactory:
        if self._factory is None:
            raise IllegalStateError("Connection provider must be initialised first")
        return self._factory

    def __repr__(self) -> str:
        tls = " (TLS)" if isinstance(self._mode, TlsMode) else ""
        return f"<{self.__class__.__name__} for {self._settings}{tls}>"


create_connection_provider = Factory[TcpListenerProvider](
    UnknownProviderTypeError,
    string_parameters=("host", "certificate", "key", "password", "cafile", "capath"),
)
"""Singleton connection provider factory."""


def create_connection_provider_factory(*args, **kwds):
    """Creates a provider factory function that creates a connection provider
    configured in a specific way when invoked with no arguments.

    This is essentially a deferred call to `create_connection_provider()`
    """
    return partial(create_connection_provider, *args, **kwds)


_PROPERTY_NAMES = frozenset(
    field.name for field in attr.fields(TcpServerSocketProperties)
)


@create_connection_provider.register("tcp-listener")
def create_tcp_listener_provider(
    host: str = "0.0.0.0",
    port: Optional[int] = None,
    *,
    protocol: Union[FramingProtocol, str, dict, None] = None,
    certificate: Optional[str] = None,
    key: Optional[str] = None,
    password: Optional[str] = None,
    cafile: Optional[str] = None,
    capath: Optional[str] = None,
    require_client_auth: bool = False,
    tls: bool = False,
    **kwds: Any,
) -> TcpListenerProvider:
    """Creates a TCP listener provider from keyword arguments.

    Keyword arguments that name a field of TcpServerSocketProperties_ are
    used to construct the socket properties. The presence of ``certificate``
    or ``tls=true`` turns on TLS; ``tls=true`` without a certificate yields a
    provider that fails to initialise.

    Raises:
        ConfigurationError: if the address is invalid or an unknown keyword
            argument was given
    """
    unknown = sorted(set(kwds) - _PROPERTY_NAMES)
    if unknown:
        raise ConfigurationError(
            "Unknown listener parameter(s): {0}".format(", ".join(unknown))
        )
    if port is None:
        raise ConfigurationError("port must be given for a TCP listener")

    tls_configuration = None
    if tls or certificate is not None:
        tls_configuration = TlsConfiguration(
            KeyStore(certificate, key, password) if certificate is not None else None,
            TrustStore(cafile, capath),
            require_client_auth=require_client_auth,
        )

    return TcpListenerProvider(
        SocketConnectionSettings(host=host, port=port),
        tls=tls_configuration,
        properties=TcpServerSocketProperties(**kwds),
        protocol=protocol,
    )
