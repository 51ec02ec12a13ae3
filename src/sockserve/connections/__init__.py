"""Package that holds the listening side of a message-oriented socket
server: listener connections bound to a TCP port, with or without TLS, the
client connections that they accept and the provider that owns and caches
the listener.

Each connection class provided by this package has a common notion of a
*state*, which may be one of: created, connecting, connected, disconnecting
or disconnected. Connection instances send signals when their state changes.
"""

from sockserve.errors import (
    ConfigurationError,
    ConnectionError,
    IllegalStateError,
    InitializationError,
    ListenerClosedError,
    ProtocolViolation,
    UnknownProviderTypeError,
)

from .base import (
    Connection,
    ConnectionBase,
    ConnectionState,
    ListenerConnection,
    ReadableConnection,
    RWConnection,
    WritableConnection,
)
from .provider import (
    ConnectionValidationResult,
    PlainMode,
    TcpListenerProvider,
    TlsMode,
    create_connection_provider,
    create_connection_provider_factory,
)
from .settings import SocketConnectionSettings, TcpServerSocketProperties
from .socket import (
    ServerSocket,
    ServerSocketFactory,
    TcpListenerConnection,
    TcpServerSocketFactory,
    TlsServerSocket,
    TlsServerSocketFactory,
)
from .stream import FramedStreamConnection
from .tls import KeyStore, TlsConfiguration, TrustStore
from .version import __version__

__all__ = (
    "ConfigurationError",
    "Connection",
    "ConnectionBase",
    "ConnectionError",
    "ConnectionState",
    "ConnectionValidationResult",
    "FramedStreamConnection",
    "IllegalStateError",
    "InitializationError",
    "KeyStore",
    "ListenerClosedError",
    "ListenerConnection",
    "PlainMode",
    "ProtocolViolation",
    "ReadableConnection",
    "RWConnection",
    "ServerSocket",
    "ServerSocketFactory",
    "SocketConnectionSettings",
    "TcpListenerConnection",
    "TcpListenerProvider",
    "TcpServerSocketFactory",
    "TcpServerSocketProperties",
    "TlsConfiguration",
    "TlsMode",
    "TlsServerSocket",
    "TlsServerSocketFactory",
    "TrustStore",
    "UnknownProviderTypeError",
    "WritableConnection",
    "create_connection_provider",
    "create_connection_provider_factory",
    "__version__",
)
