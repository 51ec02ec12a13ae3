__all__ = (
    "ConfigurationError",
    "ConnectionError",
    "IllegalStateError",
    "InitializationError",
    "ListenerClosedError",
    "ProtocolViolation",
    "UnknownProtocolTypeError",
    "UnknownProviderTypeError",
)


class ConfigurationError(RuntimeError):
    """Error thrown when the configuration of a listener, its socket
    properties or its TLS settings is invalid.
    """

    pass


class InitializationError(ConfigurationError):
    """Error thrown when a connection provider fails to initialise itself.

    The provider cannot be used after this error.
    """

    def __init__(self, message: str, provider=None):
        super().__init__(message)
        self.provider = provider


class ConnectionError(RuntimeError):
    """Error thrown when a listening socket cannot be bound, cannot start
    listening or cannot accept clients, or when the TLS handshake with a
    client fails.
    """

    def __init__(self, message: str = "", address=None):
        """Constructor.

        Parameters:
            message: the error message
            address: the address of the listening socket or of the client
                that the error relates to
        """
        super().__init__(message or "Connection failed")
        self.address = address


class IllegalStateError(RuntimeError):
    """Error thrown when an operation is invoked on a connection that is in
    the wrong state for that operation.
    """

    pass


class ListenerClosedError(IllegalStateError):
    """Error thrown from a pending ``accept()`` call when the listening
    socket was closed while the call was waiting for a client.
    """

    def __init__(self, message: str = ""):
        super().__init__(message or "Listener was closed")


class ProtocolViolation(RuntimeError):
    """Error thrown by a framing protocol when the peer sent a malformed,
    truncated or oversized message.

    The error concerns a single client stream only; the listener that
    accepted the client stays intact.
    """

    pass


class UnknownProtocolTypeError(RuntimeError):
    """Exception thrown when trying to construct a framing protocol with an
    unknown type.
    """

    def __init__(self, protocol_type: str):
        """Constructor.

        Parameters:
            protocol_type: the protocol type that the user tried to construct.
        """
        super().__init__(f"Unknown protocol type: {protocol_type!r}")


class UnknownProviderTypeError(RuntimeError):
    """Exception thrown when trying to construct a connection provider with
    an unknown type.
    """

    def __init__(self, provider_type: str):
        """Constructor.

        Parameters:
            provider_type: the provider type that the user tried to construct.
        """
        super().__init__(f"Unknown connection provider type: {provider_type!r}")
