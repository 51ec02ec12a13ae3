"""Base class of framing protocols."""

from abc import ABCMeta, abstractmethod
from trio.abc import SendStream
from typing import Optional

from sockserve.errors import ConfigurationError, ProtocolViolation

from .buffer import BufferedReceiveStream

__all__ = (
    "DEFAULT_MAX_MESSAGE_LENGTH",
    "FramingProtocol",
    "validate_max_message_length",
)


DEFAULT_MAX_MESSAGE_LENGTH = 1024 * 1024
"""Default upper bound on the size of a single message, in bytes, for the
framing protocols that need to buffer a whole message before returning it.
"""


class FramingProtocol(metaclass=ABCMeta):
    """Interface specification for framing protocols that determine where
    one message ends and the next one begins in a continuous byte stream.

    Framing protocols are stateless; the same instance may be shared between
    any number of client streams and used from multiple tasks at the same
    time. Per-stream state (bytes received but not consumed yet) lives in the
    BufferedReceiveStream_ passed to `read()`.
    """

    max_message_length: Optional[int] = None
    """Maximum length of a single message in bytes; ``None`` means that the
    protocol does not impose a limit on its own.
    """

    @abstractmethod
    async def read(self, stream: BufferedReceiveStream) -> Optional[bytes]:
        """Reads a single message from the given stream.

        Returns:
            the payload of the message, or ``None`` if the stream ended at a
            message boundary

        Raises:
            ProtocolViolation: if the stream contains a malformed, oversized or
                truncated message
        """
        raise NotImplementedError

    @abstractmethod
    def encode(self, data: bytes) -> bytes:
        """Encodes a single message into its wire format.

        Raises:
            ProtocolViolation: if the message is longer than the maximum message
                length of the protocol
        """
        raise NotImplementedError

    async def write(self, stream: SendStream, data: bytes) -> None:
        """Writes a single message to the given stream.

        The function returns when all the bytes of the message were handed
        over to the stream.
        """
        await stream.send_all(self.encode(data))

    def _check_length(self, length: int) -> None:
        """Checks whether a message with the given length is allowed by the
        protocol.

        Raises:
            ProtocolViolation: if the length is negative or too large
        """
        if length < 0:
            raise ProtocolViolation(f"Invalid message length: {length}")
        if self.max_message_length is not None and length > self.max_message_length:
            raise ProtocolViolation(
                f"Message length {length} exceeds the maximum of "
                f"{self.max_message_length} bytes"
            )

    def __repr__(self) -> str:
        return "{0}(max_message_length={1!r})".format(
            self.__class__.__name__, self.max_message_length
        )


def validate_max_message_length(
    value: Optional[int], required: bool = False
) -> Optional[int]:
    """Validates the maximum message length passed to the constructor of a
    framing protocol.

    Parameters:
        value: the value to validate
        required: whether the protocol needs a limit; ``None`` is accepted
            only when this is ``False``

    Raises:
        ConfigurationError: if the value is not a positive integer or an
            allowed ``None``
    """
    if value is None:
        if required:
            raise ConfigurationError("max_message_length must be set")
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(
            f"max_message_length must be a positive integer, got {value!r}"
        )
    return value
