"""Framing protocols that do not add anything to the payload on the wire."""

from typing import Optional

from .base import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    FramingProtocol,
    validate_max_message_length,
)
from .buffer import BufferedReceiveStream
from .factory import create_protocol

__all__ = ("DirectProtocol", "EOFProtocol")


@create_protocol.register("direct")
class DirectProtocol(FramingProtocol):
    """Framing protocol that treats whatever arrives in a single receive call
    as a message.

    This protocol does not preserve message boundaries; use it only when the
    payload carries its own framing or when the peer is known to send one
    message per packet.
    """

    async def read(self, stream: BufferedReceiveStream) -> Optional[bytes]:
        return await stream.receive_some()

    def encode(self, data: bytes) -> bytes:
        return bytes(data)


@create_protocol.register("eof")
class EOFProtocol(FramingProtocol):
    """Framing protocol where the peer sends a single message and then closes
    its side of the connection.
    """

    def __init__(self, max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH):
        """Constructor.

        Parameters:
            max_message_length: maximum length of the message in bytes
        """
        self.max_message_length = validate_max_message_length(
            max_message_length, required=True
        )

    async def read(self, stream: BufferedReceiveStream) -> Optional[bytes]:
        return await stream.receive_until_eof(self.max_message_length)

    def encode(self, data: bytes) -> bytes:
        self._check_length(len(data))
        return bytes(data)
