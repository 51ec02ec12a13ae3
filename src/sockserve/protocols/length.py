"""Framing protocols that prefix each message with its length."""

from struct import Struct
from typing import Optional

from sockserve.errors import ProtocolViolation

from .base import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    FramingProtocol,
    validate_max_message_length,
)
from .buffer import BufferedReceiveStream
from .factory import create_protocol

__all__ = ("LengthProtocol", "SafeProtocol")


_header = Struct(">i")


@create_protocol.register("length")
class LengthProtocol(FramingProtocol):
    """Framing protocol that sends each message as a 4-byte, big-endian,
    signed length field followed by the payload itself.

    Negative length fields are rejected. When ``max_message_length`` is set,
    oversized length fields are rejected *before* the payload is read so a
    hostile peer cannot make the reader buffer arbitrary amounts of data.
    """

    def __init__(self, max_message_length: Optional[int] = None):
        """Constructor.

        Parameters:
            max_message_length: maximum length of a message in bytes;
                ``None`` means no limit apart from the 2 GiB that the length
                field can represent
        """
        self.max_message_length = validate_max_message_length(max_message_length)

    def encode(self, data: bytes) -> bytes:
        self._check_length(len(data))
        if len(data) > 0x7FFFFFFF:
            raise ProtocolViolation("Message is too long for a 4-byte length field")
        return _header.pack(len(data)) + bytes(data)

    async def read(self, stream: BufferedReceiveStream) -> Optional[bytes]:
        header = await stream.receive_exactly(_header.size)
        if header is None:
            return None

        (length,) = _header.unpack(header)
        self._check_length(length)

        if length == 0:
            return b""

        payload = await stream.receive_exactly(length)
        if payload is None:
            raise ProtocolViolation("Stream ended before the message payload")

        return payload


@create_protocol.register("safe")
class SafeProtocol(LengthProtocol):
    """Length-prefixed framing protocol that additionally prefixes each
    message with a fixed cookie.

    The cookie lets the reader detect early that the peer does not speak this
    protocol (e.g., a client that sends plain text) instead of interpreting
    arbitrary bytes as a length field. The message size is always bounded;
    this is the default protocol of listeners.
    """

    COOKIE = b"You are using SafeProtocol"

    def __init__(self, max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH):
        """Constructor.

        Parameters:
            max_message_length: maximum length of a message in bytes
        """
        validate_max_message_length(max_message_length, required=True)
        super().__init__(max_message_length)

    def encode(self, data: bytes) -> bytes:
        return self.COOKIE + super().encode(data)

    async def read(self, stream: BufferedReceiveStream) -> Optional[bytes]:
        cookie = await stream.receive_exactly(len(self.COOKIE))
        if cookie is None:
            return None

        if cookie != self.COOKIE:
            raise ProtocolViolation(
                "Peer is not using SafeProtocol; received {0!r}".format(cookie)
            )

        message = await super().read(stream)
        if message is None:
            raise ProtocolViolation("Stream ended after the SafeProtocol cookie")

        return message
