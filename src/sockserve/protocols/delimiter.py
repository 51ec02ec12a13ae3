"""Framing protocol that separates messages with a delimiter sequence."""

from typing import Optional, Union

from sockserve.errors import ConfigurationError

from .base import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    FramingProtocol,
    validate_max_message_length,
)
from .buffer import BufferedReceiveStream
from .factory import create_protocol

__all__ = ("DelimiterProtocol",)


@create_protocol.register("delimiter")
class DelimiterProtocol(FramingProtocol):
    """Framing protocol that terminates each message with a delimiter, e.g.
    a newline character.

    Messages may not contain the delimiter itself.
    """

    def __init__(
        self,
        delimiter: Union[bytes, str] = b"\n",
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ):
        """Constructor.

        Parameters:
            delimiter: the delimiter that terminates each message. Strings
                are encoded in UTF-8.
            max_message_length: maximum length of a message in bytes, not
                counting the delimiter
        """
        if isinstance(delimiter, str):
            delimiter = delimiter.encode("utf-8")
        if not delimiter:
            raise ConfigurationError("delimiter must not be empty")

        self.delimiter = bytes(delimiter)
        self.max_message_length = validate_max_message_length(
            max_message_length, required=True
        )

    def encode(self, data: bytes) -> bytes:
        self._check_length(len(data))
        if self.delimiter in data:
            raise ValueError("message must not contain the delimiter")
        return bytes(data) + self.delimiter

    async def read(self, stream: BufferedReceiveStream) -> Optional[bytes]:
        return await stream.receive_until(self.delimiter, self.max_message_length)

    def __repr__(self) -> str:
        return "{0}(delimiter={1!r}, max_message_length={2!r})".format(
            self.__class__.__name__, self.delimiter, self.max_message_length
        )
