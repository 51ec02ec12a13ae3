"""Buffered reader that framing protocols use to pull exact byte counts or
delimited chunks out of a Trio byte stream.
"""

from trio.abc import ReceiveStream
from typing import Optional

from sockserve.errors import ProtocolViolation

__all__ = ("BufferedReceiveStream",)


class BufferedReceiveStream:
    """Wrapper around a Trio ReceiveStream_ that keeps the bytes that were
    received but not consumed yet.

    TCP does not preserve message boundaries; a single ``receive_some()`` call
    may return a partial message or several messages at once. Framing
    protocols read from an instance of this class so that the leftovers of one
    message are available when the next one is read. Each client stream needs
    its own instance; the framing protocols themselves are stateless.
    """

    def __init__(self, stream: ReceiveStream, chunk_size: Optional[int] = None):
        """Constructor.

        Parameters:
            stream: the stream to read from
            chunk_size: maximum number of bytes to request from the stream in
                a single receive call; ``None`` lets the stream decide
        """
        self._stream = stream
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._consumed = 0
        self._eof = False

    @property
    def at_eof(self) -> bool:
        """Returns whether the underlying stream reached its end and all the
        buffered bytes were consumed.
        """
        return self._eof and not self._buffer

    @property
    def buffered(self) -> int:
        """Returns the number of bytes received but not consumed yet."""
        return len(self._buffer)

    @property
    def consumed(self) -> int:
        """Returns the total number of bytes consumed from the stream so far."""
        return self._consumed

    @property
    def stream(self) -> ReceiveStream:
        return self._stream

    async def receive_exactly(self, size: int) -> Optional[bytes]:
        """Receives exactly the given number of bytes.

        Returns:
            the received bytes, or ``None`` if the stream ended before the
            first byte was received

        Raises:
            ProtocolViolation: if the stream ended after some but not all of
                the bytes were received
        """
        while len(self._buffer) < size:
            if not await self._fill():
                if self._buffer:
                    raise ProtocolViolation(
                        f"Stream ended after {len(self._buffer)} of {size} bytes"
                    )
                return None
        return self._consume(size)

    async def receive_some(self) -> Optional[bytes]:
        """Receives whatever is available, waiting for at least one byte.

        Returns:
            the received bytes, or ``None`` at the end of the stream
        """
        if not self._buffer and not await self._fill():
            return None
        return self._consume(len(self._buffer))

    async def receive_until(self, delimiter: bytes, max_size: int) -> Optional[bytes]:
        """Receives bytes up to the next occurrence of the given delimiter.
        The delimiter is consumed but not returned.

        Parameters:
            delimiter: the delimiter to look for
            max_size: maximum number of bytes allowed before the delimiter

        Returns:
            the bytes before the delimiter, or ``None`` if the stream ended at
            a message boundary

        Raises:
            ProtocolViolation: if no delimiter was found within ``max_size``
                bytes or the stream ended in the middle of a message
        """
        if not delimiter:
            raise ValueError("delimiter must not be empty")

        start = 0
        while True:
            index = self._buffer.find(delimiter, start)
            if index >= 0:
                if index > max_size:
                    raise ProtocolViolation(
                        f"Message exceeds the maximum length of {max_size} bytes"
                    )
                message = self._consume(index)
                self._consume(len(delimiter))
                return message

            if len(self._buffer) > max_size + len(delimiter):
                raise ProtocolViolation(
                    f"Message exceeds the maximum length of {max_size} bytes"
                )

            # The delimiter may straddle the boundary between two chunks
            start = max(0, len(self._buffer) - len(delimiter) + 1)
            if not await self._fill():
                if self._buffer:
                    raise ProtocolViolation("Stream ended before the delimiter")
                return None

    async def receive_until_eof(self, max_size: int) -> Optional[bytes]:
        """Receives all the bytes until the end of the stream.

        Returns:
            the received bytes, or ``None`` if the stream had ended already

        Raises:
            ProtocolViolation: if the stream carries more than ``max_size``
                bytes
        """
        if self.at_eof:
            return None

        while len(self._buffer) <= max_size:
            if not await self._fill():
                return self._consume(len(self._buffer)) if self._buffer else None

        raise ProtocolViolation(
            f"Message exceeds the maximum length of {max_size} bytes"
        )

    def _consume(self, size: int) -> bytes:
        result = bytes(self._buffer[:size])
        del self._buffer[:size]
        self._consumed += len(result)
        return result

    async def _fill(self) -> bool:
        """Receives the next chunk from the stream and appends it to the
        buffer.

        Returns:
            whether new bytes arrived; ``False`` means the end of the stream
        """
        if self._eof:
            return False

        chunk = await self._stream.receive_some(self._chunk_size)
        if not chunk:
            self._eof = True
            return False

        self._buffer.extend(chunk)
        return True
