"""Connection class that wraps an accepted client stream and reads and writes
whole messages on it using a framing protocol.
"""

import logging

from math import inf
from trio import (
    BrokenResourceError,
    SSLStream,
    TooSlowError,
    aclose_forcefully,
    fail_after,
)
from trio.abc import Stream
from typing import Optional

from sockserve.errors import ConnectionError, IllegalStateError, ProtocolViolation
from sockserve.networking import format_socket_address
from sockserve.protocols import BufferedReceiveStream, FramingProtocol

from .base import ConnectionBase, ConnectionState, RWConnection

__all__ = ("FramedStreamConnection",)


log = logging.getLogger(__name__.rpartition(".")[0])


class FramedStreamConnection(ConnectionBase, RWConnection[bytes, bytes]):
    """Connection class that wraps a Trio bidirectional byte stream that was
    already established (typically by accepting a client on a listener) and
    exchanges discrete messages on it with the help of a framing protocol.

    Since the stream already exists, the connection is connected already
    when it is constructed. Disconnecting it closes the underlying stream.

    When the stream is a server-side TLS stream, the TLS handshake is
    completed on the first read or write.
    """

    def __init__(
        self,
        stream: Stream,
        protocol: FramingProtocol,
        *,
        remote_address=None,
        read_timeout: Optional[float] = None,
        handshake_timeout: Optional[float] = None,
    ):
        """Constructor.

        Parameters:
            stream: the stream to wrap
            protocol: the framing protocol that determines how messages are
                delimited on the stream
            remote_address: the address of the peer, if known
            read_timeout: maximum number of seconds to wait for a single
                message in `read()`; ``None`` means to wait indefinitely
            handshake_timeout: maximum number of seconds that the TLS
                handshake may take if the stream is a TLS stream; ``None``
                means to wait indefinitely
        """
        if stream is None:
            raise ValueError("wrapped stream must not be None")

        super().__init__()

        self._stream: Optional[Stream] = stream
        self._reader = BufferedReceiveStream(stream)
        self._protocol = protocol
        self._remote_address = remote_address
        self._read_timeout = read_timeout
        self._handshake_timeout = handshake_timeout
        self._handshake_done = not isinstance(stream, SSLStream)

        self._set_state(ConnectionState.CONNECTED)

    @property
    def protocol(self) -> FramingProtocol:
        """The framing protocol of the connection."""
        return self._protocol

    @property
    def remote_address(self):
        """The address of the peer, or ``None`` if it is not known."""
        return self._remote_address

    @property
    def stream(self) -> Optional[Stream]:
        """The wrapped Trio stream; ``None`` after the connection was
        disconnected.
        """
        return self._stream

    async def read(self) -> Optional[bytes]:
        """Reads a single message from the stream.

        When the peer closes its side of the stream at a message boundary,
        the connection is disconnected and ``None`` is returned.

        Returns:
            the payload of the message or ``None`` at the end of the stream

        Raises:
            IllegalStateError: if the connection is not connected
            ConnectionError: if the TLS handshake with the peer failed. The
                connection is disconnected.
            ProtocolViolation: if the peer sent a malformed message. The
                connection is left open; it is up to the caller to close it.
                Also raised when the read timeout expired in the middle of a
                message; the connection is disconnected in this case since
                the framing of the stream is lost.
            TooSlowError: if no part of a message arrived within the read
                timeout. The connection stays usable.
        """
        self._ensure_connected()
        await self._ensure_handshake()

        consumed = self._reader.consumed
        try:
            with fail_after(self._read_timeout or inf):
                message = await self._protocol.read(self._reader)
        except ProtocolViolation as ex:
            log.warning(f"Protocol violation from {self._peer}: {ex}")
            raise
        except TooSlowError as ex:
            if self._reader.consumed == consumed and not self._reader.buffered:
                raise
            log.warning(f"Read timed out in the middle of a message from {self._peer}")
            await self.disconnect()
            raise ProtocolViolation(
                "Stream desynchronised after a read timeout in the middle of a message"
            ) from ex

        if message is None:
            await self.disconnect()

        return message

    async def write(self, data: bytes) -> None:
        """Writes a single message to the stream.

        The function will block until all the data has been sent.

        Raises:
            IllegalStateError: if the connection is not connected
            ConnectionError: if the TLS handshake with the peer failed
        """
        self._ensure_connected()
        await self._ensure_handshake()
        await self._protocol.write(self._stream, data)  # type: ignore

    async def _connect(self) -> None:
        raise IllegalStateError("framed stream connections cannot be reconnected")

    async def _disconnect(self) -> None:
        """Closes the stream."""
        stream, self._stream = self._stream, None
        if stream is None:
            return

        if self._handshake_done:
            await stream.aclose()
        else:
            # A graceful TLS close would wait for the handshake first
            await aclose_forcefully(stream)

    async def _ensure_handshake(self) -> None:
        """Completes the TLS handshake of the stream if it is a TLS stream.
        Concurrent callers wait for the same handshake.
        """
        stream = self._stream
        if self._handshake_done or not isinstance(stream, SSLStream):
            return

        try:
            with fail_after(self._handshake_timeout or inf):
                await stream.do_handshake()
        except (BrokenResourceError, TooSlowError) as ex:
            reason = ex.__cause__ or ex
            log.warning(f"TLS handshake with {self._peer} failed: {reason!r}")
            await self.disconnect()
            raise ConnectionError(
                f"TLS handshake with {self._peer} failed", self._remote_address
            ) from ex

        self._handshake_done = True

    def _ensure_connected(self) -> None:
        if self.state is not ConnectionState.CONNECTED or self._stream is None:
            raise IllegalStateError("Client connection is not connected")

    @property
    def _peer(self) -> str:
        if self._remote_address:
            return format_socket_address(self._remote_address)
        else:
            return "unknown peer"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} to {self._peer}, {self.state.value}>"
