from pytest import raises
from trio.testing import MemoryReceiveStream, MemorySendStream

from sockserve.errors import (
    ConfigurationError,
    ProtocolViolation,
    UnknownProtocolTypeError,
)
from sockserve.protocols import (
    BufferedReceiveStream,
    DEFAULT_MAX_MESSAGE_LENGTH,
    DelimiterProtocol,
    DirectProtocol,
    EOFProtocol,
    LengthProtocol,
    SafeProtocol,
    create_protocol,
    create_protocol_factory,
)


def make_stream(data: bytes, eof: bool = True, chunk_size=None):
    stream = MemoryReceiveStream()
    if data:
        stream.put_data(data)
    if eof:
        stream.put_eof()
    return BufferedReceiveStream(stream, chunk_size=chunk_size)


async def read_all(protocol, stream):
    result = []
    while True:
        message = await protocol.read(stream)
        if message is None:
            return result
        result.append(message)


async def test_buffered_receive_stream():
    stream = make_stream(b"abcdefgh", chunk_size=3)

    assert await stream.receive_exactly(2) == b"ab"
    assert stream.buffered == 1
    assert await stream.receive_exactly(4) == b"cdef"
    assert not stream.at_eof

    with raises(ProtocolViolation, match="Stream ended after 2 of 5 bytes"):
        await stream.receive_exactly(5)

    assert await stream.receive_some() == b"gh"
    assert stream.at_eof
    assert await stream.receive_some() is None


async def test_length_protocol_encode():
    protocol = LengthProtocol()
    assert protocol.encode(b"hello") == b"\x00\x00\x00\x05hello"
    assert protocol.encode(b"") == b"\x00\x00\x00\x00"


async def test_length_protocol_read():
    protocol = LengthProtocol()
    data = protocol.encode(b"hello") + protocol.encode(b"") + protocol.encode(b"!")

    # Tiny chunks so that headers and payloads straddle receive calls
    stream = make_stream(data, chunk_size=3)
    assert await read_all(protocol, stream) == [b"hello", b"", b"!"]


async def test_length_protocol_write():
    protocol = LengthProtocol()
    stream = MemorySendStream()
    await protocol.write(stream, b"hi")
    assert stream.get_data_nowait() == b"\x00\x00\x00\x02hi"


async def test_length_protocol_rejects_negative_length():
    protocol = LengthProtocol()
    with raises(ProtocolViolation, match="Invalid message length: -1"):
        await protocol.read(make_stream(b"\xff\xff\xff\xffsomething"))


async def test_length_protocol_rejects_oversized_length_before_payload():
    protocol = LengthProtocol(max_message_length=4)
    with raises(ProtocolViolation, match="exceeds the maximum of 4 bytes"):
        await protocol.read(make_stream(b"\x00\x00\x00\x05"))

    with raises(ProtocolViolation):
        protocol.encode(b"hello")


async def test_length_protocol_truncated_messages():
    protocol = LengthProtocol()

    with raises(ProtocolViolation, match="Stream ended after 2 of 4 bytes"):
        await protocol.read(make_stream(b"\x00\x00"))

    with raises(ProtocolViolation, match="Stream ended after 3 of 5 bytes"):
        await protocol.read(make_stream(b"\x00\x00\x00\x05abc"))


async def test_length_protocol_validates_max_message_length():
    with raises(ConfigurationError):
        LengthProtocol(max_message_length=0)
    with raises(ConfigurationError):
        LengthProtocol(max_message_length=-5)
    with raises(ConfigurationError):
        LengthProtocol(max_message_length=True)

    assert LengthProtocol().max_message_length is None


async def test_safe_protocol_round_trip():
    protocol = SafeProtocol()
    assert protocol.max_message_length == DEFAULT_MAX_MESSAGE_LENGTH

    encoded = protocol.encode(b"hello")
    assert encoded == b"You are using SafeProtocol\x00\x00\x00\x05hello"

    stream = make_stream(encoded + protocol.encode(b"world"), chunk_size=7)
    assert await read_all(protocol, stream) == [b"hello", b"world"]


async def test_safe_protocol_rejects_foreign_peer():
    protocol = SafeProtocol()
    stream = make_stream(b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n")
    with raises(ProtocolViolation, match="not using SafeProtocol"):
        await protocol.read(stream)


async def test_safe_protocol_rejects_cookie_without_message():
    protocol = SafeProtocol()
    with raises(ProtocolViolation, match="after the SafeProtocol cookie"):
        await protocol.read(make_stream(SafeProtocol.COOKIE))


async def test_safe_protocol_requires_bounded_messages():
    with raises(ConfigurationError):
        SafeProtocol(max_message_length=None)

    protocol = SafeProtocol(max_message_length=16)
    with raises(ProtocolViolation):
        await protocol.read(make_stream(SafeProtocol.COOKIE + b"\x7f\xff\xff\xff"))


async def test_delimiter_protocol():
    protocol = DelimiterProtocol()
    assert protocol.encode(b"hello") == b"hello\n"

    stream = make_stream(b"hello\n\nworld\n", chunk_size=1)
    assert await read_all(protocol, stream) == [b"hello", b"", b"world"]


async def test_delimiter_protocol_with_multibyte_delimiter():
    protocol = DelimiterProtocol("\r\n")
    assert protocol.delimiter == b"\r\n"

    stream = make_stream(b"first\r\nsec\rond\r\n", chunk_size=2)
    assert await read_all(protocol, stream) == [b"first", b"sec\rond"]


async def test_delimiter_protocol_violations():
    protocol = DelimiterProtocol(max_message_length=3)

    with raises(ProtocolViolation, match="maximum length of 3 bytes"):
        await protocol.read(make_stream(b"abcdef\n"))

    with raises(ProtocolViolation, match="maximum length of 3 bytes"):
        await protocol.read(make_stream(b"abcdefghijklmnop", eof=False))

    with raises(ProtocolViolation, match="before the delimiter"):
        await protocol.read(make_stream(b"ab"))

    with raises(ValueError):
        protocol.encode(b"a\nb")

    with raises(ConfigurationError):
        DelimiterProtocol(b"")


async def test_direct_protocol():
    protocol = DirectProtocol()
    assert protocol.encode(bytearray(b"raw")) == b"raw"

    stream = make_stream(b"whatever arrived")
    assert await protocol.read(stream) == b"whatever arrived"
    assert await protocol.read(stream) is None


async def test_eof_protocol():
    protocol = EOFProtocol()
    stream = make_stream(b"one message", chunk_size=4)
    assert await protocol.read(stream) == b"one message"
    assert await protocol.read(stream) is None

    assert await EOFProtocol().read(make_stream(b"")) is None

    with raises(ProtocolViolation):
        await EOFProtocol(max_message_length=4).read(make_stream(b"abcdef"))


async def test_create_protocol():
    assert create_protocol.names == ["delimiter", "direct", "eof", "length", "safe"]

    protocol = create_protocol("length?max_message_length=1024")
    assert isinstance(protocol, LengthProtocol)
    assert protocol.max_message_length == 1024

    protocol = create_protocol({"type": "delimiter", "parameters": {"delimiter": "|"}})
    assert isinstance(protocol, DelimiterProtocol)
    assert protocol.delimiter == b"|"

    protocol = create_protocol_factory("safe")()
    assert isinstance(protocol, SafeProtocol)

    with raises(UnknownProtocolTypeError, match="'no-such-protocol'"):
        create_protocol("no-such-protocol")
