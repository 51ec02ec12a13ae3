from pytest import raises
from trio import TooSlowError
from trio.testing import memory_stream_pair

from sockserve.connections import ConnectionState, FramedStreamConnection
from sockserve.errors import IllegalStateError, ProtocolViolation
from sockserve.protocols import LengthProtocol, SafeProtocol


def create_connection(**kwds):
    peer, stream = memory_stream_pair()
    return peer, FramedStreamConnection(stream, LengthProtocol(), **kwds)


async def test_framed_stream_connection():
    peer, connection = create_connection(remote_address=("10.0.0.1", 1234))
    assert connection.state is ConnectionState.CONNECTED
    assert connection.remote_address == ("10.0.0.1", 1234)
    assert "10.0.0.1:1234" in repr(connection)

    await peer.send_all(b"\x00\x00\x00\x02hi\x00\x00\x00\x00")
    assert await connection.read() == b"hi"
    assert await connection.read() == b""

    await connection.write(b"yo")
    assert await peer.receive_some() == b"\x00\x00\x00\x02yo"

    await peer.send_eof()
    assert await connection.read() is None
    assert connection.is_disconnected
    assert connection.stream is None

    with raises(IllegalStateError):
        await connection.read()
    with raises(IllegalStateError):
        await connection.write(b"late")


async def test_signals_and_context_manager():
    peer, connection = create_connection()
    events = []

    def on_disconnected(sender):
        events.append(("disconnected", sender))

    connection.disconnected.connect(on_disconnected, sender=connection)
    try:
        async with connection:
            assert connection.is_connected
        assert events == [("disconnected", connection)]
    finally:
        connection.disconnected.disconnect(on_disconnected, sender=connection)

    # Disconnected connections cannot be reconnected
    with raises(IllegalStateError):
        await connection.connect()


async def test_protocol_violation_leaves_connection_open(caplog):
    peer, connection = create_connection()
    await peer.send_all(b"\xff\xff\xff\xff")

    with raises(ProtocolViolation):
        await connection.read()

    assert connection.is_connected
    assert "Protocol violation from unknown peer" in caplog.text
    await connection.disconnect()
    assert connection.is_disconnected


async def test_read_timeout(autojump_clock):
    peer, connection = create_connection(read_timeout=5)
    with raises(TooSlowError):
        await connection.read()
    assert connection.is_connected


async def test_read_timeout_in_the_middle_of_a_message(autojump_clock, caplog):
    peer, stream = memory_stream_pair()
    connection = FramedStreamConnection(stream, SafeProtocol(), read_timeout=5)

    # Cookie and half of the length field
    await peer.send_all(SafeProtocol().encode(b"hello")[:28])

    with raises(ProtocolViolation, match="desynchronised"):
        await connection.read()

    assert connection.is_disconnected
    assert "Read timed out in the middle of a message" in caplog.text


async def test_read_timeout_after_partial_header(autojump_clock):
    peer, connection = create_connection(read_timeout=5)
    await peer.send_all(b"\x00\x00")

    with raises(ProtocolViolation, match="desynchronised"):
        await connection.read()

    assert connection.is_disconnected


async def test_read_timeout_between_messages_keeps_connection(autojump_clock):
    peer, connection = create_connection(read_timeout=5)
    await peer.send_all(b"\x00\x00\x00\x02hi")
    assert await connection.read() == b"hi"

    with raises(TooSlowError):
        await connection.read()

    assert connection.is_connected
    await peer.send_all(b"\x00\x00\x00\x02yo")
    assert await connection.read() == b"yo"


def test_stream_is_required():
    with raises(ValueError):
        FramedStreamConnection(None, LengthProtocol())
