from pytest import raises

from sockserve.connections import SocketConnectionSettings, TcpServerSocketProperties
from sockserve.errors import ConfigurationError


def test_socket_connection_settings():
    settings = SocketConnectionSettings(port=9000)
    assert settings.host == "0.0.0.0"
    assert settings.address == ("0.0.0.0", 9000)
    assert str(settings) == "0.0.0.0:9000"

    settings = SocketConnectionSettings(host="::1", port=443)
    assert str(settings) == "[::1]:443"


def test_socket_connection_settings_validation():
    for port in (0, -1, 65536, "9000", 9000.0, True):
        with raises(ConfigurationError):
            SocketConnectionSettings(port=port)

    with raises(ConfigurationError):
        SocketConnectionSettings(host=None, port=9000)

    assert SocketConnectionSettings(port=1).port == 1
    assert SocketConnectionSettings(port=65535).port == 65535


def test_socket_connection_settings_are_immutable():
    settings = SocketConnectionSettings(port=9000)
    with raises(AttributeError):
        settings.port = 9001


def test_tcp_server_socket_properties_defaults():
    properties = TcpServerSocketProperties()
    assert properties.send_buffer_size is None
    assert properties.receive_buffer_size is None
    assert properties.reuse_address
    assert properties.receive_backlog == 50
    assert not properties.keep_alive
    assert properties.send_tcp_no_delay
    assert properties.linger is None
    assert properties.client_timeout_seconds is None
    assert properties.connection_timeout_seconds == 30.0


def test_tcp_server_socket_properties_timeouts():
    properties = TcpServerSocketProperties(client_timeout=250, connection_timeout=0)
    assert properties.client_timeout_seconds == 0.25
    assert properties.connection_timeout_seconds is None

    properties = TcpServerSocketProperties(client_timeout=0)
    assert properties.client_timeout_seconds is None


def test_tcp_server_socket_properties_handshake_timeout():
    properties = TcpServerSocketProperties()
    assert properties.handshake_timeout == 10000
    assert properties.handshake_timeout_seconds == 10.0

    properties = TcpServerSocketProperties(handshake_timeout=0)
    assert properties.handshake_timeout_seconds is None

    with raises(ConfigurationError):
        TcpServerSocketProperties(handshake_timeout=-1)


def test_tcp_server_socket_properties_validation():
    invalid = [
        {"send_buffer_size": 0},
        {"send_buffer_size": -1},
        {"receive_buffer_size": -1024},
        {"receive_buffer_size": "big"},
        {"receive_backlog": -1},
        {"connection_timeout": -1},
        {"connection_timeout": None},
        {"client_timeout": -1},
        {"linger": -1},
        {"reuse_address": 1},
        {"keep_alive": "yes"},
    ]
    for kwds in invalid:
        with raises(ConfigurationError):
            TcpServerSocketProperties(**kwds)

    with raises(TypeError):
        TcpServerSocketProperties(50)

    properties = TcpServerSocketProperties(
        send_buffer_size=65536, receive_buffer_size=65536, linger=0
    )
    assert properties.send_buffer_size == 65536
    assert properties.linger == 0
