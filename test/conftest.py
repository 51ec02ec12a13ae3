from pathlib import Path
from pytest import fixture

import socket

DATA_DIR = Path(__file__).parent / "data"


@fixture
def free_port() -> int:
    """Returns a TCP port on the loopback interface that was free a moment
    ago.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@fixture
def certificate() -> str:
    """Path of a self-signed certificate issued to ``localhost``."""
    return str(DATA_DIR / "server.crt")


@fixture
def private_key() -> str:
    """Path of the private key belonging to the ``certificate`` fixture."""
    return str(DATA_DIR / "server.key")
