"""Package that holds framing protocols, i.e. strategies that determine where
one message ends and the next one begins in a continuous TCP byte stream.

Framing protocols are stateless and can be shared between client streams.
Protocols can be constructed directly or by name with `create_protocol()`,
e.g. ``create_protocol("length?max_message_length=4096")``.
"""

from .base import DEFAULT_MAX_MESSAGE_LENGTH, FramingProtocol
from .buffer import BufferedReceiveStream
from .delimiter import DelimiterProtocol
from .direct import DirectProtocol, EOFProtocol
from .factory import create_protocol, create_protocol_factory
from .length import LengthProtocol, SafeProtocol

__all__ = (
    "BufferedReceiveStream",
    "DEFAULT_MAX_MESSAGE_LENGTH",
    "DelimiterProtocol",
    "DirectProtocol",
    "EOFProtocol",
    "FramingProtocol",
    "LengthProtocol",
    "SafeProtocol",
    "create_protocol",
    "create_protocol_factory",
)
