from functools import partial

from sockserve.errors import UnknownProtocolTypeError
from sockserve.factory import Factory

from .base import FramingProtocol

__all__ = ("create_protocol", "create_protocol_factory")


create_protocol = Factory[FramingProtocol](UnknownProtocolTypeError)
"""Singleton framing protocol factory."""


def create_protocol_factory(*args, **kwds):
    """Creates a protocol factory function that creates a framing protocol
    configured in a specific way when invoked with no arguments.

    This is essentially a deferred call to `create_protocol()`
    """
    return partial(create_protocol, *args, **kwds)
