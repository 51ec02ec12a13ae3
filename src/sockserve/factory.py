"""Factory object that allows framing protocols and connection providers to be
constructed from a simple string or dict representation.

See :meth:`Factory.create()`_ for more information about the two
specification formats.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Generic, Iterable, Iterator, Type, TypeVar, Union
from urllib.parse import parse_qs, urlparse

__all__ = ("Factory",)

T = TypeVar("T")


class Factory(Generic[T]):
    """Registry of named factory functions that create objects from a URL-like
    string representation or a simple dict representation.
    """

    _registry: dict[str, Callable[..., T]]
    """Dictionary mapping names to factory functions that create an object."""

    _unknown_type_error: Type[Exception]
    """Exception class to raise when the specification refers to an unknown
    name. It is called with the name as its only argument.
    """

    _string_parameters: frozenset[str]
    """Names of URL query parameters whose values are always passed on as
    strings, without casting them to integers or booleans.
    """

    def __init__(
        self,
        unknown_type_error: Type[Exception] = KeyError,
        string_parameters: Iterable[str] = (),
    ):
        """Constructor.

        Parameters:
            unknown_type_error: exception class to raise when the factory is
                asked to construct an object with an unregistered name
            string_parameters: names of URL query parameters that must stay
                strings, e.g. passwords or file names
        """
        self._registry = {}
        self._unknown_type_error = unknown_type_error
        self._string_parameters = frozenset(string_parameters)

    def _url_specification_to_dict(self, specification: str) -> dict[str, Any]:
        """Converts a URL-styled specification to a dict-styled
        specification.

        Parameters:
            specification: the URL-styled specification to convert

        Returns:
            the dict-styled specification
        """
        parts = urlparse(specification, allow_fragments=False)
        if not parts.scheme:
            # Bare name like "safe"; urlparse() puts it in the path
            name, _, query = specification.partition("?")
            parameters = _parse_query(query, self._string_parameters)
            return {"type": name, "parameters": parameters}

        # hostname strips the brackets of IPv6 literals
        host, port = parts.hostname, parts.port

        result: dict[str, Any] = {
            "type": parts.scheme,
            "parameters": _parse_query(parts.query, self._string_parameters),
        }
        if host:
            result["host"] = host
        if port is not None:
            result["port"] = port
        if parts.path:
            result["path"] = parts.path

        return result

    def create(self, specification: Union[str, dict[str, Any]]) -> T:
        """Creates an object from its specification. The specification may be
        written in one of two forms: a single URL-style string or a dictionary
        with prescribed keys and values.

        When the specification is a string, it must follow one of the
        following formats::

            name?param1=value1&param2=value2&...
            scheme://host:port?param1=value1&param2=value2&...

        where ``name`` or ``scheme`` is the registered name of the factory
        function, ``host`` and ``port`` are passed on as keyword arguments if
        present and the remaining parameters are passed on as additional
        keyword arguments. Parameter values that look like integers are cast
        to integers; ``true`` and ``false`` are cast to booleans. For
        instance, the following specification::

            length?max_message_length=1024

        is resolved to ``LengthProtocol(max_message_length=1024)`` when the
        ``length`` name is registered to the ``LengthProtocol`` class.

        The other possible specification is in the format of a dictionary
        like the one below::

            {
                "type": "tcp-listener",
                "host": "127.0.0.1",
                "port": 9000,
                "parameters": {
                    "receive_backlog": 10
                }
            }

        The ``host``, ``port`` and ``path`` members are merged with the
        ``parameters`` dictionary (if any) and the merged dictionary is passed
        as keyword arguments. No type conversion is performed on the members
        of a dict specification.

        Raises:
            the exception class passed to the constructor if the type of the
            object is not known to the factory
        """
        if isinstance(specification, str):
            specification = self._url_specification_to_dict(specification)

        object_type = specification["type"]
        func = self._registry.get(object_type)
        if func is None:
            raise self._unknown_type_error(object_type)

        parameters = {}
        for name in ("host", "port", "path"):
            if name in specification:
                parameters[name] = specification[name]
        parameters.update(specification.get("parameters", {}))

        return func(**parameters)

    def register(self, name: str, klass=None):
        """Registers the given class for this factory with the given name, or
        returns a decorator that will register an arbitrary class with the
        given name (if no class is specified).

        Returns:
            when ``klass`` is not ``None``, returns the class itself. When
            ``klass`` is ``None``, returns a decorator that can be applied
            on a class to register it with the given name in this factory.
        """
        if klass is None:
            return partial(self.register, name)
        else:
            self._registry[name] = klass
            return klass

    def unregister(self, name: str) -> None:
        """Unregisters the class identified with the given name from this
        factory.
        """
        del self._registry[name]

    @property
    def names(self) -> list[str]:
        """Returns the sorted list of names registered in this factory."""
        return sorted(self._registry)

    @contextmanager
    def use(self, klass: Callable[..., T], name: str) -> Iterator[None]:
        """Context manager temporarily registers the given class for this
        factory with the given name and unregisters it when the context is
        exited, restoring the previously registered class if there was one.
        """
        old_klass = self._registry.get(name)
        try:
            self.register(name, klass)
            yield
        finally:
            self.unregister(name)
            if old_klass is not None:
                self.register(name, old_klass)

    def __call__(self, *args, **kwds):
        """Forwards the invocation to the `create()`_ method."""
        return self.create(*args, **kwds)


def _parse_query(
    query: str, string_parameters: frozenset[str] = frozenset()
) -> dict[str, Any]:
    """Parses the query part of a URL-styled specification into a dict,
    turning values into integers or booleans where applicable, except for
    the parameters named in ``string_parameters``.
    """
    raw_parameters = parse_qs(query) if query else {}
    parameters: dict[str, Any] = {}
    for k, v in raw_parameters.items():
        if len(v) > 1:
            raise ValueError("repeated parameters are not supported")
        v = v[0]
        if k in string_parameters:
            parameters[k] = v
            continue
        if v.lower() in ("true", "false"):
            parameters[k] = v.lower() == "true"
            continue
        try:
            v = int(v)
        except ValueError:
            pass
        parameters[k] = v
    return parameters
