"""Base connection classes."""

from abc import ABCMeta, abstractmethod, abstractproperty
from blinker import Signal
from enum import Enum
from trio_util import AsyncValue
from typing import Generic, Optional, TypeVar

from sockserve.errors import IllegalStateError


__all__ = (
    "Connection",
    "ConnectionBase",
    "ConnectionState",
    "ListenerConnection",
    "ReadableConnection",
    "RWConnection",
    "WritableConnection",
)


class ConnectionState(Enum):
    CREATED = "CREATED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTING = "DISCONNECTING"
    DISCONNECTED = "DISCONNECTED"

    @property
    def is_transitioning(self) -> bool:
        return self in (ConnectionState.CONNECTING, ConnectionState.DISCONNECTING)


class Connection(metaclass=ABCMeta):
    """Interface specification for stateful, single-use connection objects.

    A connection starts in the ``CREATED`` state, becomes ``CONNECTED`` when
    it is connected and ends up in the ``DISCONNECTED`` state when it is
    disconnected. ``DISCONNECTED`` is terminal; a disconnected connection
    cannot be connected again, a new instance must be created instead.
    """

    connected = Signal(doc="Sent when the connection enters the CONNECTED state.")
    disconnected = Signal(doc="Sent when the connection enters the DISCONNECTED state.")
    state_changed = Signal(
        doc="""\
        Sent on every state transition of the connection.

        Parameters:
            new_state: the new state
            old_state: the old state
        """
    )

    @abstractmethod
    async def connect(self) -> None:
        """Connects the connection. No-op if the connection is connected
        already.

        Raises:
            IllegalStateError: if the connection was disconnected already
        """
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnects the connection. No-op if the connection is
        disconnected already.
        """
        raise NotImplementedError

    @property
    def is_disconnected(self) -> bool:
        """Whether the connection reached its terminal state."""
        return self.state is ConnectionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        """Whether the connection is up and usable."""
        return self.state is ConnectionState.CONNECTED

    @property
    def is_transitioning(self) -> bool:
        """Whether the connection is connecting or disconnecting right now."""
        return self.state.is_transitioning

    @abstractproperty
    def state(self) -> ConnectionState:
        """Returns the state of the connection; one of the constants from
        the ``ConnectionState`` enum.
        """
        raise NotImplementedError

    @abstractmethod
    async def wait_until_connected(self) -> None:
        """Blocks the current task until the connection becomes connected.
        Returns immediately if the connection is already connected.
        """
        raise NotImplementedError

    @abstractmethod
    async def wait_until_disconnected(self) -> None:
        """Blocks the current task until the connection becomes disconnected.
        Returns immediately if the connection is already disconnected.
        """
        raise NotImplementedError

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.disconnect()


T = TypeVar("T")
RT = TypeVar("RT")
WT = TypeVar("WT")


class ListenerConnection(Connection, Generic[T]):
    """Interface specification for connection objects that wait for (i.e.
    listen to) new client connections.
    """

    @abstractmethod
    async def accept(self) -> T:
        """Waits for the next incoming connection and returns an object
        representing the connection when it arrives.
        """
        raise NotImplementedError

    @abstractmethod
    def is_valid(self) -> bool:
        """Returns whether the listener is connected and its socket is still
        open.
        """
        raise NotImplementedError


class ReadableConnection(Connection, Generic[T]):
    """Connection that yields messages received from its peer."""

    @abstractmethod
    async def read(self) -> Optional[T]:
        """Reads some data from the connection.

        Returns:
            the data that was read, or ``None`` at the end of the stream
        """
        raise NotImplementedError


class WritableConnection(Connection, Generic[T]):
    """Connection that sends messages to its peer."""

    @abstractmethod
    async def write(self, data: T) -> None:
        """Writes the given data to the connection.

        Parameters:
            data: the data to write
        """
        raise NotImplementedError


class RWConnection(ReadableConnection[RT], WritableConnection[WT]):
    """Connection that both receives and sends messages; the read and write
    types may differ.
    """


class ConnectionBase(Connection):
    """Base class for stateful connection objects.

    Connection objects may be in one of the following five states:

        - ``CREATED``: the connection was constructed but not connected yet

        - ``CONNECTING``: the connection is being established

        - ``CONNECTED``: the connection is up

        - ``DISCONNECTING``: the connection is being closed

        - ``DISCONNECTED``: the connection is down for good

    The current state lives in an AsyncValue so tasks can wait for any state
    they are interested in. Subclasses change the state only through
    `_set_state()`, which also sends the ``state_changed``, ``connected`` and
    ``disconnected`` signals.
    """

    def __init__(self):
        """Constructor."""
        self._state = AsyncValue(ConnectionState.CREATED)

    @property
    def state(self) -> ConnectionState:
        """The state of the connection."""
        return self._state.value

    def _set_state(self, new_state: ConnectionState) -> None:
        """Sets the state of the connection to a new value and sends the
        appropriate signals.
        """
        old_state = self._state.value
        if new_state == old_state:
            return

        self._state.value = new_state

        self.state_changed.send(self, old_state=old_state, new_state=new_state)

        if new_state is ConnectionState.CONNECTED:
            self.connected.send(self)
        elif new_state is ConnectionState.DISCONNECTED:
            self.disconnected.send(self)

    async def connect(self) -> None:
        """Base implementation of Connection.connect() that manages the state
        of the connection correctly.

        Typically, you don't need to override this method in subclasses;
        override `_connect()` instead.
        """
        if self.state is ConnectionState.CONNECTING:
            await self._wait_until_settled()

        if self.state is ConnectionState.CONNECTED:
            return
        elif self.state is not ConnectionState.CREATED:
            raise IllegalStateError(
                f"{self.__class__.__name__} cannot be connected again once it "
                f"was disconnected"
            )

        self._set_state(ConnectionState.CONNECTING)
        success = False
        try:
            await self._connect()
            success = True
        finally:
            self._set_state(
                ConnectionState.CONNECTED if success else ConnectionState.DISCONNECTED
            )

    async def disconnect(self) -> None:
        """Base implementation of Connection.disconnect() that manages the
        state of the connection correctly.

        Typically, you don't need to override this method in subclasses;
        override `_disconnect()` instead.
        """
        if self.state.is_transitioning:
            await self._wait_until_settled()

        if self.state is ConnectionState.DISCONNECTED:
            return
        elif self.state is ConnectionState.CREATED:
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._set_state(ConnectionState.DISCONNECTING)
        try:
            await self._disconnect()
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def wait_until_connected(self) -> None:
        """Blocks the execution until the connection becomes connected."""
        await self._state.wait_value(ConnectionState.CONNECTED)

    async def wait_until_disconnected(self) -> None:
        """Blocks the execution until the connection becomes disconnected."""
        await self._state.wait_value(ConnectionState.DISCONNECTED)

    async def _wait_until_settled(self) -> None:
        """Blocks the execution until the connection is not transitioning
        between two states.
        """
        await self._state.wait_value(lambda state: not state.is_transitioning)

    @abstractmethod
    async def _connect(self) -> None:
        """Internal implementation of `ConnectionBase.connect()`.

        Override this method in subclasses to implement how your connection
        is established. No need to update the state variable from inside this
        method; the caller will do it automatically. The implementation must
        release every resource it acquired if it raises an exception.
        """
        raise NotImplementedError

    @abstractmethod
    async def _disconnect(self) -> None:
        """Internal implementation of `ConnectionBase.disconnect()`.

        Override this method in subclasses to implement how your connection
        is torn down. No need to update the state variable from inside this
        method; the caller will do it automatically.
        """
        raise NotImplementedError
