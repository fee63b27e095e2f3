"""
=============================================================================
CHANNEL: ONE CLIENT SOCKET, EVENT STYLE
=============================================================================

A Channel wraps one TCP connection to the signaling server and turns
asyncio's protocol callbacks into three events the session listens to:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    asyncio callback → Channel event                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   connection_made(transport)   →  on_connect(channel)               │
    │   data_received(data)          →  on_data(channel, data)            │
    │   connection_lost(exc)         →  on_close(channel, errno)          │
    │   create_connection() raises   →  on_close(channel, errno)          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The close event carries an errno so the session can tell a refused
connection (ECONNREFUSED) from a server hang-up (0) or any other failure.

=============================================================================
CHANNEL STATE MACHINE
=============================================================================

    CLOSED ──connect()──► CONNECTING ──connection_made──► CONNECTED
      ▲                        │                              │
      │                        │ refused / error              │ close() /
      │                        ▼                              │ connection_lost
      └────────────────────────┴──────────────────────────────┘

A Channel is reusable: after it returns to CLOSED, connect() opens a new
TCP connection. Each attempt gets its own protocol object; close() detaches
it, so callbacks from a connection we already abandoned are dropped and
never reach the session.

=============================================================================
"""

import asyncio
import errno
import logging
from enum import Enum
from typing import Callable, Optional, Tuple


logger = logging.getLogger(__name__)


class ChannelState(Enum):
    """Socket lifecycle states."""

    CLOSED = "closed"          # No connection, connect() allowed
    CONNECTING = "connecting"  # TCP handshake in progress
    CONNECTED = "connected"    # Ready to send and receive


ConnectHandler = Callable[["Channel"], None]
DataHandler = Callable[["Channel", bytes], None]
CloseHandler = Callable[["Channel", int], None]


def error_code(exc: Optional[BaseException]) -> int:
    """
    Map a connection error to an errno.

    0 means a clean close; -1 stands for an error without an errno.
    """
    if exc is None:
        return 0
    if isinstance(exc, ConnectionRefusedError):
        return errno.ECONNREFUSED
    if isinstance(exc, OSError) and exc.errno:
        return exc.errno
    return -1


class _ChannelProtocol(asyncio.Protocol):
    """Forwards asyncio callbacks for one connection attempt to its Channel."""

    def __init__(self, channel: "Channel"):
        self._channel: Optional["Channel"] = channel

    def detach(self) -> None:
        self._channel = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        if self._channel is None:
            transport.close()
            return
        self._channel._connection_made(self, transport)

    def data_received(self, data: bytes) -> None:
        if self._channel is not None:
            self._channel._data_received(self, data)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self._channel is not None:
            self._channel._connection_lost(self, exc)


class Channel:
    """
    A reusable client socket delivering connect/data/close events.

    Attributes:
        name: Label used in logs ("command" or "notify").
        state: Current ChannelState.
    """

    def __init__(self, name: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.name = name
        self.state = ChannelState.CLOSED
        self._loop = loop
        self._protocol: Optional[_ChannelProtocol] = None
        self._transport: Optional[asyncio.Transport] = None
        self._connect_task: Optional[asyncio.Task] = None

        self._on_connect: Optional[ConnectHandler] = None
        self._on_data: Optional[DataHandler] = None
        self._on_close: Optional[CloseHandler] = None

    def __repr__(self) -> str:
        return f"Channel({self.name!r}, {self.state.value})"

    def bind(
        self,
        on_connect: ConnectHandler,
        on_data: DataHandler,
        on_close: CloseHandler,
    ) -> None:
        """Register the event handlers. Called once by the owner."""
        self._on_connect = on_connect
        self._on_data = on_data
        self._on_close = on_close

    @property
    def is_closed(self) -> bool:
        return self.state is ChannelState.CLOSED

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def connect(self, address: Tuple[str, int]) -> bool:
        """
        Start an asynchronous connection to address.

        Returns False when the attempt cannot even be started: the channel
        is already open, or there is no event loop to run it on. Every
        later outcome arrives as an event.
        """
        if self.state is not ChannelState.CLOSED:
            logger.warning(f"[{self.name}] connect() while {self.state.value}")
            return False

        try:
            loop = self._loop or asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"[{self.name}] No running event loop")
            return False

        protocol = _ChannelProtocol(self)
        self._protocol = protocol
        self.state = ChannelState.CONNECTING
        self._connect_task = loop.create_task(self._open(loop, protocol, address))
        logger.debug(f"[{self.name}] Connecting to {address[0]}:{address[1]}")
        return True

    async def _open(
        self,
        loop: asyncio.AbstractEventLoop,
        protocol: _ChannelProtocol,
        address: Tuple[str, int],
    ) -> None:
        try:
            await loop.create_connection(lambda: protocol, address[0], address[1])
        except OSError as e:
            if protocol is not self._protocol:
                return
            self._reset()
            logger.debug(f"[{self.name}] Connect failed: {e}")
            if self._on_close:
                self._on_close(self, error_code(e))

    def send(self, data: bytes) -> int:
        """
        Write data to the connection.

        Returns the number of bytes handed to the transport, or -1 when
        the channel is not connected.
        """
        if self.state is not ChannelState.CONNECTED or self._transport is None:
            logger.warning(f"[{self.name}] send() while {self.state.value}")
            return -1
        self._transport.write(data)
        return len(data)

    def close(self) -> None:
        """
        Close the connection without emitting a close event.

        Safe in any state. Pending connection attempts are cancelled and
        late callbacks from the old connection are ignored.
        """
        transport = self._transport
        task = self._connect_task
        self._reset()
        if task is not None and not task.done():
            task.cancel()
        if transport is not None:
            transport.close()

    def _reset(self) -> None:
        if self._protocol is not None:
            self._protocol.detach()
        self._protocol = None
        self._transport = None
        self._connect_task = None
        self.state = ChannelState.CLOSED

    # =========================================================================
    # PROTOCOL CALLBACKS
    # =========================================================================

    def _connection_made(self, protocol: _ChannelProtocol, transport: asyncio.BaseTransport) -> None:
        if protocol is not self._protocol:
            transport.close()
            return
        self._transport = transport  # type: ignore[assignment]
        self.state = ChannelState.CONNECTED
        logger.debug(f"[{self.name}] Connected")
        if self._on_connect:
            self._on_connect(self)

    def _data_received(self, protocol: _ChannelProtocol, data: bytes) -> None:
        if protocol is self._protocol and self._on_data:
            self._on_data(self, data)

    def _connection_lost(self, protocol: _ChannelProtocol, exc: Optional[Exception]) -> None:
        if protocol is not self._protocol:
            return
        self._reset()
        code = error_code(exc)
        logger.debug(f"[{self.name}] Connection lost (err={code})")
        if self._on_close:
            self._on_close(self, code)
