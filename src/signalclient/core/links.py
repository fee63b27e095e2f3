"""
=============================================================================
COMMAND AND NOTIFY LINKS
=============================================================================

The session talks to the server over two independent sockets. Each one is
wrapped in a small link object holding that socket's own sub-state:

    ┌──────────────────────────────┐   ┌──────────────────────────────┐
    │ CommandLink                  │   │ NotifyLink                   │
    ├──────────────────────────────┤   ├──────────────────────────────┤
    │ channel      (command)       │   │ channel      (notify)        │
    │ framer       (receive buffer)│   │ framer       (receive buffer)│
    │ pending      (bytes to send) │   │ waiting      (wait issued)   │
    │ exchange     (in flight)     │   │                              │
    └──────────────────────────────┘   └──────────────────────────────┘

The command link runs short request/response exchanges: connect, write the
pending request, read one response, close. The notify link keeps a single
long-poll wait outstanding and re-arms it after every response.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..http.framer import ResponseFramer, SignalingResponse
from ..http.request import wait_request
from .connection import Channel


logger = logging.getLogger(__name__)


class ExchangeKind(Enum):
    """What the command socket is currently doing."""

    SIGN_IN = "sign_in"
    RELAY = "message"
    SIGN_OUT = "sign_out"


@dataclass
class CommandLink:
    """Sub-state of the command socket."""

    channel: Channel
    framer: ResponseFramer = field(default_factory=ResponseFramer)
    pending: Optional[bytes] = field(default=None, repr=False)
    exchange: Optional[ExchangeKind] = None

    @property
    def busy(self) -> bool:
        """An exchange has been started and its response not yet consumed."""
        return self.exchange is not None

    def begin(self, kind: ExchangeKind, data: bytes, address: Tuple[str, int]) -> bool:
        """
        Queue data and connect. The bytes are written on connect.

        Returns False, leaving everything untouched, when an exchange is
        already in flight; also False if the connect cannot be started.
        """
        if self.busy:
            return False
        self.pending = data
        self.exchange = kind
        self.framer.reset()
        if not self.channel.connect(address):
            self.pending = None
            self.exchange = None
            return False
        return True

    def flush(self) -> int:
        """Write the pending request. Returns bytes written, -1 on failure."""
        if self.pending is None:
            return 0
        data = self.pending
        self.pending = None
        return self.channel.send(data)

    def receive(self, data: bytes) -> Optional[Tuple[ExchangeKind, SignalingResponse]]:
        """
        Buffer data; once the response is complete, finish the exchange.

        The socket is closed as soon as the response is consumed: HTTP/1.0
        carries one exchange per connection.

        Raises:
            HTTPFramingError: The response cannot be framed.
        """
        self.framer.feed(data)
        response = self.framer.poll()
        if response is None:
            return None
        kind = self.exchange
        self.exchange = None
        self.framer.reset()
        self.channel.close()
        return kind, response

    def abort(self) -> Optional[ExchangeKind]:
        """Forget the exchange in flight and any partial response."""
        kind = self.exchange
        self.exchange = None
        self.pending = None
        self.framer.reset()
        return kind

    def close(self) -> None:
        self.channel.close()
        self.abort()


@dataclass
class NotifyLink:
    """Sub-state of the long-poll socket."""

    channel: Channel
    framer: ResponseFramer = field(default_factory=ResponseFramer)
    waiting: bool = False

    def issue_wait(self, peer_id: int) -> bool:
        """Send the wait request on the open socket."""
        self.waiting = self.channel.send(wait_request(peer_id).to_bytes()) > 0
        return self.waiting

    def rearm(self, peer_id: int, address: Tuple[str, int]) -> bool:
        """
        Put the next wait in place: on the same socket while it is open,
        otherwise by reconnecting first (the wait goes out on connect).
        """
        if self.channel.is_closed:
            self.waiting = False
            return self.channel.connect(address)
        return self.issue_wait(peer_id)

    def receive(self, data: bytes) -> Tuple[List[SignalingResponse], bool]:
        """
        Buffer data and pull out every complete response.

        Returns the responses and whether the server asked to close the
        socket (Connection: close). In that case the socket is closed here
        and the remaining buffered bytes are dropped.

        Raises:
            HTTPFramingError: A response cannot be framed.
        """
        self.framer.feed(data)
        responses = []
        while True:
            response = self.framer.poll()
            if response is None:
                break
            self.waiting = False
            responses.append(response)
            if response.should_close:
                self.framer.reset()
                self.channel.close()
                return responses, True
        return responses, False

    def abort(self) -> None:
        self.waiting = False
        self.framer.reset()

    def close(self) -> None:
        self.channel.close()
        self.abort()
